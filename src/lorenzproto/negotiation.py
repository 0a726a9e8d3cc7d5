#!/usr/bin/env python

r"""Ephemeral parameter negotiation for the Lorenz protocol.

Each peer generates an X25519 key pair and sends its 32-byte raw public
key.  Both compute the same Diffie-Hellman secret and read one byte of it,
:math:`s \in [0, 255]`, which fixes

    :math:`\rho = 24 + \frac{57 - 24}{255} s`

and a :math:`\sigma` interpolated between two reference lines, one
spanning :math:`\sigma \in [6, 14.5]` (valid near :math:`\rho = 24`) and
one spanning :math:`\sigma \in [4, 27]` (valid near :math:`\rho = 57`).

Note that only 256 parameter pairs are reachable.  This narrow keyspace is
a known weakness of the scheme and is kept deliberately.
"""

import logging

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey, X25519PublicKey)

from .endpoint import SessionParameters, BETA, STEP_SIZE
from .errors import ProtocolViolation

logger = logging.getLogger(__name__)

PUBLIC_KEY_SIZE = 32
SECRET_INDEX = 10

RHO_MIN = 24.0
RHO_MAX = 57.0

# (sigma at RHO_MIN, sigma at RHO_MAX) for each reference line
LOW_RHO_SIGMA = (6.0, 14.5)
HIGH_RHO_SIGMA = (4.0, 27.0)


def rho_from_scalar(scalar):
    """Map a byte value in [0, 255] linearly onto [RHO_MIN, RHO_MAX]."""
    if not 0 <= scalar <= 255:
        raise ValueError("scalar must be in [0, 255], got %r" % scalar)
    return RHO_MIN + (RHO_MAX - RHO_MIN) / 255.0 * scalar


def _interpolate(line, t):
    start, end = line
    return start + (end - start) * t


def sigma_from_rho(rho):
    """Choose sigma for a given rho.

    Both reference lines are evaluated at the position of rho within
    [RHO_MIN, RHO_MAX], and the two results are then blended by that same
    position.
    """
    if not RHO_MIN <= rho <= RHO_MAX:
        raise ValueError("rho must be in [%g, %g], got %r"
                         % (RHO_MIN, RHO_MAX, rho))
    t = (rho - RHO_MIN) / (RHO_MAX - RHO_MIN)
    low = _interpolate(LOW_RHO_SIGMA, t)
    high = _interpolate(HIGH_RHO_SIGMA, t)
    return low + (high - low) * t


def derive_parameters(shared_secret):
    """Derive the session's chaos parameters from a shared secret."""
    if len(shared_secret) <= SECRET_INDEX:
        raise ValueError("shared secret too short: %d bytes" % len(shared_secret))
    rho = rho_from_scalar(shared_secret[SECRET_INDEX])
    return SessionParameters(rho, sigma_from_rho(rho), BETA, STEP_SIZE)


class ParameterNegotiator(object):
    """Holds an ephemeral X25519 key pair until the shared secret is derived.

    Example: both sides of a session

    >>> alice, bob = ParameterNegotiator(), ParameterNegotiator()
    >>> alice.derive(bob.public_bytes) == bob.derive(alice.public_bytes)
    True
    """

    def __init__(self):
        self._private_key = X25519PrivateKey.generate()
        self.public_bytes = self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw)

    def derive(self, peer_public_bytes):
        """Compute the shared secret and map it to session parameters.

        The private key is dropped afterwards, so this may only be called
        once.

        Raises
        ------
        ProtocolViolation
            If the peer's key is not 32 bytes or is not a usable X25519 key.
        """
        if self._private_key is None:
            raise RuntimeError("negotiation key has already been used")
        if len(peer_public_bytes) != PUBLIC_KEY_SIZE:
            raise ProtocolViolation(
                "public key must be %d bytes, got %d"
                % (PUBLIC_KEY_SIZE, len(peer_public_bytes)))

        try:
            peer_key = X25519PublicKey.from_public_bytes(bytes(peer_public_bytes))
            shared_secret = self._private_key.exchange(peer_key)
        except ValueError as e:
            raise ProtocolViolation("unusable peer public key: %s" % e)
        finally:
            self._private_key = None

        parameters = derive_parameters(shared_secret)
        logger.debug("negotiated %r", parameters)
        return parameters
