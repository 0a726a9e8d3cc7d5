#!/usr/bin/env python

"""Frame formats for the Lorenz protocol.

Every unit on the channel is a :class:`Frame`, either binary or text:

=================  ======  ==========================================
Frame              Kind    Payload
=================  ======  ==========================================
Control code       binary  1 byte, see :class:`ControlCode`
Coordinate value   binary  8 bytes, native-endian IEEE-754 double
Public key         binary  32 raw bytes
Text ack           text    human readable acknowledgement
Ciphertext         text    base64 of the enciphered message
Fingerprint byte   binary  1 byte, sent 8 times in a row
=================  ======  ==========================================

The readers below block on the channel and raise
:class:`~lorenzproto.errors.ProtocolViolation` on any frame that does not
have the expected kind and shape.
"""

import collections
import enum
import math
import struct

from .errors import ProtocolViolation
from .negotiation import PUBLIC_KEY_SIZE
from .stream import FINGERPRINT_SIZE

BINARY = 'binary'
TEXT = 'text'

SYNC_ACK_TEXT = 'Sync Request approved'

_COORDINATE = struct.Struct('=d')


class ControlCode(enum.IntEnum):
    CANCEL = 0
    SYNC_REQUEST = 1
    SYNC_COMPLETE = 2
    ENCRYPTION_COMPLETE = 3
    # Extension to codes 0-3: the responder's per-tick reply while the
    # coupling has not converged.  Peers that only know 0-3 cannot sync with
    # this implementation.
    SYNC_CONTINUE = 4


class Frame(collections.namedtuple('Frame', ['kind', 'payload'])):
    """A single typed unit on the channel."""
    __slots__ = ()

    @classmethod
    def binary(cls, payload):
        return cls(BINARY, bytes(payload))

    @classmethod
    def text(cls, payload):
        return cls(TEXT, payload)


def control_frame(code):
    return Frame.binary(bytes([int(code)]))


def coordinate_frame(value):
    return Frame.binary(_COORDINATE.pack(value))


def _expect_binary(frame, size, what):
    if frame is None or frame.kind != BINARY:
        raise ProtocolViolation("expected %s, got %r" % (what, frame))
    if len(frame.payload) != size:
        raise ProtocolViolation(
            "%s must be %d bytes, got %d" % (what, size, len(frame.payload)))
    return frame.payload


def _expect_text(frame, what):
    if frame is None or frame.kind != TEXT:
        raise ProtocolViolation("expected %s, got %r" % (what, frame))
    return frame.payload


def decode_control(frame):
    """Return the ControlCode carried by a frame."""
    payload = _expect_binary(frame, 1, 'control code')
    try:
        return ControlCode(payload[0])
    except ValueError:
        raise ProtocolViolation("unknown control code %d" % payload[0])


def decode_coordinate(frame):
    """Return the finite float carried by a coordinate frame."""
    value = _COORDINATE.unpack(_expect_binary(frame, _COORDINATE.size,
                                              'coordinate'))[0]
    if not math.isfinite(value):
        raise ProtocolViolation("coordinate %r is not finite" % value)
    return value


def send_control(channel, code):
    channel.send(control_frame(code))


def read_control(channel, *expected):
    """Block for a control frame, optionally restricted to expected codes."""
    code = decode_control(channel.receive())
    if expected and code not in expected:
        raise ProtocolViolation(
            "unexpected control code %s, wanted one of %s"
            % (code.name, ', '.join(c.name for c in expected)))
    return code


def send_coordinates(channel, state):
    """Send one tick's (x, y, z) as three frames, in that order."""
    for value in state:
        channel.send(coordinate_frame(value))


def read_coordinates(channel):
    """Block for one tick's (x, y, z)."""
    return tuple(decode_coordinate(channel.receive()) for _ in range(3))


def send_public_key(channel, public_bytes):
    channel.send(Frame.binary(public_bytes))


def read_public_key(channel):
    return _expect_binary(channel.receive(), PUBLIC_KEY_SIZE, 'public key')


def send_text_ack(channel, text=SYNC_ACK_TEXT):
    channel.send(Frame.text(text))


def read_text_ack(channel):
    return _expect_text(channel.receive(), 'text acknowledgement')


def send_ciphertext(channel, encoded):
    channel.send(Frame.text(encoded))


def read_ciphertext(channel):
    return _expect_text(channel.receive(), 'ciphertext')


def send_fingerprint(channel, fingerprint):
    """Send the fingerprint one byte per frame."""
    if len(fingerprint) != FINGERPRINT_SIZE:
        raise ValueError("fingerprint must be %d bytes, got %d"
                         % (FINGERPRINT_SIZE, len(fingerprint)))
    for byte in bytes(fingerprint):
        channel.send(Frame.binary(bytes([byte])))


def read_fingerprint(channel):
    return b''.join(_expect_binary(channel.receive(), 1, 'fingerprint byte')
                    for _ in range(FINGERPRINT_SIZE))
