#!/usr/bin/env python

r"""Lorenz protocol endpoint physics.

This module implements one explicit Euler step of the Lorenz system

    :math:`\dot{x} = \sigma (y - x)`,
    :math:`\dot{y} = x (\rho - z) - y`,
    :math:`\dot{z} = x y - \beta z`,

with an optional drive value :math:`x'` that replaces :math:`x` on the
right-hand side.  Driving a receiver with a sender's :math:`x` pulls the
receiver's :math:`(y, z)` onto the sender's trajectory (Pecora-Carroll
synchronization).

Both peers must obtain bit-identical doubles from identical inputs, so the
operations are written out in one fixed order and never rearranged.
"""

import json
import math

from .errors import DivergenceFailure

BETA = 8.0 / 3.0
STEP_SIZE = 0.01


def lorenz_step(x, y, z, sigma, rho, beta, h, coupling=None):
    """Advance (x, y, z) by one step, returning the new triple.

    If ``coupling`` is given it is used in place of ``x``.
    """
    if coupling is None:
        drive = x
    else:
        drive = coupling

    new_x = drive + (sigma * (y - drive)) * h
    new_y = y + (drive * (rho - z) - y) * h
    new_z = z + (drive * y - beta * z) * h

    return new_x, new_y, new_z


class SessionParameters(object):
    """Parameters shared by both peers for the lifetime of a session."""

    def __init__(self, rho, sigma, beta=BETA, h=STEP_SIZE):
        self.rho = rho
        self.sigma = sigma
        self.beta = beta
        self.h = h

    def __eq__(self, other):
        if not isinstance(other, SessionParameters):
            return NotImplemented
        return (self.rho, self.sigma, self.beta, self.h) == \
            (other.rho, other.sigma, other.beta, other.h)

    def __repr__(self):
        return 'SessionParameters(rho=%r, sigma=%r, beta=%r, h=%r)' % (
            self.rho, self.sigma, self.beta, self.h)

    def to_json(self):
        """Export a JSON representation of the parameters."""
        return json.dumps({
            'rho': self.rho,
            'sigma': self.sigma,
            'beta': self.beta,
            'h': self.h
        })

    @staticmethod
    def from_json(option_string):
        """Create a new SessionParameters object from an exported JSON string."""
        options = json.loads(option_string)
        return SessionParameters(
            options['rho'],
            options['sigma'],
            options['beta'],
            options['h']
        )


class Trajectory(object):
    """The (x, y, z) state of one endpoint, advanced one tick at a time."""

    def __init__(self, parameters, seed):
        self.parameters = parameters
        self.x, self.y, self.z = (float(value) for value in seed)
        self.ticks = 0
        self._check_finite()

    def tick(self, coupling=None):
        """Advance the trajectory by one step, returning the new state."""
        p = self.parameters
        self.x, self.y, self.z = lorenz_step(
            self.x, self.y, self.z, p.sigma, p.rho, p.beta, p.h,
            coupling=coupling)
        self.ticks += 1
        self._check_finite()
        return self.state

    def perturb(self, epsilon):
        """Nudge x by epsilon, knocking the endpoint out of synchronization."""
        self.x = self.x + epsilon
        self._check_finite()

    def _check_finite(self):
        if not all(math.isfinite(value) for value in self.state):
            raise DivergenceFailure(
                "trajectory diverged to %r after %d ticks" % (self.state, self.ticks))

    @property
    def state(self):
        """The current (x, y, z) triple."""
        return self.x, self.y, self.z
