#!/usr/bin/env python

"""Tunable settings for a Lorenz protocol session.

Protocol constants (beta, h, window and fingerprint sizes) are fixed by
construction and live with the code that uses them; only settings that
each peer may choose on its own are kept here.
"""

import json
import math


class SessionConfig(object):
    """Per-endpoint session settings.

    Parameters
    ----------
    sync_threshold : int
        Consecutive matching ticks required to declare convergence.
    perturbation : float
        Amount added to x after each message, forcing a fresh sync.
    poll_interval : float
        Seconds to sleep after each non-blocking poll that found nothing.
    warmup_ticks : int
        Free-running ticks the initiator performs before requesting sync.
    initiator_seed, responder_seed : tuple
        Starting (x, y, z) for each role.
    max_buffer_bytes : int
        Key stream bytes retained by each endpoint.
    """

    def __init__(self, sync_threshold=100, perturbation=1e-6,
                 poll_interval=0.005, warmup_ticks=0,
                 initiator_seed=(-10.0, -7.0, 35.0),
                 responder_seed=(0.0, 1.0, 2.0),
                 max_buffer_bytes=1_000_000):
        if sync_threshold < 1:
            raise ValueError("sync_threshold must be positive, got %r"
                             % sync_threshold)
        if poll_interval < 0 or warmup_ticks < 0:
            raise ValueError("poll_interval and warmup_ticks must be non-negative")
        if len(initiator_seed) != 3 or len(responder_seed) != 3:
            raise ValueError("seeds must be (x, y, z) triples")
        values = list(initiator_seed) + list(responder_seed) + [perturbation]
        if not all(math.isfinite(float(v)) for v in values):
            raise ValueError("seeds and perturbation must be finite")

        self.sync_threshold = int(sync_threshold)
        self.perturbation = float(perturbation)
        self.poll_interval = float(poll_interval)
        self.warmup_ticks = int(warmup_ticks)
        self.initiator_seed = tuple(float(v) for v in initiator_seed)
        self.responder_seed = tuple(float(v) for v in responder_seed)
        self.max_buffer_bytes = int(max_buffer_bytes)
        if self.max_buffer_bytes < 16 or self.max_buffer_bytes % 8:
            raise ValueError("max_buffer_bytes must be a multiple of 8 and at"
                             " least 16, got %r" % max_buffer_bytes)

    def to_json(self):
        """Export a JSON representation of the settings."""
        return json.dumps({
            'sync_threshold': self.sync_threshold,
            'perturbation': self.perturbation,
            'poll_interval': self.poll_interval,
            'warmup_ticks': self.warmup_ticks,
            'initiator_seed': list(self.initiator_seed),
            'responder_seed': list(self.responder_seed),
            'max_buffer_bytes': self.max_buffer_bytes
        })

    @staticmethod
    def from_json(option_string):
        """Create a SessionConfig from a JSON string; missing keys keep defaults."""
        options = json.loads(option_string)
        if not isinstance(options, dict):
            raise ValueError("session config must be a JSON object")
        known = set(json.loads(SessionConfig().to_json()))
        unknown = set(options) - known
        if unknown:
            raise ValueError("unknown config keys: %s"
                             % ', '.join(sorted(unknown)))
        return SessionConfig(**options)

    @staticmethod
    def from_file(filename):
        with open(filename) as f:
            return SessionConfig.from_json(f.read())
