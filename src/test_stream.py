#!/usr/bin/env python3

"""Tests for key stream harvesting and the XOR cipher."""

import os
import struct
import unittest

import numpy as np

from lorenzproto.endpoint import SessionParameters, Trajectory
from lorenzproto.errors import LookupFailure, ProtocolViolation
from lorenzproto.stream import (KeyStreamBuffer, KeystreamHarvester,
                                StreamCipher, decode_ciphertext,
                                WINDOW_SIZE, FINGERPRINT_SIZE)


def reference_harvester(n_ticks=16):
    """Key stream from seed (-10, -7, 35) with sigma=25, rho=2."""
    trajectory = Trajectory(SessionParameters(rho=2.0, sigma=25.0),
                            (-10.0, -7.0, 35.0))
    harvester = KeystreamHarvester(trajectory, KeyStreamBuffer())
    for _ in range(n_ticks):
        harvester.tick()
    return harvester


class TestReferenceVector(unittest.TestCase):

    def setUp(self):
        self.buffer = reference_harvester().buffer
        # The published vector repeats the first tick's eight bytes.
        self.window = self.buffer.window(0, 8) * 2

    def test_harvest_length(self):
        self.assertEqual(self.buffer.available, 16 * 8)

    def test_encrypt(self):
        cipher = StreamCipher(self.window)
        self.assertEqual(cipher.encrypt_text("Hello, Testing!"),
                         "QrLPHFImLZRvpNcZU20s")

    def test_decrypt(self):
        cipher = StreamCipher(self.window)
        self.assertEqual(cipher.decrypt_text("QrLPHFImLZRvpNcZU20s"),
                         b"Hello, Testing!")

    def test_encrypt_empty_message(self):
        cipher = StreamCipher(self.window)
        self.assertEqual(cipher.encrypt_text(""), "")
        self.assertEqual(cipher.encrypt(b""), b"")


class TestStreamCipher(unittest.TestCase):

    def test_round_trip(self):
        rng = np.random.default_rng(7)
        for length in (1, 15, 16, 17, 1000):
            message = bytes(rng.integers(0, 256, length, dtype=np.uint8))
            cipher = StreamCipher(os.urandom(WINDOW_SIZE))
            ciphertext = cipher.encrypt(message)
            self.assertEqual(len(ciphertext), length)
            self.assertEqual(cipher.decrypt(ciphertext), message)

    def test_window_repeats_every_sixteen_bytes(self):
        window = bytes(range(1, 17))
        ciphertext = StreamCipher(window).encrypt(b'\x00' * 40)
        self.assertEqual(ciphertext, (window * 3)[:40])

    def test_fingerprint(self):
        window = bytes(range(16))
        self.assertEqual(StreamCipher(window).fingerprint, bytes(range(8)))

    def test_window_size_checked(self):
        with self.assertRaises(ValueError):
            StreamCipher(b'\x00' * 15)

    def test_invalid_base64(self):
        with self.assertRaises(ProtocolViolation):
            decode_ciphertext("not base64!")


class TestKeyStreamBuffer(unittest.TestCase):

    def test_locate_fingerprint_at_offset(self):
        window = bytes(range(100, 116))
        for k in (0, 1, 8, 57, 300):
            buffer = KeyStreamBuffer()
            buffer.extend(b'\x00' * k)
            buffer.extend(window)
            buffer.extend(os.urandom(40))
            offset = buffer.locate(window[:FINGERPRINT_SIZE])
            self.assertEqual(offset, k)
            self.assertEqual(buffer.window(offset), window)

    def test_locate_returns_first_occurrence(self):
        buffer = KeyStreamBuffer()
        buffer.extend(b'\x01' * 8 + b'abcdefgh' + b'\x02' * 8 + b'abcdefgh')
        self.assertEqual(buffer.locate(b'abcdefgh'), 8)

    def test_missing_fingerprint(self):
        buffer = KeyStreamBuffer()
        buffer.extend(b'\x00' * 64)
        with self.assertRaises(LookupFailure):
            buffer.locate(b'\x01' * FINGERPRINT_SIZE)

    def test_take_consumes_front(self):
        buffer = KeyStreamBuffer()
        buffer.extend(bytes(range(32)))
        self.assertEqual(buffer.take(16), bytes(range(16)))
        self.assertEqual(buffer.available, 16)
        self.assertEqual(buffer.take(16), bytes(range(16, 32)))
        with self.assertRaises(ValueError):
            buffer.take(1)

    def test_window_bounds(self):
        buffer = KeyStreamBuffer()
        buffer.extend(bytes(20))
        with self.assertRaises(ValueError):
            buffer.window(5)

    def test_sliding_window_drops_oldest(self):
        buffer = KeyStreamBuffer(max_bytes=64)
        buffer.extend(bytes(range(100)))
        self.assertEqual(len(buffer), 64)
        self.assertEqual(buffer.window(0, 1), bytes([36]))
        with self.assertRaises(LookupFailure):
            buffer.locate(bytes(range(0, 8)))

    def test_minimum_capacity(self):
        with self.assertRaises(ValueError):
            KeyStreamBuffer(max_bytes=8)

    def test_capacity_in_whole_ticks(self):
        with self.assertRaises(ValueError):
            KeyStreamBuffer(max_bytes=20)


class TestKeystreamHarvester(unittest.TestCase):

    def test_appends_y_bytes(self):
        harvester = reference_harvester(n_ticks=1)
        self.assertEqual(harvester.buffer.take(8),
                         bytes.fromhex('0ad7a3703d0a0dc0'))

    def test_fill(self):
        harvester = reference_harvester(n_ticks=0)
        harvester.fill(20)
        self.assertEqual(harvester.buffer.available, 24)
        self.assertEqual(harvester.trajectory.ticks, 3)

    def test_identical_trajectories_give_identical_streams(self):
        a = reference_harvester(n_ticks=50).buffer
        b = reference_harvester(n_ticks=70).buffer
        self.assertEqual(a.take(400), b.take(400))


class CountingTrajectory:
    """Stand-in whose y is the tick number, so every tick is distinct."""

    def __init__(self):
        self.ticks = 0

    def tick(self):
        self.ticks += 1
        return 0.0, float(self.ticks), 0.0


def tick_bytes(n):
    return struct.pack('=d', float(n))


class TestLocateWindow(unittest.TestCase):

    def setUp(self):
        self.harvester = KeystreamHarvester(CountingTrajectory(),
                                            KeyStreamBuffer(max_bytes=64))

    def test_fills_before_search(self):
        window, offset = self.harvester.locate_window(tick_bytes(1))
        self.assertEqual((window, offset), (tick_bytes(1) + tick_bytes(2), 0))
        self.assertEqual(self.harvester.buffer.available, 0)

    def test_ticks_ahead_for_tail_of_window(self):
        for _ in range(3):
            self.harvester.tick()
        window, offset = self.harvester.locate_window(tick_bytes(3))
        self.assertEqual(offset, 16)
        self.assertEqual(window, tick_bytes(3) + tick_bytes(4))
        self.assertEqual(self.harvester.trajectory.ticks, 4)

    def test_window_ending_at_capacity(self):
        for _ in range(20):
            self.harvester.tick()
        window, offset = self.harvester.locate_window(tick_bytes(19))
        self.assertEqual(offset, 48)
        self.assertEqual(window, tick_bytes(19) + tick_bytes(20))
        self.assertEqual(self.harvester.trajectory.ticks, 20)

    def test_window_past_capacity(self):
        for _ in range(20):
            self.harvester.tick()
        with self.assertRaises(LookupFailure):
            self.harvester.locate_window(tick_bytes(20))
        self.assertEqual(self.harvester.trajectory.ticks, 20)

    def test_fill_beyond_capacity(self):
        with self.assertRaises(ValueError):
            self.harvester.fill(72)


if __name__ == '__main__':
    unittest.main()
