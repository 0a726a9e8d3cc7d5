#!/usr/bin/env python

r"""Key stream harvesting and the XOR stream cipher.

Architecture::

    Initiator                           Responder
    Trajectory  (synchronized)          Trajectory
         | y per tick                        | y per tick
         v                                   v
    KeystreamHarvester                  KeystreamHarvester
         |                                   |
         v                                   v
    KeyStreamBuffer                     KeyStreamBuffer
         | first 16 bytes                    | search for fingerprint
         v                                   v
    StreamCipher: plaintext XOR window  StreamCipher: ciphertext XOR window

Once synchronized both endpoints walk the same trajectory, but each ticks
at its own pace, so their buffers differ in length.  The sender therefore
sends the first 8 bytes of the window it used, and the receiver locates
that fingerprint in its own buffer instead of trusting a position.
"""

import base64
import binascii
import struct

import numpy as np

from .errors import LookupFailure, ProtocolViolation

WINDOW_SIZE = 16
FINGERPRINT_SIZE = 8

_COORDINATE = struct.Struct('=d')


class KeyStreamBuffer:
    """Append-only byte buffer retaining a sliding window of key material.

    Parameters
    ----------
    max_bytes : int
        Maximum number of bytes retained (default 1,000,000).  The oldest
        bytes are dropped once this is exceeded.  Must be a whole number
        of ticks (a multiple of 8).
    """

    def __init__(self, max_bytes=1_000_000):
        if max_bytes < WINDOW_SIZE:
            raise ValueError(
                "max_bytes must be at least %d, got %d"
                % (WINDOW_SIZE, max_bytes))
        if max_bytes % _COORDINATE.size:
            raise ValueError(
                "max_bytes must be a multiple of %d, got %d"
                % (_COORDINATE.size, max_bytes))
        self.max_bytes = max_bytes
        self._buf = bytearray()

    def extend(self, data):
        """Append key bytes, dropping the oldest if over capacity."""
        self._buf.extend(data)
        excess = len(self._buf) - self.max_bytes
        if excess > 0:
            del self._buf[:excess]

    def take(self, n_bytes):
        """Consume and return bytes from the front of the buffer.

        Raises
        ------
        ValueError
            If fewer than n_bytes are available.
        """
        if len(self._buf) < n_bytes:
            raise ValueError(
                "Not enough key bytes: need %d, have %d" %
                (n_bytes, len(self._buf)))
        result = bytes(self._buf[:n_bytes])
        del self._buf[:n_bytes]
        return result

    def window(self, offset, n_bytes=WINDOW_SIZE):
        """Return n_bytes starting at offset without consuming them."""
        if offset < 0 or offset + n_bytes > len(self._buf):
            raise ValueError(
                "window [%d, %d) outside buffer of %d bytes"
                % (offset, offset + n_bytes, len(self._buf)))
        return bytes(self._buf[offset:offset + n_bytes])

    def locate(self, fingerprint):
        """Return the offset of the first occurrence of fingerprint.

        Raises
        ------
        LookupFailure
            If the fingerprint is not in the retained window.
        """
        offset = self._buf.find(fingerprint)
        if offset < 0:
            raise LookupFailure(
                "fingerprint %s not found in %d bytes of key stream"
                % (bytes(fingerprint).hex(), len(self._buf)))
        return offset

    def discard(self, n_bytes):
        """Drop n_bytes from the front of the buffer."""
        del self._buf[:n_bytes]

    def clear(self):
        del self._buf[:]

    @property
    def available(self):
        """Number of bytes currently in the buffer."""
        return len(self._buf)

    def __len__(self):
        return len(self._buf)


class KeystreamHarvester:
    """Ticks a trajectory and appends the raw bytes of each new y.

    Parameters
    ----------
    trajectory : Trajectory
        A free-running, synchronized trajectory.
    buffer : KeyStreamBuffer
        Destination for the harvested bytes.
    """

    def __init__(self, trajectory, buffer):
        self.trajectory = trajectory
        self.buffer = buffer

    def tick(self):
        """Advance one tick and harvest its y coordinate."""
        _, y, _ = self.trajectory.tick()
        self.buffer.extend(_COORDINATE.pack(y))

    def fill(self, n_bytes):
        """Tick until the buffer holds at least n_bytes."""
        if n_bytes > self.buffer.max_bytes:
            raise ValueError(
                "cannot hold %d bytes in a buffer of %d"
                % (n_bytes, self.buffer.max_bytes))
        while self.buffer.available < n_bytes:
            self.tick()

    def locate_window(self, fingerprint):
        """Find the window starting with fingerprint and consume through it.

        Raises
        ------
        LookupFailure
            If the fingerprint is not retained, or the window it starts
            would not fit in the buffer.
        """
        self.fill(WINDOW_SIZE)
        offset = self.buffer.locate(fingerprint)
        if offset + WINDOW_SIZE > self.buffer.max_bytes:
            raise LookupFailure(
                "window at offset %d does not fit in %d bytes of key stream"
                % (offset, self.buffer.max_bytes))

        # Whole ticks into a whole-tick capacity, so nothing is dropped here.
        self.fill(offset + WINDOW_SIZE)
        window = self.buffer.window(offset)
        self.buffer.discard(offset + WINDOW_SIZE)
        return window, offset


class StreamCipher:
    """XOR cipher over a fixed 16-byte key stream window.

    ``ciphertext[i] = plaintext[i] ^ window[i % 16]``.
    """

    def __init__(self, window):
        if len(window) != WINDOW_SIZE:
            raise ValueError(
                "window must be %d bytes, got %d" % (WINDOW_SIZE, len(window)))
        self.window = bytes(window)

    @property
    def fingerprint(self):
        """Leading bytes of the window, sent so the receiver can find it."""
        return self.window[:FINGERPRINT_SIZE]

    def encrypt(self, plaintext):
        """Encrypt plaintext by XOR with the repeated window.

        Parameters
        ----------
        plaintext : bytes
            Data to encrypt.

        Returns
        -------
        bytes
            Ciphertext (same length as plaintext).
        """
        if not plaintext:
            return b''
        pt = np.frombuffer(bytes(plaintext), dtype=np.uint8)
        kt = np.resize(np.frombuffer(self.window, dtype=np.uint8), pt.shape)
        return bytes(pt ^ kt)

    def decrypt(self, ciphertext):
        """Decrypt is identical to encrypt (XOR is self-inverse)."""
        return self.encrypt(ciphertext)

    def encrypt_text(self, message):
        """Encrypt a message and return base64 text for the wire.

        Strings are encoded as UTF-8 first.
        """
        if isinstance(message, str):
            message = message.encode('utf-8')
        return encode_ciphertext(self.encrypt(message))

    def decrypt_text(self, encoded):
        """Decode base64 text from the wire and decrypt it to bytes."""
        return self.decrypt(decode_ciphertext(encoded))


def encode_ciphertext(ciphertext):
    """Base64-encode ciphertext bytes into wire text."""
    return base64.b64encode(ciphertext).decode('ascii')


def decode_ciphertext(encoded):
    """Decode wire text back to ciphertext bytes.

    Raises
    ------
    ProtocolViolation
        If the text is not valid base64.
    """
    try:
        return base64.b64decode(encoded.encode('ascii'), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ProtocolViolation("ciphertext is not valid base64: %s" % e)
