#!/usr/bin/env python

import queue
import threading

from .coordinator import Initiator, Responder
from .errors import ChannelFailure, SessionError

_CLOSED = object()


class InternalChannel(object):
    """One end of an in-memory frame channel."""

    def __init__(self, inbox, outbox):
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    @staticmethod
    def pair():
        """Create two connected channel ends."""
        a_to_b = queue.Queue()
        b_to_a = queue.Queue()
        return InternalChannel(b_to_a, a_to_b), InternalChannel(a_to_b, b_to_a)

    def send(self, frame):
        if self._closed:
            raise ChannelFailure("channel is closed")
        self._outbox.put(frame)

    def receive(self, block=True):
        try:
            frame = self._inbox.get(block=block)
        except queue.Empty:
            return None

        if frame is _CLOSED:
            self._inbox.put(_CLOSED)
            raise ChannelFailure("peer closed the channel")
        return frame

    def close(self):
        if not self._closed:
            self._closed = True
            self._outbox.put(_CLOSED)


class InternalLink(object):
    """A link controller for two endpoints in the same process.

    Example: Send a message and return what the responder deciphered

    >>> link = InternalLink(['Hello'])
    >>> ciphertexts, plaintexts = link.run_proto()"""
    def __init__(self, messages, config=None, responder_config=None):
        initiator_channel, responder_channel = InternalChannel.pair()
        if responder_config is None:
            responder_config = config

        self.initiator = Initiator(initiator_channel, messages, config)
        self.responder = Responder(responder_channel, responder_config)

    def run_proto(self):
        """Run one session, returning (ciphertexts, plaintexts)."""
        errors = []

        def _run_responder():
            try:
                self.responder.run()
            except SessionError as e:
                errors.append(e)

        thread = threading.Thread(target=_run_responder, daemon=True)
        thread.start()

        initiator_error = None
        try:
            ciphertexts = self.initiator.run()
        except SessionError as e:
            initiator_error = e
        thread.join()

        failures = [e for e in [initiator_error] + errors if e is not None]
        if failures:
            # A closed channel is usually the echo of the other side's error.
            raise next((e for e in failures
                        if not isinstance(e, ChannelFailure)), failures[0])

        return ciphertexts, self.responder.results
