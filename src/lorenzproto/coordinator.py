#!/usr/bin/env python

"""Per-role state machines driving a Lorenz protocol session.

Both roles move through the same states::

    UNVERIFIED -> UNSYNCED -> SYNCING -> SYNCED -> TRANSMITTING -> COMPLETED
                     ^                                                 |
                     +-------------------- perturb --------------------+

and finish in CLOSED.  The initiator drives: it requests synchronization,
streams its coordinates while the responder is being driven, and then
enciphers one message per synchronization episode.  The responder follows,
declares convergence, and deciphers.

Any :class:`~lorenzproto.errors.SessionError` ends the session.
"""

import collections
import enum
import logging
import time

from . import wire
from .config import SessionConfig
from .endpoint import Trajectory
from .errors import ProtocolViolation, SessionError
from .negotiation import ParameterNegotiator
from .stream import (KeyStreamBuffer, KeystreamHarvester, StreamCipher,
                     WINDOW_SIZE)
from .wire import ControlCode

logger = logging.getLogger(__name__)


class SyncState(enum.Enum):
    UNVERIFIED = 'unverified'
    UNSYNCED = 'unsynced'
    SYNCING = 'syncing'
    SYNCED = 'synced'
    TRANSMITTING = 'transmitting'
    COMPLETED = 'completed'
    CLOSED = 'closed'


class SyncDetector(object):
    """Counts consecutive ticks on which the driven endpoint predicted the
    driver's (y, z) exactly.

    Each tick the responder first observes the (y, z) reported by the
    initiator, comparing it with what it computed on the previous tick, and
    then records its newly computed (y, z) as the next prediction.  Any
    mismatch resets the count to zero.
    """

    def __init__(self, threshold):
        self.threshold = threshold
        self.reset()

    def reset(self):
        self.count = 0
        self._prediction = None

    def observe(self, y, z):
        if self._prediction == (y, z):
            self.count += 1
        else:
            self.count = 0
        return self.converged

    def predict(self, y, z):
        self._prediction = (y, z)

    @property
    def converged(self):
        return self.count >= self.threshold


class Session(object):
    """Everything one connection owns: trajectory, parameters and key stream."""

    def __init__(self, config):
        self.config = config
        self.state = SyncState.UNVERIFIED
        self.parameters = None
        self.trajectory = None
        self.harvester = None
        self.buffer = KeyStreamBuffer(config.max_buffer_bytes)
        self.detector = SyncDetector(config.sync_threshold)
        self.sync_ticks = 0
        self.episodes = 0

    def seed(self, parameters, seed):
        self.parameters = parameters
        self.trajectory = Trajectory(parameters, seed)
        self.harvester = KeystreamHarvester(self.trajectory, self.buffer)


class Coordinator(object):
    """Shared driver for both roles.

    Subclasses provide one handler per state; :meth:`run` dispatches on the
    current state until the session is closed.
    """

    role = None

    def __init__(self, channel, config=None):
        self.channel = channel
        self.config = config if config is not None else SessionConfig()
        self.session = Session(self.config)
        self.results = []
        self._handlers = {
            SyncState.UNVERIFIED: self._unverified,
            SyncState.UNSYNCED: self._unsynced,
            SyncState.SYNCING: self._syncing,
            SyncState.SYNCED: self._synced,
            SyncState.TRANSMITTING: self._transmitting,
            SyncState.COMPLETED: self._completed,
        }

    @property
    def state(self):
        return self.session.state

    def run(self):
        """Drive the session until it closes, returning the results."""
        try:
            while self.session.state is not SyncState.CLOSED:
                self._handlers[self.session.state]()
        except SessionError as e:
            logger.error("%s: session aborted in state %s: %s",
                         self.role, self.session.state.name, e)
            self.session.state = SyncState.CLOSED
            raise
        finally:
            self.channel.close()

        return self.results

    def _transition(self, state):
        logger.info("%s: %s -> %s", self.role,
                    self.session.state.name, state.name)
        self.session.state = state

    def _idle(self):
        if self.config.poll_interval > 0:
            time.sleep(self.config.poll_interval)

    def _unverified(self):
        negotiator = ParameterNegotiator()
        parameters = self._exchange_keys(negotiator)
        self.session.seed(parameters, self._seed())
        logger.info("%s: negotiated rho=%r sigma=%r",
                    self.role, parameters.rho, parameters.sigma)
        self._transition(SyncState.UNSYNCED)

    def _enter_synced(self):
        self.session.buffer.clear()
        self.session.episodes += 1
        logger.info("%s: synchronized after %d ticks",
                    self.role, self.session.sync_ticks)
        self._transition(SyncState.SYNCED)

    def _completed(self):
        self._deliver()
        self.session.trajectory.perturb(self.config.perturbation)
        self.session.buffer.clear()
        self._transition(SyncState.UNSYNCED)

    def _exchange_keys(self, negotiator):
        raise NotImplementedError

    def _seed(self):
        raise NotImplementedError

    def _unsynced(self):
        raise NotImplementedError

    def _syncing(self):
        raise NotImplementedError

    def _synced(self):
        raise NotImplementedError

    def _transmitting(self):
        raise NotImplementedError

    def _deliver(self):
        raise NotImplementedError


class Initiator(Coordinator):
    """The driving side: sends its coordinates and enciphers messages.

    Example: send two messages over a connected channel

    >>> initiator = Initiator(channel, ['first', 'second'])
    >>> ciphertexts = initiator.run()
    """

    role = 'initiator'

    def __init__(self, channel, messages, config=None):
        super().__init__(channel, config)
        self._pending = collections.deque(messages)
        self._message = None
        self._ciphertext = None

    def _exchange_keys(self, negotiator):
        wire.send_public_key(self.channel, negotiator.public_bytes)
        return negotiator.derive(wire.read_public_key(self.channel))

    def _seed(self):
        return self.config.initiator_seed

    def _unsynced(self):
        if not self._pending:
            wire.send_control(self.channel, ControlCode.CANCEL)
            self._transition(SyncState.CLOSED)
            return

        for _ in range(self.config.warmup_ticks):
            self.session.trajectory.tick()
            frame = self.channel.receive(block=False)
            if frame is not None:
                raise ProtocolViolation(
                    "unexpected %r while unsynchronized" % (frame,))

        message = self._pending.popleft()
        if isinstance(message, str):
            message = message.encode('utf-8')
        self._message = message

        wire.send_control(self.channel, ControlCode.SYNC_REQUEST)
        ack = wire.read_text_ack(self.channel)
        logger.debug("%s: received %r", self.role, ack)

        self.session.sync_ticks = 0
        self._transition(SyncState.SYNCING)

    def _syncing(self):
        state = self.session.trajectory.tick()
        self.session.sync_ticks += 1
        wire.send_coordinates(self.channel, state)

        code = wire.read_control(self.channel, ControlCode.SYNC_CONTINUE,
                                 ControlCode.SYNC_COMPLETE)
        if code == ControlCode.SYNC_COMPLETE:
            # The driven responder is one tick ahead of us.
            self.session.trajectory.tick()
            self._enter_synced()

    def _synced(self):
        self.session.harvester.fill(WINDOW_SIZE)
        self._transition(SyncState.TRANSMITTING)

    def _transmitting(self):
        cipher = StreamCipher(self.session.buffer.take(WINDOW_SIZE))
        self._ciphertext = cipher.encrypt_text(self._message)

        wire.send_control(self.channel, ControlCode.ENCRYPTION_COMPLETE)
        wire.send_ciphertext(self.channel, self._ciphertext)
        wire.send_fingerprint(self.channel, cipher.fingerprint)

        self._transition(SyncState.COMPLETED)

    def _deliver(self):
        logger.info("%s: sent %d byte message as %s", self.role,
                    len(self._message), self._ciphertext)
        self.results.append(self._ciphertext)
        self._message = None
        self._ciphertext = None


class Responder(Coordinator):
    """The driven side: couples to the initiator and deciphers messages.

    ``on_message`` is called with the plaintext bytes of every message.
    """

    role = 'responder'

    def __init__(self, channel, config=None, on_message=None):
        super().__init__(channel, config)
        self.on_message = on_message
        self._plaintext = None

    def _exchange_keys(self, negotiator):
        peer_public_bytes = wire.read_public_key(self.channel)
        wire.send_public_key(self.channel, negotiator.public_bytes)
        return negotiator.derive(peer_public_bytes)

    def _seed(self):
        return self.config.responder_seed

    def _unsynced(self):
        self.session.trajectory.tick()

        frame = self.channel.receive(block=False)
        if frame is None:
            self._idle()
            return

        code = wire.decode_control(frame)
        if code == ControlCode.SYNC_REQUEST:
            wire.send_text_ack(self.channel)
            self.session.detector.reset()
            self.session.sync_ticks = 0
            self._transition(SyncState.SYNCING)
        elif code == ControlCode.CANCEL:
            self._transition(SyncState.CLOSED)
        else:
            raise ProtocolViolation(
                "unexpected %s while unsynchronized" % code.name)

    def _syncing(self):
        x, y, z = wire.read_coordinates(self.channel)

        detector = self.session.detector
        detector.observe(y, z)
        _, new_y, new_z = self.session.trajectory.tick(coupling=x)
        detector.predict(new_y, new_z)
        self.session.sync_ticks += 1

        if detector.converged:
            wire.send_control(self.channel, ControlCode.SYNC_COMPLETE)
            self._enter_synced()
        else:
            wire.send_control(self.channel, ControlCode.SYNC_CONTINUE)

    def _synced(self):
        self.session.harvester.tick()

        frame = self.channel.receive(block=False)
        if frame is None:
            self._idle()
            return

        code = wire.decode_control(frame)
        if code == ControlCode.ENCRYPTION_COMPLETE:
            self._transition(SyncState.TRANSMITTING)
        elif code == ControlCode.CANCEL:
            self._transition(SyncState.CLOSED)
        else:
            raise ProtocolViolation(
                "unexpected %s while synchronized" % code.name)

    def _transmitting(self):
        ciphertext = wire.read_ciphertext(self.channel)
        fingerprint = wire.read_fingerprint(self.channel)

        window, offset = self.session.harvester.locate_window(fingerprint)
        logger.debug("%s: fingerprint found at offset %d", self.role, offset)

        self._plaintext = StreamCipher(window).decrypt_text(ciphertext)
        self._transition(SyncState.COMPLETED)

    def _deliver(self):
        logger.info("%s: received %d byte message", self.role,
                    len(self._plaintext))
        self.results.append(self._plaintext)
        if self.on_message is not None:
            self.on_message(self._plaintext)
        self._plaintext = None
