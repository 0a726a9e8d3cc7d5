#!/usr/bin/env python

"""Exception types raised by a Lorenz protocol session.

Every error is fatal to the session that raised it; nothing is retried.
"""


class SessionError(Exception):
    """Base class for errors that abort a session."""
    pass


class ProtocolViolation(SessionError):
    """A frame arrived with the wrong kind, length, content or order."""
    pass


class LookupFailure(SessionError):
    """The receiver could not find the sender's fingerprint in its key stream."""
    pass


class ChannelFailure(SessionError):
    """The underlying transport failed or was closed by the peer."""
    pass


class DivergenceFailure(SessionError):
    """The local trajectory overflowed and is no longer finite."""
    pass
