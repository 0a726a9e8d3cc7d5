#!/usr/bin/env python

"""Networked links for the Lorenz protocol.

Frames travel over TCP as a five byte header, kind (1 binary, 2 text) and
big-endian payload length, followed by the payload.  The server runs one
responder thread per accepted connection; sessions share nothing.
"""

import logging
import select
import socket
import socketserver
import struct

from . import wire
from .coordinator import Initiator, Responder
from .errors import ChannelFailure, ProtocolViolation, SessionError
from .wire import Frame

logger = logging.getLogger(__name__)

_HEADER = struct.Struct('>BI')
_KIND_CODES = {wire.BINARY: 1, wire.TEXT: 2}
_KINDS = {code: kind for kind, code in _KIND_CODES.items()}
_MAX_PAYLOAD = 16 * 1024 * 1024


class SocketChannel(object):
    """A framed, ordered channel over a connected stream socket."""

    def __init__(self, sock):
        self.sock = sock
        if sock.family in (socket.AF_INET, socket.AF_INET6):
            # Syncing is one small round trip per tick.
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    def send(self, frame):
        if frame.kind == wire.TEXT:
            payload = frame.payload.encode('utf-8')
        else:
            payload = bytes(frame.payload)

        try:
            self.sock.sendall(
                _HEADER.pack(_KIND_CODES[frame.kind], len(payload)) + payload)
        except OSError as e:
            raise ChannelFailure("send failed: %s" % e)

    def receive(self, block=True):
        """Return the next frame.

        With ``block=False`` this returns None if no frame has started to
        arrive; once one has, the rest of it is read in blocking mode.
        """
        if not block:
            try:
                readable, _, _ = select.select([self.sock], [], [], 0)
            except (OSError, ValueError) as e:
                raise ChannelFailure("poll failed: %s" % e)
            if not readable:
                return None

        kind_code, length = _HEADER.unpack(self._recv_exact(_HEADER.size))
        if kind_code not in _KINDS:
            raise ProtocolViolation("unknown frame kind %d" % kind_code)
        if length > _MAX_PAYLOAD:
            raise ProtocolViolation("frame of %d bytes is too large" % length)

        payload = self._recv_exact(length)
        if _KINDS[kind_code] == wire.TEXT:
            try:
                return Frame.text(payload.decode('utf-8'))
            except UnicodeDecodeError as e:
                raise ProtocolViolation("text frame is not UTF-8: %s" % e)
        return Frame.binary(payload)

    def close(self):
        self.sock.close()

    def _recv_exact(self, n):
        """Receive exactly n bytes, raising ChannelFailure on disconnect."""
        data = b''
        while len(data) < n:
            try:
                chunk = self.sock.recv(n - len(data))
            except OSError as e:
                raise ChannelFailure("receive failed: %s" % e)
            if not chunk:
                raise ChannelFailure("peer closed the connection")
            data += chunk
        return data


class NetworkLinkRequestHandler(socketserver.BaseRequestHandler):
    """Runs the responder side of one session on the accepted connection."""

    def handle(self):
        logger.info("session started with %s:%d", *self.client_address[:2])
        responder = Responder(SocketChannel(self.request),
                              self.server.config,
                              on_message=self.server.deliver)
        try:
            responder.run()
        except SessionError as e:
            self.server.failures.append(e)
        logger.info("session with %s:%d ended", *self.client_address[:2])


class _ThreadingServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True

    def deliver(self, plaintext):
        self.messages.append(plaintext)
        if self.on_message is not None:
            self.on_message(plaintext)


class NetworkServerLink(object):
    """ A link class for a network-accessible responder.

        Example: Serve sessions until interrupted

        >>> link = NetworkServerLink(address, on_message=print)
        >>> link.serve_forever()
    """
    def __init__(self, address, config=None, on_message=None):
        self.server = _ThreadingServer(address, NetworkLinkRequestHandler)
        self.server.config = config
        self.server.on_message = on_message
        self.server.messages = []
        self.server.failures = []

    @property
    def address(self):
        return self.server.server_address

    @property
    def messages(self):
        """Plaintexts received across all sessions."""
        return self.server.messages

    @property
    def failures(self):
        """Errors that aborted sessions."""
        return self.server.failures

    def serve_forever(self):
        self.server.serve_forever()

    def shutdown(self):
        self.server.shutdown()

    def close(self):
        """Close the listening socket and wait for running sessions."""
        self.server.server_close()


class NetworkClientLink(object):
    """A client-side link class.

    Example: Send two messages in one session

    >>> link = NetworkClientLink(address)
    >>> ciphertexts = link.run_proto(['first', 'second'])"""
    def __init__(self, address, config=None):
        self.address = address
        self.config = config

        self.client_socket = socket.create_connection(self.address)
        self.channel = SocketChannel(self.client_socket)

    def run_proto(self, messages):
        return Initiator(self.channel, messages, self.config).run()

    def close(self):
        self.channel.close()
