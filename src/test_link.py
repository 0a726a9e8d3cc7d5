#!/usr/bin/env python3

"""Tests for the TCP channel and networked sessions."""

import socket
import struct
import threading
import time
import unittest

from lorenzproto.config import SessionConfig
from lorenzproto.errors import ChannelFailure, ProtocolViolation
from lorenzproto.link import NetworkClientLink, NetworkServerLink, SocketChannel
from lorenzproto.wire import Frame


class TestSocketChannel(unittest.TestCase):

    def setUp(self):
        a, b = socket.socketpair()
        self.a = SocketChannel(a)
        self.b = SocketChannel(b)

    def tearDown(self):
        self.a.close()
        self.b.close()

    def test_frames_keep_kind_and_order(self):
        frames = [Frame.binary(b'\x01'), Frame.text('Sync Request approved'),
                  Frame.binary(b'\x00' * 32), Frame.text(''),
                  Frame.text('QrLPHFImLZRvpNcZU20s')]
        for frame in frames:
            self.a.send(frame)
        self.assertEqual([self.b.receive() for _ in frames], frames)

    def test_non_blocking_receive(self):
        self.assertIsNone(self.b.receive(block=False))
        self.a.send(Frame.binary(b'\x02'))
        frame = None
        while frame is None:
            frame = self.b.receive(block=False)
        self.assertEqual(frame, Frame.binary(b'\x02'))

    def test_peer_closed(self):
        self.a.close()
        with self.assertRaises(ChannelFailure):
            self.b.receive()

    def test_truncated_frame(self):
        self.a.sock.sendall(struct.pack('>BI', 1, 8) + b'\x00' * 3)
        self.a.close()
        with self.assertRaises(ChannelFailure):
            self.b.receive()

    def test_unknown_kind(self):
        self.a.sock.sendall(struct.pack('>BI', 9, 1) + b'\x00')
        with self.assertRaises(ProtocolViolation):
            self.b.receive()

    def test_invalid_utf8_text(self):
        self.a.sock.sendall(struct.pack('>BI', 2, 2) + b'\xff\xfe')
        with self.assertRaises(ProtocolViolation):
            self.b.receive()


class TestNetworkSession(unittest.TestCase):

    def setUp(self):
        self.config = SessionConfig(poll_interval=0.0005)
        self.link = NetworkServerLink(('127.0.0.1', 0), config=self.config)
        self.thread = threading.Thread(target=self.link.serve_forever)
        self.thread.start()

    def tearDown(self):
        self.link.shutdown()
        self.thread.join()
        self.link.close()

    def run_client(self, messages):
        client = NetworkClientLink(self.link.address, config=self.config)
        try:
            return client.run_proto(messages)
        finally:
            client.close()

    def test_messages_delivered(self):
        messages = ["Hello, Testing!", "second message"]
        ciphertexts = self.run_client(messages)
        self.assertEqual(len(ciphertexts), 2)

        self.link.shutdown()
        self.link.close()
        self.assertEqual(self.link.messages,
                         [m.encode('utf-8') for m in messages])
        self.assertEqual(self.link.failures, [])

    def test_concurrent_sessions(self):
        messages = ["client %d" % i for i in range(4)]
        threads = [threading.Thread(target=self.run_client, args=([m],))
                   for m in messages]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.link.shutdown()
        self.link.close()
        self.assertEqual(sorted(self.link.messages),
                         sorted(m.encode('utf-8') for m in messages))

    def test_client_disconnect_is_recorded(self):
        sock = socket.create_connection(self.link.address)
        sock.close()

        for _ in range(500):
            if self.link.failures:
                break
            time.sleep(0.01)

        self.link.shutdown()
        self.link.close()
        self.assertEqual(len(self.link.failures), 1)
        self.assertIsInstance(self.link.failures[0], ChannelFailure)


if __name__ == '__main__':
    unittest.main()
