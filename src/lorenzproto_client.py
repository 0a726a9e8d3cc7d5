#!/usr/bin/env python3

import argparse
import logging
import sys

import lorenzproto.config
import lorenzproto.link


class PortRangeAction(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        min_port = 1
        max_port = 65535
        if not min_port <= values <= max_port:
            raise argparse.ArgumentTypeError(f"Port number must be between {min_port} and {max_port}")
        setattr(namespace, self.dest, values)


if __name__ == '__main__':
    parser = argparse.ArgumentParser()

    parser.add_argument(
        'messages',
        nargs='*',
        help="Messages to send, one per synchronization.  "
             "Read from standard input if none are given.")

    parser.add_argument(
        '-a', '--address',
        type=str,
        help="The address to which to connect.",
        default='127.0.0.1')

    parser.add_argument(
        '-p', '--port',
        type=int,
        help="The port to which to connect.",
        default=3012,
        action=PortRangeAction)

    parser.add_argument(
        '-c', '--config',
        type=str,
        help="A JSON file of session settings.")

    parser.add_argument(
        '-v', '--verbose',
        help="Log state transitions.",
        action='store_true'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s: %(message)s')

    config = None
    if args.config is not None:
        config = lorenzproto.config.SessionConfig.from_file(args.config)

    messages = args.messages
    if not messages:
        messages = [sys.stdin.read().strip()]

    link = lorenzproto.link.NetworkClientLink(
        (args.address, args.port),
        config=config)
    print("Connected to the server")

    try:
        ciphertexts = link.run_proto(messages)
    finally:
        link.close()

    for ciphertext in ciphertexts:
        print("Encrypted message (base64): %s" % ciphertext)
    print("Done. Bye bye")
