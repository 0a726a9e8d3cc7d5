#!/usr/bin/env python3

import argparse
import logging

import lorenzproto.config
import lorenzproto.link


class PortRangeAction(argparse.Action):
    def __call__(self, parser, namespace, values, option_string=None):
        min_port = 1
        max_port = 65535
        if not min_port <= values <= max_port:
            raise argparse.ArgumentTypeError(f"Port number must be between {min_port} and {max_port}")
        setattr(namespace, self.dest, values)


def print_message(plaintext):
    print("Decoded message: %s" % plaintext.decode('utf-8', errors='replace'),
          flush=True)


if __name__ == '__main__':
    parser = argparse.ArgumentParser()

    parser.add_argument(
        '-l', '--listen-address',
        type=str,
        help="The address upon which to listen.",
        default='127.0.0.1')

    parser.add_argument(
        '-p', '--port',
        type=int,
        help="The port upon which to listen.",
        default=3012,
        action=PortRangeAction
    )

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
        format='%(asctime)s %(threadName)s %(name)s: %(message)s')

    config = None
    if args.config is not None:
        config = lorenzproto.config.SessionConfig.from_file(args.config)

    link = lorenzproto.link.NetworkServerLink(
        (args.listen_address, args.port),
        config=config,
        on_message=print_message)
    print("Server Started", flush=True)

    try:
        link.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        link.close()
