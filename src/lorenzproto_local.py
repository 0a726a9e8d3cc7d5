#!/usr/bin/env python3

import argparse
import logging

import lorenzproto.config
import lorenzproto.internallink


class Positives(object):
    def __init__(self, type='integer', zero=False):
        self.type = type
        self.zero = zero
        if self.zero:
            self.desc = 'non-negative'
        else:
            self.desc = 'positive'

    def __eq__(self, other):
        if self.zero:
            return other >= 0
        else:
            return other > 0

    def __str__(self):
        return '%s %s' % (self.desc, self.type)

    def __repr__(self):
        return '%s %ss' % (self.desc, self.type)


if __name__ == '__main__':
    parser = argparse.ArgumentParser()

    parser.add_argument(
        'messages',
        nargs='+',
        help="Messages to send, one per synchronization.")

    parser.add_argument(
        '-k', '--sync-threshold',
        type=int,
        help="Consecutive matching ticks required to declare sync.",
        default=100,
        choices=[Positives()])

    parser.add_argument(
        '-e', '--perturbation',
        type=float,
        help="Amount added to x between messages.",
        default=1e-6,
        choices=[Positives('float')])

    parser.add_argument(
        '-v', '--verbose',
        help="Log state transitions.",
        action='store_true'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s %(threadName)s %(name)s: %(message)s')

    config = lorenzproto.config.SessionConfig(
        sync_threshold=args.sync_threshold,
        perturbation=args.perturbation,
        poll_interval=0)

    link = lorenzproto.internallink.InternalLink(args.messages, config=config)
    ciphertexts, plaintexts = link.run_proto()

    session = link.responder.session
    print("rho = %r, sigma = %r" % (session.parameters.rho,
                                    session.parameters.sigma))
    for ciphertext, plaintext in zip(ciphertexts, plaintexts):
        print("%s -> %s" % (ciphertext, plaintext.decode('utf-8', errors='replace')))
