#!/usr/bin/env python3
"""
Selective Repeat Node - Main Entry Point

Starts one node that sends and receives over UDP on the local host.
Type `send <message>` to transfer a message to the peer node; protocol
events are traced on stdout, diagnostics go to stderr.

Usage:
    python main.py 4000 4001 5 500 0.1
    python main.py 4001 4000 5 500 0.1 --seed 7 --verbose
"""

import argparse
import sys
import threading
from typing import Tuple

from config import (
    USAGE, DEFAULT_HOST, DEFAULT_SEGMENT_SIZE, CODECS, CODEC_TEXT,
    LOSS_MODELS, LOSS_MODEL_BERNOULLI, LOSS_APPLIES_TO
)
from srnode.exceptions import ConfigurationError
from srnode.node import Node, NodeConfig
from srnode.utils.logger import NodeLogger, LogLevel, set_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="SRNode",
        usage=USAGE + " [options]",
        description="Selective Repeat ARQ node over UDP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Two nodes talking to each other (run in two terminals):
    python main.py 4000 4001 5 500 0.1
    python main.py 4001 4000 5 500 0.1

  Then, in either terminal:
    send hello world

  Reproducible loss, burst model, ACKs only:
    python main.py 4000 4001 5 500 0.3 --seed 1 --loss-model burst --loss-applies-to ack
        """
    )

    parser.add_argument('local_port', type=int, metavar='source-port',
                        help='UDP port this node binds')
    parser.add_argument('remote_port', type=int, metavar='destination-port',
                        help='UDP port of the peer node')
    parser.add_argument('window_size', type=int, metavar='window-size',
                        help='Send and receive window size')
    parser.add_argument('timeout_ms', type=int, metavar='time-out',
                        help='Retransmission timeout in milliseconds')
    parser.add_argument('loss_rate', type=float, metavar='loss-rate',
                        help='Probability in [0, 1] of dropping an inbound datagram')

    # Loss options
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for the loss model (default: random)')
    parser.add_argument('--loss-model', choices=LOSS_MODELS, default=LOSS_MODEL_BERNOULLI,
                        help=f'Loss model (default: {LOSS_MODEL_BERNOULLI})')
    parser.add_argument('--loss-applies-to', choices=LOSS_APPLIES_TO, default="both",
                        help='Inbound frame kinds subject to loss (default: both)')

    # Wire options
    parser.add_argument('--codec', choices=CODECS, default=CODEC_TEXT,
                        help=f'Wire format (default: {CODEC_TEXT})')
    parser.add_argument('--segment-size', type=int, default=DEFAULT_SEGMENT_SIZE,
                        help=f'Characters per packet (default: {DEFAULT_SEGMENT_SIZE})')
    parser.add_argument('--host', default=DEFAULT_HOST,
                        help=f'Host both nodes run on (default: {DEFAULT_HOST})')

    # Output options
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Debug diagnostics on stderr')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Mirror traces and diagnostics to a file')

    return parser


def parse_config(parser: argparse.ArgumentParser, argv=None) -> Tuple[NodeConfig, argparse.Namespace]:
    """Parse and validate arguments; exits with status 2 on any violation."""
    args = parser.parse_args(argv)

    config = NodeConfig(
        local_port=args.local_port,
        remote_port=args.remote_port,
        window_size=args.window_size,
        timeout_ms=args.timeout_ms,
        loss_rate=args.loss_rate,
        host=args.host,
        seed=args.seed,
        loss_model=args.loss_model,
        loss_applies_to=args.loss_applies_to,
        codec=args.codec,
        segment_size=args.segment_size
    )
    try:
        config.validate()
    except ConfigurationError as e:
        parser.error(str(e))

    return config, args


def main(argv=None) -> int:
    parser = build_parser()
    config, args = parse_config(parser, argv)

    logger = NodeLogger(
        name=f"SRNode:{config.local_port}",
        level=LogLevel.DEBUG if args.verbose else LogLevel.WARNING,
        log_file=args.log_file,
        use_colors=sys.stderr.isatty()
    )
    set_logger(logger)

    try:
        node = Node(config, logger=logger)
    except OSError as e:
        logger.critical(f"Cannot bind {config.host}:{config.local_port}: {e}", "NODE")
        return 1

    node.start()
    try:
        node.run_console(sys.stdin)
        # Keep answering the peer and retransmitting until interrupted
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        node.stop()
        logger.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
