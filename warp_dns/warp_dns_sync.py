#!/usr/local/bin/python3
"""
WARP device DNS Sync

Processes a single Cloudflare Logpush batch from the command line. The batch
is a gzip-compressed file of newline-delimited JSON records carrying
``DeviceID`` and ``DeviceName``. Every device is looked up in the WARP device
directory and its A record in the configured zone is created, updated or left
alone so that ``<DeviceName>.<DOMAIN_SUFFIX>`` resolves to the device's
current address.

Configuration is managed entirely through environment variables. The action
log is printed to stdout as JSON.
"""

import argparse
import json
import sys

import structlog

from .logging_config import configure_logging
from .sync_logic import process_logpush_batch

log = structlog.get_logger()


def _parse_args(argv):
    parser = argparse.ArgumentParser(description="Reconcile DNS records from a Logpush batch")
    parser.add_argument(
        "batch",
        nargs="?",
        default="-",
        help="Path to a gzip-compressed NDJSON batch, or '-' for stdin (default)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging()

    try:
        if args.batch == "-":
            body = sys.stdin.buffer.read()
        else:
            with open(args.batch, "rb") as f:
                body = f.read()
        actions = process_logpush_batch(body)
    except Exception:
        log.critical("An unhandled exception occurred in main", exc_info=True)
        return 1

    print(json.dumps(actions, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
