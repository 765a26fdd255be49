"""Worker side of the job protocol, for checkers written in Python.

A checker is a callable ``check(path, strict)`` that returns None (or the
success token) when the package passes, or diagnostic text otherwise.
"""

import argparse
import json
import logging
import sys
import traceback
from typing import Callable, Optional, TextIO

from common.logging_utils import configure_logging
from constants import Constants

logger = logging.getLogger(__name__)

Checker = Callable[[str, bool], Optional[str]]


def serve_jobs(check: Checker, in_stream: TextIO = None, out_stream: TextIO = None) -> int:
    """Answer one result line per job line until ``in_stream`` closes.

    Returns the number of jobs served.
    """
    in_stream = in_stream or sys.stdin
    out_stream = out_stream or sys.stdout
    served = 0
    for line in in_stream:
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed job line: %s", line)
            continue
        if not isinstance(message, dict) or "path" not in message:
            logger.warning("Ignoring job without a path: %s", line)
            continue
        path = message["path"]
        strict = bool(message.get("strict", True))
        try:
            status = check(path, strict)
        except Exception:  # pylint: disable=broad-exception-caught
            # The checker's failure is this job's diagnostic.
            status = traceback.format_exc()
        if status is None:
            status = Constants.SUCCESS_STATUS
        out_stream.write(json.dumps({"path": path, "status": status}) + "\n")
        out_stream.flush()
        served += 1
    return served


def listen_main(check: Checker, argv=None) -> int:
    """Entry point for a checker script started by the scheduler."""
    parser = argparse.ArgumentParser(description="Serve verification jobs over stdin/stdout.")
    parser.add_argument(Constants.LISTEN_FLAG,
                        dest="LISTEN",
                        help="Read jobs from stdin and write results to stdout",
                        action="store_true")
    args = parser.parse_args(argv)
    if not args.LISTEN:
        parser.error(f"only {Constants.LISTEN_FLAG} mode is supported")
    # stdout carries results; logs go to stderr.
    configure_logging()
    served = serve_jobs(check, sys.stdin, sys.stdout)
    logger.debug("Served %d jobs", served)
    return 0
