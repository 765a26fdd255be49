"""Argument parsing functionality for typestest."""

import argparse
from constants import Constants

def _positive_int(value):
    try:
        number = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected a number, got {value!r}") from e
    if number < 1:
        raise argparse.ArgumentTypeError("Must be at least 1")
    return number


def _positive_float(value):
    try:
        number = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected a number, got {value!r}") from e
    if number <= 0:
        raise argparse.ArgumentTypeError("Must be positive")
    return number


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="typestest",
        description=(
            "typestest - re-test the packages affected by a change, on a pool of worker processes"
        ),
        add_help=True,
    )

    parser.add_argument("PATTERN",
                        help="Test every package whose name matches this regular expression",
                        nargs="?",
                        default=None)

    selection_group = parser.add_mutually_exclusive_group()
    selection_group.add_argument("--all",
                        dest="ALL",
                        help="Test every package",
                        action="store_true")
    selection_group.add_argument("--changed-only",
                        dest="CHANGED_ONLY",
                        help="Test changed packages but not their dependents",
                        action="store_true")
    selection_group.add_argument("--affected-only",
                        dest="AFFECTED_ONLY",
                        help="Print the changed and dependent packages, then exit",
                        action="store_true")

    parser.add_argument("-n", "--nprocesses",
                        dest="NPROCESSES",
                        help=f"Number of worker processes (default: {Constants.DEFAULT_PROCESSES})",
                        action="store",
                        type=_positive_int)
    parser.add_argument("--install-concurrency",
                        dest="INSTALL_CONCURRENCY",
                        help=f"Parallel npm installs (default: {Constants.DEFAULT_INSTALL_CONCURRENCY})",
                        action="store",
                        type=_positive_int)

    source_group = parser.add_mutually_exclusive_group()
    source_group.add_argument("--run-from-definitely-typed",
                        dest="RUN_FROM_DEFINITELY_TYPED",
                        help="Use the current directory as the source tree",
                        action="store_true")
    source_group.add_argument("--definitely-typed-path",
                        dest="DEFINITELY_TYPED_PATH",
                        help=f"Path to the source tree (default: {Constants.DEFAULT_DEFINITELY_TYPED_PATH})",
                        action="store",
                        type=str)
    parser.add_argument("--base-branch",
                        dest="BASE_BRANCH",
                        help=f"Branch to diff against (default: {Constants.SOURCE_BRANCH})",
                        action="store",
                        type=str)
    parser.add_argument("--types-data",
                        dest="TYPES_DATA",
                        help=f"Path to {Constants.TYPES_DATA_FILE} (default: inside the source tree)",
                        action="store",
                        type=str)
    parser.add_argument("--npm-cache-file",
                        dest="NPM_CACHE_FILE",
                        help="JSON file caching npm registry lookups between runs",
                        action="store",
                        type=str)

    parser.add_argument("--worker-command",
                        dest="WORKER_COMMAND",
                        help=f"Checker command started with {Constants.LISTEN_FLAG} (default: {' '.join(Constants.WORKER_COMMAND)})",
                        action="store",
                        type=str)
    parser.add_argument("--job-timeout",
                        dest="JOB_TIMEOUT",
                        help="Seconds before a single job is failed and its worker killed",
                        action="store",
                        type=_positive_float)
    parser.add_argument("--skip-registry-check",
                        dest="SKIP_REGISTRY_CHECK",
                        help="Do not consult the npm registry when validating removed packages",
                        action="store_true")
    parser.add_argument("--skip-install",
                        dest="SKIP_INSTALL",
                        help="Do not run npm install before testing",
                        action="store_true")

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    args = parser.parse_args(argv)
    if args.PATTERN is not None and (args.ALL or args.CHANGED_ONLY):
        parser.error("PATTERN cannot be combined with --all or --changed-only")
    return args
