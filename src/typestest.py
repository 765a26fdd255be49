"""typestest - re-test the packages affected by a change.

    Returns:
        int: Exit code
"""
import os
import sys
import logging

from args import parse_args
from cli_config import load_config_file
from common.errors import TesterError
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes
from tester.config import TesterConfig
from tester.orchestrator import TestOrchestrator

logger = logging.getLogger(__name__)


def _setup_logging(args):
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.LOG_LEVEL_ENV] = str(args.LOG_LEVEL).upper()
    configure_logging()
    level = getattr(logging, str(args.LOG_LEVEL).upper(), logging.INFO)
    logging.getLogger().setLevel(level)
    if getattr(args, "LOG_FILE", None):
        handler = logging.FileHandler(args.LOG_FILE, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s " + Constants.LOG_FORMAT))
        logging.getLogger().addHandler(handler)


def _exit(code):
    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action="main", outcome=code.name.lower())
        )
    sys.exit(code.value)


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    orchestrator = None
    try:
        config = TesterConfig.from_args(args, load_config_file(getattr(args, "CONFIG", None)))
        orchestrator = TestOrchestrator(config)
        if args.AFFECTED_ONLY:
            affected = orchestrator.affected_only()
            print("Changed packages: " + ", ".join(r.desc for r in affected.changed_packages))
            print(f"Dependent packages: {len(affected.dependent_packages)}")
            for record in affected.dependent_packages:
                print(f"  {record.desc}")
            _exit(ExitCodes.SUCCESS)
        report = orchestrator.run()
    except TesterError as e:
        logger.error("%s", e)
        _exit(e.exit_code)
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        if orchestrator is not None:
            orchestrator.stop()
        _exit(ExitCodes.INTERRUPTED)

    if not report.ok:
        sys.stderr.write(report.format_failures() + "\n")
        _exit(ExitCodes.TEST_FAILURES)
    logger.info("All %d packages passed.", len(report.results))
    _exit(ExitCodes.SUCCESS)


if __name__ == "__main__":
    main()
