"""Error taxonomy for a test run.

Every fatal condition raised by the library derives from TesterError so the
CLI can map it to an exit code. A failing verification job is not an
exception: it is recorded as a JobResult and reported at the end.
"""

from constants import ExitCodes


class TesterError(Exception):
    """Base class for fatal run errors."""

    exit_code = ExitCodes.FILE_ERROR


class ConsistencyError(TesterError):
    """Catalog and removal data contradict each other."""

    exit_code = ExitCodes.CONSISTENCY_ERROR


class ResolutionError(TesterError):
    """A package or dependency references an unknown package or version."""

    exit_code = ExitCodes.RESOLUTION_ERROR


class PackageNotFoundError(ResolutionError):
    """No catalog entry exists for the requested package id."""

    def __init__(self, package_id, message=None):
        self.package_id = package_id
        super().__init__(message or f"No typings available for {package_id}")


class ProcessSetupError(TesterError):
    """A worker or install command could not be started or completed."""

    exit_code = ExitCodes.PROCESS_SETUP_ERROR


class TransientIOError(TesterError):
    """Network access failed after the collaborator exhausted its retries."""

    exit_code = ExitCodes.CONNECTION_ERROR


class DiffSourceError(TesterError):
    """The version-control diff could not be produced or read."""

    exit_code = ExitCodes.FILE_ERROR
