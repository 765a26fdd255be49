"""Constants used in the project."""

import os
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    TEST_FAILURES = 3
    CONSISTENCY_ERROR = 4
    RESOLUTION_ERROR = 5
    PROCESS_SETUP_ERROR = 6
    INTERRUPTED = 130


class Selection(Enum):
    """Which packages a run verifies.

    Args:
        Enum (string): Named selections; a regex pattern is the fourth form.
    """

    AFFECTED = "affected"
    CHANGED = "changed"
    ALL = "all"


class DiffStatus(Enum):
    """File statuses understood from `git diff --name-status`."""

    ADDED = "A"
    DELETED = "D"
    MODIFIED = "M"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration defaults; not intended to provide behavior.
    """

    TYPES_DIRECTORY_NAME = "types"
    SOURCE_BRANCH = "master"
    DEFAULT_DEFINITELY_TYPED_PATH = "../DefinitelyTyped"
    SCOPE_NAME = "types"
    TYPES_DATA_FILE = "definitions.json"
    NOT_NEEDED_FILE = "notNeededPackages.json"
    PACKAGE_JSON_FILE = "package.json"
    MAJOR_VERSION_DIR_PATTERN = r"^v(\d+)$"

    # Token a worker emits for a passing job; anything else is a diagnostic.
    SUCCESS_STATUS = "OK"
    WORKER_COMMAND = ["dtslint"]
    LISTEN_FLAG = "--listen"
    WORKER_STREAM_LIMIT = 16 * 1024 * 1024
    WORKER_SHUTDOWN_GRACE_SEC = 5.0
    STDERR_TAIL_LINES = 40

    NPM_COMMAND = "npm"
    NPM_INSTALL_FLAGS = [
        "--ignore-scripts",
        "--no-shrinkwrap",
        "--no-package-lock",
        "--no-bin-links",
        "--no-save",
        "--fetch-retries=3",
    ]
    POST_INSTALL_COMMAND = None
    DEFAULT_PROCESSES = os.cpu_count() or 1
    DEFAULT_INSTALL_CONCURRENCY = 4

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "TYPESTEST_LOG_LEVEL"
    CONFIG_SECTION = "tester"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300
