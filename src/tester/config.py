"""Run configuration: constants defaults, then the config file, then CLI flags."""

from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from common.errors import TesterError
from constants import Constants, Selection

logger = logging.getLogger(__name__)


def _command_list(value: Any, key: str) -> List[str]:
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    raise TesterError(f"'{key}' must be a string or a list of strings")


@dataclass
class TesterConfig:
    """Everything a run needs; built once and passed to the orchestrator."""

    definitely_typed_path: str = Constants.DEFAULT_DEFINITELY_TYPED_PATH
    base_branch: str = Constants.SOURCE_BRANCH
    selection: Selection = Selection.AFFECTED
    pattern: Optional[str] = None
    n_processes: int = Constants.DEFAULT_PROCESSES
    install_concurrency: int = Constants.DEFAULT_INSTALL_CONCURRENCY
    worker_command: List[str] = field(default_factory=lambda: list(Constants.WORKER_COMMAND))
    job_timeout: Optional[float] = None
    skip_registry_check: bool = False
    skip_install: bool = False
    npm_command: str = Constants.NPM_COMMAND
    npm_install_flags: List[str] = field(default_factory=lambda: list(Constants.NPM_INSTALL_FLAGS))
    post_install_command: Optional[List[str]] = Constants.POST_INSTALL_COMMAND
    registry_url: str = Constants.REGISTRY_URL_NPM
    npm_cache_file: Optional[str] = None
    types_data_path: Optional[str] = None
    not_needed_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.n_processes < 1:
            raise TesterError("n_processes must be at least 1")
        if self.install_concurrency < 1:
            raise TesterError("install_concurrency must be at least 1")
        if self.job_timeout is not None and self.job_timeout <= 0:
            raise TesterError("job_timeout must be positive")
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise TesterError(f"Invalid package pattern {self.pattern!r}: {e}") from e
            if self.selection is not Selection.AFFECTED:
                raise TesterError(
                    f"A package pattern cannot be combined with selection '{self.selection.value}'"
                )

    @property
    def types_path(self) -> str:
        """Directory holding one sub-directory per package; the workers' cwd."""
        return os.path.join(self.definitely_typed_path, Constants.TYPES_DIRECTORY_NAME)

    @property
    def types_data_file(self) -> str:
        return self.types_data_path or os.path.join(self.definitely_typed_path, Constants.TYPES_DATA_FILE)

    @property
    def not_needed_file(self) -> str:
        return self.not_needed_path or os.path.join(self.definitely_typed_path, Constants.NOT_NEEDED_FILE)

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "TesterConfig":
        """Build from a config-file mapping. Unknown keys are ignored with a warning."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key: %s", key)
                continue
            if value is None:
                continue
            kwargs[key] = value
        try:
            if "selection" in kwargs:
                kwargs["selection"] = Selection(kwargs["selection"])
            for key in ("worker_command", "npm_install_flags", "post_install_command"):
                if key in kwargs:
                    kwargs[key] = _command_list(kwargs[key], key)
            for key in ("n_processes", "install_concurrency"):
                if key in kwargs:
                    kwargs[key] = int(kwargs[key])
            if "job_timeout" in kwargs:
                kwargs["job_timeout"] = float(kwargs["job_timeout"])
        except (TypeError, ValueError) as e:
            raise TesterError(f"Invalid config value: {e}") from e
        return cls(**kwargs)

    @classmethod
    def from_args(cls, args: Any, file_config: Optional[Dict[str, Any]] = None) -> "TesterConfig":
        """Create config from parsed CLI arguments over an optional file mapping.

        Args:
            args: Parsed CLI arguments namespace.
            file_config: Mapping returned by ``cli_config.load_config_file``.
        """
        config = cls.from_mapping(file_config or {})

        if getattr(args, "RUN_FROM_DEFINITELY_TYPED", False):
            config.definitely_typed_path = os.getcwd()
        elif getattr(args, "DEFINITELY_TYPED_PATH", None):
            config.definitely_typed_path = args.DEFINITELY_TYPED_PATH

        if getattr(args, "ALL", False):
            config.selection = Selection.ALL
        elif getattr(args, "CHANGED_ONLY", False):
            config.selection = Selection.CHANGED
        if getattr(args, "PATTERN", None):
            config.pattern = args.PATTERN

        if getattr(args, "BASE_BRANCH", None):
            config.base_branch = args.BASE_BRANCH
        if getattr(args, "NPROCESSES", None) is not None:
            config.n_processes = args.NPROCESSES
        if getattr(args, "INSTALL_CONCURRENCY", None) is not None:
            config.install_concurrency = args.INSTALL_CONCURRENCY
        if getattr(args, "WORKER_COMMAND", None):
            config.worker_command = _command_list(args.WORKER_COMMAND, "--worker-command")
        if getattr(args, "JOB_TIMEOUT", None) is not None:
            config.job_timeout = args.JOB_TIMEOUT
        if getattr(args, "SKIP_REGISTRY_CHECK", False):
            config.skip_registry_check = True
        if getattr(args, "SKIP_INSTALL", False):
            config.skip_install = True
        if getattr(args, "TYPES_DATA", None):
            config.types_data_path = args.TYPES_DATA
        if getattr(args, "NPM_CACHE_FILE", None):
            config.npm_cache_file = args.NPM_CACHE_FILE

        # Re-run validation for values set after construction.
        config.__post_init__()
        return config
