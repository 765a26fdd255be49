"""Test-run orchestration."""

from .config import TesterConfig
from .install import DependencyInstaller
from .orchestrator import RunReport, RunState, TestOrchestrator

__all__ = ["DependencyInstaller", "RunReport", "RunState", "TestOrchestrator", "TesterConfig"]
