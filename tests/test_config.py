"""Tests for config file loading and TesterConfig precedence."""

import json
import os

import pytest

from args import parse_args
from cli_config import load_config_file
from common.errors import TesterError
from constants import Constants, Selection
from tester.config import TesterConfig


class TestLoadConfigFile:
    def test_no_path(self):
        assert load_config_file(None) == {}

    def test_yaml_tester_section(self, tmp_path):
        path = tmp_path / "typestest.yml"
        path.write_text("tester:\n  n_processes: 3\n  base_branch: main\nother:\n  x: 1\n")
        assert load_config_file(str(path)) == {"n_processes": 3, "base_branch": "main"}

    def test_yaml_without_section(self, tmp_path):
        path = tmp_path / "typestest.yaml"
        path.write_text("job_timeout: 30\n")
        assert load_config_file(str(path)) == {"job_timeout": 30}

    def test_json(self, tmp_path):
        path = tmp_path / "typestest.json"
        path.write_text(json.dumps({"tester": {"skip_install": True}}))
        assert load_config_file(str(path)) == {"skip_install": True}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_config_file(str(path)) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(TesterError, match="not found"):
            load_config_file(str(tmp_path / "missing.yml"))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(TesterError, match="mapping"):
            load_config_file(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("tester: [unclosed\n")
        with pytest.raises(TesterError):
            load_config_file(str(path))


class TestTesterConfig:
    def test_defaults(self):
        cfg = TesterConfig()
        assert cfg.selection is Selection.AFFECTED
        assert cfg.worker_command == Constants.WORKER_COMMAND
        assert cfg.types_path == os.path.join(Constants.DEFAULT_DEFINITELY_TYPED_PATH, "types")
        assert cfg.types_data_file.endswith(Constants.TYPES_DATA_FILE)
        assert cfg.not_needed_file.endswith(Constants.NOT_NEEDED_FILE)

    def test_from_mapping(self):
        cfg = TesterConfig.from_mapping({
            "n_processes": "4",
            "worker_command": "node dtslint.js",
            "selection": "all",
            "job_timeout": 90,
            "unknown": 1,
        })
        assert cfg.n_processes == 4
        assert cfg.worker_command == ["node", "dtslint.js"]
        assert cfg.selection is Selection.ALL
        assert cfg.job_timeout == 90.0

    def test_invalid_values(self):
        with pytest.raises(TesterError):
            TesterConfig.from_mapping({"n_processes": 0})
        with pytest.raises(TesterError):
            TesterConfig.from_mapping({"selection": "everything"})
        with pytest.raises(TesterError):
            TesterConfig.from_mapping({"worker_command": 5})

    def test_invalid_pattern(self):
        with pytest.raises(TesterError, match="pattern"):
            TesterConfig(pattern="(")

    @pytest.mark.parametrize("selection", [Selection.ALL, Selection.CHANGED])
    def test_pattern_with_other_selection(self, selection):
        with pytest.raises(TesterError, match="cannot be combined"):
            TesterConfig(pattern="^react", selection=selection)

    def test_cli_pattern_against_file_selection(self):
        with pytest.raises(TesterError, match="cannot be combined"):
            TesterConfig.from_args(parse_args(["^react"]), {"selection": "all"})

    def test_cli_overrides_file(self):
        args = parse_args(["-n", "6", "--base-branch", "main", "--definitely-typed-path", "/src/dt"])
        cfg = TesterConfig.from_args(args, {"n_processes": 2, "base_branch": "dev", "install_concurrency": 9})
        assert cfg.n_processes == 6
        assert cfg.base_branch == "main"
        assert cfg.install_concurrency == 9
        assert cfg.definitely_typed_path == "/src/dt"
        assert cfg.types_path == os.path.join("/src/dt", "types")

    def test_run_from_definitely_typed_uses_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg = TesterConfig.from_args(parse_args(["--run-from-definitely-typed"]))
        assert cfg.definitely_typed_path == os.getcwd()

    def test_selection_flags(self):
        assert TesterConfig.from_args(parse_args(["--all"])).selection is Selection.ALL
        assert TesterConfig.from_args(parse_args(["--changed-only"])).selection is Selection.CHANGED
        cfg = TesterConfig.from_args(parse_args(["^react"]))
        assert cfg.pattern == "^react"

    def test_worker_command_split(self):
        cfg = TesterConfig.from_args(parse_args(["--worker-command", "node ./bin/checker --quiet"]))
        assert cfg.worker_command == ["node", "./bin/checker", "--quiet"]
