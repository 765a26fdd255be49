"""Tests for the worker-side listening loop."""

import io
import json

import pytest

from pool.worker import listen_main, serve_jobs


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestServeJobs:
    def test_answers_each_job(self):
        seen = []

        def check(path, strict):
            seen.append((path, strict))
            return None if path == "good" else f"{path} is broken"

        in_stream = io.StringIO(
            json.dumps({"path": "good", "strict": True}) + "\n"
            + json.dumps({"path": "bad", "strict": False}) + "\n"
        )
        out_stream = io.StringIO()
        assert serve_jobs(check, in_stream, out_stream) == 2
        assert seen == [("good", True), ("bad", False)]
        assert _lines(out_stream) == [
            {"path": "good", "status": "OK"},
            {"path": "bad", "status": "bad is broken"},
        ]

    def test_exception_becomes_diagnostic(self):
        def check(path, strict):
            raise RuntimeError("type checker blew up")

        out_stream = io.StringIO()
        serve_jobs(check, io.StringIO('{"path": "a"}\n'), out_stream)
        [reply] = _lines(out_stream)
        assert reply["path"] == "a"
        assert "RuntimeError: type checker blew up" in reply["status"]

    def test_skips_malformed_lines(self):
        out_stream = io.StringIO()
        served = serve_jobs(lambda p, s: None, io.StringIO('\nnot json\n[1, 2]\n{"path": "x"}\n'), out_stream)
        assert served == 1
        assert _lines(out_stream) == [{"path": "x", "status": "OK"}]

    def test_strict_defaults_true(self):
        seen = []
        serve_jobs(lambda p, s: seen.append(s), io.StringIO('{"path": "x"}\n'), io.StringIO())
        assert seen == [True]


class TestListenMain:
    def test_requires_listen_flag(self):
        with pytest.raises(SystemExit):
            listen_main(lambda p, s: None, [])
