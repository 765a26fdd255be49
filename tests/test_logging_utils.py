"""Tests for logging helpers."""

import logging

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url


def test_extra_context_prefixes_unknown_keys():
    ctx = extra_context(event="x", component="c", edges=3, outcome=None)
    assert ctx == {"event": "x", "component": "c", "ctx_edges": 3}


def test_is_debug_enabled():
    logger = logging.getLogger("typestest.test.debug")
    logger.setLevel(logging.DEBUG)
    assert is_debug_enabled(logger)
    logger.setLevel(logging.INFO)
    assert not is_debug_enabled(logger)


def test_safe_url_masks_credentials():
    url = "https://user:pw@registry.example/pkg?token=abc&x=1"
    masked = safe_url(url)
    assert "pw" not in masked
    assert "abc" not in masked
    assert "x=1" in masked


def test_timer():
    with Timer() as t:
        pass
    assert t.duration_ms() >= 0
