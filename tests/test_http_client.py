"""Tests for the shared HTTP helpers."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from common import http_client
from common.http_client import get_json, robust_get


def _response(status, text="", headers=None):
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.headers = headers or {}
    return resp


@pytest.fixture(autouse=True)
def _no_sleep_and_clean_cache():
    http_client.clear_cache()
    with patch("common.http_client.time.sleep"):
        yield
    http_client.clear_cache()


class TestRobustGet:
    def test_success_is_cached(self):
        with patch("common.http_client.requests.get", return_value=_response(200, "{}")) as mock_get:
            assert robust_get("https://r.example/a")[0] == 200
            assert robust_get("https://r.example/a")[0] == 200
        assert mock_get.call_count == 1

    def test_retries_transport_errors(self):
        side_effect = [requests.ConnectionError("down"), _response(200, "ok")]
        with patch("common.http_client.requests.get", side_effect=side_effect) as mock_get:
            status, _, text = robust_get("https://r.example/b")
        assert (status, text) == (200, "ok")
        assert mock_get.call_count == 2

    def test_exhausted_retries(self):
        with patch("common.http_client.requests.get", side_effect=requests.Timeout()):
            status, headers, text = robust_get("https://r.example/c")
        assert status == 0
        assert headers == {}
        assert "timeout" in text

    def test_server_errors_retried_then_returned(self):
        with patch("common.http_client.requests.get", return_value=_response(503, "busy")) as mock_get:
            status, _, _ = robust_get("https://r.example/d")
        assert status == 503
        assert mock_get.call_count == http_client.Constants.HTTP_RETRY_MAX

    def test_cache_expires(self):
        with patch("common.http_client.requests.get", return_value=_response(200, "{}")) as mock_get:
            with patch("common.http_client.time.time", return_value=1000.0):
                robust_get("https://r.example/ttl")
            later = 1000.0 + http_client.Constants.HTTP_CACHE_TTL_SEC
            with patch("common.http_client.time.time", return_value=later):
                robust_get("https://r.example/ttl")
        assert mock_get.call_count == 2

    def test_headers_are_part_of_cache_key(self):
        with patch("common.http_client.requests.get", return_value=_response(200, "{}")) as mock_get:
            robust_get("https://r.example/h", headers={"Accept": "application/json"})
            robust_get("https://r.example/h")
        assert mock_get.call_count == 2
        assert mock_get.call_args_list[0].kwargs["headers"] == {"Accept": "application/json"}

    def test_not_found_not_retried(self):
        with patch("common.http_client.requests.get", return_value=_response(404)) as mock_get:
            assert robust_get("https://r.example/e")[0] == 404
        assert mock_get.call_count == 1


class TestGetJson:
    def test_parses(self):
        with patch("common.http_client.requests.get", return_value=_response(200, '{"a": 1}')):
            assert get_json("https://r.example/f")[2] == {"a": 1}

    def test_invalid_json(self):
        with patch("common.http_client.requests.get", return_value=_response(200, "<html>")):
            assert get_json("https://r.example/g") == (200, {}, None)

    def test_non_200(self):
        with patch("common.http_client.requests.get", return_value=_response(404, '{"error": "Not found"}')):
            assert get_json("https://r.example/h")[0] == 404
