import os
import sys
import pytest
import requests
from unittest.mock import patch, MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from scripts.tot.fallback import FallbackHandler


def _response(status, text=""):
    r = MagicMock()
    r.status_code = status
    r.text = text
    return r


@pytest.fixture
def handler():
    return FallbackHandler("http://gcs.test/logs/{key}/latest-build.txt", attempts=3, delay=0)


def test_reads_latest_build(handler):
    with patch("requests.get", return_value=_response(200, "1234\n")) as mock_get:
        assert handler("ci-job") == 1234
    assert mock_get.call_args[0][0] == "http://gcs.test/logs/ci-job/latest-build.txt"


def test_not_found_means_zero_without_retry(handler):
    with patch("requests.get", return_value=_response(404)) as mock_get:
        assert handler("ci-job") == 0
    assert mock_get.call_count == 1


def test_retries_transient_failures(handler):
    side_effect = [requests.ConnectionError("boom"), _response(503), _response(200, "7")]
    with patch("requests.get", side_effect=side_effect) as mock_get:
        assert handler("ci-job") == 7
    assert mock_get.call_count == 3


def test_gives_up_after_attempts(handler):
    with patch("requests.get", side_effect=requests.Timeout("slow")) as mock_get:
        assert handler("ci-job") == 0
    assert mock_get.call_count == 3


def test_garbage_body_is_zero(handler):
    with patch("requests.get", return_value=_response(200, "<html>")):
        assert handler("ci-job") == 0


def test_template_requires_placeholder():
    with pytest.raises(ValueError):
        FallbackHandler("http://gcs.test/latest-build.txt")


@pytest.mark.parametrize("template", [
    "http://gcs.test/{key}/{build}.txt",
    "http://gcs.test/{key}/{0}.txt",
    "http://gcs.test/{key}/{",
])
def test_template_with_unknown_fields_fails_early(template):
    with pytest.raises(ValueError):
        FallbackHandler(template)


def test_key_is_quoted_in_url(handler):
    with patch("requests.get", return_value=_response(404)) as mock_get:
        handler("pr/my job?x#y")
    assert mock_get.call_args[0][0] == "http://gcs.test/logs/pr/my%20job%3Fx%23y/latest-build.txt"
