"""
Unit tests for the resilient HTTP client.

Covers the retry classification (2xx/3xx success, 4xx terminal, 5xx and
network errors retried), the exponential backoff sequence and the attempt
budget.

Run tests with: python -m pytest tests/test_http_client.py -v
"""

import os
import sys
import json
import pytest
import requests
from unittest.mock import MagicMock

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoload.exceptions import ClientError, RetriesExhaustedError, ServerOrNetworkError
from autoload.http_client import RequestDescriptor, ResilientHttpClient


def fake_response(status=200, json_body=None, text=None, headers=None, reason="OK"):
    """Stand-in for requests.Response."""
    response = MagicMock()
    response.status_code = status
    response.reason = reason
    response.headers = headers or {}
    response.raw = None
    if json_body is not None:
        response.text = json.dumps(json_body)
        response.json.return_value = json_body
    else:
        response.text = text or ""
        response.json.side_effect = ValueError("No JSON")
    return response


class TestResilientHttpClient:
    """Test suite for ResilientHttpClient.execute()."""

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def sleeps(self):
        return []

    @pytest.fixture
    def client(self, session, sleeps):
        return ResilientHttpClient(session=session, sleep=sleeps.append)

    @pytest.fixture
    def descriptor(self):
        return RequestDescriptor(
            method="post",
            url="https://api.example.test/Authentication/RefreshToken",
            headers={"Content-Type": "application/json"},
            json_body={"refreshToken": "abc"},
            timeout=12,
        )

    # === Success ===

    def test_success_on_first_attempt(self, client, session, sleeps, descriptor):
        session.request.return_value = fake_response(200, {"ok": True})

        response = client.execute(descriptor, max_attempts=3)

        assert response.status == 200
        assert response.body == {"ok": True}
        assert session.request.call_count == 1
        assert sleeps == []

    def test_request_arguments(self, client, session, descriptor):
        session.request.return_value = fake_response(204)

        client.execute(descriptor)

        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == descriptor.url
        assert kwargs["headers"] == {"Content-Type": "application/json"}
        assert kwargs["json"] == {"refreshToken": "abc"}
        assert kwargs["timeout"] == 12

    def test_redirect_status_is_success(self, client, session, descriptor):
        session.request.return_value = fake_response(302)

        assert client.execute(descriptor).status == 302

    def test_text_body_kept_when_not_json(self, client, session, descriptor):
        session.request.return_value = fake_response(200, text="plain")

        assert client.execute(descriptor).body == "plain"

    def test_empty_body_is_none(self, client, session, descriptor):
        session.request.return_value = fake_response(200)

        assert client.execute(descriptor).body is None

    def test_set_cookie_values_from_raw_headers(self, client, session, descriptor):
        response = fake_response(200)
        response.raw = MagicMock()
        response.raw.headers.getlist.return_value = ["Authorization=a1; Path=/", "RefreshToken=r1; Path=/"]
        session.request.return_value = response

        result = client.execute(descriptor)

        assert result.set_cookies == ["Authorization=a1; Path=/", "RefreshToken=r1; Path=/"]

    def test_headers_are_case_insensitive(self, client, session, descriptor):
        session.request.return_value = fake_response(200, headers={"X-Access-Token": "tok"})

        assert client.execute(descriptor).headers["x-access-token"] == "tok"

    # === Retry ===

    def test_server_errors_exhaust_attempts(self, client, session, sleeps, descriptor):
        session.request.return_value = fake_response(500, reason="Internal Server Error")

        with pytest.raises(RetriesExhaustedError) as exc_info:
            client.execute(descriptor, max_attempts=3)

        assert session.request.call_count == 3
        assert sleeps == [2, 4]
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_cause.status == 500
        assert "All 3 attempts failed" in str(exc_info.value)

    def test_backoff_doubles_per_attempt(self, client, session, sleeps, descriptor):
        session.request.return_value = fake_response(503)

        with pytest.raises(RetriesExhaustedError):
            client.execute(descriptor, max_attempts=5)

        assert session.request.call_count == 5
        assert sleeps == [2, 4, 8, 16]

    def test_recovers_after_server_error(self, client, session, sleeps, descriptor):
        session.request.side_effect = [fake_response(502), fake_response(200, {"ok": True})]

        response = client.execute(descriptor, max_attempts=3)

        assert response.status == 200
        assert session.request.call_count == 2
        assert sleeps == [2]

    def test_network_errors_are_retried(self, client, session, sleeps, descriptor):
        session.request.side_effect = [
            requests.exceptions.ConnectionError("refused"),
            requests.exceptions.Timeout("slow"),
            fake_response(200),
        ]

        response = client.execute(descriptor, max_attempts=3)

        assert response.status == 200
        assert sleeps == [2, 4]

    def test_timeout_exhaustion_keeps_last_cause(self, client, session, descriptor):
        session.request.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(RetriesExhaustedError) as exc_info:
            client.execute(descriptor, max_attempts=2)

        assert isinstance(exc_info.value.last_cause, ServerOrNetworkError)
        assert "timeout" in str(exc_info.value.last_cause).lower()

    def test_single_attempt_never_sleeps(self, client, session, sleeps, descriptor):
        session.request.return_value = fake_response(503)

        with pytest.raises(RetriesExhaustedError):
            client.execute(descriptor, max_attempts=1)

        assert session.request.call_count == 1
        assert sleeps == []

    # === Client errors ===

    def test_client_error_is_not_retried(self, client, session, sleeps, descriptor):
        session.request.return_value = fake_response(401, {"message": "expired"}, reason="Unauthorized")

        with pytest.raises(ClientError) as exc_info:
            client.execute(descriptor, max_attempts=3)

        assert session.request.call_count == 1
        assert sleeps == []
        assert exc_info.value.status == 401
        assert exc_info.value.body == {"message": "expired"}
        assert "HTTP 401: Unauthorized" in str(exc_info.value)

    def test_client_error_after_server_error(self, client, session, sleeps, descriptor):
        session.request.side_effect = [fake_response(500), fake_response(404, reason="Not Found")]

        with pytest.raises(ClientError):
            client.execute(descriptor, max_attempts=3)

        assert session.request.call_count == 2
        assert sleeps == [2]

    def test_zero_attempts_rejected(self, client, session, descriptor):
        with pytest.raises(ValueError):
            client.execute(descriptor, max_attempts=0)
        session.request.assert_not_called()

    # === Session ownership ===

    def test_injected_session_is_not_closed(self, session):
        with ResilientHttpClient(session=session):
            pass
        session.close.assert_not_called()


class TestRequestDescriptor:
    """Test suite for RequestDescriptor validation."""

    def test_method_is_uppercased(self):
        assert RequestDescriptor(method="patch", url="https://x").method == "PATCH"

    def test_duplicate_headers_rejected(self):
        with pytest.raises(ValueError):
            RequestDescriptor(
                method="GET",
                url="https://x",
                headers={"Authorization": "a", "authorization": "b"},
            )

    def test_headers_are_read_only(self):
        descriptor = RequestDescriptor(method="GET", url="https://x", headers={"Accept": "*/*"})

        assert descriptor.headers["accept"] == "*/*"
        with pytest.raises(TypeError):
            descriptor.headers["Accept"] = "text/html"

    def test_default_timeout(self):
        assert RequestDescriptor(method="GET", url="https://x").timeout == 30
