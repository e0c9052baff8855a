"""
Unit tests for token extraction from refresh responses.

Run tests with: python -m pytest tests/test_token_extraction.py -v
"""

import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoload.token_extraction import extract_token_update, tokens_from_body, tokens_from_headers


class TestHeaderTokens:
    """Tokens carried by cookies and custom headers."""

    def test_set_cookie_tokens(self, http_response):
        response = http_response(set_cookies=[
            "Authorization=new-access; Path=/; HttpOnly",
            "RefreshToken=new-refresh; Path=/; HttpOnly",
        ])

        assert tokens_from_headers(response) == {
            "AccessToken": "new-access",
            "RefreshToken": "new-refresh",
        }

    def test_folded_set_cookie_header(self, http_response):
        response = http_response(set_cookies=[
            "Authorization=a1; Path=/, RefreshToken=r1; Path=/",
        ])

        assert tokens_from_headers(response) == {"AccessToken": "a1", "RefreshToken": "r1"}

    def test_unrelated_cookie_ignored(self, http_response):
        response = http_response(set_cookies=["XAuthorization=nope; Path=/", "_ga=GA1.1"])

        assert tokens_from_headers(response) == {}

    def test_bearer_prefix_stripped(self, http_response):
        response = http_response(headers={"Authorization": "Bearer header-access"})

        assert tokens_from_headers(response) == {"AccessToken": "header-access"}

    def test_x_headers(self, http_response):
        response = http_response(headers={"X-Access-Token": "xa", "X-Refresh-Token": "xr"})

        assert tokens_from_headers(response) == {"AccessToken": "xa", "RefreshToken": "xr"}

    def test_x_access_token_overrides_cookie(self, http_response):
        response = http_response(
            headers={"X-Access-Token": "from-header"},
            set_cookies=["Authorization=from-cookie; Path=/"],
        )

        assert tokens_from_headers(response)["AccessToken"] == "from-header"


class TestBodyTokens:
    """Tokens carried by the JSON body."""

    def test_body_fields(self, http_response):
        response = http_response(body={"AccessToken": "ba", "RefreshToken": "br", "Amount": 150})

        assert tokens_from_body(response) == {"AccessToken": "ba", "RefreshToken": "br", "Amount": 150}

    def test_non_object_body_ignored(self, http_response):
        assert tokens_from_body(http_response(body="OK")) == {}
        assert tokens_from_body(http_response(body=["AccessToken"])) == {}
        assert tokens_from_body(http_response(body=None)) == {}

    def test_empty_token_values_ignored(self, http_response):
        response = http_response(body={"AccessToken": "", "RefreshToken": None})

        assert tokens_from_body(response) == {}


class TestExtractTokenUpdate:
    """Merging header and body values."""

    def test_header_value_wins_over_body(self, http_response):
        response = http_response(
            headers={"X-Access-Token": "H1"},
            body={"AccessToken": "B1", "RefreshToken": "B2"},
        )

        updates, counts = extract_token_update(response)

        assert updates == {"AccessToken": "H1", "RefreshToken": "B2"}
        assert counts == {"headers": 1, "body": 2}

    def test_nothing_to_extract(self, http_response):
        updates, counts = extract_token_update(http_response(body={"success": True}))

        assert updates == {}
        assert counts == {"headers": 0, "body": 0}
