"""Tests for the platform HTTP client."""

from unittest.mock import MagicMock

import pytest
import requests

from content_sync.core.platform import (
    PlatformClient,
    PreconditionFailedError,
    RateLimitedError,
    RemoteApiError,
    TransientRemoteError,
)

from tests.helpers import make_definition

ARTICLE = {
    "key": "article",
    "name": "Article",
    "fields": [{"key": "title", "name": "Title", "type": "text"}],
}


def _response(status=200, json_data=None, headers=None):
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    response.content = b"{}" if json_data is not None else b""
    response.json.return_value = json_data
    return response


@pytest.fixture
def session():
    """Mock requests session."""
    mock = MagicMock()
    mock.headers = {}
    return mock


@pytest.fixture
def client(session):
    """Client using the mock session."""
    return PlatformClient(
        "https://cms.example.com/api/", token="secret", session=session
    )


class TestPlatformClient:
    """Test PlatformClient class."""

    def test_auth_header(self, client, session):
        """The bearer token is sent with every request."""
        assert session.headers["Authorization"] == "Bearer secret"
        assert client.base_url == "https://cms.example.com/api"

    def test_list_accepts_plain_list(self, client, session):
        """A bare list of definitions is accepted, etags included."""
        session.request.return_value = _response(
            json_data=[dict(ARTICLE, etag='"v1"')]
        )

        remote = client.list_content_types()

        assert [r.key for r in remote] == ["article"]
        assert remote[0].etag == '"v1"'
        session.request.assert_called_once_with(
            "GET", "https://cms.example.com/api/content-types", timeout=30.0
        )

    def test_list_accepts_items_envelope(self, client, session):
        """An items envelope is unwrapped."""
        session.request.return_value = _response(json_data={"items": [ARTICLE]})
        assert client.list_content_types()[0].definition.field_keys == ["title"]

    def test_get_missing_returns_none(self, client, session):
        """A 404 means the type does not exist."""
        session.request.return_value = _response(404, {"error": "not found"})
        assert client.get_content_type("article") is None

    def test_get_uses_etag_header(self, client, session):
        """The ETag header wins over the body."""
        session.request.return_value = _response(
            json_data=dict(ARTICLE, etag='"body"'), headers={"ETag": '"header"'}
        )
        remote = client.get_content_type("article")
        assert remote.etag == '"header"'

    def test_update_sends_if_match(self, client, session):
        """Updates are guarded by the etag."""
        session.request.return_value = _response(json_data={"id": 7})

        remote = client.update_content_type(
            "article", make_definition("article"), etag='"v1"'
        )

        args, kwargs = session.request.call_args
        assert args == ("PUT", "https://cms.example.com/api/content-types/article")
        assert kwargs["headers"] == {"If-Match": '"v1"'}
        assert kwargs["json"]["key"] == "article"
        assert remote.key == "article"

    def test_412_raises_precondition_failed(self, client, session):
        """A stale etag surfaces as PreconditionFailedError."""
        session.request.return_value = _response(412, {"error": "stale"})
        with pytest.raises(PreconditionFailedError) as exc_info:
            client.update_content_type("article", ARTICLE, etag='"old"')
        assert exc_info.value.status_code == 412
        assert exc_info.value.response_data == {"error": "stale"}

    def test_429_carries_retry_after(self, client, session):
        """Rate limiting reports the server's delay."""
        session.request.return_value = _response(
            429, headers={"Retry-After": "12"}
        )
        with pytest.raises(RateLimitedError) as exc_info:
            client.create_content_type(ARTICLE)
        assert exc_info.value.retry_after == 12.0

    def test_5xx_is_transient(self, client, session):
        """Server errors can be retried."""
        session.request.return_value = _response(503)
        with pytest.raises(TransientRemoteError):
            client.delete_content_type("article")

    def test_connection_error_is_transient(self, client, session):
        """Network failures can be retried."""
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TransientRemoteError):
            client.list_content_types()

    def test_4xx_is_plain_api_error(self, client, session):
        """Other client errors are not retryable."""
        session.request.return_value = _response(400, {"error": "bad"})
        with pytest.raises(RemoteApiError) as exc_info:
            client.create_content_type(ARTICLE)
        assert not isinstance(exc_info.value, TransientRemoteError)
        assert exc_info.value.status_code == 400

    def test_key_is_url_quoted(self, client, session):
        """Keys are escaped in the path."""
        session.request.return_value = _response()
        client.delete_content_type("blog/post")
        assert session.request.call_args[0][1].endswith("/content-types/blog%2Fpost")

    def test_connection_check(self, client, session):
        """The connection test reports failure instead of raising."""
        session.request.return_value = _response(json_data=[])
        assert client.test_connection() is True

        session.request.return_value = _response(401)
        assert client.test_connection() is False
