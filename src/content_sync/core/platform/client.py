"""HTTP client for the remote publishing platform's content-type API."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import requests

from ...models import ContentTypeDefinition

logger = logging.getLogger(__name__)


class RemoteApiError(Exception):
    """Raised when the platform API returns an error."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        """Initialize with the HTTP status and decoded body, when available."""
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class PreconditionFailedError(RemoteApiError):
    """HTTP 412: the remote changed since its etag was read."""


class RateLimitedError(RemoteApiError):
    """HTTP 429: the caller should back off and retry."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = 429,
        response_data: Optional[Any] = None,
        retry_after: Optional[float] = None,
    ):
        """Initialize with the server's Retry-After hint in seconds."""
        super().__init__(message, status_code, response_data)
        self.retry_after = retry_after


class TransientRemoteError(RemoteApiError):
    """5xx responses, timeouts and connection failures."""


@dataclass
class RemoteContentType:
    """A content type as stored on the platform, with its etag."""

    definition: ContentTypeDefinition
    etag: Optional[str] = None

    @property
    def key(self) -> str:
        """Content type key."""
        return self.definition.key


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _decode(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class PlatformClient:
    """Authenticated client for the platform's content-type endpoints.

    At most ``max_concurrent_requests`` requests are in flight at once,
    whatever the number of calling threads.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        max_concurrent_requests: int = 4,
        session: Optional[requests.Session] = None,
        platform_name: str = "platform",
    ):
        """Initialize platform client.

        Args:
            base_url: API root, e.g. https://cms.example.com/api
            token: Bearer token
            timeout: Request timeout in seconds
            max_concurrent_requests: Upper bound on in-flight requests
            session: Optional preconfigured requests session
            platform_name: Name recorded in sync history
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.platform_name = platform_name
        self.session = session or requests.Session()
        self.session.headers.update(
            {"Accept": "application/json", "Content-Type": "application/json"}
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self._semaphore = threading.BoundedSemaphore(max(1, max_concurrent_requests))

    def _url(self, key: Optional[str] = None) -> str:
        url = f"{self.base_url}/content-types"
        if key is not None:
            url = f"{url}/{quote(key, safe='')}"
        return url

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        with self._semaphore:
            try:
                response = self.session.request(
                    method, url, timeout=self.timeout, **kwargs
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                raise TransientRemoteError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(method, url, response)
        return response

    @staticmethod
    def _raise_for_status(method: str, url: str, response: requests.Response) -> None:
        status = response.status_code
        data = _decode(response)
        message = f"{method} {url} returned {status}"

        if status == 412:
            raise PreconditionFailedError(message, status, data)
        if status == 429:
            raise RateLimitedError(
                message,
                status,
                data,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status >= 500:
            raise TransientRemoteError(message, status, data)
        raise RemoteApiError(message, status, data)

    @staticmethod
    def _to_remote(
        response: requests.Response,
        data: Any,
        sent: Optional[ContentTypeDefinition] = None,
    ) -> RemoteContentType:
        body = dict(data) if isinstance(data, dict) else {}
        etag = response.headers.get("ETag") or body.pop("etag", None)
        body.pop("etag", None)
        if sent is not None and not body.get("key"):
            # Write endpoints may answer with an id only
            return RemoteContentType(sent, etag)
        return RemoteContentType(ContentTypeDefinition.parse(body), etag)

    def list_content_types(self) -> List[RemoteContentType]:
        """Fetch every content type on the platform."""
        response = self._request("GET", self._url())
        data = _decode(response)
        items = data.get("items", []) if isinstance(data, dict) else data or []

        result = []
        for item in items:
            body = dict(item)
            etag = body.pop("etag", None)
            result.append(RemoteContentType(ContentTypeDefinition.parse(body), etag))
        logger.debug("Fetched %d remote content types", len(result))
        return result

    def get_content_type(self, key: str) -> Optional[RemoteContentType]:
        """Fetch one content type, or None if it does not exist."""
        try:
            response = self._request("GET", self._url(key))
        except RemoteApiError as e:
            if e.status_code == 404:
                return None
            raise
        return self._to_remote(response, _decode(response))

    def create_content_type(
        self, definition: Union[ContentTypeDefinition, Dict[str, Any]]
    ) -> RemoteContentType:
        """Create a content type on the platform."""
        parsed = ContentTypeDefinition.parse(definition)
        response = self._request("POST", self._url(), json=parsed.to_payload())
        logger.info("Created remote content type %s", parsed.key)
        return self._to_remote(response, _decode(response), sent=parsed)

    def update_content_type(
        self,
        key: str,
        definition: Union[ContentTypeDefinition, Dict[str, Any]],
        etag: Optional[str] = None,
    ) -> RemoteContentType:
        """Replace a content type, guarded by its etag when one is given.

        Raises:
            PreconditionFailedError: If the etag no longer matches
        """
        parsed = ContentTypeDefinition.parse(definition)
        headers = {"If-Match": etag} if etag else {}
        response = self._request(
            "PUT", self._url(key), json=parsed.to_payload(), headers=headers
        )
        logger.info("Updated remote content type %s", key)
        return self._to_remote(response, _decode(response), sent=parsed)

    def delete_content_type(self, key: str, etag: Optional[str] = None) -> None:
        """Delete a content type from the platform."""
        headers = {"If-Match": etag} if etag else {}
        self._request("DELETE", self._url(key), headers=headers)
        logger.info("Deleted remote content type %s", key)

    def test_connection(self) -> bool:
        """Check that the platform answers and accepts our credentials."""
        try:
            self._request("GET", self._url(), params={"limit": 1})
            return True
        except RemoteApiError as e:
            logger.error("Platform connection test failed: %s", e)
            return False
