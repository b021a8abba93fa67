"""HTTP client for the Build API.

Handles authentication headers, error translation and the three request
shapes the asset endpoints need: JSON GET, multipart POST and streaming GET.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import httpx

from flexbuild.api.auth_storage import read_auth
from flexbuild.exceptions import ApiError, NotLoggedInError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from flexbuild.config import Settings

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "UNKNOWN_ERROR"
NETWORK_ERROR = "network-error"

# (field name, value) or (field name, value, filename)
MultipartField = tuple[str, str | bytes] | tuple[str, bytes, str]
_FilePart = tuple[str, tuple[str | None, Any]]


def _error_from_response(response: httpx.Response) -> ApiError:
    """Build an ApiError from the first entry of the ``errors`` array, if any."""
    code = UNKNOWN_ERROR
    message = f"HTTP {response.status_code}"
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            code = first.get("code") or code
            message = first.get("message") or first.get("title") or message
    return ApiError(str(code), str(message), response.status_code)


def _multipart_files(fields: Sequence[MultipartField]) -> list[_FilePart]:
    # Plain fields go out as parts without a filename so the body stays
    # multipart/form-data even when no file part is present.
    files: list[_FilePart] = []
    for field in fields:
        if len(field) == 3:
            name, value, filename = field
            files.append((name, (filename, value)))
        else:
            name, value = field
            files.append((name, (None, value)))
    return files


class BuildApiClient:
    """Client for the Build API."""

    def __init__(
        self,
        settings: Settings,
        api_key: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._api_key = api_key
        self.client = httpx.Client(
            base_url=settings.api_base_url,
            timeout=settings.http_timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> BuildApiClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _auth_headers(self) -> dict[str, str]:
        api_key = self._api_key
        if api_key is None:
            auth = read_auth(self.settings.auth_file)
            if auth is None:
                raise NotLoggedInError
            api_key = auth.api_key
        return {"Authorization": f"Apikey {api_key}"}

    def parse_response(self, response: httpx.Response) -> Any:
        if not response.is_success:
            error = _error_from_response(response)
            logger.debug(
                "%s %s failed: %s %s", response.request.method, response.url, error.code, error
            )
            raise error
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError("invalid-response", "Response body is not valid JSON", 0) from exc

    def get_json(self, endpoint: str, params: dict[str, str] | None = None) -> Any:
        headers = self._auth_headers()
        try:
            response = self.client.get(endpoint, params=params, headers=headers)
        except httpx.TransportError as exc:
            raise ApiError(NETWORK_ERROR, str(exc) or type(exc).__name__, 0) from exc
        return self.parse_response(response)

    def post_multipart(
        self,
        endpoint: str,
        params: dict[str, str],
        fields: Sequence[MultipartField],
    ) -> Any:
        headers = self._auth_headers()
        try:
            response = self.client.post(
                endpoint,
                params=params,
                files=_multipart_files(fields),
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise ApiError(NETWORK_ERROR, str(exc) or type(exc).__name__, 0) from exc
        return self.parse_response(response)

    @contextmanager
    def stream(
        self,
        endpoint: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Iterator[httpx.Response]:
        """Issue a streaming GET and yield the response once its status is known good.

        Transport failures raised while the caller reads the body are
        translated into ``ApiError`` as well.
        """
        request_headers = {**self._auth_headers(), **(headers or {})}
        try:
            with self.client.stream(
                "GET", endpoint, params=params, headers=request_headers
            ) as response:
                if not response.is_success:
                    response.read()
                    raise _error_from_response(response)
                yield response
        except httpx.TransportError as exc:
            raise ApiError(NETWORK_ERROR, str(exc) or type(exc).__name__, 0) from exc
