"""HTTP transport collaborator used by the remote storage backends.

Backends never talk to the network directly; they build a URL and hand it
to a ``Transport``. The default ``RequestsTransport`` keeps one pooled
``requests.Session`` so concurrent operations share connections, forwards a
pre-issued credential (SAS query string or bearer token) and honours
cancellation tokens. Retries and request signing are out of its scope.

Example:

    >>> transport = RequestsTransport(default_params={"sv": "2022-11-02", "sig": "..."})
    >>> response = transport.request("GET", "https://acct.file.core.windows.net/share/a.txt")
    >>> response.status_code
    200

"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import parse_qsl

import requests
from requests.adapters import HTTPAdapter

from .cancellation import CancellationToken
from .interfaces import OperationCancelledError, TransportError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

logger = logging.getLogger(__name__)

NOT_FOUND = 404


class Response(Protocol):
    """Subset of ``requests.Response`` the backends rely on."""

    status_code: int
    reason: str
    headers: Mapping[str, str]

    @property
    def content(self) -> bytes:
        """Entire response body."""
        ...

    @property
    def text(self) -> str:
        """Response body decoded as text."""
        ...

    def json(self) -> Any:
        """Response body decoded as JSON."""
        ...

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        """Iterate over a streamed body."""
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


class Transport(Protocol):
    """Request/response primitive consumed by the storage backends."""

    def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        data: bytes | None = None,
        json: Any | None = None,
        stream: bool = False,
        token: CancellationToken | None = None,
    ) -> Response:
        """Send a request and return the response whatever its status."""
        ...


def is_success(response: Response) -> bool:
    """Return True for 2xx responses."""
    return 200 <= response.status_code < 300


def ensure_success(method: str, url: str, response: Response) -> Response:
    """Raise ``TransportError`` unless the response is a 2xx.

    The response is closed before raising.
    """
    if is_success(response):
        return response
    error = TransportError.from_response(method, url, response)
    response.close()
    raise error


def close_on_cancel(response: Response, token: CancellationToken) -> None:
    """Close a streamed response if the token is cancelled while it is open.

    Closing the response aborts a body transfer in progress. Once the caller
    closes it, the callback is unregistered from the token again.
    """
    close = response.close
    unregister = token.register(close)

    def release() -> None:
        unregister()
        close()

    response.close = release  # type: ignore[method-assign]


def parse_sas_token(sas: str | None) -> dict[str, str]:
    """Split a shared access signature query string into parameters."""
    if not sas:
        return {}
    return dict(parse_qsl(sas.lstrip("?"), keep_blank_values=True))


class RequestsTransport:
    """Transport backed by a pooled ``requests.Session``."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        default_headers: Mapping[str, str] | None = None,
        default_params: Mapping[str, str] | None = None,
        timeout: float | None = 60.0,
        pool_maxsize: int = 10,
    ) -> None:
        """Initialise the transport.

        Args:
            session: Existing session to reuse; a pooled one is created
                otherwise.
            default_headers: Headers sent with every request (e.g. a bearer
                token).
            default_params: Query parameters sent with every request (e.g. a
                SAS token).
            timeout: Connect/read timeout in seconds.
            pool_maxsize: Connections kept per host.

        """
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_maxsize, pool_maxsize=pool_maxsize)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session
        self._default_headers = dict(default_headers or {})
        self._default_params = dict(default_params or {})
        self._timeout = timeout

    @property
    def session(self) -> requests.Session:
        """Underlying pooled session."""
        return self._session

    def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        data: bytes | None = None,
        json: Any | None = None,
        stream: bool = False,
        token: CancellationToken | None = None,
    ) -> requests.Response:
        """Send a request, honouring the cancellation token."""
        CancellationToken.check(token)
        merged_params = {**self._default_params, **(params or {})}
        merged_headers = {**self._default_headers, **(headers or {})}
        logger.debug("%s %s params=%s", method, url, sorted(params or {}))
        try:
            response = self._session.request(
                method,
                url,
                params=merged_params or None,
                headers=merged_headers,
                data=data,
                json=json,
                stream=stream,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            if token is not None and token.is_cancelled:
                raise OperationCancelledError from exc
            message = f"{method} {url} failed: {exc}"
            raise TransportError(message) from exc

        if token is not None:
            if token.is_cancelled:
                response.close()
                raise OperationCancelledError
            if stream:
                close_on_cancel(response, token)

        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def close(self) -> None:
        """Close the pooled session."""
        self._session.close()
