"""HTTP transport for the token-exchange calls.

``NetworkTransport`` is the boundary the sign-in session talks to;
``HttpxTransport`` is the default implementation on top of
``httpx.AsyncClient``. ``OAuth1Auth`` signs ordinary API requests with an
authorized state once sign-in has finished.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl

import httpx

from ..exceptions import TransportError
from ..log import redact_oauth_params
from ..types import TransportResponse
from .signer import OAuthSigner


if TYPE_CHECKING:
    from collections.abc import Generator

    from ..config import TransportSettings
    from ..types import AuthenticationState


logger = logging.getLogger("oauth1flow.transport")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def parse_token_response(body: str) -> dict[str, str]:
    """Parse an ``oauth_token=...&oauth_token_secret=...`` response body.

    Parameters
    ----------
    body : str
        The form-encoded response body.

    Returns
    -------
    dict[str, str]
        Decoded parameters; later duplicates win.
    """
    return dict(parse_qsl(body.strip(), keep_blank_values=True))


class NetworkTransport(ABC):
    """Sends one HTTP request and returns the response.

    Implementations raise ``TransportError`` when no response could be
    obtained. Non-2xx responses are returned, not raised.
    """

    @abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> TransportResponse:
        """Send a request.

        Parameters
        ----------
        method : str
            HTTP method.
        url : str
            Absolute request URL.
        headers : dict[str, str], optional
            Request headers.
        body : str, optional
            Form-encoded request body.

        Returns
        -------
        TransportResponse
            Status code, body and headers.

        Raises
        ------
        TransportError
            If the request could not be completed.
        """

    async def aclose(self) -> None:  # noqa: B027
        """Release transport resources."""


class HttpxTransport(NetworkTransport):
    """``NetworkTransport`` backed by a shared ``httpx.AsyncClient``.

    Parameters
    ----------
    timeout : float
        Request timeout in seconds (default ``30``).
    user_agent : str
        ``User-Agent`` header sent with every request.
    verify_ssl : bool
        Verify TLS certificates.
    client : httpx.AsyncClient, optional
        Pre-built client (tests pass one with ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "oauth1flow",
        verify_ssl: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport."""
        self.timeout = timeout
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl
        self._http_client = client

    @classmethod
    def from_settings(cls, settings: TransportSettings) -> HttpxTransport:
        """Build a transport from ``TransportSettings``."""
        return cls(
            timeout=settings.timeout,
            user_agent=settings.user_agent,
            verify_ssl=settings.verify_ssl,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify_ssl,
                headers={"User-Agent": self.user_agent},
            )
        return self._http_client

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> TransportResponse:
        """Send a request with httpx, mapping ``httpx.HTTPError`` to ``TransportError``."""
        request_headers = dict(headers or {})
        if body is not None:
            request_headers.setdefault("Content-Type", FORM_CONTENT_TYPE)

        logger.debug("%s %s headers=%s", method, url, redact_oauth_params(request_headers))
        try:
            client = await self._get_client()
            resp = await client.request(
                method,
                url,
                headers=request_headers,
                content=body.encode("utf-8") if body is not None else None,
            )
        except httpx.HTTPError as exc:
            msg = f"Request failed: {exc}"
            raise TransportError(msg, url=url) from exc

        logger.debug("%s %s -> %s", method, url, resp.status_code)
        return TransportResponse(
            status_code=resp.status_code,
            body=resp.text,
            headers=dict(resp.headers),
        )

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None


class OAuth1Auth(httpx.Auth):
    """httpx authentication that signs requests with an authorized state.

    Form-encoded bodies take part in the signature; other bodies do not,
    as RFC 5849 section 3.4.1.3 requires.

    Parameters
    ----------
    auth : AuthenticationState
        A state holding an access token.

    Examples
    --------
    >>> client = httpx.Client(auth=OAuth1Auth(state))  # doctest: +SKIP
    """

    requires_request_body = True

    def __init__(self, auth: AuthenticationState) -> None:
        """Initialize the request signer."""
        self._signer = OAuthSigner(auth)

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        """Add the ``Authorization`` header to ``request``."""
        body_params: dict[str, str] = {}
        if request.headers.get("Content-Type", "").startswith(FORM_CONTENT_TYPE):
            body_params = dict(parse_qsl(request.content.decode("utf-8"), keep_blank_values=True))
        request.headers["Authorization"] = self._signer.authorization_header(
            request.method,
            str(request.url),
            body_params,
        )
        yield request
