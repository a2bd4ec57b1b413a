"""Navigation classification for the interactive sign-in surface.

Every URL the surface is about to load is classified before the
navigation commits: the provider's own pages load normally, the callback
URL is consumed by the sign-in session and never rendered, and hosts
outside the provider are handed to the caller to open externally.
"""

from __future__ import annotations

import ipaddress
import re

from typing import TYPE_CHECKING, Protocol, runtime_checkable
from urllib.parse import parse_qsl, urlsplit

from ..types import NavigationEvent, NavigationKind


if TYPE_CHECKING:
    from collections.abc import Iterable


_WEB_SCHEMES = frozenset({"http", "https"})
_DEFAULT_PORTS = {"http": 80, "https": 443}

# Second-level labels registered under two-letter country codes (example.co.uk)
_COUNTRY_SECOND_LEVEL = frozenset({"ac", "co", "com", "edu", "gov", "net", "org"})


@runtime_checkable
class InteractiveSurface(Protocol):
    """The minimal capability the sign-in session needs from a web view.

    The surface must call ``SignInSession.handle_navigation(url)`` before
    each navigation commits and honour the returned decision, and should
    call ``SignInSession.page_loaded(url)`` when a page finishes loading.
    """

    def load(self, url: str) -> None:
        """Navigate to ``url``."""

    def load_html(self, content: str) -> None:
        """Display static HTML content."""

    def close(self) -> None:
        """Dismiss the surface."""


def registrable_domain(host: str) -> str:
    """Return the domain an organisation registered for ``host``.

    This keeps the last two labels, or three when the host sits under a
    country-code second level such as ``co.uk`` or ``com.au``. IP
    addresses and single labels are returned unchanged.

    The rule is a heuristic, not the Public Suffix List. Other
    multi-label suffixes (``github.io``, ``s3.amazonaws.com``) widen the
    provider to every host sharing the suffix. List such providers by
    their full host in ``provider_domains`` and pass provider URLs whose
    hosts are specific enough.
    """
    host = host.lower().rstrip(".")
    try:
        ipaddress.ip_address(host)
    except ValueError:
        labels = host.split(".")
        keep = 2
        if len(labels) >= 3 and len(labels[-1]) == 2 and labels[-2] in _COUNTRY_SECOND_LEVEL:
            keep = 3
        return ".".join(labels[-keep:]) if len(labels) > keep else host
    return host


def _origin(url: str) -> tuple[str, str, int | None] | None:
    """Return ``(scheme, host, port)`` or None when the authority does not parse."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if port == _DEFAULT_PORTS.get(scheme):
        port = None
    return scheme, (parts.hostname or "").lower(), port


class NavigationObserver:
    """Classifies navigation attempts during sign-in.

    Parameters
    ----------
    callback_url : str
        The configured OAuth callback URL. A navigation matches when its
        scheme, host and port are equal and its path equals the callback
        path or lies beneath it.
    provider_url : str or Iterable[str]
        One or more provider URLs (typically the authorize and
        request-token endpoints) whose domains count as the provider.
    cancel_url_pattern : str, optional
        Regular expression matching the provider's "user cancelled" page.
    provider_domains : Iterable[str]
        Additional domains to treat as part of the provider.
    """

    def __init__(
        self,
        callback_url: str,
        provider_url: str | Iterable[str],
        *,
        cancel_url_pattern: str | None = None,
        provider_domains: Iterable[str] = (),
    ) -> None:
        """Initialize the observer."""
        self.callback_url = callback_url
        urls = [provider_url] if isinstance(provider_url, str) else list(provider_url)
        domains = {registrable_domain(urlsplit(u).hostname or "") for u in urls}
        domains.update(d.lower().lstrip(".") for d in provider_domains)
        domains.discard("")
        self.provider_domains = frozenset(domains)
        self._cancel_re = re.compile(cancel_url_pattern) if cancel_url_pattern else None

    def classify(self, url: str) -> NavigationEvent:
        """Classify one navigation attempt.

        Parameters
        ----------
        url : str
            The URL the surface is about to load.

        Returns
        -------
        NavigationEvent
            The classification; callback matches carry the decoded query
            parameters.
        """
        if self.is_callback(url):
            params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
            return NavigationEvent(NavigationKind.CALLBACK_MATCH, url, params)

        if self._cancel_re is not None and self._cancel_re.search(url):
            return NavigationEvent(NavigationKind.CANCEL_MATCH, url)

        if self.is_external(url):
            return NavigationEvent(NavigationKind.EXTERNAL_REQUEST, url)

        return NavigationEvent(NavigationKind.PROVIDER_PAGE, url)

    def is_callback(self, url: str) -> bool:
        """Whether ``url`` is the OAuth callback."""
        callback_origin = _origin(self.callback_url) if self.callback_url else None
        if callback_origin is None or _origin(url) != callback_origin:
            return False
        path = urlsplit(url).path or "/"
        callback_path = urlsplit(self.callback_url).path or "/"
        if path == callback_path:
            return True
        return path.startswith(callback_path.rstrip("/") + "/")

    def is_external(self, url: str) -> bool:
        """Whether ``url`` leaves the provider's domain.

        Other paths on the callback URL's own origin (a loopback server's
        ``/favicon.ico``) are never external. A web URL whose host or
        port does not parse is external.
        """
        origin = _origin(url)
        if origin is None:
            return url.partition(":")[0].strip().lower() in _WEB_SCHEMES
        scheme, host, _ = origin
        if scheme not in _WEB_SCHEMES or not host or not self.provider_domains:
            return False
        if self.callback_url and origin == _origin(self.callback_url):
            return False
        return not any(host == d or host.endswith("." + d) for d in self.provider_domains)
