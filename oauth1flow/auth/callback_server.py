"""Ephemeral localhost HTTP server for system-browser sign-in.

When no embedded web view is available, the authorization page opens in
the user's browser and the provider redirects to this server. Each
request it receives is reported to the sign-in session as a navigation
attempt, exactly as an embedded surface would report it.

Uses only stdlib (http.server, threading, urllib.parse).
"""

# pylint: disable=logging-too-many-args,C0103

from __future__ import annotations

import html
import logging
import threading
import webbrowser

from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlsplit

from ..types import NavigationDecision


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("oauth1flow.callback_server")

_PAGE_STYLE = """
  body { font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
         display: flex; align-items: center; justify-content: center;
         height: 100vh; margin: 0; background: #f0f2f5; color: #1a1a2e; }
  .card { text-align: center; padding: 2rem 3rem; background: white;
          border-radius: 12px; box-shadow: 0 2px 12px rgba(0,0,0,.08); }
  h1 { font-size: 1.5rem; margin-bottom: 0.5rem; }
  p { color: #666; }
"""

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head><title>{title}</title>
<style>{style}</style></head>
<body><div class="card">
  <h1>{title}</h1>
  <p>{message}</p>
</div></body></html>"""

_DENIAL_PARAMS = ("denied", "oauth_problem", "error")


def _page(title: str, message: str) -> str:
    return _PAGE_TEMPLATE.format(
        title=html.escape(title),
        message=html.escape(message, quote=True),
        style=_PAGE_STYLE,
    )


class LoopbackCallbackServer:
    """Localhost HTTP server that receives the OAuth callback.

    Parameters
    ----------
    host : str
        Bind address (default ``"127.0.0.1"``).
    port : int
        Port number (``0`` for auto-assign).
    path : str
        Callback path (default ``"/callback"``).
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 0, path: str = "/callback") -> None:
        """Initialize the callback server."""
        self._host = host
        self._port = port
        self._path = path
        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._actual_port: int = 0

    @property
    def redirect_uri(self) -> str:
        """Callback URL served by this server (e.g. ``http://127.0.0.1:54321/callback``)."""
        return f"http://{self._host}:{self._actual_port}{self._path}"

    def start(self, on_request: Callable[[str], NavigationDecision]) -> str:
        """Start the server on a daemon thread.

        Parameters
        ----------
        on_request : callable
            Called from the server thread with the absolute URL of each
            GET request; returns the navigation decision.

        Returns
        -------
        str
            The redirect URI.
        """
        server_ref = self

        class _CallbackHandler(BaseHTTPRequestHandler):
            """HTTP request handler forwarding requests as navigations."""

            def do_GET(self) -> None:
                """Handle GET requests."""
                url = f"http://{server_ref._host}:{server_ref._actual_port}{self.path}"
                try:
                    decision = on_request(url)
                except Exception:
                    logger.exception("Callback handling failed for %s", urlsplit(url).path)
                    self._send_html(_page("Sign-in Failed", "An internal error occurred."), 500)
                    return

                if decision is not NavigationDecision.CALLBACK_CONSUMED:
                    self.send_error(404)
                    return

                params = parse_qs(urlsplit(url).query)
                if any(params.get(k) for k in _DENIAL_PARAMS):
                    self._send_html(_page("Sign-in Cancelled", "Access was not granted."))
                else:
                    self._send_html(_page("Sign-in Complete", "You can close this window."))

            def _send_html(self, html_content: str, status: int = 200) -> None:
                """Send an HTML response with security headers."""
                encoded = html_content.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.send_header("Cache-Control", "no-store")
                self.send_header(
                    "Content-Security-Policy",
                    "default-src 'none'; style-src 'unsafe-inline'",
                )
                self.send_header("X-Content-Type-Options", "nosniff")
                self.end_headers()
                self.wfile.write(encoded)

            def log_message(self, *args: Any) -> None:
                """Redirect HTTP server logging to the oauth1flow logger."""
                if args:
                    logger.debug("Loopback callback server: %s", args[0] % args[1:])

        self._server = HTTPServer((self._host, self._port), _CallbackHandler)
        self._actual_port = self._server.server_address[1]

        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

        logger.debug("Loopback callback server started on %s", self.redirect_uri)
        return self.redirect_uri

    def stop(self) -> None:
        """Shut down the server."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None


class SystemBrowserSurface:
    """Interactive surface that hands the authorization page to the system browser.

    The browser cannot report navigations, so only the callback request
    reaching ``LoopbackCallbackServer`` is observed.

    Parameters
    ----------
    opener : callable, optional
        ``opener(url)``; defaults to ``webbrowser.open``.
    """

    def __init__(self, opener: Callable[[str], object] | None = None) -> None:
        """Initialize the surface."""
        self._opener = opener or webbrowser.open
        self.closed = False
        self.loaded_urls: list[str] = []

    def load(self, url: str) -> None:
        """Open ``url`` in the system browser."""
        self.loaded_urls.append(url)
        logger.info("Opening authorization page in the system browser")
        self._opener(url)

    def load_html(self, content: str) -> None:  # pylint: disable=unused-argument
        """Placeholder content cannot be shown in an external browser."""
        logger.debug("Ignoring initial display content in system browser mode")

    def close(self) -> None:
        """Mark the surface closed; the browser tab stays with the user."""
        self.closed = True
