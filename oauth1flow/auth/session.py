"""Three-legged OAuth 1.0a sign-in session.

``SignInSession`` drives one sign-in from request token to access token:

1. Fetch a request token from the provider.
2. Load the signed authorization page on the interactive surface and wait
   for the surface to report the callback URL.
3. Exchange the authorized request token and verifier for an access token.

The session runs on a single asyncio event loop. ``start()``,
``cancel()``, ``handle_navigation()`` and ``page_loaded()`` must be called
on that loop; network calls run as tasks on it. The completion handler
fires exactly once per session.
"""

# pylint: disable=logging-too-many-args,too-many-instance-attributes

from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import webbrowser

from typing import TYPE_CHECKING
from urllib.parse import quote, urlencode, urlsplit

from ..exceptions import (
    AccessTokenExchangeFailed,
    AuthenticationError,
    CallbackMismatch,
    SignInStateError,
    TokenRequestFailed,
    TransportError,
    UserCanceled,
)
from ..log import log_callback_error, redact_oauth_params
from ..types import (
    PHASE_ORDER,
    NavigationDecision,
    NavigationKind,
    SignInPhase,
    SignInResult,
)
from .navigation import NavigationObserver
from .reachability import DEFAULT_NETWORK_LOSS_TIMEOUT, ReachabilityMonitor
from .signer import OAuthSigner
from .transport import FORM_CONTENT_TYPE, parse_token_response


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ..types import AuthenticationState, EndpointConfig
    from .navigation import InteractiveSurface
    from .transport import NetworkTransport

    CompletionHandler = Callable[[AuthenticationState, AuthenticationError | None], None]


logger = logging.getLogger("oauth1flow.session")

# Callback parameters providers use to report that the user refused access
_DENIAL_PARAMS = ("denied", "oauth_problem", "error")


class SignInSession:
    """One-shot OAuth 1.0a sign-in state machine.

    Parameters
    ----------
    auth : AuthenticationState
        The caller-owned state. Receives the request token during sign-in
        and the access token on success.
    endpoints : EndpointConfig
        Provider endpoints.
    transport : NetworkTransport
        Sends the two token-exchange requests.
    surface : InteractiveSurface, optional
        Web view that shows the authorization page. Without one, the
        caller loads ``session.authorize_url`` itself.
    network_loss_timeout_interval : float
        Seconds without network activity on the authorization page before
        the network-lost event fires (default ``30``, ``0`` disables).
    initial_display_content : str, optional
        HTML shown on the surface until the first provider page loads.
    external_request_handler : callable, optional
        ``handler(url)`` for navigations that leave the provider's domain.
        Defaults to opening the URL in the system browser.
    cancel_url_pattern : str, optional
        Regular expression matching the provider's "user cancelled" page.
    provider_domains : Iterable[str]
        Extra domains treated as part of the provider.
    display_name : str, optional
        Application name sent as ``xoauth_displayname``.
    reachability : ReachabilityMonitor, optional
        Pre-built monitor; its ``on_network_lost`` is replaced.
    observer : NavigationObserver, optional
        Pre-built navigation observer.
    """

    def __init__(
        self,
        auth: AuthenticationState,
        endpoints: EndpointConfig,
        transport: NetworkTransport,
        *,
        surface: InteractiveSurface | None = None,
        network_loss_timeout_interval: float = DEFAULT_NETWORK_LOSS_TIMEOUT,
        initial_display_content: str | None = None,
        external_request_handler: Callable[[str], object] | None = None,
        cancel_url_pattern: str | None = None,
        provider_domains: Iterable[str] = (),
        display_name: str | None = None,
        reachability: ReachabilityMonitor | None = None,
        observer: NavigationObserver | None = None,
    ) -> None:
        """Initialize the sign-in session."""
        self.auth = auth
        self.endpoints = endpoints
        self.transport = transport
        self.surface = surface
        self.initial_display_content = initial_display_content
        self.external_request_handler = external_request_handler
        self.display_name = display_name
        self.flow_id = secrets.token_urlsafe(8)

        self.observer = observer or NavigationObserver(
            auth.callback_url,
            [endpoints.authorize_token_url, endpoints.request_token_url],
            cancel_url_pattern=cancel_url_pattern,
            provider_domains=provider_domains,
        )
        self.reachability = reachability or ReachabilityMonitor(network_loss_timeout_interval)
        self.reachability.on_network_lost = self._notify_network_lost

        self._signer = OAuthSigner(auth)
        self._phase = SignInPhase.IDLE
        self.transitions: list[SignInPhase] = [SignInPhase.IDLE]
        self.has_called_finished = False
        self.has_done_final_redirect = False
        self.cancel_requested = False
        self.authorize_url: str | None = None
        self.error: AuthenticationError | None = None

        self._started = False
        self._surface_closed = False
        self._task: asyncio.Task[None] | None = None
        self._completion: CompletionHandler | None = None
        self._network_lost_listeners: list[Callable[[], None]] = []
        self._result: SignInResult | None = None
        self._result_future: asyncio.Future[SignInResult] | None = None

    # ── Caller API ──────────────────────────────────────────────────

    @property
    def phase(self) -> SignInPhase:
        """Current phase of the session."""
        return self._phase

    def on_completion(self, handler: CompletionHandler) -> None:
        """Register the completion handler.

        ``handler(auth, error)`` is invoked exactly once: with ``error``
        set to ``None`` on success, or to the terminal error otherwise.

        Raises
        ------
        SignInStateError
            If a handler is already registered.
        """
        if self._completion is not None:
            msg = "A completion handler is already registered"
            raise SignInStateError(msg, flow_id=self.flow_id)
        self._completion = handler
        if self._result is not None:
            self._call_completion(self._result.error)

    def on_network_lost(self, listener: Callable[[], None]) -> None:
        """Add a listener for the network-lost event."""
        self._network_lost_listeners.append(listener)

    def start(self) -> None:
        """Begin sign-in by requesting a token.

        Must be called from a running event loop.

        Raises
        ------
        SignInStateError
            If the session was already started or has finished.
        RuntimeError
            If no event loop is running.
        """
        if self._started or self.has_called_finished:
            msg = "Sign-in sessions cannot be restarted"
            raise SignInStateError(msg, flow_id=self.flow_id, phase=self._phase.value)
        loop = asyncio.get_running_loop()
        self._started = True
        self._get_result_future()

        if self.surface is not None and self.initial_display_content:
            self.surface.load_html(self.initial_display_content)

        self._transition(SignInPhase.REQUESTING_TOKEN)
        logger.info(
            "Sign-in %s: requesting token from %s", self.flow_id, self.endpoints.request_token_url
        )

        error = self._validate_request_inputs()
        if error is not None:
            self._finish(SignInPhase.FAILED, error)
            return

        self._task = loop.create_task(self._fetch_request_token())

    def cancel(self) -> None:
        """Cancel sign-in.

        In-flight requests are abandoned and the completion handler fires
        with ``UserCanceled``. No-op once the session has finished.
        """
        if self.has_called_finished:
            return
        self.cancel_requested = True
        msg = "Sign-in was cancelled"
        self._finish(SignInPhase.CANCELED, self._error(UserCanceled, msg))

    async def wait(self) -> SignInResult:
        """Wait for the session to finish and return its result."""
        if self._result is not None:
            return self._result
        return await self._get_result_future()

    async def run(self) -> SignInResult:
        """Start the session and wait for it to finish."""
        self.start()
        return await self.wait()

    # ── Surface events ──────────────────────────────────────────────

    def handle_navigation(self, url: str) -> NavigationDecision:
        """Decide what the surface does with a navigation attempt.

        Must be called before the navigation commits. Callback and
        cancellation URLs are consumed and never rendered. Once the
        session has finished, external requests are refused without
        being opened.

        Parameters
        ----------
        url : str
            The URL the surface is about to load.

        Returns
        -------
        NavigationDecision
            ``ALLOW``, ``REDIRECT_ELSEWHERE`` or ``CALLBACK_CONSUMED``.
        """
        event = self.observer.classify(url)

        if event.kind is NavigationKind.CALLBACK_MATCH:
            self._handle_callback(event.params)
            return NavigationDecision.CALLBACK_CONSUMED

        if event.kind is NavigationKind.CANCEL_MATCH:
            if not self.has_called_finished:
                logger.info("Sign-in %s: provider reported cancellation", self.flow_id)
                msg = "User cancelled sign-in at the provider"
                self._finish(SignInPhase.CANCELED, self._error(UserCanceled, msg, url=url))
            return NavigationDecision.CALLBACK_CONSUMED

        if event.kind is NavigationKind.EXTERNAL_REQUEST:
            if not self.has_called_finished:
                self._open_externally(url)
            return NavigationDecision.REDIRECT_ELSEWHERE

        return NavigationDecision.ALLOW

    def page_loaded(self, url: str) -> None:  # pylint: disable=unused-argument
        """Report that the surface finished loading a page."""
        self.reachability.record_activity()

    # ── Protocol steps ──────────────────────────────────────────────

    async def _fetch_request_token(self) -> None:
        body_params: dict[str, str] = {}
        if self.auth.scope:
            body_params["scope"] = self.auth.scope
        if self.display_name:
            body_params["xoauth_displayname"] = self.display_name

        url = self.endpoints.request_token_url
        try:
            params = await self._call_token_endpoint(
                url,
                body_params,
                token="",
                token_secret="",
                extra_oauth_params={"oauth_callback": self.auth.callback_url or "oob"},
            )
        except TransportError as exc:
            msg = f"Request token fetch failed: {exc.message}"
            error = self._error(TokenRequestFailed, msg, url=url, status_code=exc.status_code)
            self._finish(SignInPhase.FAILED, error)
            return
        except Exception as exc:
            logger.exception("Sign-in %s: unexpected error requesting token", self.flow_id)
            msg = f"Request token fetch failed: {exc}"
            self._finish(SignInPhase.FAILED, self._error(TokenRequestFailed, msg, url=url))
            return

        if self.has_called_finished:
            return

        token = params.get("oauth_token", "")
        token_secret = params.get("oauth_token_secret", "")
        if not token or not token_secret:
            msg = "Request token response lacks oauth_token or oauth_token_secret"
            self._finish(SignInPhase.FAILED, self._error(TokenRequestFailed, msg, url=url))
            return
        if params.get("oauth_callback_confirmed") != "true":
            logger.warning("Sign-in %s: provider did not confirm the callback URL", self.flow_id)

        self.auth.set_request_token(token, token_secret)
        self._await_user_authorization()

    def _await_user_authorization(self) -> None:
        self.authorize_url = self._build_authorize_url()
        self._transition(SignInPhase.AWAITING_USER_AUTHORIZATION)
        self.reachability.start()
        logger.info("Sign-in %s: awaiting user authorization", self.flow_id)
        if self.surface is not None:
            self.surface.load(self.authorize_url)

    def _build_authorize_url(self) -> str:
        extra = {"hl": self.endpoints.language} if self.endpoints.language else None
        return self._signer.signed_url(
            self.endpoints.authorize_token_url,
            extra,
            token=self.auth.request_token,
            token_secret=self.auth.request_token_secret,
        )

    def _handle_callback(self, params: dict[str, str]) -> None:
        if self.has_called_finished or self.has_done_final_redirect:
            logger.debug("Sign-in %s: ignoring repeated callback", self.flow_id)
            return
        if self._phase is not SignInPhase.AWAITING_USER_AUTHORIZATION:
            logger.debug(
                "Sign-in %s: ignoring callback in phase %s", self.flow_id, self._phase.value
            )
            return

        self.has_done_final_redirect = True
        self._close_surface()
        logger.debug("Sign-in %s: callback %s", self.flow_id, redact_oauth_params(params))

        token = params.get("oauth_token", "")
        denial = next((params[k] for k in _DENIAL_PARAMS if params.get(k)), None)
        if denial is not None or not token:
            msg = "User denied access"
            self._finish(SignInPhase.CANCELED, self._error(UserCanceled, msg, reason=denial))
            return

        if token != self.auth.request_token:
            msg = "Callback token does not match the request token"
            self._finish(SignInPhase.FAILED, self._error(CallbackMismatch, msg))
            return

        verifier = params.get("oauth_verifier", "")
        if not verifier:
            msg = "Callback lacks oauth_verifier"
            self._finish(SignInPhase.FAILED, self._error(CallbackMismatch, msg))
            return

        self._transition(SignInPhase.EXCHANGING_ACCESS_TOKEN)
        self._task = asyncio.get_running_loop().create_task(self._exchange_access_token(verifier))

    async def _exchange_access_token(self, verifier: str) -> None:
        url = self.endpoints.access_token_url
        logger.info("Sign-in %s: exchanging request token at %s", self.flow_id, url)
        try:
            params = await self._call_token_endpoint(
                url,
                {},
                token=self.auth.request_token,
                token_secret=self.auth.request_token_secret,
                extra_oauth_params={"oauth_verifier": verifier},
            )
        except TransportError as exc:
            msg = f"Access token exchange failed: {exc.message}"
            error = self._error(
                AccessTokenExchangeFailed, msg, url=url, status_code=exc.status_code
            )
            self._finish(SignInPhase.FAILED, error)
            return
        except Exception as exc:
            logger.exception("Sign-in %s: unexpected error exchanging token", self.flow_id)
            msg = f"Access token exchange failed: {exc}"
            self._finish(SignInPhase.FAILED, self._error(AccessTokenExchangeFailed, msg, url=url))
            return

        if self.has_called_finished:
            return

        token = params.get("oauth_token", "")
        token_secret = params.get("oauth_token_secret", "")
        if not token or not token_secret:
            msg = "Access token response lacks oauth_token or oauth_token_secret"
            self._finish(SignInPhase.FAILED, self._error(AccessTokenExchangeFailed, msg, url=url))
            return

        self.auth.set_access_token(token, token_secret)
        self.auth.clear_request_token()
        if params.get("email"):
            self.auth.user_email = params["email"]
        self._finish(SignInPhase.SUCCEEDED, None)

    async def _call_token_endpoint(
        self,
        url: str,
        body_params: dict[str, str],
        *,
        token: str,
        token_secret: str,
        extra_oauth_params: dict[str, str],
    ) -> dict[str, str]:
        """POST a signed token request and parse the form-encoded reply."""
        header = self._signer.authorization_header(
            "POST",
            url,
            body_params,
            token=token,
            token_secret=token_secret,
            extra_oauth_params=extra_oauth_params,
        )
        body = urlencode(body_params, quote_via=quote, safe="~")
        response = await self.transport.send(
            "POST",
            url,
            {"Authorization": header, "Content-Type": FORM_CONTENT_TYPE},
            body,
        )
        self.reachability.record_activity()

        if not response.is_success:
            msg = f"HTTP {response.status_code}"
            raise TransportError(msg, status_code=response.status_code, url=url)

        params = parse_token_response(response.body)
        logger.debug("Sign-in %s: %s replied %s", self.flow_id, url, redact_oauth_params(params))
        return params

    # ── State machine plumbing ──────────────────────────────────────

    def _transition(self, phase: SignInPhase) -> None:
        current = self._phase
        if current.is_terminal:
            return
        if not phase.is_terminal and PHASE_ORDER.index(phase) <= PHASE_ORDER.index(current):
            msg = f"Illegal transition {current.value} -> {phase.value}"
            raise SignInStateError(msg, flow_id=self.flow_id)

        if current is SignInPhase.AWAITING_USER_AUTHORIZATION:
            self.reachability.stop()
        self._phase = phase
        self.transitions.append(phase)
        logger.debug("Sign-in %s: %s -> %s", self.flow_id, current.value, phase.value)

    def _finish(self, phase: SignInPhase, error: AuthenticationError | None) -> None:
        """Enter a terminal phase and notify the caller, at most once."""
        if self.has_called_finished:
            return
        self.has_called_finished = True
        self._transition(phase)
        self.error = error
        self.reachability.stop()
        self._abandon_task()
        self._close_surface()

        if error is None:
            logger.info("Sign-in %s completed successfully", self.flow_id)
        else:
            logger.info("Sign-in %s ended in %s: %s", self.flow_id, phase.value, error)

        self._result = SignInResult(success=error is None, auth=self.auth, error=error)
        future = self._result_future
        if future is not None and not future.done():
            future.set_result(self._result)
        if self._completion is not None:
            self._call_completion(error)

    def _call_completion(self, error: AuthenticationError | None) -> None:
        assert self._completion is not None  # noqa: S101
        try:
            self._completion(self.auth, error)
        except Exception as exc:
            log_callback_error("completion", self.flow_id, exc)

    def _abandon_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    def _get_result_future(self) -> asyncio.Future[SignInResult]:
        if self._result_future is None:
            self._result_future = asyncio.get_running_loop().create_future()
            if self._result is not None:
                self._result_future.set_result(self._result)
        return self._result_future

    def _close_surface(self) -> None:
        if self.surface is None or self._surface_closed:
            return
        self._surface_closed = True
        with contextlib.suppress(Exception):
            self.surface.close()

    def _open_externally(self, url: str) -> None:
        logger.info("Sign-in %s: opening external request %s", self.flow_id, url)
        handler = self.external_request_handler or webbrowser.open
        try:
            handler(url)
        except Exception as exc:
            log_callback_error("external_request", self.flow_id, exc)

    def _notify_network_lost(self) -> None:
        for listener in list(self._network_lost_listeners):
            try:
                listener()
            except Exception as exc:
                log_callback_error("network_lost", self.flow_id, exc)

    def _validate_request_inputs(self) -> AuthenticationError | None:
        if not self.auth.consumer_key:
            return self._error(TokenRequestFailed, "Consumer key is required")
        url = self.endpoints.request_token_url
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            msg = "Request token URL must be an absolute http(s) URL"
            return self._error(TokenRequestFailed, msg, url=url)
        return None

    def _error(
        self, cls: type[AuthenticationError], message: str, **context: object
    ) -> AuthenticationError:
        return cls(
            message,
            provider=self.auth.service_provider_name or None,
            flow_id=self.flow_id,
            **context,
        )
