"""Sign-in orchestration around a single SignInSession.

``SignInController`` wires a session to its surface, applies the
configured sign-in options, persists the access token after a successful
sign-in, and offers the credential-store helpers used before and after
sign-in. It supports two modes:

- **Embedded mode**: the caller supplies an ``InteractiveSurface`` (a web
  view) that reports navigation attempts to the session.
- **Browser mode**: ``run_in_browser()`` opens the authorization page in
  the system browser and receives the callback on an ephemeral localhost
  server.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging

from typing import TYPE_CHECKING, Any

from ..log import log_callback_error
from ..types import AuthenticationState, EndpointConfig, NavigationDecision
from .callback_server import LoopbackCallbackServer, SystemBrowserSurface
from .credential_store import get_credential_store
from .session import SignInSession
from .transport import HttpxTransport


if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import OAuth1FlowSettings, SignInSettings
    from ..exceptions import AuthenticationError
    from ..types import SignInResult
    from .credential_store import CredentialStore
    from .navigation import InteractiveSurface
    from .transport import NetworkTransport


logger = logging.getLogger("oauth1flow.controller")


class SignInController:
    """Runs OAuth 1.0a sign-in and persists the result.

    A controller is not reusable across concurrent sign-ins; each call to
    ``sign_in`` creates a fresh session.

    Parameters
    ----------
    auth : AuthenticationState
        The state to authorize.
    endpoints : EndpointConfig
        Provider endpoints.
    app_service_name : str, optional
        Credential-store key. When set (and ``save_credentials`` is true)
        the access token is saved after a successful sign-in.
    credential_store : CredentialStore, optional
        Store used for persistence (defaults to ``get_credential_store()``).
    save_credentials : bool, optional
        Whether to persist the access token (defaults to the
        ``signin.save_credentials`` setting).
    transport : NetworkTransport, optional
        Transport for the token exchanges (defaults to ``HttpxTransport``
        built from the transport settings).
    signin_settings : SignInSettings, optional
        Session options (defaults to the global settings).
    external_request_handler : callable, optional
        Handler for navigations leaving the provider's domain.
    """

    def __init__(
        self,
        auth: AuthenticationState,
        endpoints: EndpointConfig,
        *,
        app_service_name: str | None = None,
        credential_store: CredentialStore | None = None,
        save_credentials: bool | None = None,
        transport: NetworkTransport | None = None,
        signin_settings: SignInSettings | None = None,
        external_request_handler: Callable[[str], object] | None = None,
    ) -> None:
        """Initialize the sign-in controller."""
        from ..config import get_settings

        settings = get_settings()
        self.auth = auth
        self.endpoints = endpoints
        self.app_service_name = app_service_name
        self._credential_store = credential_store
        self.signin_settings = signin_settings or settings.signin
        self.save_credentials = (
            self.signin_settings.save_credentials if save_credentials is None else save_credentials
        )
        self.transport = transport or HttpxTransport.from_settings(settings.transport)
        self.external_request_handler = external_request_handler
        self._session: SignInSession | None = None

    @classmethod
    def from_settings(
        cls,
        settings: OAuth1FlowSettings | None = None,
        **kwargs: Any,
    ) -> SignInController:
        """Build a controller from the ``[oauth1]`` configuration section.

        Parameters
        ----------
        settings : OAuth1FlowSettings, optional
            Settings to use (defaults to the global settings).
        **kwargs : Any
            Passed to the constructor.

        Returns
        -------
        SignInController
            A controller for the configured provider.
        """
        if settings is None:
            from ..config import get_settings

            settings = get_settings()
        cfg = settings.oauth1
        auth = AuthenticationState(
            consumer_key=cfg.consumer_key,
            consumer_secret=cfg.consumer_secret,
            signature_method=cfg.signature_method,
            private_key=cfg.private_key or None,
            callback_url=cfg.callback_url,
            scope=cfg.scope,
            service_provider_name=cfg.service_provider_name,
        )
        endpoints = EndpointConfig(
            request_token_url=cfg.request_token_url,
            authorize_token_url=cfg.authorize_token_url,
            access_token_url=cfg.access_token_url,
            language=cfg.language or None,
        )
        kwargs.setdefault("signin_settings", settings.signin)
        return cls(auth, endpoints, **kwargs)

    @property
    def session(self) -> SignInSession | None:
        """The most recently created session."""
        return self._session

    @property
    def credential_store(self) -> CredentialStore:
        """The credential store used for persistence."""
        if self._credential_store is None:
            self._credential_store = get_credential_store()
        return self._credential_store

    def create_session(
        self,
        surface: InteractiveSurface | None = None,
        **overrides: Any,
    ) -> SignInSession:
        """Create a session configured from the sign-in settings.

        Parameters
        ----------
        surface : InteractiveSurface, optional
            The web view showing the authorization page.
        **overrides : Any
            Session keyword arguments that take precedence over settings.

        Returns
        -------
        SignInSession
            A new, unstarted session.
        """
        cfg = self.signin_settings
        options: dict[str, Any] = {
            "surface": surface,
            "network_loss_timeout_interval": cfg.network_loss_timeout_interval,
            "initial_display_content": cfg.initial_display_content or None,
            "external_request_handler": self.external_request_handler,
            "cancel_url_pattern": cfg.cancel_url_pattern or None,
            "provider_domains": cfg.provider_domains,
            "display_name": cfg.display_name or None,
            **overrides,
        }
        self._session = SignInSession(self.auth, self.endpoints, self.transport, **options)
        return self._session

    async def sign_in(
        self,
        surface: InteractiveSurface | None = None,
        completion: Callable[[AuthenticationState, AuthenticationError | None], None] | None = None,
        **overrides: Any,
    ) -> SignInResult:
        """Run one sign-in to completion.

        Parameters
        ----------
        surface : InteractiveSurface, optional
            The web view showing the authorization page.
        completion : callable, optional
            ``completion(auth, error)``, invoked exactly once after the
            credential has been persisted.
        **overrides : Any
            Session keyword arguments that take precedence over settings.

        Returns
        -------
        SignInResult
            The session outcome.
        """
        session = self.create_session(surface, **overrides)
        result = await session.run()

        if result.success and self.app_service_name and self.save_credentials:
            if not self.credential_store.save(self.app_service_name, self.auth):
                logger.warning(
                    "Signed in but could not save the credential for %r: %s",
                    self.app_service_name,
                    self.credential_store.last_error,
                )

        if completion is not None:
            try:
                completion(self.auth, result.error)
            except Exception as exc:
                log_callback_error("completion", session.flow_id, exc)
        return result

    def cancel(self) -> None:
        """Cancel the active sign-in, if any."""
        if self._session is not None:
            self._session.cancel()

    def run_in_browser(self, opener: Callable[[str], object] | None = None) -> SignInResult:
        """Sign in through the system browser and a localhost callback server.

        Blocks until the sign-in finishes. The configured callback URL is
        replaced by the loopback server's address; network-loss monitoring
        is disabled because page loads in the browser cannot be observed.

        Parameters
        ----------
        opener : callable, optional
            ``opener(url)`` used to show the authorization page; defaults
            to ``webbrowser.open``.

        Returns
        -------
        SignInResult
            The session outcome.
        """
        return asyncio.run(self._run_loopback(opener))

    async def _run_loopback(self, opener: Callable[[str], object] | None) -> SignInResult:
        loop = asyncio.get_running_loop()
        server = LoopbackCallbackServer()

        async def _dispatch(url: str) -> NavigationDecision:
            if self._session is None:
                return NavigationDecision.ALLOW
            return self._session.handle_navigation(url)

        def _on_request(url: str) -> NavigationDecision:
            # Runs on the server thread; the session lives on the loop
            return asyncio.run_coroutine_threadsafe(_dispatch(url), loop).result(timeout=10)

        self.auth.callback_url = server.start(_on_request)
        logger.info("Waiting for the provider callback on %s", self.auth.callback_url)
        try:
            return await self.sign_in(
                SystemBrowserSurface(opener),
                network_loss_timeout_interval=0,
            )
        finally:
            await asyncio.to_thread(server.stop)
            await self.transport.aclose()

    # ── Credential store helpers ────────────────────────────────────

    @staticmethod
    def authorize_from_store(
        app_service_name: str,
        auth: AuthenticationState,
        store: CredentialStore | None = None,
    ) -> bool:
        """Load a saved access token into ``auth``.

        Returns
        -------
        bool
            True if ``auth`` is now authorized from storage.
        """
        return (store or get_credential_store()).load(app_service_name, auth)

    @staticmethod
    def save_to_store(
        app_service_name: str,
        auth: AuthenticationState,
        store: CredentialStore | None = None,
    ) -> bool:
        """Save the access token of ``auth``, typically right after sign-in."""
        return (store or get_credential_store()).save(app_service_name, auth)

    @staticmethod
    def remove_from_store(app_service_name: str, store: CredentialStore | None = None) -> bool:
        """Delete the saved access token, e.g. to sign out."""
        return (store or get_credential_store()).remove(app_service_name)
