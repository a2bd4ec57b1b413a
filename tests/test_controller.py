"""Tests for SignInController: settings wiring, persistence and browser mode.

Embedded-mode tests drive the controller with a FakeSurface whose page
loads trigger the provider callback. Browser-mode tests run a real
loopback server and hit it from a thread standing in for the browser.
"""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import asyncio
import logging
import threading

from typing import Any
from urllib.error import HTTPError
from urllib.parse import unquote
from urllib.request import urlopen

import pytest

from oauth1flow.auth.controller import SignInController
from oauth1flow.auth.credential_store import MemoryCredentialStore, get_credential_store
from oauth1flow.config import OAuth1FlowSettings, SignInSettings
from oauth1flow.exceptions import TransportError, UserCanceled
from oauth1flow.types import AuthenticationState, NavigationKind, SignInPhase, SignatureMethod
from tests.constants import (
    ACCESS_TOKEN_BODY,
    ACCESS_TOKEN_URL,
    AUTHORIZE_TOKEN_URL,
    CALLBACK_URL,
    HTTP_TIMEOUT,
    REQUEST_TOKEN_BODY,
    REQUEST_TOKEN_URL,
)
from tests.fakes import BrokenCredentialStore, FakeSurface, ScriptedTransport, ok, wait_for_phase


APP = "My App: Photos API"
APPROVED_CALLBACK = f"{CALLBACK_URL}?oauth_token=abc&oauth_verifier=v1"


def _controller(auth, endpoints, transport: ScriptedTransport, **kwargs: Any) -> SignInController:
    kwargs.setdefault("credential_store", MemoryCredentialStore())
    kwargs.setdefault("signin_settings", SignInSettings(network_loss_timeout_interval=0))
    return SignInController(auth, endpoints, transport=transport, **kwargs)


def _redirect_on_load(
    controller: SignInController, surface: FakeSurface, callback: str = APPROVED_CALLBACK
) -> None:
    """Make the surface report ``callback`` once the authorization page loads."""

    def on_load(url: str) -> None:
        if url.startswith(AUTHORIZE_TOKEN_URL):
            loop = asyncio.get_running_loop()
            loop.call_soon(controller.session.handle_navigation, callback)

    surface.on_load = on_load


def _header_params(header: str) -> dict[str, str]:
    pairs = (p.split("=", 1) for p in header[len("OAuth ") :].split(", "))
    return {k: unquote(v.strip('"')) for k, v in pairs}


# ── Embedded sign-in ────────────────────────────────────────────────


class TestSignIn:
    """Tests for SignInController.sign_in()."""

    def test_success_saves_credential(self, auth, endpoints, surface) -> None:
        """A successful sign-in stores the access token under the app name."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        store = MemoryCredentialStore()
        controller = _controller(
            auth, endpoints, transport, app_service_name=APP, credential_store=store
        )
        _redirect_on_load(controller, surface)

        result = asyncio.run(controller.sign_in(surface))

        assert result.success is True
        assert controller.session.phase is SignInPhase.SUCCEEDED
        restored = AuthenticationState(consumer_key=auth.consumer_key)
        assert store.load(APP, restored) is True
        assert (restored.token, restored.token_secret) == ("final", "finalsecret")

    def test_save_disabled(self, auth, endpoints, surface) -> None:
        """save_credentials=False leaves the store untouched."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        store = MemoryCredentialStore()
        controller = _controller(
            auth,
            endpoints,
            transport,
            app_service_name=APP,
            credential_store=store,
            save_credentials=False,
        )
        _redirect_on_load(controller, surface)

        assert asyncio.run(controller.sign_in(surface)).success
        assert store.load(APP, AuthenticationState(consumer_key="key")) is False

    def test_save_defaults_from_settings(self, auth, endpoints) -> None:
        """Without an explicit flag the sign-in settings decide."""
        controller = _controller(
            auth,
            endpoints,
            ScriptedTransport(),
            signin_settings=SignInSettings(save_credentials=False),
        )
        assert controller.save_credentials is False

    def test_no_app_name_skips_save(self, auth, endpoints, surface) -> None:
        """Without an app name nothing is persisted."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        controller = _controller(
            auth, endpoints, transport, credential_store=BrokenCredentialStore()
        )
        _redirect_on_load(controller, surface)

        assert asyncio.run(controller.sign_in(surface)).success
        assert controller.credential_store.last_error is None

    def test_save_failure_logged(self, auth, endpoints, surface, caplog) -> None:
        """A failing store does not turn a successful sign-in into a failure."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        controller = _controller(
            auth,
            endpoints,
            transport,
            app_service_name=APP,
            credential_store=BrokenCredentialStore(),
        )
        _redirect_on_load(controller, surface)

        with caplog.at_level(logging.WARNING, logger="oauth1flow.controller"):
            result = asyncio.run(controller.sign_in(surface))

        assert result.success is True
        assert auth.is_authorized
        assert "could not save the credential" in caplog.text
        assert "vault locked" in caplog.text

    def test_failure_not_saved(self, auth, endpoints, surface) -> None:
        """A failed sign-in leaves the store empty and reports the error."""
        transport = ScriptedTransport(TransportError("connection refused"))
        store = MemoryCredentialStore()
        controller = _controller(
            auth, endpoints, transport, app_service_name=APP, credential_store=store
        )

        result = asyncio.run(controller.sign_in(surface))

        assert result.success is False
        assert result.error is not None
        assert store.load(APP, AuthenticationState(consumer_key="key")) is False

    def test_completion_called_once_after_save(self, auth, endpoints, surface) -> None:
        """The completion sees the credential already persisted."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        store = MemoryCredentialStore()
        controller = _controller(
            auth, endpoints, transport, app_service_name=APP, credential_store=store
        )
        _redirect_on_load(controller, surface)
        calls: list[tuple[Any, Any, bool]] = []

        def completion(state, error) -> None:
            stored = store.load(APP, AuthenticationState(consumer_key="key"))
            calls.append((state, error, stored))

        asyncio.run(controller.sign_in(surface, completion))

        assert calls == [(auth, None, True)]

    def test_completion_exception_logged(self, auth, endpoints, surface, caplog) -> None:
        """An exception in the completion does not escape sign_in()."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        controller = _controller(auth, endpoints, transport)
        _redirect_on_load(controller, surface)

        def completion(state, error) -> None:
            raise RuntimeError("handler bug")

        with caplog.at_level(logging.ERROR, logger="oauth1flow"):
            result = asyncio.run(controller.sign_in(surface, completion))

        assert result.success is True
        assert "handler bug" in caplog.text

    def test_cancel(self, auth, endpoints, surface) -> None:
        """cancel() ends the active session with UserCanceled."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY))
        controller = _controller(auth, endpoints, transport)

        async def run():
            task = asyncio.ensure_future(controller.sign_in(surface))
            await asyncio.sleep(0)
            await wait_for_phase(controller.session, SignInPhase.AWAITING_USER_AUTHORIZATION)
            controller.cancel()
            return await task

        result = asyncio.run(run())
        assert isinstance(result.error, UserCanceled)
        assert controller.session.phase is SignInPhase.CANCELED

    def test_cancel_without_session(self, auth, endpoints) -> None:
        """cancel() before sign-in is a no-op."""
        controller = _controller(auth, endpoints, ScriptedTransport())
        controller.cancel()
        assert controller.session is None


# ── Settings wiring ─────────────────────────────────────────────────


class TestSettings:
    """Tests for building controllers and sessions from settings."""

    def test_create_session_applies_settings(self, auth, endpoints) -> None:
        """Sign-in settings become session options."""
        settings = SignInSettings(
            network_loss_timeout_interval=45,
            initial_display_content="<p>Loading</p>",
            display_name="Photos",
            cancel_url_pattern=r"/oauth/cancelled",
            provider_domains=["accounts.example-cdn.net"],
        )
        controller = _controller(auth, endpoints, ScriptedTransport(), signin_settings=settings)
        session = controller.create_session()

        assert controller.session is session
        assert session.reachability.interval == 45
        assert session.initial_display_content == "<p>Loading</p>"
        assert session.display_name == "Photos"
        assert "accounts.example-cdn.net" in session.observer.provider_domains
        event = session.observer.classify("https://provider.example.com/oauth/cancelled")
        assert event.kind is NavigationKind.CANCEL_MATCH

    def test_create_session_overrides(self, auth, endpoints) -> None:
        """Keyword overrides win over settings."""
        controller = _controller(auth, endpoints, ScriptedTransport())
        session = controller.create_session(network_loss_timeout_interval=5, display_name="X")
        assert session.reachability.interval == 5
        assert session.display_name == "X"

    def test_from_settings_object(self) -> None:
        """The [oauth1] section becomes the state and endpoints."""
        settings = OAuth1FlowSettings(
            oauth1={
                "consumer_key": "key",
                "consumer_secret": "secret",
                "callback_url": CALLBACK_URL,
                "scope": "photos",
                "service_provider_name": "Example",
                "request_token_url": REQUEST_TOKEN_URL,
                "authorize_token_url": AUTHORIZE_TOKEN_URL,
                "access_token_url": ACCESS_TOKEN_URL,
                "language": "fr",
            },
            signin={"display_name": "Photos"},
        )
        controller = SignInController.from_settings(settings, transport=ScriptedTransport())

        assert controller.auth.consumer_key == "key"
        assert controller.auth.callback_url == CALLBACK_URL
        assert controller.auth.scope == "photos"
        assert controller.auth.private_key is None
        assert controller.auth.signature_method is SignatureMethod.HMAC_SHA1
        assert controller.endpoints.request_token_url == REQUEST_TOKEN_URL
        assert controller.endpoints.language == "fr"
        assert controller.signin_settings.display_name == "Photos"

    def test_from_settings_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without arguments the global settings are used."""
        monkeypatch.setenv("OAUTH1FLOW_OAUTH1__CONSUMER_KEY", "env-key")
        monkeypatch.setenv("OAUTH1FLOW_OAUTH1__SIGNATURE_METHOD", "PLAINTEXT")
        monkeypatch.setenv("OAUTH1FLOW_OAUTH1__ACCESS_TOKEN_URL", ACCESS_TOKEN_URL)
        controller = SignInController.from_settings(transport=ScriptedTransport())

        assert controller.auth.consumer_key == "env-key"
        assert controller.auth.signature_method is SignatureMethod.PLAINTEXT
        assert controller.endpoints.access_token_url == ACCESS_TOKEN_URL
        assert controller.endpoints.language is None

    def test_default_transport_and_store(
        self, auth, endpoints, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Transport and store come from the configured factories."""
        monkeypatch.setenv("OAUTH1FLOW_STORE__BACKEND", "memory")
        monkeypatch.setenv("OAUTH1FLOW_TRANSPORT__TIMEOUT", "12")
        controller = SignInController(auth, endpoints)
        assert controller.transport.timeout == 12.0
        assert controller.credential_store is get_credential_store()


# ── Credential store helpers ────────────────────────────────────────


class TestStoreHelpers:
    """Tests for the static credential-store helpers."""

    def test_save_load_remove(self) -> None:
        """The helpers delegate to the given store."""
        store = MemoryCredentialStore()
        auth = AuthenticationState(consumer_key="key", token="t", token_secret="s")
        assert SignInController.save_to_store(APP, auth, store) is True

        restored = AuthenticationState(consumer_key="key")
        assert SignInController.authorize_from_store(APP, restored, store) is True
        assert restored.is_authorized

        assert SignInController.remove_from_store(APP, store) is True
        restored = AuthenticationState(consumer_key="key")
        assert SignInController.authorize_from_store(APP, restored, store) is False

    def test_default_store(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without a store the configured backend is used."""
        monkeypatch.setenv("OAUTH1FLOW_STORE__BACKEND", "memory")
        auth = AuthenticationState(consumer_key="key", token="t", token_secret="s")
        assert SignInController.save_to_store(APP, auth) is True
        assert isinstance(get_credential_store(), MemoryCredentialStore)
        assert SignInController.authorize_from_store(APP, AuthenticationState("key")) is True


# ── System browser mode ─────────────────────────────────────────────


class FakeBrowser:
    """Opener that follows the provider redirect to ``callback_query`` on a thread."""

    def __init__(self, auth: AuthenticationState, callback_query: str) -> None:
        self.auth = auth
        self.callback_query = callback_query
        self.opened: list[str] = []
        self.pages: list[tuple[int, str]] = []
        self.thread: threading.Thread | None = None

    def __call__(self, url: str) -> None:
        self.opened.append(url)
        self.thread = threading.Thread(target=self._visit, daemon=True)
        self.thread.start()

    def _visit(self) -> None:
        callback = f"{self.auth.callback_url}?{self.callback_query}"
        try:
            with urlopen(callback, timeout=HTTP_TIMEOUT) as response:  # noqa: S310
                self.pages.append((response.status, response.read().decode()))
        except HTTPError as exc:
            self.pages.append((exc.code, ""))

    def join(self) -> None:
        if self.thread is not None:
            self.thread.join(timeout=HTTP_TIMEOUT)


class TestRunInBrowser:
    """Tests for loopback sign-in through the system browser."""

    def test_approved(self, auth, endpoints) -> None:
        """The loopback callback completes sign-in and shows a success page."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        store = MemoryCredentialStore()
        controller = SignInController(
            auth, endpoints, app_service_name=APP, credential_store=store, transport=transport
        )
        browser = FakeBrowser(auth, "oauth_token=abc&oauth_verifier=v1")

        result = controller.run_in_browser(opener=browser)
        browser.join()

        assert result.success is True
        assert auth.callback_url.startswith("http://127.0.0.1:")
        assert auth.callback_url.endswith("/callback")
        assert browser.opened[0].startswith(AUTHORIZE_TOKEN_URL)
        assert browser.pages[0][0] == 200
        assert "Sign-in Complete" in browser.pages[0][1]
        oauth = _header_params(transport.requests[0]["headers"]["Authorization"])
        assert oauth["oauth_callback"] == auth.callback_url
        assert store.load(APP, AuthenticationState(consumer_key="key")) is True
        assert transport.closed is True

    def test_network_loss_disabled(self, auth, endpoints) -> None:
        """Browser mode cannot observe page loads, so the monitor is off."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY), ok(ACCESS_TOKEN_BODY))
        controller = SignInController(auth, endpoints, transport=transport)
        browser = FakeBrowser(auth, "oauth_token=abc&oauth_verifier=v1")

        controller.run_in_browser(opener=browser)
        browser.join()

        assert controller.session.reachability.enabled is False

    def test_denied(self, auth, endpoints) -> None:
        """A denial redirect ends in UserCanceled and a cancellation page."""
        transport = ScriptedTransport(ok(REQUEST_TOKEN_BODY))
        controller = SignInController(auth, endpoints, transport=transport)
        browser = FakeBrowser(auth, "denied=abc")

        result = controller.run_in_browser(opener=browser)
        browser.join()

        assert isinstance(result.error, UserCanceled)
        assert "Sign-in Cancelled" in browser.pages[0][1]
        assert len(transport.requests) == 1
