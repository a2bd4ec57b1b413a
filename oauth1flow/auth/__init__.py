"""OAuth 1.0a sign-in for oauth1flow.

Provides request signing, the three-legged sign-in session, navigation
classification for the interactive surface, the network-loss monitor,
credential storage, and sign-in orchestration for embedded web views and
the system browser.
"""

from __future__ import annotations

from .callback_server import LoopbackCallbackServer, SystemBrowserSurface
from .controller import SignInController
from .credential_store import (
    CredentialStore,
    EncryptedFileCredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
    create_credential_store,
    get_credential_store,
    reset_credential_store,
)
from .navigation import InteractiveSurface, NavigationObserver
from .reachability import ReachabilityMonitor
from .session import SignInSession
from .signer import OAuthSigner, percent_encode, signature_base_string
from .transport import HttpxTransport, NetworkTransport, OAuth1Auth, parse_token_response


__all__ = [
    "CredentialStore",
    "EncryptedFileCredentialStore",
    "HttpxTransport",
    "InteractiveSurface",
    "KeyringCredentialStore",
    "LoopbackCallbackServer",
    "MemoryCredentialStore",
    "NavigationObserver",
    "NetworkTransport",
    "OAuth1Auth",
    "OAuthSigner",
    "ReachabilityMonitor",
    "SignInController",
    "SignInSession",
    "SystemBrowserSurface",
    "create_credential_store",
    "get_credential_store",
    "parse_token_response",
    "percent_encode",
    "reset_credential_store",
    "signature_base_string",
]
