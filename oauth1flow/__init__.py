"""oauth1flow - OAuth 1.0a three-legged sign-in for Python applications.

This package drives the request-token, user-authorization and
access-token steps against an OAuth 1.0a provider, classifies the
navigations of an embedded web view (or the system browser) during
sign-in, and persists the resulting access token in the OS keyring or an
encrypted file.
"""

from .auth import (
    CredentialStore,
    EncryptedFileCredentialStore,
    HttpxTransport,
    InteractiveSurface,
    KeyringCredentialStore,
    LoopbackCallbackServer,
    MemoryCredentialStore,
    NavigationObserver,
    NetworkTransport,
    OAuth1Auth,
    OAuthSigner,
    ReachabilityMonitor,
    SignInController,
    SignInSession,
    SystemBrowserSurface,
    get_credential_store,
    reset_credential_store,
)
from .config import (
    LogSettings,
    OAuth1FlowSettings,
    OAuth1Settings,
    SignInSettings,
    StoreSettings,
    TransportSettings,
    get_settings,
)
from .exceptions import (
    AccessTokenExchangeFailed,
    AuthenticationError,
    CallbackMismatch,
    OAuth1FlowException,
    SignInStateError,
    StorageFailure,
    TokenRequestFailed,
    TransportError,
    UserCanceled,
)
from .log import enable_debug, get_logger, set_level
from .types import (
    AuthenticationState,
    EndpointConfig,
    NavigationDecision,
    NavigationEvent,
    NavigationKind,
    SignatureMethod,
    SignInPhase,
    SignInResult,
    TransportResponse,
)


__version__ = "1.0.0"

__all__ = [
    "AccessTokenExchangeFailed",
    "AuthenticationError",
    "AuthenticationState",
    "CallbackMismatch",
    "CredentialStore",
    "EncryptedFileCredentialStore",
    "EndpointConfig",
    "HttpxTransport",
    "InteractiveSurface",
    "KeyringCredentialStore",
    "LogSettings",
    "LoopbackCallbackServer",
    "MemoryCredentialStore",
    "NavigationDecision",
    "NavigationEvent",
    "NavigationKind",
    "NavigationObserver",
    "NetworkTransport",
    "OAuth1Auth",
    "OAuth1FlowException",
    "OAuth1FlowSettings",
    "OAuth1Settings",
    "OAuthSigner",
    "ReachabilityMonitor",
    "SignInController",
    "SignInPhase",
    "SignInResult",
    "SignInSession",
    "SignInSettings",
    "SignInStateError",
    "SignatureMethod",
    "StorageFailure",
    "StoreSettings",
    "SystemBrowserSurface",
    "TokenRequestFailed",
    "TransportError",
    "TransportResponse",
    "TransportSettings",
    "UserCanceled",
    "__version__",
    "enable_debug",
    "get_credential_store",
    "get_logger",
    "get_settings",
    "reset_credential_store",
    "set_level",
]
