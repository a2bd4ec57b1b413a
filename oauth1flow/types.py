"""Type definitions for oauth1flow.

Shared types used by the signer, the sign-in session and the credential
stores.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from .exceptions import AuthenticationError


class SignatureMethod(str, Enum):
    """OAuth 1.0a signature methods."""

    HMAC_SHA1 = "HMAC-SHA1"
    RSA_SHA1 = "RSA-SHA1"
    PLAINTEXT = "PLAINTEXT"


class SignInPhase(str, Enum):
    """Phase of a sign-in session."""

    IDLE = "idle"
    REQUESTING_TOKEN = "requesting_token"
    AWAITING_USER_AUTHORIZATION = "awaiting_user_authorization"
    EXCHANGING_ACCESS_TOKEN = "exchanging_access_token"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can leave this phase."""
        return self in _TERMINAL_PHASES


_TERMINAL_PHASES = frozenset({SignInPhase.SUCCEEDED, SignInPhase.FAILED, SignInPhase.CANCELED})

# Forward order of the non-terminal phases
PHASE_ORDER: tuple[SignInPhase, ...] = (
    SignInPhase.IDLE,
    SignInPhase.REQUESTING_TOKEN,
    SignInPhase.AWAITING_USER_AUTHORIZATION,
    SignInPhase.EXCHANGING_ACCESS_TOKEN,
)


class NavigationKind(str, Enum):
    """Classification of a URL the interactive surface tries to load."""

    PROVIDER_PAGE = "provider_page"
    CALLBACK_MATCH = "callback_match"
    CANCEL_MATCH = "cancel_match"
    EXTERNAL_REQUEST = "external_request"


class NavigationDecision(str, Enum):
    """What the interactive surface should do with a navigation attempt."""

    ALLOW = "allow"
    REDIRECT_ELSEWHERE = "cancel_and_redirect_elsewhere"
    CALLBACK_CONSUMED = "callback_consumed"


@dataclass
class AuthenticationState:
    """One OAuth 1.0a identity, in progress or established.

    ``token`` / ``token_secret`` only ever hold an access token. The
    request token obtained during sign-in lives in ``request_token`` /
    ``request_token_secret`` so it can never be persisted as if it were
    an access token.

    Attributes
    ----------
    consumer_key : str
        Client identifier issued by the provider.
    consumer_secret : str
        Shared secret for HMAC-SHA1 and PLAINTEXT signing.
    signature_method : SignatureMethod
        Signature scheme used for every request.
    private_key : str or None
        PEM-encoded RSA private key for RSA-SHA1 signing.
    token : str
        Access token.
    token_secret : str
        Access token secret.
    request_token : str
        In-flight request token.
    request_token_secret : str
        In-flight request token secret.
    callback_url : str
        Address the provider redirects to after authorization.
    scope : str
        Requested scope, sent with the request-token call.
    service_provider_name : str
        Human-readable provider name, used in logs and errors.
    user_email : str or None
        Account email when the provider supplies one.
    """

    consumer_key: str
    consumer_secret: str = ""
    signature_method: SignatureMethod = SignatureMethod.HMAC_SHA1
    private_key: str | None = None
    token: str = ""
    token_secret: str = ""
    request_token: str = ""
    request_token_secret: str = ""
    callback_url: str = ""
    scope: str = ""
    service_provider_name: str = ""
    user_email: str | None = None

    @property
    def is_authorized(self) -> bool:
        """Whether an access token pair is present."""
        return bool(self.token) and bool(self.token_secret)

    def set_access_token(self, token: str, token_secret: str) -> None:
        """Set the access token pair atomically.

        Raises
        ------
        ValueError
            If either value is empty; the state is left untouched.
        """
        if not token or not token_secret:
            raise ValueError("Access token and secret must both be non-empty")
        self.token, self.token_secret = token, token_secret

    def clear_access_token(self) -> None:
        """Forget the access token pair."""
        self.token, self.token_secret = "", ""

    def set_request_token(self, token: str, token_secret: str) -> None:
        """Record the in-flight request token pair."""
        self.request_token, self.request_token_secret = token, token_secret

    def clear_request_token(self) -> None:
        """Forget the in-flight request token pair."""
        self.request_token, self.request_token_secret = "", ""


@dataclass(frozen=True)
class EndpointConfig:
    """Provider endpoints for one sign-in.

    Attributes
    ----------
    request_token_url : str
        Endpoint that issues request tokens.
    authorize_token_url : str
        Page where the user authorizes the request token.
    access_token_url : str
        Endpoint that exchanges an authorized request token.
    language : str or None
        Locale hint appended to the authorize URL as ``hl``.
    """

    request_token_url: str
    authorize_token_url: str
    access_token_url: str
    language: str | None = None


@dataclass
class NavigationEvent:
    """Result of classifying one navigation attempt.

    Attributes
    ----------
    kind : NavigationKind
        The classification.
    url : str
        The URL as reported by the surface.
    params : dict[str, str]
        URL-decoded query parameters (callback matches only).
    """

    kind: NavigationKind
    url: str
    params: dict[str, str] = field(default_factory=dict)


@dataclass
class TransportResponse:
    """HTTP response returned by a ``NetworkTransport``."""

    status_code: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        """Whether the status code is 2xx."""
        return 200 <= self.status_code < 300


@dataclass
class SignInResult:
    """Outcome of a sign-in session.

    Attributes
    ----------
    success : bool
        Whether an access token was obtained.
    auth : AuthenticationState
        The state the session worked on.
    error : AuthenticationError or None
        The terminal error, if the session did not succeed.
    """

    success: bool
    auth: AuthenticationState
    error: AuthenticationError | None = None
