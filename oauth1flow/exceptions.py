"""oauth1flow exception hierarchy.

All oauth1flow-specific exceptions inherit from OAuth1FlowException, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class OAuth1FlowException(Exception):
    """Base exception for all oauth1flow errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize oauth1flow exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (url, phase, key, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class SignInStateError(OAuth1FlowException):
    """A sign-in session was used in a way its lifecycle does not allow.

    Raised when a session is started twice or a second completion
    handler is registered.
    """


class TransportError(OAuth1FlowException):
    """HTTP transport failed.

    Raised by ``NetworkTransport`` implementations when a request could
    not be completed.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize transport error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        status_code : int, optional
            HTTP status code if a response was received.
        url : str, optional
            The request URL.
        **context : Any
            Additional context.
        """
        super().__init__(message, status_code=status_code, url=url, **context)
        self.status_code = status_code
        self.url = url


class StorageFailure(OAuth1FlowException):
    """Credential storage operation failed at the persistence layer."""

    def __init__(self, message: str, key: str | None = None, **context: Any) -> None:
        """Initialize storage failure.

        Parameters
        ----------
        message : str
            Human-readable error message.
        key : str, optional
            The application/service name of the entry involved.
        **context : Any
            Additional context.
        """
        super().__init__(message, key=key, **context)
        self.key = key


class AuthenticationError(OAuth1FlowException):
    """Base exception for all sign-in failures.

    Delivered to the completion handler of a sign-in session when the
    flow ends without an access token.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        flow_id: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The service provider name.
        flow_id : str, optional
            The unique identifier of the sign-in session that failed.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, flow_id=flow_id, **context)
        self.provider = provider
        self.flow_id = flow_id


class TokenRequestFailed(AuthenticationError):
    """Request-token phase failed.

    The transport failed, the provider answered with an error status,
    or the response lacked ``oauth_token`` / ``oauth_token_secret``.
    """


class AccessTokenExchangeFailed(AuthenticationError):
    """Access-token exchange failed."""


class CallbackMismatch(AuthenticationError):
    """Callback carried a token other than the in-flight request token.

    Also raised when the callback lacks ``oauth_verifier``.
    """


class UserCanceled(AuthenticationError):
    """Sign-in was cancelled.

    Either the caller cancelled the session or the provider signalled
    that the user denied access.
    """
