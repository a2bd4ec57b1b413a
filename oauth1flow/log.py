"""Logging utilities for oauth1flow.

Module loggers live under the ``oauth1flow`` namespace (for example
``oauth1flow.session``). This module configures the shared parent logger
and provides redaction for token material.
"""

from __future__ import annotations

import logging
import re
import sys

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Mapping


class _LoggerHolder:
    """Holder for the global logger instance."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Get the oauth1flow logger instance.

    Level and format are taken from ``LogSettings`` on first use.

    Returns
    -------
    logging.Logger
        The oauth1flow logger configured with a stream handler.
    """
    if _LoggerHolder.instance is None:
        from .config import get_settings

        log_settings = get_settings().log
        logger = logging.getLogger("oauth1flow")
        logger.setLevel(log_settings.level)

        # Only add handler if none exists
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(logging.Formatter(log_settings.format))
            logger.addHandler(handler)

        _LoggerHolder.instance = logger

    return _LoggerHolder.instance


def set_level(level: int | str) -> None:
    """Set the logging level.

    Parameters
    ----------
    level : int or str
        The logging level (e.g., logging.DEBUG, "DEBUG").
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Enable verbose logging of every sign-in step and HTTP exchange."""
    set_level(logging.DEBUG)


def log_callback_error(what: str, flow_id: str | None, exc: BaseException) -> None:
    """Log an exception raised by caller-supplied code.

    Parameters
    ----------
    what : str
        The kind of callback (``completion``, ``network_lost``, ...).
    flow_id : str or None
        The sign-in session the callback belongs to.
    exc : BaseException
        The exception that was raised.
    """
    get_logger().exception(f"Error in {what} callback for sign-in {flow_id}: {exc}")


_REDACTED = "[REDACTED]"

# OAuth parameters that grant access or prove possession of a secret
_SECRET_PARAMS = frozenset(
    {"oauth_token", "oauth_token_secret", "oauth_verifier", "oauth_signature"}
)
_AUTH_HEADERS = frozenset({"authorization", "proxy-authorization"})
_HEADER_PARAM = re.compile(r'([\w.~-]+)="([^"]*)"')


def _redact_authorization(value: str) -> str:
    """Redact the secret parameters of an ``OAuth ...`` header, or the whole value."""
    scheme, _, rest = value.partition(" ")
    if scheme.lower() != "oauth":
        return _REDACTED

    def _replace(match: re.Match[str]) -> str:
        if match.group(1) in _SECRET_PARAMS:
            return f'{match.group(1)}="{_REDACTED}"'
        return match.group(0)

    return f"{scheme} {_HEADER_PARAM.sub(_replace, rest)}"


def redact_oauth_params(params: Mapping[str, str] | None) -> dict[str, str]:
    """Copy request headers or OAuth parameters with secrets hidden.

    Token, token-secret, verifier and signature parameters are matched by
    exact name. ``Authorization`` headers keep their non-secret OAuth
    parameters (consumer key, nonce, timestamp) so signing problems stay
    debuggable.

    Parameters
    ----------
    params : Mapping[str, str] or None
        Header or parameter mapping about to be logged.

    Returns
    -------
    dict[str, str]
        A redacted copy.
    """
    result: dict[str, str] = {}
    for key, value in (params or {}).items():
        name = key.lower()
        if name in _SECRET_PARAMS:
            result[key] = _REDACTED
        elif name in _AUTH_HEADERS:
            result[key] = _redact_authorization(value)
        else:
            result[key] = value
    return result
