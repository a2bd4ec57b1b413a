"""Pluggable persistence for OAuth 1.0a access tokens.

Provides the CredentialStore base class and concrete implementations for
in-memory, OS keyring, and encrypted-file storage. Every store is keyed by
an opaque application/service name such as ``"My App: Service API"``.

All operations are synchronous and may block on storage I/O; keep them off
latency-sensitive UI paths.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import json
import logging
import os
import threading

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..exceptions import StorageFailure


if TYPE_CHECKING:
    from ..config import StoreSettings
    from ..types import AuthenticationState


logger = logging.getLogger("oauth1flow.store")


def _serialize_credential(token: str, token_secret: str) -> str:
    """Serialize an access token pair to JSON."""
    return json.dumps({"oauth_token": token, "oauth_token_secret": token_secret})


def _deserialize_credential(data: str) -> tuple[str, str]:
    """Deserialize an access token pair from JSON.

    Raises
    ------
    ValueError
        If the data is not a complete token pair.
    """
    obj = json.loads(data)
    token = obj.get("oauth_token") if isinstance(obj, dict) else None
    token_secret = obj.get("oauth_token_secret") if isinstance(obj, dict) else None
    if not token or not token_secret:
        raise ValueError("Stored credential is incomplete")
    return token, token_secret


class CredentialStore(ABC):
    """Abstract base class for access-token storage.

    Subclasses implement the three storage primitives. The public
    operations return ``True``/``False`` and never raise for storage
    problems; the last failure is kept in ``last_error``.
    """

    def __init__(self) -> None:
        """Initialize the credential store."""
        self.last_error: StorageFailure | None = None

    @abstractmethod
    def _read(self, key: str) -> str | None:
        """Return the stored data for ``key`` or None."""

    @abstractmethod
    def _write(self, key: str, data: str) -> None:
        """Store ``data`` under ``key``, replacing any existing entry."""

    @abstractmethod
    def _erase(self, key: str) -> bool:
        """Delete ``key``; return whether an entry existed."""

    def save(self, app_service_name: str, auth: AuthenticationState) -> bool:
        """Persist the access token pair of ``auth``.

        Parameters
        ----------
        app_service_name : str
            Application/service key.
        auth : AuthenticationState
            State holding the access token.

        Returns
        -------
        bool
            True if the credential was written. False, without touching
            storage, when ``auth`` holds no complete access token pair.
        """
        self.last_error = None
        if not auth.token or not auth.token_secret:
            logger.debug("Not saving %r: no access token", app_service_name)
            return False
        try:
            self._write(app_service_name, _serialize_credential(auth.token, auth.token_secret))
        except Exception as exc:
            return self._failed("save", app_service_name, exc)
        logger.debug("Saved credential for %r", app_service_name)
        return True

    def load(self, app_service_name: str, auth: AuthenticationState) -> bool:
        """Load a stored access token pair into ``auth``.

        Parameters
        ----------
        app_service_name : str
            Application/service key.
        auth : AuthenticationState
            State to authorize; only ``token`` and ``token_secret`` change.

        Returns
        -------
        bool
            True if ``auth`` was authorized from storage. On a miss or an
            unreadable entry ``auth`` is left untouched.
        """
        self.last_error = None
        try:
            data = self._read(app_service_name)
        except Exception as exc:
            return self._failed("load", app_service_name, exc)
        if data is None:
            return False
        try:
            token, token_secret = _deserialize_credential(data)
        except (ValueError, TypeError) as exc:
            return self._failed("decode", app_service_name, exc)
        auth.set_access_token(token, token_secret)
        return True

    def remove(self, app_service_name: str) -> bool:
        """Delete the stored credential.

        Returns
        -------
        bool
            True if an entry was deleted; False if none existed or the
            deletion failed.
        """
        self.last_error = None
        try:
            removed = self._erase(app_service_name)
        except Exception as exc:
            return self._failed("remove", app_service_name, exc)
        if removed:
            logger.debug("Removed credential for %r", app_service_name)
        return removed

    def _failed(self, operation: str, key: str, exc: Exception) -> bool:
        self.last_error = StorageFailure(f"Credential {operation} failed: {exc}", key=key)
        logger.warning("Credential %s failed for %r: %s", operation, key, exc)
        return False


class MemoryCredentialStore(CredentialStore):
    """In-process credential store for tests and short-lived tools.

    Thread-safe via threading.Lock.
    """

    def __init__(self) -> None:
        """Initialize the memory credential store."""
        super().__init__()
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()

    def _read(self, key: str) -> str | None:
        with self._lock:
            return self._entries.get(key)

    def _write(self, key: str, data: str) -> None:
        with self._lock:
            self._entries[key] = data

    def _erase(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None


class KeyringCredentialStore(CredentialStore):
    """OS keyring-backed credential store.

    Each credential is a keyring password whose service is
    ``service_name`` and whose username is the application/service key,
    so the secret is only reachable through the platform vault.

    Parameters
    ----------
    service_name : str
        Keyring service name (default ``"oauth1flow"``).
    """

    def __init__(self, service_name: str = "oauth1flow") -> None:
        """Initialize the keyring credential store."""
        super().__init__()
        import keyring
        import keyring.errors

        self._service_name = service_name
        self._keyring = keyring
        self._delete_error = keyring.errors.PasswordDeleteError

    def _read(self, key: str) -> str | None:
        return self._keyring.get_password(self._service_name, key)

    def _write(self, key: str, data: str) -> None:
        self._keyring.set_password(self._service_name, key, data)

    def _erase(self, key: str) -> bool:
        if self._keyring.get_password(self._service_name, key) is None:
            return False
        try:
            self._keyring.delete_password(self._service_name, key)
        except self._delete_error:
            return False
        return True


class EncryptedFileCredentialStore(CredentialStore):
    """Fernet-encrypted JSON file holding all credentials.

    The file is rewritten atomically on every change and created with
    owner-only permissions.

    Parameters
    ----------
    path : str or Path
        Location of the credential file.
    encryption_key : str
        A Fernet key (``Fernet.generate_key()``).
    """

    def __init__(self, path: str | Path, encryption_key: str) -> None:
        """Initialize the encrypted file credential store."""
        super().__init__()
        from cryptography.fernet import Fernet

        if not encryption_key:
            raise ValueError("An encryption key is required for the file credential store")
        self._path = Path(path).expanduser()
        self._cipher = Fernet(encryption_key.encode("utf-8"))
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """Location of the credential file."""
        return self._path

    def _load_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        plaintext = self._cipher.decrypt(self._path.read_bytes())
        entries = json.loads(plaintext.decode("utf-8"))
        if not isinstance(entries, dict):
            raise ValueError("Credential file is malformed")
        return entries

    def _store_all(self, entries: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        token = self._cipher.encrypt(json.dumps(entries).encode("utf-8"))
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(token)
        os.replace(tmp, self._path)

    def _read(self, key: str) -> str | None:
        with self._lock:
            return self._load_all().get(key)

    def _write(self, key: str, data: str) -> None:
        with self._lock:
            entries = self._load_all()
            entries[key] = data
            self._store_all(entries)

    def _erase(self, key: str) -> bool:
        with self._lock:
            entries = self._load_all()
            if entries.pop(key, None) is None:
                return False
            self._store_all(entries)
            return True


_store_instance: CredentialStore | None = None
_store_lock = threading.Lock()


def create_credential_store(backend: str = "keyring", **kwargs: Any) -> CredentialStore:
    """Build a new credential store.

    Parameters
    ----------
    backend : str
        Storage backend: "memory", "keyring", or "file".
    **kwargs : Any
        ``service_name`` (keyring), ``file_path`` and ``encryption_key`` (file).

    Returns
    -------
    CredentialStore
        A configured credential store.
    """
    if backend == "memory":
        return MemoryCredentialStore()
    if backend == "keyring":
        return KeyringCredentialStore(service_name=kwargs.get("service_name", "oauth1flow"))
    if backend == "file":
        return EncryptedFileCredentialStore(
            path=kwargs.get("file_path", "~/.config/oauth1flow/credentials.enc"),
            encryption_key=kwargs.get("encryption_key", ""),
        )
    msg = f"Unknown credential store backend: {backend}"
    raise ValueError(msg)


def get_credential_store(
    backend: str | None = None,
    settings: StoreSettings | None = None,
    **kwargs: Any,
) -> CredentialStore:
    """Factory function for credential stores.

    Returns a singleton instance. Call ``reset_credential_store()`` to clear
    the cached instance (e.g. in tests). Unspecified options come from
    ``StoreSettings``.

    Parameters
    ----------
    backend : str, optional
        Storage backend: "memory", "keyring", or "file".
    settings : StoreSettings, optional
        Store settings (defaults to the global settings).
    **kwargs : Any
        Overrides passed to the store constructor.

    Returns
    -------
    CredentialStore
        A configured credential store instance.
    """
    global _store_instance  # noqa: PLW0603

    with _store_lock:
        if _store_instance is not None:
            return _store_instance

        if settings is None:
            from ..config import get_settings

            settings = get_settings().store

        options: dict[str, Any] = {
            "service_name": settings.service_name,
            "file_path": settings.file_path,
            "encryption_key": settings.encryption_key,
            **kwargs,
        }
        _store_instance = create_credential_store(backend or settings.backend, **options)
        return _store_instance


def reset_credential_store() -> None:
    """Reset the singleton credential store instance.

    Useful for tests that need a fresh store between runs.
    """
    global _store_instance  # noqa: PLW0603

    with _store_lock:
        _store_instance = None
