"""Configuration system for oauth1flow using pydantic-settings.

Supports layered configuration:
1. Built-in defaults (lowest priority)
2. pyproject.toml [tool.oauth1flow] section (project-level)
3. ./oauth1flow.toml (project-level, explicit)
4. ~/.config/oauth1flow/config.toml (user-level, overrides project)
5. Environment variables (highest priority)

Environment variables use the OAUTH1FLOW_ prefix with nested delimiter __.
Example: OAUTH1FLOW_OAUTH1__CONSUMER_KEY, OAUTH1FLOW_SIGNIN__NETWORK_LOSS_TIMEOUT_INTERVAL
"""

from __future__ import annotations

import json
import os
import sys

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .types import SignatureMethod


if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib  # type: ignore[import-not-found]
    except ImportError:
        tomllib = None


def _find_config_files() -> list[Path]:
    """Find all configuration files in order of precedence (lowest first)."""
    files = []

    pyproject = Path("pyproject.toml")
    if pyproject.exists():
        files.append(pyproject)

    project_toml = Path("oauth1flow.toml")
    if project_toml.exists():
        files.append(project_toml)

    if sys.platform == "win32":
        user_config = Path(os.environ.get("APPDATA", "~")) / "oauth1flow" / "config.toml"
    else:
        user_config = Path("~/.config/oauth1flow/config.toml")
    user_config = user_config.expanduser()
    if user_config.exists():
        files.append(user_config)

    env_config = os.environ.get("OAUTH1FLOW_CONFIG_FILE")
    if env_config:
        env_path = Path(env_config)
        if env_path.exists():
            files.append(env_path)

    return files


def _load_toml_config() -> dict[str, Any]:
    """Load and merge all TOML configuration files."""
    if tomllib is None:
        return {}

    merged: dict[str, Any] = {}

    for config_file in _find_config_files():
        try:
            data = tomllib.loads(config_file.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            continue  # Unreadable config files are skipped

        if config_file.name == "pyproject.toml":
            data = data.get("tool", {}).get("oauth1flow", {})

        merged = _deep_merge(merged, data)

    return merged


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _drop_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Remove TOML values that an OAUTH1FLOW_<SECTION>__<FIELD> variable overrides."""
    env_keys = {k.upper() for k in os.environ}
    result: dict[str, Any] = {}
    for section, values in config.items():
        if isinstance(values, dict):
            result[section] = {
                name: value
                for name, value in values.items()
                if f"OAUTH1FLOW_{section}__{name}".upper() not in env_keys
            }
        else:
            result[section] = values
    return result


# Field names that contain sensitive data and must be redacted in output.
_SENSITIVE_FIELDS: set[str] = {
    "consumer_secret",
    "private_key",
    "encryption_key",
}

_REDACTED = "********"


def _toml_value(value: Any) -> str:
    """Render a JSON-mode settings value as a TOML value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    if isinstance(value, str):
        # JSON string escapes are valid TOML basic-string escapes
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class OAuth1Settings(BaseSettings):
    """OAuth 1.0a consumer and provider configuration.

    Environment prefix: OAUTH1FLOW_OAUTH1__
    Example: OAUTH1FLOW_OAUTH1__CONSUMER_KEY=anonymous

    TOML section: [tool.oauth1flow.oauth1]
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH1FLOW_OAUTH1__",
        extra="ignore",
    )

    consumer_key: str = Field(default="", description="Consumer key issued by the provider")
    consumer_secret: str = Field(default="", description="Consumer secret (HMAC-SHA1/PLAINTEXT)")
    private_key: str = Field(default="", description="PEM RSA private key (RSA-SHA1)")
    signature_method: SignatureMethod = Field(
        default=SignatureMethod.HMAC_SHA1,
        description="HMAC-SHA1, RSA-SHA1 or PLAINTEXT",
    )
    callback_url: str = Field(
        default="",
        description="Callback URL registered with the provider",
    )
    scope: str = Field(default="", description="Scope sent with the request-token call")
    service_provider_name: str = Field(default="", description="Display name of the provider")

    request_token_url: str = Field(default="", description="Request-token endpoint")
    authorize_token_url: str = Field(default="", description="User authorization page")
    access_token_url: str = Field(default="", description="Access-token endpoint")
    language: str = Field(default="", description="Locale hint for the authorization page")


class SignInSettings(BaseSettings):
    """Sign-in session behaviour.

    Environment prefix: OAUTH1FLOW_SIGNIN__
    Example: OAUTH1FLOW_SIGNIN__NETWORK_LOSS_TIMEOUT_INTERVAL=0
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH1FLOW_SIGNIN__",
        extra="ignore",
    )

    network_loss_timeout_interval: float = Field(
        default=30.0,
        ge=0.0,
        description="Seconds without network activity before 'network lost' fires (0 disables)",
    )
    initial_display_content: str = Field(
        default="",
        description="HTML shown until the first provider page loads",
    )
    display_name: str = Field(
        default="",
        description="Application name shown by the provider during sign-in",
    )
    cancel_url_pattern: str = Field(
        default="",
        description="Regular expression matching the provider's 'user cancelled' page",
    )
    provider_domains: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description=(
            "Extra domains treated as part of the provider, subdomains included; "
            "list full hosts for providers under shared suffixes such as github.io"
        ),
    )
    save_credentials: bool = Field(
        default=True,
        description="Persist the access token after a successful sign-in",
    )

    @field_validator("provider_domains", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> list[str]:
        """Parse comma-separated strings from env vars."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v or []


class StoreSettings(BaseSettings):
    """Credential store settings.

    Environment prefix: OAUTH1FLOW_STORE__
    Example: OAUTH1FLOW_STORE__BACKEND=keyring
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH1FLOW_STORE__",
        extra="ignore",
    )

    backend: Literal["memory", "keyring", "file"] = Field(
        default="keyring",
        description="Credential backend: memory, keyring, or file",
    )
    service_name: str = Field(
        default="oauth1flow",
        description="Keyring service name under which credentials are stored",
    )
    file_path: str = Field(
        default="~/.config/oauth1flow/credentials.enc",
        description="Location of the encrypted credential file (file backend)",
    )
    encryption_key: str = Field(
        default="",
        description="Fernet key for the file backend",
    )


class TransportSettings(BaseSettings):
    """HTTP transport settings.

    Environment prefix: OAUTH1FLOW_TRANSPORT__
    Example: OAUTH1FLOW_TRANSPORT__TIMEOUT=10
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH1FLOW_TRANSPORT__",
        extra="ignore",
    )

    timeout: float = Field(default=30.0, ge=1.0, description="Request timeout in seconds")
    user_agent: str = Field(default="oauth1flow", description="User-Agent header value")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class LogSettings(BaseSettings):
    """Logging settings.

    Environment prefix: OAUTH1FLOW_LOG__
    Example: OAUTH1FLOW_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH1FLOW_LOG__",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: str = "%(name)s - %(levelname)s - %(message)s"


_SECTIONS: dict[str, type[BaseSettings]] = {
    "oauth1": OAuth1Settings,
    "signin": SignInSettings,
    "store": StoreSettings,
    "transport": TransportSettings,
    "log": LogSettings,
}


class OAuth1FlowSettings(BaseSettings):
    """Main settings aggregating all configuration sections.

    Environment prefix: OAUTH1FLOW__

    Configuration sources (in order of precedence):
    1. Built-in defaults
    2. pyproject.toml [tool.oauth1flow] section
    3. ./oauth1flow.toml (project-level)
    4. ~/.config/oauth1flow/config.toml (user-level, overrides project)
    5. Environment variables (highest priority)
    """

    model_config = SettingsConfigDict(
        env_prefix="OAUTH1FLOW__",
        env_nested_delimiter="__",
        extra="ignore",
    )

    oauth1: OAuth1Settings = Field(default_factory=OAuth1Settings)
    signin: SignInSettings = Field(default_factory=SignInSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    def __init__(self, **data: Any) -> None:
        # Env vars beat TOML files; explicit arguments beat both
        merged = _deep_merge(_drop_env_overrides(_load_toml_config()), data)
        for name, section_cls in _SECTIONS.items():
            value = merged.get(name)
            if isinstance(value, dict):
                merged[name] = section_cls(**value)
        super().__init__(**merged)

    def to_toml(self) -> str:
        """Export settings as TOML string with secrets redacted."""
        lines = ["# oauth1flow configuration", "# Generated by: oauth1flow config --toml", ""]

        section_names = ["oauth1", "signin", "store", "transport", "log"]
        all_data = self.model_dump(
            mode="json",
            exclude=dict.fromkeys(section_names, _SENSITIVE_FIELDS),
        )

        for section_name in section_names:
            lines.append(f"[{section_name}]")
            for field_name, field_value in all_data.get(section_name, {}).items():
                lines.append(f"{field_name} = {_toml_value(field_value)}")
            section_cls = type(getattr(self, section_name))
            lines.extend(
                f'{rn} = "{_REDACTED}"'
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )
            lines.append("")

        return "\n".join(lines)

    def show(self) -> str:
        """Format settings as a readable table."""
        lines = ["oauth1flow configuration", "=" * 60]

        show_sections = [
            ("OAuth 1.0a", "oauth1"),
            ("Sign-in", "signin"),
            ("Credential store", "store"),
            ("Transport", "transport"),
            ("Logging", "log"),
        ]
        all_data = self.model_dump(
            mode="json",
            exclude={attr: _SENSITIVE_FIELDS for _, attr in show_sections},
        )

        for display_name, attr_name in show_sections:
            lines.append(f"\n{display_name}")
            lines.append("-" * 40)
            for field_name, field_value in all_data.get(attr_name, {}).items():
                value_str = str(field_value)
                if len(value_str) > 50:
                    value_str = value_str[:47] + "..."
                lines.append(f"  {field_name:30} = {value_str}")
            section_cls = type(getattr(self, attr_name))
            lines.extend(
                f"  {rn:30} = {_REDACTED}"
                for rn in sorted(_SENSITIVE_FIELDS & section_cls.model_fields.keys())
            )

        return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> OAuth1FlowSettings:
    """Get the global settings instance (cached).

    Call clear_settings() to reload configuration.
    """
    return OAuth1FlowSettings()


def clear_settings() -> None:
    """Clear the cached settings to force reload."""
    get_settings.cache_clear()


def reload_settings() -> OAuth1FlowSettings:
    """Reload settings from all sources."""
    clear_settings()
    return get_settings()
