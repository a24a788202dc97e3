"""Configuration settings for pop3-trigger using pydantic-settings."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_core import ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from pop3_trigger.exceptions import ConfigError
from pop3_trigger.poller import DEFAULT_LIMIT, MAX_LIMIT, MIN_POLL_INTERVAL, PollOptions

MIN_COMMAND_TIMEOUT = 5  # seconds


class MailboxConfig(BaseModel):
    """POP3 mailbox configuration.

    Attributes:
        id: Unique identifier for the mailbox (e.g., "support").
        host: POP3 server hostname.
        port: POP3 server port (default: 995 for POP3S).
        secure: Whether to use TLS (default: True).
        allow_unverified: Accept self-signed or otherwise unverified certificates.
        username: Account username.
        timeout: Per-command timeout in seconds.
        poll_interval: Seconds between polls.
        limit: Maximum new messages emitted per poll.
        emit_existing: Emit messages already present on the first poll.
        delete_after_emit: Delete messages from the server after emitting them.
        encoding: Charset used to decode server responses.
    """

    id: str = Field(
        ...,
        min_length=1,
        pattern=r"^[a-zA-Z][a-zA-Z0-9_-]*$",
        description="Unique mailbox identifier (alphanumeric, hyphens, underscores)",
    )
    host: str = Field(..., min_length=1, description="POP3 server hostname")
    port: int = Field(default=995, ge=1, le=65535, description="POP3 server port")
    secure: bool = Field(default=True, description="Use TLS connection")
    allow_unverified: bool = Field(
        default=False,
        description="Disable TLS certificate validation. Use only if required by your server.",
    )
    username: str = Field(..., min_length=1, description="Account username")
    timeout: float = Field(default=30, ge=MIN_COMMAND_TIMEOUT, description="POP3 command timeout")
    poll_interval: float = Field(
        default=60,
        ge=MIN_POLL_INTERVAL,
        description="How often to check the mailbox for new messages",
    )
    limit: int = Field(
        default=DEFAULT_LIMIT,
        ge=1,
        le=MAX_LIMIT,
        description="Maximum number of new messages to emit per polling cycle",
    )
    emit_existing: bool = Field(
        default=False,
        description="Whether to emit messages already in the mailbox on the first run",
    )
    delete_after_emit: bool = Field(
        default=False,
        description="Delete messages after they have been emitted",
    )
    encoding: str = Field(default="utf-8", description="Charset for decoding server responses")

    @field_validator("encoding")
    @classmethod
    def _validate_encoding(cls, v: str) -> str:
        try:
            "".encode(v)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {v}") from e
        return v

    def poll_options(self) -> PollOptions:
        return PollOptions(
            limit=self.limit,
            emit_existing=self.emit_existing,
            delete_after_emit=self.delete_after_emit,
            poll_interval=self.poll_interval,
        )


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source that loads configuration from a YAML file.

    Looks for config file in the following order:
    1. POP3T_CONFIG_FILE environment variable
    2. ./pop3-trigger.yaml (current directory)
    3. $XDG_CONFIG_HOME/pop3-trigger/config.yaml (defaults to ~/.config)
    """

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Get field value from YAML config."""
        yaml_data = self._load_yaml_config()
        field_value = yaml_data.get(field_name)
        return field_value, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return all settings from YAML config."""
        return self._load_yaml_config()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load and cache YAML config file."""
        if not hasattr(self, "_yaml_data"):
            self._yaml_data = self._read_yaml_file()
        return self._yaml_data

    def _read_yaml_file(self) -> dict[str, Any]:
        xdg_config = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        config_paths = [
            os.environ.get("POP3T_CONFIG_FILE"),
            Path.cwd() / "pop3-trigger.yaml",
            Path(xdg_config) / "pop3-trigger" / "config.yaml",
        ]

        for path in config_paths:
            if not path:
                continue
            path_obj = Path(path)
            if not path_obj.exists():
                continue
            try:
                with open(path_obj) as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                mark = getattr(e, "problem_mark", None)
                raise ConfigError(
                    f"Invalid YAML syntax: {getattr(e, 'problem', None) or e}",
                    file_path=str(path_obj),
                    line=mark.line + 1 if mark else None,
                    col=mark.column + 1 if mark else None,
                ) from e
            except OSError as e:
                raise ConfigError(f"Cannot read config file: {e}", file_path=str(path_obj)) from e

            if data is None:
                return {}
            if not isinstance(data, dict):
                raise ConfigError("Top level must be a mapping", file_path=str(path_obj))
            return data

        return {}


def _parse_validation_error(error: ValidationError) -> str:
    """Convert Pydantic ValidationError to user-friendly message."""
    errors = error.errors()
    if not errors:
        return "Unknown validation error"

    err = errors[0]
    loc = err.get("loc", ())
    msg = err.get("msg", "")
    error_type = err.get("type", "")

    if error_type == "missing" and loc:
        field_name = loc[-1]
        if "mailboxes" in [str(part) for part in loc]:
            return (
                f"Mailbox is missing required field '{field_name}'. "
                "Required fields for mailboxes: id, host, username"
            )
        return f"Missing required field '{field_name}'"

    if error_type == "string_pattern_mismatch" and loc and str(loc[-1]) == "id":
        return (
            "Mailbox ID must start with a letter and contain only letters, numbers, "
            "hyphens, and underscores (e.g., 'support', 'sales-inbox')"
        )

    if loc:
        field_name = ".".join(str(part) for part in loc)
        return f"Invalid value for '{field_name}': {msg}"

    return str(error)


class Settings(BaseSettings):
    """Application settings loaded from environment variables with POP3T_ prefix.

    Mailboxes are configured via YAML file:
        mailboxes:
          - id: "support"
            host: "pop.example.com"
            username: "support@example.com"
            delete_after_emit: true

    Passwords are retrieved via credential backends
    (e.g., POP3T_MAILBOX_SUPPORT_PASSWORD environment variable).
    """

    model_config = SettingsConfigDict(env_prefix="POP3T_")

    mailboxes: list[MailboxConfig] = []

    # Directory for persisted known-uid state (default: platform data dir)
    state_dir: Path | None = None

    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("mailboxes")
    @classmethod
    def _validate_unique_ids(cls, v: list[MailboxConfig]) -> list[MailboxConfig]:
        seen: set[str] = set()
        for mailbox in v:
            if mailbox.id in seen:
                raise ValueError(f"Duplicate mailbox id: {mailbox.id}")
            seen.add(mailbox.id)
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML config."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            dotenv_settings,
            file_secret_settings,
        )


def get_settings_eager() -> Settings:
    """Load settings with eager validation at startup.

    Raises:
        ConfigError: If configuration is invalid, with a user-friendly message.
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigError(_parse_validation_error(e)) from e
