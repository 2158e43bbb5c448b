"""Client configuration.

Sources, lowest to highest precedence:
1. Model defaults
2. YAML file (`--config PATH`)
3. Environment variables (ESL_HOST, ESL_PORT, ESL_PASSWORD, ESL_READ_TIMEOUT)
4. Explicit overrides (CLI flags)

Example YAML:
    host: 10.0.0.5
    port: 8021
    password: ClueCon
    subscription: events json ALL
    action: bgapi originate sofia/internal/1000%127.0.0.1 &park
    completion:
      header: Answer-State
      value: hangup
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .protocol.commands import DEFAULT_TERMINATOR, check_command_text
from .protocol.events import Event

logger = logging.getLogger(__name__)

ENV_PREFIX = "ESL_"
ENV_FIELDS = ("host", "port", "password", "read_timeout")


class CompletionRule(BaseModel):
    """Completion signal: `header` equals `value` on a received event."""

    header: str
    value: str

    def matches(self, event: Event) -> bool:
        return event.has_header(self.header) and event.get(self.header) == self.value

    @classmethod
    def parse(cls, text: str) -> CompletionRule:
        """Parse `Header=Value` (as given on the command line)."""
        header, sep, value = text.partition("=")
        if not sep or not header.strip():
            raise ValueError(f"Expected HEADER=VALUE, got {text!r}")
        return cls(header=header.strip(), value=value.strip())


class ClientConfig(BaseModel):
    """Everything needed to run one session, passed explicitly at construction."""

    host: str = "127.0.0.1"
    port: int = Field(default=8021, ge=1, le=65535)
    password: str = "ClueCon"
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float | None = Field(default=None, gt=0)
    command_terminator: str = DEFAULT_TERMINATOR
    expand_event_bodies: bool = True
    subscription: str | None = "events json ALL"
    action: str | None = None
    completion: CompletionRule | None = None

    @field_validator("command_terminator")
    @classmethod
    def _terminator_is_line_break(cls, value: str) -> str:
        if value not in ("\n", "\n\n", "\r\n", "\r\n\r\n"):
            raise ValueError(f"Unsupported command terminator: {value!r}")
        return value

    @field_validator("subscription", "action")
    @classmethod
    def _single_command_line(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return check_command_text(value)

    def redacted(self) -> dict[str, Any]:
        """Config as a dict with the credential masked, for display."""
        data = self.model_dump()
        data["password"] = "********"
        return data


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect ESL_* variables that map onto config fields."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, str] = {}
    for name in ENV_FIELDS:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value:
            overrides[name] = value
    return overrides


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> ClientConfig:
    """Build a ClientConfig from file, environment and explicit overrides.

    Overrides whose value is None are ignored, so unset CLI options can be
    passed straight through.

    Raises:
        FileNotFoundError: `path` does not exist
        ValueError: The YAML document is not a mapping
        pydantic.ValidationError: A value fails validation
    """
    data: dict[str, Any] = {}

    if path is not None:
        with open(path) as f:
            loaded = yaml.safe_load(f)
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        data.update(loaded)
        logger.debug(f"Loaded config from {path}")

    data.update(env_overrides(environ))
    data.update({key: value for key, value in overrides.items() if value is not None})
    return ClientConfig.model_validate(data)
