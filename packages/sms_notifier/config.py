"""Settings for the notifier.

Settings live in a flat JSON file (the format the desktop app has always
written) and are overlaid by environment variables, which win:

================================  =============================
JSON key                          Environment variable
================================  =============================
``pushbullet_api``                ``SMS_NOTIFIER_PUSHBULLET_API_KEY``
``database_url``                  ``SMS_NOTIFIER_DATABASE_URL`` / ``DATABASE_URL``
``maxPopups``                     -
``autoCloseDelay`` (ms)           -
``position``                      -
``soundEnabled``                  -
``hideTransactionDetails``        -
``storageEnabled``                -
================================  =============================

The file path defaults to ``~/.sms_notifier/config.json`` and can be moved
with ``SMS_NOTIFIER_CONFIG``. A ``.env`` file is loaded first (without
overriding the process environment). No credential has a default value.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .formatting import mask_secret
from .logging_setup import get_logger
from .notifications import Anchor, StackConfig

_logger = get_logger("sms_notifier.config")

CONFIG_PATH_ENV = "SMS_NOTIFIER_CONFIG"
API_KEY_ENV = "SMS_NOTIFIER_PUSHBULLET_API_KEY"
DATABASE_URL_ENVS = ("SMS_NOTIFIER_DATABASE_URL", "DATABASE_URL")
DEFAULT_CONFIG_PATH = Path.home() / ".sms_notifier" / "config.json"


class RelaySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_key: str | None = None

    @field_validator("api_key")
    @classmethod
    def _blank_is_missing(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class PopupSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    position: Anchor = Anchor.TOP_RIGHT
    max_popups: int = Field(default=4, ge=1)
    auto_close_delay_ms: int = Field(default=300_000, ge=0)
    hide_details: bool = False
    sound_enabled: bool = True


class StorageSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    database_url: str | None = None

    @property
    def active(self) -> bool:
        """Storage is used only when enabled *and* a URL is configured."""

        return self.enabled and bool(self.database_url)


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    relay: RelaySettings = Field(default_factory=RelaySettings)
    popup: PopupSettings = Field(default_factory=PopupSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    source: Path | None = None

    def to_stack_config(self) -> StackConfig:
        return StackConfig(
            max_slots=self.popup.max_popups,
            auto_expire_ms=self.popup.auto_close_delay_ms,
            anchor=self.popup.position,
            hide_details=self.popup.hide_details,
        )

    def to_flat(self) -> dict[str, Any]:
        """The on-disk representation (inverse of :func:`settings_from_flat`)."""

        flat: dict[str, Any] = {
            "pushbullet_api": self.relay.api_key or "",
            "maxPopups": self.popup.max_popups,
            "autoCloseDelay": self.popup.auto_close_delay_ms,
            "position": self.popup.position.value,
            "soundEnabled": self.popup.sound_enabled,
            "hideTransactionDetails": self.popup.hide_details,
            "storageEnabled": self.storage.enabled,
        }
        if self.storage.database_url:
            flat["database_url"] = self.storage.database_url
        return flat

    def redacted(self) -> dict[str, Any]:
        """Flat view safe to print: credentials masked."""

        flat = self.to_flat()
        flat["pushbullet_api"] = mask_secret(self.relay.api_key)
        if self.storage.database_url:
            flat["database_url"] = _redact_url(self.storage.database_url)
        return flat


def _redact_url(url: str) -> str:
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    creds, _, host = rest.rpartition("@")
    user = creds.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


def settings_from_flat(flat: Mapping[str, Any]) -> Settings:
    """Build :class:`Settings` from the flat JSON mapping.

    Unknown keys are ignored (older files carry hosted-storage credentials we
    no longer read). ``supabaseEnabled`` is accepted as an alias of
    ``storageEnabled``.
    """

    storage_enabled = flat.get("storageEnabled", flat.get("supabaseEnabled", False))
    try:
        return Settings(
            relay=RelaySettings(api_key=flat.get("pushbullet_api") or None),
            popup=PopupSettings(
                position=flat.get("position") or Anchor.TOP_RIGHT,
                max_popups=flat.get("maxPopups", 4),
                auto_close_delay_ms=flat.get("autoCloseDelay", 300_000),
                hide_details=flat.get("hideTransactionDetails", False),
                sound_enabled=flat.get("soundEnabled", True) is not False,
            ),
            storage=StorageSettings(
                enabled=storage_enabled is True,
                database_url=flat.get("database_url") or None,
            ),
        )
    except ValidationError as e:
        raise ConfigurationError(f"invalid settings: {e}") from e


def config_path(path: str | os.PathLike[str] | None = None) -> Path:
    if path is not None:
        return Path(path)
    env = os.getenv(CONFIG_PATH_ENV)
    return Path(env) if env else DEFAULT_CONFIG_PATH


def _read_flat(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path}: not valid JSON ({e.msg} at line {e.lineno})") from e
    except OSError as e:
        raise ConfigurationError(f"{path}: cannot read settings ({e})") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a JSON object")
    return data


def load_settings(
    path: str | os.PathLike[str] | None = None, *, use_dotenv: bool = True
) -> Settings:
    """Load settings from ``path`` (or the default location) plus environment.

    A missing file is not an error; defaults apply. Malformed content raises
    :class:`ConfigurationError`.
    """

    if use_dotenv:
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            load_dotenv(dotenv_path=dotenv_path, override=False)

    resolved = config_path(path)
    flat = _read_flat(resolved)
    if not flat:
        _logger.debug("no settings file at %s; using defaults", resolved)

    env_key = os.getenv(API_KEY_ENV)
    if env_key:
        flat["pushbullet_api"] = env_key
    for name in DATABASE_URL_ENVS:
        env_url = os.getenv(name)
        if env_url:
            flat["database_url"] = env_url
            break

    settings = settings_from_flat(flat)
    return settings.model_copy(update={"source": resolved})


def save_settings(
    updates: Mapping[str, Any], path: str | os.PathLike[str] | None = None
) -> Path:
    """Merge flat ``updates`` into the settings file and write it back.

    The merged result is validated before anything is written.
    """

    resolved = config_path(path)
    merged = {**_read_flat(resolved), **dict(updates)}
    settings_from_flat(merged)
    try:
        resolved.parent.mkdir(parents=True, exist_ok=True)
        resolved.write_text(json.dumps(merged, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"{resolved}: cannot write settings ({e})") from e
    _logger.info("settings saved to %s", resolved)
    return resolved


__all__ = [
    "RelaySettings",
    "PopupSettings",
    "StorageSettings",
    "Settings",
    "settings_from_flat",
    "config_path",
    "load_settings",
    "save_settings",
    "CONFIG_PATH_ENV",
    "API_KEY_ENV",
    "DATABASE_URL_ENVS",
]
