"""
Configuration loading, validation and the configuration provider.

Settings live in a JSON file under a ``crash_reporter`` section.  String
values may reference the environment as ``${ENV_VAR:-default}``; a ``.env``
file next to the working directory is loaded first.

The pipeline never reads settings directly.  It talks to a
:class:`Configuration` provider, so host applications can subclass it to
resolve users or versions their own way.
"""

import json
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from dotenv import load_dotenv

from .constants import (
    DEFAULT_BACKTRACE_FOLDER,
    DEFAULT_CONFIG_PATH,
    DEFAULT_MAIL_BACKEND,
    DEFAULT_REDACTED_FIELDS,
    MAIL_BACKENDS,
    NO_USER,
    RedactedFields,
)

_SECTION = "crash_reporter"

_REQUIRED_KEYS: List[str] = ["backtrace_folder", "sender", "receiver"]

_REDACTION_SOURCES = ("request", "server", "headers", "cookies")


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load settings from a JSON file and resolve ``${ENV_VAR:-default}``
    placeholders in all string values.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    load_dotenv()
    full_path = Path(config_path)

    if not full_path.exists():
        raise ConfigError(f"Configuration file not found: {full_path}")

    try:
        with open(full_path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {full_path}: {exc}") from exc

    return _resolve(config)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate a settings dict.

    Returns:
        A list of human-readable error strings.  Empty means valid.
    """
    errors: List[str] = []

    section = config.get(_SECTION)
    if not isinstance(section, dict):
        return [f"Missing required config section: '{_SECTION}'"]

    for key in _REQUIRED_KEYS:
        if not section.get(key):
            errors.append(f"Missing required key '{key}' in config section '{_SECTION}'")

    backend = section.get("mail_backend", DEFAULT_MAIL_BACKEND)
    if backend not in MAIL_BACKENDS:
        errors.append(
            f"Unknown mail_backend '{backend}'; expected one of {sorted(MAIL_BACKENDS)}"
        )

    folder = str(section.get("backtrace_folder", ""))
    if folder.startswith("${"):
        errors.append(
            f"backtrace_folder is an unresolved placeholder: '{folder}'. "
            "Set the referenced environment variable."
        )

    redacted = section.get("redacted_fields", {})
    for source in redacted:
        if source not in _REDACTION_SOURCES:
            errors.append(f"Unknown redacted_fields source '{source}'")

    return errors


# ── Configuration providers ──────────────────────────────────────


class Configuration:
    """Provider interface consumed by the pipeline.

    Subclasses override what they need; the defaults are safe for a
    non-production process.
    """

    def is_production_environment(self) -> bool:
        return False

    def get_backtrace_folder(self) -> str:
        return DEFAULT_BACKTRACE_FOLDER

    def get_sender(self) -> str:
        return "Crash Reporter <no-reply@example.com>"

    def get_receiver(self) -> List[str]:
        return ["example@example.net"]

    def get_user_information(self, identity: Any) -> str:
        """Render the identity of the user who hit the fault as one string."""
        if identity is None:
            return NO_USER
        for attr in ("username", "email", "name"):
            if isinstance(identity, Mapping):
                value = identity.get(attr)
            else:
                value = getattr(identity, attr, None)
            if value:
                return str(value)
        return str(identity)

    def get_system_version(self) -> str:
        return "unknown"

    def filter_cookie_names(self) -> Optional[frozenset]:
        """Cookie names to redact instead of the defaults, or ``None``."""
        return None

    def get_redacted_fields(self) -> RedactedFields:
        cookies = self.filter_cookie_names()
        if cookies is None:
            return DEFAULT_REDACTED_FIELDS
        return RedactedFields(
            request=DEFAULT_REDACTED_FIELDS.request,
            server=DEFAULT_REDACTED_FIELDS.server,
            headers=DEFAULT_REDACTED_FIELDS.headers,
            cookies=frozenset(cookies),
        )


class EmptyConfiguration(Configuration):
    """Configuration with every default in place; never reports."""


class SettingsConfiguration(Configuration):
    """Configuration backed by the ``crash_reporter`` section of a settings dict."""

    def __init__(self, settings: Dict[str, Any]):
        errors = validate_config(settings)
        if errors:
            raise ConfigError("; ".join(errors))
        self.settings = settings[_SECTION]

    @classmethod
    def from_file(cls, config_path: Union[str, Path] = DEFAULT_CONFIG_PATH):
        return cls(load_config(config_path))

    def is_production_environment(self) -> bool:
        return as_bool(self.settings.get("production", False))

    def get_backtrace_folder(self) -> str:
        return str(self.settings["backtrace_folder"]).rstrip("/")

    def get_sender(self) -> str:
        return self.settings["sender"]

    def get_receiver(self) -> List[str]:
        return split_addresses(self.settings["receiver"])

    def get_system_version(self) -> str:
        return str(self.settings.get("system_version", "unknown"))

    def filter_cookie_names(self) -> Optional[frozenset]:
        names = self.settings.get("filter_cookie_names")
        if names is None:
            return None
        return frozenset(names)

    def get_redacted_fields(self) -> RedactedFields:
        base = super().get_redacted_fields()
        overrides = self.settings.get("redacted_fields") or {}
        if not overrides:
            return base
        return RedactedFields(
            **{
                source: frozenset(overrides.get(source, getattr(base, source)))
                for source in _REDACTION_SOURCES
            }
        )


def split_addresses(value: Union[str, List[str], None]) -> List[str]:
    """Accept ``'a@x.com, b@y.com'`` or a list; drop empties."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.replace(";", ",").split(",")
    return [v.strip() for v in value if v and v.strip()]


# ── Private helpers ──────────────────────────────────────────────

_PLACEHOLDER_RE = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _resolve(obj: Any) -> Any:
    """Recursively resolve ``${ENV_VAR:-default}`` in string values."""
    if isinstance(obj, str):
        return _PLACEHOLDER_RE.sub(_replace_match, obj)
    elif isinstance(obj, dict):
        return {k: _resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve(v) for v in obj]
    return obj


def _replace_match(m: re.Match) -> str:
    var = m.group(1)
    default = m.group(2) if m.group(2) is not None else ""
    return os.environ.get(var, default)


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
