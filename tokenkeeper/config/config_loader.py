"""Configuration loading utilities."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..constants import DEFAULT_CONF_FILE
from ..errors.handling import log_error
from ..errors.internal import ConfigError
from .model import CredentialSettings


class ConfigLoader:
    """Loads and validates credential settings from a JSON file.

    Accepted layouts: ``{"credentials": [...]}``, a bare list of entries, or
    a single entry object.
    """

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self.path = str(path) if path is not None else None

    def resolve_path(self) -> str:
        return self.path or os.environ.get("TOKENKEEPER_CONF_FILE", DEFAULT_CONF_FILE)

    def load_raw(self, path: str) -> list[dict[str, Any]]:
        """Read the raw credential entries from ``path``.

        Raises:
            ConfigError: If the file is missing or not valid JSON.
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ConfigError(f"Configuration file not found path={path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read configuration path={path}: {e}") from e
        if isinstance(data, dict) and "credentials" in data:
            data = data["credentials"]
        elif isinstance(data, dict) and "name" in data:
            data = [data]
        if not isinstance(data, list):
            raise ConfigError(f"Unrecognized configuration layout path={path}")
        return [entry for entry in data if isinstance(entry, dict)]

    def validate(self, raw: list[dict[str, Any]]) -> list[CredentialSettings]:
        """Validate entries, skipping invalid ones and duplicate names."""
        valid: list[CredentialSettings] = []
        seen: set[str] = set()
        for index, entry in enumerate(raw):
            try:
                settings = CredentialSettings.from_dict(entry)
            except ValidationError as e:
                log_error(
                    "Invalid credential configuration skipped",
                    ConfigError(str(e.errors(include_url=False, include_input=False))),
                    context={"index": index, "name": entry.get("name")},
                )
                continue
            if settings.name in seen:
                logging.warning(
                    f"⚠️ Duplicate credential name skipped name={settings.name} index={index}"
                )
                continue
            seen.add(settings.name)
            valid.append(settings)
        return valid

    def get_configuration(self) -> list[CredentialSettings]:
        """Load and validate credential settings.

        Raises:
            ConfigError: If the file cannot be read or no valid entry remains.
        """
        path = self.resolve_path()
        settings = self.validate(self.load_raw(path))
        if not settings:
            raise ConfigError(f"No valid credential configurations found path={path}")
        logging.info(
            f"✅ Valid credential configurations found count={len(settings)} path={path}"
        )
        return settings
