"""
Runtime settings for the aflm engine.

Defines EngineSettings, a frozen dataclass carrying everything that is a
deployment choice rather than form structure: lookup endpoint and timing,
submission endpoint, attachment limits.

Precedence
- env (AFLM_*) > YAML settings file > defaults.

Notes
- debounce_seconds defaults to the 0.8 s quiet interval of the address lookup.
- lookup_timeout_seconds bounds a hung lookup; a timeout is reported like any
  other lookup failure and is never retried.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional, Tuple

import yaml

from aflm.errors import ConfigError

DEFAULT_LOOKUP_BASE_URL = "https://cdi-gateway.isha.in/contactinfovalidation/api"


@dataclass(frozen=True)
class EngineSettings:
    """
    Attributes:
        lookup_base_url: Base URL; requests go to {base}/countries/{ISO2}/pincodes/{code}.
        debounce_seconds: Quiet interval after the last address edit before a lookup.
        lookup_timeout_seconds: HTTP timeout of one lookup request.
        min_postal_code_length: Shortest postal code worth looking up.
        submission_url: Endpoint receiving the JSON payload (None disables submit).
        submission_timeout_seconds: HTTP timeout of the submission POST.
        max_file_size_mb: Upper bound for every attachment.
        accepted_file_types: MIME types accepted for attachments.
        text_area_max_length: Length cap of free-text answers.
        previous_application_years: How many past academic years are offered.
    """

    lookup_base_url: str = DEFAULT_LOOKUP_BASE_URL
    debounce_seconds: float = 0.8
    lookup_timeout_seconds: float = 10.0
    min_postal_code_length: int = 3
    submission_url: Optional[str] = None
    submission_timeout_seconds: float = 30.0
    max_file_size_mb: float = 5.0
    accepted_file_types: Tuple[str, ...] = ("image/jpeg", "image/png", "application/pdf")
    text_area_max_length: int = 200
    previous_application_years: int = 5

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)

    def __post_init__(self) -> None:
        if self.debounce_seconds < 0:
            raise ConfigError("debounce_seconds must be >= 0")
        if self.lookup_timeout_seconds <= 0:
            raise ConfigError("lookup_timeout_seconds must be > 0")
        if self.submission_timeout_seconds <= 0:
            raise ConfigError("submission_timeout_seconds must be > 0")
        if self.min_postal_code_length < 1:
            raise ConfigError("min_postal_code_length must be >= 1")
        if self.max_file_size_mb <= 0:
            raise ConfigError("max_file_size_mb must be > 0")
        if self.text_area_max_length < 1:
            raise ConfigError("text_area_max_length must be >= 1")
        if self.previous_application_years < 1:
            raise ConfigError("previous_application_years must be >= 1")

    # Loaders with precedence: env > YAML > defaults.

    @classmethod
    def _apply_mapping(cls, base: EngineSettings, cfg: Mapping[str, Any] | None) -> EngineSettings:
        """Apply a loose mapping onto settings, coercing to each field's type."""
        if cfg is None:
            return base
        if not isinstance(cfg, Mapping):
            raise ConfigError(f"Settings must be a mapping, got {type(cfg).__name__}")

        known = {f.name: f for f in fields(cls)}
        changes: dict[str, Any] = {}
        for key, value in cfg.items():
            if key not in known:
                raise ConfigError(f"Unknown setting: {key}")
            current = getattr(base, key)
            try:
                if key == "accepted_file_types":
                    if isinstance(value, str):
                        value = [v.strip() for v in value.split(",") if v.strip()]
                    changes[key] = tuple(str(v) for v in value)
                elif key == "submission_url":
                    changes[key] = str(value) if value else None
                elif isinstance(current, float):
                    changes[key] = float(value)
                elif isinstance(current, int):
                    changes[key] = int(value)
                else:
                    changes[key] = str(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid value for {key}: {value!r}") from e
        return replace(base, **changes)

    @classmethod
    def from_env(cls, base: EngineSettings | None = None, prefix: str = "AFLM_") -> EngineSettings:
        """
        Build settings from environment variables, e.g. AFLM_DEBOUNCE_SECONDS,
        AFLM_LOOKUP_BASE_URL, AFLM_ACCEPTED_FILE_TYPES (comma separated).
        """
        s = base or cls()
        mapping: dict[str, Any] = {}
        for f in fields(cls):
            v = os.getenv(prefix + f.name.upper())
            if v:
                mapping[f.name] = v
        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_yaml(cls, path: str, base: EngineSettings | None = None) -> EngineSettings:
        """Load settings from a YAML file. A top-level `aflm:` section is honoured."""
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except FileNotFoundError:
            raise ConfigError(f"Settings file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Settings file is not valid YAML: {path}") from e
        if isinstance(data, Mapping) and isinstance(data.get("aflm"), Mapping):
            data = data["aflm"]
        return cls._apply_mapping(base or cls(), data)

    @classmethod
    def load(cls, path: str | None = None, env_prefix: str = "AFLM_") -> EngineSettings:
        """Defaults, then the YAML file (if given), then the environment."""
        s = cls()
        if path:
            s = cls.from_yaml(path, base=s)
        return cls.from_env(base=s, prefix=env_prefix)
