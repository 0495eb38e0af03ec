"""
Settings loader (``reimbursement_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into a frozen ``KernelSettings``.
Runtime callers go through ``reimbursement_config.get_active_config()``;
this module is the tooling underneath it.

Invariants enforced
-------------------
* Unknown top-level sections and wrongly typed values raise ``ValueError``;
  nothing is silently coerced.
* ``compute_checksum`` is deterministic over the parsed YAML, so the config
  trace identifies exactly which settings were in force.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from reimbursement_config.schema import DEFAULT_DATABASE_URL, KernelSettings

ENV_DATABASE_URL = "REIMBURSEMENT_DATABASE_URL"
ENV_LOG_LEVEL = "REIMBURSEMENT_LOG_LEVEL"

_SECTIONS = frozenset({"config_id", "database", "logging", "allocation", "claims"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Settings section {name!r} must be a mapping")
    return value


def _bool(section: Mapping[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"Setting {key!r} must be true or false, got {value!r}")
    return value


def normalize_log_level(value: Any) -> str:
    """Upper-case stdlib level name; ValueError for anything else."""
    name = str(value).strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ValueError(f"Unknown log level {value!r}")
    return name


def parse_settings(data: Mapping[str, Any], checksum: str = "") -> KernelSettings:
    """
    Parse a settings mapping into ``KernelSettings``.

    Missing sections and keys take the schema defaults.

    Raises:
        ValueError: unknown section or invalid value.
    """
    unknown = sorted(set(data) - _SECTIONS)
    if unknown:
        raise ValueError(f"Unknown settings sections: {unknown}")

    database = _section(data, "database")
    logging_section = _section(data, "logging")
    allocation = _section(data, "allocation")
    claims = _section(data, "claims")

    max_attempts = allocation.get("max_attempts", 10)
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1:
        raise ValueError(
            f"allocation.max_attempts must be a positive integer, got {max_attempts!r}"
        )

    database_url = database.get("url", DEFAULT_DATABASE_URL)
    if not isinstance(database_url, str) or not database_url.strip():
        raise ValueError("database.url must be a non-empty string")

    return KernelSettings(
        database_url=database_url.strip(),
        log_level=normalize_log_level(logging_section.get("level", "INFO")),
        allocation_max_attempts=max_attempts,
        strict_claim_types=_bool(claims, "strict_types", False),
        degraded_fallback_enabled=_bool(allocation, "degraded_fallback_enabled", True),
        echo_sql=_bool(database, "echo_sql", False),
        config_id=str(data.get("config_id", "default")),
        checksum=checksum,
    )


def load_settings(path: Path) -> KernelSettings:
    """Load and parse the YAML settings file at ``path``."""
    data = load_yaml_file(path)
    return parse_settings(data, checksum=compute_checksum(data))


def apply_env_overrides(
    settings: KernelSettings, environ: Mapping[str, str]
) -> KernelSettings:
    """Apply ``REIMBURSEMENT_*`` environment overrides (blank values ignored)."""
    changes: dict[str, Any] = {}
    database_url = (environ.get(ENV_DATABASE_URL) or "").strip()
    if database_url:
        changes["database_url"] = database_url
    log_level = (environ.get(ENV_LOG_LEVEL) or "").strip()
    if log_level:
        changes["log_level"] = normalize_log_level(log_level)
    return replace(settings, **changes) if changes else settings
