"""
reimbursement_config -- single public entrypoint for kernel settings.

Responsibility:
    ``get_active_config()`` is the only way to obtain settings at runtime.
    No other component reads settings files or ``REIMBURSEMENT_*``
    environment variables directly.

Architecture position:
    Configuration layer.  Sits above ``reimbursement_kernel``; the kernel
    MUST NEVER import from this package.  ``bridges`` turns settings into
    configured kernel objects.

Audit relevance:
    Every call emits a ``REIMBURSEMENT_CONFIG_TRACE`` log entry with the
    config id, checksum and effective values, so any run can be tied back
    to the settings that governed it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from reimbursement_config.loader import apply_env_overrides, load_settings
from reimbursement_config.schema import KernelSettings

_logger = logging.getLogger("reimbursement_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> KernelSettings:
    """The ONLY public settings entrypoint.

    Args:
        config_path: Settings file to read.  Defaults to
            ``reimbursement_config/sets/default.yaml``.
        environ: Environment to read overrides from.  Defaults to
            ``os.environ``.

    Raises:
        FileNotFoundError: settings file missing.
        ValueError: invalid settings.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    settings = apply_env_overrides(
        load_settings(path), os.environ if environ is None else environ,
    )

    _logger.info(
        "REIMBURSEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "REIMBURSEMENT_CONFIG_TRACE",
            "config_id": settings.config_id,
            "checksum": settings.checksum,
            "config_path": str(path),
            "log_level": settings.log_level,
            "allocation_max_attempts": settings.allocation_max_attempts,
            "strict_claim_types": settings.strict_claim_types,
            "degraded_fallback_enabled": settings.degraded_fallback_enabled,
        },
    )
    return settings


__all__ = [
    "KernelSettings",
    "get_active_config",
]
