"""
Kernel settings schema.

Defines the typed, frozen form of the YAML settings file.  The loader parses
YAML into ``KernelSettings``; ``get_active_config()`` returns it.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite:///reimbursements.db"


@dataclass(frozen=True)
class KernelSettings:
    """Runtime settings for the reimbursement kernel.

    Guarantees:
        ``allocation_max_attempts >= 1``; ``log_level`` is an upper-case
        stdlib level name.
    """

    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    allocation_max_attempts: int = 10
    strict_claim_types: bool = False
    degraded_fallback_enabled: bool = True
    echo_sql: bool = False
    config_id: str = "default"
    checksum: str = ""
