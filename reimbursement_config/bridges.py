"""
Config -> Kernel bridges.

Builds configured kernel objects from ``KernelSettings``.  These live here
(the producer) because the kernel must NEVER import reimbursement_config.

Usage:
    settings = get_active_config()
    service = build_request_service(settings)
"""

from __future__ import annotations

from reimbursement_config.schema import KernelSettings
from reimbursement_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
)
from reimbursement_kernel.domain.clock import Clock
from reimbursement_kernel.logging_config import configure_logging
from reimbursement_kernel.services.request_service import RequestService
from reimbursement_kernel.services.request_store import RequestStore
from reimbursement_kernel.services.sql_request_store import SqlRequestStore


def build_sql_store(settings: KernelSettings) -> SqlRequestStore:
    """Initialize the engine from ``settings``, ensure tables, return a store."""
    init_engine_from_url(settings.database_url, echo=settings.echo_sql)
    create_tables()
    return SqlRequestStore(get_session_factory())


def build_request_service(
    settings: KernelSettings,
    store: RequestStore | None = None,
    clock: Clock | None = None,
) -> RequestService:
    """A RequestService wired with the allocation and claim settings.

    Without ``store`` a SqlRequestStore on ``settings.database_url`` is used.
    """
    configure_logging(level=settings.log_level)
    return RequestService(
        store if store is not None else build_sql_store(settings),
        clock,
        max_allocation_attempts=settings.allocation_max_attempts,
        strict_claim_types=settings.strict_claim_types,
        degraded_fallback_enabled=settings.degraded_fallback_enabled,
    )
