"""Audit logging package."""

from ledgersync.audit.logger import SyncAuditLogger, configure_logging, create_correlation_id
from ledgersync.audit.storage import AuditStorageInterface, InMemoryAuditStorage

__all__ = [
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "SyncAuditLogger",
    "configure_logging",
    "create_correlation_id",
]
