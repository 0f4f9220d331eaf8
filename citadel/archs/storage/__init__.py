"""Per-app storage: SQLite databases, scoped files and the SQL guardrail."""

from .scoped_path import atomic_write, resolve_scoped_file, resolve_scoped_path
from .sql_guardrails import BLOCKED_KEYWORDS, assert_sql_allowed, find_sql_violation
from .tenant_store import DB_FILENAME, ExecuteResult, TenantStoreHandle, TenantStoreManager

__all__ = [
    "BLOCKED_KEYWORDS",
    "DB_FILENAME",
    "ExecuteResult",
    "TenantStoreHandle",
    "TenantStoreManager",
    "assert_sql_allowed",
    "atomic_write",
    "find_sql_violation",
    "resolve_scoped_file",
    "resolve_scoped_path",
]
