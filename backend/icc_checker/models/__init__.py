from icc_checker.db.base import Base  # noqa: F401
from icc_checker.models.audit import AuditRecord  # noqa: F401
from icc_checker.models.checklist import ChecklistItem  # noqa: F401
from icc_checker.models.store import Store  # noqa: F401
from icc_checker.models.user import AdminSession, User  # noqa: F401

__all__ = [
    "Base",
    "AuditRecord",
    "ChecklistItem",
    "Store",
    "User",
    "AdminSession",
]
