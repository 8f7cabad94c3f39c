"""Read-only query selectors returning frozen DTOs."""

from transfer_kernel.selectors.audit_selector import AuditEntryView, AuditSelector, AuditTrail
from transfer_kernel.selectors.case_selector import (
    AccountsView,
    AttachmentView,
    CaseSelector,
    CaseSnapshot,
    ClearanceView,
    DeedView,
    ReviewView,
    StageGraphSelector,
)

__all__ = [
    "AuditEntryView",
    "AuditSelector",
    "AuditTrail",
    "AccountsView",
    "AttachmentView",
    "CaseSelector",
    "CaseSnapshot",
    "ClearanceView",
    "DeedView",
    "ReviewView",
    "StageGraphSelector",
]
