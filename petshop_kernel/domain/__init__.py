"""Pure domain layer: clock, DTOs, reconciliation, identity and catalog."""

from petshop_kernel.domain.catalog import ServiceCatalog, build_completion_draft
from petshop_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    business_today,
)
from petshop_kernel.domain.dtos import (
    AppointmentInfo,
    CashRegisterInfo,
    ClosingPreview,
    CompletionResult,
    DashboardStats,
    FinancialRecordInfo,
    LedgerSummary,
    RecordDraft,
    RecordType,
    Tender,
)
from petshop_kernel.domain.identity import IdentityVerifier, StaticIdentityVerifier
from petshop_kernel.domain.reconciliation import (
    Discrepancy,
    DiscrepancyStatus,
    cash_totals,
    classify_discrepancy,
    expected_cash,
    is_cash,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "business_today",
    "AppointmentInfo",
    "CashRegisterInfo",
    "ClosingPreview",
    "CompletionResult",
    "DashboardStats",
    "FinancialRecordInfo",
    "LedgerSummary",
    "RecordDraft",
    "RecordType",
    "Tender",
    "IdentityVerifier",
    "StaticIdentityVerifier",
    "ServiceCatalog",
    "build_completion_draft",
    "Discrepancy",
    "DiscrepancyStatus",
    "cash_totals",
    "classify_discrepancy",
    "expected_cash",
    "is_cash",
]
