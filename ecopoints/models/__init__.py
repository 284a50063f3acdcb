from ecopoints.models.account import Account, AccountStats
from ecopoints.models.audit_log import AuditLog
from ecopoints.models.ledger_entry import LedgerEntry
from ecopoints.models.voucher_code import VoucherCode
from ecopoints.models.waste_submission import WasteSubmission

__all__ = [
    "Account",
    "AccountStats",
    "AuditLog",
    "LedgerEntry",
    "VoucherCode",
    "WasteSubmission",
]
