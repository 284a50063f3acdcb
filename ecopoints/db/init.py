import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from ecopoints.core.config import get_settings
from ecopoints.models.account import Account
from ecopoints.models.audit_log import AuditLog
from ecopoints.models.ledger_entry import LedgerEntry
from ecopoints.models.voucher_code import VoucherCode
from ecopoints.models.waste_submission import WasteSubmission

DOCUMENT_MODELS = [
    Account,
    LedgerEntry,
    VoucherCode,
    WasteSubmission,
    AuditLog,
]


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


async def init_db(client: AsyncIOMotorClient | None = None) -> None:
    settings = get_settings()
    if client is None:
        # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
        kwargs = {}
        if _use_tls(settings.mongodb_uri):
            kwargs["tlsCAFile"] = certifi.where()
            kwargs["tlsDisableOCSPEndpointCheck"] = True
        client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
