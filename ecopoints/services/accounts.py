"""Account creation and session payloads."""

from pymongo.errors import DuplicateKeyError

from ecopoints.core.exceptions import ValidationError
from ecopoints.models.account import Account


async def create_account(
    full_name: str,
    email: str,
    phone: str | None = None,
    address: str = "",
    role: str = "user",
    opening_balance: int = 0,
) -> Account:
    """Register an account. `opening_balance` seeds the balance the ledger chain starts from."""
    if opening_balance < 0:
        raise ValidationError("Opening balance cannot be negative")
    account = Account(
        full_name=full_name.strip(),
        email=email.strip().lower(),
        phone=phone,
        address=address.strip(),
        role=role,
        points=opening_balance,
        opening_balance=opening_balance,
    )
    try:
        await account.insert()
    except DuplicateKeyError as e:
        raise ValidationError("Email already registered", details={"email": account.email}) from e
    return account


def session_payload_for_account(account: Account) -> dict:
    return {"account_id": str(account.id), "session_version": account.session_version}

