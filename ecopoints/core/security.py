import hashlib
import secrets
import string
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ecopoints.core.config import get_settings

SESSION_MAX_AGE = 7 * 24 * 3600  # 7 days

VOUCHER_ALPHABET = string.ascii_uppercase + string.digits


def get_session_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="ecopoints-session",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_session_cookie(payload: dict[str, Any]) -> str:
    serializer = get_session_serializer()
    return serializer.dumps(payload)


def load_session_cookie(cookie_value: str, max_age_seconds: int = SESSION_MAX_AGE) -> dict[str, Any] | None:
    serializer = get_session_serializer()
    try:
        return serializer.loads(cookie_value, max_age=max_age_seconds)
    except (BadSignature, SignatureExpired):
        return None


def generate_voucher_code(length: int = 12) -> str:
    """Random code drawn from [A-Z0-9]."""
    return "".join(secrets.choice(VOUCHER_ALPHABET) for _ in range(length))
