import logging
from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature
from stora.configs import STORA_SEED, TOKEN_TTL

logger = logging.getLogger(__name__)

SERIALIZER = None  # Will be initialized lazily


def _get_serializer():
    """Get or initialize the SERIALIZER lazily."""
    global SERIALIZER
    if SERIALIZER is None:
        SERIALIZER = URLSafeTimedSerializer(STORA_SEED, salt="stora-session")
    return SERIALIZER


def create_session_token(owner_id: int) -> str:
    """Returns a signed bearer token naming the owner.

    Login lives in the session provider; this exists so tooling and
    tests can mint tokens the API will accept.
    """
    return _get_serializer().dumps({"owner_id": int(owner_id)})


def verify_session_token(token: Optional[str]) -> Optional[int]:
    """Returns the owner id carried by a valid token, else None."""
    if not token:
        return None
    try:
        data = _get_serializer().loads(token, max_age=TOKEN_TTL)
    except BadSignature:
        return None
    if isinstance(data, dict) and isinstance(data.get("owner_id"), int):
        return data["owner_id"]
    logger.warning("Signed token without an owner id rejected")
    return None


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None
