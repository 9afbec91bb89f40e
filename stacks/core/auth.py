import logging
from typing import Optional
from itsdangerous import URLSafeTimedSerializer, BadSignature
from stacks.configs import SEED, SESSION_TTL
from stacks.core.permissions import Caller
from stacks.core.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

SERIALIZER = None  # Will be initialized lazily
COOKIE_TTL = SESSION_TTL

def _get_serializer():
    """Get or initialize the SERIALIZER lazily."""
    global SERIALIZER
    if SERIALIZER is None:
        SERIALIZER = URLSafeTimedSerializer(SEED, salt="session-token")
    return SERIALIZER

def create_session_token(user_id: str, role: str) -> str:
    """Returns a signed token naming the patron and their role."""
    caller = Caller.of(user_id, role)
    return _get_serializer().dumps({"user_id": caller.user_id, "role": caller.role.value})

def verify_session_token(token: Optional[str], max_age: int = None) -> Optional[Caller]:
    """Resolves a signed token to a Caller, or None if it is missing,
    tampered with, expired or malformed.
    """
    if not token:
        return None
    try:
        data = _get_serializer().loads(token, max_age=max_age or COOKIE_TTL)
    except BadSignature:
        return None
    if not isinstance(data, dict) or "user_id" not in data:
        return None
    try:
        return Caller.of(data["user_id"], data.get("role"))
    except InvalidInputError:
        logger.warning(f"Session token carries unknown role {data.get('role')!r}")
        return None

def token_from_request(authorization: Optional[str], cookie: Optional[str]) -> Optional[str]:
    """Bearer header wins over the session cookie."""
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return cookie
