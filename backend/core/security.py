import hashlib
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from core.config import settings
from utils.clock import utcnow
import logging

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Verified against for unknown usernames; built at import so no login pays for hashing it
_DUMMY_PASSWORD_HASH = pwd_context.hash(uuid.uuid4().hex)


class InvalidToken(Exception):
    """Token failed signature, structure, expiry or type checks."""


async def get_password_hash(password: str) -> str:
    """Generate a salted bcrypt hash without blocking the event loop"""
    return await run_in_threadpool(pwd_context.hash, password)


def _verify_password_sync(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Unknown or malformed digest
        return False


async def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash; malformed hashes never match"""
    if not hashed_password:
        return False
    return await run_in_threadpool(_verify_password_sync, plain_password, hashed_password)


async def burn_password_check(plain_password: str) -> None:
    """Spend one bcrypt verification so unknown-user logins take as long as bad passwords."""
    await verify_password(plain_password, _DUMMY_PASSWORD_HASH)


def generate_jti() -> str:
    return str(uuid.uuid4())


def hash_token_id(jti: str) -> str:
    """One-way hash of a refresh token identifier, as persisted"""
    return hashlib.sha256(jti.encode("utf-8")).hexdigest()


def encode_token(payload: Dict[str, Any], secret: str, ttl_seconds: int, algorithm: str = "HS256") -> str:
    """Sign `payload` with `secret`, expiring `ttl_seconds` from now"""
    now = utcnow()
    to_encode = payload.copy()
    to_encode.update({"iat": now, "exp": now + timedelta(seconds=ttl_seconds)})
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """Verify signature and expiry; raise InvalidToken on any failure"""
    if not token or not isinstance(token, str):
        raise InvalidToken("Token missing")
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise InvalidToken(str(e)) from e
    if not isinstance(payload, dict) or not payload.get("sub"):
        raise InvalidToken("Token subject missing")
    return payload


class TokenCodec:
    """Signs and verifies one kind of token (access or refresh).

    Each codec owns its own secret and lifetime, and stamps every token it
    signs with its ``type`` claim. ``verify`` refuses tokens of another type
    even when the signature checks out, so a refresh token can never stand in
    for an access token or the other way round.
    """

    def __init__(self, secret: str, ttl_seconds: int, token_type: str, algorithm: str = "HS256"):
        self.secret = secret
        self.ttl_seconds = ttl_seconds
        self.token_type = token_type
        self.algorithm = algorithm

    def sign(self, payload: Dict[str, Any]) -> str:
        to_encode = payload.copy()
        to_encode["type"] = self.token_type
        return encode_token(to_encode, self.secret, self.ttl_seconds, self.algorithm)

    def verify(self, token: str) -> Dict[str, Any]:
        payload = decode_token(token, self.secret, self.algorithm)
        if payload.get("type") != self.token_type:
            raise InvalidToken(f"Expected {self.token_type} token")
        if self.token_type == REFRESH_TOKEN_TYPE and not payload.get("jti"):
            raise InvalidToken("Refresh token id missing")
        return payload


access_codec = TokenCodec(
    settings.JWT_ACCESS_SECRET,
    settings.access_token_ttl_seconds,
    ACCESS_TOKEN_TYPE,
    settings.JWT_ALGORITHM,
)

refresh_codec = TokenCodec(
    settings.JWT_REFRESH_SECRET,
    settings.refresh_token_ttl_seconds,
    REFRESH_TOKEN_TYPE,
    settings.JWT_ALGORITHM,
)


def create_access_token(user_id: str, role: str) -> str:
    """Create JWT access token"""
    return access_codec.sign({"sub": user_id, "role": role})


def create_refresh_token(user_id: str, role: str, jti: str) -> str:
    """Create JWT refresh token bound to a stored session by `jti`"""
    return refresh_codec.sign({"sub": user_id, "role": role, "jti": jti})


def verify_access_token(token: str) -> Optional[dict]:
    """Decode an access token, or None when it does not verify"""
    try:
        return access_codec.verify(token)
    except InvalidToken as e:
        logger.debug(f"Access token rejected: {e}")
        return None
