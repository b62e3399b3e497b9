"""
Password hashing and the signed session token handed out at login.

Stored hashes look like ``<salt hex>:<pbkdf2-sha256 hex>``. Tokens are HS256
JWTs whose ``sub`` is the user id.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import hashlib
import hmac
import os

from jose import JWTError, jwt

from app.core import config

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = config.ACCESS_TOKEN_EXPIRE_MINUTES


def _signing_key() -> str:
    if config.SECRET_KEY:
        return config.SECRET_KEY
    if config.IS_PRODUCTION:
        raise RuntimeError("SECRET_KEY or JWT_SECRET_KEY env var is required in production")
    print("[AUTH] WARNING: SECRET_KEY not set, signing tokens with the local development key", flush=True)
    return "goalkeeper-local-dev-key"


SIGNING_KEY = _signing_key()


# ======================
# PASSWORDS
# ======================

def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)


def hash_password(password: str) -> str:
    salt = os.urandom(16)
    return f"{salt.hex()}:{_derive(password, salt, config.PBKDF2_ITERATIONS).hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    salt_hex, _, hash_hex = (stored or "").partition(":")
    try:
        salt, expected = bytes.fromhex(salt_hex), bytes.fromhex(hash_hex)
    except ValueError:
        return False
    if not salt or not expected:
        return False
    return hmac.compare_digest(_derive(password, salt, config.PBKDF2_ITERATIONS), expected)


# ======================
# SESSION TOKENS
# ======================

def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = expires_delta if expires_delta is not None else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": str(user_id), "iat": issued, "exp": issued + lifetime}
    return jwt.encode(claims, SIGNING_KEY, algorithm=ALGORITHM)


def user_id_from_token(token: str) -> Optional[int]:
    """The user id a token was issued for; None when expired, tampered or malformed."""
    try:
        claims = jwt.decode(token, SIGNING_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        print("[AUTH] reject reason=token_expired", flush=True)
        return None
    except JWTError as e:
        print(f"[AUTH] reject reason=bad_token error={type(e).__name__}", flush=True)
        return None

    try:
        return int(claims.get("sub"))
    except (TypeError, ValueError):
        print("[AUTH] reject reason=bad_subject", flush=True)
        return None
