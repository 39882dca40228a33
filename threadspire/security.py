"""
Password hashing (werkzeug) and signed bearer tokens (JOSE / JWT).

Two token purposes share one secret:
  access  — returned by sign-in, sent as ``Authorization: Bearer …``
  reset   — mailed in the password-reset link, accepted only by the reset
            endpoint

A reset token also carries a fingerprint of the password hash it was issued
against, so it stops working as soon as the password changes.
"""
import hashlib
import time
from typing import Optional

from jose import JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from threadspire.config import Settings
from threadspire.errors import AuthenticationError

ACCESS = "access"
RESET = "reset"


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    return check_password_hash(password_hash, password)


def password_fingerprint(password_hash: str) -> str:
    return hashlib.sha256(password_hash.encode()).hexdigest()[:16]


def create_token(
    settings: Settings,
    user_id: str,
    purpose: str = ACCESS,
    ttl: Optional[int] = None,
    fingerprint: Optional[str] = None,
) -> str:
    if ttl is None:
        ttl = settings.access_token_ttl if purpose == ACCESS else settings.reset_token_ttl
    now = int(time.time())
    claims = {"sub": user_id, "purpose": purpose, "iat": now, "exp": now + ttl}
    if fingerprint is not None:
        claims["pwd"] = fingerprint
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_claims(settings: Settings, token: str, purpose: str = ACCESS) -> dict:
    """Verified claims of a token issued for ``purpose``, or AuthenticationError."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationError("Invalid or expired token") from exc
    if claims.get("purpose") != purpose or not claims.get("sub"):
        raise AuthenticationError("Invalid or expired token")
    return claims


def decode_token(settings: Settings, token: str, purpose: str = ACCESS) -> str:
    """Return the user id a token was issued for, or raise AuthenticationError."""
    return decode_claims(settings, token, purpose)["sub"]
