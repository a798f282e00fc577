from datetime import datetime, timedelta, timezone
import hashlib
import secrets
from passlib.context import CryptContext
import jwt
from .config import settings

# Salted one-way hashes for share-link passwords.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

def hash_password(pw: str) -> str:
    return pwd_context.hash(pw)

def verify_password(pw: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return pwd_context.verify(pw, hashed)
    except (ValueError, TypeError):
        return False

def generate_share_token(nbytes: int | None = None) -> str:
    return secrets.token_urlsafe(nbytes or settings.share_token_bytes)

def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def create_access_token(sub: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.jwt_expires_min)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")

def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
