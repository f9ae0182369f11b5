import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Tuple

from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from errors import TokenExpired, TokenInvalid

log = logging.getLogger(__name__)

JWT_ALG = "HS256"
ACCESS_TOKEN_HOURS = 24
REFRESH_TOKEN_HOURS = 168


class CredentialService:
    """Password hashing and bearer token issue/validation."""

    def __init__(self, secret_key: str, bcrypt_rounds: int = 12):
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret = secret_key
        self.pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=bcrypt_rounds
        )

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        if not password_hash:
            return False
        try:
            return self.pwd_context.verify(password, password_hash)
        except (ValueError, TypeError):
            log.warning("Stored password hash could not be parsed")
            return False

    def create_token(self, data: dict, expires_hours: int, token_type: str) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + timedelta(hours=expires_hours)
        to_encode.update({"exp": expire, "type": token_type})
        return jwt.encode(to_encode, self._secret, algorithm=JWT_ALG)

    def issue_token_pair(self, email: str, first_name: str, last_name: str, user_id: str) -> Tuple[str, str]:
        claims = {
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "user_id": user_id,
        }
        token = self.create_token(claims, ACCESS_TOKEN_HOURS, "access")
        refresh_token = self.create_token(claims, REFRESH_TOKEN_HOURS, "refresh")
        return token, refresh_token

    def validate_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[JWT_ALG])
        except ExpiredSignatureError:
            raise TokenExpired()
        except JWTError:
            raise TokenInvalid()
        if payload.get("type") != token_type or not payload.get("user_id"):
            raise TokenInvalid()
        return payload
