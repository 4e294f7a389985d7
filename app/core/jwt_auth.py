# app/core/jwt_auth.py
import jwt
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
import logging

from app.core.config import (
    JWT_SECRET_KEY,
    JWT_ALGORITHM,
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
)
from app.core.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)


class JWTManager:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_expire_minutes: Optional[int] = None,
    ):
        self.secret_key = secret_key or JWT_SECRET_KEY
        self.algorithm = algorithm or JWT_ALGORITHM
        self.access_token_expire_minutes = (
            access_token_expire_minutes or JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        )

    def _require_secret(self) -> str:
        if not self.secret_key:
            raise ConfigurationError("JWT_SECRET_KEY", "JWT secret key is not configured")
        return self.secret_key

    def create_access_token(
        self, user_id: int, role: str, extra_data: Dict[str, Any] = None
    ) -> str:
        """
        Create JWT access token for a user

        Args:
            user_id: User's primary key
            role: User's role (student, watchman, admin)
            extra_data: Additional data to include in token

        Returns:
            JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "role": role,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now,
            "type": "access_token",
        }

        if extra_data:
            payload.update(extra_data)

        token = jwt.encode(payload, self._require_secret(), algorithm=self.algorithm)

        logger.info(f"JWT token created for user: {user_id}, role: {role}")
        return token

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Decode and verify JWT token

        Raises:
            AuthenticationError: If token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token, self._require_secret(), algorithms=[self.algorithm]
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            logger.warning("Invalid JWT token provided")
            raise AuthenticationError("Token is not valid")

        if payload.get("type") != "access_token":
            raise AuthenticationError("Invalid token type")

        if not str(payload.get("sub", "")).isdigit():
            raise AuthenticationError("Token subject is not valid")

        return payload


# Create global instance
jwt_manager = JWTManager()
