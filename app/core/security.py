"""
Хеширование паролей (bcrypt)
"""
import logging

import bcrypt

from app.core.config import BCRYPT_ROUNDS

logger = logging.getLogger(__name__)

# bcrypt учитывает только первые 72 байта пароля
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    MIN_ROUNDS = 4
    MAX_ROUNDS = 31

    def __init__(self, rounds: int = BCRYPT_ROUNDS):
        if not (self.MIN_ROUNDS <= rounds <= self.MAX_ROUNDS):
            raise ValueError(
                f"Rounds must be between {self.MIN_ROUNDS} and {self.MAX_ROUNDS}, got {rounds}"
            )
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """
        Хеш пароля с солью

        Raises:
            ValueError: пустой пароль или длиннее 72 байт
        """
        if not password:
            raise ValueError("Password cannot be empty")

        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password cannot be longer than {BCRYPT_MAX_BYTES} bytes")

        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(encoded, salt).decode("utf-8")

    def verify(self, password: str, hashed_password: str) -> bool:
        """Проверка пароля; битый хеш считается несовпадением"""
        if not password or not hashed_password:
            return False

        try:
            return bcrypt.checkpw(
                password.encode("utf-8"), hashed_password.encode("utf-8")
            )
        except ValueError as e:
            logger.warning(f"Error verifying password: {e}")
            return False


password_hasher = PasswordHasher()
