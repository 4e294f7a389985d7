"""Campus user - the actor behind every booking operation"""
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Index
from sqlalchemy.sql import func
from app.core.database import Base


class UserRole(str, Enum):
    """Роль пользователя"""
    student = "student"
    watchman = "watchman"
    admin = "admin"


class UserStatus(str, Enum):
    """Статус учетной записи"""
    active = "active"
    pending = "pending"      # Ожидает активации администратором
    inactive = "inactive"    # Деактивирован
    deleted = "deleted"      # Мягкое удаление, история бронирований сохраняется


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(
        SQLEnum(UserRole, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.student,
    )
    status = Column(
        SQLEnum(UserStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserStatus.pending,
    )

    # Регистрационный номер студента (например 7376232IT286)
    reg_number = Column(String(20), nullable=True)
    # Телефон обязателен для охранника
    phone = Column(String(30), nullable=True)
    # bcrypt-хеш; NULL - вход по паролю не настроен
    password_hash = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_users_role_status", "role", "status"),)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.active

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role}, status={self.status})>"
