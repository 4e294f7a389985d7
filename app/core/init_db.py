import asyncio
import logging

from sqlalchemy import select, func

from app.core.config import (
    ENVIRONMENT,
    SEED_ADMIN_EMAIL,
    SEED_ADMIN_NAME,
    SEED_ADMIN_PASSWORD,
)
from app.core.database import async_session, db_manager, db_operation, engine, Base
from app.core.exceptions import DatabaseError, ConfigurationError
from app.core.security import password_hasher

# Регистрация моделей в Base.metadata
from app.users.models.users import User, UserRole, UserStatus
from app.locations.models.locations import Location  # noqa: F401
from app.audit.models.audit_logs import AuditLog  # noqa: F401
from app.bookings.models.bookings import Booking, BookingAction  # noqa: F401

logger = logging.getLogger(__name__)


@db_operation
async def create_initial_admin():
    """Создать первого администратора, если задан SEED_ADMIN_EMAIL и админов нет"""
    if not SEED_ADMIN_EMAIL:
        logger.info("SEED_ADMIN_EMAIL not set, skipping admin seed")
        return

    async with async_session() as session:
        try:
            admins = await session.execute(
                select(func.count(User.id)).where(User.role == UserRole.admin)
            )
            if admins.scalar():
                logger.info("Admin account already exists, skipping seed")
                return

            session.add(
                User(
                    name=SEED_ADMIN_NAME,
                    email=SEED_ADMIN_EMAIL.strip().lower(),
                    role=UserRole.admin,
                    status=UserStatus.active,
                    password_hash=(
                        password_hasher.hash(SEED_ADMIN_PASSWORD)
                        if SEED_ADMIN_PASSWORD
                        else None
                    ),
                )
            )
            await session.commit()
            logger.info(f"Initial admin created: {SEED_ADMIN_EMAIL}")

        except Exception as e:
            logger.error(f"Failed to create initial admin: {e}")
            await session.rollback()
            raise DatabaseError(f"Failed to create initial admin: {str(e)}")


async def init_database():
    """Initialize database with tables and initial data"""
    try:
        logger.info("Starting database initialization...")

        await db_manager.check_connection()
        logger.info("✅ Database connection verified")

        await db_manager.create_tables()
        logger.info("✅ Database tables created/verified")

        await create_initial_admin()
        logger.info("✅ Initial data created/verified")

        logger.info("🎉 Database initialization completed successfully")

    except DatabaseError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error during database initialization: {e}")
        raise DatabaseError(f"Database initialization failed: {str(e)}")


async def reset_database():
    """Reset database (for development/testing only)"""
    if ENVIRONMENT not in ["development", "dev", "test"]:
        raise ConfigurationError(
            "ENVIRONMENT",
            "Database reset is only allowed in development or test environments",
        )

    try:
        logger.warning("🚨 RESETTING DATABASE - ALL DATA WILL BE LOST!")

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("✅ All tables dropped")

        await init_database()
        logger.info("✅ Database reset completed")

    except Exception as e:
        logger.error(f"Database reset failed: {e}")
        raise DatabaseError(f"Database reset failed: {str(e)}")


if __name__ == "__main__":
    import sys

    async def main():
        command = sys.argv[1] if len(sys.argv) > 1 else "init"
        if command == "init":
            await init_database()
        elif command == "reset":
            await reset_database()
        else:
            print(f"Unknown command: {command}")
            print("Available commands: init, reset")
            sys.exit(1)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Database initialization cancelled by user")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)
