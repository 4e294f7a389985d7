import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Настройки PostgreSQL
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.getenv("POSTGRES_DB", "campus_rides")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "db")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

# Настройки среды
ENVIRONMENT = os.getenv("ENVIRONMENT", "production").lower()
DEBUG = ENVIRONMENT in ["development", "dev"]

# Настройки retry для базы данных
DB_RETRY_ATTEMPTS = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
DB_RETRY_DELAY = float(os.getenv("DB_RETRY_DELAY", "1.0"))
DB_RETRY_BACKOFF_FACTOR = float(os.getenv("DB_RETRY_BACKOFF_FACTOR", "2.0"))

# Настройки логирования
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json" if not DEBUG else "text")

# Настройки приложения
APP_NAME = os.getenv("APP_NAME", "Campus Rides API")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# JWT
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me" if DEBUG else "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(
    os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "1440")
)

# Пароли
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))
# Домен email для самостоятельной регистрации студентов (пусто - любой)
REGISTRATION_EMAIL_DOMAIN = os.getenv("REGISTRATION_EMAIL_DOMAIN", "").strip().lower()

# Бронирования
BOOKING_TIMEZONE = os.getenv("BOOKING_TIMEZONE", "UTC")
BOOKING_SWEEP_INTERVAL_SECONDS = int(os.getenv("BOOKING_SWEEP_INTERVAL_SECONDS", "60"))
BOOKING_SWEEP_ENABLED = os.getenv("BOOKING_SWEEP_ENABLED", "true").lower() == "true"
REQUIRE_KNOWN_LOCATIONS = (
    os.getenv("REQUIRE_KNOWN_LOCATIONS", "false").lower() == "true"
)

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Первый администратор (создается при инициализации БД)
SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL")
SEED_ADMIN_NAME = os.getenv("SEED_ADMIN_NAME", "Administrator")
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD")


# Валидация критичных настроек
def validate_config():
    """Валидация конфигурации при запуске"""
    errors = []

    if not JWT_SECRET_KEY:
        errors.append("JWT_SECRET_KEY is required")

    if not DATABASE_URL:
        errors.append("DATABASE_URL is required")

    if DB_RETRY_ATTEMPTS < 1:
        errors.append("DB_RETRY_ATTEMPTS must be >= 1")

    if DB_RETRY_DELAY < 0:
        errors.append("DB_RETRY_DELAY must be >= 0")

    if BOOKING_SWEEP_INTERVAL_SECONDS < 1:
        errors.append("BOOKING_SWEEP_INTERVAL_SECONDS must be >= 1")

    if not 4 <= BCRYPT_ROUNDS <= 31:
        errors.append("BCRYPT_ROUNDS must be between 4 and 31")

    try:
        ZoneInfo(BOOKING_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(f"BOOKING_TIMEZONE '{BOOKING_TIMEZONE}' is not a known timezone")

    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")


# Автоматическая валидация при импорте (опционально)
if os.getenv("VALIDATE_CONFIG_ON_IMPORT", "true").lower() == "true":
    try:
        validate_config()
    except ValueError as e:
        print(f"⚠️  Configuration warning: {e}")
