import os
from decimal import Decimal

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ordering.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Auth (JWT)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_SUPER_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))

# Programa de pontos (valores usados quando não existe linha em points_settings)
POINTS_PER_CURRENCY_UNIT = Decimal(os.getenv("POINTS_PER_CURRENCY_UNIT", "0.1"))
POINTS_ROUNDING_THRESHOLD = Decimal(os.getenv("POINTS_ROUNDING_THRESHOLD", "0"))
POINT_VALUE_CENTS = int(os.getenv("POINT_VALUE_CENTS", "10"))
POINTS_EXPIRATION_MONTHS = int(os.getenv("POINTS_EXPIRATION_MONTHS", "6"))

# Outbox de efeitos colaterais (broadcast, pontos, notificações)
OUTBOX_MAX_ATTEMPTS = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5"))
OUTBOX_BACKOFF_SECONDS = int(os.getenv("OUTBOX_BACKOFF_SECONDS", "30"))
OUTBOX_DISPATCH_INLINE = _env_flag("OUTBOX_DISPATCH_INLINE", "1")
