# Environment-driven settings for the compliance backend
import os
from dotenv import load_dotenv
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./compliance.db")

# Auth
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = _int_env("ACCESS_TOKEN_EXPIRE_MINUTES", 60)

# Optional bootstrap account, seeded at startup
SUPERADMIN_EMAIL = os.getenv("SUPERADMIN_EMAIL")
SUPERADMIN_PASSWORD = os.getenv("SUPERADMIN_PASSWORD")

# Evidence uploads
EVIDENCE_DIRECTORY = os.getenv("EVIDENCE_DIRECTORY", "./evidence_files")

# Audit log
AUDIT_LOG_BATCH_SIZE = _int_env("AUDIT_LOG_BATCH_SIZE", 100)
AUDIT_LOG_EXPORT_LIMIT = _int_env("AUDIT_LOG_EXPORT_LIMIT", 1000)

# CORS
origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]
