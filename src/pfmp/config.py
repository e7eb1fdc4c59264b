# Configuration de l'application
from typing import List, Literal, Optional

from pydantic import EmailStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Conventions PFMP"
    LOG_LEVEL: str = "INFO"

    # Postgres en production, sqlite en local
    DATABASE_URL: str = "sqlite:///./pfmp.db"

    # Authentification
    SECRET_KEY: str = "dev-secret-key-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    SUPER_ADMIN_EMAILS: List[EmailStr] = []

    # Integrite des documents
    DOCUMENT_SIGNING_SECRET: str = "dev-document-secret-do-not-use-in-prod"
    APP_BASE_URL: str = "http://localhost:3000"

    # Codes OTP
    OTP_LENGTH: int = 4
    OTP_TTL_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 5

    # Envoi des emails (sans SMTP_HOST les notifications sont seulement journalisees, les codes OTP refuses)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[str] = None
    EMAIL_FROM: str = "no-reply@pfmp.local"

    # Politique de signatures apres un rejet puis une nouvelle soumission
    RESUBMIT_SIGNATURE_POLICY: Literal["reset", "carry_over"] = "reset"
    REMINDER_COOLDOWN_HOURS: int = 48

    SEED_DEMO_DATA: bool = False


settings = Settings()
