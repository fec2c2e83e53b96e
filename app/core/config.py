from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
    return bool(v)


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'billing_user'
    POSTGRES_PASSWORD: str = 'billing_pass'
    POSTGRES_DB: str = 'billing_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Sobrescribe la URL armada con POSTGRES_*

    # Redis settings (broker de Celery)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # MinIO settings (comprobantes de pago)
    MINIO_HOST: str = 'minio'
    MINIO_PORT: int = 9000
    MINIO_PUBLIC_HOST: str = 'localhost'  # Hostname público para presigned URLs
    MINIO_PUBLIC_PORT: int = 9000
    MINIO_ACCESS_KEY: str = 'minioadmin'
    MINIO_SECRET_KEY: str = 'minioadmin'
    MINIO_BUCKET_NAME: str = 'payment-proofs'
    MINIO_USE_SSL: bool = False

    # Proof upload limits
    MAX_PROOF_SIZE: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_PROOF_TYPES: list = ["image/jpeg", "image/png", "image/webp", "application/pdf"]
    PROOF_URL_EXPIRE_MINUTES: int = 60

    # Currency policy
    INVOICE_CURRENCY: str = 'USD'
    SETTLEMENT_CURRENCY: str = 'PYG'
    EXCHANGE_RATE: Decimal = Decimal('7300')  # Gs por 1 USD
    SETTLEMENT_DECIMALS: int = 0  # El guaraní no tiene decimales

    # SIFEN (facturación electrónica)
    SIFEN_MODE: str = 'sandbox'  # sandbox | http
    SIFEN_API_URL: str = 'http://sifen-gateway:8080/api/v1/documents'
    SIFEN_API_KEY: str = ''
    SIFEN_TIMEOUT_SECONDS: float = 15.0
    SIFEN_QR_BASE_URL: str = 'https://ekuatia.set.gov.py/consultas-test/qr'
    SIFEN_ISSUER_RUC: str = '80000000'
    SIFEN_ESTABLISHMENT: str = '001'
    SIFEN_EXPEDITION_POINT: str = '001'

    # Invoice lifecycle
    INVOICE_NUMBER_PREFIX: str = 'F-'
    APPROVAL_STALE_AFTER_SECONDS: int = 300

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def minio_endpoint(self) -> str:
        return f"{self.MINIO_HOST}:{self.MINIO_PORT}"

    @property
    def minio_public_endpoint(self) -> str:
        return f"{self.MINIO_PUBLIC_HOST}:{self.MINIO_PUBLIC_PORT}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "MINIO_USE_SSL", mode="before")
    @classmethod
    def parse_flags(cls, v):
        return _parse_bool(v)

    @field_validator("SIFEN_MODE")
    @classmethod
    def validate_sifen_mode(cls, v):
        v = v.lower().strip()
        if v not in ("sandbox", "http"):
            raise ValueError("SIFEN_MODE debe ser 'sandbox' o 'http'")
        return v

settings = Settings()
