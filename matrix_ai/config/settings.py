import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import RedisDsn, SecretStr, field_validator, Field
from typing import List

# !!! CATEGORY LOCK !!!
# Positions define the one-hot encoding of every trained model bundle.
# Append-only changes still require retraining; reordering is rejected at load time.
CATEGORIES = (
    'neutral',
    'security_threat',
    'financial_risk',
    'social_tension',
    'extremism',
    'information_attack',
)
NEUTRAL_CATEGORY = CATEGORIES[0]


class Settings(BaseSettings):
    # Core Infrastructure
    DATABASE_URL: str = "sqlite:///./matrix_ai.db"
    REDIS_URL: RedisDsn = "redis://localhost:6379/0"
    PUBSUB_CHANNEL: str = 'matrix_ai:events'
    REDIS_CONNECT_TIMEOUT: float = Field(5.0, gt=0)
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Authentication
    JWT_SECRET: SecretStr
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_MINUTES: int = Field(1440, ge=1)

    # Text classifier
    MODEL_DIR: str = os.path.join(".", "models")
    MAX_SEQUENCE_LENGTH: int = Field(100, ge=1)
    EMBEDDING_VOCAB_SIZE: int = Field(10000, ge=2)
    HIGH_RISK_THRESHOLD: float = Field(0.7, ge=0.0, le=1.0)

    @field_validator('JWT_SECRET')
    def validate_secret(cls, v):
        if len(v.get_secret_value()) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters long.")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def VOCAB_PATH(self) -> str:
        return os.path.join(self.MODEL_DIR, "vocabulary.json")

    @property
    def MODEL_PATH(self) -> str:
        return os.path.join(self.MODEL_DIR, "text_classifier.pt")

    @property
    def TRAINING_DATA_PATH(self) -> str:
        return os.path.join(self.MODEL_DIR, "training_data.json")

    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

try:
    settings = Settings()
except Exception as e:
    print(f"FATAL: Configuration loading failed. Check .env file. Error: {e}")
    if __name__ != "__main__":
        import sys
        # Nothing downstream can run without a signing secret, so stop at import time.
        sys.exit(1)
