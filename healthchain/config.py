"""
Configuration settings for HealthChain Records
"""
from pathlib import Path
from typing import List, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "HealthChain Records"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = f"sqlite:///{BASE_DIR}/data/healthchain.db"
    SQL_DEBUG: bool = False

    # Authentication
    JWT_SECRET_KEY: str = "change-this-in-production-use-secrets"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480  # 8 hours
    ADMIN_EMAIL: str = "admin@healthchain.local"
    ADMIN_PASSWORD: str = "admin123"

    # Security
    ALLOWED_ORIGINS: List[str] = ["*"]  # Restrict in production

    # Blockchain
    BLOCKCHAIN_ENABLED: bool = False
    RPC_URL: str = "http://127.0.0.1:8545/"
    OPERATOR_PRIVATE_KEY: Optional[str] = None
    MEDICAL_CONTRACT_ADDRESS: str = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
    MEDICAL_ZK_CONTRACT_ADDRESS: str = "0xDc64a140Aa3E981100a9becA4E685f962f0cF6C9"
    ZK_VERIFIER_CONTRACT_ADDRESS: str = "0xCf7Ed3AccA5a467e9e704C703E8D87F634fB0Fc9"
    HEALTHTOKEN_CONTRACT_ADDRESS: str = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
    TX_TIMEOUT_SECONDS: int = 120

    # Features
    PRESCRIPTION_VALIDITY_DAYS: int = 30
    HTK_PER_ETH: int = 100
    DEFAULT_APPROVAL_AMOUNT: int = 1_000_000
    REQUIRE_ACCESS_APPROVAL: bool = False
    ENABLE_AUDIT_LOGGING: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "allow"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
