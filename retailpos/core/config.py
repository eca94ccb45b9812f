from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Dict, List, Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'pos_user'
    POSTGRES_PASSWORD: str = 'pos_pass'
    POSTGRES_DB: str = 'retailpos'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Overrides POSTGRES_* (e.g. sqlite:///./pos.db)

    # POS session defaults
    DEFAULT_ORDER_NAME: str = 'Live Bill'
    TABLE_ORDER_PREFIX: str = 'Table'
    DEFAULT_ORDER_TYPE: str = 'dine-in'

    # Stock
    LOW_STOCK_THRESHOLD: int = 10
    DEFAULT_MIN_STOCK: int = 5
    STOCK_UPDATE_MAX_RETRIES: int = 3
    STALE_RESERVATION_MINUTES: int = 12 * 60

    # Card payments
    CARD_SERVICE_CHARGE_PERCENTAGE: Decimal = Decimal("0")
    CARD_SERVICE_CHARGE_RATES: Dict[str, Decimal] = {}  # issuer -> percentage
    ACCEPTED_CARD_ISSUERS: List[str] = []  # empty = any issuer

    # Pagination
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 200

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def card_service_charge_rate(self, issuer: Optional[str]) -> Decimal:
        """Percentage charged on card payments for the given issuer."""
        if issuer:
            for name, rate in self.CARD_SERVICE_CHARGE_RATES.items():
                if name.lower() == issuer.strip().lower():
                    return Decimal(str(rate))
        return Decimal(str(self.CARD_SERVICE_CHARGE_PERCENTAGE))

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("CARD_SERVICE_CHARGE_PERCENTAGE", mode="after")
    @classmethod
    def validate_service_charge(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("CARD_SERVICE_CHARGE_PERCENTAGE must be between 0 and 100")
        return v

settings = Settings()
