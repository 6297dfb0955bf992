from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./bus_ticketing.db"
    PGHOST: Optional[str] = None
    PGDATABASE: Optional[str] = None
    PGUSER: Optional[str] = None
    PGPASSWORD: Optional[str] = None
    PGSSLMODE: str = "prefer"
    DB_POOL_SIZE: int = 10

    # Application
    PROJECT_NAME: str = "Bus Ticketing USSD"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # USSD sessions
    SESSION_TTL_SECONDS: int = 180
    INPUT_SEPARATOR: str = "*"
    RESET_MARKER: str = "0"

    # Bookings
    BOOKING_CODE_LENGTH: int = 6
    BOOKING_CODE_MAX_ATTEMPTS: int = 5
    WALK_IN_CODE_PREFIX: str = "WALK"
    WALK_IN_CODE_LENGTH: int = 4
    CURRENCY: str = "SSP"
    PAYMENT_METHOD: str = "Sandbox"

    # Operators
    OPERATOR_BUS_WINDOW_DAYS: int = 7
    PIN_MAX_ATTEMPTS: int = 5
    PIN_LOCKOUT_MINUTES: int = 15
    PIN_GLOBAL_MAX_ATTEMPTS: int = 20

    @property
    def database_url(self) -> str:
        if self.PGHOST:
            return f"postgresql://{self.PGUSER}:{self.PGPASSWORD}@{self.PGHOST}/{self.PGDATABASE}?sslmode={self.PGSSLMODE}"
        return self.DATABASE_URL

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
