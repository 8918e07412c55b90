import os
from dotenv import load_dotenv


class Settings:
    def __init__(self) -> None:
        # Load variables from .env into environment
        load_dotenv()
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "changeme")
        self.MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
        self.MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "taskledger")
        self.MONGODB_TIMEOUT_MS: int = int(os.getenv("MONGODB_TIMEOUT_MS", "30000"))
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        # Frontend base URL (used in CORS)
        self.FRONTEND_BASE_URL: str = os.getenv("FRONTEND_BASE_URL", "")
        # Optional comma-separated list of additional allowed origins for CORS
        self.ALLOWED_ORIGINS: list[str] = [
            o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()
        ]
        # Billing
        self.DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "EUR")
        self.MAX_COST_PER_HOUR: float = float(os.getenv("MAX_COST_PER_HOUR", "1000"))
        # Reports and deadlines
        self.REPORT_TOP_N: int = int(os.getenv("REPORT_TOP_N", "10"))
        self.NEAR_DEADLINE_DAYS: int = int(os.getenv("NEAR_DEADLINE_DAYS", "3"))


settings = Settings()
