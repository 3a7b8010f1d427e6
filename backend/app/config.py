from pydantic_settings import BaseSettings, NoDecode
from pydantic import Field, field_validator
from typing import Annotated, List


class Settings(BaseSettings):
    # Security: SECRET_KEY must be provided via environment variable
    # Generate with: python -c "import secrets; print(secrets.token_urlsafe(32))"
    SECRET_KEY: str  # REQUIRED - no default for security
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # Tokens are valid for one day

    # Database configuration
    DATABASE_URL: str  # PostgreSQL URL (required), sqlite:// is accepted for local runs

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 5000

    # Currency conversion provider
    EXCHANGE_RATE_API_URL: str = "https://api.exchangerate.host/convert"
    EXCHANGE_RATE_API_KEY: str = ""
    EXCHANGE_RATE_TIMEOUT: float = 10.0
    BASE_CURRENCY: str = "USD"
    SUPPORTED_CURRENCIES: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["USD", "EUR", "GBP", "JPY"]
    )

    # Expenses at or under this amount are policy compliant
    POLICY_AMOUNT_LIMIT: float = 500.0

    # Manager and admin accounts are created by an admin; this username may claim admin once
    BOOTSTRAP_ADMIN_USERNAME: str = ""

    RATE_LIMIT_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    @field_validator("SECRET_KEY")
    @classmethod
    def _validate_secret_key(cls, value):
        """
        Validate SECRET_KEY for security best practices.
        """
        if not value or len(value) < 32:
            raise ValueError(
                "SECRET_KEY must be at least 32 characters long. "
                "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
            )

        # Prevent use of obvious insecure values
        insecure_values = [
            "your-secret-key",
            "change-this",
            "secret",
            "password",
            "123456",
            "changeme"
        ]
        value_lower = value.lower()
        for insecure in insecure_values:
            if insecure in value_lower:
                raise ValueError(
                    f"SECRET_KEY contains insecure pattern '{insecure}'. "
                    "Please generate a secure random key."
                )

        return value

    @field_validator("SUPPORTED_CURRENCIES", mode="before")
    @classmethod
    def _split_currencies(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple)):
            cleaned = []
            for item in value:
                if item is None:
                    continue
                text = str(item).strip()
                if text:
                    cleaned.append(text)
            return cleaned
        return value

    @property
    def supported_currencies(self) -> List[str]:
        normalized = []
        seen = set()
        for entry in self.SUPPORTED_CURRENCIES or []:
            key = entry.strip().upper()
            if not key or key in seen:
                continue
            seen.add(key)
            normalized.append(key)
        return normalized

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables not defined in the model


settings = Settings()
