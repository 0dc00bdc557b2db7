import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(override=True)


def _env_bool(name: str, default: bool = False) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw_value = os.getenv(name, default)
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./otpgate.db")
    sql_echo: bool = _env_bool("SQL_ECHO", False)
    otp_ttl_seconds: int = int(os.getenv("OTP_TTL_SECONDS", "600"))
    rate_limit_max_requests: int = int(os.getenv("OTP_RATE_LIMIT_MAX", "3"))
    rate_limit_window_seconds: int = int(
        os.getenv("OTP_RATE_LIMIT_WINDOW_SECONDS", "3600")
    )
    brevo_api_key: str = os.getenv("BREVO_API_KEY", "")
    brevo_api_url: str = os.getenv(
        "BREVO_API_URL", "https://api.brevo.com/v3/smtp/email"
    )
    otp_email_sender: str = (
        os.getenv("OTP_EMAIL_SENDER")
        or os.getenv("BREVO_FROM")
        or os.getenv("FROM_EMAIL", "")
    )
    otp_sender_name: str = os.getenv("OTP_SENDER_NAME", "Account Security")
    email_timeout_seconds: int = int(os.getenv("EMAIL_TIMEOUT_SECONDS", "10"))
    jwt_secret: str = os.getenv("JWT_SECRET", "")
    jwt_algorithm: str = os.getenv("ALGORITHM", "HS256")
    admin_token_expire_minutes: int = int(
        os.getenv("ADMIN_TOKEN_EXPIRE_MINUTES", "60")
    )
    cors_origins: tuple[str, ...] = _env_list("CORS_ORIGINS", "*")

    @property
    def otp_ttl_minutes(self) -> int:
        return max(1, self.otp_ttl_seconds // 60)


settings = Settings()
