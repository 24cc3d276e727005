import os
import re
from dataclasses import dataclass, field

from dotenv import load_dotenv

from phoneauth.errors import ConfigError

load_dotenv(override=False)

MIN_SECRET_BYTES = 32
HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
STORE_BACKENDS = ("dynamodb", "sql")

_DURATION_PART = re.compile(r"(\d+)(h|m|s)")
_DURATION_UNITS = {"h": 3600, "m": 60, "s": 1}


def _env_bool(name: str, default: bool = False) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name, "").strip()
    if not raw_value:
        return default
    try:
        return int(raw_value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc


def parse_duration(value: str) -> int:
    """Parse ``"15m"``, ``"168h"``, ``"1h30m"`` or plain seconds into seconds."""
    cleaned = value.strip().lower()
    if cleaned.isdigit():
        return int(cleaned)
    parts = _DURATION_PART.findall(cleaned)
    if not parts or "".join(f"{n}{u}" for n, u in parts) != cleaned:
        raise ValueError(f"Invalid duration: {value!r}")
    return sum(int(number) * _DURATION_UNITS[unit] for number, unit in parts)


def _env_duration(name: str, default: str) -> int:
    raw_value = os.getenv(name, "").strip() or default
    try:
        return parse_duration(raw_value)
    except ValueError as exc:
        raise ConfigError(f"{name} is not a valid duration") from exc


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw_value = os.getenv(name, default)
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    jwt_secret: str = field(
        default_factory=lambda: os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET", "")
    )
    jwt_algorithm: str = field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))
    access_token_ttl_seconds: int = field(
        default_factory=lambda: _env_duration("JWT_ACCESS_EXPIRY", "15m")
    )
    refresh_token_ttl_seconds: int = field(
        default_factory=lambda: _env_duration("JWT_REFRESH_EXPIRY", "168h")
    )
    otp_length: int = field(default_factory=lambda: _env_int("OTP_LENGTH", 6))
    otp_ttl_seconds: int = field(default_factory=lambda: _env_duration("OTP_EXPIRY", "10m"))
    otp_max_attempts: int = field(default_factory=lambda: _env_int("OTP_MAX_ATTEMPTS", 5))
    otp_debug: bool = field(default_factory=lambda: _env_bool("OTP_DEBUG", False))
    revoke_family_on_reuse: bool = field(
        default_factory=lambda: _env_bool("REVOKE_FAMILY_ON_REUSE", True)
    )
    refresh_require_record: bool = field(
        default_factory=lambda: _env_bool("REFRESH_REQUIRE_RECORD", False)
    )
    store_backend: str = field(
        default_factory=lambda: os.getenv("STORE_BACKEND", "dynamodb").strip().lower()
    )
    database_url: str = field(
        default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./phoneauth.db")
    )
    dynamodb_endpoint: str = field(default_factory=lambda: os.getenv("DYNAMODB_ENDPOINT", ""))
    dynamodb_region: str = field(
        default_factory=lambda: os.getenv("DYNAMODB_REGION", "us-east-1")
    )
    dynamodb_table_name: str = field(
        default_factory=lambda: os.getenv("DYNAMODB_TABLE_NAME", "PhoneAuthTable")
    )
    dynamodb_connect_timeout: int = field(
        default_factory=lambda: _env_int("DYNAMODB_CONNECT_TIMEOUT", 5)
    )
    dynamodb_read_timeout: int = field(
        default_factory=lambda: _env_int("DYNAMODB_READ_TIMEOUT", 10)
    )
    cors_origins: tuple[str, ...] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "*"))
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 8080))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
    log_json: bool = field(default_factory=lambda: _env_bool("LOG_JSON", True))

    def validate(self) -> "Settings":
        if not self.jwt_secret:
            raise ConfigError("JWT_SECRET_KEY environment variable is required")
        if len(self.jwt_secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigError(
                f"JWT_SECRET_KEY must be at least {MIN_SECRET_BYTES} bytes"
            )
        if self.jwt_algorithm not in HMAC_ALGORITHMS:
            raise ConfigError(
                f"JWT_ALGORITHM must be one of {', '.join(HMAC_ALGORITHMS)}"
            )
        if self.access_token_ttl_seconds <= 0 or self.refresh_token_ttl_seconds <= 0:
            raise ConfigError("Token lifetimes must be positive")
        if not 4 <= self.otp_length <= 10:
            raise ConfigError("OTP_LENGTH must be between 4 and 10")
        if self.otp_ttl_seconds <= 0:
            raise ConfigError("OTP_EXPIRY must be positive")
        if self.otp_max_attempts < 1:
            raise ConfigError("OTP_MAX_ATTEMPTS must be at least 1")
        if self.store_backend not in STORE_BACKENDS:
            raise ConfigError(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}")
        return self
