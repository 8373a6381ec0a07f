import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional


LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigError(ValueError):
    pass


def _int_env(env: Mapping[str, str], name: str, default: int, minimum: int, maximum: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ConfigError(f"{name} must be {bounds}, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    host: str = "0.0.0.0"
    port: int = 8000
    data_dir: Path = Path("data")
    jwt_expires_minutes: int = 7 * 24 * 60
    bcrypt_rounds: int = 10
    admin_name: Optional[str] = None
    admin_password: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        secret = env.get("JWT_SECRET", "").strip()
        if not secret:
            raise ConfigError("JWT_SECRET must be set")

        log_level = env.get("LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got {log_level!r}")

        origins = [o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip()]

        return cls(
            jwt_secret=secret,
            host=env.get("HOST", "0.0.0.0"),
            port=_int_env(env, "PORT", 8000, 1, 65535),
            data_dir=Path(env.get("DATA_DIR") or "data"),
            jwt_expires_minutes=_int_env(env, "JWT_EXPIRES_MINUTES", 7 * 24 * 60, 1),
            bcrypt_rounds=_int_env(env, "BCRYPT_ROUNDS", 10, 4, 31),
            admin_name=env.get("ADMIN_NAME") or None,
            admin_password=env.get("ADMIN_PASSWORD") or None,
            cors_origins=origins or ["*"],
            log_level=log_level,
        )
