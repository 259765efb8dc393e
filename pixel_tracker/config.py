import logging
import os
from dataclasses import dataclass

MAX_DEDUP_WINDOW_SECONDS = 86400

_TRUE_WORDS = ("1", "true", "yes", "on")
_FALSE_WORDS = ("0", "false", "no", "off")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Settings:
    db_path: str = "pixels.db"
    dedup_window_seconds: float = 60.0
    trust_forwarded_for: bool = False
    check_default_lookback_ms: int = 3600000
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.db_path:
            raise ConfigError("PIXEL_DB must not be empty")
        if not 0 < self.dedup_window_seconds <= MAX_DEDUP_WINDOW_SECONDS:
            raise ConfigError(
                "PIXEL_DEDUP_WINDOW must be > 0 and <= %d seconds, got %r"
                % (MAX_DEDUP_WINDOW_SECONDS, self.dedup_window_seconds)
            )
        if not 1 <= self.port <= 65535:
            raise ConfigError("PORT must be between 1 and 65535, got %r" % self.port)
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError("LOG_LEVEL %r is not a logging level" % self.log_level)

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            db_path=env.get("PIXEL_DB", cls.db_path),
            dedup_window_seconds=_number(env, "PIXEL_DEDUP_WINDOW", cls.dedup_window_seconds),
            trust_forwarded_for=_flag(env, "PIXEL_TRUST_FORWARDED_FOR", cls.trust_forwarded_for),
            host=env.get("HOST", cls.host),
            port=int(_number(env, "PORT", cls.port, integer=True)),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )


def _number(env, name, default, integer=False):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw) if integer else float(raw)
    except ValueError:
        raise ConfigError("%s must be a number, got %r" % (name, raw)) from None


def _flag(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    word = raw.strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ConfigError("%s must be a boolean word, got %r" % (name, raw))
