import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_BACKUP_INTERVAL_SECONDS = 24 * 60 * 60
DEFAULT_DELIVERY_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class Settings:
    database_url: str
    telegram_bot_token: str
    telegram_chat_ids: Tuple[int, ...]
    backup_interval_seconds: float = DEFAULT_BACKUP_INTERVAL_SECONDS
    delivery_timeout_seconds: float = DEFAULT_DELIVERY_TIMEOUT_SECONDS
    host: str = "127.0.0.1"
    port: int = 3000
    log_level: str = "INFO"


def parse_chat_ids(raw: str) -> Tuple[int, ...]:
    """
    Parse a comma-separated list of chat ids.

    Blank and non-numeric entries are skipped; duplicates keep their first position.
    """
    chat_ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            chat_id = int(part)
        except ValueError:
            continue
        if chat_id not in chat_ids:
            chat_ids.append(chat_id)
    return tuple(chat_ids)


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise ConfigurationError(f"{name} environment variable not set.")
    return value


def _positive_number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive.")
    return value


# PUBLIC_INTERFACE
def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build `Settings` from the environment (after loading `.env`).

    Raises ConfigurationError when a required variable is missing or a value
    cannot be parsed. Callers treat that as fatal.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    chat_ids = parse_chat_ids(_require(env, "TELEGRAM_CHAT_IDS"))
    if not chat_ids:
        raise ConfigurationError("TELEGRAM_CHAT_IDS contains no valid chat id.")

    port_raw = env.get("PORT", "3000")
    try:
        port = int(port_raw)
    except ValueError:
        raise ConfigurationError(f"PORT must be an integer, got {port_raw!r}.") from None

    return Settings(
        database_url=_require(env, "DATABASE_URL"),
        telegram_bot_token=_require(env, "TELEGRAM_BOT_TOKEN"),
        telegram_chat_ids=chat_ids,
        backup_interval_seconds=_positive_number(
            env, "BACKUP_INTERVAL_SECONDS", DEFAULT_BACKUP_INTERVAL_SECONDS
        ),
        delivery_timeout_seconds=_positive_number(
            env, "DELIVERY_TIMEOUT_SECONDS", DEFAULT_DELIVERY_TIMEOUT_SECONDS
        ),
        host=env.get("HOST", "127.0.0.1"),
        port=port,
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
