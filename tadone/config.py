from dataclasses import dataclass
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    bot_token: str
    owner_telegram_id: int
    timezone: str
    db_path: Path
    audio_dir: Path
    audio_url_base: str
    audio_url_secret: str
    audio_url_ttl_seconds: int
    openai_api_key: Optional[str]
    transcribe_model: str
    transcribe_language: Optional[str]
    transcribe_timeout_seconds: float
    transcribe_poll_seconds: float
    sweep_interval_seconds: float
    log_level: str

    @property
    def owner_id(self) -> str:
        return str(self.owner_telegram_id)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


def load_settings() -> Settings:
    bot_token = os.getenv("BOT_TOKEN", "").strip()
    owner_raw = os.getenv("OWNER_TELEGRAM_ID", "0").strip()
    tz = os.getenv("TZ", "Europe/Helsinki").strip()
    db_raw = os.getenv("DB_PATH", "data/tadone.db").strip()
    audio_raw = os.getenv("AUDIO_DIR", "data/audio").strip()

    if not bot_token:
        raise RuntimeError("BOT_TOKEN missing in .env")
    try:
        owner_id = int(owner_raw)
    except ValueError:
        owner_id = 0
    if owner_id <= 0:
        raise RuntimeError("OWNER_TELEGRAM_ID missing/invalid in .env")

    ttl = int(_env_float("AUDIO_URL_TTL_SECONDS", 300))
    if ttl <= 0:
        raise RuntimeError("AUDIO_URL_TTL_SECONDS must be positive")

    language = os.getenv("TRANSCRIBE_LANGUAGE", "de").strip() or None

    # paths stay relative here; the entry point resolves them
    return Settings(
        bot_token=bot_token,
        owner_telegram_id=owner_id,
        timezone=tz,
        db_path=Path(db_raw),
        audio_dir=Path(audio_raw),
        audio_url_base=os.getenv("AUDIO_URL_BASE", "http://localhost:8080/audio").strip(),
        audio_url_secret=os.getenv("AUDIO_URL_SECRET", "").strip() or bot_token,
        audio_url_ttl_seconds=ttl,
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip() or None,
        transcribe_model=os.getenv("TRANSCRIBE_MODEL", "whisper-1").strip(),
        transcribe_language=language,
        transcribe_timeout_seconds=_env_float("TRANSCRIBE_TIMEOUT_SECONDS", 20.0),
        transcribe_poll_seconds=_env_float("TRANSCRIBE_POLL_SECONDS", 2.0),
        sweep_interval_seconds=_env_float("SWEEP_INTERVAL_SECONDS", 0.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
