import os
from dataclasses import dataclass
from dotenv import load_dotenv
load_dotenv()
@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN","")
    database_path: str = os.getenv("DATABASE_PATH","data/concerts.db")
    timezone: str = os.getenv("TIMEZONE","Europe/Berlin")
    fetch_timeout: float = float(os.getenv("FETCH_TIMEOUT","30"))
    new_concerts_time: str = os.getenv("NEW_CONCERTS_TIME","19:00")
    reminder_time: str = os.getenv("REMINDER_TIME","10:00")
    upcoming_limit: int = int(os.getenv("UPCOMING_LIMIT","20"))
    log_level: str = os.getenv("LOG_LEVEL","INFO")
    log_json: bool = os.getenv("LOG_JSON","true").lower() == "true"

settings = Settings()
