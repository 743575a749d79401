import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

ENV_FILE = Path.home() / ".bookrec_env"
DEFAULT_SERVER_URL = "http://localhost:8080/api"


class Settings(BaseModel):
    server_url: str = DEFAULT_SERVER_URL
    timeout: float = 10.0
    username: Optional[str] = None
    raw_dir: Optional[Path] = None
    log_level: str = "WARNING"

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        load_dotenv(env_file or os.getenv("BOOKREC_ENV_FILE") or ENV_FILE)

        raw_dir = os.getenv("BOOKREC_RAW_DIR")
        return cls(
            server_url=os.getenv("BOOKREC_SERVER_URL", DEFAULT_SERVER_URL).rstrip("/"),
            timeout=float(os.getenv("BOOKREC_TIMEOUT", "10")),
            username=os.getenv("BOOKREC_USERNAME") or None,
            raw_dir=Path(raw_dir) if raw_dir else None,
            log_level=os.getenv("BOOKREC_LOG_LEVEL", "WARNING").upper(),
        )
