import os
import logging
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel

BACKENDS = ("sheets", "mongo", "memory")


class Settings(BaseModel):
    sheet_id: Optional[str] = None
    service_account_email: Optional[str] = None
    private_key: Optional[str] = None
    storage_backend: str = "memory"
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "beach_bonfire"
    port: int = 8000
    log_level: str = "INFO"

    @property
    def sheets_configured(self) -> bool:
        return bool(self.sheet_id and self.service_account_email and self.private_key)

    def env_report(self) -> dict:
        """Set/Missing summary of the Google credentials, safe to return to clients."""
        def state(value):
            return "Set" if value else "Missing"
        return {
            "sheetId": state(self.sheet_id),
            "email": state(self.service_account_email),
            "privateKey": state(self.private_key),
        }


def normalize_private_key(key: Optional[str]) -> Optional[str]:
    # Hosting dashboards usually store the PEM on one line with literal "\n"
    if key and "\\n" in key:
        return key.replace("\\n", "\n")
    return key


def load_settings(env_file: Optional[str] = None) -> Settings:
    # .env is looked up from the working directory; real environment variables win
    load_dotenv(env_file or find_dotenv(usecwd=True))

    sheet_id = os.getenv("GOOGLE_SHEET_ID") or None
    email = os.getenv("GOOGLE_SERVICE_ACCOUNT_EMAIL") or None
    private_key = normalize_private_key(os.getenv("GOOGLE_PRIVATE_KEY") or None)

    backend = (os.getenv("STORAGE_BACKEND") or "").strip().lower()
    if not backend:
        backend = "sheets" if (sheet_id and email and private_key) else "memory"
    if backend not in BACKENDS:
        raise ValueError(f"STORAGE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}")

    return Settings(
        sheet_id=sheet_id,
        service_account_email=email,
        private_key=private_key,
        storage_backend=backend,
        mongo_url=os.getenv("MONGO_URL", "mongodb://localhost:27017"),
        mongo_db_name=os.getenv("MONGO_DB_NAME", "beach_bonfire"),
        port=int(os.getenv("PORT", 8000)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
