from pathlib import Path
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Load .env from repo root for local development and scripts.
ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(dotenv_path=ENV_PATH)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True)
    db_path: str = Field(default="./data/fcn.db", alias="DB_PATH")
    local_tz: str = Field(default="Asia/Taipei", alias="LOCAL_TZ")
    http_timeout_seconds: float = Field(default=15.0, alias="HTTP_TIMEOUT_SECONDS")
    fetch_time_budget_seconds: float = Field(default=60.0, alias="FETCH_TIME_BUDGET_SECONDS")
    fetch_strategies: str = Field(default="direct,corsproxy,allorigins", alias="FETCH_STRATEGIES")
    default_client_name: str = Field(default="預設投資人", alias="DEFAULT_CLIENT_NAME")
    app_secret: str | None = Field(default=None, alias="APP_SECRET")
    share_base_url: str | None = Field(default=None, alias="SHARE_BASE_URL")

settings = Settings()
