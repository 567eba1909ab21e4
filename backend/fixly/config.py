from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / "Fixly"
    api_prefix: str = "/api/v1"
    host: str = "127.0.0.1"
    port: int = 8000
    token_ttl_seconds: int = 86400  # 24 hours
    # Required by /auth/admin-setup; setup is refused while unset.
    admin_setup_key: str | None = None
    # In-process browse cache; not shared between workers.
    cache_ttl_seconds: int = 300
    cache_max_size: int = 1000
    view_log_limit: int = 100
    featured_days: int = 7
    slow_request_ms: int = 1000
    max_page_size: int = 50

    @property
    def db_path(self) -> Path:
        return self.data_dir / "fixly.sqlite"

    model_config = {"env_prefix": "FIXLY_"}


settings = Settings()
