import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    database_name: Optional[str]
    sites_root: str
    frontend_url: str
    hosting_api_url: str
    hosting_token: Optional[str]
    hosting_team_id: Optional[str]
    hosting_target: str
    hosting_timeout: float
    publish_lock_timeout: float
    poll_max_attempts: int
    poll_base_delay: float
    poll_max_delay: float
    poll_after_publish: bool
    log_level: str

    def public_url(self, subdomain: str) -> str:
        return f"{self.frontend_url.rstrip('/')}/{subdomain}/html"


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        sites_root=os.getenv("SITES_ROOT", os.path.join(os.getcwd(), "generated-files")),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        hosting_api_url=os.getenv("HOSTING_API_URL", "https://api.vercel.com"),
        hosting_token=os.getenv("HOSTING_TOKEN"),
        hosting_team_id=os.getenv("HOSTING_TEAM_ID"),
        hosting_target=os.getenv("HOSTING_TARGET", "production"),
        hosting_timeout=float(os.getenv("HOSTING_TIMEOUT", "30")),
        publish_lock_timeout=float(os.getenv("PUBLISH_LOCK_TIMEOUT", "10")),
        poll_max_attempts=int(os.getenv("POLL_MAX_ATTEMPTS", "10")),
        poll_base_delay=float(os.getenv("POLL_BASE_DELAY", "2")),
        poll_max_delay=float(os.getenv("POLL_MAX_DELAY", "30")),
        poll_after_publish=_env_bool("POLL_AFTER_PUBLISH"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
