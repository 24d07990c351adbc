"""Application configuration management."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Any, List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from launchwatch.models import (
    BASE_CHAIN_ID,
    FilterConfig,
    WatchSets,
    normalize_address,
    normalize_fc_handle,
    normalize_x_handle,
)


def _split_csv(value: Any) -> List[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [str(value)]


class Settings(BaseSettings):
    """Runtime configuration loaded from environment or `.env`."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    telegram_bot_token: Optional[str] = Field(
        default=None, alias="TELEGRAM_BOT_TOKEN"
    )
    telegram_alert_chat_id: Optional[int] = Field(
        default=None, alias="TELEGRAM_ALERT_CHAT_ID"
    )
    telegram_watch_chat_id: Optional[int] = Field(
        default=None, alias="TELEGRAM_WATCH_CHAT_ID"
    )
    admin_user_ids: Annotated[List[int], NoDecode] = Field(
        default_factory=list, alias="ADMIN_USER_IDS"
    )

    chain_id: int = Field(default=BASE_CHAIN_ID, alias="CHAIN_ID")
    bankr_api_url: str = Field(default="https://api.bankr.bot", alias="BANKR_API_URL")
    bankr_api_key: Optional[str] = Field(default=None, alias="BANKR_API_KEY")
    bankr_launches_limit: int = Field(
        default=500, alias="BANKR_LAUNCHES_LIMIT", ge=50, le=5000
    )
    doppler_indexer_url: str = Field(
        default="https://indexer.doppler.lol", alias="DOPPLER_INDEXER_URL"
    )
    indexer_launch_limit: int = Field(
        default=50, alias="INDEXER_LAUNCH_LIMIT", ge=1, le=200
    )
    rpc_url_base: str = Field(default="https://mainnet.base.org", alias="RPC_URL_BASE")
    airlock_address: Optional[str] = Field(default=None, alias="AIRLOCK_ADDRESS")
    blocks_back: int = Field(default=5000, alias="BLOCKS_BACK", ge=1)
    rpc_getlogs_chunk_size: int = Field(
        default=10, alias="RPC_GETLOGS_CHUNK_SIZE", ge=1, le=10000
    )
    http_timeout_seconds: float = Field(
        default=20.0, alias="HTTP_TIMEOUT_SECONDS", gt=0, le=120
    )

    filter_x_match: bool = Field(default=False, alias="FILTER_X_MATCH")
    filter_max_deploys: Optional[int] = Field(
        default=None, alias="FILTER_MAX_DEPLOYS", ge=0
    )
    seen_max_size: int = Field(default=0, alias="SEEN_MAX_SIZE", ge=0)
    poll_interval_minutes: int = Field(
        default=5, alias="POLL_INTERVAL_MINUTES", ge=1, le=60
    )

    watch_x_users: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="WATCH_X_USERS"
    )
    watch_fc_users: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="WATCH_FC_USERS"
    )
    watch_wallets: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="WATCH_WALLETS"
    )
    watch_keywords: Annotated[List[str], NoDecode] = Field(
        default_factory=list, alias="WATCH_KEYWORDS"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./.tmp/state.db",
        alias="DATABASE_URL",
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    lookup_page_size: int = Field(default=5, alias="LOOKUP_PAGE_SIZE")
    rate_limit_per_user_per_min: int = Field(
        default=6, alias="RATE_LIMIT_PER_USER_PER_MIN", ge=0
    )

    @field_validator("admin_user_ids", mode="before")
    @classmethod
    def _parse_admin_ids(cls, value: Any) -> List[int]:
        return [int(part) for part in _split_csv(value)]

    @field_validator(
        "watch_x_users",
        "watch_fc_users",
        "watch_wallets",
        "watch_keywords",
        mode="before",
    )
    @classmethod
    def _parse_csv(cls, value: Any) -> List[str]:
        return _split_csv(value)

    @field_validator("filter_max_deploys", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("lookup_page_size")
    @classmethod
    def _clamp_page_size(cls, value: int) -> int:
        return min(max(value, 3), 25)

    def global_filter_config(self) -> FilterConfig:
        return FilterConfig(
            require_shared_identity=self.filter_x_match,
            max_items_per_actor=self.filter_max_deploys,
        )

    def default_watch_sets(self) -> WatchSets:
        """Environment-seeded watch entries, layered into every scope."""
        wallets = {normalize_address(value) for value in self.watch_wallets}
        return WatchSets(
            x=frozenset(
                h for h in (normalize_x_handle(v) for v in self.watch_x_users) if h
            ),
            fc=frozenset(
                h for h in (normalize_fc_handle(v) for v in self.watch_fc_users) if h
            ),
            wallet=frozenset(w for w in wallets if w),
            keyword=frozenset(
                k.strip().lower() for k in self.watch_keywords if k.strip()
            ),
        )


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Return cached Settings instance, raising a helpful message on failure."""
    try:
        return Settings()
    except ValidationError as exc:  # pragma: no cover - configuration failure visible on boot
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


__all__ = ["Settings", "load_settings"]
