from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Runtime ---
    ENV: str = "dev"  # dev|prod
    CONDOSYNC_DB_URL: str = "sqlite+aiosqlite:///./condosync.db"

    # --- Minimal auth (API key) ---
    # Send: X-API-Key: <key>
    API_KEY: str | None = None

    # --- MLS Grid replication ---
    MLSGRID_API_URL: str = "https://api.mlsgrid.com/v2"
    MLSGRID_ACCESS_TOKEN: str | None = None
    MLS_ORIGINATING_SYSTEM: str = "actris"
    MLS_AREA_MAJOR: str = "DT"  # client-side filter, not filterable upstream
    MLS_PAGE_SIZE: int = 500
    # statuses requested on an initial (full) replication
    MLS_VISIBLE_STATUSES: list[str] = ["Active", "Active Under Contract", "Pending"]

    # --- Outbound HTTP posture ---
    HTTP_TIMEOUT_S: float = 30.0
    HTTP_MAX_REQUESTS_PER_CYCLE: int = 500
    HTTP_WARN_RPS: float = 1.5
    HTTP_BACKOFF_DELAY_S: float = 2.0
    HTTP_PAGE_DELAY_S: float = 2.0  # 0.5 req/s steady state

    # --- Sync bookkeeping ---
    SYNC_STALE_AFTER_MINUTES: int = 10
    # an initial import smaller than this is treated as incomplete (0 disables)
    SYNC_MIN_INITIAL_LISTINGS: int = 0

    # --- Storage ceilings (serialized JSON bytes) ---
    PARTITION_MAX_BYTES: int = 1_000_000
    SNAPSHOT_MAX_BYTES: int = 800_000

    # Known buildings; None means the packaged condosync/data/buildings.json
    BUILDINGS_FILE: str | None = None

    # --- Scheduler tuning ---
    SCHED_SYNC_INTERVAL_MINUTES: int = 15


settings = Settings()
