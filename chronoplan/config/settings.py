from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    app_name: str = "ChronoPlan"
    debug: bool = True
    database_url: str = Field("sqlite:///./chronoplan.db", validation_alias="DATABASE_URL")
    redis_url: str = Field("redis://localhost:6379/0", validation_alias="REDIS_URL")
    cache_enabled: bool = True
    cache_ttl_seconds: int = 300

    # Slot search
    scheduling_window_days: int = 14
    slot_search_days: int = 7
    end_of_day_hour: int = 18

    # Fallback scheduler
    fallback_start_hour: int = 9
    fallback_buffer_minutes: int = 15

    # Alternatives / existing schedules
    ortools_time_limit_seconds: float = 5.0
    relocate_existing_blocks: bool = False

    # Re-planning
    adaptation_history_size: int = 50
    replanner_max_users: int = 1000

    # Pass selection: quality = base - penalty*conflicts + energy*mean + deadline*coverage
    quality_base: float = 0.5
    quality_conflict_penalty: float = 0.1
    quality_energy_weight: float = 0.3
    quality_deadline_weight: float = 0.2


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
