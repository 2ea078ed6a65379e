from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CACHEMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Drop a key's staleness record when its entry is deleted, pulled or cleared.
    drop_metadata_on_delete: bool = False
    # Let overlapping remember_async calls for one key share a single producer run.
    dedupe_async_producers: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
