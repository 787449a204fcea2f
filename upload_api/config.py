from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from redis_service.redis import RedisServiceConfig
from storage_service.object_storage import ObjectStorageServiceConfig
from upload_service.schemas import GarbageCollectorConfig, UploadServiceConfig


class Settings(BaseSettings):
    # pylint: disable=too-many-instance-attributes
    CHUNK_STORE_PROTOCOL: str = "file"
    CHUNK_STORE_ROOT: str = "/tmp/chunk-uploads/chunks"
    SCRATCH_DIR: str = "/tmp/chunk-uploads/scratch"

    SESSION_STORE_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_KEY_PREFIX: str = "upload_session"

    OBJECT_STORE_PROTOCOL: str = "s3"
    OBJECT_STORE_BUCKET: str = "uploads"
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY: str | None = None
    S3_SECRET_KEY: str | None = None
    PUBLIC_BASE_URL: str | None = None

    RECOMMENDED_CHUNK_SIZE: int = 5 * 1024 * 1024
    MAX_CHUNK_BYTES: int = 50 * 1024 * 1024
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024 * 1024
    MAX_TOTAL_CHUNKS: int = 10_000

    GC_ENABLED: bool = True
    GC_SWEEP_INTERVAL_SECONDS: int = 600
    TERMINAL_RETENTION_SECONDS: int = 3600
    ABANDONED_TTL_SECONDS: int | None = 24 * 3600  # None keeps abandoned uploads

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")

    def upload_service_config(self) -> UploadServiceConfig:
        return UploadServiceConfig(
            scratch_dir=self.SCRATCH_DIR,
            recommended_chunk_size=self.RECOMMENDED_CHUNK_SIZE,
            max_chunk_bytes=self.MAX_CHUNK_BYTES,
            max_upload_bytes=self.MAX_UPLOAD_BYTES,
            max_total_chunks=self.MAX_TOTAL_CHUNKS,
        )

    def gc_config(self) -> GarbageCollectorConfig:
        return GarbageCollectorConfig(
            terminal_retention_seconds=self.TERMINAL_RETENTION_SECONDS,
            abandoned_ttl_seconds=self.ABANDONED_TTL_SECONDS,
            sweep_interval_seconds=self.GC_SWEEP_INTERVAL_SECONDS,
        )

    def redis_config(self) -> RedisServiceConfig:
        return RedisServiceConfig(
            redis_host=self.REDIS_HOST,
            redis_port=self.REDIS_PORT,
            redis_db=self.REDIS_DB,
            redis_password=self.REDIS_PASSWORD,
        )

    def object_storage_config(self) -> ObjectStorageServiceConfig:
        return ObjectStorageServiceConfig(
            bucket=self.OBJECT_STORE_BUCKET,
            protocol=self.OBJECT_STORE_PROTOCOL,
            s3_endpoint_url=self.S3_ENDPOINT_URL,
            s3_access_key=self.S3_ACCESS_KEY,
            s3_secret_key=self.S3_SECRET_KEY,
            public_base_url=self.PUBLIC_BASE_URL,
        )


@lru_cache()  # no need to recreate Settings object
def get_settings() -> Settings:
    return Settings()
