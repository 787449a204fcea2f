from pydantic.dataclasses import dataclass

MIB = 1024 * 1024


@dataclass
class UploadServiceConfig:
    # pylint: disable=too-many-instance-attributes
    scratch_dir: str
    recommended_chunk_size: int = 5 * MIB
    max_chunk_bytes: int = 50 * MIB
    max_upload_bytes: int = 10 * 1024 * MIB
    max_total_chunks: int = 10_000
    copy_buffer_bytes: int = MIB
    default_mime_type: str = "application/octet-stream"


@dataclass
class GarbageCollectorConfig:
    terminal_retention_seconds: int = 3600
    abandoned_ttl_seconds: int | None = 24 * 3600
    sweep_interval_seconds: int = 600
