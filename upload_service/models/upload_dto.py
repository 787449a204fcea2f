from dataclasses import dataclass


@dataclass
class InitUploadDto:
    session_id: str
    chunk_size: int


@dataclass
class ChunkProgressDto:
    received_count: int
    total_chunks: int
    progress: int


@dataclass
class AssembledArtifact:
    path: str
    size: int
