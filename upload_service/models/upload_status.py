from enum import Enum


class UploadStatus(Enum):
    UPLOADING = "uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({UploadStatus.COMPLETED, UploadStatus.CANCELLED})
