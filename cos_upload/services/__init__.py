from .multipart import MultipartOrchestrator, MultipartSession, UploadState
from .planning import (
    MAX_PART_NUMBER,
    PartDescriptor,
    UploadPlan,
    UploadStrategy,
    plan_upload,
)
from .sources import FileSource, HandleSource, PathSource, open_source
from .uploader import Uploader

__all__ = [
    "FileSource",
    "HandleSource",
    "MAX_PART_NUMBER",
    "MultipartOrchestrator",
    "MultipartSession",
    "PartDescriptor",
    "PathSource",
    "UploadPlan",
    "UploadState",
    "UploadStrategy",
    "Uploader",
    "open_source",
    "plan_upload",
]
