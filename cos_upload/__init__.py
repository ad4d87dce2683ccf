"""Upload local files to Tencent COS (or any S3-compatible bucket).

Small files are sent with a single PUT; files above the multipart
threshold are split into parts uploaded concurrently, then assembled
remotely. A multipart session that cannot be completed is aborted.

Example::

    from cos_upload import Settings, Uploader

    uploader = Uploader(Settings.from_environment())
    url = await uploader.upload(
        "path/to/local/testfile",
        "uploads/user_123/sample_file",
        {"user-id": "123", "source": "sample_source"},
    )
"""

import logging

from cos_upload.common.config import Settings, get_settings
from cos_upload.infra.storage.client import (
    ConfigError,
    IncompleteUploadError,
    InvalidPlanError,
    NoSuchUploadError,
    ObjectHead,
    ObjectNotFoundError,
    RemoteServiceError,
    SessionStateError,
    StorageError,
    TransportError,
)
from cos_upload.services.planning import UploadPlan, UploadStrategy, plan_upload
from cos_upload.services.uploader import Uploader

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ConfigError",
    "IncompleteUploadError",
    "InvalidPlanError",
    "NoSuchUploadError",
    "ObjectHead",
    "ObjectNotFoundError",
    "RemoteServiceError",
    "SessionStateError",
    "Settings",
    "StorageError",
    "TransportError",
    "UploadPlan",
    "UploadStrategy",
    "Uploader",
    "get_settings",
    "plan_upload",
]
