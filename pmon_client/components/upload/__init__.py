"""
Upload: chunked and whole-file artifact delivery.
"""

from pmon_client.components.upload.pipeline import UploadPipeline
from pmon_client.components.upload.progress import DeploymentPhase, DeploymentProgress
from pmon_client.components.upload.session import (
    UploadOutcome,
    UploadSession,
    UploadSource,
    new_upload_id,
    partition,
)

__all__ = [
    "DeploymentPhase",
    "DeploymentProgress",
    "UploadOutcome",
    "UploadPipeline",
    "UploadSession",
    "UploadSource",
    "new_upload_id",
    "partition",
]
