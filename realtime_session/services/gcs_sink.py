"""
Google Cloud Storage sink for session recordings.

Handles:
1. Uploading recording WAV files to a bucket with read progress
2. Returning gs:// references for the stored blobs
"""

import asyncio
import logging
import os
from typing import Optional

from google.cloud import storage
from google.oauth2 import service_account

from realtime_session.config.constants import LOGGER_NAME, WAV_MIME_TYPE
from realtime_session.models.session import RecordingArtifact
from realtime_session.services.recording_sink import (
    ProgressCallback,
    ProgressReader,
    RecordingSink,
    recording_name,
)

logger = logging.getLogger(LOGGER_NAME)


class GCSRecordingSink(RecordingSink):
    """Uploads recordings to a Google Cloud Storage bucket."""

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        credentials_path: Optional[str] = None,
        project_id: Optional[str] = None,
        prefix: str = "recordings",
        session_id: Optional[str] = None,
        client: Optional[storage.Client] = None,
    ):
        """
        Initialize the sink.

        Args:
            bucket_name: GCS bucket name (defaults to env var GCS_BUCKET)
            credentials_path: Path to service account JSON (GCS_CREDENTIALS_JSON);
                application default credentials are used when unset
            project_id: GCP project ID (GCS_PROJECT_ID)
            prefix: Blob name prefix
            session_id: Identifier used in blob names
            client: Pre-built storage client
        """
        super().__init__()
        self.bucket_name = bucket_name or os.getenv("GCS_BUCKET")
        self.credentials_path = credentials_path or os.getenv("GCS_CREDENTIALS_JSON")
        self.project_id = project_id or os.getenv("GCS_PROJECT_ID")
        self.prefix = prefix.strip("/")
        self.session_id = session_id

        if not self.bucket_name:
            raise ValueError("GCS_BUCKET not configured")

        if client is None:
            if self.credentials_path:
                if not os.path.exists(self.credentials_path):
                    raise ValueError(f"GCS credentials not found at: {self.credentials_path}")
                credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_path
                )
                client = storage.Client(credentials=credentials, project=self.project_id)
            else:
                client = storage.Client(project=self.project_id)
        self.client = client
        self.bucket = self.client.bucket(self.bucket_name)

        logger.info(
            "GCS recording sink initialized: bucket=%s, project=%s",
            self.bucket_name,
            self.project_id,
        )

    def get_blob_path(self, artifact: RecordingArtifact) -> str:
        """Generate the blob path for a recording."""
        name = recording_name(artifact, self.session_id)
        return f"{self.prefix}/{name}" if self.prefix else name

    def get_gs_url(self, blob_path: str) -> str:
        """Get gs:// URL for a blob."""
        return f"gs://{self.bucket_name}/{blob_path}"

    async def upload(self, artifact: RecordingArtifact, report: ProgressCallback) -> str:
        return await asyncio.to_thread(self._upload_blob, artifact, report)

    def _upload_blob(self, artifact: RecordingArtifact, report: ProgressCallback) -> str:
        blob_path = self.get_blob_path(artifact)
        data = artifact.to_wav()
        blob = self.bucket.blob(blob_path)
        blob.metadata = {"label": artifact.label, "duration": f"{artifact.duration:.3f}"}
        blob.upload_from_file(
            ProgressReader(data, report),
            size=len(data),
            content_type=WAV_MIME_TYPE,
        )
        logger.info("Uploaded recording to GCS: %s (%d bytes)", blob_path, len(data))
        return self.get_gs_url(blob_path)
