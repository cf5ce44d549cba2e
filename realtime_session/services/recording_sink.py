"""
Recording sinks receiving the sealed artifacts of a session.

submit() returns immediately with a playable in-memory reference; the
durable copy is written by a background task that reports progress as it
goes. A failed upload is logged and recorded on the submission, and its
durable reference never resolves.
"""

import asyncio
import io
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Set

from realtime_session.config.constants import LOGGER_NAME
from realtime_session.engine.errors import SinkUploadFailed
from realtime_session.models.session import RecordingArtifact

logger = logging.getLogger(LOGGER_NAME)

UPLOAD_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[float], None]


class UploadProgress:
    """
    Async iterator over upload percentages.

    Values are clamped to [0, 100] and never decrease; iteration ends when
    the upload finishes or fails.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop = asyncio.get_running_loop()
        self.latest = 0.0
        self._emitted = False
        self._closed = False

    def report(self, percent: float):
        """Publish a value. Must be called on the event loop thread."""
        if self._closed:
            return
        value = max(self.latest, min(100.0, max(0.0, float(percent))))
        if self._emitted and value == self.latest:
            return
        self._emitted = True
        self.latest = value
        self._queue.put_nowait(value)

    def report_threadsafe(self, percent: float):
        self._loop.call_soon_threadsafe(self.report, percent)

    def close(self):
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> float:
        value = await self._queue.get()
        if value is None:
            raise StopAsyncIteration
        return value


class RecordingSubmission:
    """Handle returned by RecordingSink.submit()."""

    def __init__(self, artifact: RecordingArtifact, local_reference: io.BytesIO):
        self.artifact = artifact
        self.local_reference = local_reference
        self.progress = UploadProgress()
        self.durable_reference: asyncio.Future = asyncio.get_running_loop().create_future()
        self.error: Optional[SinkUploadFailed] = None
        self.task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()


class ProgressReader(io.RawIOBase):
    """Readable wrapper over bytes that reports the share already read."""

    def __init__(self, data: bytes, callback: ProgressCallback):
        super().__init__()
        self._buffer = io.BytesIO(data)
        self._size = len(data)
        self._callback = callback

    def readable(self):
        return True

    def seekable(self):
        return True

    def tell(self):
        return self._buffer.tell()

    def seek(self, offset, whence=io.SEEK_SET):
        return self._buffer.seek(offset, whence)

    def read(self, size=-1):
        chunk = self._buffer.read(size)
        if self._size:
            self._callback(100.0 * self._buffer.tell() / self._size)
        return chunk

    def readinto(self, b):
        chunk = self.read(len(b))
        b[: len(chunk)] = chunk
        return len(chunk)


class RecordingSink(ABC):
    """Base class for sinks; subclasses implement the durable upload."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, artifact: RecordingArtifact) -> RecordingSubmission:
        """Hand an artifact to the sink. Does not wait for the upload."""
        submission = RecordingSubmission(artifact, io.BytesIO(artifact.to_wav()))
        submission.local_reference.name = f"{artifact.label}.wav"
        submission.progress.report(0)
        submission.task = asyncio.create_task(self._run_upload(submission))
        self._tasks.add(submission.task)
        submission.task.add_done_callback(self._tasks.discard)
        return submission

    async def wait_closed(self):
        """Wait for every pending upload to settle."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_upload(self, submission: RecordingSubmission):
        artifact = submission.artifact
        try:
            reference = await self.upload(artifact, submission.progress.report_threadsafe)
        except Exception as e:
            submission.error = SinkUploadFailed(f"Upload of '{artifact.label}' failed: {e}")
            logger.error(str(submission.error), exc_info=True)
        else:
            submission.progress.report(100)
            submission.durable_reference.set_result(reference)
            logger.info(f"Recording '{artifact.label}' stored at {reference}")
        finally:
            submission.progress.close()

    @abstractmethod
    async def upload(self, artifact: RecordingArtifact, report: ProgressCallback) -> str:
        """Store the artifact durably and return its reference."""


def recording_name(artifact: RecordingArtifact, session_id: Optional[str] = None) -> str:
    session_id = session_id or uuid.uuid4().hex[:12]
    return f"{artifact.label}_{session_id}_{int(time.time())}.wav"


class DirectoryRecordingSink(RecordingSink):
    """Writes WAV files into a local directory."""

    def __init__(self, directory: Optional[str] = None, session_id: Optional[str] = None):
        super().__init__()
        self.directory = Path(directory or os.getenv("RECORDINGS_DIR", "recordings"))
        self.session_id = session_id

    async def upload(self, artifact: RecordingArtifact, report: ProgressCallback) -> str:
        return await asyncio.to_thread(self._write, artifact, report)

    def _write(self, artifact: RecordingArtifact, report: ProgressCallback) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / recording_name(artifact, self.session_id)
        reader = ProgressReader(artifact.to_wav(), report)
        with open(path, "wb") as f:
            while True:
                chunk = reader.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
        return path.resolve().as_uri()
