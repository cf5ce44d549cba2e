"""
Services module for the collaborators of the realtime voice session engine.

Key components:
- credential_broker: Clients that obtain short-lived Realtime session
  credentials, either directly with the server-held API key or through the
  broker server.
- recording_sink: The recording sink contract (immediate local reference,
  progress stream, durable reference) and a local-directory sink.
- gcs_sink: A sink uploading recordings to Google Cloud Storage.

Usage examples:
```python
from realtime_session.services.credential_broker import HttpCredentialBroker
from realtime_session.services.recording_sink import DirectoryRecordingSink

broker = HttpCredentialBroker("http://localhost:8000/session")
sink = DirectoryRecordingSink("recordings")

submission = sink.submit(artifact)
async for percent in submission.progress:
    print(f"Stored {percent:.0f}%")
print(await submission.durable_reference)
```
"""

# Services module initialization
