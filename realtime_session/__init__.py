"""
Realtime Voice Session Engine - WebRTC voice sessions with the OpenAI Realtime API

This package establishes and manages a live, bidirectional voice session between
a local user and an OpenAI Realtime agent over WebRTC, while recording the audio
exchanged for later retrieval.

Architecture Overview:
- A credential broker server (FastAPI) issuing short-lived session credentials
  so the standard API key never leaves the server
- A session controller negotiating the peer connection, priming the agent over
  the "oai-events" data channel and tearing everything down deterministically
- Capture pipelines recording the user, the agent, or a mix of both
- Recording sinks storing the sealed recordings locally or in Cloud Storage

Key Components:
- capture: Microphone, speaker playback, mixer, recorders and capture pipelines
- config: Application-wide constants and logging setup
- engine: Session controller, signaling, transport and control channel
- models: Session configuration, control channel messages and artifacts
- services: Credential brokers and recording sinks
- main: The credential broker server
- client: Command line client running one voice session

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key (broker server only)
   - CREDENTIAL_BROKER_URL: URL of the broker's /session endpoint (client)
   - RECORDINGS_DIR: Directory for recordings (default "recordings")
   - LOG_LEVEL: Logging level (default INFO)

2. Start the broker server:
   ```bash
   realtime-broker --port 8000
   ```

3. Run a voice session for 30 seconds with dual recording:
   ```bash
   realtime-session --duration 30 --topology dual
   ```
"""

__version__ = "1.0.0"
