"""
Constants and configuration values used throughout the package.

This module keeps protocol identifiers, endpoint URLs and audio parameters in
one place so the engine, the broker server and the sinks agree on them.
"""

# Logger name used throughout the package
LOGGER_NAME = "realtime_session"

# OpenAI Realtime API defaults
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"
DEFAULT_VOICE = "verse"
REALTIME_BASE_URL = "https://api.openai.com/v1/realtime"
REALTIME_SESSIONS_URL = "https://api.openai.com/v1/realtime/sessions"

# Data channel label expected by the Realtime API
CONTROL_CHANNEL_LABEL = "oai-events"

# Seconds without inbound traffic before the speaking indicator clears
SPEAKING_QUIESCENCE_SECONDS = 3.0

# Audio format used for capture and recording artifacts
SAMPLE_RATE = 48000
CHANNELS = 1
SAMPLE_WIDTH = 2  # bytes, signed 16-bit
FRAME_SAMPLES = 960  # 20ms at 48kHz
PCM_MIME_TYPE = f"audio/L16;rate={SAMPLE_RATE};channels={CHANNELS}"
WAV_MIME_TYPE = "audio/wav"

# Outbound control message types
MESSAGE_TYPE_SESSION_UPDATE = "session.update"
MESSAGE_TYPE_CONVERSATION_ITEM_CREATE = "conversation.item.create"
MESSAGE_TYPE_RESPONSE_CREATE = "response.create"

# Inbound control message types
MESSAGE_TYPE_SPEAKING_STARTED = "output_audio_buffer.started"
MESSAGE_TYPE_SPEAKING_STOPPED = "output_audio_buffer.stopped"
MESSAGE_TYPE_RESPONSE_DONE = "response.done"
MESSAGE_TYPE_CONVERSATION_ITEM_CREATED = "conversation.item.created"
MESSAGE_TYPE_ERROR = "error"

# Recording labels
STREAM_USER = "user"
STREAM_ASSISTANT = "assistant"
STREAM_MIXED = "mixed"
