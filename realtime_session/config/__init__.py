"""
Configuration module for the realtime voice session engine.

This module provides centralized configuration for the whole package,
including constants, logging setup and the environment-driven defaults
shared by the engine, the credential broker and the recording sinks.

Key components:
- constants: Application-wide constants such as the control channel label,
  the OpenAI Realtime endpoints, audio format parameters and message types.
- logging_config: A consistent logging setup with console and rotating file
  handlers.

Usage examples:
```python
from realtime_session.config.constants import LOGGER_NAME, DEFAULT_REALTIME_MODEL

from realtime_session.config.logging_config import configure_logging
logger = configure_logging()
logger.info("Session client started")
```
"""
