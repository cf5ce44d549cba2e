"""
Engine module: the realtime voice session state machine and its protocols.

Key components:
- controller: SessionController, the Idle -> Negotiating -> Active ->
  Closing lifecycle with ordered acquisition and release of resources.
- signaling: Offer/answer exchange with the OpenAI Realtime WebRTC endpoint.
- transport: TransportSession wrapping the aiortc RTCPeerConnection.
- control_channel: Typed JSON messages over the data channel, including the
  deferred priming messages.
- speaking: The best-effort speaking indicator.
- errors: The engine's exception hierarchy.

Usage examples:
```python
from realtime_session.engine.controller import SessionController
from realtime_session.models import SessionConfig
from realtime_session.services.credential_broker import HttpCredentialBroker

controller = SessionController(HttpCredentialBroker())
await controller.start(SessionConfig(instructions="You are a helpful assistant."))
...
artifacts = await controller.stop()
```
"""

# Engine module initialization
