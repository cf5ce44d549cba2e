"""
Capture module for microphone input, speaker output and recording.

Key components:
- microphone: MediaStreamTrack reading the default input device via PyAudio.
- playback: Plays the agent's remote tracks on the default output device.
- mixer: MediaStreamTrack summing the microphone with every remote track.
- recorder: In-memory recorder sealing one stream into a RecordingArtifact.
- pipeline: Arranges recorders for the single, dual or mixed topology.
- pcm: Frame normalization to 16-bit mono PCM.
"""

# Capture module initialization
