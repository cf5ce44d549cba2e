"""Speaker playback of the agent's audio."""

import asyncio
import logging
from typing import Dict

import pyaudio
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from realtime_session.capture.pcm import PcmConverter
from realtime_session.config.constants import CHANNELS, LOGGER_NAME, SAMPLE_RATE

logger = logging.getLogger(LOGGER_NAME)


class SpeakerPlayback:
    """Plays every attached remote track on the default output device."""

    def __init__(self, sample_rate: int = SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.p = pyaudio.PyAudio()
        self.stream = self.p.open(
            format=pyaudio.paInt16,
            channels=CHANNELS,
            rate=sample_rate,
            output=True,
        )
        self._tasks: Dict[str, asyncio.Task] = {}
        self._tracks: Dict[str, MediaStreamTrack] = {}
        logger.info("Speaker playback initialized")

    def play(self, track: MediaStreamTrack):
        if self.stream is None or track.id in self._tasks:
            return
        self._tracks[track.id] = track
        self._tasks[track.id] = asyncio.create_task(self._play(track))

    async def _play(self, track: MediaStreamTrack):
        converter = PcmConverter(self.sample_rate)
        loop = asyncio.get_running_loop()
        try:
            while self.stream is not None:
                frame = await track.recv()
                data = converter.convert(frame)
                await loop.run_in_executor(None, self.stream.write, data)
        except MediaStreamError:
            logger.debug(f"Playback track {track.id} ended")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Playback error on track {track.id}: {e}")

    async def stop(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for track in self._tracks.values():
            track.stop()
        self._tracks.clear()
        if self.stream is not None:
            self.stream.stop_stream()
            self.stream.close()
            self.stream = None
            self.p.terminate()
            logger.info("Speaker playback stopped")
