"""Conversion of av.AudioFrame objects to and from the recording PCM format."""

import av
import numpy as np

from realtime_session.config.constants import CHANNELS, SAMPLE_RATE

LAYOUT = "mono" if CHANNELS == 1 else "stereo"


class PcmConverter:
    """
    Normalizes audio frames to signed 16-bit mono PCM at SAMPLE_RATE.

    Frames already in that format are passed through untouched. The
    resampler is stateful, so use one converter per source stream.
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._resampler = None

    def convert(self, frame: av.AudioFrame) -> bytes:
        if (
            frame.format.name == "s16"
            and frame.layout.name == LAYOUT
            and frame.sample_rate == self.sample_rate
        ):
            return frame.to_ndarray().tobytes()

        if self._resampler is None:
            self._resampler = av.AudioResampler(
                format="s16", layout=LAYOUT, rate=self.sample_rate
            )
        return b"".join(
            resampled.to_ndarray().tobytes()
            for resampled in self._resampler.resample(frame)
        )


def pcm_to_frame(pcm: np.ndarray, pts: int, sample_rate: int = SAMPLE_RATE) -> av.AudioFrame:
    """Build an s16 frame from a 1-D int16 array."""
    frame = av.AudioFrame.from_ndarray(
        pcm.astype(np.int16).reshape(1, -1), format="s16", layout=LAYOUT
    )
    frame.sample_rate = sample_rate
    frame.pts = pts
    return frame
