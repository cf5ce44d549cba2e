"""Test doubles for the aiortc peer connection, data channel and media tracks."""

import asyncio
from datetime import datetime, timedelta, timezone

import numpy as np
from aiortc import MediaStreamTrack, RTCSessionDescription
from aiortc.mediastreams import MediaStreamError
from pyee.asyncio import AsyncIOEventEmitter

from realtime_session.capture.pcm import pcm_to_frame
from realtime_session.config.constants import FRAME_SAMPLES
from realtime_session.models.session import SessionCredential

OFFER_SDP = "v=0\r\no=- 1 1 IN IP4 127.0.0.1\r\ns=offer\r\n"
ANSWER_SDP = "v=0\r\no=- 2 2 IN IP4 127.0.0.1\r\ns=answer\r\n"


def make_credential(token="ek_test", minutes=1):
    return SessionCredential(
        token=token,
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=minutes),
    )


def pcm_bytes(value, samples=FRAME_SAMPLES):
    return np.full(samples, value, dtype=np.int16).tobytes()


class FakeAudioTrack(MediaStreamTrack):
    """Audio track emitting one constant-valued frame per entry in ``values``."""

    kind = "audio"

    def __init__(self, values=(), samples=FRAME_SAMPLES, endless=False):
        super().__init__()
        self.values = list(values)
        self.samples = samples
        self.endless = endless
        self.finished = asyncio.Event()
        self._pts = 0

    async def recv(self):
        if self.readyState != "live":
            raise MediaStreamError
        if self.values:
            value = self.values.pop(0)
        elif self.endless:
            await asyncio.sleep(0.01)
            value = 0
        else:
            self.finished.set()
            self.stop()
            raise MediaStreamError
        frame = pcm_to_frame(np.full(self.samples, value, dtype=np.int16), self._pts)
        self._pts += self.samples
        await asyncio.sleep(0)
        return frame


class FakeVideoTrack(MediaStreamTrack):
    kind = "video"

    async def recv(self):
        raise MediaStreamError


class FakeDataChannel(AsyncIOEventEmitter):
    """Stand-in for RTCDataChannel; drops nothing silently, fails instead."""

    def __init__(self, label):
        super().__init__()
        self.label = label
        self.readyState = "connecting"
        self.sent = []

    def send(self, data):
        if self.readyState != "open":
            raise RuntimeError("RTCDataChannel is not open")
        self.sent.append(data)

    def open(self):
        self.readyState = "open"
        self.emit("open")

    def close(self):
        if self.readyState == "closed":
            return
        self.readyState = "closed"
        self.emit("close")


class FakePeerConnection(AsyncIOEventEmitter):
    """Stand-in for RTCPeerConnection that records the calls made on it."""

    def __init__(self, open_channel_on_answer=True):
        super().__init__()
        self.open_channel_on_answer = open_channel_on_answer
        self.tracks = []
        self.data_channels = []
        self.localDescription = None
        self.remoteDescription = None
        self.connectionState = "new"
        self.closed = False

    def addTrack(self, track):
        self.tracks.append(track)

    def createDataChannel(self, label):
        channel = FakeDataChannel(label)
        self.data_channels.append(channel)
        return channel

    async def createOffer(self):
        return RTCSessionDescription(sdp=OFFER_SDP, type="offer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        self.remoteDescription = description
        self.connectionState = "connected"
        self.emit("connectionstatechange")
        if self.open_channel_on_answer:
            loop = asyncio.get_running_loop()
            for channel in self.data_channels:
                loop.call_soon(channel.open)

    async def close(self):
        self.closed = True
        self.connectionState = "closed"
        for channel in self.data_channels:
            channel.close()


class FakeSignaling:
    """Negotiates against the fake peer connection without any HTTP."""

    def __init__(self, error=None, delay=0):
        self.error = error
        self.delay = delay
        self.calls = 0

    async def negotiate(self, credential, transport, model=None):
        self.calls += 1
        credential.consume()
        await transport.create_offer()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        await transport.apply_answer(ANSWER_SDP)
        return transport


class FakeBroker:
    def __init__(self, credential=None, error=None):
        self.credential = credential
        self.error = error
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.credential if self.credential is not None else make_credential()


class FakeSpeaker:
    def __init__(self):
        self.played = []
        self.stopped = False

    def play(self, track):
        self.played.append(track)

    async def stop(self):
        self.stopped = True
        for track in self.played:
            track.stop()


async def wait_for(predicate, timeout=2.0):
    """Poll ``predicate`` on the event loop until it is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
