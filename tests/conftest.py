"""pytest 설정 파일

공통 fixtures 및 테스트 설정
"""

import asyncio
import pytest
import tempfile
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional

from peercall.media.codec_catalog import DEFAULT_CATALOG, MediaKind
from peercall.media.media_source import LocalMedia, MediaConstraints, MediaSource
from peercall.rtc.peer_connection import OfferOptions, PeerConnection
from peercall.session.peer_session import PeerSession
from peercall.signaling.client import SignalingClient
from peercall.signaling.queue import SignalingQueue
from peercall.common.exceptions import MediaAcquisitionError, TransportSendFailure


# 브라우저가 만드는 형태의 다중 코덱 SDP
BROWSER_SDP = (
    "v=0\r\n"
    "o=- 4611731400430051336 2 IN IP4 127.0.0.1\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "a=group:BUNDLE 0 1\r\n"
    "a=msid-semantic: WMS\r\n"
    "m=audio 9 UDP/TLS/RTP/SAVPF 111 0 8\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=rtcp:9 IN IP4 0.0.0.0\r\n"
    "a=ice-ufrag:abcd\r\n"
    "a=ice-pwd:abcdefghijklmnopqrstuvwx\r\n"
    "a=mid:0\r\n"
    "a=recvonly\r\n"
    "a=rtcp-mux\r\n"
    "a=rtpmap:111 opus/48000/2\r\n"
    "a=rtcp-fb:111 transport-cc\r\n"
    "a=fmtp:111 minptime=10;useinbandfec=1\r\n"
    "a=rtpmap:0 PCMU/8000\r\n"
    "a=rtpmap:8 PCMA/8000\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 96 97 98\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=rtcp:9 IN IP4 0.0.0.0\r\n"
    "a=mid:1\r\n"
    "a=recvonly\r\n"
    "a=rtcp-mux\r\n"
    "a=rtpmap:96 VP8/90000\r\n"
    "a=rtcp-fb:96 nack\r\n"
    "a=rtcp-fb:96 nack pli\r\n"
    "a=rtpmap:97 rtx/90000\r\n"
    "a=fmtp:97 apt=96\r\n"
    "a=rtpmap:98 H264/90000\r\n"
    "a=fmtp:98 packetization-mode=1\r\n"
)


@pytest.fixture
def browser_sdp() -> str:
    """다중 코덱 SDP"""
    return BROWSER_SDP


@pytest.fixture
def temp_config_file():
    """임시 설정 파일 fixture"""
    config_data = {
        "client": {
            "user": "alice",
            "room": "Room Name",
        },
        "signaling": {
            "method": "websocket",
            "url": "wss://localhost:8443/kurento",
            "dialect": "room",
        },
        "codecs": {
            "audio": "opus",
            "video": "vp8",
        },
        "session": {
            "policy": "multi_peer",
            "auto_call": True,
            "auto_call_delay": 0.5,
        },
        "logging": {
            "level": "INFO",
            "format": "json",
        },
    }

    # 임시 파일 생성
    with tempfile.NamedTemporaryFile(
        mode='w',
        suffix='.yaml',
        delete=False,
        encoding='utf-8'
    ) as f:
        yaml.dump(config_data, f)
        temp_path = f.name

    yield temp_path

    # 정리
    Path(temp_path).unlink(missing_ok=True)


@pytest.fixture
def invalid_config_file():
    """잘못된 설정 파일 fixture"""
    config_data = {
        "signaling": {
            "method": "poll",
            "url": "ws://localhost:8443",  # poll인데 ws 스킴
            "poll_interval": 0,            # 0 이하
        },
        "codecs": {
            "video": "av1",                # 카탈로그에 없는 코덱
        },
    }

    with tempfile.NamedTemporaryFile(
        mode='w',
        suffix='.yaml',
        delete=False,
        encoding='utf-8'
    ) as f:
        yaml.dump(config_data, f)
        temp_path = f.name

    yield temp_path

    Path(temp_path).unlink(missing_ok=True)


# ----------------------------------------------------------------------
# Fakes
# ----------------------------------------------------------------------

class FakeTrack:
    """MediaStreamTrack 대역"""

    def __init__(self, kind: str):
        self.kind = kind
        self.enabled = True
        self.stopped = False

    def stop(self):
        self.stopped = True


class FakeMediaSource(MediaSource):
    """호출 기록을 남기는 미디어 소스"""

    def __init__(self, kinds=("audio", "video"), error: Optional[Exception] = None):
        self.kinds = kinds
        self.error = error
        self.requests: List[MediaConstraints] = []
        self.acquired: List[LocalMedia] = []

    async def acquire(self, constraints: MediaConstraints) -> LocalMedia:
        self.requests.append(constraints)
        if self.error is not None:
            raise self.error
        media = LocalMedia([FakeTrack(kind) for kind in self.kinds])
        self.acquired.append(media)
        return media


class FakePeerConnection(PeerConnection):
    """호출 기록을 남기는 피어 연결

    offer/answer는 BROWSER_SDP를 돌려주고, set_local_description은 받은 SDP를 그대로 반환한다.
    gate를 설정하면 create_offer/create_answer가 gate.set()까지 대기한다.
    """

    def __init__(self, sdp: str = BROWSER_SDP):
        super().__init__()
        self.sdp = sdp
        self.calls: List[tuple] = []
        self.offer_options: List[OfferOptions] = []
        self.tracks: List[Any] = []
        self.candidates: List[Dict[str, Any]] = []
        self.local_descriptions: List[tuple] = []
        self.remote_descriptions: List[tuple] = []
        self.closed = False
        self.gate: Optional[asyncio.Event] = None
        self.fail_remote: Optional[Exception] = None
        self.fail_candidate: Optional[Exception] = None

    async def _wait_gate(self):
        if self.gate is not None:
            await self.gate.wait()

    async def create_offer(self, options: OfferOptions) -> str:
        self.calls.append(("create_offer",))
        self.offer_options.append(options)
        await self._wait_gate()
        return self.sdp

    async def create_answer(self) -> str:
        self.calls.append(("create_answer",))
        await self._wait_gate()
        return self.sdp

    async def set_local_description(self, sdp: str, sdp_type: str) -> str:
        self.calls.append(("set_local_description", sdp_type))
        self.local_descriptions.append((sdp_type, sdp))
        return sdp

    async def set_remote_description(self, sdp: str, sdp_type: str) -> None:
        self.calls.append(("set_remote_description", sdp_type))
        if self.fail_remote is not None:
            raise self.fail_remote
        self.remote_descriptions.append((sdp_type, sdp))

    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        self.calls.append(("add_ice_candidate",))
        if self.fail_candidate is not None and candidate.get("candidate") == "bad":
            raise self.fail_candidate
        self.candidates.append(candidate)

    def add_track(self, track: Any) -> None:
        self.calls.append(("add_track", track.kind))
        self.tracks.append(track)

    async def close(self) -> None:
        self.calls.append(("close",))
        self.closed = True


class RecordingSender:
    """SignalingQueue sender 대역: 전송 메시지 기록, fail=True면 TransportSendFailure"""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def __call__(self, message) -> None:
        if self.fail:
            raise TransportSendFailure(f"send failed: {message.command.value}", message.peer_id or "")
        self.sent.append(message)


class RecordingClient(SignalingClient):
    """시그널링 트랜스포트 대역: send 기록, deliver()로 수신 메시지 주입"""

    def __init__(self):
        super().__init__()
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    async def start(self) -> None:
        await self._mark_ready()

    async def send(self, message: Dict[str, Any]) -> None:
        if self.fail:
            raise TransportSendFailure("client send failed")
        self.sent.append(message)

    async def close(self) -> None:
        await self._mark_closed()

    async def deliver(self, raw: Any) -> None:
        await self._dispatch(raw)


@pytest.fixture
def fake_track():
    return FakeTrack


@pytest.fixture
def media_source():
    return FakeMediaSource()


@pytest.fixture
def failing_media_source():
    return FakeMediaSource(error=MediaAcquisitionError("permission denied"))


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def signaling_queue(sender):
    return SignalingQueue(sender)


@pytest.fixture
def recording_client():
    return RecordingClient()


@pytest.fixture
def session_factory(signaling_queue):
    """PeerSession 생성 함수 fixture

    생성된 세션의 피어 연결은 session._connection 대신 connections[peer_id]로 접근한다.
    """
    connections: Dict[str, FakePeerConnection] = {}

    def create(peer_id: str, media_source: Optional[MediaSource] = None, event_sink=None, queue=None):
        connection = FakePeerConnection()
        connections[peer_id] = connection
        return PeerSession(
            peer_id,
            connection,
            queue or signaling_queue,
            DEFAULT_CATALOG.lookup(MediaKind.AUDIO, "opus"),
            DEFAULT_CATALOG.lookup(MediaKind.VIDEO, "vp8"),
            media_source=media_source,
            event_sink=event_sink,
        )

    create.connections = connections
    return create
