"""Peer Connection 경계

실시간 미디어 트랜스포트(RTCPeerConnection 유사 객체) 인터페이스
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional


CandidateHandler = Callable[[Dict[str, Any]], Awaitable[None]]
TrackHandler = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True)
class OfferOptions:
    """offer 생성 옵션

    send_local_media가 역할을 결정하는 명시적 플래그다:
    - True: 로컬 미디어 송신 + 수신 (sendrecv)
    - False: 수신 선호 (audio/video 섹션을 모두 요청하되 recvonly)
    """
    send_local_media: bool
    offer_to_receive_audio: bool = True
    offer_to_receive_video: bool = True
    voice_activity_detection: bool = True
    ice_restart: bool = False

    @classmethod
    def for_local_media(cls, has_local_media: bool) -> "OfferOptions":
        return cls(send_local_media=has_local_media)

    @property
    def receive_only(self) -> bool:
        return not self.send_local_media

    def direction(self) -> str:
        return "sendrecv" if self.send_local_media else "recvonly"


class PeerConnection(ABC):
    """피어 연결 인터페이스

    PeerSession이 사용하는 최소한의 RTCPeerConnection 기능.
    """

    def __init__(self):
        self.on_ice_candidate: Optional[CandidateHandler] = None
        self.on_track: Optional[TrackHandler] = None

    @abstractmethod
    async def create_offer(self, options: OfferOptions) -> str:
        """offer SDP 생성"""

    @abstractmethod
    async def create_answer(self) -> str:
        """answer SDP 생성 (remote offer 적용 후)"""

    @abstractmethod
    async def set_local_description(self, sdp: str, sdp_type: str) -> str:
        """로컬 description 적용

        Returns:
            실제 적용된 로컬 SDP (트랜스포트가 candidate 등을 추가할 수 있음)
        """

    @abstractmethod
    async def set_remote_description(self, sdp: str, sdp_type: str) -> None:
        """원격 description 적용"""

    @abstractmethod
    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        """원격 ICE candidate 적용

        candidate: {"candidate": "candidate:...", "sdpMid": ..., "sdpMLineIndex": ...}
        """

    @abstractmethod
    def add_track(self, track: Any) -> None:
        """로컬 트랙 추가"""

    @abstractmethod
    async def close(self) -> None:
        """연결 종료 및 자원 해제"""
