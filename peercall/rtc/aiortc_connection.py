"""aiortc Peer Connection

aiortc RTCPeerConnection 기반 PeerConnection 구현
"""

from typing import Any, Dict, Iterable, Optional

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from peercall.rtc.peer_connection import OfferOptions, PeerConnection
from peercall.common.logger import get_logger

logger = get_logger(__name__)


def parse_candidate(candidate: Dict[str, Any]):
    """시그널링 candidate 딕셔너리 → aiortc RTCIceCandidate

    {"candidate": "candidate:842163049 1 udp ...", "sdpMid": "0", "sdpMLineIndex": 0}

    Returns:
        RTCIceCandidate 또는 None (end-of-candidates)
    """
    line = candidate.get("candidate") or ""
    if not line:
        return None
    if line.startswith("a="):
        line = line[2:]
    if line.startswith("candidate:"):
        line = line[len("candidate:"):]

    ice_candidate = candidate_from_sdp(line)
    ice_candidate.sdpMid = candidate.get("sdpMid")
    ice_candidate.sdpMLineIndex = candidate.get("sdpMLineIndex")
    return ice_candidate


class AiortcPeerConnection(PeerConnection):
    """aiortc 피어 연결 어댑터

    aiortc는 trickle ICE를 지원하지 않으므로 로컬 candidate는
    set_local_description() 결과 SDP에 포함되어 전달된다.
    """

    def __init__(self, ice_servers: Iterable[str] = (), pc: Optional[RTCPeerConnection] = None):
        super().__init__()
        if pc is None:
            configuration = RTCConfiguration(
                iceServers=[RTCIceServer(urls=[url]) for url in ice_servers]
            )
            pc = RTCPeerConnection(configuration=configuration)
        self._pc = pc
        self._pc.on("track", self._handle_track)
        self._pc.on("connectionstatechange", self._handle_connection_state)

    @property
    def raw(self) -> RTCPeerConnection:
        return self._pc

    async def _handle_track(self, track) -> None:
        logger.info("remote_track_received", kind=track.kind)
        if self.on_track is not None:
            await self.on_track(track)

    async def _handle_connection_state(self) -> None:
        logger.info("peer_connection_state_changed", state=self._pc.connectionState)

    def _ensure_receive_transceivers(self, options: OfferOptions) -> None:
        wanted = {
            "audio": options.offer_to_receive_audio,
            "video": options.offer_to_receive_video,
        }
        existing = {transceiver.kind for transceiver in self._pc.getTransceivers()}
        for kind, receive in wanted.items():
            if receive and kind not in existing:
                self._pc.addTransceiver(kind, direction="recvonly")

    async def create_offer(self, options: OfferOptions) -> str:
        self._ensure_receive_transceivers(options)
        offer = await self._pc.createOffer()
        return offer.sdp

    async def create_answer(self) -> str:
        answer = await self._pc.createAnswer()
        return answer.sdp

    async def set_local_description(self, sdp: str, sdp_type: str) -> str:
        await self._pc.setLocalDescription(RTCSessionDescription(sdp=sdp, type=sdp_type))
        # ICE gathering 완료 후의 SDP (candidate 포함)
        return self._pc.localDescription.sdp

    async def set_remote_description(self, sdp: str, sdp_type: str) -> None:
        await self._pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type=sdp_type))

    async def add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        ice_candidate = parse_candidate(candidate)
        if ice_candidate is None:
            logger.debug("end_of_candidates_ignored")
            return
        await self._pc.addIceCandidate(ice_candidate)

    def add_track(self, track: Any) -> None:
        self._pc.addTrack(track)

    async def close(self) -> None:
        await self._pc.close()
