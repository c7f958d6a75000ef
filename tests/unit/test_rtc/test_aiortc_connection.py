"""aiortc Peer Connection 단위 테스트"""

import pytest

from peercall.media.sdp_parser import SDPParser
from peercall.rtc.aiortc_connection import AiortcPeerConnection, parse_candidate
from peercall.rtc.peer_connection import OfferOptions
from peercall.common.logger import setup_logging


@pytest.fixture(scope="module", autouse=True)
def setup_test_logging():
    """테스트용 로깅 설정"""
    setup_logging(level="DEBUG", format_type="text")


class TestOfferOptions:
    """OfferOptions 테스트"""

    def test_receive_only(self):
        """로컬 미디어 없으면 양방향 수신 요청 + recvonly"""
        options = OfferOptions.for_local_media(False)

        assert options.receive_only
        assert options.offer_to_receive_audio
        assert options.offer_to_receive_video
        assert options.voice_activity_detection
        assert not options.ice_restart
        assert options.direction() == "recvonly"

    def test_send_local_media(self):
        options = OfferOptions.for_local_media(True)

        assert not options.receive_only
        assert options.direction() == "sendrecv"


class TestParseCandidate:
    """candidate 변환 테스트"""

    def test_parse_srflx(self):
        candidate = parse_candidate({
            "candidate": "candidate:842163049 1 udp 1677729535 203.0.113.7 55000 typ srflx "
                         "raddr 10.0.0.1 rport 55000 generation 0",
            "sdpMid": "0",
            "sdpMLineIndex": 0,
        })

        assert candidate.foundation == "842163049"
        assert candidate.component == 1
        assert candidate.protocol == "udp"
        assert candidate.ip == "203.0.113.7"
        assert candidate.port == 55000
        assert candidate.type == "srflx"
        assert candidate.sdpMid == "0"
        assert candidate.sdpMLineIndex == 0

    def test_parse_with_attribute_prefix(self):
        candidate = parse_candidate({"candidate": "a=candidate:1 1 udp 2122260223 192.168.1.5 50000 typ host"})

        assert candidate.type == "host"
        assert candidate.sdpMid is None

    def test_end_of_candidates(self):
        """빈 candidate는 end-of-candidates"""
        assert parse_candidate({"candidate": ""}) is None
        assert parse_candidate({}) is None


class TestAiortcPeerConnection:
    """AiortcPeerConnection 테스트"""

    @pytest.mark.asyncio
    async def test_receive_only_offer_has_both_sections(self):
        """로컬 트랙 없이 offer 생성 시 audio/video 수신 섹션 포함"""
        connection = AiortcPeerConnection(ice_servers=["stun:stun.example.org:3478"])
        try:
            sdp = await connection.create_offer(OfferOptions.for_local_media(False))

            view = SDPParser.parse(sdp)
            assert view.kinds() == ["audio", "video"]
            for section in view.media_sections:
                assert "a=recvonly" in section.attribute_lines
        finally:
            await connection.close()

    @pytest.mark.asyncio
    async def test_offer_twice_reuses_transceivers(self):
        connection = AiortcPeerConnection()
        try:
            await connection.create_offer(OfferOptions.for_local_media(False))
            await connection.create_offer(OfferOptions.for_local_media(False))

            assert len(connection.raw.getTransceivers()) == 2
        finally:
            await connection.close()

    @pytest.mark.asyncio
    async def test_end_of_candidates_ignored(self):
        connection = AiortcPeerConnection()
        try:
            await connection.add_ice_candidate({"candidate": ""})
        finally:
            await connection.close()
