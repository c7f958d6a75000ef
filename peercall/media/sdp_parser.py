"""SDP Parser

Session Description 파싱 (파생 뷰 생성)
"""

from typing import List, Optional

from peercall.media.sdp_models import SessionDescriptionView, MediaSection
from peercall.common.exceptions import MalformedDescriptionError
from peercall.common.logger import get_logger

logger = get_logger(__name__)


def split_lines(sdp: str) -> List[str]:
    """SDP를 라인 단위로 분리 (CRLF/LF 모두 허용, 줄바꿈 문자 제거)"""
    return [line.rstrip("\r") for line in sdp.split("\n")]


def detect_line_ending(sdp: str) -> str:
    """원본 줄바꿈 문자 감지 (기본: CRLF)"""
    if "\r\n" in sdp:
        return "\r\n"
    if "\n" in sdp:
        return "\n"
    return "\r\n"


class SDPParser:
    """SDP 파서

    RFC 4566 기반. 라인 순서를 그대로 보존한다.
    """

    @staticmethod
    def parse(sdp: str) -> SessionDescriptionView:
        """SDP 문자열 파싱

        Args:
            sdp: SDP 문자열

        Returns:
            SessionDescriptionView 객체

        Raises:
            MalformedDescriptionError: 파싱 실패
        """
        if not sdp or not sdp.strip():
            raise MalformedDescriptionError("Empty SDP string")

        view = SessionDescriptionView(raw_sdp=sdp)
        current: Optional[MediaSection] = None

        for line in split_lines(sdp):
            line = line.strip()
            if not line:
                continue
            if "=" not in line:
                raise MalformedDescriptionError(f"Invalid SDP line: {line}")

            if line.startswith("m="):
                current = SDPParser.parse_media_line(line)
                view.media_sections.append(current)
            elif current is not None:
                current.attribute_lines.append(line)
            else:
                view.session_lines.append(line)

        if not view.session_lines or not view.session_lines[0].startswith("v="):
            raise MalformedDescriptionError("SDP must start with a v= line")

        logger.debug("sdp_parsed",
                     has_audio=view.has_audio(),
                     has_video=view.has_video(),
                     media_count=len(view.media_sections))

        return view

    @staticmethod
    def parse_media_line(line: str) -> MediaSection:
        """미디어 라인 파싱

        예: m=audio 9 UDP/TLS/RTP/SAVPF 111 0 8

        Raises:
            MalformedDescriptionError: 파싱 실패
        """
        parts = line[2:].split()
        if len(parts) < 3:
            raise MalformedDescriptionError(f"Invalid media line: {line}")

        port_field = parts[1].split("/", 1)[0]  # "9/2" 포트 개수 표기 허용
        try:
            port = int(port_field)
        except ValueError:
            raise MalformedDescriptionError(f"Invalid port in media line: {parts[1]}")

        return MediaSection(
            kind=parts[0],
            port=port,
            protocol=parts[2],
            formats=parts[3:],
            transport_line=line,
        )
