"""SDP 데이터 모델

Session Description 파싱 결과(파생 뷰)를 담는 데이터 클래스
"""

from dataclasses import dataclass, field
from typing import List, Optional


CODEC_ATTRIBUTE_PREFIXES = ("a=rtpmap:", "a=rtcp-fb:", "a=fmtp:")
CODEC_LINE_PREFIXES = CODEC_ATTRIBUTE_PREFIXES + ("a=framesize:",)


@dataclass
class MediaSection:
    """미디어 섹션 (m= line + 속성 라인들)

    예: m=audio 9 UDP/TLS/RTP/SAVPF 111 0 8
    """
    kind: str                 # audio, video, application
    port: int
    protocol: str             # RTP/AVP, UDP/TLS/RTP/SAVPF, ...
    formats: List[str]        # payload types
    transport_line: str       # 원본 m= 라인

    # 원본 순서를 유지한 a= 및 기타 라인
    attribute_lines: List[str] = field(default_factory=list)

    def codec_lines(self) -> List[str]:
        """코덱 선택 관련 라인 (rtpmap/rtcp-fb/fmtp/framesize)"""
        return [line for line in self.attribute_lines if line.startswith(CODEC_LINE_PREFIXES)]

    def rtpmap_lines(self) -> List[str]:
        return [line for line in self.attribute_lines if line.startswith("a=rtpmap:")]

    def codec_names(self) -> List[str]:
        """rtpmap 코덱 이름 목록

        예: a=rtpmap:111 opus/48000/2 → "opus/48000/2"
        """
        names = []
        for line in self.rtpmap_lines():
            parts = line.split(None, 1)
            if len(parts) == 2:
                names.append(parts[1])
        return names

    def has_codec_attributes(self) -> bool:
        return any(line.startswith(CODEC_ATTRIBUTE_PREFIXES) for line in self.attribute_lines)

    def __repr__(self) -> str:
        return f"MediaSection(kind={self.kind}, port={self.port}, formats={self.formats})"


@dataclass
class SessionDescriptionView:
    """SDP 파생 뷰

    세션 레벨 라인과 순서가 유지된 미디어 섹션 목록
    """
    session_lines: List[str] = field(default_factory=list)
    media_sections: List[MediaSection] = field(default_factory=list)

    # 원본 SDP
    raw_sdp: Optional[str] = None

    def get_sections(self, kind: str) -> List[MediaSection]:
        return [section for section in self.media_sections if section.kind == kind]

    def get_section(self, kind: str) -> Optional[MediaSection]:
        """미디어 종류로 첫 섹션 검색"""
        for section in self.media_sections:
            if section.kind == kind:
                return section
        return None

    def kinds(self) -> List[str]:
        return [section.kind for section in self.media_sections]

    def has_audio(self) -> bool:
        return self.get_section("audio") is not None

    def has_video(self) -> bool:
        return self.get_section("video") is not None

    def codec_names(self, kind: str) -> List[str]:
        """해당 종류 전체 섹션의 rtpmap 코덱 이름"""
        names: List[str] = []
        for section in self.get_sections(kind):
            names.extend(section.codec_names())
        return names

    def payload_types(self, kind: str) -> List[str]:
        formats: List[str] = []
        for section in self.get_sections(kind):
            formats.extend(section.formats)
        return formats
