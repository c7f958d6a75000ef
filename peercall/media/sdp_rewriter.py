"""Description Rewriter

SDP 코덱 고정: 오디오/비디오 각각 하나의 코덱만 남기도록 SDP 텍스트를 재작성
"""

from dataclasses import dataclass, field
from typing import List, Optional

from peercall.media.codec_catalog import CodecCatalog, CodecDescriptor, DEFAULT_CATALOG, MediaKind
from peercall.media.sdp_models import CODEC_ATTRIBUTE_PREFIXES, CODEC_LINE_PREFIXES
from peercall.media.sdp_parser import SDPParser, split_lines, detect_line_ending
from peercall.common.exceptions import MalformedDescriptionError
from peercall.common.logger import get_logger

logger = get_logger(__name__)

_REWRITTEN_KINDS = (MediaKind.AUDIO.value, MediaKind.VIDEO.value)


@dataclass
class RewriteReport:
    """재작성 결과

    missing_blocks: m= 라인은 재작성됐지만 코덱 속성 라인이 없어
    교체 블록이 출력되지 않은 미디어 종류 (섹션 순서대로)
    """
    sdp: str
    rewritten_kinds: List[str] = field(default_factory=list)
    missing_blocks: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_blocks


def build_codec_block(codec: CodecDescriptor) -> List[str]:
    """코덱 교체 블록 생성

    a=rtpmap 1줄, feedback 속성별 a=rtcp-fb, fmtp/framesize는 정의된 경우만
    """
    pt = codec.payload_type
    lines = [f"a=rtpmap:{pt} {codec.name}"]
    for feedback in codec.feedback_attributes:
        lines.append(f"a=rtcp-fb:{pt} {feedback}")
    if codec.format_parameters:
        lines.append(f"a=fmtp:{pt} {codec.format_parameters}")
    if codec.frame_size:
        lines.append(f"a=framesize:{pt} {codec.frame_size}")
    return lines


class DescriptionRewriter:
    """SDP 재작성기

    라인 단위 스캔, "현재 미디어 종류" 커서 유지:
    - m=audio / m=video: payload type 목록을 선택 코덱 하나로 교체, 커서 설정
    - 커서가 설정된 상태의 첫 코덱 속성 라인: 교체 블록 출력 후 커서 해제
    - 그 외 audio/video 섹션의 코덱 라인: 삭제 (교체 대상 코덱 소속)
    - 나머지 라인: 원본 순서 그대로 통과
    """

    def __init__(self, catalog: Optional[CodecCatalog] = None):
        self.catalog = catalog or DEFAULT_CATALOG

    def rewrite(self, sdp: str, audio_codec: CodecDescriptor, video_codec: CodecDescriptor) -> str:
        """SDP 재작성

        Args:
            sdp: 원본 SDP
            audio_codec: 선택 오디오 코덱
            video_codec: 선택 비디오 코덱

        Returns:
            재작성된 SDP

        Raises:
            MalformedDescriptionError: 빈 SDP 또는 잘못된 m= 라인
        """
        return self.rewrite_with_report(sdp, audio_codec, video_codec).sdp

    def rewrite_by_name(self, sdp: str, audio_codec: str, video_codec: str) -> str:
        """코덱 이름으로 재작성 (UnknownCodecError 전파)"""
        return self.rewrite(
            sdp,
            self.catalog.lookup(MediaKind.AUDIO, audio_codec),
            self.catalog.lookup(MediaKind.VIDEO, video_codec),
        )

    def rewrite_with_report(
        self,
        sdp: str,
        audio_codec: CodecDescriptor,
        video_codec: CodecDescriptor,
    ) -> RewriteReport:
        if not sdp or not sdp.strip():
            raise MalformedDescriptionError("Empty SDP string")

        chosen = {
            MediaKind.AUDIO.value: audio_codec,
            MediaKind.VIDEO.value: video_codec,
        }
        line_ending = detect_line_ending(sdp)
        output: List[str] = []
        report = RewriteReport(sdp="")

        section_kind: Optional[str] = None
        cursor: Optional[str] = None

        for line in split_lines(sdp):
            if not line:
                continue

            if line.startswith("m="):
                if cursor is not None:
                    self._abandon_cursor(cursor, report)

                section = SDPParser.parse_media_line(line)
                section_kind = section.kind

                if section_kind in _REWRITTEN_KINDS:
                    codec = chosen[section_kind]
                    parts = line.split()
                    output.append(" ".join(parts[:3] + [str(codec.payload_type)]))
                    cursor = section_kind
                    report.rewritten_kinds.append(section_kind)
                else:
                    output.append(line)
                    cursor = None
                continue

            if section_kind in _REWRITTEN_KINDS and line.startswith(CODEC_LINE_PREFIXES):
                if cursor is not None and line.startswith(CODEC_ATTRIBUTE_PREFIXES):
                    output.extend(build_codec_block(chosen[cursor]))
                    cursor = None
                continue

            output.append(line)

        if cursor is not None:
            self._abandon_cursor(cursor, report)

        report.sdp = line_ending.join(output) + line_ending

        logger.debug("sdp_rewritten",
                     audio_codec=audio_codec.name,
                     video_codec=video_codec.name,
                     rewritten_kinds=report.rewritten_kinds,
                     missing_blocks=report.missing_blocks)

        return report

    @staticmethod
    def _abandon_cursor(kind: str, report: RewriteReport) -> None:
        # 코덱 속성 라인이 없는 섹션: 교체 블록 없이 m= 라인만 재작성된 상태로 남음
        report.missing_blocks.append(kind)
        logger.warning("sdp_rewrite_missing_codec_block", kind=kind)
