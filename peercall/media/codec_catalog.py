"""Codec Catalog

지원 오디오/비디오 코덱 레지스트리
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from peercall.common.exceptions import ConfigurationError, UnknownCodecError
from peercall.common.logger import get_logger

logger = get_logger(__name__)


class MediaKind(str, Enum):
    """미디어 종류"""
    AUDIO = "audio"
    VIDEO = "video"


@dataclass(frozen=True)
class CodecDescriptor:
    """코덱 설명자

    예: opus → pt=111, name="opus/48000/2", fmtp="minptime=10;useinbandfec=1"
    """
    payload_type: int
    name: str
    feedback_attributes: Tuple[str, ...] = ()
    format_parameters: Optional[str] = None
    frame_size: Optional[str] = None

    @classmethod
    def from_registry_entry(cls, entry: Mapping[str, Any]) -> "CodecDescriptor":
        """레지스트리 포맷 {pt, name, rtcp-fb?, fmtp?, framesize?} 변환

        Raises:
            ConfigurationError: pt/name 누락
        """
        try:
            payload_type = int(entry["pt"])
            name = str(entry["name"])
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid codec entry {dict(entry)!r}: {e}") from e

        return cls(
            payload_type=payload_type,
            name=name,
            feedback_attributes=tuple(entry.get("rtcp-fb") or ()),
            format_parameters=entry.get("fmtp"),
            frame_size=entry.get("framesize"),
        )

    def to_registry_entry(self) -> Dict[str, Any]:
        """레지스트리 포맷으로 변환 (None 필드 생략)"""
        entry: Dict[str, Any] = {"pt": self.payload_type, "name": self.name}
        if self.feedback_attributes:
            entry["rtcp-fb"] = list(self.feedback_attributes)
        if self.format_parameters:
            entry["fmtp"] = self.format_parameters
        if self.frame_size:
            entry["framesize"] = self.frame_size
        return entry


_VIDEO_FEEDBACK = ("ccm fir", "nack", "nack pli", "goog-remb", "transport-cc")

DEFAULT_AUDIO_CODECS: Dict[str, CodecDescriptor] = {
    "opus": CodecDescriptor(
        payload_type=111,
        name="opus/48000/2",
        feedback_attributes=("transport-cc",),
        format_parameters="minptime=10;useinbandfec=1",
    ),
    "g722": CodecDescriptor(payload_type=9, name="G722/8000"),
    "pcmu": CodecDescriptor(payload_type=0, name="PCMU/8000"),
    "pcma": CodecDescriptor(payload_type=8, name="PCMA/8000"),
    "isac16": CodecDescriptor(payload_type=103, name="ISAC/16000"),
    "isac32": CodecDescriptor(payload_type=104, name="ISAC/32000"),
    "cn32": CodecDescriptor(payload_type=106, name="CN/32000"),
    "cn16": CodecDescriptor(payload_type=105, name="CN/16000"),
    "cn8": CodecDescriptor(payload_type=13, name="CN/8000"),
}

DEFAULT_VIDEO_CODECS: Dict[str, CodecDescriptor] = {
    "vp8": CodecDescriptor(payload_type=100, name="VP8/90000", feedback_attributes=_VIDEO_FEEDBACK),
    "vp9": CodecDescriptor(payload_type=101, name="VP9/90000", feedback_attributes=_VIDEO_FEEDBACK),
    "h264": CodecDescriptor(
        payload_type=107,
        name="H264/90000",
        feedback_attributes=_VIDEO_FEEDBACK,
        format_parameters="level-asymmetry-allowed=1;packetization-mode=1",
    ),
    "red": CodecDescriptor(payload_type=116, name="red/90000"),
    "ulpfec": CodecDescriptor(payload_type=117, name="ulpfec/90000"),
    "rtx": CodecDescriptor(payload_type=96, name="rtx/90000", format_parameters="apt=100"),
}


class CodecCatalog:
    """코덱 카탈로그

    종류별(audio/video) 코덱 레지스트리. 초기화 이후 읽기 전용이며
    잠금 없이 여러 세션에서 공유한다.
    """

    def __init__(
        self,
        audio: Optional[Mapping[str, CodecDescriptor]] = None,
        video: Optional[Mapping[str, CodecDescriptor]] = None,
    ):
        """초기화

        Args:
            audio: 오디오 코덱 (None이면 기본 레지스트리)
            video: 비디오 코덱 (None이면 기본 레지스트리)

        Raises:
            ConfigurationError: 레지스트리 내 payload type 중복
        """
        registries = {
            MediaKind.AUDIO: dict(DEFAULT_AUDIO_CODECS if audio is None else audio),
            MediaKind.VIDEO: dict(DEFAULT_VIDEO_CODECS if video is None else video),
        }

        for kind, registry in registries.items():
            self._check_unique_payload_types(kind, registry)

        self._registries = {
            kind: MappingProxyType(registry) for kind, registry in registries.items()
        }

        logger.debug("codec_catalog_initialized",
                     audio_codecs=list(registries[MediaKind.AUDIO]),
                     video_codecs=list(registries[MediaKind.VIDEO]))

    @classmethod
    def from_mapping(
        cls,
        audio: Optional[Mapping[str, Mapping[str, Any]]] = None,
        video: Optional[Mapping[str, Mapping[str, Any]]] = None,
        extend_defaults: bool = True,
    ) -> "CodecCatalog":
        """레지스트리 포맷 딕셔너리로 카탈로그 생성

        Args:
            audio: {short_name: {pt, name, rtcp-fb?, fmtp?, framesize?}}
            video: 동일 포맷
            extend_defaults: True면 기본 레지스트리에 추가/덮어쓰기
        """
        audio_registry: Dict[str, CodecDescriptor] = dict(DEFAULT_AUDIO_CODECS) if extend_defaults else {}
        video_registry: Dict[str, CodecDescriptor] = dict(DEFAULT_VIDEO_CODECS) if extend_defaults else {}

        for short_name, entry in (audio or {}).items():
            audio_registry[short_name] = CodecDescriptor.from_registry_entry(entry)
        for short_name, entry in (video or {}).items():
            video_registry[short_name] = CodecDescriptor.from_registry_entry(entry)

        return cls(audio=audio_registry, video=video_registry)

    @staticmethod
    def _check_unique_payload_types(kind: MediaKind, registry: Mapping[str, CodecDescriptor]) -> None:
        seen: Dict[int, str] = {}
        for short_name, codec in registry.items():
            if codec.payload_type in seen:
                raise ConfigurationError(
                    f"Duplicate {kind.value} payload type {codec.payload_type}: "
                    f"{seen[codec.payload_type]} and {short_name}"
                )
            seen[codec.payload_type] = short_name

    def lookup(self, kind: str, short_name: str) -> CodecDescriptor:
        """코덱 조회

        Args:
            kind: "audio" 또는 "video"
            short_name: 코덱 이름 (예: "opus", "vp8")

        Returns:
            CodecDescriptor

        Raises:
            UnknownCodecError: 해당 종류에 없는 코덱
        """
        registry = self._registry_for(kind, short_name)
        codec = registry.get(short_name)
        if codec is None:
            raise UnknownCodecError(str(getattr(kind, "value", kind)), short_name)
        return codec

    def names(self, kind: str) -> List[str]:
        """종류별 코덱 이름 목록 (등록 순서)"""
        return list(self._registry_for(kind, "").keys())

    def kinds(self) -> Iterable[MediaKind]:
        return self._registries.keys()

    def contains(self, kind: str, short_name: str) -> bool:
        try:
            self.lookup(kind, short_name)
        except UnknownCodecError:
            return False
        return True

    def _registry_for(self, kind: str, short_name: str) -> Mapping[str, CodecDescriptor]:
        try:
            return self._registries[MediaKind(kind)]
        except ValueError:
            raise UnknownCodecError(str(kind), short_name)


# 프로세스 전역 기본 카탈로그 (불변)
DEFAULT_CATALOG = CodecCatalog()
