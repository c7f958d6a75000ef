"""설정 모델 정의

Pydantic을 사용한 타입 안전 설정 검증 모델
"""

from typing import Any, Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator

from peercall.media.codec_catalog import CodecCatalog, MediaKind
from peercall.common.exceptions import ConfigurationError


class SignalingMethod(str, Enum):
    """시그널링 트랜스포트"""
    WEBSOCKET = "websocket"
    POLL = "poll"


class SignalingDialectName(str, Enum):
    """시그널링 wire 포맷"""
    ROOM = "room"
    RELAY = "relay"
    POLL = "poll"


class SessionPolicyName(str, Enum):
    """세션 정책"""
    MULTI_PEER = "multi_peer"
    SINGLE_PEER = "single_peer"


class LogLevel(str, Enum):
    """로그 레벨"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """로그 포맷"""
    JSON = "json"
    TEXT = "text"


class SignalingConfig(BaseModel):
    """시그널링 서버 설정"""
    method: SignalingMethod = Field(default=SignalingMethod.WEBSOCKET, description="트랜스포트 (websocket, poll)")
    url: str = Field(default="ws://localhost:8443/kurento", description="시그널링 서버 URL")
    dialect: SignalingDialectName = Field(default=SignalingDialectName.ROOM, description="wire 포맷 (room, relay, poll)")
    poll_interval: float = Field(default=1.0, gt=0.0, le=60.0, description="폴링 주기 (초)")
    request_timeout: float = Field(default=10.0, gt=0.0, le=120.0, description="HTTP 요청 타임아웃 (초)")

    class Config:
        """Pydantic Config"""
        use_enum_values = True
        validate_default = True

    @model_validator(mode="after")
    def validate_method_scheme(self) -> "SignalingConfig":
        """트랜스포트와 URL 스킴 일치 검증"""
        url = self.url.lower()
        if self.method == SignalingMethod.WEBSOCKET and not url.startswith(("ws://", "wss://")):
            raise ValueError(f"websocket signaling requires a ws:// or wss:// url, got {self.url}")
        if self.method == SignalingMethod.POLL and not url.startswith(("http://", "https://")):
            raise ValueError(f"poll signaling requires an http:// or https:// url, got {self.url}")
        return self


class CodecConfig(BaseModel):
    """코덱 고정 설정

    custom_audio/custom_video는 기본 카탈로그에 추가되는 코덱 레지스트리
    ({short: {pt, name, rtcp-fb?, fmtp?, framesize?}})
    """
    audio: str = Field(default="opus", description="오디오 코덱")
    video: str = Field(default="vp8", description="비디오 코덱")
    custom_audio: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="추가 오디오 코덱")
    custom_video: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="추가 비디오 코덱")

    @model_validator(mode="after")
    def validate_codec_names(self) -> "CodecConfig":
        """선택한 코덱이 카탈로그에 있는지 검증"""
        try:
            catalog = self.build_catalog()
        except ConfigurationError as e:
            raise ValueError(str(e)) from e

        for kind, name in ((MediaKind.AUDIO, self.audio), (MediaKind.VIDEO, self.video)):
            if not catalog.contains(kind, name):
                raise ValueError(
                    f"unknown {kind.value} codec '{name}' (available: {', '.join(catalog.names(kind))})"
                )
        return self

    def build_catalog(self) -> CodecCatalog:
        """기본 + 커스텀 코덱 카탈로그 생성"""
        return CodecCatalog.from_mapping(audio=self.custom_audio, video=self.custom_video)


class SessionConfig(BaseModel):
    """피어 세션 설정"""
    policy: SessionPolicyName = Field(default=SessionPolicyName.MULTI_PEER, description="세션 정책")
    auto_call: bool = Field(default=False, description="새 참가자 자동 호출")
    auto_call_delay: float = Field(default=1.0, ge=0.0, le=30.0, description="자동 호출 간격 (초)")
    close_on_transport_failure: bool = Field(default=True, description="전송 실패 시 세션 종료")

    class Config:
        """Pydantic Config"""
        use_enum_values = True
        validate_default = True


class IceConfig(BaseModel):
    """ICE 서버 설정"""
    servers: List[str] = Field(
        default=["stun:stun2.l.google.com:19302", "stun:stun.ekiga.net"],
        description="STUN/TURN 서버 URL"
    )

    @field_validator('servers')
    @classmethod
    def validate_servers(cls, v: List[str]) -> List[str]:
        """ICE 서버 URL 스킴 검증"""
        for url in v:
            if not url.startswith(("stun:", "stuns:", "turn:", "turns:")):
                raise ValueError(f"invalid ICE server url: {url}")
        return v


class MediaConfig(BaseModel):
    """로컬 미디어 설정"""
    audio: bool = Field(default=True, description="오디오 송신")
    video: bool = Field(default=True, description="비디오 송신")
    player_file: Optional[str] = Field(default=None, description="미디어 파일/장치 (None이면 수신 전용)")
    player_format: Optional[str] = Field(default=None, description="ffmpeg 입력 포맷 (예: v4l2)")
    player_options: Dict[str, str] = Field(default_factory=dict, description="ffmpeg 입력 옵션")


class LoggingConfig(BaseModel):
    """로깅 설정"""
    level: LogLevel = Field(default=LogLevel.INFO, description="로그 레벨")
    format: LogFormat = Field(default=LogFormat.JSON, description="로그 포맷")
    output: str = Field(default="stdout", description="로그 출력 (stdout, file)")

    class Config:
        """Pydantic Config"""
        use_enum_values = True
        validate_default = True


class ClientConfig(BaseModel):
    """클라이언트 식별 설정"""
    user: str = Field(default="user1", min_length=1, description="로컬 사용자 이름")
    room: Optional[str] = Field(default=None, description="참가할 룸 (room dialect)")
    callee: Optional[str] = Field(default=None, description="시작 시 호출할 피어 (relay/poll dialect)")


class Config(BaseModel):
    """전체 설정 모델"""
    client: ClientConfig = Field(default_factory=ClientConfig)
    signaling: SignalingConfig = Field(default_factory=SignalingConfig)
    codecs: CodecConfig = Field(default_factory=CodecConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    ice: IceConfig = Field(default_factory=IceConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    class Config:
        """Pydantic Config"""
        use_enum_values = True
        validate_assignment = True
