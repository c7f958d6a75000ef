"""시그널링 메시지

내부 메시지 모델과 시그널링 서버별 wire 포맷(dialect) 변환
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from peercall.common.exceptions import InvalidSignalingMessageError
from peercall.common.logger import get_logger

logger = get_logger(__name__)


class SignalingCommand(str, Enum):
    """시그널링 명령"""
    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "candidate"
    JOIN_ROOM = "joinRoom"
    LEAVE = "leave"
    HANGUP = "hangup"
    ROSTER = "roster"
    PARTICIPANT_JOINED = "participantJoined"
    PARTICIPANT_LEFT = "participantLeft"
    ERROR = "error"


# 피어 식별자 없이 유효한 명령
UNROUTED_COMMANDS = frozenset({SignalingCommand.ROSTER, SignalingCommand.ERROR})


@dataclass(frozen=True)
class SignalingMessage:
    """시그널링 메시지

    payload:
    - OFFER/ANSWER: SDP 문자열
    - CANDIDATE: {"candidate", "sdpMid", "sdpMLineIndex"}
    - ROSTER: 참가자 이름 리스트
    - JOIN_ROOM: {"room": 룸 이름}
    - ERROR: 에러 메시지 문자열
    """
    command: SignalingCommand
    peer_id: Optional[str] = None
    payload: Any = None

    def __post_init__(self):
        if self.command not in UNROUTED_COMMANDS and not self.peer_id:
            raise InvalidSignalingMessageError(
                f"{self.command.value} message requires a peer identifier"
            )

    @classmethod
    def offer(cls, peer_id: str, sdp: str) -> "SignalingMessage":
        return cls(SignalingCommand.OFFER, peer_id, sdp)

    @classmethod
    def answer(cls, peer_id: str, sdp: str) -> "SignalingMessage":
        return cls(SignalingCommand.ANSWER, peer_id, sdp)

    @classmethod
    def candidate(cls, peer_id: str, candidate: Dict[str, Any]) -> "SignalingMessage":
        return cls(SignalingCommand.CANDIDATE, peer_id, candidate)


def _require(raw: Dict[str, Any], key: str) -> Any:
    value = raw.get(key)
    if value in (None, ""):
        raise InvalidSignalingMessageError(f"Missing '{key}' in {raw.get('cmd') or raw.get('type')} message")
    return value


class SignalingDialect(ABC):
    """시그널링 서버 wire 포맷"""

    name = ""

    def __init__(self, local_user: str = ""):
        self.local_user = local_user

    @abstractmethod
    def encode(self, message: SignalingMessage) -> Optional[Dict[str, Any]]:
        """내부 메시지 → wire JSON 객체

        Returns:
            wire 딕셔너리, 해당 dialect에 표현이 없으면 None
        """

    @abstractmethod
    def decode(self, raw: Dict[str, Any]) -> Optional[SignalingMessage]:
        """wire JSON 객체 → 내부 메시지

        Returns:
            SignalingMessage, 무시할 메시지면 None

        Raises:
            InvalidSignalingMessageError: 필수 필드 누락
        """


class RoomDialect(SignalingDialect):
    """룸 서버 포맷 (cmd 필드 기반, 다자간)

    -> {"cmd":"joinRoom","room":"Room Name","user":"user1"}
    <- {"cmd":"existingParticipants","data":["user2"]}
    -> {"cmd":"receiveVideoFrom","sender":"user1","sdpOffer":"v=0..."}
    <- {"cmd":"receiveVideoAnswer","name":"user1","sdpAnswer":"v=0..."}
    """

    name = "room"

    def encode(self, message: SignalingMessage) -> Optional[Dict[str, Any]]:
        command = message.command

        if command == SignalingCommand.OFFER:
            return {"cmd": "receiveVideoFrom", "sender": message.peer_id, "sdpOffer": message.payload}
        if command == SignalingCommand.CANDIDATE:
            # 미디어 서버 addIceCandidate 파라미터 형태로 감싼다
            return {"cmd": "onIceCandidate", "sender": message.peer_id, "candidate": {"candidate": message.payload}}
        if command == SignalingCommand.JOIN_ROOM:
            room = (message.payload or {}).get("room")
            return {"cmd": "joinRoom", "room": room, "user": message.peer_id}
        if command == SignalingCommand.LEAVE:
            return {"cmd": "leave"}
        if command == SignalingCommand.HANGUP:
            return {"cmd": "hangup", "sender": message.peer_id}

        # 룸 서버는 항상 answer를 생성하는 쪽이다
        raise InvalidSignalingMessageError(f"Room dialect cannot send {command.value}")

    def decode(self, raw: Dict[str, Any]) -> Optional[SignalingMessage]:
        if raw.get("error") is not None:
            return SignalingMessage(SignalingCommand.ERROR, payload=str(raw["error"]))

        cmd = raw.get("cmd")
        if cmd is None:
            return None

        if cmd == "receiveVideoAnswer":
            return SignalingMessage.answer(_require(raw, "name"), _require(raw, "sdpAnswer"))
        if cmd == "iceCandidate":
            return SignalingMessage.candidate(_require(raw, "name"), _require(raw, "candidate"))
        if cmd == "existingParticipants":
            return SignalingMessage(SignalingCommand.ROSTER, payload=list(raw.get("data") or []))
        if cmd == "newParticipantArrived":
            return SignalingMessage(SignalingCommand.PARTICIPANT_JOINED, _require(raw, "name"))
        if cmd == "participantLeaved":
            return SignalingMessage(SignalingCommand.PARTICIPANT_LEFT, _require(raw, "name"))

        logger.debug("signaling_command_ignored", dialect=self.name, cmd=cmd)
        return None


def _content_for(message: SignalingMessage) -> Optional[Dict[str, Any]]:
    """relay/poll 포맷의 content 필드"""
    command = message.command
    if command in (SignalingCommand.OFFER, SignalingCommand.ANSWER):
        return {"type": command.value, "sdp": message.payload}
    if command == SignalingCommand.CANDIDATE:
        return dict(message.payload)
    if command == SignalingCommand.HANGUP:
        return {"type": "hangup"}
    return None


def _message_from_content(peer_id: str, content: Any) -> Optional[SignalingMessage]:
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except ValueError as e:
            raise InvalidSignalingMessageError(f"Invalid content JSON from {peer_id}: {e}") from e

    if not content:
        return None
    if not isinstance(content, dict):
        raise InvalidSignalingMessageError(f"Unsupported content from {peer_id}: {content!r}")

    content_type = content.get("type")
    if content_type == "offer":
        return SignalingMessage.offer(peer_id, _require(content, "sdp"))
    if content_type == "answer":
        return SignalingMessage.answer(peer_id, _require(content, "sdp"))
    if content_type in ("hangup", "bye"):
        return SignalingMessage(SignalingCommand.HANGUP, peer_id)
    if "candidate" in content:
        return SignalingMessage.candidate(peer_id, content)

    raise InvalidSignalingMessageError(f"Unknown content type from {peer_id}: {content_type}")


class RelayDialect(SignalingDialect):
    """WebSocket 릴레이 포맷 (1:1)

    -> {"callee":"bob","content":{"type":"offer","sdp":"v=0..."}}
    <- {"from":"alice","content":{"type":"answer","sdp":"v=0..."}}
    """

    name = "relay"

    def encode(self, message: SignalingMessage) -> Optional[Dict[str, Any]]:
        content = _content_for(message)
        if content is None:
            return None
        return {"callee": message.peer_id, "content": content}

    def decode(self, raw: Dict[str, Any]) -> Optional[SignalingMessage]:
        if raw.get("error") is not None:
            return SignalingMessage(SignalingCommand.ERROR, payload=str(raw["error"]))
        if not raw.get("content"):
            return None
        return _message_from_content(_require(raw, "from"), raw["content"])


class PollDialect(SignalingDialect):
    """HTTP 폴링 포맷

    -> POST /messages {"for":"bob","from":"alice","content":{...}}
    <- GET /messages [{"type":"offer","from":"alice","content":"{...}"}]
    """

    name = "poll"

    def encode(self, message: SignalingMessage) -> Optional[Dict[str, Any]]:
        content = _content_for(message)
        if content is None:
            return None
        return {"for": message.peer_id, "from": self.local_user, "content": content}

    def decode(self, raw: Dict[str, Any]) -> Optional[SignalingMessage]:
        if raw.get("error") is not None:
            return SignalingMessage(SignalingCommand.ERROR, payload=str(raw["error"]))
        if not raw.get("content"):
            return None
        return _message_from_content(_require(raw, "from"), raw["content"])


_DIALECTS = {
    RoomDialect.name: RoomDialect,
    RelayDialect.name: RelayDialect,
    PollDialect.name: PollDialect,
}


def get_dialect(name: str, local_user: str = "") -> SignalingDialect:
    """이름으로 dialect 생성

    Raises:
        ValueError: 알 수 없는 dialect
    """
    try:
        return _DIALECTS[name](local_user=local_user)
    except KeyError:
        raise ValueError(f"Unknown signaling dialect: {name} (expected one of {sorted(_DIALECTS)})")


def decode_many(dialect: SignalingDialect, raw: Any) -> List[SignalingMessage]:
    """단일 객체 또는 리스트(폴링 응답)를 디코딩"""
    items = raw if isinstance(raw, list) else [raw]
    messages = []
    for item in items:
        if not isinstance(item, dict):
            raise InvalidSignalingMessageError(f"Signaling message must be an object: {item!r}")
        message = dialect.decode(item)
        if message is not None:
            messages.append(message)
    return messages
