"""세션 상태와 통화 이벤트"""

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from peercall.common.logger import get_logger

logger = get_logger(__name__)


class NegotiationState(str, Enum):
    """피어 세션 협상 상태

    IDLE → OFFER_PENDING → STABLE → CLOSED
    STABLE에서 재협상 시 다시 OFFER_PENDING
    """
    IDLE = "idle"
    OFFER_PENDING = "offer_pending"
    STABLE = "stable"
    CLOSED = "closed"


class SessionPolicy(str, Enum):
    """레지스트리 세션 정책"""
    MULTI_PEER = "multi_peer"    # 룸: 피어마다 세션 유지
    SINGLE_PEER = "single_peer"  # 1:1: 새 피어가 오면 기존 세션 교체


class CallEventKind(str, Enum):
    """UI 협력자에게 전달되는 이벤트 종류"""
    PARTICIPANT_JOINED = "participant_joined"
    PARTICIPANT_LEFT = "participant_left"
    SESSION_CLOSED = "session_closed"
    REMOTE_TRACK = "remote_track"
    ERROR = "error"


@dataclass
class CallEvent:
    """통화 이벤트"""
    kind: CallEventKind
    peer_id: Optional[str] = None
    error: Optional[Exception] = None
    data: Dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[CallEvent], Union[None, Awaitable[None]]]


async def deliver_event(listeners: Iterable[EventListener], event: CallEvent) -> None:
    """리스너들에게 이벤트 전달

    리스너 예외는 로그만 남기고 다음 리스너로 진행한다.
    """
    for listener in list(listeners):
        try:
            result = listener(event)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("event_listener_failed",
                         event_kind=event.kind.value,
                         peer_id=event.peer_id,
                         error=str(e),
                         exc_info=True)
