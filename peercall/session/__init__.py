"""Session 패키지

피어 세션 상태 머신, 세션 레지스트리, 통화 컨트롤러
"""

from peercall.session.events import CallEvent, CallEventKind, NegotiationState, SessionPolicy
from peercall.session.peer_session import PeerSession
from peercall.session.registry import SessionRegistry
from peercall.session.call_controller import CallController

__all__ = [
    "CallEvent",
    "CallEventKind",
    "NegotiationState",
    "SessionPolicy",
    "PeerSession",
    "SessionRegistry",
    "CallController",
]
