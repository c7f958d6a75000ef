"""Signaling 패키지

메시지 dialect, 송신 큐, 트랜스포트(WebSocket, HTTP 폴링)
"""

from peercall.signaling.messages import SignalingCommand, SignalingMessage, get_dialect
from peercall.signaling.queue import SignalingQueue
from peercall.signaling.client import SignalingClient

__all__ = [
    "SignalingCommand",
    "SignalingMessage",
    "get_dialect",
    "SignalingQueue",
    "SignalingClient",
]
