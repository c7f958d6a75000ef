"""peercall

WebRTC 시그널링 클라이언트 코어: 코덱 고정 SDP 재작성, 피어 세션 협상, 시그널링 큐
"""

__version__ = "0.1.0"
