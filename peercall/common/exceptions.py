"""커스텀 예외 클래스

peercall 코어의 모든 커스텀 예외 정의.
UI/CLI 협력자는 PeerCallError 하나만 잡으면 모든 코어 실패를 받을 수 있다.
"""


class PeerCallError(Exception):
    """Base exception for all peercall errors"""
    pass


# Codec / Session Description Exceptions
class UnknownCodecError(PeerCallError):
    """카탈로그에 없는 코덱 이름"""

    def __init__(self, kind: str, short_name: str):
        self.kind = kind
        self.short_name = short_name
        super().__init__(f"Unknown {kind} codec: {short_name}")


class MalformedDescriptionError(PeerCallError):
    """잘못된 SDP 또는 ICE candidate (파싱 실패, 트랜스포트 거부)"""
    pass


# Negotiation Exceptions
class InvalidStateTransitionError(PeerCallError):
    """현재 협상 상태에서 허용되지 않는 동작"""

    def __init__(self, operation: str, state: str, peer_id: str = ""):
        self.operation = operation
        self.state = state
        self.peer_id = peer_id
        super().__init__(
            f"{operation} is not allowed in state {state}"
            + (f" (peer={peer_id})" if peer_id else "")
        )


class NegotiationError(PeerCallError):
    """offer/answer 생성 실패"""
    pass


class NegotiationCancelled(PeerCallError):
    """세션이 닫히거나 재협상되어 비동기 결과가 폐기됨"""
    pass


# Media Exceptions
class MediaAcquisitionError(PeerCallError):
    """로컬 미디어 획득 실패 (권한 거부, 장치 없음)"""
    pass


# Signaling Exceptions
class SignalingError(PeerCallError):
    """시그널링 관련 에러"""
    pass


class TransportSendFailure(SignalingError):
    """시그널링 메시지 전송 실패"""

    def __init__(self, message: str, peer_id: str = ""):
        self.peer_id = peer_id
        super().__init__(message)


class InvalidSignalingMessageError(SignalingError):
    """디코딩할 수 없는 시그널링 메시지"""
    pass


# Registry Exceptions
class PeerNotFoundError(PeerCallError):
    """레지스트리에 없는 피어"""

    def __init__(self, peer_id: str):
        self.peer_id = peer_id
        super().__init__(f"Peer session not found: {peer_id}")


# Configuration Exceptions
class ConfigurationError(PeerCallError):
    """설정 관련 에러"""
    pass
