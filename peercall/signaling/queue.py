"""Signaling Queue

피어별 송신 버퍼: 시그널링 트랜스포트가 준비될 때까지 전송 보류
"""

from collections import deque
from typing import Awaitable, Callable, Deque, Dict, List, Set

from peercall.signaling.messages import SignalingMessage
from peercall.common.exceptions import TransportSendFailure
from peercall.common.logger import get_logger

logger = get_logger(__name__)

Sender = Callable[[SignalingMessage], Awaitable[None]]


class SignalingQueue:
    """피어별 시그널링 송신 큐

    - enqueue(): 피어가 ready면 즉시 전송, 아니면 버퍼링
    - flush(): 버퍼를 FIFO로 전송한 뒤 즉시 전송 모드로 전환
    """

    def __init__(self, sender: Sender):
        """초기화

        Args:
            sender: 실제 전송 코루틴 (dialect 인코딩 + 트랜스포트 send)
        """
        self._sender = sender
        self._buffers: Dict[str, Deque[SignalingMessage]] = {}
        self._ready: Set[str] = set()
        self._flushing: Set[str] = set()

    async def enqueue(self, peer_id: str, message: SignalingMessage) -> bool:
        """메시지 전송 또는 버퍼링

        Returns:
            즉시 전송했으면 True, 버퍼링했으면 False

        Raises:
            TransportSendFailure: 즉시 전송 실패
        """
        if peer_id not in self._ready:
            self._buffers.setdefault(peer_id, deque()).append(message)
            logger.debug("signaling_message_buffered",
                         peer_id=peer_id,
                         command=message.command.value,
                         pending=len(self._buffers[peer_id]))
            return False

        await self._send(peer_id, message)
        return True

    async def flush(self, peer_id: str) -> int:
        """peer를 ready로 표시하고 버퍼된 메시지를 FIFO로 전송

        전송 중 새로 들어온 메시지도 같은 버퍼에 쌓여 순서대로 전송된다.
        전송 실패 시 실패한 메시지는 버퍼 맨 앞에 남고 ready 표시도 하지 않는다.

        Returns:
            전송한 메시지 수

        Raises:
            TransportSendFailure: 전송 실패
        """
        if peer_id in self._ready or peer_id in self._flushing:
            return 0

        buffer = self._buffers.setdefault(peer_id, deque())
        sent = 0
        self._flushing.add(peer_id)
        try:
            while buffer:
                await self._send(peer_id, buffer[0])
                buffer.popleft()
                sent += 1
        finally:
            self._flushing.discard(peer_id)

        if self._buffers.get(peer_id) is not buffer:
            # flush 도중 reset() 됨
            return sent

        self._ready.add(peer_id)
        self._buffers.pop(peer_id, None)

        logger.debug("signaling_queue_flushed", peer_id=peer_id, sent=sent)
        return sent

    def reset(self, peer_id: str) -> int:
        """버퍼와 ready 상태 제거 (세션 제거 시)

        Returns:
            폐기된 메시지 수
        """
        self._ready.discard(peer_id)
        dropped = len(self._buffers.pop(peer_id, ()))
        if dropped:
            logger.info("signaling_queue_reset", peer_id=peer_id, dropped=dropped)
        return dropped

    def reset_all(self) -> None:
        for peer_id in list(self._buffers) + list(self._ready):
            self.reset(peer_id)

    def is_ready(self, peer_id: str) -> bool:
        return peer_id in self._ready

    def pending(self, peer_id: str) -> List[SignalingMessage]:
        return list(self._buffers.get(peer_id, ()))

    async def _send(self, peer_id: str, message: SignalingMessage) -> None:
        try:
            await self._sender(message)
        except TransportSendFailure:
            raise
        except Exception as e:
            logger.error("signaling_send_failed",
                         peer_id=peer_id,
                         command=message.command.value,
                         error=str(e))
            raise TransportSendFailure(f"Failed to send {message.command.value} to {peer_id}: {e}", peer_id) from e
