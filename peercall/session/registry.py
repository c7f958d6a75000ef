"""Session Registry

피어 세션 맵의 단일 소유자 (생성, 조회, 제거, 로스터 동기화)
"""

from typing import Callable, Dict, Iterable, List, Optional

from peercall.session.events import (
    CallEvent,
    CallEventKind,
    EventListener,
    SessionPolicy,
    deliver_event,
)
from peercall.session.peer_session import PeerSession
from peercall.signaling.queue import SignalingQueue
from peercall.common.exceptions import PeerNotFoundError
from peercall.common.logger import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[str], PeerSession]


class SessionRegistry:
    """피어 세션 레지스트리

    세션 맵을 변경하는 유일한 컴포넌트. 이벤트 루프에서만 호출된다.
    세션이 제거될 때마다 SESSION_CLOSED 이벤트가 한 번 발생한다.
    """

    def __init__(
        self,
        factory: SessionFactory,
        policy: SessionPolicy = SessionPolicy.MULTI_PEER,
        queue: Optional[SignalingQueue] = None,
        close_on_transport_failure: bool = True,
    ):
        """초기화

        Args:
            factory: peer_id로 새 PeerSession을 만드는 함수
            policy: MULTI_PEER(룸) 또는 SINGLE_PEER(1:1 교체)
            queue: 세션 제거 시 피어 버퍼를 정리할 시그널링 큐
            close_on_transport_failure: 전송 실패 시 세션을 닫을지 여부
        """
        self._factory = factory
        self.policy = SessionPolicy(policy)
        self._queue = queue
        self.close_on_transport_failure = close_on_transport_failure

        self._sessions: Dict[str, PeerSession] = {}
        self._close_listeners: List[EventListener] = []

        logger.info("session_registry_initialized",
                    policy=self.policy.value,
                    close_on_transport_failure=close_on_transport_failure)

    def add_close_listener(self, listener: EventListener) -> None:
        self._close_listeners.append(listener)

    async def get_or_create(self, peer_id: str) -> PeerSession:
        """세션 조회, 없으면 생성

        SINGLE_PEER 정책에서는 새 세션 생성 전에 기존 세션을 모두 닫는다.
        """
        session = self._sessions.get(peer_id)
        if session is not None:
            return session

        if self.policy == SessionPolicy.SINGLE_PEER:
            for other in list(self._sessions):
                logger.info("peer_session_replaced", peer_id=other, new_peer_id=peer_id)
                await self.remove(other)

        session = self._factory(peer_id)
        self._sessions[peer_id] = session

        logger.info("peer_session_created",
                    peer_id=peer_id,
                    total_sessions=len(self._sessions))
        return session

    def get(self, peer_id: str) -> PeerSession:
        """세션 조회

        Raises:
            PeerNotFoundError: 없는 피어
        """
        session = self._sessions.get(peer_id)
        if session is None:
            raise PeerNotFoundError(peer_id)
        return session

    def find(self, peer_id: str) -> Optional[PeerSession]:
        return self._sessions.get(peer_id)

    async def remove(self, peer_id: str) -> bool:
        """세션 종료 및 제거

        Returns:
            제거했으면 True, 없는 피어면 False
        """
        session = self._sessions.pop(peer_id, None)
        if session is None:
            return False

        await session.close()
        if self._queue is not None:
            self._queue.reset(peer_id)

        logger.info("peer_session_removed",
                    peer_id=peer_id,
                    remaining_sessions=len(self._sessions))

        await deliver_event(self._close_listeners, CallEvent(CallEventKind.SESSION_CLOSED, peer_id))
        return True

    async def remove_all_except(self, keep_ids: Iterable[str]) -> List[str]:
        """로스터에 없는 세션 제거 (멱등)

        Args:
            keep_ids: 유지할 피어 ID (현재 로스터)

        Returns:
            제거된 피어 ID 목록
        """
        keep = set(keep_ids)
        stale = [peer_id for peer_id in self._sessions if peer_id not in keep]

        removed = []
        for peer_id in stale:
            if await self.remove(peer_id):
                removed.append(peer_id)

        if removed:
            logger.info("roster_reconciled", removed=removed, kept=sorted(keep))
        return removed

    async def close_all(self) -> int:
        """모든 세션 종료

        Returns:
            닫은 세션 수
        """
        peer_ids = list(self._sessions)
        for peer_id in peer_ids:
            await self.remove(peer_id)

        if peer_ids:
            logger.info("all_sessions_closed", count=len(peer_ids))
        return len(peer_ids)

    async def handle_transport_failure(
        self,
        peer_id: str,
        error: Exception,
        close_session: Optional[bool] = None,
    ) -> bool:
        """시그널링 전송 실패 처리

        레지스트리 자체는 종료되지 않는다.

        Args:
            peer_id: 전송 실패한 피어
            error: 전송 에러
            close_session: 세션 종료 여부 (None이면 close_on_transport_failure 설정)

        Returns:
            세션을 닫았으면 True
        """
        if close_session is None:
            close_session = self.close_on_transport_failure

        logger.warning("transport_failure_reported",
                       peer_id=peer_id,
                       error=str(error),
                       close_session=close_session)

        if not close_session:
            return False
        return await self.remove(peer_id)

    def peer_ids(self) -> List[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, peer_id: object) -> bool:
        return peer_id in self._sessions
