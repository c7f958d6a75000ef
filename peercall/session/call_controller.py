"""Call Controller

시그널링 메시지를 피어 세션 동작으로 라우팅하고 통화 흐름(룸 참가, 호출, 종료)을 조율
"""

import asyncio
from typing import Any, List, Optional, Set

from peercall.session.events import CallEvent, CallEventKind, EventListener, deliver_event
from peercall.session.peer_session import PeerSession
from peercall.session.registry import SessionRegistry
from peercall.signaling.client import SignalingClient
from peercall.signaling.messages import (
    SignalingCommand,
    SignalingDialect,
    SignalingMessage,
    decode_many,
)
from peercall.signaling.queue import Sender, SignalingQueue
from peercall.common.exceptions import (
    InvalidSignalingMessageError,
    NegotiationCancelled,
    PeerCallError,
    SignalingError,
    TransportSendFailure,
)
from peercall.common.logger import get_logger

logger = get_logger(__name__)


def encoding_sender(dialect: SignalingDialect, client: SignalingClient) -> Sender:
    """dialect로 인코딩 후 트랜스포트로 전송하는 sender 생성

    dialect에 표현이 없는 메시지는 전송하지 않는다.
    """
    async def send(message: SignalingMessage) -> None:
        wire = dialect.encode(message)
        if wire is None:
            logger.debug("signaling_message_skipped",
                         dialect=dialect.name,
                         command=message.command.value,
                         peer_id=message.peer_id)
            return
        await client.send(wire)
        logger.debug("signaling_message_sent",
                     dialect=dialect.name,
                     command=message.command.value,
                     peer_id=message.peer_id)

    return send


class CallController:
    """통화 컨트롤러

    - 수신: 트랜스포트 on_message → 디코딩 → 세션/레지스트리 동작
    - 송신: 세션 메시지는 SignalingQueue, joinRoom/leave/hangup은 즉시 전송
    - 에러: 수신 처리 중 발생한 PeerCallError는 ERROR 이벤트로 리스너에 전달
    """

    def __init__(
        self,
        registry: SessionRegistry,
        queue: SignalingQueue,
        client: SignalingClient,
        dialect: SignalingDialect,
        local_user: str,
        auto_call: bool = False,
        auto_call_delay: float = 1.0,
    ):
        """초기화

        Args:
            registry: 세션 레지스트리
            queue: 세션 메시지 송신 큐
            client: 시그널링 트랜스포트
            dialect: wire 포맷
            local_user: 로컬 사용자 이름
            auto_call: 새 참가자 자동 호출 여부
            auto_call_delay: 자동 호출 간격 (초, 참가자마다 누적)
        """
        self.registry = registry
        self.queue = queue
        self.client = client
        self.dialect = dialect
        self.local_user = local_user
        self.auto_call = auto_call
        self.auto_call_delay = auto_call_delay
        self.room: Optional[str] = None

        self._send_now = encoding_sender(dialect, client)
        self._listeners: List[EventListener] = []
        self._participants: Set[str] = set()
        self._auto_call_tasks: Set[asyncio.Task] = set()
        self._transport_closed = asyncio.Event()

        client.on_message(self.handle_message)
        client.on_ready(self._on_transport_ready)
        client.on_close(self._on_transport_closed)
        registry.add_close_listener(self._emit)

    @property
    def participants(self) -> List[str]:
        return sorted(self._participants)

    def add_listener(self, listener: EventListener) -> None:
        """CallEvent 리스너 등록 (동기 또는 코루틴 함수)"""
        self._listeners.append(listener)

    async def handle_session_event(self, event: CallEvent) -> None:
        """PeerSession event_sink: 세션 이벤트를 리스너로 전달"""
        await self._emit(event)

    async def wait_closed(self) -> None:
        """트랜스포트가 닫힐 때까지 대기"""
        await self._transport_closed.wait()

    # ------------------------------------------------------------------
    # 사용자 동작
    # ------------------------------------------------------------------

    async def join_room(self, room: str, user: Optional[str] = None) -> PeerSession:
        """룸 참가 후 자기 자신의 스트림을 게시

        룸 서버는 로컬 사용자 이름으로 된 루프백 세션의 offer를 게시 요청으로 받는다.
        """
        user = user or self.local_user
        self.room = room
        await self._send_now(SignalingMessage(SignalingCommand.JOIN_ROOM, user, {"room": room}))
        logger.info("room_join_requested", room=room, user=user)
        return await self.call(user)

    async def call(self, peer_id: str) -> PeerSession:
        """피어 호출: 로컬 미디어가 필요하면 획득 후 offer 생성

        Raises:
            PeerCallError: 미디어 획득, 협상, 전송 실패
        """
        session = await self._session(peer_id)
        if session.has_media_source and not session.has_local_media:
            await session.request_local_media()
        else:
            await session.create_offer()

        logger.info("call_started", peer_id=peer_id, has_local_media=session.has_local_media)
        return session

    async def hangup(self, peer_id: str) -> bool:
        """피어와의 세션 종료 후 hangup 전송

        Returns:
            세션이 있었으면 True
        """
        removed = await self.registry.remove(peer_id)
        await self._send_now(SignalingMessage(SignalingCommand.HANGUP, peer_id))
        logger.info("call_hung_up", peer_id=peer_id, had_session=removed)
        return removed

    async def leave(self) -> int:
        """모든 세션 종료 후 leave 전송

        Returns:
            닫은 세션 수
        """
        self._cancel_auto_calls()
        closed = await self.registry.close_all()
        self._participants.clear()

        if not self.client.is_closed:
            try:
                await self._send_now(SignalingMessage(SignalingCommand.LEAVE, self.local_user))
            except TransportSendFailure as e:
                logger.warning("leave_send_failed", error=str(e))

        logger.info("room_left", room=self.room, closed_sessions=closed)
        self.room = None
        return closed

    def set_local_tracks_enabled(self, kind: str, enabled: bool) -> int:
        """로컬 미디어를 가진 모든 세션의 audio/video 트랙 켜기/끄기

        Returns:
            변경된 트랙 수
        """
        changed = 0
        for peer_id in self.registry.peer_ids():
            changed += self.registry.get(peer_id).set_local_tracks_enabled(kind, enabled)

        logger.info("local_tracks_enabled_changed", kind=kind, enabled=enabled, tracks=changed)
        return changed

    # ------------------------------------------------------------------
    # 수신 라우팅
    # ------------------------------------------------------------------

    async def handle_message(self, raw: Any) -> None:
        """트랜스포트 수신 핸들러

        폴링 응답처럼 리스트가 오면 항목별로 처리하며, 잘못된 항목은
        에러 이벤트로 알리고 나머지를 계속 처리한다.
        """
        items = raw if isinstance(raw, list) else [raw]
        for item in items:
            try:
                messages = decode_many(self.dialect, item)
            except InvalidSignalingMessageError as e:
                logger.warning("signaling_message_invalid", error=str(e))
                await self._emit(CallEvent(CallEventKind.ERROR, error=e))
                continue

            for message in messages:
                await self._dispatch(message)

    async def _dispatch(self, message: SignalingMessage) -> None:
        try:
            await self._route(message)
        except NegotiationCancelled as e:
            logger.info("negotiation_discarded", peer_id=message.peer_id, error=str(e))
        except PeerCallError as e:
            await self._report(message.peer_id, e)

    async def _route(self, message: SignalingMessage) -> None:
        command = message.command
        peer_id = message.peer_id
        logger.debug("signaling_message_received", command=command.value, peer_id=peer_id)

        if command == SignalingCommand.ANSWER:
            session = self.registry.get(peer_id)
            await self._flush(peer_id)
            await session.apply_remote_answer(message.payload)

        elif command == SignalingCommand.OFFER:
            session = await self._session(peer_id)
            await session.apply_remote_offer(message.payload)

        elif command == SignalingCommand.CANDIDATE:
            session = self.registry.find(peer_id)
            if session is None:
                logger.debug("candidate_for_unknown_peer_ignored", peer_id=peer_id)
                return
            await session.apply_remote_candidate(message.payload)

        elif command == SignalingCommand.ROSTER:
            await self._apply_roster(message.payload or [])

        elif command == SignalingCommand.PARTICIPANT_JOINED:
            await self._participant_joined(peer_id)

        elif command == SignalingCommand.PARTICIPANT_LEFT:
            await self._participant_left(peer_id)

        elif command == SignalingCommand.HANGUP:
            await self.registry.remove(peer_id)

        elif command == SignalingCommand.ERROR:
            logger.error("signaling_server_error", error=message.payload)
            await self._emit(CallEvent(CallEventKind.ERROR, error=SignalingError(str(message.payload))))
            await self.leave()

        else:
            logger.debug("signaling_command_unhandled", command=command.value)

    async def _apply_roster(self, names: List[str]) -> None:
        roster = set(names)
        await self.registry.remove_all_except(roster | {self.local_user})

        for gone in sorted(self._participants - roster):
            await self._participant_left(gone)
        for name in names:
            await self._participant_joined(name)

    async def _participant_joined(self, name: str) -> None:
        if name == self.local_user or name in self._participants:
            return
        self._participants.add(name)
        logger.info("participant_joined", peer_id=name, room=self.room)
        await self._emit(CallEvent(CallEventKind.PARTICIPANT_JOINED, name))

        if self.auto_call:
            self._schedule_auto_call(name)

    async def _participant_left(self, name: str) -> None:
        await self.registry.remove(name)
        if name not in self._participants:
            return
        self._participants.discard(name)
        logger.info("participant_left", peer_id=name, room=self.room)
        await self._emit(CallEvent(CallEventKind.PARTICIPANT_LEFT, name))

    # ------------------------------------------------------------------
    # 자동 호출
    # ------------------------------------------------------------------

    @property
    def pending_auto_calls(self) -> int:
        return len(self._auto_call_tasks)

    def _schedule_auto_call(self, peer_id: str) -> float:
        # 대기 중인 호출마다 delay씩 뒤로 민다 (끝나거나 취소된 호출은 집합에서 빠짐)
        delay = (len(self._auto_call_tasks) + 1) * self.auto_call_delay
        task = asyncio.create_task(self._auto_call(peer_id, delay))
        self._auto_call_tasks.add(task)
        task.add_done_callback(self._auto_call_tasks.discard)
        logger.debug("auto_call_scheduled", peer_id=peer_id, delay=delay)
        return delay

    async def _auto_call(self, peer_id: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            if peer_id not in self._participants:
                logger.debug("auto_call_skipped", peer_id=peer_id)
                return
            await self.call(peer_id)
        except NegotiationCancelled as e:
            logger.info("negotiation_discarded", peer_id=peer_id, error=str(e))
        except PeerCallError as e:
            await self._report(peer_id, e)

    def _cancel_auto_calls(self) -> None:
        for task in list(self._auto_call_tasks):
            task.cancel()
        self._auto_call_tasks.clear()

    # ------------------------------------------------------------------
    # 내부
    # ------------------------------------------------------------------

    async def _session(self, peer_id: str) -> PeerSession:
        session = await self.registry.get_or_create(peer_id)
        if self.client.is_ready:
            await self._flush(peer_id)
        return session

    async def _flush(self, peer_id: str) -> None:
        try:
            await self.queue.flush(peer_id)
        except TransportSendFailure as e:
            await self._report(peer_id, e)

    async def _on_transport_ready(self) -> None:
        for peer_id in self.registry.peer_ids():
            await self._flush(peer_id)

    async def _on_transport_closed(self) -> None:
        logger.warning("signaling_transport_lost", room=self.room, sessions=len(self.registry))
        self._cancel_auto_calls()
        await self.registry.close_all()
        self._participants.clear()
        self._transport_closed.set()
        await self._emit(CallEvent(CallEventKind.ERROR, error=SignalingError("Signaling transport closed")))

    async def _report(self, peer_id: Optional[str], error: PeerCallError) -> None:
        logger.warning("call_error",
                       peer_id=peer_id,
                       error_type=type(error).__name__,
                       error=str(error))

        if isinstance(error, TransportSendFailure):
            target = error.peer_id or peer_id
            if target:
                await self.registry.handle_transport_failure(target, error)

        await self._emit(CallEvent(CallEventKind.ERROR, peer_id, error=error))

    async def _emit(self, event: CallEvent) -> None:
        await deliver_event(self._listeners, event)
