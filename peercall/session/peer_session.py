"""Peer Session

원격 피어 하나와의 offer/answer 협상 상태 머신
"""

from typing import Any, Dict, List, Optional, Tuple

from peercall.media.codec_catalog import CodecDescriptor
from peercall.media.media_source import LocalMedia, MediaConstraints, MediaSource
from peercall.media.sdp_parser import SDPParser
from peercall.media.sdp_rewriter import DescriptionRewriter
from peercall.rtc.peer_connection import OfferOptions, PeerConnection
from peercall.session.events import (
    CallEvent,
    CallEventKind,
    EventListener,
    NegotiationState,
    deliver_event,
)
from peercall.signaling.messages import SignalingMessage
from peercall.signaling.queue import SignalingQueue
from peercall.common.exceptions import (
    InvalidStateTransitionError,
    MalformedDescriptionError,
    MediaAcquisitionError,
    NegotiationCancelled,
    NegotiationError,
    PeerCallError,
)
from peercall.common.logger import log_with_context

_OFFERABLE_STATES = (NegotiationState.IDLE, NegotiationState.STABLE)


class PeerSession:
    """피어 세션

    하나의 PeerConnection을 소유하며 협상 단계를 직렬화한다.
    - 협상 단계 진행 중(in-flight) 다른 협상 시도는 InvalidStateTransitionError
    - 각 await 이후 세션이 닫혔으면 결과를 폐기하고 NegotiationCancelled
    - 원격 description 이전에 도착한 candidate는 버퍼링 후 도착 순서대로 한 번만 적용
    """

    def __init__(
        self,
        peer_id: str,
        connection: PeerConnection,
        queue: SignalingQueue,
        audio_codec: CodecDescriptor,
        video_codec: CodecDescriptor,
        rewriter: Optional[DescriptionRewriter] = None,
        media_source: Optional[MediaSource] = None,
        constraints: Optional[MediaConstraints] = None,
        event_sink: Optional[EventListener] = None,
    ):
        """초기화

        Args:
            peer_id: 피어 식별자 (룸에서는 참가자 이름)
            connection: 피어 연결
            queue: 시그널링 송신 큐
            audio_codec: 고정할 오디오 코덱
            video_codec: 고정할 비디오 코덱
            rewriter: SDP 재작성기 (None이면 기본 카탈로그)
            media_source: 로컬 미디어 소스 (None이면 수신 전용)
            constraints: 미디어 요청 조건
            event_sink: 세션 이벤트(에러, 원격 트랙) 수신자
        """
        self.peer_id = peer_id
        self.audio_codec = audio_codec
        self.video_codec = video_codec

        self.state = NegotiationState.IDLE
        self.local_description: Optional[str] = None
        self.remote_description: Optional[str] = None
        self.pending_candidates: List[Dict[str, Any]] = []

        self._connection = connection
        self._queue = queue
        self._rewriter = rewriter or DescriptionRewriter()
        self._media_source = media_source
        self._constraints = constraints or MediaConstraints()
        self._event_sink = event_sink
        self._local_media: Optional[LocalMedia] = None

        self._in_flight = False
        self._generation = 0
        self._flushing_candidates = False

        self._logger = log_with_context(__name__, peer_id=peer_id)

        connection.on_ice_candidate = self.on_local_candidate
        connection.on_track = self._on_remote_track

    @property
    def has_local_media(self) -> bool:
        return self._local_media is not None

    @property
    def local_media(self) -> Optional[LocalMedia]:
        return self._local_media

    @property
    def has_media_source(self) -> bool:
        return self._media_source is not None

    @property
    def is_closed(self) -> bool:
        return self.state == NegotiationState.CLOSED

    @property
    def negotiating(self) -> bool:
        return self._in_flight

    # ------------------------------------------------------------------
    # 협상 단계
    # ------------------------------------------------------------------

    async def create_offer(self) -> str:
        """offer 생성 → OFFER_PENDING, offer 전송 큐잉

        Returns:
            재작성된 로컬 offer SDP

        Raises:
            InvalidStateTransitionError: IDLE/STABLE이 아니거나 협상 진행 중
            NegotiationCancelled: 진행 중 세션이 닫힘
            NegotiationError: offer 생성/적용 실패
            TransportSendFailure: offer 즉시 전송 실패
        """
        generation = self._begin("create_offer", _OFFERABLE_STATES)
        try:
            options = OfferOptions.for_local_media(self.has_local_media)
            try:
                offer = await self._connection.create_offer(options)
            except PeerCallError:
                raise
            except Exception as e:
                raise NegotiationError(f"Failed to create offer for {self.peer_id}: {e}") from e
            self._ensure_current(generation, "create_offer")

            applied = await self._set_local_description(self._rewrite(offer), "offer")
            self._ensure_current(generation, "set_local_description")

            self.local_description = self._rewrite(applied)
            self._transition(NegotiationState.OFFER_PENDING)
        finally:
            self._in_flight = False

        self._logger.info("offer_created",
                          send_local_media=options.send_local_media,
                          direction=options.direction())

        await self._queue.enqueue(self.peer_id, SignalingMessage.offer(self.peer_id, self.local_description))
        return self.local_description

    async def apply_remote_offer(self, sdp: str) -> str:
        """원격 offer 적용 후 answer 생성 → STABLE, answer 전송 큐잉

        미디어 소스가 있고 아직 로컬 미디어가 없으면 answer 전에 획득한다.
        미디어 획득 실패는 에러 이벤트로 알리고 수신 전용으로 계속 진행한다.

        Returns:
            재작성된 로컬 answer SDP

        Raises:
            InvalidStateTransitionError: IDLE/STABLE이 아니거나 협상 진행 중
            MalformedDescriptionError: 잘못된 offer SDP
            NegotiationCancelled: 진행 중 세션이 닫힘
            NegotiationError: answer 생성/적용 실패
        """
        generation = self._begin("apply_remote_offer", _OFFERABLE_STATES)
        try:
            await self._set_remote_description(sdp, "offer")
            self._ensure_current(generation, "set_remote_description")

            if self._media_source is not None and self._local_media is None:
                try:
                    await self._attach_local_media(self._media_source, self._constraints, generation)
                except MediaAcquisitionError as e:
                    self._logger.warning("local_media_unavailable", error=str(e))
                    await self._emit(CallEvent(CallEventKind.ERROR, self.peer_id, error=e))
                self._ensure_current(generation, "acquire_local_media")

            try:
                answer = await self._connection.create_answer()
            except PeerCallError:
                raise
            except Exception as e:
                raise NegotiationError(f"Failed to create answer for {self.peer_id}: {e}") from e
            self._ensure_current(generation, "create_answer")

            applied = await self._set_local_description(self._rewrite(answer), "answer")
            self._ensure_current(generation, "set_local_description")

            # answer 적용까지 성공해야 원격 description 확정 (실패 시 이전 상태 유지)
            self.remote_description = sdp
            self.local_description = self._rewrite(applied)
            self._transition(NegotiationState.STABLE)
        finally:
            self._in_flight = False

        await self._flush_candidates()

        self._logger.info("answer_created", has_local_media=self.has_local_media)
        await self._queue.enqueue(self.peer_id, SignalingMessage.answer(self.peer_id, self.local_description))
        return self.local_description

    async def apply_remote_answer(self, sdp: str) -> None:
        """원격 answer 적용 → STABLE, 버퍼된 candidate 적용

        Raises:
            InvalidStateTransitionError: OFFER_PENDING이 아님 (상태 변경 없음)
            MalformedDescriptionError: 잘못된 answer SDP
            NegotiationCancelled: 진행 중 세션이 닫힘
        """
        generation = self._begin("apply_remote_answer", (NegotiationState.OFFER_PENDING,))
        try:
            await self._set_remote_description(sdp, "answer")
            self._ensure_current(generation, "set_remote_description")
            self.remote_description = sdp
            self._transition(NegotiationState.STABLE)
        finally:
            self._in_flight = False

        self._logger.info("answer_applied")
        await self._flush_candidates()

    async def apply_remote_candidate(self, candidate: Dict[str, Any]) -> bool:
        """원격 ICE candidate 적용 또는 버퍼링

        Returns:
            즉시 적용했으면 True, 버퍼링했으면 False

        Raises:
            InvalidStateTransitionError: 닫힌 세션
            MalformedDescriptionError: 트랜스포트가 candidate를 거부
        """
        if self.is_closed:
            raise InvalidStateTransitionError("apply_remote_candidate", self.state.value, self.peer_id)

        # 버퍼에 남은 candidate가 있으면 새 candidate도 그 뒤에 붙인다
        if self.remote_description is None or self._flushing_candidates or self.pending_candidates:
            self.pending_candidates.append(candidate)
            self._logger.debug("remote_candidate_buffered", pending=len(self.pending_candidates))
            return False

        await self._add_ice_candidate(candidate)
        return True

    async def request_local_media(
        self,
        constraints: Optional[MediaConstraints] = None,
        source: Optional[MediaSource] = None,
    ) -> Optional[str]:
        """로컬 미디어 획득 후 협상 시작

        이미 로컬 미디어가 있으면 획득은 생략한다. IDLE/STABLE이고
        협상 진행 중이 아니면 create_offer()를 실행한다.

        Returns:
            생성된 offer SDP, 협상을 시작하지 않았으면 None

        Raises:
            MediaAcquisitionError: 미디어 소스 없음, 권한 거부, 장치 없음
            InvalidStateTransitionError: 닫힌 세션
        """
        if self.is_closed:
            raise InvalidStateTransitionError("request_local_media", self.state.value, self.peer_id)

        source = source or self._media_source
        if source is None:
            raise MediaAcquisitionError(f"No media source configured for {self.peer_id}")

        if self._local_media is None:
            await self._attach_local_media(source, constraints or self._constraints, self._generation)

        if self.state in _OFFERABLE_STATES and not self._in_flight:
            return await self.create_offer()

        self._logger.debug("offer_deferred", state=self.state.value, in_flight=self._in_flight)
        return None

    def set_local_tracks_enabled(self, kind: str, enabled: bool) -> int:
        """로컬 트랙 음소거/해제 (재협상 없음)

        Returns:
            변경된 트랙 수, 로컬 미디어가 없으면 0
        """
        if self._local_media is None or self.is_closed:
            return 0

        changed = self._local_media.set_enabled(kind, enabled)
        self._logger.info("local_tracks_toggled", kind=kind, enabled=enabled, tracks=changed)
        return changed

    async def on_local_candidate(self, candidate: Dict[str, Any]) -> None:
        """피어 연결이 발견한 로컬 candidate를 원격 피어로 전송 큐잉"""
        if self.is_closed:
            return
        await self._queue.enqueue(self.peer_id, SignalingMessage.candidate(self.peer_id, candidate))

    async def close(self) -> bool:
        """세션 종료 (멱등)

        진행 중인 협상 단계의 결과는 이후 폐기된다.

        Returns:
            이번 호출로 닫혔으면 True, 이미 닫혀 있었으면 False
        """
        if self.is_closed:
            return False

        previous = self.state
        self._generation += 1
        self.state = NegotiationState.CLOSED
        dropped = len(self.pending_candidates)
        self.pending_candidates.clear()

        if self._local_media is not None:
            self._local_media.stop()

        try:
            await self._connection.close()
        except Exception as e:
            self._logger.error("peer_connection_close_failed", error=str(e))

        self._logger.info("peer_session_closed",
                          previous_state=previous.value,
                          dropped_candidates=dropped)
        return True

    # ------------------------------------------------------------------
    # 내부
    # ------------------------------------------------------------------

    def _begin(self, operation: str, allowed: Tuple[NegotiationState, ...]) -> int:
        if self.state not in allowed:
            raise InvalidStateTransitionError(operation, self.state.value, self.peer_id)
        if self._in_flight:
            raise InvalidStateTransitionError(operation, f"{self.state.value} (negotiation in flight)", self.peer_id)
        self._in_flight = True
        return self._generation

    def _ensure_current(self, generation: int, step: str) -> None:
        if self.is_closed or generation != self._generation:
            self._logger.info("negotiation_result_discarded", step=step, state=self.state.value)
            raise NegotiationCancelled(f"{step} result for {self.peer_id} discarded: session closed")

    def _transition(self, new_state: NegotiationState) -> None:
        self._logger.info("negotiation_state_changed",
                          from_state=self.state.value,
                          to_state=new_state.value)
        self.state = new_state

    def _rewrite(self, sdp: str) -> str:
        return self._rewriter.rewrite(sdp, self.audio_codec, self.video_codec)

    async def _set_local_description(self, sdp: str, sdp_type: str) -> str:
        try:
            return await self._connection.set_local_description(sdp, sdp_type)
        except PeerCallError:
            raise
        except Exception as e:
            raise NegotiationError(f"Failed to set local {sdp_type} for {self.peer_id}: {e}") from e

    async def _set_remote_description(self, sdp: str, sdp_type: str) -> None:
        SDPParser.parse(sdp)
        try:
            await self._connection.set_remote_description(sdp, sdp_type)
        except PeerCallError:
            raise
        except Exception as e:
            raise MalformedDescriptionError(f"Remote {sdp_type} rejected for {self.peer_id}: {e}") from e

    async def _add_ice_candidate(self, candidate: Dict[str, Any]) -> None:
        try:
            await self._connection.add_ice_candidate(candidate)
        except PeerCallError:
            raise
        except Exception as e:
            raise MalformedDescriptionError(f"Remote candidate rejected for {self.peer_id}: {e}") from e

    async def _flush_candidates(self) -> int:
        """버퍼된 candidate를 도착 순서대로 적용

        적용 중 도착한 candidate도 같은 버퍼 뒤에 붙어 이어서 적용된다.
        실패한 candidate는 에러 이벤트로 알리고 버린다.
        """
        if self._flushing_candidates or not self.pending_candidates:
            return 0

        applied = 0
        self._flushing_candidates = True
        try:
            while self.pending_candidates and not self.is_closed:
                candidate = self.pending_candidates.pop(0)
                try:
                    await self._add_ice_candidate(candidate)
                    applied += 1
                except MalformedDescriptionError as e:
                    self._logger.warning("buffered_candidate_rejected", error=str(e))
                    await self._emit(CallEvent(CallEventKind.ERROR, self.peer_id, error=e))
        finally:
            self._flushing_candidates = False

        self._logger.debug("pending_candidates_flushed", applied=applied)
        return applied

    async def _attach_local_media(
        self,
        source: MediaSource,
        constraints: MediaConstraints,
        generation: int,
    ) -> None:
        media = await source.acquire(constraints)
        if self.is_closed or generation != self._generation:
            media.stop()
            self._ensure_current(generation, "acquire_local_media")

        try:
            for track in media.tracks:
                self._connection.add_track(track)
        except Exception as e:
            media.stop()
            raise NegotiationError(f"Failed to attach local tracks for {self.peer_id}: {e}") from e

        self._local_media = media
        self._logger.info("local_media_attached",
                          audio_tracks=len(media.audio_tracks),
                          video_tracks=len(media.video_tracks))

    async def _on_remote_track(self, track: Any) -> None:
        if self.is_closed:
            return
        await self._emit(CallEvent(
            CallEventKind.REMOTE_TRACK,
            self.peer_id,
            data={"track": track, "kind": getattr(track, "kind", None)},
        ))

    async def _emit(self, event: CallEvent) -> None:
        if self._event_sink is not None:
            await deliver_event([self._event_sink], event)
