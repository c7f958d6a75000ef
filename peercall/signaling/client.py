"""Signaling Client

시그널링 트랜스포트 추상화 (send / receive / close)
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Union

from peercall.common.logger import get_logger

logger = get_logger(__name__)

MessageHandler = Callable[[Any], Union[None, Awaitable[None]]]
StateHandler = Callable[[], Union[None, Awaitable[None]]]


async def _call(handler: Callable, *args) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class SignalingClient(ABC):
    """시그널링 클라이언트 베이스

    수신 메시지는 등록된 핸들러에 디코딩된 JSON 값(dict 또는 list)으로 전달된다.
    핸들러 예외는 로그 후 다음 메시지 처리를 계속한다.
    """

    def __init__(self):
        self._message_handlers: List[MessageHandler] = []
        self._ready_handlers: List[StateHandler] = []
        self._close_handlers: List[StateHandler] = []
        self._ready = False
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self._ready and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def on_message(self, handler: MessageHandler) -> None:
        self._message_handlers.append(handler)

    def on_ready(self, handler: StateHandler) -> None:
        self._ready_handlers.append(handler)

    def on_close(self, handler: StateHandler) -> None:
        self._close_handlers.append(handler)

    @abstractmethod
    async def start(self) -> None:
        """연결 시작"""

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        """메시지 전송

        Raises:
            TransportSendFailure: 전송 실패
        """

    @abstractmethod
    async def close(self) -> None:
        """연결 종료 (멱등)"""

    async def _mark_ready(self) -> None:
        self._ready = True
        logger.info("signaling_ready", transport=type(self).__name__)
        for handler in list(self._ready_handlers):
            await _call(handler)

    async def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._ready = False
        logger.info("signaling_closed", transport=type(self).__name__)
        for handler in list(self._close_handlers):
            try:
                await _call(handler)
            except Exception as e:
                logger.error("signaling_close_handler_failed", error=str(e), exc_info=True)

    async def _dispatch(self, message: Any) -> None:
        for handler in list(self._message_handlers):
            try:
                await _call(handler, message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("signaling_handler_failed", error=str(e), exc_info=True)
