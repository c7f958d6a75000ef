"""HTTP 폴링 시그널링 트랜스포트

POST /messages 로 송신, GET /messages 주기 폴링으로 수신
"""

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from peercall.signaling.client import SignalingClient
from peercall.common.exceptions import TransportSendFailure
from peercall.common.logger import get_logger

logger = get_logger(__name__)


class PollingSignalingClient(SignalingClient):
    """HTTP 폴링 시그널링 클라이언트

    서버는 사용자별 메시지 큐를 보관하고 GET 시 비운다.
    """

    def __init__(
        self,
        base_url: str,
        user: str,
        poll_interval: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = 10.0,
    ):
        """초기화

        Args:
            base_url: 서버 주소 (예: https://host:10443)
            user: 로컬 사용자 이름 (?user= 파라미터)
            poll_interval: 폴링 주기 (초)
            session: 외부 aiohttp 세션
            request_timeout: 요청 타임아웃 (초)
        """
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self.user = user
        self.poll_interval = poll_interval
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None
        self._poll_task: Optional[asyncio.Task] = None

        self.stats = {
            "polls": 0,
            "poll_errors": 0,
            "messages_received": 0,
            "messages_sent": 0,
        }

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/messages"

    async def start(self) -> None:
        if self._poll_task is not None:
            return
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
        self._poll_task = asyncio.create_task(self._poll_loop())
        await self._mark_ready()

    async def poll_once(self) -> int:
        """한 번 폴링하여 받은 메시지를 디스패치

        Returns:
            받은 메시지 수
        """
        async with self._session.get(self.messages_url, params={"user": self.user}) as resp:
            if resp.status >= 400:
                raise aiohttp.ClientResponseError(
                    resp.request_info, resp.history, status=resp.status, message=resp.reason or ""
                )
            payload = await resp.json(content_type=None)

        self.stats["polls"] += 1
        messages = payload if isinstance(payload, list) else [payload] if payload else []
        for message in messages:
            await self._dispatch(message)

        self.stats["messages_received"] += len(messages)
        if messages:
            logger.debug("poll_messages_received", user=self.user, count=len(messages))
        return len(messages)

    async def _poll_loop(self) -> None:
        try:
            while not self.is_closed:
                try:
                    await self.poll_once()
                except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                    self.stats["poll_errors"] += 1
                    logger.warning("poll_failed", user=self.user, error=str(e))
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.debug("poll_loop_cancelled", user=self.user)
            raise

    async def send(self, message: Dict[str, Any]) -> None:
        if self._session is None or self.is_closed:
            raise TransportSendFailure("Polling transport is not started")
        try:
            async with self._session.post(
                self.messages_url,
                params={"user": self.user},
                json=message,
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    raise TransportSendFailure(
                        f"POST {self.messages_url} returned {resp.status} {resp.reason}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportSendFailure(f"POST {self.messages_url} failed: {e}") from e

        self.stats["messages_sent"] += 1

    async def close(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
        await self._mark_closed()
