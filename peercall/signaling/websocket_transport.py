"""WebSocket 시그널링 트랜스포트

aiohttp ClientSession.ws_connect 기반 push 시그널링
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp

from peercall.signaling.client import SignalingClient
from peercall.common.exceptions import TransportSendFailure
from peercall.common.logger import get_logger

logger = get_logger(__name__)


class WebSocketSignalingClient(SignalingClient):
    """WebSocket 시그널링 클라이언트

    JSON 텍스트 프레임 송수신. 수신 루프는 별도 태스크에서 실행된다.
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat: Optional[float] = 30.0,
    ):
        """초기화

        Args:
            url: 시그널링 서버 URL (예: wss://host/kurento, wss://host/ws?user=alice)
            session: 외부 aiohttp 세션 (None이면 내부 생성 후 close 시 정리)
            heartbeat: ping 주기 (초)
        """
        super().__init__()
        self.url = url
        self.heartbeat = heartbeat
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._ws is not None:
            return
        if self._session is None:
            self._session = aiohttp.ClientSession()

        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
        except (aiohttp.ClientError, OSError) as e:
            logger.error("websocket_connect_failed", url=self.url, error=str(e))
            await self._close_session()
            raise TransportSendFailure(f"Cannot connect to {self.url}: {e}") from e

        logger.info("websocket_connected", url=self.url)
        self._reader_task = asyncio.create_task(self._read_loop())
        await self._mark_ready()

    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except ValueError:
                        logger.warning("websocket_invalid_json", data=msg.data[:200])
                        continue
                    await self._dispatch(data)
                elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSE):
                    logger.warning("websocket_receive_stopped",
                                   msg_type=str(msg.type),
                                   error=str(ws.exception()))
                    break
        finally:
            logger.info("websocket_closed",
                        url=self.url,
                        code=ws.close_code if ws is not None else None)
            await self._mark_closed()

    async def send(self, message: Dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise TransportSendFailure("WebSocket is not connected")
        try:
            await ws.send_str(json.dumps(message))
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            raise TransportSendFailure(f"WebSocket send failed: {e}") from e

    async def close(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._reader_task is not None:
            try:
                await asyncio.wait_for(self._reader_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._reader_task.cancel()
            self._reader_task = None
        self._ws = None
        await self._close_session()
        await self._mark_closed()

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
