"""peercall - Main Entry Point

시그널링 서버에 접속해 룸 참가 또는 피어 호출을 수행하는 헤드리스 클라이언트
"""

import sys
import argparse
import asyncio
import signal
from typing import Optional

from peercall import __version__
from peercall.config.config_loader import load_config
from peercall.config.models import Config, SignalingMethod, SignalingDialectName
from peercall.common.logger import setup_logging, get_logger
from peercall.common.exceptions import PeerCallError, ConfigurationError
from peercall.media.codec_catalog import MediaKind
from peercall.media.media_source import MediaConstraints, MediaSource, PlayerMediaSource
from peercall.media.sdp_rewriter import DescriptionRewriter
from peercall.rtc.aiortc_connection import AiortcPeerConnection
from peercall.session.call_controller import CallController, encoding_sender
from peercall.session.events import CallEvent, CallEventKind, SessionPolicy
from peercall.session.peer_session import PeerSession
from peercall.session.registry import SessionRegistry
from peercall.signaling.client import SignalingClient
from peercall.signaling.messages import get_dialect
from peercall.signaling.polling_transport import PollingSignalingClient
from peercall.signaling.queue import SignalingQueue
from peercall.signaling.websocket_transport import WebSocketSignalingClient

# 전역 로거 (setup_logging 후에 사용)
logger = None


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    """명령줄 인자 파싱"""
    parser = argparse.ArgumentParser(
        description="peercall - WebRTC signaling client with codec pinning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 기본 설정 파일로 룸 참가
  python -m peercall --room "Room Name" --user alice

  # 커스텀 설정 파일 지정
  python -m peercall --config /path/to/config.yaml

  # 1:1 릴레이 서버에서 bob 호출
  python -m peercall --user alice --call bob
"""
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='설정 파일 경로 (기본: config/config.yaml)'
    )

    parser.add_argument(
        '--room',
        type=str,
        default=None,
        help='참가할 룸 (설정 파일 오버라이드)'
    )

    parser.add_argument(
        '--user',
        type=str,
        default=None,
        help='로컬 사용자 이름 (설정 파일 오버라이드)'
    )

    parser.add_argument(
        '--call',
        type=str,
        default=None,
        help='시작 시 호출할 피어 (설정 파일 오버라이드)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default=None,
        help='로그 레벨 (설정 파일 오버라이드)'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    return parser.parse_args(argv)


def load_configuration(config_path: Optional[str] = None) -> Config:
    """설정 로드

    Raises:
        ConfigurationError: 설정 로드 실패 시
    """
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        print(f"설정 파일을 찾을 수 없습니다: {e}", file=sys.stderr)
        raise ConfigurationError(str(e)) from e
    except ConfigurationError as e:
        print(f"설정 로드 실패: {e}", file=sys.stderr)
        raise


def apply_cli_overrides(config: Config, args: argparse.Namespace) -> Config:
    """CLI 인자로 설정 오버라이드"""
    if args.room:
        config.client.room = args.room
    if args.user:
        config.client.user = args.user
    if args.call:
        config.client.callee = args.call
    if args.log_level:
        config.logging.level = args.log_level
    return config


def initialize_logging(config: Config) -> None:
    """로깅 초기화"""
    setup_logging(
        level=config.logging.level,
        format_type=config.logging.format,
        output=config.logging.output
    )

    global logger
    logger = get_logger(__name__)


def create_signaling_client(config: Config) -> SignalingClient:
    """설정에 맞는 시그널링 트랜스포트 생성"""
    signaling = config.signaling
    if signaling.method == SignalingMethod.POLL:
        return PollingSignalingClient(
            signaling.url,
            config.client.user,
            poll_interval=signaling.poll_interval,
            request_timeout=signaling.request_timeout,
        )
    return WebSocketSignalingClient(signaling.url)


def create_media_source(config: Config) -> Optional[MediaSource]:
    """로컬 미디어 소스 생성 (player_file이 없으면 수신 전용)"""
    if not config.media.player_file:
        return None
    return PlayerMediaSource(
        config.media.player_file,
        format=config.media.player_format,
        options=config.media.player_options,
    )


def build_controller(config: Config, client: SignalingClient) -> CallController:
    """트랜스포트, 큐, 레지스트리, 컨트롤러 조립

    room dialect에서는 로컬 사용자 루프백 세션만 로컬 미디어를 송신하고
    다른 참가자 세션은 수신 전용이다.
    """
    local_user = config.client.user
    dialect = get_dialect(config.signaling.dialect, local_user)

    catalog = config.codecs.build_catalog()
    audio_codec = catalog.lookup(MediaKind.AUDIO, config.codecs.audio)
    video_codec = catalog.lookup(MediaKind.VIDEO, config.codecs.video)
    rewriter = DescriptionRewriter(catalog)

    media_source = create_media_source(config)
    constraints = MediaConstraints(audio=config.media.audio, video=config.media.video)
    publish_only_self = config.signaling.dialect == SignalingDialectName.ROOM

    queue = SignalingQueue(encoding_sender(dialect, client))
    controller: Optional[CallController] = None

    def create_session(peer_id: str) -> PeerSession:
        sends_media = not publish_only_self or peer_id == local_user
        return PeerSession(
            peer_id,
            AiortcPeerConnection(config.ice.servers),
            queue,
            audio_codec,
            video_codec,
            rewriter=rewriter,
            media_source=media_source if sends_media else None,
            constraints=constraints,
            event_sink=controller.handle_session_event,
        )

    registry = SessionRegistry(
        create_session,
        policy=SessionPolicy(config.session.policy),
        queue=queue,
        close_on_transport_failure=config.session.close_on_transport_failure,
    )
    controller = CallController(
        registry,
        queue,
        client,
        dialect,
        local_user,
        auto_call=config.session.auto_call,
        auto_call_delay=config.session.auto_call_delay,
    )
    return controller


def log_call_event(event: CallEvent) -> None:
    """CallEvent 로그 출력 (헤드리스 모드의 UI 역할)"""
    if event.kind == CallEventKind.ERROR:
        logger.error("call_event",
                     kind=event.kind.value,
                     peer_id=event.peer_id,
                     error_type=type(event.error).__name__ if event.error else None,
                     error=str(event.error))
    else:
        logger.info("call_event",
                    kind=event.kind.value,
                    peer_id=event.peer_id,
                    track_kind=event.data.get("kind"))


async def run_client(config: Config) -> int:
    """클라이언트 실행

    Returns:
        int: 종료 코드 (0 = 성공, 1 = 실패)
    """
    client = create_signaling_client(config)
    controller = build_controller(config, client)
    controller.add_listener(log_call_event)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows 이벤트 루프는 signal handler 미지원
            pass

    try:
        await client.start()
        logger.info("client_started",
                    user=config.client.user,
                    method=config.signaling.method,
                    dialect=config.signaling.dialect,
                    audio_codec=config.codecs.audio,
                    video_codec=config.codecs.video)

        if config.client.room:
            await controller.join_room(config.client.room)
        elif config.client.callee:
            await controller.call(config.client.callee)
        else:
            logger.info("waiting_for_calls", user=config.client.user)

        closed = asyncio.create_task(controller.wait_closed())
        stopped = asyncio.create_task(stop_event.wait())
        done, pending = await asyncio.wait({closed, stopped}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()

        return 0 if stopped in done else 1

    except PeerCallError as e:
        logger.error("peercall_error", error_type=type(e).__name__, error=str(e), exc_info=True)
        return 1
    finally:
        try:
            await controller.leave()
        finally:
            await client.close()
        logger.info("client_stopped", user=config.client.user)


def main(argv: Optional[list] = None) -> int:
    """메인 함수

    Returns:
        int: 종료 코드
    """
    try:
        args = parse_args(argv)
        config = load_configuration(args.config)
        config = apply_cli_overrides(config, args)
        initialize_logging(config)
        return asyncio.run(run_client(config))
    except ConfigurationError:
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
