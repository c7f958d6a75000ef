"""Media Source

로컬 미디어 획득 경계 (카메라/마이크/파일)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from peercall.common.exceptions import MediaAcquisitionError
from peercall.common.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MediaConstraints:
    """미디어 요청 조건"""
    audio: bool = True
    video: bool = True


class LocalMedia:
    """로컬 미디어 핸들 (MediaStream 유사)

    트랙 목록을 소유하며 stop() 시 모든 트랙을 정지한다.
    """

    def __init__(self, tracks: List[Any]):
        self.tracks = list(tracks)
        self._stopped = False

    @property
    def audio_tracks(self) -> List[Any]:
        return [t for t in self.tracks if getattr(t, "kind", None) == "audio"]

    @property
    def video_tracks(self) -> List[Any]:
        return [t for t in self.tracks if getattr(t, "kind", None) == "video"]

    @property
    def stopped(self) -> bool:
        return self._stopped

    def set_enabled(self, kind: str, enabled: bool) -> int:
        """종류별 트랙 활성/비활성 (트랙은 유지)

        Returns:
            변경된 트랙 수
        """
        changed = 0
        for track in self.tracks:
            if getattr(track, "kind", None) == kind:
                track.enabled = enabled
                changed += 1
        return changed

    def stop(self) -> None:
        """모든 트랙 정지 (멱등)"""
        if self._stopped:
            return
        self._stopped = True
        for track in self.tracks:
            track.stop()
        logger.debug("local_media_stopped", track_count=len(self.tracks))


class MediaSource(ABC):
    """로컬 미디어 소스"""

    @abstractmethod
    async def acquire(self, constraints: MediaConstraints) -> LocalMedia:
        """로컬 미디어 획득

        Raises:
            MediaAcquisitionError: 권한 거부 또는 장치 없음
        """


class PlayerMediaSource(MediaSource):
    """aiortc MediaPlayer 기반 미디어 소스

    파일, 장치(v4l2, avfoundation 등) 또는 스트림 URL에서 트랙을 가져온다.
    """

    def __init__(self, file: str, format: Optional[str] = None, options: Optional[Dict[str, str]] = None):
        self.file = file
        self.format = format
        self.options = options or {}

    async def acquire(self, constraints: MediaConstraints) -> LocalMedia:
        from aiortc.contrib.media import MediaPlayer

        try:
            player = MediaPlayer(self.file, format=self.format, options=self.options)
        except Exception as e:
            logger.warning("media_player_open_failed", file=self.file, error=str(e))
            raise MediaAcquisitionError(f"Cannot open media source {self.file}: {e}") from e

        tracks = []
        if constraints.audio and player.audio is not None:
            tracks.append(player.audio)
        if constraints.video and player.video is not None:
            tracks.append(player.video)

        if not tracks:
            raise MediaAcquisitionError(
                f"Media source {self.file} has no tracks for "
                f"audio={constraints.audio} video={constraints.video}"
            )

        logger.info("local_media_acquired",
                    file=self.file,
                    audio=any(t.kind == "audio" for t in tracks),
                    video=any(t.kind == "video" for t in tracks))
        return LocalMedia(tracks)
