"""
Per-broadcast capture state.
"""

from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Deque, Iterable, List, Optional, Set
from urllib.parse import urlsplit

from .playlist import SegmentDescriptor

SESSION_TIMESTAMP_FORMAT = '%Y-%m-%d_%H.%M.%S'

# Well above the number of segments a live playlist lists at once
MIN_DEDUP_WINDOW = 64


class PollerState(Enum):
    """Offline-confirmation states of a session's playlist poller."""
    LIVE = "live"
    SUSPECT = "suspect"   # Some consecutive poll failures, not yet confirmed
    OFFLINE = "offline"   # Terminal for the session


def segment_key(uri: str) -> str:
    """Dedup key: last path component, query string ignored."""
    path = urlsplit(uri).path or uri
    return path.rsplit('/', 1)[-1]


class DedupWindow:
    """
    Bounded set of recently seen segment keys.

    Oldest keys are forgotten once the window is full. The size never drops
    below MIN_DEDUP_WINDOW: a key evicted while the playlist still lists its
    segment would be admitted a second time.
    """

    def __init__(self, size: int = 4096, key: Callable[[str], str] = segment_key):
        self.size = max(size, MIN_DEDUP_WINDOW)
        self.key = key
        self._order: Deque[str] = deque()
        self._keys: Set[str] = set()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, uri: str) -> bool:
        return self.key(uri) in self._keys

    def add(self, uri: str) -> bool:
        """Remember a segment. Returns False if it was already seen."""
        k = self.key(uri)
        if k in self._keys:
            return False

        self._keys.add(k)
        self._order.append(k)
        while len(self._order) > self.size:
            self._keys.discard(self._order.popleft())
        return True


@dataclass
class CaptureSession:
    """
    State of one continuous broadcast.

    next_index, dedup and the failure counter are only ever mutated by the
    session's poller loop.
    """
    channel: str
    started_at: datetime
    channel_dir: Path
    dedup: DedupWindow = field(default_factory=DedupWindow)
    next_index: int = 1
    consecutive_failures: int = 0
    state: PollerState = PollerState.LIVE

    @classmethod
    def begin(
        cls,
        channel: str,
        channel_dir: Path,
        dedup_size: int = 4096,
        now: Optional[datetime] = None
    ) -> 'CaptureSession':
        """Fresh session: index 1, empty dedup window, no failures."""
        return cls(
            channel=channel,
            started_at=now or datetime.now(),
            channel_dir=Path(channel_dir),
            dedup=DedupWindow(size=dedup_size),
        )

    @property
    def session_id(self) -> str:
        return self.started_at.strftime(SESSION_TIMESTAMP_FORMAT)

    @property
    def output_path(self) -> Path:
        return self.channel_dir / f"{self.session_id}.ts"

    @property
    def highest_index(self) -> int:
        """Highest index dispatched so far (0 before the first segment)."""
        return self.next_index - 1

    def admit(self, segments: Iterable[SegmentDescriptor]) -> List[SegmentDescriptor]:
        """
        Filter out already-seen segments and index the rest in playlist order.

        Returns:
            New descriptors carrying their session index.
        """
        admitted = []
        for segment in segments:
            if not self.dedup.add(segment.uri):
                continue
            admitted.append(replace(segment, index=self.next_index))
            self.next_index += 1
        return admitted


@dataclass
class SessionResult:
    """Summary of a finished capture session."""
    channel: str
    output_path: str
    started_at: datetime
    ended_at: datetime
    segments_dispatched: int = 0
    segments_written: int = 0
    segments_skipped: int = 0
    bytes_written: int = 0

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    @property
    def duration_formatted(self) -> str:
        """Get human-readable duration."""
        hours = int(self.duration_seconds // 3600)
        minutes = int((self.duration_seconds % 3600) // 60)
        seconds = int(self.duration_seconds % 60)
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"

    @property
    def file_size_formatted(self) -> str:
        """Get human-readable file size."""
        size = float(self.bytes_written)
        for unit in ['B', 'KB', 'MB', 'GB']:
            if size < 1024:
                return f"{size:.2f} {unit}"
            size /= 1024
        return f"{size:.2f} TB"
