"""
Playlist resolution for Stream Capture.
Extracts the HLS source from a channel page and decodes master/media playlists.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import m3u8

from .errors import SourceNotFound

ROOM_DOSSIER_PATTERN = re.compile(r'window\.initialRoomDossier = "(.*?)"')
UNICODE_ESCAPE_PATTERN = re.compile(r'\\u([0-9a-fA-F]{4})')

# Substring on the channel page that means a stream is being served
LIVE_MARKER = "playlist.m3u8"

# Divisor applied to the target duration so consecutive polls overlap
POLL_OVERLAP = 1.5


@dataclass(frozen=True)
class SegmentDescriptor:
    """One segment as listed by the media playlist."""
    uri: str
    base_url: str
    index: int = 0  # Assigned when the session admits the segment

    @property
    def url(self) -> str:
        return urljoin(self.base_url, self.uri)


@dataclass
class PlaylistSnapshot:
    """Result of one successful media playlist poll."""
    target_duration: Optional[float]
    segments: List[SegmentDescriptor] = field(default_factory=list)
    poll_interval: float = 0.0


def is_live_page(page_body: str) -> bool:
    """True if the channel page is serving a live playlist."""
    return LIVE_MARKER in page_body


def unescape_unicode(raw: str) -> str:
    """Decode \\uXXXX escapes, leaving every other backslash sequence intact."""
    return UNICODE_ESCAPE_PATTERN.sub(lambda m: chr(int(m.group(1), 16)), raw)


def resolve_source(page_body: str) -> Tuple[str, str]:
    """
    Extract the HLS master playlist URL from the channel page.

    Args:
        page_body: Channel page HTML.

    Returns:
        (master_url, base_url) where base_url is the master URL's directory.

    Raises:
        SourceNotFound: Payload missing, undecodable or without hls_source.
    """
    match = ROOM_DOSSIER_PATTERN.search(page_body or "")
    if not match:
        raise SourceNotFound("Room dossier not found on channel page")

    try:
        room = json.loads(unescape_unicode(match.group(1)))
    except (ValueError, UnicodeError) as e:
        raise SourceNotFound(f"Room dossier is not valid JSON: {e}") from e

    master_url = room.get('hls_source') if isinstance(room, dict) else None
    if not master_url:
        raise SourceNotFound("Room dossier has no hls_source")

    return master_url, urljoin(master_url, '.')


def _last_variant(variants: List[m3u8.Playlist]) -> m3u8.Playlist:
    return variants[-1]


def _highest_bandwidth(variants: List[m3u8.Playlist]) -> m3u8.Playlist:
    def bandwidth(variant: m3u8.Playlist) -> int:
        info = getattr(variant, 'stream_info', None)
        return int(getattr(info, 'bandwidth', None) or 0)

    # max() keeps the first of equal bandwidths; prefer the later listing instead
    return max(reversed(variants), key=bandwidth)


VARIANT_SELECTORS: Dict[str, Callable[[List[m3u8.Playlist]], m3u8.Playlist]] = {
    'last': _last_variant,
    'bandwidth': _highest_bandwidth,
}


def select_variant(master_text: str, master_url: str, strategy: str = 'last') -> str:
    """
    Pick the stream URL to capture from a master playlist.

    Args:
        master_text: Master playlist body.
        master_url: URL the master playlist was fetched from.
        strategy: 'last' (upstream lists ascending quality) or 'bandwidth'.

    Returns:
        Absolute media playlist URL.

    Raises:
        SourceNotFound: Playlist undecodable or lists no variants.
    """
    try:
        playlist = m3u8.loads(master_text, uri=master_url)
    except Exception as e:
        raise SourceNotFound(f"Master playlist could not be decoded: {e}") from e

    if not playlist.is_variant:
        if playlist.segments:
            # Already a media playlist
            return master_url
        raise SourceNotFound("Master playlist lists no variants")

    variants = [p for p in playlist.playlists if p.uri]
    if not variants:
        raise SourceNotFound("Master playlist lists no variants")

    selector = VARIANT_SELECTORS.get(strategy, _last_variant)
    return urljoin(master_url, selector(variants).uri)


def parse_media_playlist(text: str, base_url: str, fallback_interval: float = 3.0) -> PlaylistSnapshot:
    """
    Decode a media playlist into a snapshot.

    Args:
        text: Media playlist body.
        base_url: URL segment paths resolve against.
        fallback_interval: Poll interval used when no target duration is given.

    Raises:
        ValueError: The body is not an HLS playlist.
    """
    if '#EXTM3U' not in text:
        raise ValueError("Response is not an HLS playlist")

    playlist = m3u8.loads(text)
    target_duration = float(playlist.target_duration) if playlist.target_duration else None

    segments = [
        SegmentDescriptor(uri=segment.uri, base_url=base_url)
        for segment in playlist.segments
        if segment is not None and segment.uri
    ]

    if target_duration:
        poll_interval = target_duration / POLL_OVERLAP
    else:
        poll_interval = fallback_interval

    return PlaylistSnapshot(
        target_duration=target_duration,
        segments=segments,
        poll_interval=poll_interval
    )
