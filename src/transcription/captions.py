"""Caption scraping from the YouTube watch page.

The watch page embeds the available caption tracks as JSON
(``"captionTracks":[...]``). Each track has a ``baseUrl`` that serves the
timedtext XML for that language, either the classic format
(``<text start="s" dur="s">``) or srv3 (``<p t="ms" d="ms">``).
"""

import json
import re
from typing import Any, Optional

import structlog
from bs4 import BeautifulSoup, Tag

from src.core.exceptions import CollectorError
from src.core.http_source import HttpSource
from src.models.extraction import TranscriptResult
from src.models.schemas import TranscriptSegment, TranscriptSource

logger = structlog.get_logger(__name__)

WATCH_URL = "https://www.youtube.com/watch"

CAPTION_LANGUAGES = ("en", "en-US", "en-GB", "auto")

# A transcript at or below this length is treated as missing
MIN_TRANSCRIPT_CHARS = 50

CAPTION_TRACKS_PATTERN = re.compile(r'"captionTracks":(\[.*?\])')

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


def is_usable(text: str) -> bool:
    return len(text.strip()) > MIN_TRANSCRIPT_CHARS


def parse_caption_tracks(page: str) -> list[dict[str, Any]]:
    """Extract the caption track list embedded in a watch page."""
    match = CAPTION_TRACKS_PATTERN.search(page)
    if not match:
        return []
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError as e:
        logger.warning("caption_tracks_unparseable", error=str(e))
        return []


def select_track(tracks: list[dict[str, Any]], lang: str) -> Optional[dict[str, Any]]:
    """Pick the track for a language; ``auto`` means the speech-recognition track."""
    for track in tracks:
        if lang == "auto":
            if track.get("kind") == "asr":
                return track
            continue
        vss_id = track.get("vssId", "")
        if track.get("languageCode") == lang or vss_id in (f".{lang}", f"a.{lang}"):
            return track
    return None


def _seconds(value: Optional[str], scale: float = 1.0) -> float:
    try:
        return float(value) / scale if value else 0.0
    except ValueError:
        return 0.0


def _node_text(node: Tag) -> str:
    text = node.get_text()
    # Caption text is frequently escaped twice, so markup can survive one pass
    if "<" in text or "&" in text:
        text = BeautifulSoup(text, "html.parser").get_text()
    return " ".join(text.split())


def parse_timedtext(xml: str) -> list[TranscriptSegment]:
    """Parse timedtext XML (classic or srv3) into segments."""
    soup = BeautifulSoup(xml, "html.parser")
    segments = []
    for node in soup.find_all(["text", "p"]):
        text = _node_text(node)
        if not text:
            continue
        if node.name == "text":
            start, duration = _seconds(node.get("start")), _seconds(node.get("dur"))
        else:
            start, duration = _seconds(node.get("t"), 1000), _seconds(node.get("d"), 1000)
        segments.append(TranscriptSegment(start=start, end=start + duration, text=text))
    return segments


class CaptionScraper(HttpSource):
    """First transcript tier: captions published on the watch page."""

    source_name = "youtube_captions"

    def __init__(self, languages: tuple[str, ...] = CAPTION_LANGUAGES, **kwargs):
        kwargs.setdefault("headers", dict(BROWSER_HEADERS))
        super().__init__(**kwargs)
        self._languages = languages

    async def get_transcript(self, video_id: str) -> Optional[TranscriptResult]:
        """Return the first usable caption transcript, or None."""
        try:
            page = await self._request(
                "GET",
                WATCH_URL,
                params={"v": video_id},
                response_type="text",
                operation="watch_page",
            )
        except CollectorError as e:
            logger.warning("caption_page_fetch_failed", video_id=video_id, error=str(e))
            return None

        tracks = parse_caption_tracks(page)
        if not tracks:
            logger.info("caption_tracks_missing", video_id=video_id)
            return None

        for lang in self._languages:
            track = select_track(tracks, lang)
            if not track or not track.get("baseUrl"):
                continue
            try:
                xml = await self._request(
                    "GET",
                    track["baseUrl"],
                    response_type="text",
                    operation="timedtext",
                )
            except CollectorError as e:
                logger.warning("caption_track_fetch_failed", video_id=video_id, lang=lang, error=str(e))
                continue

            segments = parse_timedtext(xml)
            transcript = " ".join(segment.text for segment in segments)
            if is_usable(transcript):
                logger.info(
                    "caption_transcript_found",
                    video_id=video_id,
                    lang=lang,
                    transcript_length=len(transcript),
                )
                return TranscriptResult(
                    transcript=transcript,
                    segments=segments,
                    provenance=f"youtube_scraper_{lang}",
                    source=TranscriptSource.YOUTUBE_CAPTIONS,
                )

        return None
