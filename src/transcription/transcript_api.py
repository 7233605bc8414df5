"""Second transcript tier: the youtube-transcript-api library.

The library is synchronous, so each fetch runs in a worker thread.
"""

import asyncio
from typing import Optional

import requests
import structlog
from youtube_transcript_api import YouTubeTranscriptApi, YouTubeTranscriptApiException

from src.models.extraction import TranscriptResult
from src.models.schemas import TranscriptSegment, TranscriptSource
from src.transcription.captions import CAPTION_LANGUAGES, is_usable

logger = structlog.get_logger(__name__)


class TranscriptApiSource:
    """Transcript lookups through ``YouTubeTranscriptApi``."""

    def __init__(
        self,
        api: Optional[YouTubeTranscriptApi] = None,
        languages: tuple[str, ...] = CAPTION_LANGUAGES,
    ):
        self._api = api or YouTubeTranscriptApi()
        self._languages = languages

    def _fetch_sync(self, video_id: str, lang: str) -> list[TranscriptSegment]:
        if lang == "auto":
            fetched = None
            for transcript in self._api.list(video_id):
                if transcript.is_generated:
                    fetched = transcript.fetch()
                    break
            if fetched is None:
                return []
        else:
            fetched = self._api.fetch(video_id, languages=[lang])

        return [
            TranscriptSegment(
                start=snippet.start,
                end=snippet.start + snippet.duration,
                text=snippet.text,
            )
            for snippet in fetched
        ]

    async def get_transcript(self, video_id: str) -> Optional[TranscriptResult]:
        """Return the first usable transcript across languages, or None."""
        for lang in self._languages:
            try:
                segments = await asyncio.to_thread(self._fetch_sync, video_id, lang)
            except YouTubeTranscriptApiException as e:
                logger.debug(
                    "transcript_api_language_unavailable",
                    video_id=video_id,
                    lang=lang,
                    reason=type(e).__name__,
                )
                continue
            except requests.RequestException as e:
                logger.warning(
                    "transcript_api_request_failed",
                    video_id=video_id,
                    lang=lang,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            transcript = "\n".join(segment.text for segment in segments)
            if is_usable(transcript):
                logger.info(
                    "transcript_api_found",
                    video_id=video_id,
                    lang=lang,
                    transcript_length=len(transcript),
                )
                return TranscriptResult(
                    transcript=transcript,
                    segments=segments,
                    provenance=f"youtube_transcript_{lang}",
                    source=TranscriptSource.YOUTUBE_TRANSCRIPT_API,
                )
        return None
