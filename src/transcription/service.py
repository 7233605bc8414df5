"""
Transcript acquisition with a layered fallback chain.

Order of attempts for a video:

1. Resume: an earlier run left downloaded audio on disk -> speech-to-text
2. Captions scraped from the watch page
3. youtube-transcript-api
4. Audio conversion (RapidAPI) + speech-to-text (Whisper)

A result is usable when its text is longer than 50 characters. When every
tier fails the result is empty with provenance ``all_methods_failed``.

When a resume key is given, progress is persisted on the content item as
the chain runs, so a crash or failure after the (paid) audio download
resumes from the saved file instead of downloading again.

Usage:
    service = TranscriptionService(repository, captions, transcript_api, downloader, whisper)
    result = await service.acquire("https://youtu.be/dQw4w9WgXcQ", resume_key=item.key)
"""

import re
import time
from pathlib import Path
from typing import Optional

import structlog
from openai import OpenAIError

from src.core.exceptions import CollectorError, TranscriptionError
from src.models.extraction import TranscriptResult
from src.models.schemas import (
    ContentItem,
    ContentKey,
    ContentStatus,
    TranscriptSource,
)
from src.monitoring.metrics import record_transcript_source
from src.store.repository import PipelineRepository
from src.transcription.audio import AudioDownloader
from src.transcription.captions import CaptionScraper
from src.transcription.transcript_api import TranscriptApiSource
from src.transcription.whisper import WhisperTranscriber

logger = structlog.get_logger(__name__)

VIDEO_ID_PATTERN = re.compile(r"(?:v=|/|youtu\.be/)([0-9A-Za-z_-]{11})")
BARE_VIDEO_ID = re.compile(r"^[0-9A-Za-z_-]{11}$")

JANITOR_SUFFIXES = (".mp3", ".vtt")
JANITOR_MAX_AGE_SECONDS = 3600

# Failures of the audio tier that are recorded on the item instead of raised
_AUDIO_TIER_ERRORS = (TranscriptionError, CollectorError, OpenAIError, OSError)


def extract_video_id(video_ref: str) -> str:
    """Get the 11-character video id from a URL or bare id.

    Raises:
        TranscriptionError: If no id can be found.
    """
    ref = video_ref.strip()
    if BARE_VIDEO_ID.match(ref):
        return ref
    match = VIDEO_ID_PATTERN.search(ref)
    if not match:
        raise TranscriptionError(f"Could not extract video ID from: {video_ref}")
    return match.group(1)


class TranscriptionService:
    """Runs the transcript fallback chain for one video at a time."""

    def __init__(
        self,
        repository: PipelineRepository,
        captions: CaptionScraper,
        transcript_api: TranscriptApiSource,
        downloader: AudioDownloader,
        whisper: WhisperTranscriber,
        temp_dir: Path = Path("temp_audio"),
    ):
        self._repository = repository
        self._captions = captions
        self._transcript_api = transcript_api
        self._downloader = downloader
        self._whisper = whisper
        self._temp_dir = Path(temp_dir)

    async def aclose(self) -> None:
        await self._captions.aclose()
        await self._downloader.aclose()

    # -------------------------------------------------------------------------
    # Janitor
    # -------------------------------------------------------------------------

    def cleanup_old_files(self, max_age_seconds: float = JANITOR_MAX_AGE_SECONDS) -> int:
        """Delete orphaned audio/caption files older than ``max_age_seconds``.

        Returns:
            Number of files removed.
        """
        if not self._temp_dir.exists():
            return 0

        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self._temp_dir.iterdir():
            if path.suffix not in JANITOR_SUFFIXES or not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
                    logger.info("orphaned_audio_removed", file=path.name)
            except OSError as e:
                logger.warning("orphaned_audio_cleanup_failed", file=path.name, error=str(e))
        return removed

    # -------------------------------------------------------------------------
    # Fallback chain
    # -------------------------------------------------------------------------

    async def acquire(
        self,
        video_ref: str,
        resume_key: Optional[ContentKey] = None,
    ) -> TranscriptResult:
        """Acquire a transcript for a video.

        Args:
            video_ref: Video URL or bare video id.
            resume_key: Content item to persist progress on and resume from.

        Returns:
            The transcript result; empty with source ``fallback`` when every
            method failed.

        Raises:
            TranscriptionError: If ``video_ref`` holds no video id.
        """
        video_id = extract_video_id(video_ref)
        item = await self._repository.get_content_item(resume_key) if resume_key else None
        logger.info(
            "transcript_acquisition_started",
            video_id=video_id,
            content_id=item.id if item else None,
        )

        existing_audio = self._existing_audio(item)
        if existing_audio is not None:
            logger.info("transcript_resuming_from_audio", video_id=video_id, path=str(existing_audio))
            try:
                return await self._transcribe_audio(
                    item, existing_audio, "whisper_transcription_from_existing_audio"
                )
            except _AUDIO_TIER_ERRORS as e:
                logger.error(
                    "transcript_resume_failed",
                    video_id=video_id,
                    error=str(e),
                    audio_kept=str(existing_audio),
                )
                latest = await self._repository.get_content_item(resume_key) or item
                await self._repository.record_content_failure(latest, str(e))
                return TranscriptResult()

        for tier in (self._captions, self._transcript_api):
            result = await tier.get_transcript(video_id)
            if result is not None:
                return await self._complete(item, result)

        result = await self._download_and_transcribe(video_id, item)
        if result is not None:
            return result

        logger.error("transcript_all_methods_failed", video_id=video_id)
        return TranscriptResult()

    def _existing_audio(self, item: Optional[ContentItem]) -> Optional[Path]:
        if item is None or not item.processing_metadata.audio_path:
            return None
        path = Path(item.processing_metadata.audio_path)
        return path if path.exists() else None

    async def _download_and_transcribe(
        self,
        video_id: str,
        item: Optional[ContentItem],
    ) -> Optional[TranscriptResult]:
        audio_path: Optional[Path] = None
        try:
            if item is not None:
                item = await self._repository.transition_content(item, ContentStatus.AUDIO_DOWNLOADING)

            audio_path = await self._downloader.download(video_id)

            if item is not None:
                metadata = item.processing_metadata.model_copy(update={
                    "audio_path": str(audio_path),
                    "last_step": ContentStatus.AUDIO_DOWNLOADED.value,
                })
                item = await self._repository.transition_content(
                    item, ContentStatus.AUDIO_DOWNLOADED, processing_metadata=metadata
                )

            return await self._transcribe_audio(item, audio_path, "whisper_transcription_from_rapidapi")

        except _AUDIO_TIER_ERRORS as e:
            logger.error(
                "audio_transcription_failed",
                video_id=video_id,
                error=str(e),
                audio_kept=str(audio_path) if audio_path else None,
            )
            if item is not None:
                # The audio file is kept so the next attempt resumes from it
                latest = await self._repository.get_content_item_by_id(item.id) or item
                await self._repository.record_content_failure(latest, str(e))
            return None

    async def _transcribe_audio(
        self,
        item: Optional[ContentItem],
        audio_path: Path,
        provenance: str,
    ) -> TranscriptResult:
        if item is not None:
            item = await self._repository.transition_content(item, ContentStatus.TRANSCRIBING)

        transcript, segments = await self._whisper.transcribe(audio_path)
        result = TranscriptResult(
            transcript=transcript,
            segments=segments,
            provenance=provenance,
            source=TranscriptSource.WHISPER_TRANSCRIPTION,
        )
        result = await self._complete(item, result)

        audio_path.unlink(missing_ok=True)
        logger.debug("audio_removed_after_transcription", path=str(audio_path))
        return result

    async def _complete(
        self,
        item: Optional[ContentItem],
        result: TranscriptResult,
    ) -> TranscriptResult:
        """Record the winning tier and save the transcript on the item."""
        record_transcript_source(result.source.value)
        logger.info("transcript_acquired", **result.as_log_context())

        if item is not None:
            data = item.data.model_copy(update={
                "transcript": result.transcript,
                "transcript_segments": result.segments,
                "transcript_provenance": result.provenance,
            })
            metadata = item.processing_metadata.model_copy(update={
                "audio_path": None,
                "error": None,
                "last_step": ContentStatus.TRANSCRIBED.value,
                "transcript_length": len(result.transcript),
            })
            await self._repository.transition_content(
                item,
                ContentStatus.TRANSCRIBED,
                data=data,
                processing_metadata=metadata,
            )
        return result
