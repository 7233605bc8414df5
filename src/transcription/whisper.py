"""Speech-to-text through the OpenAI Whisper API.

Rate limits (HTTP 429) are retried with a 60s x 2^attempt backoff, or the
server's ``retry-after`` when it sends one. Any other error propagates.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import structlog
from openai import AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from src.core.exceptions import AudioTooLargeError
from src.models.schemas import TranscriptSegment

logger = structlog.get_logger(__name__)

WHISPER_MODEL = "whisper-1"
MAX_UPLOAD_MB = 25.0


def _retry_after_seconds(error: Optional[BaseException]) -> Optional[float]:
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class WhisperTranscriber:
    """Uploads audio files to Whisper and returns timed segments."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        *,
        api_key: Optional[str] = None,
        max_retries: int = 3,
        rate_limit_base_delay: float = 60.0,
        timeout: float = 300.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self._api_key = api_key
        self._max_retries = max_retries
        self._base_delay = rate_limit_base_delay
        self._timeout = timeout
        self._sleep = sleep

    def _get_client(self) -> AsyncOpenAI:
        # SDK retries are off; transcribe() owns the backoff
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, max_retries=0)
        return self._client

    def _rate_limit_wait(self, retry_state) -> float:
        retry_after = _retry_after_seconds(retry_state.outcome.exception())
        if retry_after is not None:
            return retry_after
        return self._base_delay * 2 ** (retry_state.attempt_number - 1)

    async def _upload(self, path: Path):
        with path.open("rb") as audio_file:
            return await self._get_client().audio.transcriptions.create(
                model=WHISPER_MODEL,
                file=audio_file,
                response_format="verbose_json",
                timeout=self._timeout,
            )

    async def transcribe(self, path: Path) -> tuple[str, list[TranscriptSegment]]:
        """Transcribe an audio file.

        Args:
            path: Local audio file.

        Returns:
            The transcript text and its timed segments.

        Raises:
            AudioTooLargeError: If the file exceeds the 25 MB upload limit.
            RateLimitError: If still rate limited after all retries.
        """
        path = Path(path)
        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb > MAX_UPLOAD_MB:
            raise AudioTooLargeError(str(path), size_mb, MAX_UPLOAD_MB)

        logger.info("whisper_upload_started", path=str(path), size_mb=round(size_mb, 2))

        response = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RateLimitError),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=self._rate_limit_wait,
            sleep=self._sleep,
            before_sleep=lambda rs: logger.warning(
                "whisper_rate_limited",
                attempt=rs.attempt_number,
                max_retries=self._max_retries,
                wait_seconds=rs.next_action.sleep,
            ),
            reraise=True,
        ):
            with attempt:
                response = await self._upload(path)

        segments = [
            TranscriptSegment(start=seg.start, end=seg.end, text=seg.text.strip())
            for seg in (getattr(response, "segments", None) or [])
        ]
        logger.info("whisper_transcription_complete", path=str(path), transcript_length=len(response.text))
        return response.text, segments
