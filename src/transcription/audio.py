"""Audio download through the RapidAPI ``youtube-mp36`` converter.

The converter works asynchronously: the first calls for a video usually
report ``processing`` and must be polled until the MP3 link is ready.

Flow:
    GET https://youtube-mp36.p.rapidapi.com/dl?id={video_id}
      status "processing" -> wait 15s x 1.2^attempt, poll again (10 retries)
      status "fail"       -> AudioConversionError
      status "ok" + link  -> download MP3 to {temp_dir}/{video_id}.mp3
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from src.core.exceptions import AudioConversionError, AudioConversionPendingError
from src.core.http_source import HttpSource

logger = structlog.get_logger(__name__)

RAPIDAPI_MP3_HOST = "youtube-mp36.p.rapidapi.com"

DOWNLOAD_HEADERS = {
    "Referer": "https://ytjar.xyz/",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "audio/mpeg,audio/x-wav,audio/webm,audio/ogg,audio/*,*/*;q=0.1",
}

POLL_BACKOFF_FACTOR = 1.2


class AudioDownloader(HttpSource):
    """Converts a video to MP3 and stores it in the temp audio directory."""

    source_name = "rapidapi_audio"

    def __init__(
        self,
        rapidapi_key: str,
        temp_dir: Path,
        *,
        poll_base_delay: float = 15.0,
        poll_max_retries: int = 10,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        **kwargs,
    ):
        """Initialize the downloader.

        Args:
            rapidapi_key: RapidAPI key.
            temp_dir: Directory for downloaded audio, shared and keyed by video id.
            poll_base_delay: Seconds before the first re-poll.
            poll_max_retries: Re-polls allowed while the converter is processing.
            sleep: Awaitable sleep used between polls.
        """
        kwargs.setdefault("base_url", f"https://{RAPIDAPI_MP3_HOST}")
        super().__init__(**kwargs)
        # Sent only to the converter, never to the CDN serving the MP3
        self._rapidapi_headers = {
            "X-RapidAPI-Key": rapidapi_key,
            "X-RapidAPI-Host": RAPIDAPI_MP3_HOST,
        }
        self._temp_dir = Path(temp_dir)
        self._poll_base_delay = poll_base_delay
        self._poll_max_retries = poll_max_retries
        self._sleep = sleep

    def audio_path(self, video_id: str) -> Path:
        return self._temp_dir / f"{video_id}.mp3"

    def _poll_wait(self, retry_state) -> float:
        return self._poll_base_delay * POLL_BACKOFF_FACTOR ** (retry_state.attempt_number - 1)

    async def _request_conversion(self, video_id: str) -> dict[str, Any]:
        result = await self._request(
            "GET",
            "dl",
            params={"id": video_id},
            headers=self._rapidapi_headers,
            operation="convert",
        )
        status = result.get("status")

        if status == "processing":
            raise AudioConversionPendingError(
                "Audio conversion still processing",
                {"video_id": video_id, "progress": result.get("progress"), "msg": result.get("msg")},
            )
        if status == "fail":
            raise AudioConversionError(
                f"Audio conversion failed: {result.get('msg', 'unknown reason')}",
                {"video_id": video_id},
            )
        if status == "ok" and result.get("link"):
            return result
        raise AudioConversionError(
            f"Audio conversion returned unexpected status: {status}",
            {"video_id": video_id, "response": result},
        )

    async def get_download_link(self, video_id: str) -> dict[str, Any]:
        """Poll the converter until the MP3 link is ready.

        Raises:
            AudioConversionPendingError: Still processing after all retries.
            AudioConversionError: Converter failure or unexpected status.
        """
        result: dict[str, Any] = {}
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(AudioConversionPendingError),
            stop=stop_after_attempt(self._poll_max_retries + 1),
            wait=self._poll_wait,
            sleep=self._sleep,
            before_sleep=lambda rs: logger.info(
                "audio_conversion_pending",
                video_id=video_id,
                attempt=rs.attempt_number,
                max_retries=self._poll_max_retries,
                wait_seconds=round(rs.next_action.sleep, 1),
            ),
            reraise=True,
        ):
            with attempt:
                result = await self._request_conversion(video_id)

        logger.info(
            "audio_conversion_ready",
            video_id=video_id,
            title=result.get("title"),
            duration=result.get("duration"),
            filesize=result.get("filesize"),
        )
        return result

    async def download(self, video_id: str) -> Path:
        """Convert and download the audio for a video.

        Returns:
            Path of the saved MP3.
        """
        result = await self.get_download_link(video_id)
        content = await self._request(
            "GET",
            result["link"],
            headers=DOWNLOAD_HEADERS,
            response_type="bytes",
            operation="download",
        )

        self._temp_dir.mkdir(parents=True, exist_ok=True)
        path = self.audio_path(video_id)
        await asyncio.to_thread(path.write_bytes, content)
        logger.info("audio_downloaded", video_id=video_id, path=str(path), size_bytes=len(content))
        return path
