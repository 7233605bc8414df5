"""
Transcript acquisition.

- captions: Caption scraping from the watch page
- transcript_api: youtube-transcript-api lookups
- audio: RapidAPI audio conversion and download
- whisper: OpenAI Whisper speech-to-text
- service: ``TranscriptionService`` fallback chain and temp-file janitor
"""

from src.transcription.audio import AudioDownloader
from src.transcription.captions import CaptionScraper
from src.transcription.service import TranscriptionService, extract_video_id
from src.transcription.transcript_api import TranscriptApiSource
from src.transcription.whisper import WhisperTranscriber

__all__ = [
    "AudioDownloader",
    "CaptionScraper",
    "TranscriptApiSource",
    "TranscriptionService",
    "WhisperTranscriber",
    "extract_video_id",
]
