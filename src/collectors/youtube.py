"""YouTube Data API v3 collector.

Endpoints:
    videos?part=snippet&id={video_id}                 video title/description
    channels?part=contentDetails&id={channel_id}      uploads playlist id
    playlistItems?part=snippet&playlistId={uploads}   newest uploads

API Reference: https://developers.google.com/youtube/v3/docs
"""

from datetime import datetime
from typing import Any, Optional

import structlog

from src.collectors.base import BaseCollector, SourceItem
from src.collectors.registry import register_collector
from src.core.exceptions import CollectorNotFoundError
from src.models.schemas import SourceType

logger = structlog.get_logger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"


def watch_url(video_id: str) -> str:
    return f"https://youtube.com/watch?v={video_id}"


def _published(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@register_collector(SourceType.YOUTUBE)
class YouTubeCollector(BaseCollector):
    """Video snippets and channel uploads from the YouTube Data API."""

    source_name = "youtube_data_api"
    source_type = SourceType.YOUTUBE

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        kwargs.setdefault("base_url", YOUTUBE_API_BASE)
        super().__init__(**kwargs)
        self._api_key = api_key

    async def _get(self, endpoint: str, params: dict[str, Any], operation: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            endpoint,
            params={**params, "key": self._api_key},
            operation=operation,
        )

    @staticmethod
    def to_source_item(video_id: str, snippet: dict[str, Any]) -> SourceItem:
        return SourceItem(
            source_type=SourceType.YOUTUBE,
            source_id=video_id,
            source_url=watch_url(video_id),
            title=snippet.get("title") or "",
            description=snippet.get("description") or "",
            published_at=_published(snippet.get("publishedAt")),
        )

    async def fetch_item(self, source_id: str) -> Optional[SourceItem]:
        data = await self._get("videos", {"part": "snippet", "id": source_id}, "get_video")
        items = data.get("items") or []
        if not items:
            logger.warning("youtube_video_not_found", video_id=source_id)
            return None
        return self.to_source_item(source_id, items[0].get("snippet") or {})

    async def get_uploads_playlist(self, channel_id: str) -> str:
        """Get the uploads playlist id of a channel.

        Raises:
            CollectorNotFoundError: If the channel does not exist.
        """
        data = await self._get(
            "channels", {"part": "contentDetails", "id": channel_id}, "get_channel"
        )
        items = data.get("items") or []
        uploads = (
            items[0].get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")
            if items else None
        )
        if not uploads:
            raise CollectorNotFoundError(self.source_name, f"YouTube channel not found: {channel_id}")
        return uploads

    async def list_recent(self, external_id: str, limit: int) -> list[SourceItem]:
        uploads = await self.get_uploads_playlist(external_id)
        data = await self._get(
            "playlistItems",
            {"part": "snippet", "playlistId": uploads, "maxResults": limit},
            "list_uploads",
        )

        videos = []
        for entry in data.get("items") or []:
            snippet = entry.get("snippet") or {}
            video_id = (snippet.get("resourceId") or {}).get("videoId")
            if video_id:
                videos.append(self.to_source_item(video_id, snippet))

        logger.info("youtube_uploads_listed", channel_id=external_id, videos=len(videos))
        return videos
