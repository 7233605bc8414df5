"""
Content Source Integrations.

This module contains collectors for gathering content from forecasters'
channels:

- youtube: YouTube Data API (video snippets, channel uploads)
- twitter: twitter241 RapidAPI (tweets, user timelines)
- content: ``ContentCollector`` storing items and driving them through
  transcription, extraction and prediction storage

Collectors follow a common interface with async methods:
- fetch_item(): Fetch one item by platform id
- list_recent(): List the newest items of a channel or account

Example:
    from src.collectors import YouTubeCollector

    async with YouTubeCollector(api_key=key) as youtube:
        videos = await youtube.list_recent("UC_x5XG1OV2P6uZZ5FSM9Ttw", limit=10)
"""

from src.collectors.base import BaseCollector, SourceItem
from src.collectors.content import ContentCollector, order_for_processing, parse_content_url
from src.collectors.registry import build_collectors, get_collector, list_collectors
from src.collectors.twitter import TwitterCollector
from src.collectors.youtube import YouTubeCollector

__all__ = [
    "BaseCollector",
    "ContentCollector",
    "SourceItem",
    "TwitterCollector",
    "YouTubeCollector",
    "build_collectors",
    "get_collector",
    "list_collectors",
    "order_for_processing",
    "parse_content_url",
]
