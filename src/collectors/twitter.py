"""Twitter/X collector through the RapidAPI ``twitter241`` API.

Endpoints:
    tweets/{tweet_id}               single tweet
    users/by/username/{username}    user id lookup
    users/{user_id}/tweets          newest tweets of a user
"""

from datetime import datetime
from typing import Any, Optional

import structlog

from src.collectors.base import BaseCollector, SourceItem
from src.collectors.registry import register_collector
from src.core.exceptions import CollectorNotFoundError
from src.models.schemas import SourceType

logger = structlog.get_logger(__name__)

TWITTER_API_HOST = "twitter241.p.rapidapi.com"
TWITTER_API_BASE = f"https://{TWITTER_API_HOST}/api/v2"

TITLE_LENGTH = 100
LEGACY_DATE_FORMAT = "%a %b %d %H:%M:%S %z %Y"


def status_url(tweet_id: str) -> str:
    return f"https://twitter.com/i/status/{tweet_id}"


def _created_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(value, LEGACY_DATE_FORMAT)
    except ValueError:
        return None


def tweet_to_item(tweet: dict[str, Any]) -> SourceItem:
    """Normalize a tweet payload; the text doubles as title and description."""
    tweet_id = str(tweet["id"])
    text = tweet.get("text") or ""
    return SourceItem(
        source_type=SourceType.TWITTER,
        source_id=tweet_id,
        source_url=status_url(tweet_id),
        title=text[:TITLE_LENGTH],
        description=text,
        published_at=_created_at(tweet.get("created_at")),
    )


@register_collector(SourceType.TWITTER)
class TwitterCollector(BaseCollector):
    """Tweets and user timelines from twitter241."""

    source_name = "twitter241"
    source_type = SourceType.TWITTER

    def __init__(self, rapidapi_key: Optional[str] = None, **kwargs):
        kwargs.setdefault("base_url", TWITTER_API_BASE)
        kwargs.setdefault("headers", {
            "X-RapidAPI-Key": rapidapi_key or "",
            "X-RapidAPI-Host": TWITTER_API_HOST,
        })
        super().__init__(**kwargs)

    async def get_tweet(self, tweet_id: str) -> Optional[dict[str, Any]]:
        data = await self._request("GET", f"tweets/{tweet_id}", operation="get_tweet")
        tweet = data.get("data")
        if not tweet:
            return None
        return {"id": tweet_id, **tweet}

    async def get_user_id(self, username: str) -> str:
        """Resolve a username (with or without ``@``) to a user id.

        Raises:
            CollectorNotFoundError: If the user does not exist.
        """
        handle = username.lstrip("@")
        data = await self._request("GET", f"users/by/username/{handle}", operation="get_user")
        user = data.get("data") or {}
        if not user.get("id"):
            raise CollectorNotFoundError(self.source_name, f"Twitter user not found: {handle}")
        return str(user["id"])

    async def get_user_tweets(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"users/{user_id}/tweets",
            params={"max_results": limit},
            operation="get_user_tweets",
        )
        return [t for t in (data.get("data") or []) if t.get("id")]

    async def fetch_item(self, source_id: str) -> Optional[SourceItem]:
        tweet = await self.get_tweet(source_id)
        if tweet is None:
            logger.warning("tweet_not_found", tweet_id=source_id)
            return None
        return tweet_to_item(tweet)

    async def list_recent(self, external_id: str, limit: int) -> list[SourceItem]:
        user_id = await self.get_user_id(external_id)
        tweets = await self.get_user_tweets(user_id, limit)
        logger.info("tweets_listed", username=external_id, tweets=len(tweets))
        return [tweet_to_item(t) for t in tweets[:limit]]
