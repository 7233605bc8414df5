"""Platform collectors keyed by content source.

YouTube and X collectors register themselves for their ``SourceType``;
``build_collectors`` instantiates one collector per platform for the
content pipeline.
"""

from typing import TYPE_CHECKING, Any, Mapping

import structlog

from src.models.schemas import SourceType

if TYPE_CHECKING:
    from src.collectors.base import BaseCollector

logger = structlog.get_logger(__name__)

_collectors: dict[SourceType, type["BaseCollector"]] = {}


def register_collector(source_type: SourceType):
    """Register a collector class as the handler for ``source_type``.

    Example:
        @register_collector(SourceType.YOUTUBE)
        class YouTubeCollector(BaseCollector):
            ...
    """

    def decorator(cls: type["BaseCollector"]):
        if source_type in _collectors and _collectors[source_type] is not cls:
            logger.warning(
                "collector_replaced",
                source_type=source_type.value,
                previous=_collectors[source_type].__name__,
                collector=cls.__name__,
            )
        _collectors[source_type] = cls
        return cls

    return decorator


def get_collector(source_type: SourceType, **kwargs: Any) -> "BaseCollector":
    """Instantiate the collector registered for ``source_type``.

    Raises:
        ValueError: If no collector handles the platform.
    """
    try:
        collector_cls = _collectors[source_type]
    except KeyError:
        raise ValueError(f"No collector registered for {source_type.value}") from None
    return collector_cls(**kwargs)


def build_collectors(
    options: Mapping[SourceType, dict[str, Any]],
) -> dict[SourceType, "BaseCollector"]:
    """One collector per platform, built from per-platform constructor arguments."""
    return {source_type: get_collector(source_type, **kwargs) for source_type, kwargs in options.items()}


def list_collectors() -> list[SourceType]:
    return list(_collectors)
