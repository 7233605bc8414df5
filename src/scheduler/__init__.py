"""
Scheduling.

- channels: ``ChannelCollectionService`` sweeps of due channels
- scheduler: ``PipelineScheduler`` periodic jobs and the job log
"""

from src.scheduler.channels import ChannelCollectionService, is_channel_due, matches_keywords
from src.scheduler.scheduler import JOB_DEFINITIONS, JobDefinition, PipelineScheduler

__all__ = [
    "JOB_DEFINITIONS",
    "ChannelCollectionService",
    "JobDefinition",
    "PipelineScheduler",
    "is_channel_due",
    "matches_keywords",
]
