"""
Unified inbox: aggregation, identity resolution and related-message gathering.
"""

from .aggregator import ChannelAggregator
from .identity_resolver import UserMappingService, find_mapping, resolve, sender_matches
from .related_messages import RelatedMessageGatherer

__all__ = [
    "ChannelAggregator",
    "RelatedMessageGatherer",
    "UserMappingService",
    "find_mapping",
    "resolve",
    "sender_matches",
]
