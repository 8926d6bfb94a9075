"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, close_redis
from .stats_client import StatsClient, get_stats_client, close_stats_client

__all__ = ['get_redis', 'close_redis', 'StatsClient', 'get_stats_client', 'close_stats_client']
