# -*- coding: utf-8 -*-
"""
Redis-backed daily snapshot store.

Shares computed daily snapshots between the collector process and the
dashboard process. Each snapshot is stored as JSON under a key scoped to
its device and to the local day it was computed on, so a snapshot from
yesterday is never served after midnight. Entries expire after the
refresh interval.
"""

import datetime
import json
import logging
import math
import time
from typing import Any, Callable, Mapping, Optional

from ShellyFlow.models import (
    DailySnapshot,
    DailyTotals,
    EfficiencyRatio,
    FlowBreakdown,
    FlowEdge,
    FlowGraph,
    FlowMode,
    FlowNode,
    GridDirection,
    NodeId,
    VisualEncoding,
)
from ShellyFlow.settings import EngineSettings
from ShellyFlow.utils import to_publish_dict
from .cache_repository import CacheRepository

try:
    import redis
    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False
    redis = None

logger = logging.getLogger(__name__)


def snapshot_to_json(snapshot: DailySnapshot) -> str:
    """Serialize a DailySnapshot using the publish-safe structure."""
    return json.dumps(to_publish_dict(snapshot))


def _node(data: Mapping) -> FlowNode:
    direction = data.get('direction')
    return FlowNode(
        NodeId(data['node_id']),
        data['magnitude'],
        GridDirection(direction) if direction else None
    )


def _edge_key(text: str):
    source, target = text.split('->')
    return NodeId(source), NodeId(target)


def snapshot_from_json(payload) -> DailySnapshot:
    """
    Rebuild a DailySnapshot written by snapshot_to_json.

    Raises:
        ValueError: If the payload is not JSON or holds unknown enum values
        KeyError: If a field is missing
        TypeError: If a field has the wrong shape
    """
    data = json.loads(payload)
    graph = data['graph']
    encoding = data['encoding']

    return DailySnapshot(
        config_id=data['config_id'],
        computed_at=data['computed_at'],
        totals=DailyTotals(**data['totals']),
        graph=FlowGraph(
            mode=FlowMode(graph['mode']),
            nodes={NodeId(key): _node(node) for key, node in graph['nodes'].items()},
            edges=[
                FlowEdge(NodeId(edge['source']), NodeId(edge['target']), edge['magnitude'])
                for edge in graph['edges']
            ],
            breakdown=FlowBreakdown(**graph['breakdown']),
        ),
        ratios=EfficiencyRatio(**data['ratios']),
        encoding=VisualEncoding(
            node_gauges={NodeId(key): value for key, value in encoding['node_gauges'].items()},
            node_arc_angles={NodeId(key): value for key, value in encoding['node_arc_angles'].items()},
            edge_widths={_edge_key(key): value for key, value in encoding['edge_widths'].items()},
            home_pv_share=encoding['home_pv_share'],
            home_grid_share=encoding['home_grid_share'],
        ),
    )


def local_day(epoch: float) -> str:
    """Local calendar day of an epoch timestamp, e.g. '2026-03-14'."""
    return datetime.datetime.fromtimestamp(epoch).date().isoformat()


class RedisCacheRepository(CacheRepository):
    """
    Redis-backed daily snapshot store.

    Only DailySnapshot values are accepted. A snapshot is written under
    the day of its ``computed_at`` and read back under the current day.

    Example:
        >>> import redis
        >>> redis_client = redis.Redis(host='localhost', port=6379, db=0)
        >>> cache = RedisCacheRepository(redis_client, EngineSettings())
        >>> cache.set('dailySnapshot_abc', snapshot)
        >>> cache.get('dailySnapshot_abc')
    """

    def __init__(self, redis_client: 'redis.Redis', settings: Optional[EngineSettings] = None,
                 key_prefix: str = 'shellyflow', clock: Callable[[], float] = time.time):
        """
        Initialize the snapshot store.

        Args:
            redis_client: Redis client instance
            settings: Engine settings; the refresh interval becomes the TTL
            key_prefix: Prefix for all keys (default: 'shellyflow')
            clock: Epoch clock used to pick the current day

        Raises:
            ImportError: If redis-py is not installed
            redis.ConnectionError: If cannot connect to Redis
        """
        if not REDIS_AVAILABLE:
            raise ImportError(
                "redis-py is not installed. Install with: pip install redis"
            )

        self.redis = redis_client
        self.settings = settings or EngineSettings()
        self.key_prefix = key_prefix
        self.clock = clock
        # setex needs a whole number of seconds, at least one
        self.ttl = max(1, math.ceil(self.settings.refresh_interval))

        try:
            self.redis.ping()
            logger.info(f"RedisCacheRepository initialized with prefix '{key_prefix}', ttl {self.ttl}s")
        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    def _make_key(self, key: str, day: Optional[str] = None) -> str:
        return f"{self.key_prefix}:{key}:{day or local_day(self.clock())}"

    def get(self, key: str) -> Optional[DailySnapshot]:
        """
        Today's snapshot for a key. Read and decode failures are logged
        and treated as a miss.
        """
        redis_key = self._make_key(key)

        try:
            payload = self.redis.get(redis_key)
            if payload is None:
                return None

            snapshot = snapshot_from_json(payload)
            logger.debug(f"Redis snapshot hit: {redis_key}")
            return snapshot

        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to decode Redis snapshot {redis_key}: {e}")
            return None
        except redis.RedisError as e:
            logger.error(f"Redis error getting {redis_key}: {e}")
            return None

    def set(self, key: str, value: Any) -> None:
        """
        Store a snapshot under the day it was computed on.

        Args:
            key: Snapshot key (e.g. 'dailySnapshot_<config_id>')
            value: DailySnapshot to store

        Raises:
            TypeError: If value is not a DailySnapshot
            redis.RedisError: If Redis operation fails
        """
        if not isinstance(value, DailySnapshot):
            raise TypeError(f"RedisCacheRepository stores DailySnapshot values, got {type(value).__name__}")

        redis_key = self._make_key(key, local_day(value.computed_at))

        try:
            self.redis.setex(redis_key, self.ttl, snapshot_to_json(value))
            logger.debug(f"Redis snapshot written: {redis_key}")
        except redis.RedisError as e:
            logger.error(f"Redis error setting {redis_key}: {e}")
            raise

    def exists(self, key: str) -> bool:
        redis_key = self._make_key(key)

        try:
            return self.redis.exists(redis_key) > 0
        except redis.RedisError as e:
            logger.error(f"Redis error checking existence of {redis_key}: {e}")
            return False

    def delete(self, key: str) -> None:
        redis_key = self._make_key(key)

        try:
            if self.redis.delete(redis_key):
                logger.debug(f"Redis snapshot deleted: {redis_key}")
        except redis.RedisError as e:
            logger.error(f"Redis error deleting {redis_key}: {e}")
            raise

    def clear(self, key: Optional[str] = None) -> None:
        """
        Remove stored snapshots for every day, either for one key or for
        all of them.
        """
        search_pattern = f"{self.key_prefix}:{key or '*'}:*"

        try:
            cursor = 0
            while True:
                cursor, keys = self.redis.scan(cursor, match=search_pattern, count=100)

                if keys:
                    self.redis.delete(*keys)
                    logger.debug(f"Cleared {len(keys)} Redis snapshots")

                if cursor == 0:
                    break

        except redis.RedisError as e:
            logger.error(f"Redis error clearing snapshots: {e}")
            raise
