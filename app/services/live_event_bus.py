"""
Redis-backed fan-out of fixture snapshots between API processes.

WebSocket viewers are attached to one process, operators may hit any other.
Each process publishes the snapshots it builds to one Pub/Sub channel and
hands snapshots published by the other processes to its own viewers.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

FIXTURE_MESSAGE_TYPE = "fixture"

SnapshotHandler = Callable[[int, dict[str, Any]], Awaitable[Any]]

_SENDER_ID = uuid.uuid4().hex
_redis: Redis | None = None


def _get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is None:
        return
    try:
        await _redis.close()
    finally:
        _redis = None


def encode_fixture_message(fixture_id: int, data: dict[str, Any]) -> str:
    payload = {
        "type": FIXTURE_MESSAGE_TYPE,
        "fixture_id": fixture_id,
        "sender_id": _SENDER_ID,
        "data": data,
    }
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def decode_fixture_message(raw: str | bytes | None) -> tuple[int, dict[str, Any]] | None:
    """
    Parse a bus payload into ``(fixture_id, snapshot)``.

    Returns None for anything that is not a fixture snapshot from another
    process: garbage, other message types, or our own publications.
    """
    if not raw:
        return None
    try:
        message = json.loads(raw)
    except ValueError:
        logger.warning("Failed to decode live message: %r", raw)
        return None

    if not isinstance(message, dict) or message.get("type") != FIXTURE_MESSAGE_TYPE:
        return None
    if message.get("sender_id") == _SENDER_ID:
        return None

    fixture_id = message.get("fixture_id")
    data = message.get("data")
    if isinstance(fixture_id, bool) or not isinstance(fixture_id, int) or not isinstance(data, dict):
        return None
    return fixture_id, data


async def publish_fixture_snapshot(fixture_id: int, data: dict[str, Any]) -> None:
    """
    Publish a JSON-ready fixture snapshot for the other API processes.

    No-op when the bus is disabled in settings.
    """
    if not settings.live_bus_enabled:
        return
    await _get_redis().publish(settings.live_events_channel, encode_fixture_message(fixture_id, data))


async def listen_fixture_snapshots(
    handler: SnapshotHandler,
    *,
    stop_event: asyncio.Event,
    reconnect_delay_seconds: float = 2.0,
) -> None:
    """
    Call ``handler(fixture_id, snapshot)`` for every snapshot published by
    another process. Resubscribes after Redis failures until stop_event is set.
    """
    channel = settings.live_events_channel
    if not settings.live_bus_enabled:
        logger.info("Live bus disabled, not subscribing to %s", channel)
        return

    while not stop_event.is_set():
        pubsub = None
        try:
            pubsub = _get_redis().pubsub()
            await pubsub.subscribe(channel)
            logger.info("Subscribed to Redis live channel: %s", channel)

            async for msg in pubsub.listen():
                if stop_event.is_set():
                    break
                if not isinstance(msg, dict) or msg.get("type") != "message":
                    continue

                parsed = decode_fixture_message(msg.get("data"))
                if parsed is None:
                    continue

                fixture_id, data = parsed
                try:
                    await handler(fixture_id, data)
                except Exception:
                    logger.exception("Snapshot handler failed for fixture %s", fixture_id)

        except asyncio.CancelledError:
            break
        except RedisError as e:
            logger.warning("Redis live subscription error: %s", e)
            await asyncio.sleep(reconnect_delay_seconds)
        except Exception as e:
            logger.exception("Unexpected live subscription error: %s", e)
            await asyncio.sleep(reconnect_delay_seconds)
        finally:
            if pubsub is not None:
                with suppress(RedisError, OSError):
                    await pubsub.unsubscribe(channel)
                with suppress(RedisError, OSError):
                    await pubsub.close()
