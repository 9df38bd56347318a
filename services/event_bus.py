"""
Simple Async Pub/Sub Event Bus

This module provides a lightweight publish/subscribe utility built on top of
asyncio queues. Session orchestrators publish their state changes on a
per-session topic and WebSocket handlers subscribe and forward them.

Publishing never awaits, so it can be called from the synchronous candle
callbacks of the stream manager.
"""

import asyncio
from typing import Any, Dict, DefaultDict, Set
from collections import defaultdict

from core.logging import get_logger


class EventBus:
    """
    Async event bus with topic-based pub/sub.

    - Each subscriber gets its own asyncio.Queue and will not block publishers.
    - Unsubscribing is important to avoid queue leaks when clients disconnect.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._topics: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._max_queue_size = max_queue_size
        self._logger = get_logger(__name__)

    def subscribe(self, topic: str) -> asyncio.Queue:
        """
        Subscribe to a topic. Returns an asyncio.Queue for receiving events.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._topics[topic].add(queue)
        self._logger.debug(f"Subscriber added to topic '{topic}'. total={len(self._topics[topic])}")
        return queue

    def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        """
        Unsubscribe a queue from a topic.
        """
        subscribers = self._topics.get(topic)
        if subscribers is None or queue not in subscribers:
            return

        subscribers.discard(queue)
        if not subscribers:
            del self._topics[topic]

        # Drain to allow GC
        while not queue.empty():
            queue.get_nowait()
        self._logger.debug(f"Subscriber removed from topic '{topic}'. total={len(subscribers)}")

    def publish(self, topic: str, event: Dict[str, Any]) -> None:
        """
        Publish an event to a topic. Drops events if subscriber queue is full.
        """
        subscribers = list(self._topics.get(topic, set()))
        if not subscribers:
            return

        for q in subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                # Drop event to avoid backpressure blocking
                self._logger.warning(f"Dropping event for topic '{topic}' due to full queue")

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))


# Singleton event bus for the application
bus = EventBus()
