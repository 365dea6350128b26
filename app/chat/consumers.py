"""
WebSocket consumer for realtime delivery.

One socket per client carries every topic the client subscribes to.

Consumers:
    RealtimeConsumer: Subscriptions, message actions and presence heartbeats

Authentication:
    JWTAuthMiddleware attaches the user to self.scope["user"]. Anonymous
    connections are closed with code 4001.

Channel Groups:
    Each topic maps to a channel-layer group (Topic.group_name). The
    consumer joins a group when the client subscribes and leaves it on
    unsubscribe or disconnect.

Actions (from client), each may carry a request_id that is echoed back:
    {"action": "subscribe", "topic": "room:<id>"}
    {"action": "unsubscribe", "topic": "room:<id>"}
    {"action": "heartbeat"}
    {"action": "send_message", "conversation_id": ..., "text": ..., "media": {...}}
    {"action": "mark_read", "conversation_id": ..., "message_id": ...}

Frames (to client):
    snapshot: {"type": "snapshot", "topic", "version", "sequence", "data"}
    delta:    {"type": "delta", "topic", "op", "version", "data"}
    ack:      {"type": "ack", "action", "request_id", "data"}
    error:    {"type": "error", "error": <category>, "request_id"}

Delivery:
    Channel-layer deltas are offered to the connection's
    SubscriptionRegistry by fanout_delta(). A separate pump task drains the
    registry and writes frames, so a slow socket only backs up its own
    bounded buffers.
"""

from __future__ import annotations

import asyncio
import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from core.exceptions import BaseApplicationError, ErrorCategory
from core.services import ServiceResult

from chat.constants import FANOUT_CONFIG
from chat.fanout import DeltaOp, Topic
from chat.middleware import JWT_SUBPROTOCOL
from chat.serializers import MessageSerializer
from chat.services import MessageService, PresenceService
from chat.snapshots import SnapshotService
from chat.subscriptions import Resync, SubscriptionRegistry

logger = logging.getLogger(__name__)


class RealtimeConsumer(AsyncJsonWebsocketConsumer):
    """
    Realtime socket for one authenticated user.

    Attributes:
        user: Authenticated user (after connect)
        registry: Per-connection SubscriptionRegistry
        pump_task: Task writing buffered deltas and resync snapshots
    """

    ACTIONS = {
        "subscribe": "_handle_subscribe",
        "unsubscribe": "_handle_unsubscribe",
        "heartbeat": "_handle_heartbeat",
        "send_message": "_handle_send_message",
        "mark_read": "_handle_mark_read",
    }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user = None
        self.registry: SubscriptionRegistry | None = None
        self.pump_task: asyncio.Task | None = None
        self._wakeup: asyncio.Event | None = None

    @classmethod
    async def decode_json(cls, text_data):
        try:
            return json.loads(text_data)
        except ValueError:
            return None

    async def connect(self):
        user = self.scope.get("user")
        if not user or not user.is_authenticated:
            logger.warning("Rejected unauthenticated realtime connection")
            await self.close(code=FANOUT_CONFIG.CLOSE_CODE_UNAUTHENTICATED)
            return

        self.user = user
        self.registry = SubscriptionRegistry()
        self._wakeup = asyncio.Event()
        await database_sync_to_async(PresenceService.heartbeat)(user.pk)

        subprotocol = (
            JWT_SUBPROTOCOL
            if JWT_SUBPROTOCOL in self.scope.get("subprotocols", [])
            else None
        )
        await self.accept(subprotocol=subprotocol)

        self.pump_task = asyncio.create_task(self._pump())
        logger.info(f"User {user.pk} connected to realtime socket")

    async def disconnect(self, close_code):
        if self.pump_task is not None:
            self.pump_task.cancel()
            try:
                await self.pump_task
            except asyncio.CancelledError:
                pass
            self.pump_task = None

        if self.registry is not None:
            for topic in self.registry.topics:
                await self.channel_layer.group_discard(topic.group_name, self.channel_name)
            self.registry.close()

        if self.user is not None:
            await database_sync_to_async(PresenceService.explicit_disconnect)(self.user.pk)
            logger.info(f"User {self.user.pk} disconnected ({close_code})")

    async def receive_json(self, content, **kwargs):
        request_id = content.get("request_id") if isinstance(content, dict) else None
        action = content.get("action") if isinstance(content, dict) else None
        handler_name = self.ACTIONS.get(action)

        if handler_name is None:
            await self._send_error(ErrorCategory.VALIDATION, request_id)
            return

        try:
            result = await getattr(self, handler_name)(content)
        except BaseApplicationError as exc:
            result = ServiceResult.from_error(exc)

        if not result.success:
            logger.debug(
                f"Action {action} by {self.user.pk} failed: "
                f"{result.error_code} ({result.error})"
            )
            await self._send_error(result.category, request_id)
            return

        await self.send_json(
            {
                "type": "ack",
                "action": action,
                "request_id": request_id,
                "data": result.data,
            }
        )

    # ==========================================================================
    # Channel layer handlers
    # ==========================================================================

    async def fanout_delta(self, event):
        """Handle fanout.delta events published by FanoutService."""
        if self.registry is None:
            return
        self.registry.offer(event)
        if self.registry.has_pending():
            self._wakeup.set()

    # ==========================================================================
    # Actions
    # ==========================================================================

    async def _handle_subscribe(self, content) -> ServiceResult:
        topic = Topic.parse(content.get("topic"))

        existing = self.registry.get(topic)
        if existing is not None:
            # Re-subscribing asks for a fresh snapshot
            existing.request_resync()
            self._wakeup.set()
            return ServiceResult.success({"topic": str(topic)})

        subscription = self.registry.add(topic)
        # Join before reading the snapshot version so no delta falls between
        await self.channel_layer.group_add(topic.group_name, self.channel_name)
        try:
            snapshot = await database_sync_to_async(SnapshotService.build)(topic, self.user)
        except BaseApplicationError:
            self.registry.remove(topic)
            await self.channel_layer.group_discard(topic.group_name, self.channel_name)
            raise

        await self.send_json({"type": "snapshot", **snapshot})
        subscription.prime(snapshot["version"], snapshot["sequence"])
        if self.registry.has_pending():
            self._wakeup.set()

        logger.debug(f"User {self.user.pk} subscribed to {topic}")
        return ServiceResult.success({"topic": str(topic)})

    async def _handle_unsubscribe(self, content) -> ServiceResult:
        topic = Topic.parse(content.get("topic"))
        await self._drop_subscription(topic)
        return ServiceResult.success({"topic": str(topic)})

    async def _handle_heartbeat(self, content) -> ServiceResult:
        await database_sync_to_async(PresenceService.heartbeat)(self.user.pk)
        return ServiceResult.success({})

    async def _handle_send_message(self, content) -> ServiceResult:
        return await self._append_message(
            content.get("conversation_id"),
            content.get("text") or "",
            content.get("media"),
        )

    async def _handle_mark_read(self, content) -> ServiceResult:
        result = await database_sync_to_async(MessageService.mark_read)(
            content.get("conversation_id"),
            content.get("message_id"),
            self.user,
        )
        return result.map(
            lambda message: {"message_id": message.id, "sequence": message.sequence}
        )

    @database_sync_to_async
    def _append_message(self, conversation_id, text, media) -> ServiceResult:
        result = MessageService.append_message(conversation_id, self.user, text=text, media=media)
        return result.map(lambda message: dict(MessageSerializer(message).data))

    # ==========================================================================
    # Delivery pump
    # ==========================================================================

    async def _pump(self):
        """Write buffered deltas and resync snapshots until cancelled."""
        try:
            while True:
                await self._wakeup.wait()
                self._wakeup.clear()

                for item in self.registry.drain():
                    if isinstance(item, Resync):
                        await self._resync(item)
                    else:
                        await self._deliver(item)

                if self.registry.has_pending():
                    self._wakeup.set()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Delivery pump for user {self.user.pk} failed")
            await self.close()

    async def _deliver(self, delta):
        await self.send_json(
            {
                "type": "delta",
                "topic": delta["topic"],
                "op": delta["op"],
                "version": delta["version"],
                "data": delta["data"],
            }
        )

        # Access ends with the conversation, or when this user leaves it
        topic = Topic.parse(delta["topic"])
        if delta["op"] == DeltaOp.DELETED:
            await self._drop_subscription(topic)
        elif delta["op"] == DeltaOp.MEMBERSHIP and delta["data"].get("action") == "left":
            if str((delta["data"].get("user") or {}).get("id")) == str(self.user.pk):
                await self._drop_subscription(topic)

    async def _resync(self, item: Resync):
        subscription = self.registry.get(item.topic)
        if subscription is None:
            return

        try:
            snapshot = await database_sync_to_async(SnapshotService.build)(
                item.topic, self.user, item.since_sequence
            )
        except BaseApplicationError as exc:
            logger.info(f"Dropping {item.topic} for user {self.user.pk}: {exc.error_code}")
            await self._drop_subscription(item.topic)
            await self.send_json(
                {"type": "error", "error": exc.category, "topic": str(item.topic)}
            )
            return

        # Unsubscribed while the snapshot was being built
        if self.registry.get(item.topic) is not subscription:
            return

        await self.send_json({"type": "snapshot", **snapshot})
        subscription.prime(snapshot["version"], snapshot["sequence"])

    async def _drop_subscription(self, topic: Topic):
        if self.registry.remove(topic):
            await self.channel_layer.group_discard(topic.group_name, self.channel_name)
            logger.debug(f"User {self.user.pk} unsubscribed from {topic}")

    async def _send_error(self, category: str | None, request_id=None):
        await self.send_json(
            {
                "type": "error",
                "error": category or ErrorCategory.INTERNAL,
                "request_id": request_id,
            }
        )
