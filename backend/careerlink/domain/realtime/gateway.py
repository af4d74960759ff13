"""Socket gateway: connection lifecycle and command dispatch."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import socketio
from redis.exceptions import RedisError

from careerlink.domain.chat.pipeline import MessagePipeline
from careerlink.domain.chat.reconciliation import ReadReconciler
from careerlink.domain.chat.service import ChatService
from careerlink.domain.chat.store import ChatStore
from careerlink.domain.notifications.policy import GroupingPolicy
from careerlink.domain.notifications.service import NotificationEngine
from careerlink.domain.notifications.store import NotificationStore
from careerlink.domain.realtime import commands, events
from careerlink.domain.realtime.activity import ActivityTracker
from careerlink.domain.realtime.channels import ChannelRouter
from careerlink.domain.realtime.errors import AuthError, RealtimeError, Unauthorized
from careerlink.domain.realtime.presence import PresenceRegistry
from careerlink.infra import rate_limit
from careerlink.infra.auth import AuthenticatedUser, verify_token
from careerlink.obs import logging as obs_logging
from careerlink.obs import metrics as obs_metrics
from careerlink.settings import settings

LOGGER = logging.getLogger(__name__)

_ERROR_MESSAGES = {
	"auth_failed": "Authentication failed",
	"not_authorized": "Not authorized",
	"not_a_participant": "Unauthorized to join this chat",
	"not_message_sender": "Only the sender can change this message",
	"invalid_input": "Invalid request",
	"invalid_payload": "Invalid request payload",
	"unknown_command": "Unknown command",
	"not_found": "Not found",
	"persistence_failed": "Failed to save, please retry",
	"store_unavailable": "Failed to save, please retry",
}


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def error_payload(exc: RealtimeError) -> dict:
	return {"code": exc.reason, "message": _ERROR_MESSAGES.get(exc.reason, exc.reason.replace("_", " ").capitalize())}


Handler = Callable[[str, AuthenticatedUser, Any], Awaitable[dict]]


class Gateway:
	"""Owns the realtime components for one process and wires them together."""

	def __init__(
		self,
		chat_store: ChatStore,
		notification_store: NotificationStore,
		*,
		policy: GroupingPolicy | None = None,
		activity: ActivityTracker | None = None,
	) -> None:
		self.chat_store = chat_store
		self.presence = PresenceRegistry()
		self.router = ChannelRouter(chat_store)
		self.broadcaster = events.Broadcaster(self.router)
		self.reconciler = ReadReconciler(chat_store, self.broadcaster)
		self.router.reconciler = self.reconciler
		self.notifications = NotificationEngine(notification_store, self.broadcaster, self.presence, policy)
		self.pipeline = MessagePipeline(
			chat_store, self.broadcaster, self.presence, self.reconciler, self.notifications
		)
		self.chat = ChatService(chat_store, self.pipeline, self.reconciler, self.presence, self.broadcaster)
		self.activity = activity or ActivityTracker()
		self._identities: Dict[str, AuthenticatedUser] = {}
		self._handlers: Dict[type, Handler] = {
			commands.JoinConversation: self._on_join,
			commands.LeaveConversation: self._on_leave,
			commands.SendMessage: self._on_message,
			commands.EditMessage: self._on_edit,
			commands.DeleteMessage: self._on_delete,
			commands.ConversationTyping: self._on_conversation_typing,
			commands.MarkConversationRead: self._on_mark_conversation_read,
			commands.MarkNotificationRead: self._on_mark_notification_read,
			commands.MarkAllNotificationsRead: self._on_mark_all_notifications_read,
			commands.UserTyping: self._on_user_typing,
			commands.UserActivity: self._on_user_activity,
		}

	def bind(self, sink: events.EventSink) -> None:
		self.broadcaster.bind(sink)

	def identity(self, connection_id: str) -> Optional[AuthenticatedUser]:
		return self._identities.get(connection_id)

	async def connect(
		self,
		connection_id: str,
		*,
		token: Optional[str],
		dev_user_id: Optional[str] = None,
	) -> AuthenticatedUser:
		"""Authenticate a new connection, register presence and join the personal channel."""
		try:
			user = verify_token(token)
		except AuthError as exc:
			if not (settings.is_dev() and dev_user_id):
				obs_metrics.socket_auth_reject(exc.reason)
				raise
			user = AuthenticatedUser(id=str(dev_user_id))
		self._identities[connection_id] = user
		came_online = await self.presence.register(user.id, connection_id)
		await self.router.join_user_channel(connection_id, user.id)
		await self.activity.touch(user.id, online=True)
		if came_online:
			await self.broadcaster.to_everyone(events.USER_ONLINE, {"user_id": user.id}, exclude=connection_id)
		LOGGER.info("socket_connected", extra={"user_id": user.id, "connection_id": connection_id})
		return user

	async def disconnect(self, connection_id: str) -> None:
		self._identities.pop(connection_id, None)
		try:
			await self.router.leave_all(connection_id)
		finally:
			user_id, went_offline = await self.presence.unregister(connection_id)
		if user_id is None:
			return
		LOGGER.info("socket_disconnected", extra={"user_id": user_id, "connection_id": connection_id})
		if went_offline:
			last_seen = await self.activity.touch(user_id, online=False)
			await self.broadcaster.to_everyone(events.USER_OFFLINE, {"user_id": user_id, "last_seen": last_seen})

	async def shutdown(self) -> None:
		"""Release every live connection when the process stops."""
		for connection_id in self.router.connections():
			await self.disconnect(connection_id)

	async def handle(self, connection_id: str, event: str, data: Any) -> dict:
		user = self._identities.get(connection_id)
		if user is None:
			raise AuthError("unauthenticated")
		command = commands.parse_command(event, data)
		handler = self._handlers[type(command)]
		return await handler(connection_id, user, command)

	async def broadcast_post_update(self, post_id: str, update: dict) -> events.DeliveryReport:
		return await self.broadcaster.to_everyone(events.POST_UPDATED, {"post_id": post_id, "update": update})

	async def notify_new_connection(self, user_id: str, connection: dict) -> events.DeliveryReport:
		return await self.broadcaster.to_user(user_id, events.CONNECTION_NEW, connection)

	async def _on_join(self, connection_id: str, user: AuthenticatedUser, command: commands.JoinConversation) -> dict:
		conversation = await self.router.join_conversation(connection_id, user.id, command.conversation_id)
		return {"ok": True, "conversation": conversation.to_dict()}

	async def _on_leave(self, connection_id: str, user: AuthenticatedUser, command: commands.LeaveConversation) -> dict:
		left = await self.router.leave_conversation(connection_id, command.conversation_id)
		return {"ok": True, "left": left}

	async def _on_message(self, connection_id: str, user: AuthenticatedUser, command: commands.SendMessage) -> dict:
		message = await self.pipeline.send(
			user.id,
			command.conversation_id,
			command.content,
			command.kind,
			command.file.model_dump() if command.file else None,
			command.reply_to,
			sender_name=user.short_name,
		)
		return {"ok": True, "message": message.to_dict()}

	async def _on_edit(self, connection_id: str, user: AuthenticatedUser, command: commands.EditMessage) -> dict:
		message = await self.pipeline.edit(user.id, command.message_id, command.content)
		return {"ok": True, "message": message.to_dict()}

	async def _on_delete(self, connection_id: str, user: AuthenticatedUser, command: commands.DeleteMessage) -> dict:
		message = await self.pipeline.delete(user.id, command.message_id)
		return {"ok": True, "message": message.to_dict()}

	async def _on_conversation_typing(
		self, connection_id: str, user: AuthenticatedUser, command: commands.ConversationTyping
	) -> dict:
		channel = self.router.conversation_channel(command.conversation_id)
		if channel not in self.router.channels_for(connection_id):
			raise Unauthorized("not_joined")
		if not await self._typing_allowed(user.id):
			return {"ok": False, "error": "rate_limited"}
		await self.broadcaster.to_channel(
			channel,
			events.CHAT_USER_TYPING,
			{
				"conversation_id": command.conversation_id,
				"user_id": user.id,
				"user_name": user.short_name,
				"is_typing": command.is_typing,
			},
			exclude=connection_id,
		)
		return {"ok": True}

	async def _on_mark_conversation_read(
		self, connection_id: str, user: AuthenticatedUser, command: commands.MarkConversationRead
	) -> dict:
		await self.reconciler.authorize(command.conversation_id, user.id)
		message_ids = await self.reconciler.mark_conversation_read(command.conversation_id, user.id)
		return {"ok": True, "message_ids": message_ids}

	async def _on_mark_notification_read(
		self, connection_id: str, user: AuthenticatedUser, command: commands.MarkNotificationRead
	) -> dict:
		notification = await self.notifications.mark_read(command.notification_id, user.id)
		return {"ok": True, "notification": notification.to_dict()}

	async def _on_mark_all_notifications_read(
		self, connection_id: str, user: AuthenticatedUser, command: commands.MarkAllNotificationsRead
	) -> dict:
		count = await self.notifications.mark_all_read(user.id)
		return {"ok": True, "count": count}

	async def _on_user_typing(self, connection_id: str, user: AuthenticatedUser, command: commands.UserTyping) -> dict:
		if not await self._typing_allowed(user.id):
			return {"ok": False, "error": "rate_limited"}
		await self.broadcaster.to_everyone(
			events.USER_TYPING,
			{"user_id": user.id, "is_typing": command.is_typing},
			exclude=connection_id,
		)
		return {"ok": True}

	async def _on_user_activity(self, connection_id: str, user: AuthenticatedUser, command: commands.UserActivity) -> dict:
		last_active = await self.activity.touch(user.id)
		return {"ok": True, "last_active": last_active}

	async def _typing_allowed(self, user_id: str) -> bool:
		try:
			allowed = await rate_limit.allow("typing", user_id, limit=settings.typing_per_minute, window_seconds=60)
		except RedisError:
			LOGGER.warning("typing_rate_limit_unavailable", extra={"user_id": user_id}, exc_info=True)
			return True
		if not allowed:
			obs_metrics.inc_rate_limited("typing")
		return allowed


class RealtimeNamespace(socketio.AsyncNamespace):
	"""Socket.IO adapter that forwards every client event to the Gateway."""

	def __init__(self, gateway: Gateway, namespace: str = "/") -> None:
		super().__init__(namespace)
		self._gateway = gateway
		gateway.bind(self)

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		scope = environ.get("asgi.scope", environ)
		# python-socketio >=5 passes client-provided auth as a separate argument
		auth_payload = auth or environ.get("auth") or scope.get("auth") or {}
		token = auth_payload.get("token") or _header(scope, "authorization")
		dev_user_id = auth_payload.get("userId") or _header(scope, "x-user-id")
		try:
			await self._gateway.connect(sid, token=token, dev_user_id=dev_user_id)
		except AuthError as exc:
			raise ConnectionRefusedError(f"Authentication error: {exc.reason}") from None
		obs_metrics.socket_connected(self.namespace)

	async def on_disconnect(self, sid: str, reason: Any = None) -> None:
		if self._gateway.identity(sid) is not None:
			obs_metrics.socket_disconnected(self.namespace)
		await self._gateway.disconnect(sid)

	async def trigger_event(self, event: str, *args: Any) -> Any:
		if event in ("connect", "disconnect"):
			return await super().trigger_event(event, *args)
		sid = args[0]
		data = args[1] if len(args) > 1 else None
		obs_metrics.socket_event(self.namespace, event)
		user = self._gateway.identity(sid)
		tokens = obs_logging.bind_context(user_id=user.id if user else None, connection_id=sid)
		try:
			return await self._gateway.handle(sid, event, data)
		except RealtimeError as exc:
			payload = error_payload(exc)
			LOGGER.info("socket_command_rejected", extra={"event": event, "code": exc.reason})
			await self.emit(events.ERROR, payload, to=sid)
			return {"ok": False, "error": payload}
		except Exception:
			LOGGER.exception("socket_command_failed", extra={"event": event})
			payload = {"code": "internal_error", "message": "Something went wrong"}
			await self.emit(events.ERROR, payload, to=sid)
			return {"ok": False, "error": payload}
		finally:
			obs_logging.reset_context(tokens)
