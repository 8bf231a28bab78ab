"""WebSocket manager for real-time admin dashboard updates."""

from typing import Any, Dict, Optional
from datetime import datetime, timezone

from flask_socketio import SocketIO, join_room, leave_room

from core import get_logger

logger = get_logger(__name__)

DASHBOARD_ROOM = "admin_dashboard"


class WebSocketManager:
    """
    Tracks connected admins and fans purchase events out to the dashboard.

    Only authenticated admins may connect; every connection joins the
    ``admin_dashboard`` room that purchase events are emitted into.
    """

    def __init__(self, socketio: SocketIO):
        self.socketio = socketio

        # Online admins: {session_id: {username, connected_at, rooms}}
        self.online_users: Dict[str, Dict[str, Any]] = {}

        self._register_handlers()

    def _register_handlers(self):
        @self.socketio.on('connect')
        def handle_connect(auth=None):
            from flask import request
            from flask_login import current_user

            if not current_user.is_authenticated:
                return False

            session_id = request.sid
            self.online_users[session_id] = {
                'username': current_user.username,
                'connected_at': datetime.now(timezone.utc).isoformat(),
                'rooms': {DASHBOARD_ROOM},
            }
            join_room(DASHBOARD_ROOM)
            self.broadcast_online_users()
            logger.info(f"[WS] Admin {current_user.username} connected (session: {session_id})")
            return True

        @self.socketio.on('disconnect')
        def handle_disconnect(*args):
            from flask import request

            info = self.online_users.pop(request.sid, None)
            if info:
                self.broadcast_online_users()
                logger.info(f"[WS] Admin {info['username']} disconnected (session: {request.sid})")

        @self.socketio.on('join_room')
        def handle_join_room(data):
            from flask import request

            room_name = (data or {}).get('room')
            if room_name:
                join_room(room_name)
                if request.sid in self.online_users:
                    self.online_users[request.sid]['rooms'].add(room_name)

        @self.socketio.on('leave_room')
        def handle_leave_room(data):
            from flask import request

            room_name = (data or {}).get('room')
            if room_name:
                leave_room(room_name)
                if request.sid in self.online_users:
                    self.online_users[request.sid]['rooms'].discard(room_name)

    def broadcast_online_users(self):
        self.socketio.emit('online_users_update', {
            'users': sorted(info['username'] for info in self.online_users.values()),
            'count': len(self.online_users),
            'timestamp': datetime.now(timezone.utc).isoformat(),
        }, room=DASHBOARD_ROOM)

    def broadcast_event(self, event: str, payload: Dict[str, Any]):
        """Emit a purchase event to every connected admin."""
        self.socketio.emit(event, payload, room=DASHBOARD_ROOM)

    def get_online_count(self) -> int:
        return len(self.online_users)


# Global instance, initialized by create_app
websocket_manager: Optional[WebSocketManager] = None


def init_websocket_manager(socketio: SocketIO) -> WebSocketManager:
    global websocket_manager
    websocket_manager = WebSocketManager(socketio)
    return websocket_manager


def get_websocket_manager() -> WebSocketManager:
    if websocket_manager is None:
        raise RuntimeError("WebSocketManager not initialized. Call init_websocket_manager first.")
    return websocket_manager
