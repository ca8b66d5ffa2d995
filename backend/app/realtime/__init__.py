"""Realtime stream rooms (Socket.IO fan-out, membership and video rooms)."""

from .server import create_socket_app, sio  # noqa: F401
