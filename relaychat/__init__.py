"""
RelayChat - real-time broadcast chat server.

Authenticated participants connect over a WebSocket and every chat message
is fanned out to the rest of the room, with join announcements and a live
presence list.
"""

__version__ = "0.1.0"
