# SiteTrack Client - asyncio building blocks for admin and employee apps

from .api import ApiClient
from .live_map import LiveMapView
from .maps import MapsConfigLoader
from .notifications import Notification, NotificationFeed
from .realtime import Backoff, RealtimeClient, socket_url
from .token_store import TokenStore

__all__ = [
    "ApiClient",
    "Backoff",
    "LiveMapView",
    "MapsConfigLoader",
    "Notification",
    "NotificationFeed",
    "RealtimeClient",
    "TokenStore",
    "socket_url",
]
