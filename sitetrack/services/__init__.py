# SiteTrack - Services
# Business logic layer

from .auth import AuthService, AuthenticationError, AuthorizationError, Principal
from .realtime import ConnectionManager
from .tracking import TrackingService, TrackingError

__all__ = [
    "AuthService",
    "AuthenticationError",
    "AuthorizationError",
    "Principal",
    "ConnectionManager",
    "TrackingService",
    "TrackingError",
]
