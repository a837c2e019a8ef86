# SiteTrack - HTTP and WebSocket routes
