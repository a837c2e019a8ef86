# SiteTrack - Employee attendance and live geolocation tracking

__version__ = "0.1.0"
