#!/usr/bin/env python
"""
SiteTrack - Live Feed

Logs an admin in and follows their realtime feed from the terminal:
check-in/check-out notifications and live map changes.

Usage:
    python -m scripts.live_feed admin@example.com

The server origin, token store path and timing knobs come from the
SITETRACK_* client settings (see sitetrack/config.py). A token already
in the store is reused when no email is given.
"""

import asyncio
import logging
import sys
from getpass import getpass

import httpx

from sitetrack.client import ApiClient, LiveMapView, NotificationFeed, RealtimeClient, TokenStore
from sitetrack.config import get_settings


settings = get_settings()

logger = logging.getLogger("sitetrack.live_feed")


async def mount(store, api, connector=None):
    """
    Wire up the admin feed: seed recent notifications, open the socket,
    then load the live map. Returns (realtime, feed, live_map).
    """
    realtime = RealtimeClient(
        store,
        settings.server_origin,
        connector=connector,
        poll_interval=settings.token_poll_interval,
        poll_timeout=settings.token_poll_timeout,
        reconnect_base_delay=settings.reconnect_base_delay,
        reconnect_max_delay=settings.reconnect_max_delay,
    )
    feed = NotificationFeed(realtime, limit=settings.notification_limit)
    live_map = LiveMapView(realtime, api, refresh_interval=settings.map_refresh_interval)

    realtime.on_status(lambda up: logger.info("Feed %s", "connected" if up else "disconnected"))
    feed.on_change(lambda: logger.info("Unread notifications: %d", feed.unread_count))
    live_map.on_change(lambda: logger.info(
        "On map: %d employee(s), %d on site",
        len(live_map.entries),
        sum(1 for e in live_map.entries if (e["location"] or {}).get("isWithinGeofence")),
    ))

    await feed.load_recent(api)
    await realtime.start()
    await live_map.start()
    return realtime, feed, live_map


async def follow(email):
    store = TokenStore(settings.token_store_path)

    async with ApiClient(settings.server_origin, store) as api:
        if email:
            try:
                await api.login_admin(email, getpass("Password: "))
            except httpx.HTTPStatusError as e:
                print(f"Login failed: {e.response.json().get('detail', e)}")
                return False
        elif store.get_role() != "admin" or not store.get():
            print("No admin session stored; pass an email to log in")
            return False

        realtime, feed, live_map = await mount(store, api)
        try:
            await asyncio.Event().wait()
        finally:
            feed.close()
            await live_map.close()

    return True


def main():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    email = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        success = asyncio.run(follow(email))
    except KeyboardInterrupt:
        success = True
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
