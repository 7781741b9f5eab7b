"""Feature modules: users (config), strava, sheets, sync."""
