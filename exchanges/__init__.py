"""
Upstream Provider Package

This package contains individual upstream provider modules.
Each provider has its own subfolder with:
- api_client.py: REST logic (connection bootstrap, historical candles)
- ws_client.py: WebSocket streaming logic
- __init__.py: FeedAdapter and HistoryFetcher implementations

The relay only talks to providers through core.feed_interface, so adding a
provider does not touch the services layer.
"""
