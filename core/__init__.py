"""
Core Package

Contains the provider-agnostic core of the relay including:
- FeedAdapter / HistoryFetcher: Abstract contracts every upstream provider implements
- Schemas: Pydantic models for normalized candles and the downstream wire messages
- Errors: The relay's exception hierarchy
- Config / Logging: Settings loaded from .env and the shared logger

Nothing in here knows which provider is on the other end of the socket.
"""
