"""Profile page client for a websocket link aggregator."""

__version__ = "0.1.0"
