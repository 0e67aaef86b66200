"""Core match engine package for Kora."""

__all__ = [
    "cards",
    "deck",
    "errors",
    "config",
    "trick",
    "rules",
    "state",
    "scoring",
    "match",
    "codec",
    "events",
    "timer",
    "store",
    "sync",
    "transport",
    "service",
]
