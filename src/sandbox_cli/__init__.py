"""Command line front end for claude-sandbox."""

__all__ = [
    "cli",
    "runtime",
    "services",
]
