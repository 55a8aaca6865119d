"""chatdesk: multi-turn AI chat orchestrator for a content platform."""

__version__ = "0.1.0"
