from .link_page import AddedLink, LinkPageError, LinkPageService, LinkPageToolSource
from .registry import ToolDefinition, ToolProvider, ToolRegistry, ToolSource
from .search import SearchToolSource, SiteConfig, WordPressSearchBackend

__all__ = [
    "AddedLink",
    "LinkPageError",
    "LinkPageService",
    "LinkPageToolSource",
    "SearchToolSource",
    "SiteConfig",
    "ToolDefinition",
    "ToolProvider",
    "ToolRegistry",
    "ToolSource",
    "WordPressSearchBackend",
]
