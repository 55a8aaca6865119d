from .base import Directive
from .core import CoreDirective
from .network_context import (
    ConfiguredSiteContext,
    NetworkContextDirective,
    SiteContextProvider,
)
from .pipeline import DirectivePipeline
from .system_prompt import SystemPromptDirective
from .user_context import FlagFact, ProfileCountFact, UserContextDirective, UserFact

__all__ = [
    "ConfiguredSiteContext",
    "CoreDirective",
    "Directive",
    "DirectivePipeline",
    "FlagFact",
    "NetworkContextDirective",
    "ProfileCountFact",
    "SiteContextProvider",
    "SystemPromptDirective",
    "UserContextDirective",
    "UserFact",
]
