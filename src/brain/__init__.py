"""
Dual-Brain - Routing Core

Routes each chat message to the cheapest capable handler: skill intents,
the fast backend for chat and data summaries, or the powerful backend for
composition and reasoning, with a fallback chain between the two.
"""

from .orchestrator import DualBrainOrchestrator
from .skills import SkillName, SkillRegistry
from .state import MediaResult, RouteDecision, Turn

__version__ = "0.1.0"

__all__ = [
    "DualBrainOrchestrator",
    "MediaResult",
    "RouteDecision",
    "SkillName",
    "SkillRegistry",
    "Turn",
]
