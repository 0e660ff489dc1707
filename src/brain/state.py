"""
Brain State Definitions

Data contracts shared by the router, handlers and backends: conversation turns,
route tags, prefetch bundles, media results and OAuth token state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field


class Turn(BaseModel):
    """One entry of the conversation history."""
    role: Literal["user", "assistant"] = Field(..., description="Who said it")
    content: str = Field(..., description="Message text")


# Callers pass plain dicts or Turn objects; both are accepted
ConversationContext = Sequence[Union[Turn, Dict[str, str]]]


def _as_turn(entry: Union[Turn, Dict[str, str]]) -> Turn:
    if isinstance(entry, Turn):
        return entry
    role = entry.get("role", "user")
    return Turn(role="user" if role == "user" else "assistant", content=str(entry.get("content", "")))


def recent_turns(context: Optional[ConversationContext], limit: int) -> List[Turn]:
    """Last `limit` turns of the context, normalized to Turn objects."""
    if not context or limit <= 0:
        return []
    return [_as_turn(entry) for entry in list(context)[-limit:]]


def format_context(context: Optional[ConversationContext], limit: int) -> str:
    """Render the last `limit` turns as "role: content" lines."""
    return "\n".join(f"{turn.role}: {turn.content}" for turn in recent_turns(context, limit))


class RouteDecision(str, Enum):
    """Closed set of routing tags. Exactly one is chosen per message."""
    OVERRIDE_POWERFUL = "override-powerful"
    OVERRIDE_FAST = "override-fast"
    OVERRIDE_AGENT = "override-agent"
    OVERRIDE_PLAN = "override-plan"
    MEDIA_UPSCALE = "media-upscale"
    MEDIA_IMAGE_ULTRA = "media-image-ultra"
    MEDIA_IMAGE = "media-image"
    MEDIA_VIDEO = "media-video"
    WEATHER = "weather"
    SEND_EMAIL = "send-email"
    REMINDER = "reminder"
    COMPOSE_DOCUMENT = "compose-document"
    COMPOSE_DRAFT = "compose-draft"
    COMPOSE_SUMMARIZE = "compose-summarize"
    READ_CALENDAR = "read-calendar"
    READ_EMAIL = "read-email"
    READ_DRIVE = "read-drive"
    WEB_SEARCH = "web-search"
    MULTI_STEP = "multi-step"
    CLASSIFY_CHAT = "classify-chat"
    CLASSIFY_ACTION = "classify-action"


class ComposeType(str, Enum):
    DOCUMENT = "document"
    DRAFT = "draft"
    SUMMARIZE = "summarize"


class DataCategory(str, Enum):
    EMAIL = "email"
    CALENDAR = "calendar"
    DRIVE = "drive"


class MediaResult(BaseModel):
    """Structured payload returned for media intents."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: bool = False
    message: Optional[str] = None
    image_base64: Optional[str] = Field(None, alias="imageBase64")

    @classmethod
    def from_skill(cls, value: Any) -> Optional["MediaResult"]:
        """Coerce a skill's return value (dict or model) into a MediaResult."""
        if isinstance(value, MediaResult):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        return None


class PrefetchBundle:
    """
    Ordered, labeled grounding sections gathered for a single request.

    Each section renders as "=== LABEL ===\\n<data>". The bundle lives only for
    the duration of one route() call.
    """

    def __init__(self):
        self._sections: List[tuple] = []

    def add(self, label: str, data: Any) -> None:
        self._sections.append((label, "" if data is None else str(data)))

    @property
    def labels(self) -> List[str]:
        return [label for label, _ in self._sections]

    def __len__(self) -> int:
        return len(self._sections)

    def __bool__(self) -> bool:
        return bool(self._sections)

    def render(self, separator: str = "\n\n") -> str:
        return separator.join(f"=== {label} ===\n{data}" for label, data in self._sections)

    def __str__(self) -> str:
        return self.render()


@dataclass
class TokenState:
    """OAuth state for the powerful backend. Mutated only by TokenManager."""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at_ms: float = 0.0

    def is_valid(self, now_ms: float) -> bool:
        return bool(self.access_token) and now_ms < self.expires_at_ms


RouteResult = Union[str, MediaResult]
