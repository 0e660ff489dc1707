"""
Priority-ordered intent routing.

Rules are evaluated in a fixed order and the first one whose pattern matches
AND whose skill precondition holds wins. A rule whose skill is missing or not
ready is skipped and evaluation continues. Reordering RULES changes behavior.

Order:
1. Overrides (/claude, /gemini, /agent, /plan)
2. Media (upscale, ultra image, image, video)
3. Weather
4. Send email, reminder
5. Compose (document, draft, summarize)
6. Data read (calendar, email, drive)
7. Web search
8. Multi-step
Anything else returns None and is left to the classifier.

Matching is pure: no network calls, no skill calls beyond readiness checks.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from .skills import SkillRegistry
from .state import ComposeType, DataCategory, RouteDecision

logger = structlog.get_logger("brain.intent_router")

# Matcher signature: (message, lowercased message) -> extracted args, or None
Matcher = Callable[[str, str], Optional[Dict[str, Any]]]
Precondition = Callable[[SkillRegistry], bool]


@dataclass(frozen=True)
class RouteMatch:
    """A routing decision plus whatever the matcher extracted from the message."""
    decision: RouteDecision
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IntentRule:
    decision: RouteDecision
    matcher: Matcher
    requires: Optional[Precondition] = None

    def applies(self, skills: SkillRegistry) -> bool:
        return self.requires is None or self.requires(skills)


# =============================================================================
# Patterns
# =============================================================================

IMAGE_NOUNS = r"image|picture|photo|illustration|logo|icon|art|poster"

UPSCALE = re.compile(
    r"upscale|enhance|make.*(it|this|that).*(bigger|larger|4k|hd|high.?res)|improve.*(quality|resolution)",
    re.IGNORECASE,
)
ULTRA = re.compile(r"ultra|premium|high.?quality|best.?quality", re.IGNORECASE)
IMAGE_VERB = re.compile(r"generate|create|draw|make|design|paint", re.IGNORECASE)
IMAGE_NOUN = re.compile(IMAGE_NOUNS, re.IGNORECASE)
VIDEO_VERB = re.compile(r"generate|create|make|produce", re.IGNORECASE)
VIDEO_NOUN = re.compile(r"video|clip|animation|movie|footage", re.IGNORECASE)

ULTRA_PROMPT_PREFIX = re.compile(
    r"^(please\s+)?(generate|create|draw|make|design|paint)\s+(me\s+)?(an?\s+)?"
    r"(ultra|premium|high.?quality|best.?quality)\s*(" + IMAGE_NOUNS + r")\s*(of|about|for|with|depicting)?\s*",
    re.IGNORECASE,
)
IMAGE_PROMPT_PREFIX = re.compile(
    r"^(please\s+)?(generate|create|draw|make|design|paint)\s+(me\s+)?(an?\s+)?"
    r"(" + IMAGE_NOUNS + r")\s*(of|about|for|with|depicting)?\s*",
    re.IGNORECASE,
)
VIDEO_PROMPT_PREFIX = re.compile(
    r"^(please\s+)?(generate|create|make|produce)\s+(me\s+)?(a\s+)?"
    r"(4k\s+|hd\s+|portrait\s+|silent\s+|high.?quality\s+)*(video|clip|animation|movie|footage)\s*"
    r"(of|about|for|with|depicting|showing)?\s*",
    re.IGNORECASE,
)

# Video options
VIDEO_SILENT = re.compile(r"no\s*audio|silent|mute|without\s*sound|no\s*sound")
VIDEO_4K = re.compile(r"4k|ultra.?hd|uhd")
VIDEO_1080P = re.compile(r"1080p|full.?hd")
VIDEO_PORTRAIT = re.compile(r"portrait|vertical|9.?16|tiktok|reel")
VIDEO_QUALITY = re.compile(r"high.?quality|standard.?quality|best.?quality|premium")
VIDEO_DURATION = re.compile(r"(\d+)\s*sec")
ALLOWED_DURATIONS = (4, 6, 8)

WEATHER = re.compile(r"weather|temperature|forecast|rain|snow|humidity|feels like|degrees|hot|cold outside")
WEATHER_FORECAST = re.compile(r"forecast|week|tomorrow|next")
# Case-sensitive on purpose: locations are capitalized words
WEATHER_LOCATION = re.compile(r"(?:in|for|at)\s+([A-Z][a-zA-Z\s]+)")

SEND_EMAIL = re.compile(
    r"send\s+(an?\s+)?email|compose\s+(an?\s+)?email|email\s+\w+@|write\s+to\s+\w+@|draft\s+(an?\s+)?email"
)
REMINDER = re.compile(r"remind\s+me|set\s+a?\s*reminder|don'?t\s+let\s+me\s+forget")

COMPOSE_DOCUMENT = re.compile(r"create\s+(a\s+)?(document|doc|google\s*doc|spreadsheet|sheet|presentation|slide)")
COMPOSE_DRAFT = re.compile(
    r"draft\s+(a\s+)?(reply|response|email\s+body|message)|"
    r"write\s+(a\s+)?(summary|report|brief|memo|proposal|document|plan)"
)
COMPOSE_SUMMARIZE = re.compile(
    r"summarize|take\s+notes|document\s+(this|that|the)|"
    r"put\s+(this|that|it)\s+(in|into|on)\s+(a\s+)?(doc|document|sheet|spreadsheet|drive)"
)

READ_CALENDAR = re.compile(
    r"calendar|schedule|event|meeting|today|appointment|tomorrow|this week|agenda|busy|free|available"
)
READ_EMAIL = re.compile(r"email|inbox|mail|gmail|message from|sent me|unread")
READ_DRIVE = re.compile(r"drive|file|document|folder|find.*file|search.*drive|look.*drive")

WEB_SEARCH = re.compile(r"search|look\s+up|find out|what is|who is|latest|news|how to|google|browse|research")

MULTI_STEP_PATTERNS = (
    re.compile(r"\b(and then|then|after that|also|next|finally|first.*then)\b"),
    re.compile(r"\b(research|find|look up)\b.*\b(and|then)\b.*\b(send|email|create|write|draft|summarize)\b"),
    re.compile(r"\b(check|get|read)\b.*\b(and|then)\b.*\b(tell|send|update|create)\b"),
)


# =============================================================================
# Extraction helpers
# =============================================================================

def is_multi_step(message: str) -> bool:
    """Sequencing conjunctions or a research/check ... and/then ... act shape."""
    lower = message.lower()
    return any(pattern.search(lower) for pattern in MULTI_STEP_PATTERNS)


def clean_prompt(message: str, prefix: "re.Pattern[str]") -> str:
    """Strip a leading "generate an image of" template; keep the message if nothing is left."""
    return prefix.sub("", message, count=1).strip() or message


def extract_video_options(lower: str) -> Dict[str, Any]:
    """Structured video options from keywords. Unsupported durations are dropped."""
    options: Dict[str, Any] = {}
    if VIDEO_SILENT.search(lower):
        options["audio"] = False
    if VIDEO_4K.search(lower):
        options["resolution"] = "4k"
    elif VIDEO_1080P.search(lower):
        options["resolution"] = "1080p"
    if VIDEO_PORTRAIT.search(lower):
        options["aspectRatio"] = "9:16"
    if VIDEO_QUALITY.search(lower):
        options["quality"] = "standard"
    duration = VIDEO_DURATION.search(lower)
    if duration and int(duration.group(1)) in ALLOWED_DURATIONS:
        options["duration"] = int(duration.group(1))
    return options


def extract_weather_location(message: str) -> Optional[str]:
    """Capitalized words after in/for/at, or None."""
    match = WEATHER_LOCATION.search(message)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


# =============================================================================
# Matchers
# =============================================================================

def _prefix(prefix: str) -> Matcher:
    def match(message: str, lower: str) -> Optional[Dict[str, Any]]:
        if message.startswith(prefix):
            return {"message": message[len(prefix):]}
        return None
    return match


def _when(*patterns: "re.Pattern[str]", **args: Any) -> Matcher:
    """Match when every pattern is found in the lowercased message."""
    def match(message: str, lower: str) -> Optional[Dict[str, Any]]:
        if all(pattern.search(lower) for pattern in patterns):
            return dict(args)
        return None
    return match


def _media(*patterns: "re.Pattern[str]", prefix: "re.Pattern[str]") -> Matcher:
    def match(message: str, lower: str) -> Optional[Dict[str, Any]]:
        if all(pattern.search(lower) for pattern in patterns):
            return {"prompt": clean_prompt(message, prefix)}
        return None
    return match


def _video(message: str, lower: str) -> Optional[Dict[str, Any]]:
    if VIDEO_VERB.search(lower) and VIDEO_NOUN.search(lower):
        return {"prompt": clean_prompt(message, VIDEO_PROMPT_PREFIX), "options": extract_video_options(lower)}
    return None


def _weather(message: str, lower: str) -> Optional[Dict[str, Any]]:
    if WEATHER.search(lower):
        return {"location": extract_weather_location(message), "forecast": bool(WEATHER_FORECAST.search(lower))}
    return None


def _multi_step(message: str, lower: str) -> Optional[Dict[str, Any]]:
    return {} if is_multi_step(message) else None


def _has(attr: str) -> Precondition:
    return lambda skills: getattr(skills, attr) is not None


def _workspace_ready(skills: SkillRegistry) -> bool:
    return skills.workspace_ready()


RULES: Sequence[IntentRule] = (
    IntentRule(RouteDecision.OVERRIDE_POWERFUL, _prefix("/claude ")),
    IntentRule(RouteDecision.OVERRIDE_FAST, _prefix("/gemini ")),
    IntentRule(RouteDecision.OVERRIDE_AGENT, _prefix("/agent ")),
    IntentRule(RouteDecision.OVERRIDE_PLAN, _prefix("/plan ")),

    IntentRule(RouteDecision.MEDIA_UPSCALE, _when(UPSCALE), _has("image")),
    IntentRule(RouteDecision.MEDIA_IMAGE_ULTRA, _media(ULTRA, IMAGE_NOUN, prefix=ULTRA_PROMPT_PREFIX), _has("image")),
    IntentRule(RouteDecision.MEDIA_IMAGE, _media(IMAGE_VERB, IMAGE_NOUN, prefix=IMAGE_PROMPT_PREFIX), _has("image")),
    IntentRule(RouteDecision.MEDIA_VIDEO, _video, _has("video")),

    IntentRule(RouteDecision.WEATHER, _weather, _has("weather")),

    IntentRule(RouteDecision.SEND_EMAIL, _when(SEND_EMAIL), _workspace_ready),
    IntentRule(RouteDecision.REMINDER, _when(REMINDER), _has("scheduler")),

    IntentRule(RouteDecision.COMPOSE_DOCUMENT, _when(COMPOSE_DOCUMENT, compose_type=ComposeType.DOCUMENT)),
    IntentRule(RouteDecision.COMPOSE_DRAFT, _when(COMPOSE_DRAFT, compose_type=ComposeType.DRAFT)),
    IntentRule(RouteDecision.COMPOSE_SUMMARIZE, _when(COMPOSE_SUMMARIZE, compose_type=ComposeType.SUMMARIZE)),

    IntentRule(RouteDecision.READ_CALENDAR, _when(READ_CALENDAR, category=DataCategory.CALENDAR), _workspace_ready),
    IntentRule(RouteDecision.READ_EMAIL, _when(READ_EMAIL, category=DataCategory.EMAIL), _workspace_ready),
    IntentRule(RouteDecision.READ_DRIVE, _when(READ_DRIVE, category=DataCategory.DRIVE), _workspace_ready),

    IntentRule(RouteDecision.WEB_SEARCH, _when(WEB_SEARCH), _has("search")),

    IntentRule(RouteDecision.MULTI_STEP, _multi_step, _has("multi_step")),
)


class IntentRouter:
    """
    First-match dispatch over an ordered rule list.

    Usage:
        router = IntentRouter()
        match = router.match("generate an ultra image of a cat", skills)
        # RouteMatch(decision=MEDIA_IMAGE_ULTRA, args={"prompt": "a cat"})
    """

    def __init__(self, rules: Optional[Sequence[IntentRule]] = None):
        self.rules: List[IntentRule] = list(rules if rules is not None else RULES)

    def match(self, message: str, skills: SkillRegistry) -> Optional[RouteMatch]:
        lower = message.lower()
        for rule in self.rules:
            args = rule.matcher(message, lower)
            if args is None:
                continue
            if not rule.applies(skills):
                logger.debug("intent_skipped", decision=rule.decision.value, reason="skill_unavailable")
                continue
            logger.info("route_selected", decision=rule.decision.value, query=message[:50])
            return RouteMatch(rule.decision, args)
        return None
