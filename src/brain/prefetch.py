"""
Grounding data pre-fetch.

Three entry points, one per consumer:
- prefetch(): sections for the powerful backend (email, calendar, drive
  search, or web search when nothing else matched)
- compose_context(): reference sections for compose mode, fetched
  concurrently, each failure swallowed independently
- fetch_category(): the single category read by analyze mode

Search-term derivation for Drive lives here too so it can be tested without
any skill.
"""

import asyncio
import re
from typing import Any, Callable, List, Optional, Tuple

import structlog

from .skills import SkillRegistry, resolve
from .state import DataCategory, PrefetchBundle

logger = structlog.get_logger("brain.prefetch")

RECENT_EMAILS_PREFETCH = 10
RECENT_EMAILS_COMPOSE = 5
RECENT_FILES_COMPOSE = 5
DEFAULT_DRIVE_TERM = "recent"

# Labels
EMAILS = "RECENT EMAILS"
CALENDAR = "TODAY'S CALENDAR"
DRIVE_RESULTS = "DRIVE SEARCH RESULTS"
WEB_RESULTS = "WEB SEARCH RESULTS"
COMPOSE_EMAILS = "RECENT EMAILS (for context)"
COMPOSE_FILES = "RECENT DRIVE FILES"

# Powerful-path prefetch triggers
PREFETCH_EMAIL = re.compile(r"email|inbox|mail|gmail|message from|sent me")
PREFETCH_CALENDAR = re.compile(r"calendar|schedule|event|meeting|today|appointment")
PREFETCH_DRIVE = re.compile(
    r"drive|file|document|folder|find.*file|search.*drive|look.*drive|check.*drive|what.*drive|find.*document"
)
PREFETCH_WEB = re.compile(r"search|look up|find out|what is|who is|latest|news|how to")
WEB_QUERY_PREFIX = re.compile(r"^(search|look up|find)\s*(for)?\s*", re.IGNORECASE)

# Compose-mode triggers
COMPOSE_EMAIL = re.compile(r"email|inbox|mail|thread|conversation|reply")
COMPOSE_CALENDAR = re.compile(r"calendar|schedule|meeting|event|appointment")
COMPOSE_FILES_RE = re.compile(r"file|document|drive|spreadsheet|sheet")

# Drive search-term derivation (analyze mode)
_POLITE_PREFIX = re.compile(r"^(can you |please |hey |could you |i want to |i need to )", re.IGNORECASE)
_COMMAND_WORDS = re.compile(
    r"\b(search|find|look|check|show|get|list|see|view|open|my|on|in|the|me|through|for|at|all|up|"
    r"what'?s?|is|are|do|does)\b\s*",
    re.IGNORECASE,
)
_DRIVE_NOUNS = re.compile(
    r"\b(drive|files?|documents?|folders?|google|recent|stuff|things?|content)\b", re.IGNORECASE
)
_PUNCTUATION = re.compile(r"[?!.,]")
_STOP_TOKENS = re.compile(r"^(or|not|to|it|a|an|i|and|but|so|how|can|has|have|had)$", re.IGNORECASE)

# Drive query extraction (powerful-path prefetch)
_QUERY_TAIL = re.compile(
    r"(?:for|about|named|called|related to|regarding)\s+['\"]?(.+?)['\"]?\s*$", re.IGNORECASE
)
_QUOTED = re.compile(r"['\"]([^'\"]+)['\"]")
_QUERY_PREFIX = re.compile(r"^(can you |please |hey |could you |i need |i want )", re.IGNORECASE)
_QUERY_WORDS = re.compile(
    r"\b(search|find|look|check|show|get|what'?s?|are there|is there|any|my|on|in|the|me|through)\b\s*",
    re.IGNORECASE,
)
_QUERY_NOUNS = re.compile(r"\b(drive|files?|documents?|folders?|google)\b", re.IGNORECASE)


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def derive_drive_search_term(message: str) -> str:
    """
    Reduce a Drive request to its search term.

    "can you search my drive for invoices" -> "invoices"
    "check drive" -> "recent"
    """
    term = _POLITE_PREFIX.sub("", message.strip())
    term = _COMMAND_WORDS.sub("", term)
    term = _DRIVE_NOUNS.sub("", term)
    term = _squash(_PUNCTUATION.sub("", term))
    if not term or len(term) < 3 or _STOP_TOKENS.match(term):
        return DEFAULT_DRIVE_TERM
    return term


def extract_drive_query(message: str) -> str:
    """Search term for powerful-path prefetch: trailing "for X", then quoted text, then residue."""
    match = _QUERY_TAIL.search(message)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = _QUOTED.search(message)
    if match and match.group(1).strip():
        return match.group(1).strip()
    term = _QUERY_PREFIX.sub("", message.strip())
    term = _QUERY_WORDS.sub("", term)
    return _squash(_QUERY_NOUNS.sub("", term))


def _text(value: Any) -> str:
    return "" if value is None else str(value)


class DataPrefetcher:
    """
    Fetches grounding data from the skills of the current call.

    Usage:
        bundle = await DataPrefetcher().prefetch("any emails from Dana?", skills)
        prompt += bundle.render()
    """

    async def prefetch(self, message: str, skills: SkillRegistry) -> PrefetchBundle:
        """
        Sections for the powerful backend.

        A fetch failure stops the remaining fetches; sections already gathered
        are kept.
        """
        lower = message.lower()
        bundle = PrefetchBundle()
        workspace = skills.workspace if skills.workspace_ready() else None

        try:
            if workspace and PREFETCH_EMAIL.search(lower):
                logger.info("prefetch_started", source="email")
                bundle.add(EMAILS, await resolve(workspace.get_recent_emails(RECENT_EMAILS_PREFETCH)))

            if workspace and PREFETCH_CALENDAR.search(lower):
                logger.info("prefetch_started", source="calendar")
                bundle.add(CALENDAR, await resolve(workspace.get_today_events()))

            if workspace and PREFETCH_DRIVE.search(lower):
                term = extract_drive_query(message)
                if len(term) > 1:
                    logger.info("prefetch_started", source="drive", term=term)
                    bundle.add(DRIVE_RESULTS, await resolve(workspace.search_files(term)))

            if not bundle and skills.search is not None and PREFETCH_WEB.search(lower):
                query = WEB_QUERY_PREFIX.sub("", message).strip()
                logger.info("prefetch_started", source="web", query=query[:50])
                bundle.add(WEB_RESULTS, await resolve(skills.search.search(query)))
        except Exception as e:
            logger.error("prefetch_failed", error=str(e), sections=bundle.labels)

        return bundle

    async def compose_context(self, message: str, skills: SkillRegistry) -> PrefetchBundle:
        """
        Reference sections for compose mode, fetched concurrently.

        Order in the bundle is always email, calendar, drive regardless of
        completion order. A failed fetch is logged and left out.
        """
        bundle = PrefetchBundle()
        if not skills.workspace_ready():
            return bundle

        workspace = skills.workspace
        lower = message.lower()
        wanted: List[Tuple[str, str, Callable[[], Any]]] = []
        if COMPOSE_EMAIL.search(lower):
            wanted.append(("email", COMPOSE_EMAILS, lambda: workspace.get_recent_emails(RECENT_EMAILS_COMPOSE)))
        if COMPOSE_CALENDAR.search(lower):
            wanted.append(("calendar", CALENDAR, workspace.get_today_events))
        if COMPOSE_FILES_RE.search(lower):
            wanted.append(("drive", COMPOSE_FILES, lambda: workspace.list_recent_files(RECENT_FILES_COMPOSE)))

        if not wanted:
            return bundle

        async def fetch(call: Callable[[], Any]) -> Any:
            return await resolve(call())

        results = await asyncio.gather(*(fetch(call) for _, _, call in wanted), return_exceptions=True)
        for (source, label, _), result in zip(wanted, results):
            if isinstance(result, Exception):
                logger.warning("context_fetch_failed", source=source, error=str(result))
                continue
            bundle.add(label, result)
        return bundle

    async def fetch_category(self, category: DataCategory, message: str, skills: SkillRegistry) -> str:
        """
        Raw data for analyze mode. Exceptions propagate to the caller.
        """
        workspace = skills.workspace
        if category == DataCategory.EMAIL:
            logger.info("analyze_fetch", category="email")
            return _text(await resolve(workspace.get_recent_emails(RECENT_EMAILS_PREFETCH)))
        if category == DataCategory.CALENDAR:
            logger.info("analyze_fetch", category="calendar")
            return _text(await resolve(workspace.get_today_events()))

        term = derive_drive_search_term(message)
        logger.info("analyze_fetch", category="drive", term=term)
        return _text(await resolve(workspace.search_files(term)))


def is_not_configured(data: Optional[str]) -> bool:
    """Empty data or the skill's "not configured" marker."""
    return not data or "not configured" in data
