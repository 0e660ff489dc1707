"""
Prompt frames for both backends.

Persona text is built from BrainConfig (assistant and owner names, timezone) so
the same frames serve any deployment. Builders return plain strings; callers
decide which backend receives them.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from shared.config import BrainConfig

from .state import ComposeType, ConversationContext, PrefetchBundle, format_context

FAST_PERSONA = """You are {bot} ({initials}), {owner}'s helpful AI assistant.
Be friendly, concise, and helpful. You can chat naturally."""

POWERFUL_PERSONA = """You are {bot} ({initials}), {owner}'s personal AI assistant.
You have been given real data from {owner}'s Gmail, Google Calendar, Google Drive, or web search results.
Analyze the data and answer {owner}'s question naturally and concisely.
Don't say "based on the data provided" - just answer as if you looked it up yourself.
If asked to send an email, draft it and confirm the details.
Be concise and avoid overly long responses. Get to the point.
Current date/time: {now}"""

EMAIL_PARSE_PROMPT = """Parse this email request and return ONLY valid JSON with keys "to", "subject", "body". If any field is unclear, make a reasonable guess.

Request: "{message}"

JSON:"""

REMINDER_PARSE_PROMPT = """Parse this reminder request. Return ONLY valid JSON with keys "time" (e.g., "5m", "1h", "30min") and "message" (what to remind about).

Request: "{message}"

JSON:"""

# Per compose type: (task line, data intro, closing instruction)
COMPOSE_FRAMES = {
    ComposeType.DOCUMENT: (
        "wants you to CREATE content for a document.",
        "Here is real data from the owner's Google account for reference:",
        "Compose the document content. Be thorough, professional, and well-structured. "
        "Use clear headings and formatting. Return ONLY the content.",
    ),
    ComposeType.DRAFT: (
        "wants you to DRAFT written content.",
        "Here is real data from the owner's Google account for context:",
        "Write the draft content. Match the appropriate tone. Return ONLY the draft text.",
    ),
    ComposeType.SUMMARIZE: (
        "wants you to SUMMARIZE or DOCUMENT information.",
        "Here is real data from the owner's Google account:",
        "Create a clear, organized summary or document. Use bullet points and headings where "
        "appropriate. Return ONLY the content.",
    ),
}

COMPOSE_LABELS = {
    ComposeType.DOCUMENT: "Doc",
    ComposeType.DRAFT: "Draft",
    ComposeType.SUMMARIZE: "Summary",
}


def _initials(name: str) -> str:
    return "".join(word[0] for word in name.split() if word).upper()


def _enrich(base: str, *extras: Optional[str], separator: str = "\n") -> str:
    for extra in extras:
        if extra:
            base += separator + extra
    return base


def fast_persona(config: BrainConfig, memory_context: str = "", learned_context: str = "") -> str:
    """System instruction for plain fast-backend chat."""
    base = FAST_PERSONA.format(bot=config.bot_name, initials=_initials(config.bot_name), owner=config.owner_name)
    return _enrich(base, memory_context, learned_context)


def powerful_system_prompt(config: BrainConfig, now: Optional[datetime] = None) -> str:
    """Persona for data-grounded answers; also the fast fallback's system instruction."""
    if now is None:
        now = datetime.now(ZoneInfo(config.timezone))
    return POWERFUL_PERSONA.format(
        bot=config.bot_name,
        initials=_initials(config.bot_name),
        owner=config.owner_name,
        now=now.strftime("%m/%d/%Y, %I:%M:%S %p"),
    )


def powerful_prompt(
    config: BrainConfig,
    message: str,
    context: Optional[ConversationContext],
    data: PrefetchBundle,
    memory_context: str = "",
    learned_context: str = "",
    tool_descriptions: Optional[str] = None,
    now: Optional[datetime] = None
) -> str:
    """Full single-turn prompt for the powerful path."""
    parts = [powerful_system_prompt(config, now)]
    if memory_context:
        parts.append(memory_context)
    if learned_context:
        parts.append(learned_context)
    history = format_context(context, 5)
    if history:
        parts.append(f"Recent conversation:\n{history}")
    if tool_descriptions:
        parts.append(f"Available MCP tools:\n{tool_descriptions}")
    if data:
        parts.append(f"Here is real data from {config.owner_name}'s accounts:\n\n{data.render()}")
    parts.append(
        f"{config.owner_name}'s request: {message}\n\n"
        "Analyze the data and answer the question directly. Be concise."
    )
    return "\n\n".join(parts)


def fallback_analysis_prompt(
    config: BrainConfig,
    message: str,
    context: Optional[ConversationContext],
    data: PrefetchBundle
) -> str:
    """Prompt for the fast backend when it takes over pre-fetched data."""
    parts = []
    history = format_context(context, 5)
    if history:
        parts.append(f"Recent conversation:\n{history}")
    parts.append(f"Here is real data from {config.owner_name}'s accounts:\n\n{data.render()}")
    parts.append(
        f"{config.owner_name}'s request: {message}\n\n"
        "Analyze the data and answer the question directly."
    )
    return "\n\n".join(parts)


def compose_prompt(
    config: BrainConfig,
    compose_type: ComposeType,
    message: str,
    context: Optional[ConversationContext],
    data: PrefetchBundle
) -> str:
    task, data_intro, closing = COMPOSE_FRAMES[compose_type]
    owner = config.owner_name
    parts = [f"You are {owner}'s personal assistant. {owner} {task}"]
    if data:
        parts.append(f"{data_intro}\n{data.render()}")
    history = format_context(context, 5)
    if history:
        parts.append(f"Recent conversation:\n{history}")
    parts.append(f"{owner}'s request: {message}\n\n{closing}")
    return "\n\n".join(parts)


def analyze_prompt(
    config: BrainConfig,
    message: str,
    context: Optional[ConversationContext],
    data: str
) -> str:
    owner = config.owner_name
    parts = [f"You are {owner}'s personal assistant. Here is real data from {owner}'s Google account:\n\n{data}"]
    history = format_context(context, 3)
    if history:
        parts.append(f"Recent conversation:\n{history}")
    parts.append(
        f"{owner}'s request: {message}\n\n"
        "Analyze the data above and answer the question directly. Be helpful and concise."
    )
    return "\n\n".join(parts)


def email_parse_prompt(message: str) -> str:
    return EMAIL_PARSE_PROMPT.format(message=message)


def reminder_parse_prompt(message: str) -> str:
    return REMINDER_PARSE_PROMPT.format(message=message)
