"""
Fallback CHAT/ACTION classifier.

Used only when no intent pattern matched. One fast-backend call with a fixed
few-shot prompt, temperature 0 and a 10-token budget:
- CHAT: casual conversation -> fast backend
- ACTION: needs data, tools or heavy reasoning -> powerful backend

Never raises. Anything other than a clean ACTION (unclear output, timeout,
HTTP error) is CHAT, since it gates latency for every unmatched message.
"""

from typing import Literal, Optional

import structlog

from .fast_backend import FastBackend

logger = structlog.get_logger("brain.classifier")

Label = Literal["chat", "action"]

CLASSIFIER_PROMPT = """You are a task classifier. Given a user message, respond with ONLY one word:

CHAT - if it's casual conversation, greetings, simple questions, explanations, or general knowledge.
ACTION - if it needs: coding, file operations, searching Google Drive, reading Gmail, research, calculations, scheduling, or automation.

Examples:
"Hey how are you?" -> CHAT
"What was my last email?" -> ACTION
"Search my drive for invoices" -> ACTION
"Create a script that..." -> ACTION
"Tell me about React" -> CHAT
"Debug this code..." -> ACTION
"Send an email to..." -> ACTION
"What's on my calendar?" -> ACTION

Respond with only: CHAT or ACTION (No punctuation)"""

MAX_OUTPUT_TOKENS = 10


def parse_label(text: Optional[str]) -> Optional[Label]:
    """Map raw model output to a label; only the two literal tokens count."""
    if not text:
        return None
    token = text.strip().upper()
    if token == "ACTION":
        return "action"
    if token == "CHAT":
        return "chat"
    return None


class Classifier:
    """
    Usage:
        classifier = Classifier(fast_backend)
        label = await classifier.classify("what's on my calendar?")  # "action"
    """

    def __init__(self, fast: FastBackend, timeout: Optional[float] = None):
        self.fast = fast
        self.timeout = timeout if timeout is not None else fast.config.classifier_timeout

    async def classify(self, message: str) -> Label:
        try:
            text = await self.fast.prompt(
                message,
                system_instruction=CLASSIFIER_PROMPT,
                temperature=0,
                max_output_tokens=MAX_OUTPUT_TOKENS,
                timeout=self.timeout,
            )
        except Exception as e:
            # Errors count as chat
            logger.warning("classification_failed", error=str(e), query=message[:50])
            return "chat"

        label = parse_label(text)
        if label is None:
            logger.warning("classification_unclear", query=message[:50], output=(text or "")[:20])
            return "chat"

        logger.debug("message_classified", query=message[:50], label=label)
        return label
