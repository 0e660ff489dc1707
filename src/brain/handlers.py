"""
Skill-backed intent handlers.

Each handler takes what the intent router extracted, calls one skill, and turns
the outcome into a user-facing reply. Skill failures come back as short
messages; nothing here raises to the orchestrator.

Send-email and reminder first ask the fast backend to turn free text into JSON
(temperature 0.1). The target skill is called only when every required key was
parsed.
"""

from typing import Any, Dict, Optional

import structlog

from shared.config import BrainConfig
from shared.structured_parse import extract_json_object, require_keys

from .fast_backend import FastBackend
from .prompts import email_parse_prompt, reminder_parse_prompt
from .skills import SkillRegistry, resolve
from .state import MediaResult, RouteResult

logger = structlog.get_logger("brain.handlers")

UPSCALE_FAILED = "Upscale failed."
ULTRA_IMAGE_FAILED = "Ultra image generation failed."
IMAGE_FAILED = "Image generation failed."
VIDEO_FAILED = "Video generation failed."

EMAIL_UNPARSEABLE = (
    "I couldn't understand the email details. "
    'Try: "Send an email to name@email.com about [subject] saying [message]"'
)
EMAIL_NO_RECIPIENT = "I need a recipient email address."
REMINDER_UNPARSEABLE = 'I couldn\'t parse the reminder. Try: "Remind me in 30 minutes to check the oven"'

EMAIL_PARSE_TOKENS = 1024
REMINDER_PARSE_TOKENS = 512
PARSE_TEMPERATURE = 0.1


def _image_reply(result: Any, failure: str) -> RouteResult:
    """Payload when it carries an image, else its message, else a fixed failure string."""
    media = MediaResult.from_skill(result)
    if media is not None:
        if media.success and media.image_base64:
            return media
        if media.message:
            return media.message
    elif isinstance(result, str) and result:
        return result
    return failure


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ("" if value is None else str(value))


class SkillHandlers:
    """
    Usage:
        handlers = SkillHandlers(fast_backend, config)
        reply = await handlers.send_email("send an email to bo@x.io about lunch", skills)
    """

    def __init__(self, fast: FastBackend, config: BrainConfig):
        self.fast = fast
        self.config = config

    # =========================================================================
    # Media
    # =========================================================================

    async def upscale(self, skills: SkillRegistry) -> RouteResult:
        logger.info("media_upscale")
        result = await resolve(skills.image.upscale())
        return _image_reply(result, UPSCALE_FAILED)

    async def image(self, prompt: str, skills: SkillRegistry, ultra: bool = False) -> RouteResult:
        logger.info("media_image", ultra=ultra, prompt=prompt[:50])
        if ultra:
            result = await resolve(skills.image.ultra_generate(prompt))
            return _image_reply(result, ULTRA_IMAGE_FAILED)
        result = await resolve(skills.image.generate(prompt))
        return _image_reply(result, IMAGE_FAILED)

    async def video(self, prompt: str, options: Dict[str, Any], skills: SkillRegistry) -> RouteResult:
        logger.info("media_video", prompt=prompt[:50], options=options)
        result = await resolve(skills.video.generate_video(prompt, options))
        media = MediaResult.from_skill(result)
        if media is not None and media.success:
            return media
        if media is not None and media.message:
            return media.message
        return VIDEO_FAILED

    # =========================================================================
    # Weather
    # =========================================================================

    async def weather(self, location: Optional[str], forecast: bool, skills: SkillRegistry) -> str:
        location = location or self.config.default_weather_location
        logger.info("weather_lookup", location=location, forecast=forecast)
        try:
            if forecast:
                return _text(await resolve(skills.weather.get_forecast(location)))
            return _text(await resolve(skills.weather.get(location)))
        except Exception as e:
            logger.error("weather_failed", error=str(e))
            return f"Weather error: {e}"

    # =========================================================================
    # Structured-parse handlers
    # =========================================================================

    async def _parse(self, prompt: str, max_output_tokens: int) -> Optional[Dict[str, Any]]:
        raw = await self.fast.prompt(
            prompt,
            temperature=PARSE_TEMPERATURE,
            max_output_tokens=max_output_tokens,
            timeout=self.config.parse_timeout,
        )
        return extract_json_object(raw)

    async def send_email(self, message: str, skills: SkillRegistry) -> str:
        try:
            parsed = await self._parse(email_parse_prompt(message), EMAIL_PARSE_TOKENS)
            if parsed is None:
                return EMAIL_UNPARSEABLE
            if not require_keys(parsed, ["to"]):
                return EMAIL_NO_RECIPIENT

            to = str(parsed["to"])
            subject = parsed.get("subject") or "(no subject)"
            body = parsed.get("body") or message
            logger.info("email_sending", to=to, subject=str(subject)[:50])
            result = await resolve(skills.workspace.send_email(to, subject, body))
            return f"Email sent to **{to}**!\nSubject: {subject}\n\n{result if isinstance(result, str) else ''}"
        except Exception as e:
            logger.error("send_email_failed", error=str(e))
            return f"Failed to send email: {e}"

    async def reminder(self, message: str, skills: SkillRegistry) -> str:
        try:
            parsed = await self._parse(reminder_parse_prompt(message), REMINDER_PARSE_TOKENS)
            scheduler = skills.scheduler
            transport = getattr(scheduler, "bot", None)
            if require_keys(parsed, ["time", "message"]) and transport is not None:
                logger.info("reminder_scheduling", time=parsed["time"])
                return _text(await resolve(
                    scheduler.add_reminder(skills.user_id, str(parsed["time"]), str(parsed["message"]), transport)
                ))
            return REMINDER_UNPARSEABLE
        except Exception as e:
            logger.error("reminder_failed", error=str(e))
            return f"Failed to set reminder: {e}"
