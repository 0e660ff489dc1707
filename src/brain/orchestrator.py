"""
Dual-brain orchestrator.

Entry point for every incoming message:

    match = IntentRouter.match(message)       # first matching rule wins
      -> handler for the match                # skills, compose, analyze, overrides
    no match (or multi-step fell through)
      -> Classifier.classify(message)
           action -> powerful backend with prefetch
           chat   -> fast backend chat

Fallback chain for anything sent to the powerful backend:
    powerful (with prefetch) -> fast with the same data -> fast plain chat

route() never raises. A failure anywhere becomes a short reply so one bad
message cannot leave state behind for the next.
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

import structlog

from shared.config import BrainConfig, get_config
from shared.errors import BackendError, ConfigurationError
from shared.http_pool import close_http_pool

from .circuit_breaker import CircuitBreaker
from .classifier import Classifier
from .fast_backend import FastBackend
from .handlers import SkillHandlers
from .intent_router import IntentRouter, RouteMatch
from .powerful_backend import PowerfulBackend
from .prefetch import DataPrefetcher, is_not_configured
from .prompts import (
    COMPOSE_LABELS,
    analyze_prompt,
    compose_prompt,
    fallback_analysis_prompt,
    fast_persona,
    powerful_prompt,
    powerful_system_prompt,
)
from .skills import SkillRegistry, resolve
from .state import (
    ComposeType,
    ConversationContext,
    DataCategory,
    MediaResult,
    PrefetchBundle,
    RouteDecision,
    RouteResult,
)
from .token_manager import TokenManager

logger = structlog.get_logger("brain.orchestrator")

NO_FAST_KEY = "Add GEMINI_API_KEY to .env"
FAST_EMPTY = "I'm here!"
FALLBACK_EMPTY = "I found the data but couldn't analyze it. Try asking differently."
ANALYZE_EMPTY = "Could not analyze the data. Try asking differently."
AGENT_MISSING = "Agent loop not initialized."
AGENT_EMPTY = "Agent loop returned no result."
PLANNER_MISSING = "Planner not initialized."
PLAN_EMPTY = "Could not create a plan for that request."

FALLBACK_TEMPERATURE = 0.4
ANALYZE_TEMPERATURE = 0.3
ANALYSIS_MAX_TOKENS = 4096

Handler = Callable[[RouteMatch, str, ConversationContext, SkillRegistry], Awaitable[Optional[RouteResult]]]


def _reply(value: Any) -> Optional[RouteResult]:
    """Normalize a collaborator's return value; falsy values become None."""
    if not value:
        return None
    if isinstance(value, (str, MediaResult)):
        return value
    return str(value)


class DualBrainOrchestrator:
    """
    Routes each message to the cheapest capable handler.

    Args:
        config: Shared configuration (get_config() if None)
        fast: Fast backend client
        powerful: Powerful backend client
        tokens: TokenManager for the default powerful backend
        skills: Registry used when route() is called without one
        breaker: Circuit breaker guarding the powerful backend

    Usage:
        brain = DualBrainOrchestrator()
        reply = await brain.route("what's on my calendar?", history, skills)
    """

    def __init__(
        self,
        config: Optional[BrainConfig] = None,
        fast: Optional[FastBackend] = None,
        powerful: Optional[PowerfulBackend] = None,
        tokens: Optional[TokenManager] = None,
        classifier: Optional[Classifier] = None,
        router: Optional[IntentRouter] = None,
        prefetcher: Optional[DataPrefetcher] = None,
        skills: Optional[SkillRegistry] = None,
        breaker: Optional[CircuitBreaker] = None
    ):
        self.config = config or get_config()
        self.fast = fast or FastBackend(self.config)
        self.powerful = powerful or PowerfulBackend(tokens=tokens, config=self.config)
        self.classifier = classifier or Classifier(self.fast)
        self.router = router or IntentRouter()
        self.prefetcher = prefetcher or DataPrefetcher()
        self.handlers = SkillHandlers(self.fast, self.config)
        self.skills = skills or SkillRegistry()
        self.breaker = breaker or CircuitBreaker("powerful")

        self._dispatch: Dict[RouteDecision, Handler] = {
            RouteDecision.OVERRIDE_POWERFUL: self._override_powerful,
            RouteDecision.OVERRIDE_FAST: self._override_fast,
            RouteDecision.OVERRIDE_AGENT: self._override_agent,
            RouteDecision.OVERRIDE_PLAN: self._override_plan,
            RouteDecision.MEDIA_UPSCALE: lambda m, msg, ctx, s: self.handlers.upscale(s),
            RouteDecision.MEDIA_IMAGE_ULTRA: lambda m, msg, ctx, s: self.handlers.image(m.args["prompt"], s, ultra=True),
            RouteDecision.MEDIA_IMAGE: lambda m, msg, ctx, s: self.handlers.image(m.args["prompt"], s),
            RouteDecision.MEDIA_VIDEO: lambda m, msg, ctx, s: self.handlers.video(m.args["prompt"], m.args["options"], s),
            RouteDecision.WEATHER: lambda m, msg, ctx, s: self.handlers.weather(m.args["location"], m.args["forecast"], s),
            RouteDecision.SEND_EMAIL: lambda m, msg, ctx, s: self.handlers.send_email(msg, s),
            RouteDecision.REMINDER: lambda m, msg, ctx, s: self.handlers.reminder(msg, s),
            RouteDecision.COMPOSE_DOCUMENT: self._compose,
            RouteDecision.COMPOSE_DRAFT: self._compose,
            RouteDecision.COMPOSE_SUMMARIZE: self._compose,
            RouteDecision.READ_CALENDAR: self._analyze,
            RouteDecision.READ_EMAIL: self._analyze,
            RouteDecision.READ_DRIVE: self._analyze,
            RouteDecision.WEB_SEARCH: lambda m, msg, ctx, s: self.think_with_powerful(msg, ctx, s),
            RouteDecision.MULTI_STEP: self._multi_step,
        }

    def is_ready(self) -> bool:
        return self.fast.is_ready()

    def _resolve_skills(self, skills: Union[SkillRegistry, Mapping[str, Any], None]) -> SkillRegistry:
        if skills is None:
            return self.skills
        if isinstance(skills, SkillRegistry):
            return skills
        return SkillRegistry.from_mapping(skills)

    async def route(
        self,
        message: str,
        context: Optional[ConversationContext] = None,
        skills: Union[SkillRegistry, Mapping[str, Any], None] = None
    ) -> RouteResult:
        """
        Route one message and return the reply (text or a media payload).

        Never raises.
        """
        context = context or []
        try:
            registry = self._resolve_skills(skills)
            return await self._route(message, context, registry)
        except Exception as e:
            logger.error("route_failed", error=str(e), query=message[:50], exc_info=True)
            return f"Error: {e}"

    async def think(
        self,
        message: str,
        context: Optional[ConversationContext] = None,
        skills: Union[SkillRegistry, Mapping[str, Any], None] = None
    ) -> RouteResult:
        """Alias of route() for transports that call think()."""
        return await self.route(message, context, skills)

    async def _route(self, message: str, context: ConversationContext, skills: SkillRegistry) -> RouteResult:
        match = self.router.match(message, skills)
        if match is not None:
            result = await self._dispatch[match.decision](match, message, context, skills)
            if result is not None:
                return result
            logger.info("route_fell_through", decision=match.decision.value)

        label = await self.classifier.classify(message)
        decision = RouteDecision.CLASSIFY_ACTION if label == "action" else RouteDecision.CLASSIFY_CHAT
        logger.info("route_selected", decision=decision.value, query=message[:50])
        if decision == RouteDecision.CLASSIFY_ACTION:
            return await self.think_with_powerful(message, context, skills)
        return await self.think_with_fast(message, context, skills)

    # =========================================================================
    # Overrides and agent subsystems
    # =========================================================================

    async def _override_powerful(self, match, message, context, skills):
        return await self.think_with_powerful(match.args["message"], context, skills)

    async def _override_fast(self, match, message, context, skills):
        return await self.think_with_fast(match.args["message"], context, skills)

    async def _override_agent(self, match, message, context, skills):
        if skills.agent_loop is None:
            return AGENT_MISSING
        return _reply(await resolve(skills.agent_loop.run(match.args["message"], context))) or AGENT_EMPTY

    async def _override_plan(self, match, message, context, skills):
        if skills.planner is None:
            return PLANNER_MISSING
        return _reply(await resolve(skills.planner.plan_and_execute(match.args["message"]))) or PLAN_EMPTY

    async def _multi_step(self, match, message, context, skills) -> Optional[RouteResult]:
        """
        Multi-step orchestrator first; when it returns nothing, the agent loop
        gets the same message. None lets routing fall through to the classifier.
        """
        result = _reply(await resolve(skills.multi_step.route(message, {"userPreferences": ""})))
        if result is not None:
            return result
        if skills.agent_loop is not None:
            logger.info("multi_step_agent_fallback", query=message[:50])
            return _reply(await resolve(skills.agent_loop.run(message, context))) or AGENT_EMPTY
        return None

    # =========================================================================
    # Powerful backend and fallback chain
    # =========================================================================

    async def _call_powerful(self, prompt: str) -> Optional[str]:
        if not await self.breaker.can_execute():
            raise BackendError("powerful", "powerful backend circuit open")
        settled = False
        try:
            text = await self.powerful.complete(prompt, system_prompt=powerful_system_prompt(self.config))
            settled = True
        except ConfigurationError:
            raise
        except Exception:
            settled = True
            await self.breaker.record_failure()
            raise
        finally:
            # Cancelled calls and configuration errors give back their slot
            if not settled:
                self.breaker.release()
        await self.breaker.record_success()
        return text

    async def think_with_powerful(
        self,
        message: str,
        context: ConversationContext,
        skills: SkillRegistry
    ) -> RouteResult:
        """Prefetch grounding data, ask the powerful backend, fall back to fast on failure."""
        data = await self.prefetcher.prefetch(message, skills)
        try:
            tools = None
            if skills.tool_bridge is not None:
                tools = await resolve(skills.tool_bridge.get_tool_descriptions())
            prompt = powerful_prompt(
                self.config,
                message,
                context,
                data,
                memory_context=skills.memory_context,
                learned_context=skills.learned_context,
                tool_descriptions=tools,
            )
            text = await self._call_powerful(prompt)
            if text:
                return text
            logger.warning("powerful_backend_empty", query=message[:50])
        except Exception as e:
            logger.warning("powerful_backend_failed", error=str(e), error_type=type(e).__name__)
        return await self.fallback_to_fast(message, context, data, skills)

    async def fallback_to_fast(
        self,
        message: str,
        context: ConversationContext,
        data: PrefetchBundle,
        skills: SkillRegistry
    ) -> str:
        """
        Stage 2 (fast with the prefetched data) then stage 3 (plain fast chat).

        Only the last stage's failure is shown to the user; when stage 2 ran,
        its failure note is what the user sees.
        """
        failure_note: Optional[str] = None
        if data:
            logger.info("fallback_stage", stage="fast_with_data", sections=data.labels)
            try:
                text = await self.fast.prompt(
                    fallback_analysis_prompt(self.config, message, context, data),
                    system_instruction=powerful_system_prompt(self.config),
                    temperature=FALLBACK_TEMPERATURE,
                    max_output_tokens=ANALYSIS_MAX_TOKENS,
                    timeout=self.config.fallback_timeout,
                )
                if text:
                    return text
                failure_note = FALLBACK_EMPTY
            except Exception as e:
                logger.error("fallback_stage_failed", stage="fast_with_data", error=str(e))
                failure_note = f"Both backends failed: {e}"

        logger.info("fallback_stage", stage="fast_chat")
        if not self.fast.is_ready():
            return failure_note or NO_FAST_KEY
        try:
            text = await self._fast_chat(message, context, skills)
        except Exception as e:
            logger.error("fallback_stage_failed", stage="fast_chat", error=str(e))
            return failure_note or f"Error: {e}"
        return text or failure_note or FAST_EMPTY

    # =========================================================================
    # Fast backend
    # =========================================================================

    async def _fast_chat(self, message: str, context: ConversationContext, skills: SkillRegistry) -> Optional[str]:
        persona = fast_persona(self.config, skills.memory_context, skills.learned_context)
        return await self.fast.chat(message, context, persona)

    async def think_with_fast(
        self,
        message: str,
        context: ConversationContext,
        skills: SkillRegistry
    ) -> str:
        if not self.fast.is_ready():
            return NO_FAST_KEY
        try:
            text = await self._fast_chat(message, context, skills)
        except Exception as e:
            logger.error("fast_chat_failed", error=str(e))
            return f"Error: {e}"
        return text or FAST_EMPTY

    # =========================================================================
    # Compose and analyze
    # =========================================================================

    async def _compose(self, match, message, context, skills):
        return await self.compose(message, context, skills, match.args["compose_type"])

    async def compose(
        self,
        message: str,
        context: ConversationContext,
        skills: SkillRegistry,
        compose_type: ComposeType
    ) -> str:
        """Generate new content with the powerful backend, grounded on optional account data."""
        data = await self.prefetcher.compose_context(message, skills)
        prompt = compose_prompt(self.config, compose_type, message, context, data)
        logger.info("compose_started", compose_type=compose_type.value, prompt_chars=len(prompt))
        try:
            text = await self._call_powerful(prompt)
            if text:
                return f"**Claude composed ({COMPOSE_LABELS[compose_type]}):**\n\n{text}"
            logger.warning("compose_empty", compose_type=compose_type.value)
        except Exception as e:
            logger.warning("compose_failed", compose_type=compose_type.value, error=str(e))
        return await self.fallback_to_fast(message, context, data, skills)

    async def _analyze(self, match, message, context, skills):
        return await self.analyze(message, context, skills, match.args["category"])

    async def analyze(
        self,
        message: str,
        context: ConversationContext,
        skills: SkillRegistry,
        category: DataCategory
    ) -> str:
        """Fetch one category of account data and have the fast backend answer from it."""
        name = category.value
        try:
            data = await self.prefetcher.fetch_category(category, message, skills)
            if is_not_configured(data):
                return f"Google {name} is not set up properly."
            logger.info("analyze_started", category=name, data_chars=len(data))
            text = await self.fast.prompt(
                analyze_prompt(self.config, message, context, data),
                temperature=ANALYZE_TEMPERATURE,
                max_output_tokens=ANALYSIS_MAX_TOKENS,
                timeout=self.config.analyze_timeout,
            )
            return text or ANALYZE_EMPTY
        except Exception as e:
            logger.error("analyze_failed", category=name, error=str(e))
            return f"Failed to get {name}: {e}"

    async def close(self) -> None:
        """Close pooled HTTP clients."""
        await close_http_pool()
