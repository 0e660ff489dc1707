"""
Skill contracts and the per-call SkillRegistry.

Skills are external services (weather, image/video generation, Google
Workspace, web search, reminders) plus the agent subsystems used for
multi-step work. Each has an explicit Protocol; SkillRegistry holds at most one
implementation per SkillName and checks the contract when it is built, so a
misconfigured skill fails at construction instead of mid-conversation.

Skill methods may be sync or async; call sites go through resolve().
"""

import inspect
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable


async def resolve(value: Any) -> Any:
    """Await value if it is awaitable, else return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


@runtime_checkable
class WeatherSkill(Protocol):
    def get(self, location: str) -> Any: ...
    def get_forecast(self, location: str) -> Any: ...


@runtime_checkable
class ImageSkill(Protocol):
    def generate(self, prompt: str) -> Any: ...
    def ultra_generate(self, prompt: str) -> Any: ...
    def upscale(self) -> Any: ...


@runtime_checkable
class VideoSkill(Protocol):
    def generate_video(self, prompt: str, options: Dict[str, Any]) -> Any: ...


@runtime_checkable
class WorkspaceSkill(Protocol):
    def is_ready(self) -> bool: ...
    def get_recent_emails(self, n: int) -> Any: ...
    def get_today_events(self) -> Any: ...
    def list_recent_files(self, n: int) -> Any: ...
    def search_files(self, term: str) -> Any: ...
    def send_email(self, to: str, subject: str, body: str) -> Any: ...


@runtime_checkable
class SearchSkill(Protocol):
    def search(self, query: str) -> Any: ...


@runtime_checkable
class SchedulerSkill(Protocol):
    """Reminder scheduler. `bot` is the transport handle reminders are delivered through."""
    bot: Any

    def add_reminder(self, user_id: str, time: str, message: str, transport: Any) -> Any: ...


@runtime_checkable
class AgentLoop(Protocol):
    def run(self, message: str, context: Any) -> Any: ...


@runtime_checkable
class TaskPlanner(Protocol):
    def plan_and_execute(self, message: str) -> Any: ...


@runtime_checkable
class MultiStepOrchestrator(Protocol):
    def route(self, message: str, options: Dict[str, Any]) -> Any: ...


@runtime_checkable
class ToolBridge(Protocol):
    def get_tool_descriptions(self) -> Optional[str]: ...


class SkillName(str, Enum):
    """Every skill slot the router knows about, with its contract."""
    WEATHER = "weather"
    IMAGE = "image"
    VIDEO = "video"
    WORKSPACE = "workspace"
    SEARCH = "search"
    SCHEDULER = "scheduler"
    AGENT_LOOP = "agent_loop"
    PLANNER = "planner"
    MULTI_STEP = "multi_step"
    TOOL_BRIDGE = "tool_bridge"

    @property
    def contract(self) -> type:
        return _CONTRACTS[self]


_CONTRACTS = {
    SkillName.WEATHER: WeatherSkill,
    SkillName.IMAGE: ImageSkill,
    SkillName.VIDEO: VideoSkill,
    SkillName.WORKSPACE: WorkspaceSkill,
    SkillName.SEARCH: SearchSkill,
    SkillName.SCHEDULER: SchedulerSkill,
    SkillName.AGENT_LOOP: AgentLoop,
    SkillName.PLANNER: TaskPlanner,
    SkillName.MULTI_STEP: MultiStepOrchestrator,
    SkillName.TOOL_BRIDGE: ToolBridge,
}

# camelCase registry keys used by existing host integrations, mapped onto skill slots
LEGACY_KEYS = {
    "weather": SkillName.WEATHER,
    "geminiImage": SkillName.IMAGE,
    "geminiVideo": SkillName.VIDEO,
    "googleWorkspace": SkillName.WORKSPACE,
    "braveSearch": SkillName.SEARCH,
    "scheduler": SkillName.SCHEDULER,
}


@dataclass
class SkillRegistry:
    """
    Skills available for one call, plus per-call prompt enrichment.

    Usage:
        skills = SkillRegistry(weather=OpenWeather(), workspace=google, user_id="42")
        result = await brain.route("weather in Boston", history, skills)
    """
    weather: Optional[WeatherSkill] = None
    image: Optional[ImageSkill] = None
    video: Optional[VideoSkill] = None
    workspace: Optional[WorkspaceSkill] = None
    search: Optional[SearchSkill] = None
    scheduler: Optional[SchedulerSkill] = None
    agent_loop: Optional[AgentLoop] = None
    planner: Optional[TaskPlanner] = None
    multi_step: Optional[MultiStepOrchestrator] = None
    tool_bridge: Optional[ToolBridge] = None

    user_id: str = ""
    memory_context: str = ""
    learned_context: str = ""

    def __post_init__(self):
        for name in SkillName:
            skill = getattr(self, name.value)
            if skill is not None and not isinstance(skill, name.contract):
                raise TypeError(
                    f"Skill '{name.value}' does not satisfy {name.contract.__name__}: "
                    f"{type(skill).__name__}"
                )

    def get(self, name: SkillName) -> Any:
        return getattr(self, name.value)

    def has(self, name: SkillName) -> bool:
        return self.get(name) is not None

    def workspace_ready(self) -> bool:
        """Workspace present and reporting ready. A failing is_ready() counts as not ready."""
        if self.workspace is None:
            return False
        try:
            return bool(self.workspace.is_ready())
        except Exception:
            return False

    def with_overrides(self, **overrides: Any) -> "SkillRegistry":
        """Copy with some slots replaced (late binding per call)."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(overrides)
        return SkillRegistry(**values)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "SkillRegistry":
        """
        Build a registry from a plain dict.

        Accepts SkillName values ("workspace"), the legacy host keys
        ("googleWorkspace", "braveSearch", ...) and the enrichment keys
        user_id / memory_context / learned_context (legacy: _userId,
        _memoryContext, _learnedContext). Unknown keys are ignored.
        """
        values: Dict[str, Any] = {}
        slot_names = {name.value for name in SkillName}
        extras = {
            "user_id": "user_id", "_userId": "user_id",
            "memory_context": "memory_context", "_memoryContext": "memory_context",
            "learned_context": "learned_context", "_learnedContext": "learned_context",
        }
        for key, value in mapping.items():
            if key in slot_names:
                values[key] = value
            elif key in LEGACY_KEYS:
                values[LEGACY_KEYS[key].value] = value
            elif key in extras:
                values[extras[key]] = value or ""
        return cls(**values)
