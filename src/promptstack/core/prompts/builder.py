"""System prompt composition.

SystemPromptBuilder gathers extension descriptors and flags, renders the base
template, and appends the registry's active instructions. Every piece of
caller-supplied text is stripped of Unicode tag characters before it reaches
the output.
"""

from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from promptstack.core.config import ExecutionMode, ModeProvider
from promptstack.core.logger import get_logger
from promptstack.core.prompts.templates import PromptTemplateEngine, TemplateEngine
from promptstack.core.sanitize import sanitize_unicode_tags

if TYPE_CHECKING:
    from promptstack.core.registry import PromptRegistry

MAX_EXTENSIONS = 5
MAX_TOOLS = 50

SYSTEM_TEMPLATE = "system.md"
FALLBACK_PROMPT = "You are a general-purpose AI agent."
CHAT_MODE_NOTICE = (
    "Right now you are in the chat only mode, no access to any tool use and system."
)
ADDITIONAL_INSTRUCTIONS_HEADER = "# Additional Instructions:"
FRONTEND_EXTENSION_NAME = "frontend"

ROUTER_TOOL_SELECTION_PROMPT = (
    "The user has opted to enable tools dynamically. Although an extension may be "
    "enabled, call the tool search tool first to retrieve the tools most relevant to "
    "the user's latest messages, and only use the tools it returns."
)


def should_enable_subagents(model_name: str, enabled: bool = True) -> bool:
    """Default subagent predicate: on for any named model unless switched off."""
    return enabled and bool(model_name.strip())


@dataclass
class ExtensionInfo:
    """An extension as advertised in the system prompt."""

    name: str
    instructions: str
    has_resources: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SystemPromptBuilder:
    """Builds the outbound system prompt from a registry plus extensions.

    Read-only over the registry. Rendering failures never propagate: the
    fixed FALLBACK_PROMPT is used instead.

    Example:
        prompt = (
            registry.builder("gpt-4o")
            .with_extension(ExtensionInfo("developer", "Use the shell.", False))
            .with_router_enabled(True)
            .build()
        )
    """

    def __init__(
        self,
        registry: "PromptRegistry",
        model_name: str,
        engine: TemplateEngine | None = None,
        mode_provider: ModeProvider | None = None,
        subagent_predicate: Callable[[str], bool] | None = None,
    ) -> None:
        """Initialize builder.

        Args:
            registry: Registry supplying override prompt, timestamp and extras
            model_name: Model the prompt is for
            engine: Template engine (defaults to the built-in Jinja2 engine)
            mode_provider: Source of the execution mode (defaults to auto)
            subagent_predicate: Decides subagent support from the model name
        """
        self._registry = registry
        self._model_name = model_name
        self._engine = engine
        self._mode_provider = mode_provider
        self._subagent_predicate = subagent_predicate or should_enable_subagents

        self._extensions: list[ExtensionInfo] = []
        self._frontend_instructions: str | None = None
        self._extension_tool_count: tuple[int, int] | None = None
        self._router_enabled = False

    def with_extension(self, extension: ExtensionInfo) -> "SystemPromptBuilder":
        self._extensions.append(extension)
        return self

    def with_extensions(self, extensions: Iterable[ExtensionInfo]) -> "SystemPromptBuilder":
        self._extensions.extend(extensions)
        return self

    def with_frontend_instructions(self, instructions: str | None) -> "SystemPromptBuilder":
        self._frontend_instructions = instructions
        return self

    def with_extension_and_tool_counts(
        self, extension_count: int, tool_count: int
    ) -> "SystemPromptBuilder":
        self._extension_tool_count = (extension_count, tool_count)
        return self

    def with_router_enabled(self, enabled: bool) -> "SystemPromptBuilder":
        self._router_enabled = enabled
        return self

    def _current_mode(self) -> ExecutionMode:
        if self._mode_provider is None:
            return ExecutionMode.AUTO
        try:
            return self._mode_provider.get_mode()
        except Exception as e:
            get_logger().warn(
                "execution_mode_unavailable", error=str(e), error_type=type(e).__name__
            )
            return ExecutionMode.AUTO

    def _sorted_extensions(self) -> list[ExtensionInfo]:
        extensions = list(self._extensions)
        if self._frontend_instructions is not None:
            extensions.append(
                ExtensionInfo(FRONTEND_EXTENSION_NAME, self._frontend_instructions, False)
            )

        # Stable ordering keeps the prompt byte-identical across sessions for caching
        extensions.sort(key=lambda ext: ext.name)

        return [
            ExtensionInfo(ext.name, sanitize_unicode_tags(ext.instructions), ext.has_resources)
            for ext in extensions
        ]

    def build_context(self, mode: ExecutionMode | None = None) -> dict[str, Any]:
        """Render context passed to the template engine.

        Optional keys (tool_selection_strategy, extension_tool_limits) are
        omitted rather than set to None.
        """
        if mode is None:
            mode = self._current_mode()

        context: dict[str, Any] = {
            "extensions": [ext.to_dict() for ext in self._sorted_extensions()],
            "current_date_time": self._registry.current_date_timestamp,
            "mode": mode.value,
            "is_autonomous": mode is ExecutionMode.AUTO,
            "enable_subagents": self._subagent_predicate(self._model_name),
            "max_extensions": MAX_EXTENSIONS,
            "max_tools": MAX_TOOLS,
        }

        if self._router_enabled:
            context["tool_selection_strategy"] = ROUTER_TOOL_SELECTION_PROMPT

        if self._extension_tool_count is not None:
            extension_count, tool_count = self._extension_tool_count
            if extension_count > MAX_EXTENSIONS or tool_count > MAX_TOOLS:
                context["extension_tool_limits"] = (extension_count, tool_count)

        return context

    def _render_base(self, context: dict[str, Any]) -> str:
        engine = self._engine or PromptTemplateEngine()
        override = self._registry.system_prompt_override
        try:
            if override is not None:
                return engine.render_inline(sanitize_unicode_tags(override), context)
            return engine.render_named(SYSTEM_TEMPLATE, context)
        except Exception as e:
            get_logger().warn(
                "system_prompt_render_failed",
                error=str(e),
                error_type=type(e).__name__,
                override=override is not None,
            )
            return FALLBACK_PROMPT

    def build(self) -> str:
        """Compose the final system prompt text."""
        mode = self._current_mode()
        base_prompt = self._render_base(self.build_context(mode))

        extras = self._registry.active_instruction_texts()
        if mode is ExecutionMode.CHAT:
            extras.append(CHAT_MODE_NOTICE)

        sanitized_extras = [sanitize_unicode_tags(extra) for extra in extras]
        if not sanitized_extras:
            return base_prompt

        return (
            f"{base_prompt}\n\n{ADDITIONAL_INSTRUCTIONS_HEADER}\n\n"
            + "\n\n".join(sanitized_extras)
        )
