"""Per-session wiring of registry, snapshot store and history log.

The registry stays I/O-free; PromptSession is the caller that snapshots it and
records audit events after each mutation, as allowed by the configured
refinement mode.
"""

from functools import partial
from pathlib import Path

from promptstack.core.config import PromptRefinementMode, PromptStackConfig
from promptstack.core.history import InstructionAction, PromptHistoryWriter
from promptstack.core.instructions import (
    InstructionId,
    InstructionScope,
    InstructionSource,
    InstructionState,
    PromptStateSnapshot,
)
from promptstack.core.logger import get_logger
from promptstack.core.prompts.builder import ExtensionInfo, should_enable_subagents
from promptstack.core.prompts.templates import PromptTemplateEngine
from promptstack.core.registry import PromptRegistry
from promptstack.core.state_store import PromptStateStore


class PromptSession:
    """Owns one PromptRegistry for a (project, session) pair.

    Refinement modes:
    - disabled: nothing is persisted or recorded
    - persist-only: mutations are snapshotted and recorded; a stored
      snapshot is not restored on open
    - enabled: as persist-only, and a stored snapshot is restored on open
    """

    def __init__(
        self,
        project_path: str | Path,
        session_id: str,
        config: PromptStackConfig | None = None,
        registry: PromptRegistry | None = None,
    ) -> None:
        """Open a session, restoring stored state when enabled.

        Raises:
            StorageError: If persisted state cannot be read or the history
                file cannot be opened
        """
        self.project_path = str(project_path)
        self.session_id = session_id
        self.config = config or PromptStackConfig()
        self.registry = registry or PromptRegistry()
        self.engine = PromptTemplateEngine(self.config.template_dir)

        mode = self.config.refinement_mode
        self.persistent = mode is not PromptRefinementMode.DISABLED
        self.store: PromptStateStore | None = None
        self.history: PromptHistoryWriter | None = None

        if self.persistent:
            self.store = PromptStateStore(self.config.config_root)

        if mode is PromptRefinementMode.ENABLED and self.store is not None:
            snapshot = self.store.load(self.project_path, session_id)
            if snapshot is not None:
                self.registry.restore(snapshot)
                get_logger().info(
                    "prompt_state_restored",
                    session_id=session_id,
                    instructions=len(snapshot.instructions),
                )

        # Opened last so a failed restore leaves no file handle behind
        if self.persistent:
            self.history = PromptHistoryWriter(
                self.project_path, session_id, self.config.config_root
            )

    def add_instruction(
        self,
        content: str,
        source: InstructionSource,
        scope: InstructionScope | None = None,
    ) -> InstructionId:
        """Upsert an instruction and record what happened.

        Records REGISTER for a new instruction, REFRESH for an update of an
        active one, APPLY when the update reactivated a retired one.
        """
        scope = scope or InstructionScope.session()
        previous_id = self.registry.lookup_source(source)
        previous = (
            self.registry.get_instruction(previous_id) if previous_id is not None else None
        )

        instruction_id = self.registry.upsert(content, source, scope)

        if previous is None or previous.id != instruction_id:
            action = InstructionAction.REGISTER
        elif previous.state is InstructionState.ACTIVE:
            action = InstructionAction.REFRESH
        else:
            action = InstructionAction.APPLY

        self._after_mutation(action, instruction_id)
        return instruction_id

    def retire(self, instruction_id: InstructionId) -> InstructionId | None:
        retired = self.registry.retire(instruction_id)
        if retired is not None:
            self._after_mutation(InstructionAction.RETIRE, retired)
        return retired

    def retire_by_source(self, source: InstructionSource) -> InstructionId | None:
        retired = self.registry.retire_by_source(source)
        if retired is not None:
            self._after_mutation(InstructionAction.RETIRE, retired)
        return retired

    def build_prompt(
        self,
        model_name: str,
        extensions: list[ExtensionInfo] | None = None,
        frontend_instructions: str | None = None,
        extension_tool_count: tuple[int, int] | None = None,
        router_enabled: bool = False,
    ) -> str:
        """Compose the system prompt with this session's configuration."""
        builder = self.registry.builder(
            model_name,
            engine=self.engine,
            mode_provider=self.config,
            subagent_predicate=partial(
                should_enable_subagents, enabled=self.config.enable_subagents
            ),
        )
        builder.with_extensions(extensions or [])
        builder.with_frontend_instructions(frontend_instructions)
        builder.with_router_enabled(router_enabled)
        if extension_tool_count is not None:
            builder.with_extension_and_tool_counts(*extension_tool_count)
        return builder.build()

    def save(self) -> Path | None:
        """Snapshot the registry now. Returns None when persistence is off."""
        if self.store is None:
            return None
        return self.store.save(self.registry.snapshot(), self.project_path, self.session_id)

    def clear(self) -> None:
        """Drop the stored snapshot and empty the registry.

        The registry keeps its clock and date stamp. The history log is
        append-only and is kept.
        """
        if self.store is not None:
            self.store.remove(self.project_path, self.session_id)
        self.registry.restore(
            PromptStateSnapshot(
                None, current_date_timestamp=self.registry.current_date_timestamp
            )
        )

    def close(self) -> None:
        if self.history is not None:
            self.history.close()

    def __enter__(self) -> "PromptSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _after_mutation(self, action: InstructionAction, instruction_id: InstructionId) -> None:
        if not self.persistent:
            return
        instruction = self.registry.get_instruction(instruction_id)
        if instruction is None:
            return
        if self.history is not None:
            self.history.record_instruction(
                action,
                instruction.id.value,
                instruction.source,
                instruction.scope,
                instruction.content,
                instruction.order,
            )
        self.save()
