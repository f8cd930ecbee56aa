"""Instruction registry: dedup, lifecycle and ordering of prompt instructions.

The registry is purely in-memory and not synchronized. One session loop owns
one registry; persistence and auditing are done by the caller through
PromptStateStore and PromptHistoryWriter.
"""

import dataclasses
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from promptstack.core.exceptions import TemplateRenderError
from promptstack.core.instructions import (
    InstructionId,
    InstructionScope,
    InstructionSource,
    InstructionState,
    PromptInstruction,
    PromptStateSnapshot,
)
from promptstack.core.logger import get_logger
from promptstack.core.prompts.builder import SystemPromptBuilder
from promptstack.core.prompts.templates import PromptTemplateEngine, TemplateEngine

RECIPE_TEMPLATE = "recipe.md"
RECIPE_FALLBACK_PROMPT = "The recipe prompt is busted. Tell the user."

# Hour bucket keeps the rendered prompt byte-stable for upstream prompt caching
HOUR_BUCKET_FORMAT = "%Y-%m-%d %H:00"
FIXED_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PromptRegistry:
    """Owns every PromptInstruction plus the indices over them.

    State:
        _instructions: id -> instruction (any state)
        _applied_order: ids in first-insertion order
        _source_index: canonical source key -> id
        _order_counter: last order value handed out

    Callers only get InstructionId handles and copies of instructions back.
    """

    def __init__(
        self,
        current_date_timestamp: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            current_date_timestamp: Fixed date string used in rendered prompts.
                Defaults to the current UTC hour.
            clock: Source of timestamps for created_at/updated_at
        """
        self._clock = clock or _utcnow
        self._system_prompt_override: str | None = None
        self._current_date_timestamp = current_date_timestamp or self._clock().strftime(
            HOUR_BUCKET_FORMAT
        )
        self._instructions: dict[InstructionId, PromptInstruction] = {}
        self._applied_order: list[InstructionId] = []
        self._source_index: dict[str, InstructionId] = {}
        self._order_counter = 0

    @classmethod
    def with_timestamp(
        cls, dt: datetime, clock: Callable[[], datetime] | None = None
    ) -> "PromptRegistry":
        """Registry with a fixed, second-precision date string."""
        return cls(current_date_timestamp=dt.strftime(FIXED_TIMESTAMP_FORMAT), clock=clock)

    @property
    def current_date_timestamp(self) -> str:
        return self._current_date_timestamp

    @property
    def system_prompt_override(self) -> str | None:
        return self._system_prompt_override

    @property
    def order_counter(self) -> int:
        return self._order_counter

    def set_system_prompt_override(self, template: str) -> None:
        """Replace the default system template with inline template text."""
        self._system_prompt_override = template

    def add_system_prompt_extra(self, instruction: str) -> InstructionId:
        """Register untracked text; every call creates a new instruction."""
        return self.upsert(instruction, InstructionSource.unknown(), InstructionScope.session())

    def add_instruction(
        self,
        instruction: str,
        source: InstructionSource,
        scope: InstructionScope,
    ) -> InstructionId:
        return self.upsert(instruction, source, scope)

    def upsert(
        self,
        content: str,
        source: InstructionSource,
        scope: InstructionScope,
    ) -> InstructionId:
        """Create an instruction, or update the one already registered for source.

        An update replaces scope and content, bumps updated_at and forces the
        state back to ACTIVE. It keeps the original order and applied position.

        Returns:
            Id of the created or updated instruction
        """
        key = source.key()
        if key is not None:
            existing_id = self._source_index.get(key)
            existing = (
                self._instructions.get(existing_id) if existing_id is not None else None
            )
            if existing is not None:
                existing.scope = scope
                existing.update_content(content, self._clock())
                get_logger().debug(
                    "instruction_updated",
                    instruction_id=existing.id.value,
                    source_key=key,
                    order=existing.order,
                )
                return existing.id

        instruction_id = InstructionId.new_random()
        order = self._next_order()
        instruction = PromptInstruction.create(
            instruction_id, source, scope, content, order, self._clock()
        )

        if key is not None:
            self._source_index[key] = instruction_id

        self._applied_order.append(instruction_id)
        self._instructions[instruction_id] = instruction
        get_logger().debug(
            "instruction_registered",
            instruction_id=instruction_id.value,
            source_key=key,
            order=order,
        )
        return instruction_id

    def retire(self, instruction_id: InstructionId) -> InstructionId | None:
        """Mark an instruction RETIRED.

        The source index is left alone, so a later upsert from the same source
        reactivates this same instruction. Retiring twice is allowed and
        re-bumps updated_at.
        """
        instruction = self._instructions.get(instruction_id)
        if instruction is None:
            return None
        instruction.state = InstructionState.RETIRED
        instruction.updated_at = self._clock()
        get_logger().debug("instruction_retired", instruction_id=instruction_id.value)
        return instruction_id

    def retire_by_source(self, source: InstructionSource) -> InstructionId | None:
        """Retire the instruction registered for source and forget the mapping.

        Unlike retire(), the index entry is dropped: the next upsert for this
        source creates a brand-new instruction. The retired record stays
        queryable by id.
        """
        key = source.key()
        if key is None:
            return None
        instruction_id = self._source_index.pop(key, None)
        if instruction_id is None:
            return None
        return self.retire(instruction_id)

    def get_instruction(self, instruction_id: InstructionId) -> PromptInstruction | None:
        instruction = self._instructions.get(instruction_id)
        return dataclasses.replace(instruction) if instruction is not None else None

    def lookup_source(self, source: InstructionSource) -> InstructionId | None:
        """Id currently indexed for source, if any."""
        key = source.key()
        if key is None:
            return None
        return self._source_index.get(key)

    def active_stack(self) -> list[PromptInstruction]:
        """ACTIVE instructions in applied order (ascending order value)."""
        stack = []
        for instruction_id in self._applied_order:
            instruction = self._instructions.get(instruction_id)
            if instruction is not None and instruction.state is InstructionState.ACTIVE:
                stack.append(dataclasses.replace(instruction))
        return stack

    def active_instruction_texts(self) -> list[str]:
        return [instruction.content for instruction in self.active_stack()]

    def snapshot(self) -> PromptStateSnapshot:
        """Export the complete registry state."""
        return PromptStateSnapshot(
            override_prompt=self._system_prompt_override,
            instructions=[dataclasses.replace(i) for i in self._instructions.values()],
            applied_order=list(self._applied_order),
            current_date_timestamp=self._current_date_timestamp,
            order_counter=self._order_counter,
        )

    def restore(self, snapshot: PromptStateSnapshot) -> None:
        """Replace all state with the snapshot's. Not a merge.

        The source index is rebuilt from every instruction whose source has a
        key, whatever its state.
        """
        self._system_prompt_override = snapshot.override_prompt
        self._current_date_timestamp = snapshot.current_date_timestamp
        self._order_counter = snapshot.order_counter

        self._instructions = {
            instruction.id: dataclasses.replace(instruction)
            for instruction in snapshot.instructions
        }
        self._applied_order = list(snapshot.applied_order)

        self._source_index = {}
        for instruction in self._instructions.values():
            key = instruction.source.key()
            if key is not None:
                self._source_index[key] = instruction.id

        get_logger().debug(
            "registry_restored",
            instructions=len(self._instructions),
            order_counter=self._order_counter,
        )

    def builder(self, model_name: str, **kwargs: Any) -> SystemPromptBuilder:
        """Start composing a system prompt over this registry.

        Keyword arguments are passed through to SystemPromptBuilder.
        """
        return SystemPromptBuilder(self, model_name, **kwargs)

    def recipe_prompt(self, engine: TemplateEngine | None = None) -> str:
        """Render the recipe template, or a fixed notice if it is broken."""
        engine = engine or PromptTemplateEngine()
        try:
            return engine.render_named(RECIPE_TEMPLATE, {})
        except TemplateRenderError as e:
            get_logger().warn("recipe_prompt_render_failed", error=e.message)
            return RECIPE_FALLBACK_PROMPT

    def _next_order(self) -> int:
        self._order_counter += 1
        return self._order_counter
