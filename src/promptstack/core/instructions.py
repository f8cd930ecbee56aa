"""Value types for registered prompt instructions.

Sources and scopes are closed tagged variants: a kind plus an optional payload.
Their dict form is externally tagged so persisted snapshots read the same from
any tool: unit variants are bare strings ("CliDefault"), data variants are
single-key objects ({"Hint": {"path": "..."}}).
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SourceKind(str, Enum):
    """Where an instruction came from."""

    CLI_DEFAULT = "CliDefault"
    CLI_USER = "CliUser"
    HINT = "Hint"
    RECIPE = "Recipe"
    FINAL_OUTPUT = "FinalOutput"
    API = "Api"
    EXTENSION = "Extension"
    CUSTOM = "Custom"
    UNKNOWN = "Unknown"


# Payload field name for the source kinds that carry one
_SOURCE_FIELDS: dict[SourceKind, str] = {
    SourceKind.HINT: "path",
    SourceKind.RECIPE: "id",
    SourceKind.API: "route",
    SourceKind.EXTENSION: "name",
    SourceKind.CUSTOM: "label",
}


class ScopeKind(str, Enum):
    """Lifetime an instruction was registered for. Metadata only."""

    SESSION = "Session"
    CONVERSATION = "Conversation"
    TOOL = "Tool"
    PERSISTENT = "Persistent"


_SCOPE_FIELDS: dict[ScopeKind, str] = {
    ScopeKind.TOOL: "name",
}


class InstructionState(str, Enum):
    """Lifecycle state. Nothing in the registry produces REJECTED."""

    ACTIVE = "Active"
    RETIRED = "Retired"
    REJECTED = "Rejected"


def _variant_to_dict(kind: Enum, value: str | None, fields: dict[Any, str]) -> Any:
    if kind in fields:
        return {kind.value: {fields[kind]: value}}
    return kind.value


def _variant_from_dict(data: Any, kind_type: type[Enum], fields: dict[Any, str]) -> tuple[Any, Any]:
    if isinstance(data, str):
        kind = kind_type(data)
        if kind in fields:
            raise ValueError(f"{kind.value} requires a '{fields[kind]}' payload")
        return kind, None
    if isinstance(data, dict) and len(data) == 1:
        ((tag, payload),) = data.items()
        kind = kind_type(tag)
        if kind not in fields:
            raise ValueError(f"{kind.value} takes no payload")
        if not isinstance(payload, dict):
            raise TypeError(f"Payload for {kind.value} must be an object")
        return kind, payload[fields[kind]]
    raise ValueError(f"Cannot decode {kind_type.__name__} from {data!r}")


@dataclass(frozen=True)
class InstructionSource:
    """Provenance of an instruction.

    Use the named constructors (InstructionSource.hint(path), ...) rather
    than building one by hand.
    """

    kind: SourceKind
    value: str | None = None

    def __post_init__(self) -> None:
        if self.kind in _SOURCE_FIELDS:
            if not isinstance(self.value, str):
                raise ValueError(
                    f"{self.kind.value} source requires a string '{_SOURCE_FIELDS[self.kind]}'"
                )
        elif self.value is not None:
            raise ValueError(f"{self.kind.value} source takes no value")

    @classmethod
    def cli_default(cls) -> "InstructionSource":
        return cls(SourceKind.CLI_DEFAULT)

    @classmethod
    def cli_user(cls) -> "InstructionSource":
        return cls(SourceKind.CLI_USER)

    @classmethod
    def hint(cls, path: Any) -> "InstructionSource":
        return cls(SourceKind.HINT, str(path))

    @classmethod
    def recipe(cls, recipe_id: str) -> "InstructionSource":
        return cls(SourceKind.RECIPE, recipe_id)

    @classmethod
    def final_output(cls) -> "InstructionSource":
        return cls(SourceKind.FINAL_OUTPUT)

    @classmethod
    def api(cls, route: str) -> "InstructionSource":
        return cls(SourceKind.API, route)

    @classmethod
    def extension(cls, name: str) -> "InstructionSource":
        return cls(SourceKind.EXTENSION, name)

    @classmethod
    def custom(cls, label: str) -> "InstructionSource":
        return cls(SourceKind.CUSTOM, label)

    @classmethod
    def unknown(cls) -> "InstructionSource":
        return cls(SourceKind.UNKNOWN)

    def key(self) -> str | None:
        """Canonical dedup key, or None for sources that never deduplicate."""
        kind = self.kind
        if kind is SourceKind.CLI_DEFAULT:
            return "cli_default"
        if kind is SourceKind.CLI_USER:
            return "cli_user"
        if kind is SourceKind.HINT:
            return f"hint:{self.value}"
        if kind is SourceKind.RECIPE:
            return f"recipe:{self.value}"
        if kind is SourceKind.FINAL_OUTPUT:
            return "final_output"
        if kind is SourceKind.API:
            return f"api:{self.value}"
        if kind is SourceKind.EXTENSION:
            return f"extension:{self.value}"
        if kind is SourceKind.CUSTOM:
            return f"custom:{self.value}"
        return None

    def label(self) -> str:
        """Human-readable provenance for audit and debug output."""
        kind = self.kind
        if kind is SourceKind.CLI_DEFAULT:
            return "CLI default instructions"
        if kind is SourceKind.CLI_USER:
            return "CLI user instructions"
        if kind is SourceKind.HINT:
            return f"Hint {self.value}"
        if kind is SourceKind.RECIPE:
            return f"Recipe {self.value}"
        if kind is SourceKind.FINAL_OUTPUT:
            return "Final output tool"
        if kind is SourceKind.API:
            return f"API route {self.value}"
        if kind is SourceKind.EXTENSION:
            return f"Extension {self.value}"
        if kind is SourceKind.CUSTOM:
            return str(self.value)
        return "Unknown"

    def to_dict(self) -> Any:
        return _variant_to_dict(self.kind, self.value, _SOURCE_FIELDS)

    @classmethod
    def from_dict(cls, data: Any) -> "InstructionSource":
        kind, value = _variant_from_dict(data, SourceKind, _SOURCE_FIELDS)
        return cls(kind, value)


@dataclass(frozen=True)
class InstructionScope:
    """Scope metadata carried with an instruction; does not gate composition."""

    kind: ScopeKind = ScopeKind.SESSION
    name: str | None = None

    def __post_init__(self) -> None:
        if self.kind is ScopeKind.TOOL:
            if not isinstance(self.name, str):
                raise ValueError("Tool scope requires a string 'name'")
        elif self.name is not None:
            raise ValueError(f"{self.kind.value} scope takes no name")

    @classmethod
    def session(cls) -> "InstructionScope":
        return cls(ScopeKind.SESSION)

    @classmethod
    def conversation(cls) -> "InstructionScope":
        return cls(ScopeKind.CONVERSATION)

    @classmethod
    def tool(cls, name: str) -> "InstructionScope":
        return cls(ScopeKind.TOOL, name)

    @classmethod
    def persistent(cls) -> "InstructionScope":
        return cls(ScopeKind.PERSISTENT)

    def to_dict(self) -> Any:
        return _variant_to_dict(self.kind, self.name, _SCOPE_FIELDS)

    @classmethod
    def from_dict(cls, data: Any) -> "InstructionScope":
        kind, name = _variant_from_dict(data, ScopeKind, _SCOPE_FIELDS)
        return cls(kind, name)


@dataclass(frozen=True)
class InstructionId:
    """Opaque handle for a registered instruction."""

    value: str

    @classmethod
    def new_random(cls) -> "InstructionId":
        return cls(str(uuid.uuid4()))

    def __str__(self) -> str:
        return self.value


def hash_instruction_content(content: str) -> str:
    """Lowercase hex SHA-256 of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8", "surrogatepass")).hexdigest()


def format_timestamp(dt: datetime) -> str:
    """RFC 3339 form used in snapshots and history events."""
    return dt.isoformat().replace("+00:00", "Z")


def parse_timestamp(text: str) -> datetime:
    return datetime.fromisoformat(text)


@dataclass
class PromptInstruction:
    """A single registered instruction.

    content_hash always matches content; use update_content() to change text.
    """

    id: InstructionId
    source: InstructionSource
    scope: InstructionScope
    state: InstructionState
    content: str
    content_hash: str
    created_at: datetime
    updated_at: datetime
    order: int

    @classmethod
    def create(
        cls,
        instruction_id: InstructionId,
        source: InstructionSource,
        scope: InstructionScope,
        content: str,
        order: int,
        timestamp: datetime,
    ) -> "PromptInstruction":
        """Build a fresh ACTIVE instruction created and updated at timestamp."""
        return cls(
            id=instruction_id,
            source=source,
            scope=scope,
            state=InstructionState.ACTIVE,
            content=content,
            content_hash=hash_instruction_content(content),
            created_at=timestamp,
            updated_at=timestamp,
            order=order,
        )

    def update_content(self, content: str, timestamp: datetime) -> None:
        """Replace content and reactivate. Order is never touched."""
        self.content_hash = hash_instruction_content(content)
        self.content = content
        self.updated_at = timestamp
        self.state = InstructionState.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id.value,
            "source": self.source.to_dict(),
            "scope": self.scope.to_dict(),
            "state": self.state.value,
            "content": self.content,
            "content_hash": self.content_hash,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptInstruction":
        """Create instruction from dictionary.

        The hash is recomputed from content so a hand-edited snapshot cannot
        break the content/hash invariant.
        """
        content = data["content"]
        if not isinstance(content, str):
            raise TypeError("Instruction content must be a string")
        order = data["order"]
        if not isinstance(order, int) or order < 0:
            raise ValueError(f"Invalid instruction order: {order!r}")
        return cls(
            id=InstructionId(str(data["id"])),
            source=InstructionSource.from_dict(data["source"]),
            scope=InstructionScope.from_dict(data["scope"]),
            state=InstructionState(data["state"]),
            content=content,
            content_hash=hash_instruction_content(content),
            created_at=parse_timestamp(data["created_at"]),
            updated_at=parse_timestamp(data["updated_at"]),
            order=order,
        )


@dataclass
class PromptStateSnapshot:
    """Complete exportable registry state, the unit of persistence."""

    override_prompt: str | None
    instructions: list[PromptInstruction] = field(default_factory=list)
    applied_order: list[InstructionId] = field(default_factory=list)
    current_date_timestamp: str = ""
    order_counter: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "override_prompt": self.override_prompt,
            "instructions": [instruction.to_dict() for instruction in self.instructions],
            "applied_order": [instruction_id.value for instruction_id in self.applied_order],
            "current_date_timestamp": self.current_date_timestamp,
            "order_counter": self.order_counter,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptStateSnapshot":
        """Create snapshot from dictionary.

        Raises:
            KeyError, TypeError, ValueError: If the data is not a valid snapshot
        """
        if not isinstance(data, dict):
            raise TypeError(f"Snapshot must be an object, got {type(data).__name__}")
        override_prompt = data.get("override_prompt")
        if override_prompt is not None and not isinstance(override_prompt, str):
            raise TypeError("override_prompt must be a string or null")
        order_counter = data["order_counter"]
        if not isinstance(order_counter, int) or order_counter < 0:
            raise ValueError(f"Invalid order_counter: {order_counter!r}")
        return cls(
            override_prompt=override_prompt,
            instructions=[PromptInstruction.from_dict(item) for item in data["instructions"]],
            applied_order=[InstructionId(str(item)) for item in data["applied_order"]],
            current_date_timestamp=str(data["current_date_timestamp"]),
            order_counter=order_counter,
        )
