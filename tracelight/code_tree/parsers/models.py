"""Language-agnostic data models for extracted items and call edges."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class FieldInfo:
    """Struct field or enum variant."""
    name: str
    type: str | None = None    # None for unit enum variants

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type}


@dataclass
class ExtractedItem:
    id: str                    # "<file>::[Owner::]name::<kind-suffix>"
    kind: str                  # "struct" | "enum" | "trait" | "function" | "method"
    name: str
    line_start: int
    line_end: int
    visibility: str            # "pub" | "pub(crate)" | "private"
    signature: str
    fields: list[FieldInfo] = field(default_factory=list)
    is_async: bool = False
    impl_for: str | None = None     # owning type, methods only
    trait_name: str | None = None   # implemented trait, if any

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.kind,
            "name": self.name,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "visibility": self.visibility,
            "signature": self.signature,
            "is_async": self.is_async,
        }
        if self.fields:
            data["fields"] = [f.to_dict() for f in self.fields]
        if self.impl_for:
            data["impl_for"] = self.impl_for
        if self.trait_name:
            data["trait_name"] = self.trait_name
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractedItem":
        return cls(
            id=data["id"],
            kind=data["type"],
            name=data["name"],
            line_start=data["line_start"],
            line_end=data.get("line_end", data["line_start"]),
            visibility=data.get("visibility", "private"),
            signature=data.get("signature", ""),
            fields=[FieldInfo(f["name"], f.get("type"))
                    for f in data.get("fields", [])],
            is_async=data.get("is_async", False),
            impl_for=data.get("impl_for"),
            trait_name=data.get("trait_name"),
        )


@dataclass
class TestInfo:
    __test__ = False           # keep pytest from collecting this class

    id: str
    name: str
    line_start: int
    is_async: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "line_start": self.line_start,
            "is_async": self.is_async,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TestInfo":
        return cls(
            id=data["id"],
            name=data["name"],
            line_start=data["line_start"],
            is_async=data.get("is_async", False),
        )


@dataclass(frozen=True)
class CallContext:
    """Control-flow construct a call site lexically resides in.

    ``normal`` is the implicit default and is never attached to an edge.
    """
    type: str                  # "if" | "else" | "match_arm" | "loop" | "while" | "for"
    condition: str | None = None
    arm_pattern: str | None = None

    def to_dict(self) -> dict:
        data = {"type": self.type}
        if self.condition is not None:
            data["condition"] = self.condition
        if self.arm_pattern is not None:
            data["arm_pattern"] = self.arm_pattern
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> "CallContext | None":
        if not data or data.get("type", "normal") == "normal":
            return None
        return cls(
            type=data["type"],
            condition=data.get("condition"),
            arm_pattern=data.get("arm_pattern"),
        )


@dataclass(frozen=True)
class CallEdge:
    source: str                # item id of the caller
    target: str                # textual name before resolution, item id after
    file: str
    line: int
    context: CallContext | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "from": self.source,
            "to": self.target,
            "file": self.file,
            "line": self.line,
        }
        if self.context is not None:
            data["context"] = self.context.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CallEdge":
        return cls(
            source=data["from"],
            target=data["to"],
            file=data["file"],
            line=data["line"],
            context=CallContext.from_dict(data.get("context")),
        )


@dataclass(frozen=True)
class UnresolvedEdge:
    source: str
    file: str
    line: int
    receiver_type: str         # syntax node kind of the receiver
    receiver_text: str         # truncated
    method: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "from": self.source,
            "file": self.file,
            "line": self.line,
            "receiver_type": self.receiver_type,
            "receiver_text": self.receiver_text,
            "method": self.method,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UnresolvedEdge":
        return cls(
            source=data["from"],
            file=data["file"],
            line=data["line"],
            receiver_type=data["receiver_type"],
            receiver_text=data["receiver_text"],
            method=data["method"],
            reason=data["reason"],
        )


@dataclass
class CallableBody:
    """A function, method or test whose body Pass 2 walks."""
    item_id: str
    owner: str | None          # impl/trait type, None for free functions
    node: Any                  # tree-sitter function node


@dataclass
class FileAnalysis:
    """Per-file result of Pass 1, later annotated by Pass 2."""
    path: str                  # relative to the target root, posix
    items: list[ExtractedItem] = field(default_factory=list)
    tests: list[TestInfo] = field(default_factory=list)
    callables: list[CallableBody] = field(default_factory=list)
    referenced_types: set[str] = field(default_factory=set)
    call_targets: set[str] = field(default_factory=set)    # textual, before resolution
    tree: Any = None           # kept alive for the nodes in `callables`
    source: bytes = b""

    def to_document(self) -> dict:
        return {
            "kind": "file",
            "path": self.path,
            "items": [i.to_dict() for i in self.items],
            "tests": [t.to_dict() for t in self.tests],
            "referenced_types": sorted(self.referenced_types),
            "call_targets": sorted(self.call_targets),
        }
