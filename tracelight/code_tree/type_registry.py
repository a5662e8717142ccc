"""Whole-codebase type registry used by call resolution.

The registry maps ``(StructName, FieldName)`` to the field's type and
``(TypeName, MethodName)`` to the method's declared return type. Both values
are stored as base type names: reference markers, lifetimes, generic
arguments and path qualification are stripped, so ``&mut Foo<Bar>`` is
recorded as ``Foo``.

A registry is built once per run from the complete item set and is
read-only afterwards; it is never patched incrementally.
"""

from __future__ import annotations

import re

from .parsers.models import ExtractedItem

_PREFIX_RE = re.compile(r"^(?:\s*(?:&|\*const\b|\*mut\b|'\w+|mut\b|dyn\b|impl\b))*\s*")
_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_WHERE_RE = re.compile(r"\bwhere\b")


def base_type_name(type_text: str | None) -> str | None:
    """Reduce a type expression to its base type name.

    Returns None for types without a nameable base (tuples, slices,
    function pointers).
    """
    if not type_text:
        return None
    text = _PREFIX_RE.sub("", type_text, count=1)
    text = text.split("<", 1)[0].strip()
    text = text.rsplit("::", 1)[-1].strip()
    if _IDENT_RE.fullmatch(text):
        return text
    return None


def extract_return_type(signature: str) -> str | None:
    """Return the text of the trailing ``-> Type`` clause of a signature.

    Arrows nested in generics or parameter types (``F: Fn() -> T``) are
    skipped by tracking bracket depth.
    """
    depth = 0
    prev = ""
    for i, ch in enumerate(signature):
        if depth == 0 and _WHERE_RE.match(signature, i) and not (prev.isalnum() or prev == "_"):
            return None
        if ch in "(<[":
            depth += 1
        elif ch in ")]" or (ch == ">" and prev != "-"):
            depth -= 1
        elif ch == ">" and prev == "-" and depth == 0:
            rest = signature[i + 1:]
            match = _WHERE_RE.search(rest)
            if match:
                rest = rest[:match.start()]
            rest = rest.strip()
            return rest or None
        prev = ch
    return None


class TypeRegistry:
    """Field and return-type lookup keyed by base type name."""

    def __init__(self):
        self._fields: dict[tuple[str, str], str] = {}
        self._returns: dict[tuple[str, str], str] = {}

    def register_struct_field(self, type_name: str, field_name: str,
                              field_type: str) -> None:
        base = base_type_name(field_type)
        if base:
            self._fields[(type_name, field_name)] = base

    def register_return_type(self, type_name: str, method_name: str,
                             return_type: str) -> None:
        base = base_type_name(return_type)
        if base == "Self":
            base = type_name
        if base:
            self._returns[(type_name, method_name)] = base

    def get_field_type(self, type_name: str, field_name: str) -> str | None:
        return self._fields.get((type_name, field_name))

    def get_return_type(self, type_name: str, method_name: str) -> str | None:
        return self._returns.get((type_name, method_name))

    def __len__(self) -> int:
        return len(self._fields) + len(self._returns)

    def __eq__(self, other) -> bool:
        if not isinstance(other, TypeRegistry):
            return NotImplemented
        return self._fields == other._fields and self._returns == other._returns

    def to_dict(self) -> dict:
        """Nested ``{Type: {member: BaseType}}`` dump, sorted for stable output."""
        fields: dict[str, dict[str, str]] = {}
        for (type_name, name), value in sorted(self._fields.items()):
            fields.setdefault(type_name, {})[name] = value
        returns: dict[str, dict[str, str]] = {}
        for (type_name, name), value in sorted(self._returns.items()):
            returns.setdefault(type_name, {})[name] = value
        return {"fields": fields, "return_types": returns}

    @classmethod
    def from_dict(cls, data: dict) -> TypeRegistry:
        registry = cls()
        for type_name, members in data.get("fields", {}).items():
            for name, value in members.items():
                registry._fields[(type_name, name)] = value
        for type_name, members in data.get("return_types", {}).items():
            for name, value in members.items():
                registry._returns[(type_name, name)] = value
        return registry

    def diff(self, other: TypeRegistry) -> set[str]:
        """Type names whose field or return-type entries differ between registries."""
        changed: set[str] = set()
        for mine, theirs in ((self._fields, other._fields),
                             (self._returns, other._returns)):
            for key in mine.keys() | theirs.keys():
                if mine.get(key) != theirs.get(key):
                    changed.add(key[0])
        return changed


def build_type_registry(items: list[ExtractedItem]) -> TypeRegistry:
    """Build the registry from every struct's fields and every method's signature.

    Insertion is last-write-wins; items are visited in id order so that
    collisions settle the same way on every run.
    """
    registry = TypeRegistry()
    for item in sorted(items, key=lambda i: i.id):
        if item.kind == "struct":
            for f in item.fields:
                if f.type:
                    registry.register_struct_field(item.name, f.name, f.type)
        elif item.kind == "method" and item.impl_for:
            ret = extract_return_type(item.signature)
            if ret:
                registry.register_return_type(item.impl_for, item.name, ret)
    return registry
