"""Scope-aware call resolution for Rust function bodies (Pass 2).

For every ``call_expression`` in a body the resolver decides what the call
targets:

- plain calls (``helper()``, ``Type::new()``) keep their textual path, with
  ``Self::`` rewritten to the enclosing impl type;
- method calls (``recv.method()``) need the receiver's type. It is inferred
  from a per-function :class:`ScopeTracker` plus the whole-codebase
  :class:`~tracelight.code_tree.type_registry.TypeRegistry`.

Receivers that cannot be typed become :class:`UnresolvedEdge` records with
a diagnostic reason instead of a guessed target. Inference is deliberately
shallow: no generics, trait objects or macro bodies.
"""

from __future__ import annotations

import re

from ..type_registry import TypeRegistry, base_type_name
from .base import collapse_whitespace, node_text
from .models import CallableBody, CallContext, CallEdge, UnresolvedEdge

# Diagnostic reasons for unresolved method calls
VARIABLE_NOT_IN_SCOPE = "variable_not_in_scope"
TYPE_LOOKUP_FAILED = "type_lookup_failed"
SELF_TYPE_UNKNOWN = "self_type_unknown"
SELF_TYPE_LOOKUP_FAILED = "self_type_lookup_failed"
FIELD_TYPE_UNKNOWN = "field_type_unknown"
RETURN_TYPE_UNKNOWN = "return_type_unknown"
UNSUPPORTED_RECEIVER_TYPE = "unsupported_receiver_type"

RECEIVER_TEXT_LIMIT = 60

# Return types that say less than the factory's own type
_WRAPPER_TYPES = frozenset({"Result", "Option"})

_TRANSPARENT_NODES = ("try_expression", "await_expression", "parenthesized_expression")
_TURBOFISH_RE = re.compile(r"::\s*<[^<>]*(?:<[^<>]*>[^<>]*)*>")


def _same_node(a, b) -> bool:
    return (a.type == b.type and a.start_byte == b.start_byte
            and a.end_byte == b.end_byte)


class ScopeTracker:
    """Per-function map from local variable name to inferred base type."""

    def __init__(self, self_type: str | None = None):
        self.self_type = self_type
        self.variables: dict[str, str] = {}

    def bind(self, name: str, type_name: str) -> None:
        if type_name == "Self":
            if self.self_type is None:
                return
            type_name = self.self_type
        self.variables[name] = type_name

    def unbind(self, name: str) -> None:
        self.variables.pop(name, None)

    def lookup(self, name: str) -> str | None:
        return self.variables.get(name)


class CallResolver:
    """Resolve the calls of one file's callable bodies against a registry."""

    def __init__(self, registry: TypeRegistry, source: bytes, file_path: str):
        self.registry = registry
        self.source = source
        self.file_path = file_path
        self.referenced_types: set[str] = set()

    # ── Registry access ─────────────────────────────────────────────────

    def _field_type(self, type_name: str, field_name: str) -> str | None:
        self.referenced_types.add(type_name)
        return self.registry.get_field_type(type_name, field_name)

    def _return_type(self, type_name: str, method_name: str) -> str | None:
        self.referenced_types.add(type_name)
        return self.registry.get_return_type(type_name, method_name)

    # ── Syntax helpers ──────────────────────────────────────────────────

    def _text(self, node) -> str:
        return node_text(node, self.source)

    def _unwrap(self, node):
        """Look through ``?``, ``.await``, ``&`` and parentheses."""
        while node is not None:
            if node.type in _TRANSPARENT_NODES:
                inner = node.named_children[0] if node.named_children else None
            elif node.type == "reference_expression":
                inner = node.child_by_field_name("value")
            else:
                break
            if inner is None:
                break
            node = inner
        return node

    def _call_function(self, call):
        func = call.child_by_field_name("function")
        if func is not None and func.type == "generic_function":
            func = func.child_by_field_name("function")
        return func

    def _path_parts(self, node) -> list[str]:
        text = _TURBOFISH_RE.sub("", collapse_whitespace(self._text(node)))
        return [p.strip() for p in text.split("::")]

    def _qualifier(self, parts: list[str], tracker: ScopeTracker) -> str | None:
        if len(parts) < 2:
            return None
        qualifier = parts[-2]
        if qualifier == "Self":
            return tracker.self_type
        return qualifier

    def _pattern_name(self, pattern) -> str | None:
        if pattern is None:
            return None
        if pattern.type == "identifier":
            return self._text(pattern)
        if pattern.type == "mut_pattern":
            for child in pattern.named_children:
                if child.type == "identifier":
                    return self._text(child)
        return None

    # ── Scope ───────────────────────────────────────────────────────────

    def _seed_scope(self, fn_node, owner: str | None) -> ScopeTracker:
        tracker = ScopeTracker(self_type=owner)
        params = fn_node.child_by_field_name("parameters")
        if params is None:
            return tracker
        for param in params.named_children:
            if param.type != "parameter":
                continue
            name = self._pattern_name(param.child_by_field_name("pattern"))
            type_node = param.child_by_field_name("type")
            if name and type_node is not None:
                type_name = base_type_name(self._text(type_node))
                if type_name:
                    tracker.bind(name, type_name)
        return tracker

    def _bind_let(self, node, tracker: ScopeTracker) -> None:
        name = self._pattern_name(node.child_by_field_name("pattern"))
        if name is None:
            return
        type_node = node.child_by_field_name("type")
        type_name = None
        if type_node is not None:
            type_name = base_type_name(self._text(type_node))
        if type_name is None:
            value = node.child_by_field_name("value")
            if value is not None:
                type_name = self._infer_value_type(value, tracker)
        if type_name:
            tracker.bind(name, type_name)
        else:
            # Shadowing an earlier binding with an unknown value
            tracker.unbind(name)

    def _infer_value_type(self, value, tracker: ScopeTracker) -> str | None:
        value = self._unwrap(value)
        if value.type == "struct_expression":
            name = value.child_by_field_name("name")
            if name is None:
                return None
            type_name = base_type_name(self._text(name))
            return tracker.self_type if type_name == "Self" else type_name
        if value.type != "call_expression":
            return None

        func = self._call_function(value)
        if func is None:
            return None
        if func.type == "scoped_identifier":
            parts = self._path_parts(func)
            qualifier = self._qualifier(parts, tracker)
            if not qualifier or not qualifier[0].isupper():
                return None
            returned = self._return_type(qualifier, parts[-1])
            if returned and returned not in _WRAPPER_TYPES:
                return returned
            return qualifier
        if func.type == "field_expression":
            receiver_type, _ = self._resolve_receiver(
                func.child_by_field_name("value"), tracker)
            if receiver_type:
                method = self._text(func.child_by_field_name("field"))
                return self._return_type(receiver_type, method)
        return None

    # ── Receivers ───────────────────────────────────────────────────────

    def _resolve_receiver(self, node, tracker: ScopeTracker) -> tuple[str | None, str | None]:
        """Return ``(type, None)`` on success or ``(None, reason)``."""
        node = self._unwrap(node)
        if node is None:
            return None, UNSUPPORTED_RECEIVER_TYPE
        kind = node.type

        if kind == "identifier":
            found = tracker.lookup(self._text(node))
            if found:
                return found, None
            return None, VARIABLE_NOT_IN_SCOPE

        if kind == "self":
            if tracker.self_type:
                return tracker.self_type, None
            return None, SELF_TYPE_UNKNOWN

        if kind == "field_expression":
            inner = self._unwrap(node.child_by_field_name("value"))
            if inner is None:
                return None, UNSUPPORTED_RECEIVER_TYPE
            field = self._text(node.child_by_field_name("field"))
            if inner.type == "self":
                if not tracker.self_type:
                    return None, SELF_TYPE_UNKNOWN
                found = self._field_type(tracker.self_type, field)
                return (found, None) if found else (None, SELF_TYPE_LOOKUP_FAILED)
            if inner.type == "identifier":
                owner = tracker.lookup(self._text(inner))
            else:
                owner, _ = self._resolve_receiver(inner, tracker)
            if not owner:
                return None, FIELD_TYPE_UNKNOWN
            found = self._field_type(owner, field)
            return (found, None) if found else (None, TYPE_LOOKUP_FAILED)

        if kind == "call_expression":
            func = self._call_function(node)
            if func is not None and func.type == "scoped_identifier":
                parts = self._path_parts(func)
                qualifier = self._qualifier(parts, tracker)
                found = self._return_type(qualifier, parts[-1]) if qualifier else None
                return (found, None) if found else (None, RETURN_TYPE_UNKNOWN)
            if func is not None and func.type == "field_expression":
                inner_type, reason = self._resolve_receiver(
                    func.child_by_field_name("value"), tracker)
                if inner_type is None:
                    return None, reason
                method = self._text(func.child_by_field_name("field"))
                found = self._return_type(inner_type, method)
                return (found, None) if found else (None, RETURN_TYPE_UNKNOWN)
            if func is not None and func.type == "identifier":
                return None, RETURN_TYPE_UNKNOWN

        return None, UNSUPPORTED_RECEIVER_TYPE

    # ── Control flow ────────────────────────────────────────────────────

    def _call_context(self, call, boundary) -> CallContext | None:
        """Nearest enclosing branch or loop construct, up to the function node.

        Both arms of an ``if`` share the same ``if_expression`` parent, so the
        ancestor we arrived from decides between ``if`` and ``else``.
        """
        came_from = call
        node = call.parent
        while node is not None and not _same_node(node, boundary):
            kind = node.type
            if kind == "if_expression":
                condition = node.child_by_field_name("condition")
                cond_text = collapse_whitespace(self._text(condition)) if condition else None
                alternative = node.child_by_field_name("alternative")
                if alternative is not None and _same_node(came_from, alternative):
                    return CallContext("else", condition=cond_text)
                return CallContext("if", condition=cond_text)
            if kind == "match_arm":
                pattern = node.child_by_field_name("pattern")
                return CallContext("match_arm", arm_pattern=(
                    collapse_whitespace(self._text(pattern)) if pattern else None))
            if kind == "loop_expression":
                return CallContext("loop")
            if kind == "while_expression":
                condition = node.child_by_field_name("condition")
                return CallContext("while", condition=(
                    collapse_whitespace(self._text(condition)) if condition else None))
            if kind == "for_expression":
                pattern = node.child_by_field_name("pattern")
                value = node.child_by_field_name("value")
                binding = f"{self._text(pattern)} in {self._text(value)}" \
                    if pattern is not None and value is not None else None
                return CallContext("for", condition=(
                    collapse_whitespace(binding) if binding else None))
            came_from = node
            node = node.parent
        return None

    # ── Calls ───────────────────────────────────────────────────────────

    def _handle_call(self, call, tracker: ScopeTracker, body: CallableBody,
                     edges: list[CallEdge], unresolved: list[UnresolvedEdge]) -> None:
        func = self._call_function(call)
        if func is None:
            return
        line = call.start_point[0] + 1

        if func.type == "field_expression":
            receiver = func.child_by_field_name("value")
            method = self._text(func.child_by_field_name("field"))
            receiver_type, reason = self._resolve_receiver(receiver, tracker)
            if receiver_type:
                self.referenced_types.add(receiver_type)
                edges.append(CallEdge(
                    source=body.item_id,
                    target=f"{receiver_type}::{method}",
                    file=self.file_path,
                    line=line,
                    context=self._call_context(call, body.node),
                ))
            else:
                unresolved.append(UnresolvedEdge(
                    source=body.item_id,
                    file=self.file_path,
                    line=line,
                    receiver_type=receiver.type,
                    receiver_text=collapse_whitespace(self._text(receiver))[:RECEIVER_TEXT_LIMIT],
                    method=method,
                    reason=reason,
                ))
        elif func.type in ("identifier", "scoped_identifier"):
            target = _TURBOFISH_RE.sub("", collapse_whitespace(self._text(func)))
            if target.startswith("Self::") and tracker.self_type:
                target = tracker.self_type + target[len("Self"):]
            edges.append(CallEdge(
                source=body.item_id,
                target=target,
                file=self.file_path,
                line=line,
                context=self._call_context(call, body.node),
            ))

    def resolve_body(self, body: CallableBody) -> tuple[list[CallEdge], list[UnresolvedEdge]]:
        """Walk one function body in source order, binding scope as it goes."""
        edges: list[CallEdge] = []
        unresolved: list[UnresolvedEdge] = []
        block = body.node.child_by_field_name("body")
        if block is None:
            return edges, unresolved
        tracker = self._seed_scope(body.node, body.owner)

        # (node, bind_let): a let is bound only after its value has been walked
        stack = [(block, False)]
        while stack:
            node, bind_let = stack.pop()
            if bind_let:
                self._bind_let(node, tracker)
                continue
            # Nested fns are their own callables, or not extracted inside impls
            if node.type == "function_item":
                continue
            if node.type == "let_declaration":
                stack.append((node, True))
            elif node.type == "call_expression":
                self._handle_call(node, tracker, body, edges, unresolved)
            stack.extend((child, False) for child in reversed(node.children))
        return edges, unresolved
