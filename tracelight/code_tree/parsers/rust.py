"""Rust language parser using tree-sitter-rust."""

from pathlib import Path
from tree_sitter import Language, Parser
import tree_sitter_rust as ts_rust

from ..type_registry import base_type_name
from .base import (
    LanguageParser, node_text, normalize_signature, module_key,
)
from .models import (
    CallableBody, ExtractedItem, FieldInfo, FileAnalysis, TestInfo,
)
from .rust_calls import CallResolver

RUST_LANGUAGE = Language(ts_rust.language())

# Suffix of the item id per item kind
ID_SUFFIX = {
    "struct": "struct",
    "enum": "enum",
    "trait": "trait",
    "function": "fn",
    "method": "method",
}

_FUNCTION_NODES = ("function_item", "function_signature_item")


class RustParser(LanguageParser):

    @property
    def language_name(self) -> str:
        return "rust"

    @property
    def file_extensions(self) -> list[str]:
        return [".rs"]

    def __init__(self):
        self._parser = Parser(RUST_LANGUAGE)

    # ── Helpers ─────────────────────────────────────────────────────────

    def _get_visibility(self, node) -> str:
        for child in node.children:
            if child.type == "visibility_modifier":
                text = child.text.decode("utf8")
                if text.strip() == "pub":
                    return "pub"
                return "pub(crate)"
        return "private"

    def _get_attributes(self, node, source: bytes) -> list[str]:
        """Walk backward through siblings to collect #[...] attributes."""
        attrs = []
        sibling = node.prev_named_sibling
        while sibling is not None:
            if sibling.type == "attribute_item":
                attrs.insert(0, node_text(sibling, source))
                sibling = sibling.prev_named_sibling
                continue
            elif sibling.type in ("line_comment", "block_comment"):
                sibling = sibling.prev_named_sibling
                continue
            break
        return attrs

    def _is_test(self, attrs: list[str]) -> bool:
        for a in attrs:
            inner = a[2:-1].strip() if a.startswith("#[") else a
            path = inner.split("(", 1)[0].strip()
            if path in ("test", "bench", "rstest") or path.endswith("::test"):
                return True
        return False

    def _is_async_fn(self, node, source: bytes) -> bool:
        for child in node.children:
            if child.type == "function_modifiers":
                return "async" in node_text(child, source).split()
            if not child.is_named and node_text(child, source) == "async":
                return True
            if child.type == "identifier" or node_text(child, source) == "fn":
                break
        return False

    def _get_name(self, node, source: bytes) -> str | None:
        name = node.child_by_field_name("name")
        if name is None:
            return None
        return node_text(name, source)

    def _get_signature(self, node, source: bytes) -> str:
        """Declaration header: from the item start up to its body's opening brace."""
        body = node.child_by_field_name("body")
        end = node.end_byte
        if body is not None and body.type in ("block", "declaration_list",
                                              "field_declaration_list",
                                              "enum_variant_list"):
            end = body.start_byte
        return normalize_signature(source[node.start_byte:end].decode("utf8"))

    def _enclosing_impl(self, node):
        """Nearest impl_item ancestor, or None when the walk reaches the root."""
        parent = node.parent
        while parent is not None:
            if parent.type == "impl_item":
                return parent
            parent = parent.parent
        return None

    def _extract_struct_fields(self, node, source: bytes) -> list[FieldInfo]:
        body = node.child_by_field_name("body")
        if body is None:
            return []
        fields = []
        if body.type == "field_declaration_list":
            for decl in body.named_children:
                if decl.type != "field_declaration":
                    continue
                name = decl.child_by_field_name("name")
                type_node = decl.child_by_field_name("type")
                if name is not None:
                    fields.append(FieldInfo(
                        name=node_text(name, source),
                        type=node_text(type_node, source) if type_node else None,
                    ))
        elif body.type == "ordered_field_declaration_list":
            # Tuple struct: fields are addressed by position (self.0)
            index = 0
            for child in body.named_children:
                if child.type in ("visibility_modifier", "attribute_item"):
                    continue
                fields.append(FieldInfo(name=str(index), type=node_text(child, source)))
                index += 1
        return fields

    def _get_enum_variants(self, node, source: bytes) -> list[FieldInfo]:
        body = node.child_by_field_name("body")
        if body is None:
            return []
        variants = []
        for variant in body.named_children:
            if variant.type != "enum_variant":
                continue
            name = variant.child_by_field_name("name")
            if name is None:
                continue
            payload = variant.child_by_field_name("body")
            variants.append(FieldInfo(
                name=node_text(name, source),
                type=node_text(payload, source) if payload is not None else None,
            ))
        return variants

    # ── Parsing ─────────────────────────────────────────────────────────

    def _make_id(self, prefix: str, name: str, suffix: str,
                 owner: str | None, seen: set[str], line: int) -> str:
        parts = [prefix]
        if owner:
            parts.append(owner)
        item_id = "::".join(parts + [name, suffix])
        if item_id in seen:
            item_id = "::".join(parts + [f"{name}@{line}", suffix])
        seen.add(item_id)
        return item_id

    def _parse_function(self, node, source: bytes, analysis: FileAnalysis,
                        prefix: str, seen: set[str], owner: str | None = None,
                        trait_name: str | None = None) -> None:
        name = self._get_name(node, source)
        if name is None:
            return
        line = node.start_point[0] + 1
        is_async = self._is_async_fn(node, source)
        body = node.child_by_field_name("body")

        if self._is_test(self._get_attributes(node, source)):
            item_id = self._make_id(prefix, name, "test", owner, seen, line)
            analysis.tests.append(TestInfo(
                id=item_id, name=name, line_start=line, is_async=is_async,
            ))
        else:
            kind = "method" if owner else "function"
            item_id = self._make_id(prefix, name, ID_SUFFIX[kind], owner, seen, line)
            analysis.items.append(ExtractedItem(
                id=item_id,
                kind=kind,
                name=name,
                line_start=line,
                line_end=node.end_point[0] + 1,
                visibility=self._get_visibility(node),
                signature=self._get_signature(node, source),
                is_async=is_async,
                impl_for=owner,
                trait_name=trait_name,
            ))
        if body is not None:
            analysis.callables.append(CallableBody(item_id=item_id, owner=owner, node=node))

    def _parse_type_decl(self, node, source: bytes, kind: str,
                         analysis: FileAnalysis, prefix: str,
                         seen: set[str]) -> str | None:
        name = self._get_name(node, source)
        if name is None:
            return None
        line = node.start_point[0] + 1
        if kind == "struct":
            fields = self._extract_struct_fields(node, source)
        elif kind == "enum":
            fields = self._get_enum_variants(node, source)
        else:
            fields = []
        analysis.items.append(ExtractedItem(
            id=self._make_id(prefix, name, ID_SUFFIX[kind], None, seen, line),
            kind=kind,
            name=name,
            line_start=line,
            line_end=node.end_point[0] + 1,
            visibility=self._get_visibility(node),
            signature=self._get_signature(node, source),
            fields=fields,
        ))
        return name

    def _parse_impl(self, node, source: bytes, analysis: FileAnalysis,
                    prefix: str, seen: set[str]) -> None:
        type_node = node.child_by_field_name("type")
        if type_node is None:
            return
        self_type = base_type_name(node_text(type_node, source))
        if self_type is None:
            return
        trait_node = node.child_by_field_name("trait")
        trait_name = base_type_name(node_text(trait_node, source)) if trait_node else None
        body = node.child_by_field_name("body")
        if body is None:
            return
        for member in body.named_children:
            if member.type == "function_item":
                self._parse_function(member, source, analysis, prefix, seen,
                                     owner=self_type, trait_name=trait_name)

    def _walk_items(self, root, source: bytes, analysis: FileAnalysis,
                    prefix: str) -> None:
        """Pre-order walk over the whole tree with an explicit stack."""
        seen: set[str] = set()
        stack = [root]
        while stack:
            node = stack.pop()
            kind = node.type

            if kind == "struct_item":
                self._parse_type_decl(node, source, "struct", analysis, prefix, seen)
            elif kind == "enum_item":
                self._parse_type_decl(node, source, "enum", analysis, prefix, seen)
            elif kind == "trait_item":
                trait = self._parse_type_decl(node, source, "trait", analysis, prefix, seen)
                body = node.child_by_field_name("body")
                if trait and body is not None:
                    for member in body.named_children:
                        if member.type in _FUNCTION_NODES:
                            self._parse_function(member, source, analysis, prefix,
                                                 seen, owner=trait)
            elif kind == "impl_item":
                self._parse_impl(node, source, analysis, prefix, seen)
            elif kind == "function_item":
                is_trait_member = (node.parent is not None
                                   and node.parent.parent is not None
                                   and node.parent.parent.type == "trait_item")
                if not is_trait_member and self._enclosing_impl(node) is None:
                    self._parse_function(node, source, analysis, prefix, seen)

            stack.extend(reversed(node.children))

    def parse_file(self, filepath: Path, rel_path: str) -> FileAnalysis:
        source = filepath.read_bytes()
        tree = self._parser.parse(source)
        analysis = FileAnalysis(path=rel_path, tree=tree, source=source)
        self._walk_items(tree.root_node, source, analysis, module_key(rel_path))
        return analysis

    def find_calls(self, analysis: FileAnalysis, registry):
        resolver = CallResolver(registry, analysis.source, analysis.path)
        edges = []
        unresolved = []
        for callable_body in analysis.callables:
            found, missed = resolver.resolve_body(callable_body)
            edges.extend(found)
            unresolved.extend(missed)
        analysis.referenced_types |= resolver.referenced_types
        analysis.call_targets |= {e.target for e in edges}
        return edges, unresolved
