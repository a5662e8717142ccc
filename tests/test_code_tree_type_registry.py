"""Tests for the whole-codebase type registry."""

import pytest

ts = pytest.importorskip("tree_sitter", reason="requires tree-sitter")

from tracelight.code_tree.parsers.models import ExtractedItem, FieldInfo  # noqa: E402
from tracelight.code_tree.type_registry import (  # noqa: E402
    TypeRegistry, base_type_name, build_type_registry, extract_return_type,
)


def _item(id, kind, name, signature="", fields=None, impl_for=None):
    return ExtractedItem(
        id=id, kind=kind, name=name, line_start=1, line_end=1,
        visibility="pub", signature=signature,
        fields=fields or [], impl_for=impl_for,
    )


class TestBaseTypeName:
    """Reference markers, lifetimes, generics and paths are stripped."""

    def test_references_and_generics(self):
        assert base_type_name("&mut Foo<Bar>") == "Foo"
        assert base_type_name("&'a mut Bar<T>") == "Bar"
        assert base_type_name("*const Node") == "Node"

    def test_path_qualification(self):
        assert base_type_name("crate::a::Foo") == "Foo"
        assert base_type_name("std::sync::Arc<Mutex<State>>") == "Arc"

    def test_trait_objects(self):
        assert base_type_name("Box<dyn Handler>") == "Box"
        assert base_type_name("impl Iterator<Item = u32>") == "Iterator"
        assert base_type_name("&dyn Handler") == "Handler"

    def test_keyword_prefix_needs_boundary(self):
        assert base_type_name("mutex::Guard") == "Guard"
        assert base_type_name("Implementation") == "Implementation"

    def test_unnameable(self):
        assert base_type_name("(u32, u32)") is None
        assert base_type_name("[u8]") is None
        assert base_type_name("") is None
        assert base_type_name(None) is None


class TestExtractReturnType:

    def test_plain(self):
        assert extract_return_type("pub fn new() -> Self") == "Self"
        assert extract_return_type("fn run(&self)") is None

    def test_arrows_in_generics_are_skipped(self):
        sig = "fn map<F: Fn(u32) -> u32>(f: F) -> Mapped"
        assert extract_return_type(sig) == "Mapped"
        assert extract_return_type("fn on(cb: fn() -> u32)") is None

    def test_where_clause_is_cut(self):
        sig = "fn get<T>(&self) -> Option<T>\nwhere\n    T: Clone"
        assert extract_return_type(sig) == "Option<T>"

    def test_arrow_only_in_where_clause(self):
        assert extract_return_type("fn apply<F>(f: F) where F: Fn() -> u32") is None


class TestTypeRegistry:

    def test_field_lookup(self):
        registry = TypeRegistry()
        registry.register_struct_field("Foo", "bar", "&'a mut Bar<T>")
        assert registry.get_field_type("Foo", "bar") == "Bar"
        assert registry.get_field_type("Foo", "missing") is None
        assert registry.get_field_type("Nope", "bar") is None

    def test_self_return_maps_to_owner(self):
        registry = TypeRegistry()
        registry.register_return_type("Foo", "new", "Self")
        assert registry.get_return_type("Foo", "new") == "Foo"

    def test_last_write_wins(self):
        registry = TypeRegistry()
        registry.register_return_type("Foo", "make", "A")
        registry.register_return_type("Foo", "make", "B")
        assert registry.get_return_type("Foo", "make") == "B"
        assert len(registry) == 1

    def test_unnameable_types_are_not_registered(self):
        registry = TypeRegistry()
        registry.register_struct_field("Pair", "0", "(u32, u32)")
        assert len(registry) == 0

    def test_dict_round_trip(self):
        registry = TypeRegistry()
        registry.register_struct_field("Foo", "bar", "Bar")
        registry.register_return_type("Foo", "new", "Self")
        data = registry.to_dict()
        assert data == {
            "fields": {"Foo": {"bar": "Bar"}},
            "return_types": {"Foo": {"new": "Foo"}},
        }
        assert TypeRegistry.from_dict(data) == registry

    def test_diff_reports_changed_types(self):
        old = TypeRegistry()
        old.register_struct_field("Foo", "bar", "Bar")
        old.register_struct_field("Same", "x", "X")
        new = TypeRegistry()
        new.register_struct_field("Foo", "bar", "Baz")
        new.register_struct_field("Same", "x", "X")
        new.register_return_type("Qux", "new", "Self")
        assert new.diff(old) == {"Foo", "Qux"}
        assert old.diff(old) == set()


class TestBuildTypeRegistry:

    def test_from_items(self):
        items = [
            _item("lib::Foo::struct", "struct", "Foo",
                  fields=[FieldInfo("bar", "Bar"), FieldInfo("0", None)]),
            _item("lib::Foo::new::method", "method", "new",
                  signature="pub fn new() -> Self", impl_for="Foo"),
            _item("lib::Foo::open::method", "method", "open",
                  signature="pub fn open(&self) -> Result<Conn, Error>", impl_for="Foo"),
            _item("lib::Foo::run::method", "method", "run",
                  signature="pub fn run(&self)", impl_for="Foo"),
            _item("lib::helper::fn", "function", "helper",
                  signature="fn helper() -> Bar"),
        ]
        registry = build_type_registry(items)
        assert registry.get_field_type("Foo", "bar") == "Bar"
        assert registry.get_return_type("Foo", "new") == "Foo"
        assert registry.get_return_type("Foo", "open") == "Result"
        assert registry.get_return_type("Foo", "run") is None
        assert registry.get_return_type("helper", "helper") is None
        assert len(registry) == 3
