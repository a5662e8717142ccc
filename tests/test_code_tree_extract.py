"""Tests for Pass 1 item and test extraction from Rust sources."""

import textwrap

import pytest

ts = pytest.importorskip("tree_sitter", reason="requires tree-sitter")

from tracelight.code_tree.parsers import get_parser, language_for  # noqa: E402
from tracelight.code_tree.parsers.base import (  # noqa: E402
    module_key, normalize_signature,
)


LIB_RS = """
pub struct Foo {
    pub bar: Bar,
    count: usize,
}

pub(crate) struct Pair(pub u32, String);

pub enum Shape {
    Circle(f64),
    Square { side: f64 },
    Empty,
}

pub trait Greeter {
    fn greet(&self) -> String;
    fn twice(&self) -> String {
        self.greet()
    }
}

impl Foo {
    pub fn new() -> Self {
        Foo { bar: Bar {}, count: 0 }
    }

    pub async fn run(&self) {
        fn helper() {}
        self.bar.baz();
    }
}

impl Greeter for Foo {
    fn greet(&self) -> String {
        String::new()
    }
}

pub(super) fn free_helper(x: u32) -> u32 {
    x
}

pub fn configure(
    name: &str,
    retries: u32,
) -> Result<(), Error> {
    Ok(())
}

#[cfg(test)]
mod tests {
    use super::*;

    #[test]
    fn it_works() {}

    #[tokio::test]
    async fn it_runs() {}
}
"""


def _parse(tmp_path, source: str, rel_path: str = "lib.rs"):
    path = tmp_path / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf8")
    return get_parser("rust").parse_file(path, rel_path)


@pytest.fixture
def lib(tmp_path):
    return _parse(tmp_path, LIB_RS)


def _by_id(analysis):
    return {item.id: item for item in analysis.items}


class TestItemIdentity:
    """Item ids embed the file path, the owning type and a kind suffix."""

    def test_expected_ids(self, lib):
        assert set(_by_id(lib)) == {
            "lib::Foo::struct",
            "lib::Pair::struct",
            "lib::Shape::enum",
            "lib::Greeter::trait",
            "lib::Greeter::greet::method",
            "lib::Greeter::twice::method",
            "lib::Foo::new::method",
            "lib::Foo::run::method",
            "lib::Foo::greet::method",
            "lib::free_helper::fn",
            "lib::configure::fn",
        }

    def test_ids_are_unique(self, lib):
        ids = [i.id for i in lib.items] + [t.id for t in lib.tests]
        assert len(ids) == len(set(ids))

    def test_method_id_embeds_owner(self, lib):
        for item in lib.items:
            if item.kind == "method":
                assert f"::{item.impl_for}::{item.name}::" in item.id

    def test_nested_path_prefix(self, tmp_path):
        analysis = _parse(tmp_path, "pub fn listen() {}\n", "net/server.rs")
        assert [i.id for i in analysis.items] == ["net/server::listen::fn"]

    def test_collision_gets_line_suffix(self, tmp_path):
        analysis = _parse(tmp_path, """
            struct Meters(f64);

            impl std::fmt::Display for Meters {
                fn fmt(&self, f: &mut Formatter) -> Result {
                    Ok(())
                }
            }

            impl std::fmt::Debug for Meters {
                fn fmt(&self, f: &mut Formatter) -> Result {
                    Ok(())
                }
            }
        """, "units.rs")
        fmts = [i for i in analysis.items if i.name == "fmt"]
        assert len(fmts) == 2
        assert fmts[0].id == "units::Meters::fmt::method"
        assert fmts[1].id == f"units::Meters::fmt@{fmts[1].line_start}::method"
        assert [f.trait_name for f in fmts] == ["Display", "Debug"]

    def test_module_key(self):
        assert module_key("battle_loop.rs") == "battle_loop"
        assert module_key("src/game/battle_loop.rs") == "src/game/battle_loop"


class TestDeclarations:
    """Structs, enums and traits with their members."""

    def test_struct_fields(self, lib):
        foo = _by_id(lib)["lib::Foo::struct"]
        assert [(f.name, f.type) for f in foo.fields] == [("bar", "Bar"), ("count", "usize")]
        assert foo.signature == "pub struct Foo"
        assert foo.line_start == 1
        assert foo.line_end == 4

    def test_tuple_struct_fields_are_positional(self, lib):
        pair = _by_id(lib)["lib::Pair::struct"]
        assert [(f.name, f.type) for f in pair.fields] == [("0", "u32"), ("1", "String")]

    def test_enum_variants(self, lib):
        shape = _by_id(lib)["lib::Shape::enum"]
        assert [(v.name, v.type) for v in shape.fields] == [
            ("Circle", "(f64)"),
            ("Square", "{ side: f64 }"),
            ("Empty", None),
        ]

    def test_trait_members_are_owned_by_trait(self, lib):
        items = _by_id(lib)
        greet = items["lib::Greeter::greet::method"]
        assert greet.kind == "method"
        assert greet.impl_for == "Greeter"
        assert greet.trait_name is None
        assert greet.signature == "fn greet(&self) -> String"

    def test_trait_impl_records_trait_name(self, lib):
        greet = _by_id(lib)["lib::Foo::greet::method"]
        assert greet.impl_for == "Foo"
        assert greet.trait_name == "Greeter"

    def test_nested_function_inside_method_not_extracted(self, lib):
        assert not any(i.name == "helper" for i in lib.items)

    def test_free_function_in_nested_module(self, tmp_path):
        analysis = _parse(tmp_path, """
            mod inner {
                pub fn deep() {}
            }
        """)
        assert [i.id for i in analysis.items] == ["lib::deep::fn"]


class TestFunctions:
    """Visibility, async detection and signatures."""

    def test_visibility(self, lib):
        items = _by_id(lib)
        assert items["lib::Foo::struct"].visibility == "pub"
        assert items["lib::Pair::struct"].visibility == "pub(crate)"
        assert items["lib::free_helper::fn"].visibility == "pub(crate)"
        assert items["lib::Foo::greet::method"].visibility == "private"

    def test_async_detection(self, lib):
        items = _by_id(lib)
        assert items["lib::Foo::run::method"].is_async is True
        assert items["lib::Foo::new::method"].is_async is False

    def test_single_line_signature(self, lib):
        assert _by_id(lib)["lib::free_helper::fn"].signature == \
            "pub(super) fn free_helper(x: u32) -> u32"

    def test_multi_line_signature(self, lib):
        assert _by_id(lib)["lib::configure::fn"].signature == (
            "pub fn configure(\n"
            "    name: &str,\n"
            "    retries: u32,\n"
            ") -> Result<(), Error>"
        )

    def test_normalize_signature_strips_semicolon(self):
        assert normalize_signature("fn greet(&self) -> String;") == "fn greet(&self) -> String"


class TestTests:
    """Test functions become TestInfo records instead of items."""

    def test_test_attributes(self, lib):
        tests = {t.id: t for t in lib.tests}
        assert set(tests) == {"lib::it_works::test", "lib::it_runs::test"}
        assert tests["lib::it_runs::test"].is_async is True
        assert tests["lib::it_works::test"].is_async is False

    def test_tests_are_not_items(self, lib):
        assert not any(i.name.startswith("it_") for i in lib.items)

    def test_tests_are_callables(self, lib):
        callable_ids = {c.item_id for c in lib.callables}
        assert "lib::it_works::test" in callable_ids

    def test_other_test_attributes(self, tmp_path):
        analysis = _parse(tmp_path, """
            #[bench]
            fn bench_it(b: &mut Bencher) {}

            #[rstest]
            #[case(1)]
            fn param(#[case] n: u32) {}

            #[sqlx::test]
            async fn db(pool: Pool) {}

            #[inline]
            fn not_a_test() {}
        """)
        assert {t.name for t in analysis.tests} == {"bench_it", "param", "db"}
        assert [i.name for i in analysis.items] == ["not_a_test"]


class TestRegistry:

    def test_extension_lookup(self):
        assert language_for(".rs") == "rust"
        with pytest.raises(ValueError):
            language_for(".py")

    def test_unsupported_language(self):
        with pytest.raises(ValueError):
            get_parser("cobol")
