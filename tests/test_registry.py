"""Tests for capability lookup."""

from layr import FormulaDefinition, Registry
from layr import formulas as fx


def _double(args, ctx):
    return args["n"] * 2


class TestFormulas:
    def test_package_lookup(self):
        registry = Registry()
        registry.register_formula("double", _double, package="math")
        assert registry.get_formula("double", "math") is _double
        assert registry.get_formula("double", "other") is None

    def test_unqualified_prefers_root(self):
        registry = Registry()
        registry.register_formula("f", _double, package="pkg")
        assert registry.resolve_formula("f") == ("versioned", _double, "pkg")

        def root(args, ctx):
            return None

        registry.register_formula("f", root)
        assert registry.resolve_formula("f") == ("versioned", root, None)

    def test_definition_from_mapping(self):
        registry = Registry()
        registry.register_formula(
            "greet",
            {"formula": {"type": "value", "value": "hi"}, "arguments": [{"name": "who"}]},
            package="text",
        )
        entry = registry.get_formula("greet", "text")
        assert isinstance(entry, FormulaDefinition)
        assert entry.formula == fx.Value("hi")
        assert entry.arguments == ("who",)

    def test_legacy_fallback(self):
        registry = Registry()

        def legacy(args, ctx):
            return None

        registry.register_legacy_formula("old", legacy)
        assert registry.resolve_formula("old", "pkg") == ("legacy", legacy, "pkg")
        assert registry.resolve_formula("missing") is None


class TestActions:
    def test_versioned_then_legacy(self):
        registry = Registry()

        def new(args, ctx, event):
            return None

        def old(args, ctx, event):
            return None

        registry.register_legacy_action("go", old)
        assert registry.resolve_action("go", "pkg") is old
        registry.register_action("go", new, package="pkg")
        assert registry.resolve_action("go", "pkg") is new

    def test_packages(self):
        registry = Registry()
        registry.register_formula("a", _double, package="one")
        registry.register_action("b", lambda *a: None, package="two")
        registry.register_formula("c", _double)
        assert registry.packages == ["one", "two"]
