"""Tests for lexical scope analysis.

Covers variable ids, line-based visibility, scope-at-line queries and
name resolution with shadowing.
"""

import logging

from flowscript.parse.scope import IdGenerator, build_scopes
from flowscript.parse.source import parse_source


LOOP_SCRIPT = """const base = 1;
function run(input: number) {
  let total = base;
  for (let i = 0; i < input; i++) {
    const step = i * 2;
    total += step;
  }
  return total;
}
"""

SHADOW_SCRIPT = """const x = 1;
{
  const x = 2;
  console.log(x);
}
"""


def _scopes(text):
    tree, source = parse_source(text)
    return build_scopes(tree, source)


def _names(variables):
    return [v.name for v in variables]


class TestVariableIds:
    """Ids are assigned in declaration order and restart per parse."""

    def test_ids_follow_declaration_order(self):
        """Each binding gets the next id in pre-order."""
        scopes = _scopes(LOOP_SCRIPT)
        ids = {v.name: v.id for v in scopes.all_variables()}
        assert ids == {"base": 1, "run": 2, "input": 3, "total": 4, "i": 5, "step": 6}

    def test_ids_are_deterministic(self):
        """Two parses of the same text give the same ids."""
        first = {v.id: v.name for v in _scopes(LOOP_SCRIPT).all_variables()}
        second = {v.id: v.name for v in _scopes(LOOP_SCRIPT).all_variables()}
        assert first == second

    def test_id_generator_counts_from_start(self):
        """IdGenerator hands out consecutive ids."""
        ids = IdGenerator(start=10)
        assert [ids.next_id(), ids.next_id(), ids.next_id()] == [10, 11, 12]

    def test_declaration_kinds(self):
        """Kinds reflect how each name was bound."""
        kinds = {v.name: v.kind for v in _scopes(LOOP_SCRIPT).all_variables()}
        assert kinds["base"] == "const"
        assert kinds["run"] == "function"
        assert kinds["input"] == "param"
        assert kinds["total"] == "let"

    def test_all_variables_with_ids(self):
        """Variables can be looked up by id."""
        scopes = _scopes(LOOP_SCRIPT)
        by_id = scopes.all_variables_with_ids()
        assert by_id[4].name == "total"
        assert scopes.get_variable(6).name == "step"
        assert scopes.get_variable(99) is None

    def test_variable_location(self):
        """Variable locations point at the declaring line."""
        scopes = _scopes(LOOP_SCRIPT)
        assert scopes.variable_location(5).start_line == 4
        assert scopes.variable_location(99) is None


class TestVisibility:
    """Line-based visibility queries."""

    def test_loop_variable_not_visible_before_loop(self):
        """Variables inside the for loop are hidden above it."""
        names = _names(_scopes(LOOP_SCRIPT).variables_visible_at(3))
        assert "i" not in names
        assert "step" not in names
        assert {"base", "run", "input", "total"} <= set(names)

    def test_loop_variable_visible_inside_loop(self):
        """Loop and body variables are visible inside the body."""
        names = _names(_scopes(LOOP_SCRIPT).variables_visible_at(5))
        assert {"i", "step", "total", "input", "base"} <= set(names)

    def test_variable_not_visible_before_declaration(self):
        """A binding is not visible above its declaration line."""
        names = _names(_scopes(LOOP_SCRIPT).variables_visible_at(2))
        assert "total" not in names
        assert "base" in names

    def test_outer_variable_visible_in_nested_block(self):
        """An outer binding stays visible in a nested block."""
        names = _names(_scopes(LOOP_SCRIPT).variables_visible_at(6))
        assert "base" in names

    def test_global_like_names_are_excluded(self):
        """Names that look like built-ins are not user variables."""
        scopes = _scopes("const AsyncHelper = 1;\nconst value = 2;\n")
        assert _names(scopes.all_user_variables()) == ["value"]


class TestScopeInfo:
    """scope_info_at and find_scope_for_line."""

    def test_scope_info_inside_loop(self):
        """The smallest scope covering the line is reported with its range."""
        info = _scopes(LOOP_SCRIPT).scope_info_at(5)
        assert info.scope_type == "for"
        assert info.line_range == "4-7"
        assert "step" in info.all_accessible

    def test_scope_info_in_function(self):
        """Function scopes list their own variables."""
        info = _scopes(LOOP_SCRIPT).scope_info_at(8)
        assert info.scope_type == "function"
        assert info.variables == ["input", "total"]

    def test_module_wins_tie_with_global(self):
        """At top level the module scope is reported, not the global scope."""
        info = _scopes(LOOP_SCRIPT).scope_info_at(1)
        assert info.scope_type == "module"

    def test_scope_info_to_dict(self):
        """ScopeInfo serializes to camelCase keys."""
        data = _scopes(LOOP_SCRIPT).scope_info_at(8).to_dict()
        assert set(data) == {"scopeType", "variables", "allAccessible", "lineRange"}


class TestResolveVariable:
    """Name resolution from a line."""

    def test_resolves_innermost_binding(self):
        """Shadowed names resolve to the nearest enclosing declaration."""
        scopes = _scopes(SHADOW_SCRIPT)
        assert scopes.resolve_variable("x", 4) == 2
        assert scopes.resolve_variable("x", 1) == 1

    def test_resolves_outer_binding(self):
        """A name declared in an enclosing scope resolves from inside a loop."""
        assert _scopes(LOOP_SCRIPT).resolve_variable("total", 6) == 4

    def test_unresolved_name_logs_warning(self, caplog):
        """Unknown or not-yet-declared names return None with a warning."""
        scopes = _scopes(LOOP_SCRIPT)
        with caplog.at_level(logging.WARNING, logger="flowscript.parse.scope"):
            assert scopes.resolve_variable("step", 3) is None
        assert "step" in caplog.text
