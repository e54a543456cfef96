"""
scope.py - Lexical scope analysis over a tree-sitter TypeScript tree.

Builds a tree of scopes (global, module, function, block, for, catch,
switch, class) with their variable bindings. Every variable receives an
integer id from an IdGenerator owned by the ScopeManager, so two parses of
the same text produce the same ids.

Visibility is line based: a variable is visible at line N when one of the
scopes containing N (or one of their ancestors) declares it at or before N.

Usage:
    from flowscript.parse.scope import build_scopes

    scopes = build_scopes(tree, source)
    [v.name for v in scopes.variables_visible_at(12)]
    scopes.resolve_variable("result", 12)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import tree_sitter as ts

from .source import SourceText, end_line, function_parameters, pattern_names, start_line
from .types import Location

logger = logging.getLogger(__name__)

# Built-in identifiers never reported as user variables
GLOBAL_NAMES = frozenset({
    "console", "Array", "Object", "String", "Number", "Boolean", "Date",
    "Math", "JSON", "Promise", "Error", "Function", "Symbol", "Map", "Set",
    "WeakMap", "WeakSet", "Proxy", "Reflect", "Buffer", "process", "global",
    "require", "__dirname", "__filename", "module", "exports", "Intl",
    "SymbolConstructor", "ArrayConstructor", "MapConstructor",
    "SetConstructor", "PromiseConstructor", "ErrorConstructor", "RegExp",
    "PropertyKey", "PropertyDescriptor", "Partial", "Required", "Readonly",
    "Pick", "Record", "Exclude", "Extract", "Omit", "NonNullable",
})

_GLOBAL_NAME_FRAGMENTS = ("Constructor", "Array", "Iterator", "Decorator")
_GLOBAL_NAME_PREFIXES = ("Disposable", "Async")

# Tie-break order when two scopes cover the same line range
SCOPE_PRIORITY = {
    "block": 5,
    "catch": 5,
    "switch": 5,
    "for": 4,
    "function": 3,
    "class": 3,
    "module": 2,
    "global": 1,
}

_SKIPPED_NODE_TYPES = frozenset({
    "type_annotation",
    "type_arguments",
    "type_parameters",
    "comment",
})


class IdGenerator:
    """Monotonic id source, one per parse."""

    def __init__(self, start: int = 1):
        self._next = start

    def next_id(self) -> int:
        value = self._next
        self._next += 1
        return value


@dataclass(eq=False)
class Variable:
    """A lexical binding.

    Attributes:
        id: Stable synthetic id for this parse
        name: Bound identifier
        kind: Declaration kind (const, let, var, param, function, class,
            import, type, catch)
        scope: Scope holding the binding
        declaration_node: Node the binding is defined by (declarator,
            function, class, import specifier)
        location: Span of the declaration node
    """
    id: int
    name: str
    kind: str
    scope: "Scope"
    declaration_node: ts.Node = field(repr=False)
    location: Location

    @property
    def declaration_line(self) -> int:
        return self.location.start_line

    def is_declared_by(self, line: int) -> bool:
        return self.declaration_line <= line


@dataclass(eq=False)
class Scope:
    scope_type: str
    node: ts.Node = field(repr=False)
    start_line: int
    end_line: int
    parent: Optional["Scope"] = field(default=None, repr=False)
    variables: List[Variable] = field(default_factory=list, repr=False)
    children: List["Scope"] = field(default_factory=list, repr=False)

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    @property
    def line_span(self) -> int:
        return self.end_line - self.start_line

    def ancestors(self) -> Iterable["Scope"]:
        """This scope, then each enclosing scope up to global."""
        scope: Optional[Scope] = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def find(self, name: str) -> Optional[Variable]:
        for variable in self.variables:
            if variable.name == name:
                return variable
        return None


@dataclass
class ScopeInfo:
    """Answer to a scope-at-line query."""
    scope_type: str
    variables: List[str]
    all_accessible: List[str]
    line_range: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "scopeType": self.scope_type,
            "variables": list(self.variables),
            "allAccessible": list(self.all_accessible),
            "lineRange": self.line_range,
        }


def is_global_variable(variable: Variable) -> bool:
    if variable.scope.scope_type == "global":
        return True
    name = variable.name
    if name in GLOBAL_NAMES:
        return True
    if any(fragment in name for fragment in _GLOBAL_NAME_FRAGMENTS):
        return True
    return name.startswith(_GLOBAL_NAME_PREFIXES)


class ScopeManager:
    """Scope tree for one parse, with line-based queries."""

    def __init__(self, global_scope: Scope, scopes: List[Scope]):
        self.global_scope = global_scope
        self.scopes = scopes

    # -------------------------------------------------------------------------
    # Enumeration
    # -------------------------------------------------------------------------

    def all_variables(self) -> List[Variable]:
        return [v for scope in self.scopes for v in scope.variables]

    def all_user_variables(self) -> List[Variable]:
        return [v for v in self.all_variables() if not is_global_variable(v)]

    def all_variables_with_ids(self) -> Dict[int, Variable]:
        return {v.id: v for v in self.all_variables()}

    def get_variable(self, variable_id: int) -> Optional[Variable]:
        for variable in self.all_variables():
            if variable.id == variable_id:
                return variable
        return None

    def variable_location(self, variable_id: int) -> Optional[Location]:
        variable = self.get_variable(variable_id)
        return variable.location if variable else None

    # -------------------------------------------------------------------------
    # Line queries
    # -------------------------------------------------------------------------

    def scopes_containing(self, line: int) -> List[Scope]:
        """Every scope whose range covers ``line``, innermost first."""
        containing = [s for s in self.scopes if s.contains_line(line)]
        containing.sort(key=lambda s: (s.line_span, -SCOPE_PRIORITY.get(s.scope_type, 0)))
        return containing

    def _accessible_scopes(self, line: int) -> List[Scope]:
        ordered: List[Scope] = []
        seen = set()
        for scope in self.scopes_containing(line):
            for ancestor in scope.ancestors():
                if id(ancestor) not in seen:
                    seen.add(id(ancestor))
                    ordered.append(ancestor)
        return ordered

    def variables_visible_at(self, line: int) -> List[Variable]:
        """User variables in scope at ``line`` and declared at or before it.

        Searches every scope containing the line, not only the innermost,
        because sibling ranges can overlap (a for scope and its body block).
        """
        visible: List[Variable] = []
        seen_ids = set()
        for scope in self._accessible_scopes(line):
            for variable in scope.variables:
                if variable.id in seen_ids:
                    continue
                seen_ids.add(variable.id)
                if is_global_variable(variable) or not variable.is_declared_by(line):
                    continue
                visible.append(variable)
        return visible

    def find_scope_for_line(self, line: int) -> Optional[Scope]:
        """Smallest scope covering ``line``; module wins a tie with global."""
        best: Optional[Scope] = None
        for scope in self.scopes:
            if not scope.contains_line(line):
                continue
            if best is None or scope.line_span < best.line_span:
                best = scope
            elif (
                scope.line_span == best.line_span
                and scope.scope_type == "module"
                and best.scope_type == "global"
            ):
                best = scope
        return best

    def scope_info_at(self, line: int) -> Optional[ScopeInfo]:
        scope = self.find_scope_for_line(line)
        if scope is None:
            return None
        return ScopeInfo(
            scope_type=scope.scope_type,
            variables=[v.name for v in scope.variables if not is_global_variable(v)],
            all_accessible=[v.name for v in self.variables_visible_at(line)],
            line_range=f"{scope.start_line}-{scope.end_line}",
        )

    def resolve_variable(self, name: str, line: int) -> Optional[int]:
        """Id of the innermost ``name`` declared at or before ``line``, or None."""
        for scope in self._accessible_scopes(line):
            for variable in scope.variables:
                if variable.name == name and variable.is_declared_by(line):
                    return variable.id
        logger.warning("Variable %s not found or not declared before line %d", name, line)
        return None

    def find_declared_near(self, name: str, line: int, tolerance: int = 2) -> Optional[Variable]:
        """Variable ``name`` in a scope covering ``line`` declared within ``tolerance`` lines."""
        for scope in self.scopes:
            if not scope.contains_line(line):
                continue
            for variable in scope.variables:
                if variable.name == name and abs(variable.declaration_line - line) <= tolerance:
                    return variable
        return None


# =============================================================================
# Builder
# =============================================================================


class ScopeBuilder:
    """Walks a tree-sitter tree and records scopes and bindings."""

    def __init__(self, tree: ts.Tree, source: SourceText, ids: Optional[IdGenerator] = None):
        self.tree = tree
        self.source = source
        self.ids = ids or IdGenerator()
        self.scopes: List[Scope] = []

    def build(self) -> ScopeManager:
        root = self.tree.root_node
        global_scope = self._open("global", root, None)
        module_scope = self._open("module", root, global_scope)
        for child in root.named_children:
            self._visit(child, module_scope)
        logger.debug(
            "Built %d scopes with %d variables",
            len(self.scopes),
            sum(len(s.variables) for s in self.scopes),
        )
        return ScopeManager(global_scope, self.scopes)

    def _open(self, scope_type: str, node: ts.Node, parent: Optional[Scope]) -> Scope:
        scope = Scope(
            scope_type=scope_type,
            node=node,
            start_line=start_line(node),
            end_line=max(end_line(node), start_line(node)),
            parent=parent,
        )
        if node.type == "program":
            scope.start_line = 1
            scope.end_line = max(self.source.line_count, scope.end_line)
        if parent is not None:
            parent.children.append(scope)
        self.scopes.append(scope)
        return scope

    def _declare(self, scope: Scope, name: str, kind: str, node: ts.Node) -> Variable:
        variable = Variable(
            id=self.ids.next_id(),
            name=name,
            kind=kind,
            scope=scope,
            declaration_node=node,
            location=self.source.location(node),
        )
        scope.variables.append(variable)
        return variable

    def _declare_pattern(self, scope: Scope, pattern: Optional[ts.Node], kind: str, node: ts.Node) -> None:
        for name, _ in pattern_names(pattern, self.source):
            self._declare(scope, name, kind, node)

    @staticmethod
    def _hoist_target(scope: Scope) -> Scope:
        for candidate in scope.ancestors():
            if candidate.scope_type in ("function", "module"):
                return candidate
        return scope

    # -------------------------------------------------------------------------
    # Visitor
    # -------------------------------------------------------------------------

    def _visit(self, node: ts.Node, scope: Scope) -> None:
        kind = node.type
        if kind in _SKIPPED_NODE_TYPES:
            return
        handler = getattr(self, f"_visit_{kind}", None)
        if handler is not None:
            handler(node, scope)
            return
        self._visit_children(node, scope)

    def _visit_children(self, node: ts.Node, scope: Scope) -> None:
        for child in node.named_children:
            self._visit(child, scope)

    def _visit_lexical_declaration(self, node: ts.Node, scope: Scope) -> None:
        kind = node.children[0].type if node.children else "let"
        self._visit_declarators(node, scope, kind)

    def _visit_variable_declaration(self, node: ts.Node, scope: Scope) -> None:
        self._visit_declarators(node, self._hoist_target(scope), "var", value_scope=scope)

    def _visit_declarators(
        self, node: ts.Node, scope: Scope, kind: str, value_scope: Optional[Scope] = None
    ) -> None:
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            self._declare_pattern(scope, declarator.child_by_field_name("name"), kind, declarator)
            value = declarator.child_by_field_name("value")
            if value is not None:
                self._visit(value, value_scope or scope)

    def _visit_import_statement(self, node: ts.Node, scope: Scope) -> None:
        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for item in clause.named_children:
                if item.type == "identifier":
                    self._declare(scope, self.source.node_text(item), "import", item)
                elif item.type == "namespace_import":
                    for ident in item.named_children:
                        if ident.type == "identifier":
                            self._declare(scope, self.source.node_text(ident), "import", item)
                elif item.type == "named_imports":
                    for spec in item.named_children:
                        if spec.type != "import_specifier":
                            continue
                        local = spec.child_by_field_name("alias") or spec.child_by_field_name("name")
                        if local is not None:
                            self._declare(scope, self.source.node_text(local), "import", spec)

    def _visit_type_declaration(self, node: ts.Node, scope: Scope) -> None:
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(scope, self.source.node_text(name), "type", node)

    _visit_interface_declaration = _visit_type_declaration
    _visit_type_alias_declaration = _visit_type_declaration
    _visit_enum_declaration = _visit_type_declaration

    def _visit_class_declaration(self, node: ts.Node, scope: Scope) -> None:
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(scope, self.source.node_text(name), "class", node)
        self._visit_class(node, scope)

    _visit_abstract_class_declaration = _visit_class_declaration

    def _visit_class(self, node: ts.Node, scope: Scope) -> None:
        heritage = [c for c in node.named_children if c.type == "class_heritage"]
        for item in heritage:
            self._visit_children(item, scope)
        body = node.child_by_field_name("body")
        if body is None:
            return
        class_scope = self._open("class", node, scope)
        self._visit_children(body, class_scope)

    def _visit_function_declaration(self, node: ts.Node, scope: Scope) -> None:
        name = node.child_by_field_name("name")
        if name is not None:
            self._declare(scope, self.source.node_text(name), "function", node)
        self._visit_function(node, scope)

    _visit_generator_function_declaration = _visit_function_declaration

    def _visit_function(self, node: ts.Node, scope: Scope) -> None:
        function_scope = self._open("function", node, scope)
        if node.type in ("function_expression", "function", "generator_function"):
            name = node.child_by_field_name("name")
            if name is not None:
                self._declare(function_scope, self.source.node_text(name), "function", node)
        for pattern in function_parameters(node):
            self._declare_pattern(function_scope, pattern, "param", node)
            self._visit_parameter_defaults(pattern, function_scope)
        body = node.child_by_field_name("body")
        if body is None:
            return
        if body.type == "statement_block":
            self._visit_children(body, function_scope)
        else:
            self._visit(body, function_scope)

    def _visit_parameter_defaults(self, pattern: ts.Node, scope: Scope) -> None:
        parent = pattern.parent
        if parent is not None and parent.type in ("required_parameter", "optional_parameter"):
            default = parent.child_by_field_name("value")
            if default is not None:
                self._visit(default, scope)

    _visit_function_expression = _visit_function
    _visit_generator_function = _visit_function
    _visit_arrow_function = _visit_function
    _visit_method_definition = _visit_function

    def _visit_statement_block(self, node: ts.Node, scope: Scope) -> None:
        block_scope = self._open("block", node, scope)
        self._visit_children(node, block_scope)

    def _visit_for_statement(self, node: ts.Node, scope: Scope) -> None:
        initializer = node.child_by_field_name("initializer")
        if initializer is not None and initializer.type == "lexical_declaration":
            scope = self._open("for", node, scope)
        self._visit_children(node, scope)

    def _visit_for_in_statement(self, node: ts.Node, scope: Scope) -> None:
        kind_node = node.child_by_field_name("kind")
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        body = node.child_by_field_name("body")
        kind = kind_node.type if kind_node is not None else None
        if right is not None:
            self._visit(right, scope)
        if kind in ("let", "const"):
            scope = self._open("for", node, scope)
            self._declare_pattern(scope, left, kind, left)
        elif kind == "var":
            self._declare_pattern(self._hoist_target(scope), left, "var", left)
        elif left is not None:
            self._visit(left, scope)
        if body is not None:
            self._visit(body, scope)

    def _visit_catch_clause(self, node: ts.Node, scope: Scope) -> None:
        catch_scope = self._open("catch", node, scope)
        parameter = node.child_by_field_name("parameter")
        if parameter is not None:
            self._declare_pattern(catch_scope, parameter, "catch", parameter)
        body = node.child_by_field_name("body")
        if body is not None:
            self._visit(body, catch_scope)

    def _visit_switch_body(self, node: ts.Node, scope: Scope) -> None:
        switch_scope = self._open("switch", node, scope)
        self._visit_children(node, switch_scope)


def build_scopes(tree: ts.Tree, source: SourceText, ids: Optional[IdGenerator] = None) -> ScopeManager:
    """Analyze scopes for a parsed tree with a fresh id counter."""
    return ScopeBuilder(tree, source, ids).build()
