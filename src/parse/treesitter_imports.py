"""Tree-sitter based import/export extraction for TypeScript and JavaScript."""

from __future__ import annotations

import threading

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

from errors import ParseError
from models.parse import EdgeKind, ParseResult, RawImport

TYPESCRIPT_SUFFIXES = frozenset({".ts", ".mts", ".cts"})

_DECLARATION_TYPES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_signature",
        "class_declaration",
        "abstract_class_declaration",
        "interface_declaration",
        "type_alias_declaration",
        "enum_declaration",
        "module",
        "internal_module",
    }
)
_VARIABLE_DECLARATION_TYPES = frozenset({"lexical_declaration", "variable_declaration"})
_PATTERN_NAME_TYPES = frozenset({"identifier", "shorthand_property_identifier_pattern"})

# Parser objects are not safe to share between threads.
_LOCAL = threading.local()


def _get_parser(grammar: str) -> Parser:
    """Return this thread's parser for ``grammar`` ("typescript" or "tsx")."""
    parsers: dict[str, Parser] | None = getattr(_LOCAL, "parsers", None)
    if parsers is None:
        parsers = {}
        _LOCAL.parsers = parsers
    parser = parsers.get(grammar)
    if parser is None:
        if grammar == "typescript":
            lang = Language(tree_sitter_typescript.language_typescript())
        else:
            lang = Language(tree_sitter_typescript.language_tsx())
        parser = Parser(lang)
        parsers[grammar] = parser
    return parser


def grammar_for(path: str) -> str:
    for suffix in TYPESCRIPT_SUFFIXES:
        if path.endswith(suffix):
            return "typescript"
    return "tsx"


def _text(node: Node) -> str:
    return node.text.decode("utf8", errors="replace") if node.text else ""


def _string_value(node: Node | None) -> str | None:
    """Return the literal value of a string (or substitution-free template)."""
    if node is None:
        return None
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
    elif node.type != "string":
        return None
    text = _text(node)
    return text[1:-1] if len(text) >= 2 else None


def _has_token(node: Node, token: str) -> bool:
    return any(not child.is_named and child.type == token for child in node.children)


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def _first_error_line(node: Node) -> int | None:
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "ERROR" or current.is_missing:
            return _line(current)
        if current.has_error:
            stack.extend(reversed(current.children))
    return None


def _import_source(node: Node) -> Node | None:
    source = node.child_by_field_name("source")
    if source is not None:
        return source
    for child in node.named_children:
        if child.type == "import_require_clause":
            return child.child_by_field_name("source")
    return None


def _pattern_names(node: Node) -> list[str]:
    if node.type in _PATTERN_NAME_TYPES:
        return [_text(node)]
    names: list[str] = []
    for child in node.named_children:
        if child.type == "pair_pattern":
            value = child.child_by_field_name("value")
            if value is not None:
                names.extend(_pattern_names(value))
        else:
            names.extend(_pattern_names(child))
    return names


def _declaration_names(declaration: Node) -> list[str]:
    if declaration.type == "ambient_declaration":
        names: list[str] = []
        for child in declaration.named_children:
            names.extend(_declaration_names(child))
        return names

    if declaration.type in _VARIABLE_DECLARATION_TYPES:
        names = []
        for declarator in declaration.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is not None:
                names.extend(_pattern_names(name_node))
        return names

    if declaration.type in _DECLARATION_TYPES:
        name_node = declaration.child_by_field_name("name")
        if name_node is not None:
            return [_text(name_node)]
    return []


def _clause_names(node: Node) -> list[str]:
    names: list[str] = []
    for clause in node.named_children:
        if clause.type == "namespace_export":
            names.extend(_text(child) for child in clause.named_children)
        if clause.type != "export_clause":
            continue
        for specifier in clause.named_children:
            if specifier.type != "export_specifier":
                continue
            exported = specifier.child_by_field_name(
                "alias"
            ) or specifier.child_by_field_name("name")
            if exported is not None:
                names.append(_text(exported))
    return names


class _Extraction:
    """Accumulates specifiers and exports during a single tree walk."""

    def __init__(self) -> None:
        self.imports: list[RawImport] = []
        self.exports: list[str] = []
        self.exports_unknown = False

    def add_import(self, specifier: str | None, kind: EdgeKind, node: Node) -> None:
        if specifier:
            self.imports.append(RawImport(specifier=specifier, kind=kind, line=_line(node)))

    def visit_import(self, node: Node) -> None:
        kind: EdgeKind = "type-only" if _has_token(node, "type") else "static"
        self.add_import(_string_value(_import_source(node)), kind, node)

    def visit_export(self, node: Node) -> bool:
        """Handle an export statement; returns True when it only re-exports."""
        source = node.child_by_field_name("source")
        if source is not None:
            kind: EdgeKind = "type-only" if _has_token(node, "type") else "re-export"
            self.add_import(_string_value(source), kind, node)
            names = _clause_names(node)
            if _has_token(node, "*") and not names:
                self.exports_unknown = True
            self.exports.extend(names)
            return True

        if _has_token(node, "default") or _has_token(node, "="):
            self.exports.append("default")
            return False

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            self.exports.extend(_declaration_names(declaration))
            return False

        self.exports.extend(_clause_names(node))
        return True

    def visit_call(self, node: Node) -> None:
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        if function is None or arguments is None or not arguments.named_children:
            return
        first_arg = arguments.named_children[0]
        if function.type == "import":
            self.add_import(_string_value(first_arg), "dynamic", node)
        elif function.type == "identifier" and _text(function) == "require":
            self.add_import(_string_value(first_arg), "static", node)


def _walk(root: Node, extraction: _Extraction) -> bool:
    """Visit every node; returns True when the module is re-export-only."""
    statements = [
        child
        for child in root.named_children
        if child.type not in ("comment", "hash_bang_line")
    ]
    reexport_only = bool(statements)
    saw_export = False
    for statement in statements:
        if statement.type == "export_statement":
            saw_export = True
            reexport_only = extraction.visit_export(statement) and reexport_only
        elif statement.type != "import_statement":
            reexport_only = False

    stack = list(reversed(root.children))
    while stack:
        node = stack.pop()
        if node.type == "import_statement":
            extraction.visit_import(node)
        elif node.type == "call_expression":
            extraction.visit_call(node)
        stack.extend(reversed(node.children))

    return reexport_only and saw_export


def parse_module(source: bytes, path: str) -> ParseResult:
    """Extract import/export specifiers from one file's contents.

    Specifiers are returned exactly as written; resolving them to modules is
    the graph builder's job, so this function touches no filesystem state.

    Raises:
        ParseError: The syntax tree contains error or missing nodes.
    """
    parser = _get_parser(grammar_for(path))
    tree = parser.parse(source)
    root_node = tree.root_node

    if root_node.has_error:
        raise ParseError(
            path, "syntax error in source file", line=_first_error_line(root_node)
        )

    extraction = _Extraction()
    reexport_only = _walk(root_node, extraction)

    return ParseResult(
        imports=sorted(extraction.imports, key=lambda imp: imp.line),
        exports=None
        if extraction.exports_unknown
        else sorted(dict.fromkeys(extraction.exports)),
        reexport_only=reexport_only,
    )


__all__ = ["grammar_for", "parse_module"]
