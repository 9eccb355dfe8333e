#!/usr/bin/env python3
"""
chainorder - Canonical ordering for signature builder chains

High-level goals:
- Find signature builder chains (``sig(lambda: params(x=int).returns(int))``)
- Linearize each chain into its sequence of calls
- Validate the sequence against a configured total order of method names
- Report violations as structured JSON and, when libcst is installed,
  rewrite the chain into canonical order without touching its arguments

The whole tool is one module, the same way the rest of our linters are laid
out. Tree shapes are hidden behind ``ChainSyntax`` so the same extraction
and rewrite code runs over the stdlib ``ast`` tree (analysis) and the libcst
concrete tree (regeneration).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Literal, Mapping, Optional, Sequence, Tuple
import argparse
import ast
import functools
import json
import os
import re
import sys
try:  # Optional dependency; defaults are used without PyYAML.
    import yaml  # type: ignore
except ImportError:  # pragma: no cover - environment without PyYAML
    yaml = None  # type: ignore
try:  # Optional dependency; autocorrection needs libcst.
    import libcst as cst  # type: ignore
except ImportError:  # pragma: no cover - environment without libcst
    cst = None  # type: ignore


TOOL_NAME = "chainorder"
TOOL_VERSION = "0.1.0"
RULE_ID = "signature_build_order"
CONFIG_SECTION = "signature_build_order"
CONFIG_ENV_VAR = "CHAINORDER_CONFIG"

DEFAULT_ORDER: Tuple[str, ...] = (
    "final",
    "abstract",
    "implementation",
    "override",
    "overridable",
    "type_parameters",
    "params",
    "bind",
    "returns",
    "void",
    "soft",
    "checked",
    "on_failure",
)


# ============================================================
# ========================= ERRORS ===========================
# ============================================================

class ChainOrderError(Exception):
    """Base class for errors raised by chainorder."""


class RegenerationError(ChainOrderError):
    """Raised when a reordered chain cannot be turned back into source text."""


def _report(message: str) -> None:
    sys.stderr.write(f"[{TOOL_NAME}] {message}\n")


_LIBCST_MISSING_WARNED = False


def _warn_once_libcst_missing() -> None:
    global _LIBCST_MISSING_WARNED
    if _LIBCST_MISSING_WARNED:
        return
    _report("libcst is not installed; reporting violations without autocorrection.")
    _LIBCST_MISSING_WARNED = True


# ============================================================
# =============== SOURCE LOCATION & CONTEXT ==================
# ============================================================

@dataclass
class SourceRange:
    file: str
    line_start: int
    col_start: int
    line_end: int
    col_end: int


_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass
class SourceFile:
    """
    Source text plus the line table needed to turn ``ast`` positions
    (1-based lines, UTF-8 byte columns) into character offsets.
    """
    path: str
    text: str
    line_starts: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.line_starts:
            self.line_starts = [0] + [m.end() for m in _LINE_BREAK.finditer(self.text)]

    def offset(self, lineno: int, byte_col: int) -> int:
        line_start = self.line_starts[lineno - 1]
        if lineno < len(self.line_starts):
            line_end = self.line_starts[lineno]
        else:
            line_end = len(self.text)
        line_bytes = self.text[line_start:line_end].encode("utf-8")
        prefix = line_bytes[:byte_col].decode("utf-8", errors="replace")
        return line_start + len(prefix)

    def offsets_of(self, node: ast.AST) -> Tuple[int, int]:
        start = self.offset(node.lineno, node.col_offset)
        end = self.offset(node.end_lineno, node.end_col_offset)
        return start, end

    def segment(self, node: ast.AST) -> str:
        start, end = self.offsets_of(node)
        return self.text[start:end]

    def range_of(self, node: ast.AST) -> SourceRange:
        start, end = self.offsets_of(node)
        return SourceRange(
            file=self.path,
            line_start=node.lineno,
            col_start=start - self.line_starts[node.lineno - 1] + 1,
            line_end=node.end_lineno,
            col_end=end - self.line_starts[node.end_lineno - 1] + 1,
        )


# ============================================================
# ===================== ORDER TABLE ==========================
# ============================================================

@dataclass(frozen=True)
class OrderTable:
    """
    Method name -> rank, where rank is the name's position in the configured
    order. Read-only after construction and shared by every chain in a run.
    """
    ranks: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_names(cls, names: Optional[Iterable[str]]) -> "OrderTable":
        ranks: Dict[str, int] = {}
        for position, name in enumerate(names or []):
            name = str(name)
            if name in ranks:
                _report(
                    f"Method '{name}' is listed more than once in the configured order; "
                    f"keeping position {ranks[name]}."
                )
                continue
            ranks[name] = position
        return cls(ranks=MappingProxyType(ranks))

    def rank(self, name: str) -> Optional[int]:
        return self.ranks.get(name)

    def builder(self, name: str) -> bool:
        return name in self.ranks

    @property
    def names(self) -> List[str]:
        return sorted(self.ranks, key=self.ranks.__getitem__)

    def __contains__(self, name: object) -> bool:
        return name in self.ranks

    def __len__(self) -> int:
        return len(self.ranks)


# ============================================================
# ==================== CHAIN SYNTAX ==========================
# ============================================================

class ChainSyntax:
    """
    Describes how calls look in one tree representation.

    ``call_parts`` returns ``(method_name, receiver)`` for a named call
    (receiver is ``None`` for a bare-name call). Anything that cannot take
    part in a chain gives ``None``.
    """

    def iter_children(self, node: Any) -> Iterable[Any]:
        raise NotImplementedError

    def call_parts(self, node: Any) -> Optional[Tuple[str, Any]]:
        raise NotImplementedError

    def arguments(self, node: Any) -> Tuple[Any, ...]:
        raise NotImplementedError

    def span(self, node: Any) -> Optional[Tuple[int, int, int, int]]:
        return None

    def rebind(self, call: "CallNode", receiver: Any, position: int) -> Any:
        raise NotImplementedError


class AstChainSyntax(ChainSyntax):
    """Chains over the stdlib ``ast`` tree; used for analysis."""

    def iter_children(self, node: ast.AST) -> Iterable[ast.AST]:
        return ast.iter_child_nodes(node)

    def call_parts(self, node: Any) -> Optional[Tuple[str, Any]]:
        if not isinstance(node, ast.Call):
            return None
        func = node.func
        if isinstance(func, ast.Name):
            return func.id, None
        if isinstance(func, ast.Attribute):
            return func.attr, func.value
        return None

    def arguments(self, node: ast.Call) -> Tuple[Any, ...]:
        return tuple(node.args) + tuple(node.keywords)

    def span(self, node: ast.AST) -> Optional[Tuple[int, int, int, int]]:
        return (node.lineno, node.col_offset, node.end_lineno, node.end_col_offset)

    def rebind(self, call: "CallNode", receiver: Any, position: int) -> ast.Call:
        if receiver is None:
            func: ast.expr = ast.Name(id=call.name, ctx=ast.Load())
        else:
            func = ast.Attribute(value=receiver, attr=call.name, ctx=ast.Load())
        rebuilt = ast.Call(func=func, args=call.node.args, keywords=call.node.keywords)
        return ast.copy_location(rebuilt, call.node)


class CstChainSyntax(ChainSyntax):
    """
    Chains over the libcst concrete tree. The exact spelling of every
    argument survives a rebind.

    ``layout`` is the original chain, base first. When given, the layout is
    positional: the n-th call of the rebuilt chain takes the parentheses of
    the n-th original call and the ``.`` (with its surrounding whitespace
    and comments) of the n-th original link. Line breaks and trailing
    comments stay on their lines while the calls move between them.
    """

    def __init__(self, layout: Optional[Sequence["CallNode"]] = None) -> None:
        self.layout = list(layout or [])

    def iter_children(self, node: Any) -> Iterable[Any]:
        return node.children

    def call_parts(self, node: Any) -> Optional[Tuple[str, Any]]:
        if not isinstance(node, cst.Call):
            return None
        func = node.func
        if isinstance(func, cst.Name):
            return func.value, None
        if isinstance(func, cst.Attribute):
            return func.attr.value, func.value
        return None

    def arguments(self, node: Any) -> Tuple[Any, ...]:
        return tuple(node.args)

    def rebind(self, call: "CallNode", receiver: Any, position: int) -> Any:
        node = call.node
        if position < len(self.layout):
            slot = self.layout[position].node
            node = node.with_changes(lpar=slot.lpar, rpar=slot.rpar)
        else:
            slot = None

        func = node.func
        if isinstance(func, cst.Attribute):
            name, dot = func.attr, func.dot
        else:
            name, dot = func, cst.Dot()
        if receiver is None:
            return node.with_changes(func=name)
        if slot is not None and isinstance(slot.func, cst.Attribute):
            dot = slot.func.dot
        attribute = cst.Attribute(value=receiver, attr=name.with_changes(lpar=[], rpar=[]), dot=dot)
        return node.with_changes(func=attribute)


AST_SYNTAX = AstChainSyntax()


# ============================================================
# ===================== CALL CHAINS ==========================
# ============================================================

NO_RECEIVER = -1
FOREIGN_RECEIVER = -2


@dataclass
class CallNode:
    """
    One named call inside a candidate expression.

    ``receiver`` is the arena index of the call this one is invoked on,
    ``NO_RECEIVER`` for a bare-name call, or ``FOREIGN_RECEIVER`` when the
    receiver is something other than a call (``T.abstract()``).
    """
    index: int
    name: str
    node: Any
    arguments: Tuple[Any, ...] = ()
    receiver: int = NO_RECEIVER
    span: Optional[Tuple[int, int, int, int]] = None


@dataclass
class CallArena:
    calls: List[CallNode] = field(default_factory=list)
    receiver_of: Dict[int, int] = field(default_factory=dict)  # receiver index -> caller index

    @classmethod
    def build(cls, root: Any, syntax: ChainSyntax) -> "CallArena":
        """
        Index every named call under ``root`` in pre-order, callee before
        arguments, then link each call to its receiver.
        """
        arena = cls()
        receivers: List[Any] = []
        stack = [root]
        while stack:
            node = stack.pop()
            parts = syntax.call_parts(node)
            if parts is not None:
                name, receiver_node = parts
                arena.calls.append(
                    CallNode(
                        index=len(arena.calls),
                        name=name,
                        node=node,
                        arguments=syntax.arguments(node),
                        span=syntax.span(node),
                    )
                )
                receivers.append(receiver_node)
            stack.extend(reversed(list(syntax.iter_children(node))))

        by_identity = {id(call.node): call.index for call in arena.calls}
        for call, receiver_node in zip(arena.calls, receivers):
            if receiver_node is None:
                continue
            receiver_index = by_identity.get(id(receiver_node))
            if receiver_index is None:
                call.receiver = FOREIGN_RECEIVER
                continue
            call.receiver = receiver_index
            arena.receiver_of[receiver_index] = call.index
        return arena

    def find_base(self, table: OrderTable) -> Optional[CallNode]:
        for call in self.calls:
            if call.receiver == NO_RECEIVER and table.builder(call.name):
                return call
        return None

    def __getitem__(self, index: int) -> CallNode:
        return self.calls[index]

    def __len__(self) -> int:
        return len(self.calls)


def extract_chain(root: Any, table: OrderTable, syntax: ChainSyntax = AST_SYNTAX) -> List[CallNode]:
    """
    Linearize the builder chain whose top expression is ``root``.

    Returns the calls from base to tip, or an empty list when ``root`` is not
    itself a builder chain (no base call, or the base only appears nested
    inside some larger expression).
    """
    if root is None:
        return []

    arena = CallArena.build(root, syntax)
    base = arena.find_base(table)
    if base is None:
        return []

    chain = [base]
    current = base
    while current.node is not root:
        caller = arena.receiver_of.get(current.index)
        if caller is None:
            return []
        current = arena[caller]
        chain.append(current)
    return chain


# ============================================================
# =================== ORDER VALIDATION =======================
# ============================================================

ValidationStatus = Literal["canonical", "needs_reorder", "indeterminate"]


@dataclass(frozen=True)
class ValidationResult:
    status: ValidationStatus
    target: Tuple[CallNode, ...] = ()

    @property
    def expected_names(self) -> List[str]:
        return [call.name for call in self.target]


def validate_chain(chain: Sequence[CallNode], table: OrderTable) -> ValidationResult:
    """
    Compare the chain against the global order. Any method without a
    configured rank makes the whole chain indeterminate: it is most likely
    still being typed.
    """
    ranks: List[int] = []
    for call in chain:
        rank = table.rank(call.name)
        if rank is None:
            return ValidationResult("indeterminate")
        ranks.append(rank)

    positions = sorted(range(len(chain)), key=ranks.__getitem__)
    target = tuple(chain[position] for position in positions)
    if [call.name for call in target] == [call.name for call in chain]:
        return ValidationResult("canonical", tuple(chain))
    return ValidationResult("needs_reorder", target)


def order_message(expected: Sequence[str], fixable: bool) -> str:
    message = f"Sig builders must be invoked in the following order: {', '.join(expected)}."
    if not fixable:
        message += " For autocorrection, add the `libcst` package to your project."
    return message


# ============================================================
# ===================== CHAIN REWRITE ========================
# ============================================================

def rebuild_chain(target: Sequence[CallNode], syntax: ChainSyntax = AST_SYNTAX) -> Any:
    """
    Fold the sorted calls into a new chain: the first call becomes the bare
    base and every following call is re-attached to the previous result.
    """
    if not target:
        raise ValueError("cannot rebuild an empty call chain")
    return functools.reduce(
        lambda receiver, item: syntax.rebind(item[1], receiver, item[0]),
        enumerate(target),
        None,
    )


class SourceRegenerator:
    """
    Turns a chain's source text into the same chain in canonical order.

    The chain is reparsed with libcst rather than unparsed from ``ast`` so that
    subscripts, string prefixes, comments and other concrete syntax inside the
    arguments come back exactly as written.
    """

    def __init__(self, available: Optional[bool] = None) -> None:
        self.available = cst is not None and available is not False
        self._syntax = CstChainSyntax() if self.available else None

    def regenerate(self, source_text: str, table: OrderTable) -> str:
        if not self.available:
            raise RegenerationError("source regeneration requires libcst")

        # Wrapping in parentheses lets chains that span lines parse as one expression.
        tree = cst.parse_expression(f"({source_text})")
        tree = tree.with_changes(lpar=[], rpar=[])

        chain = extract_chain(tree, table, self._syntax)
        result = validate_chain(chain, table) if chain else None
        if result is None or result.status != "needs_reorder":
            raise RegenerationError(f"reparsed chain does not need reordering: {source_text!r}")

        layout = CstChainSyntax(layout=chain)
        rebuilt = rebuild_chain(result.target, layout)
        return cst.Module(body=[]).code_for_node(rebuilt)


# ============================================================
# ======================= VIOLATIONS =========================
# ============================================================

@dataclass
class Fix:
    """A lazy text replacement of ``text[start:end]``."""
    start: int
    end: int
    produce: Callable[[], str]
    _replacement: Optional[str] = field(default=None, init=False, repr=False)

    def replacement(self) -> str:
        if self._replacement is None:
            self._replacement = self.produce()
        return self._replacement


@dataclass
class Violation:
    rule_id: str
    severity: str
    message: str

    location: Dict[str, Any]  # {file, line_start, col_start, line_end, col_end}

    context: Dict[str, Any] = field(default_factory=dict)
    suggested_fix: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    fixable: bool = False
    fix: Optional[Fix] = field(default=None, repr=False)
    rewritten: Any = field(default=None, repr=False)  # reordered ast.Call, not serialized


# ============================================================
# ===================== CONFIGURATION ========================
# ============================================================

@dataclass
class ChainOrderConfig:
    enabled: bool = True
    severity: str = "warning"
    signature_functions: List[str] = field(default_factory=lambda: ["sig"])
    order: Optional[List[str]] = field(default_factory=lambda: list(DEFAULT_ORDER))


def config_from_mapping(raw: Any, origin: str = "<config>") -> ChainOrderConfig:
    """
    Build a config from a parsed YAML document. Missing keys keep their
    defaults; malformed values are reported and ignored.
    """
    config = ChainOrderConfig()
    if raw is None:
        return config
    if not isinstance(raw, dict):
        _report(f"Ignoring {origin}: expected a mapping at the top level.")
        return config

    section = raw.get(CONFIG_SECTION, raw)
    if not isinstance(section, dict):
        _report(f"Ignoring {origin}: '{CONFIG_SECTION}' must be a mapping.")
        return config

    def _str_list(key: str, value: Any) -> Optional[List[str]]:
        if isinstance(value, list) and all(isinstance(item, str) for item in value):
            return list(value)
        _report(f"Ignoring '{key}' in {origin}: expected a list of strings.")
        return None

    if "enabled" in section:
        if isinstance(section["enabled"], bool):
            config.enabled = section["enabled"]
        else:
            _report(f"Ignoring 'enabled' in {origin}: expected true or false.")

    if "severity" in section:
        if isinstance(section["severity"], str) and section["severity"]:
            config.severity = section["severity"]
        else:
            _report(f"Ignoring 'severity' in {origin}: expected a string.")

    if "signature_functions" in section:
        names = _str_list("signature_functions", section["signature_functions"])
        if names is not None:
            config.signature_functions = names

    if "order" in section:
        if section["order"] is None:
            config.order = None
        else:
            order = _str_list("order", section["order"])
            if order is not None:
                config.order = order

    return config


def load_config(path: Optional[str] = None) -> ChainOrderConfig:
    """
    Load the YAML config at ``path`` (or ``$CHAINORDER_CONFIG``).

    PyYAML stays optional: without it, or without a readable file, the
    defaults are used and a warning is written.
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return ChainOrderConfig()

    if yaml is None:
        _report("PyYAML is not installed; using the default configuration.")
        return ChainOrderConfig()

    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except FileNotFoundError:
        _report(f"Config file not found: {path}")
        return ChainOrderConfig()
    except OSError as exc:
        _report(f"Could not read config file {path}: {exc}")
        return ChainOrderConfig()
    except yaml.YAMLError as exc:
        _report(f"Could not parse config file {path}: {exc}")
        return ChainOrderConfig()

    return config_from_mapping(raw, origin=path)


# ============================================================
# ================== CANDIDATE DISCOVERY =====================
# ============================================================

def _callee_name(node: ast.Call) -> Optional[str]:
    if isinstance(node.func, ast.Name):
        return node.func.id
    if isinstance(node.func, ast.Attribute):
        return node.func.attr
    return None


def _has_parameters(arguments: ast.arguments) -> bool:
    return bool(
        arguments.posonlyargs
        or arguments.args
        or arguments.kwonlyargs
        or arguments.vararg
        or arguments.kwarg
    )


def find_candidates(tree: ast.AST, signature_functions: Sequence[str]) -> Iterator[ast.expr]:
    """
    Yield the top expression of every signature chain, in source order:
    the body of ``sig(lambda: ...)`` or the argument of ``sig(...)``.
    """
    wanted = set(signature_functions)
    found: List[ast.expr] = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.Call) or _callee_name(node) not in wanted:
            continue
        if len(node.args) != 1:
            continue
        argument = node.args[0]
        if isinstance(argument, ast.Lambda) and not _has_parameters(argument.args):
            argument = argument.body
        found.append(argument)
    found.sort(key=lambda expr: (expr.lineno, expr.col_offset))
    return iter(found)


# ============================================================
# ========================= RULE =============================
# ============================================================

class SignatureBuildOrderRule:
    """
    Checks that signature builder methods are called in the configured order.

        # bad
        sig(lambda: void().abstract())
        sig(lambda: returns(int).params(x=int))

        # good
        sig(lambda: abstract().void())
        sig(lambda: params(x=int).returns(int))
    """

    rule_id = RULE_ID

    def __init__(self, config: ChainOrderConfig, regenerator: Optional[SourceRegenerator] = None) -> None:
        self.config = config
        self.table = OrderTable.from_names(config.order)
        self.regenerator = regenerator if regenerator is not None else SourceRegenerator()

    def check(self, candidate: ast.expr, source: SourceFile) -> Optional[Violation]:
        chain = extract_chain(candidate, self.table)
        if not chain:
            return None

        result = validate_chain(chain, self.table)
        if result.status != "needs_reorder":
            return None

        fixable = self.regenerator.available
        expected = result.expected_names
        rewritten = rebuild_chain(result.target)
        source_range = source.range_of(candidate)

        fix = None
        if fixable:
            start, end = source.offsets_of(candidate)
            fix = Fix(
                start=start,
                end=end,
                produce=functools.partial(self.regenerator.regenerate, source.text[start:end], self.table),
            )

        return Violation(
            rule_id=self.rule_id,
            severity=self.config.severity,
            message=order_message(expected, fixable),
            location={
                "file": source_range.file,
                "line_start": source_range.line_start,
                "col_start": source_range.col_start,
                "line_end": source_range.line_end,
                "col_end": source_range.col_end,
            },
            context={
                "calls": [call.name for call in chain],
                "expected": expected,
            },
            extras={"rewritten": ast.unparse(rewritten)},
            fixable=fixable,
            fix=fix,
            rewritten=rewritten,
        )


# ============================================================
# ======================== ENGINE ============================
# ============================================================

class ChainOrderEngine:
    """
    The engine will:
    - parse each source file
    - hand every signature chain to the rule
    - collect Violations and, on request, apply their fixes
    """

    def __init__(
        self,
        config: Optional[ChainOrderConfig] = None,
        regenerator: Optional[SourceRegenerator] = None,
    ) -> None:
        self.config = config or ChainOrderConfig()
        self.rule = SignatureBuildOrderRule(self.config, regenerator)

    def evaluate_source(self, text: str, path: str = "<string>") -> List[Violation]:
        if not self.config.enabled:
            return []

        try:
            tree = ast.parse(text, filename=path)
        except SyntaxError as exc:
            _report(f"Could not parse '{path}': {exc}")
            return []

        source = SourceFile(path=path, text=text)
        violations: List[Violation] = []
        for candidate in find_candidates(tree, self.config.signature_functions):
            violation = self.rule.check(candidate, source)
            if violation is not None:
                violations.append(violation)

        if violations and not self.rule.regenerator.available:
            _warn_once_libcst_missing()
        return violations

    def evaluate_file(self, path: str) -> List[Violation]:
        text = _read_source(path)
        if text is None:
            return []
        return self.evaluate_source(text, path)

    def resolve_fixes(self, violations: List[Violation]) -> List[Violation]:
        """
        Fill ``suggested_fix`` for every fixable violation. A fix that fails
        is dropped; the violation itself is kept.
        """
        for violation in violations:
            if violation.fix is None:
                continue
            try:
                violation.suggested_fix = violation.fix.replacement()
            except Exception as exc:
                _report_fix_failure(violation, exc)
                violation.fix = None
        return violations

    def fix_source(self, text: str, path: str = "<string>") -> Tuple[str, List[Violation]]:
        """
        Return the corrected text and the violations that could not be fixed.
        """
        violations = self.evaluate_source(text, path)
        return apply_fixes(text, violations)


def _report_fix_failure(violation: Violation, exc: Exception) -> None:
    location = violation.location
    _report(
        f"Could not autocorrect {violation.rule_id} at "
        f"{location.get('file')}:{location.get('line_start')}:{location.get('col_start')} ({exc})."
    )


def apply_fixes(text: str, violations: List[Violation]) -> Tuple[str, List[Violation]]:
    """
    Apply every available fix, last one first so earlier offsets stay valid.
    Overlapping and failing fixes are skipped and their violations returned
    as remaining.
    """
    remaining = [violation for violation in violations if violation.fix is None]
    fixable = sorted(
        (violation for violation in violations if violation.fix is not None),
        key=lambda violation: violation.fix.start,
        reverse=True,
    )

    result = text
    boundary = len(text)
    for violation in fixable:
        fix = violation.fix
        if fix.end > boundary:
            remaining.append(violation)
            continue
        try:
            replacement = fix.replacement()
        except Exception as exc:
            _report_fix_failure(violation, exc)
            remaining.append(violation)
            continue
        violation.suggested_fix = replacement
        result = result[:fix.start] + replacement + result[fix.end:]
        boundary = fix.start

    remaining.sort(key=lambda violation: (violation.location["line_start"], violation.location["col_start"]))
    return result, remaining


def _read_source(path: str) -> Optional[str]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read()
    except FileNotFoundError:
        _report(f"Input file not found: {path}")
    except (OSError, UnicodeDecodeError) as exc:
        _report(f"Could not read {path}: {exc}")
    return None


# ============================================================
# ==================== VIOLATION OUTPUT ======================
# ============================================================

def violation_to_json_obj(v: Violation) -> Dict[str, Any]:
    """
    Convert a Violation into a JSON-friendly dict. The fix callable and the
    rewritten tree stay behind.
    """
    return {
        "rule_id": v.rule_id,
        "severity": v.severity,
        "message": v.message,
        "location": v.location,
        "context": v.context,
        "suggested_fix": v.suggested_fix,
        "fixable": v.fixable,
        "extras": v.extras,
        "tool": TOOL_NAME,
        "version": TOOL_VERSION,
    }


def emit_violations_json(violations: List[Violation], out: Optional[str] = None) -> None:
    as_json = [violation_to_json_obj(v) for v in violations]
    text = json.dumps(as_json, indent=2, sort_keys=False)
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text + "\n")
    else:
        print(text)


# ============================================================
# ============================ CLI ===========================
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.
      chainorder check --config chainorder.yaml src/a.py src/b.py
      chainorder check --fix src/a.py

    Exits with 1 when any violation is left unfixed.
    """
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description="chainorder: canonical ordering for signature builder chains",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    check_p = subparsers.add_parser(
        "check",
        help="Check Python files and emit JSON violations.",
    )
    check_p.add_argument(
        "--config",
        metavar="CONFIG_YAML",
        help=f"YAML config file (default: ${CONFIG_ENV_VAR}).",
        required=False,
    )
    check_p.add_argument(
        "--out",
        metavar="OUT_JSON",
        help="Write violations to this JSON file instead of stdout.",
        required=False,
    )
    check_p.add_argument(
        "--fix",
        action="store_true",
        help="Rewrite files in place with chains in canonical order.",
    )
    check_p.add_argument(
        "files",
        nargs="+",
        help="Python source files to check.",
    )

    args = parser.parse_args(argv)

    if args.command == "check":
        engine = ChainOrderEngine(load_config(args.config))

        violations: List[Violation] = []
        for path in args.files:
            text = _read_source(path)
            if text is None:
                continue
            if args.fix:
                fixed_text, remaining = engine.fix_source(text, path)
                if fixed_text != text:
                    with open(path, "w", encoding="utf-8") as handle:
                        handle.write(fixed_text)
                violations.extend(remaining)
            else:
                violations.extend(engine.resolve_fixes(engine.evaluate_source(text, path)))

        emit_violations_json(violations, out=args.out)
        return 1 if violations else 0

    # unreachable if parser is correct
    return 1


if __name__ == "__main__":
    sys.exit(main())
