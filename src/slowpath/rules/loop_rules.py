"""Loop-scoped patterns: work repeated on every iteration of a hot loop.

Each detector descends with the loop depth tracked by the traversal state and
matches one call or operator shape inside a loop body, plus a local
heuristic against false positives (loop-invariant arguments, string evidence).
"""

from __future__ import annotations

import abc
import ast

from slowpath.analyzer.models import Diagnostic, Severity
from slowpath.analyzer.visitor import RuleVisitor, names_in
from slowpath.rules import Rule
from slowpath.rules.lock_across_await import is_exclusive_lock, lock_bindings
from slowpath.rules.patterns import COPY_FUNCTIONS, REGEX_COMPILERS


class InLoopCallRule(Rule):
    """Base for detectors that match a single call shape inside loop bodies."""

    def check(self, ctx) -> list[Diagnostic]:
        return _InLoopCallVisitor(ctx, self).run()

    @abc.abstractmethod
    def match(self, visitor: RuleVisitor, node: ast.Call) -> tuple[str, str] | None:
        """Return ``(message, suggestion)`` when ``node`` should be reported."""


class _InLoopCallVisitor(RuleVisitor):
    def visit_Call(self, node: ast.Call) -> None:
        if self.state.in_loop:
            found = self.rule.match(self, node)
            if found is not None:
                message, suggestion = found
                self.report(node, message, suggestion=suggestion)
        self.generic_visit(node)


def _loop_invariant(visitor: RuleVisitor, node: ast.AST | None) -> bool:
    """Whether ``node`` reads none of the names bound by enclosing loop headers."""
    if node is None:
        return True
    return not (names_in(node) & visitor.state.loop_bound_names())


# ----------------------------------------------------------------------------


class RegexInLoopRule(InLoopCallRule):
    id = "regex-in-loop"
    name = "Regex Compilation in Loop"
    description = "Detects re.compile() inside loops; compile the pattern once instead"
    default_severity = Severity.WARNING
    high_confidence = True

    def match(self, visitor, node):
        compiler = visitor.ctx.imported_name(node.func)
        if compiler not in REGEX_COMPILERS:
            return None
        pattern = node.args[0] if node.args else None
        for keyword in node.keywords:
            if keyword.arg == "pattern":
                pattern = keyword.value
        if not _loop_invariant(visitor, pattern):
            return None
        return (
            f"`{compiler}()` called inside loop; the pattern is recompiled on every iteration",
            "Compile the pattern once at module level or before the loop",
        )


class CopyInLoopRule(InLoopCallRule):
    id = "copy-in-loop"
    name = "Copy in Hot Loop"
    description = "Detects copies of a loop-invariant value made on every iteration"
    default_severity = Severity.WARNING

    def match(self, visitor, node):
        func = visitor.ctx.imported_name(node.func)
        if func in COPY_FUNCTIONS and node.args:
            source = node.args[0]
            label = f"{func}()"
        elif (
            isinstance(node.func, ast.Attribute)
            and node.func.attr == "copy"
            and not node.args
            and not node.keywords
            and isinstance(node.func.value, (ast.Name, ast.Attribute))
        ):
            source = node.func.value
            label = f"{visitor.ctx.segment(source)}.copy()"
        else:
            return None
        if not _loop_invariant(visitor, source):
            return None
        return (
            f"`{label}` copies the same value on every loop iteration",
            "Copy once before the loop, or read the original if it is not mutated",
        )


class FormatInLoopRule(InLoopCallRule):
    id = "format-in-loop"
    name = "str.format in Loop"
    description = "Detects \"...\".format() inside loops; f-strings format without the method call"
    default_severity = Severity.INFO

    def match(self, visitor, node):
        func = node.func
        if not (
            isinstance(func, ast.Attribute)
            and func.attr == "format"
            and isinstance(func.value, ast.Constant)
            and isinstance(func.value.value, str)
        ):
            return None
        return (
            "`str.format()` called inside loop; the template is parsed on every iteration",
            "Use an f-string, or move the formatting outside the loop",
        )


class PopFrontInLoopRule(InLoopCallRule):
    """``list.pop(0)`` and ``list.insert(0, x)`` shift every element, so a loop
    draining or filling a list from the front is quadratic."""

    id = "pop-front-in-loop"
    name = "List Front Operation in Loop"
    description = "Detects list.pop(0) / list.insert(0, x) inside loops; each call is O(n)"
    default_severity = Severity.WARNING
    high_confidence = True

    def match(self, visitor, node):
        func = node.func
        if not isinstance(func, ast.Attribute) or node.keywords:
            return None
        if func.attr == "pop" and len(node.args) == 1 and _is_zero(node.args[0]):
            call, alternative = "pop(0)", "popleft()"
        elif func.attr == "insert" and len(node.args) == 2 and _is_zero(node.args[0]):
            call, alternative = "insert(0, ...)", "appendleft()"
        else:
            return None
        return (
            f"`{visitor.ctx.segment(func.value)}.{call}` inside loop shifts every "
            "element on each call",
            f"Use collections.deque and {alternative}",
        )


def _is_zero(node: ast.AST) -> bool:
    return (
        isinstance(node, ast.Constant)
        and type(node.value) is int
        and node.value == 0
    )


# ----------------------------------------------------------------------------


class LockInLoopRule(Rule):
    id = "lock-in-loop"
    name = "Lock Acquisition in Loop"
    description = "Detects a lock acquired on every loop iteration; acquire it once outside the loop"
    default_severity = Severity.WARNING

    def check(self, ctx) -> list[Diagnostic]:
        return _LockInLoopVisitor(ctx, self).run()


class _LockInLoopVisitor(RuleVisitor):
    _SUGGESTION = "Acquire the lock once before the loop to reduce lock contention"

    def __init__(self, ctx, rule) -> None:
        super().__init__(ctx, rule)
        self.locks = lock_bindings(ctx.tree)

    def visit_With(self, node: ast.With | ast.AsyncWith) -> None:
        if self.state.in_loop:
            for item in node.items:
                if is_exclusive_lock(item.context_expr, self.locks):
                    self.report(
                        item.context_expr,
                        f"Lock `{self.ctx.segment(item.context_expr)}` acquired inside loop",
                        suggestion=self._SUGGESTION,
                    )
        self.generic_visit(node)

    visit_AsyncWith = visit_With

    def visit_Call(self, node: ast.Call) -> None:
        func = node.func
        if (
            self.state.in_loop
            and isinstance(func, ast.Attribute)
            and func.attr == "acquire"
            and is_exclusive_lock(func.value, self.locks)
        ):
            self.report(
                node,
                f"`{self.ctx.segment(func.value)}.acquire()` called inside loop",
                suggestion=self._SUGGESTION,
            )
        self.generic_visit(node)


# ----------------------------------------------------------------------------


class StringConcatLoopRule(Rule):
    """``s += piece`` on a string inside a loop.

    Only reported with local evidence that ``s`` is a string: a string
    operand, a ``str()``/``.join()``/``.format()`` call, or ``s`` bound from a
    string literal or annotated ``str`` somewhere in the file (and never from a
    number).
    """

    id = "string-concat-loop"
    name = "String Concatenation in Loop"
    description = "Detects repeated str + str inside loops; join the pieces once instead"
    default_severity = Severity.WARNING

    def check(self, ctx) -> list[Diagnostic]:
        return _StringConcatVisitor(ctx, self, string_names(ctx.tree)).run()


class _StringConcatVisitor(RuleVisitor):
    def __init__(self, ctx, rule, strings: frozenset[str]) -> None:
        super().__init__(ctx, rule)
        self.strings = strings

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        if (
            self.state.in_loop
            and isinstance(node.op, ast.Add)
            and isinstance(node.target, ast.Name)
            and self._stringy(node.target.id, node.value)
        ):
            self._report(node, node.target.id)
        self.generic_visit(node)

    def visit_Assign(self, node: ast.Assign) -> None:
        value = node.value
        if (
            self.state.in_loop
            and len(node.targets) == 1
            and isinstance(node.targets[0], ast.Name)
            and isinstance(value, ast.BinOp)
            and isinstance(value.op, ast.Add)
            and isinstance(value.left, ast.Name)
            and value.left.id == node.targets[0].id
            and self._stringy(value.left.id, value.right)
        ):
            self._report(node, value.left.id)
        self.generic_visit(node)

    def _stringy(self, name: str, operand: ast.AST) -> bool:
        if _is_numeric(operand):
            return False
        return name in self.strings or is_string_expr(operand)

    def _report(self, node: ast.AST, name: str) -> None:
        self.report(
            node,
            f"String `{name}` grown with `+` inside loop; each step copies the whole string",
            suggestion="Append the pieces to a list and ''.join() them after the loop",
        )


def is_string_expr(node: ast.AST) -> bool:
    """Lexical evidence that ``node`` evaluates to a ``str``: any operand of
    a ``+`` chain counts. Long chains are walked without recursion."""
    pending = [node]
    while pending:
        node = pending.pop()
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.Add):
            pending.extend((node.right, node.left))
        elif _is_string_operand(node):
            return True
    return False


def _is_string_operand(node: ast.AST) -> bool:
    if isinstance(node, ast.Constant):
        return isinstance(node.value, str)
    if isinstance(node, ast.JoinedStr):
        return True
    if isinstance(node, ast.BinOp):
        if isinstance(node.op, ast.Mod) and isinstance(node.left, ast.Constant):
            return isinstance(node.left.value, str)
        return False
    if isinstance(node, ast.Call):
        func = node.func
        if isinstance(func, ast.Name):
            return func.id in ("str", "repr", "chr", "format")
        if isinstance(func, ast.Attribute):
            return func.attr in ("join", "format", "strip", "lower", "upper", "replace")
    return False


def _is_numeric(node: ast.AST) -> bool:
    if isinstance(node, ast.Constant):
        return type(node.value) in (int, float, complex)
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
        return node.func.id in ("int", "float", "len", "sum", "abs", "round")
    return False


def string_names(tree: ast.AST) -> frozenset[str]:
    """Names bound from a string literal or annotated ``str``, minus any name
    also bound from a number."""
    strings: set[str] = set()
    numbers: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Assign):
            targets = [t.id for t in node.targets if isinstance(t, ast.Name)]
            if is_string_expr(node.value):
                strings.update(targets)
            elif _is_numeric(node.value):
                numbers.update(targets)
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
            annotation = node.annotation
            if isinstance(annotation, ast.Name) and annotation.id == "str":
                strings.add(node.target.id)
            elif node.value is not None and _is_numeric(node.value):
                numbers.add(node.target.id)
        elif isinstance(node, ast.arg) and isinstance(node.annotation, ast.Name):
            if node.annotation.id == "str":
                strings.add(node.arg)
    return frozenset(strings - numbers)
