#!/usr/bin/env python

"""
uniadmin_tools/expression.py

===============================================================================

    Copyright (C) 2019 Rudolf Cardinal (rudolf@pobox.com).

    This file is part of uniadmin_tools.

    This is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License, or
    (at your option) any later version.

    This software is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
    GNU General Public License for more details.

    You should have received a copy of the GNU General Public License
    along with this software. If not, see <https://www.gnu.org/licenses/>.

===============================================================================

Compiles user-supplied formulas (such as ``10 - 2^(ranking - 1) + 1``) into
pure numeric functions.

The formula language is deliberately small:

- numeric literals, and the constants ``pi`` and ``e``;
- the variables permitted in the formula's context (see
  :class:`uniadmin_tools.constants.ExpressionContext`);
- ``+``, ``-``, ``*``, ``/``, unary ``+`` and ``-``, and parentheses;
- exponentiation, written ``^`` or ``**``;
- calls to a fixed set of mathematical functions (see ``FUNCTIONS``).

The text is parsed with :mod:`ast` and the resulting tree is checked, node by
node, against an allow-list. It is never passed to ``eval`` or ``compile``;
evaluation walks the checked tree directly.

"""

import ast
import logging
import math
from typing import Callable, Dict, Sequence, Tuple

from uniadmin_tools.constants import ExpressionContext
from uniadmin_tools.errors import (
    ExpressionEvaluationError,
    IllegalSymbolError,
    MalformedExpressionError,
)

log = logging.getLogger(__name__)


# =============================================================================
# Vocabulary
# =============================================================================

CONSTANTS = {
    "e": math.e,
    "pi": math.pi,
}  # type: Dict[str, float]


def _log(x: float, base: float = None) -> float:
    if base is None:
        return math.log(x)
    return math.log(x, base)


# Function name: (implementation, permitted numbers of arguments)
FUNCTIONS = {
    "abs": (abs, (1,)),
    "ceil": (math.ceil, (1,)),
    "exp": (math.exp, (1,)),
    "floor": (math.floor, (1,)),
    "log": (_log, (1, 2)),
    "log10": (math.log10, (1,)),
    "log2": (math.log2, (1,)),
    "max": (max, (2, 3, 4, 5, 6, 7, 8)),
    "min": (min, (2, 3, 4, 5, 6, 7, 8)),
    "pow": (math.pow, (2,)),
    "sqrt": (math.sqrt, (1,)),
}  # type: Dict[str, Tuple[Callable[..., float], Tuple[int, ...]]]

BINARY_OPERATORS = {
    ast.Add: "+",
    ast.Sub: "-",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Pow: "^",
}
UNARY_OPERATORS = {
    ast.UAdd: "+",
    ast.USub: "-",
}


# =============================================================================
# Interval arithmetic
# =============================================================================


class Interval(object):
    """
    A closed interval of real numbers, ``[lo, hi]``, possibly unbounded.
    Used to bound a function over a box of its inputs.
    """

    __slots__ = ("lo", "hi")

    def __init__(self, lo: float, hi: float = None) -> None:
        if hi is None:
            hi = lo
        if math.isnan(lo) or math.isnan(hi):
            lo, hi = -math.inf, math.inf
        assert lo <= hi, f"Bad interval [{lo}, {hi}]"
        self.lo = float(lo)
        self.hi = float(hi)

    @classmethod
    def unbounded(cls) -> "Interval":
        return cls(-math.inf, math.inf)

    def __str__(self) -> str:
        return f"[{self.lo}, {self.hi}]"

    def __repr__(self) -> str:
        return f"Interval({self.lo!r}, {self.hi!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Interval):
            return NotImplemented
        return self.lo == other.lo and self.hi == other.hi

    def __contains__(self, x: float) -> bool:
        return self.lo <= x <= self.hi

    @property
    def is_bounded(self) -> bool:
        return math.isfinite(self.lo) and math.isfinite(self.hi)

    @property
    def is_point(self) -> bool:
        return self.lo == self.hi

    @property
    def width(self) -> float:
        return self.hi - self.lo

    @property
    def midpoint(self) -> float:
        if not self.is_bounded:
            raise ValueError(f"Unbounded interval {self} has no midpoint")
        return (self.lo + self.hi) / 2

    def __add__(self, other: "Interval") -> "Interval":
        return Interval(self.lo + other.lo, self.hi + other.hi)

    def __sub__(self, other: "Interval") -> "Interval":
        return Interval(self.lo - other.hi, self.hi - other.lo)

    def __neg__(self) -> "Interval":
        return Interval(-self.hi, -self.lo)

    def __mul__(self, other: "Interval") -> "Interval":
        def times(a: float, b: float) -> float:
            # 0 * inf is 0 for bounding purposes, not nan
            if a == 0 or b == 0:
                return 0.0
            return a * b

        products = [
            times(a, b)
            for a in (self.lo, self.hi)
            for b in (other.lo, other.hi)
        ]
        return Interval(min(products), max(products))

    def __truediv__(self, other: "Interval") -> "Interval":
        if other.lo <= 0 <= other.hi:
            return Interval.unbounded()
        return self * Interval(1 / other.hi, 1 / other.lo)

    def __pow__(self, other: "Interval") -> "Interval":
        if other.is_point and float(other.lo).is_integer():
            n = int(other.lo)
            if n == 0:
                return Interval(1.0)
            if n < 0:
                return Interval(1.0) / (self ** Interval(-n))
            lo_n = self.lo ** n
            hi_n = self.hi ** n
            if n % 2 == 1 or self.lo >= 0:
                return Interval(lo_n, hi_n)
            if self.hi <= 0:
                return Interval(hi_n, lo_n)
            return Interval(0.0, max(lo_n, hi_n))
        if self.lo > 0:
            # For a positive base, x^y is monotonic in each argument, so the
            # extremes lie at the corners.
            corners = [
                a**b for a in (self.lo, self.hi) for b in (other.lo, other.hi)
            ]
            return Interval(min(corners), max(corners))
        if self.lo >= 0 and other.lo > 0:
            return Interval(
                0.0, max(self.hi ** other.lo, self.hi ** other.hi)
            )
        return Interval.unbounded()

    def monotonic(self, func: Callable[[float], float]) -> "Interval":
        """
        Applies a non-decreasing function.
        """
        return Interval(func(self.lo), func(self.hi))

    def absolute(self) -> "Interval":
        if self.lo >= 0:
            return Interval(self.lo, self.hi)
        if self.hi <= 0:
            return Interval(-self.hi, -self.lo)
        return Interval(0.0, max(-self.lo, self.hi))


def _interval_log(x: Interval, func: Callable[[float], float]) -> Interval:
    if x.lo <= 0:
        return Interval.unbounded()
    return x.monotonic(func)


def _interval_function(name: str, args: Sequence[Interval]) -> Interval:
    """
    Interval extension of each function in ``FUNCTIONS``.
    """

    def safe_exp(v: float) -> float:
        try:
            return math.exp(v)
        except OverflowError:
            return math.inf

    if name == "abs":
        return args[0].absolute()
    if name == "ceil":
        return args[0].monotonic(
            lambda v: math.ceil(v) if math.isfinite(v) else v
        )
    if name == "floor":
        return args[0].monotonic(
            lambda v: math.floor(v) if math.isfinite(v) else v
        )
    if name == "exp":
        return args[0].monotonic(safe_exp)
    if name == "log":
        numerator = _interval_log(args[0], math.log)
        if len(args) == 1:
            return numerator
        return numerator / _interval_log(args[1], math.log)
    if name == "log10":
        return _interval_log(args[0], math.log10)
    if name == "log2":
        return _interval_log(args[0], math.log2)
    if name == "max":
        return Interval(max(a.lo for a in args), max(a.hi for a in args))
    if name == "min":
        return Interval(min(a.lo for a in args), min(a.hi for a in args))
    if name == "pow":
        return args[0] ** args[1]
    if name == "sqrt":
        if args[0].lo < 0:
            return Interval.unbounded()
        return args[0].monotonic(math.sqrt)
    raise AssertionError(f"Bug: no interval version of {name!r}")


# =============================================================================
# Compiled expression
# =============================================================================


class ExpressionFunction(object):
    """
    A compiled formula: an immutable, pure function of named variables.
    Create via :func:`compile_expression`.
    """

    __slots__ = ("_formula", "_context", "_tree")

    def __init__(
        self, formula: str, context: ExpressionContext, tree: ast.Expression
    ) -> None:
        object.__setattr__(self, "_formula", formula)
        object.__setattr__(self, "_context", context)
        object.__setattr__(self, "_tree", tree)

    def __setattr__(self, key: str, value: object) -> None:
        raise AttributeError(f"{self.__class__.__name__} is immutable")

    def __str__(self) -> str:
        return self._formula

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self._formula!r}, "
            f"{self._context.name})"
        )

    @property
    def formula(self) -> str:
        return self._formula

    @property
    def context(self) -> ExpressionContext:
        return self._context

    @property
    def variables(self) -> Tuple[str, ...]:
        return self._context.value

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def _check_arguments(self, supplied: Sequence[str]) -> None:
        missing = set(self.variables) - set(supplied)
        extra = set(supplied) - set(self.variables)
        if missing or extra:
            raise TypeError(
                f"Formula {self._formula!r} takes exactly the variables "
                f"{self.variables}; missing {sorted(missing)}, "
                f"unexpected {sorted(extra)}"
            )

    def __call__(self, **values: float) -> float:
        """
        Evaluates the formula.

        Raises:
            :exc:`ExpressionEvaluationError` if the formula is undefined for
            these inputs.
        """
        self._check_arguments(list(values.keys()))
        env = {k: float(v) for k, v in values.items()}
        try:
            result = self._evaluate(self._tree.body, env)
        except ZeroDivisionError:
            raise ExpressionEvaluationError(
                "Division by zero", self._formula, **values
            )
        except OverflowError:
            raise ExpressionEvaluationError(
                "Numerical overflow", self._formula, **values
            )
        except ValueError as e:
            raise ExpressionEvaluationError(
                f"Math domain error ({e})", self._formula, **values
            )
        if isinstance(result, complex):
            raise ExpressionEvaluationError(
                "Result is not a real number", self._formula, **values
            )
        if not math.isfinite(result):
            raise ExpressionEvaluationError(
                f"Result is not finite ({result})", self._formula, **values
            )
        return float(result)

    def _evaluate(self, node: ast.AST, env: Dict[str, float]) -> float:
        if isinstance(node, ast.Constant):
            return float(node.value)
        if isinstance(node, ast.Name):
            if node.id in env:
                return env[node.id]
            return CONSTANTS[node.id]
        if isinstance(node, ast.UnaryOp):
            operand = self._evaluate(node.operand, env)
            return -operand if isinstance(node.op, ast.USub) else operand
        if isinstance(node, ast.BinOp):
            left = self._evaluate(node.left, env)
            right = self._evaluate(node.right, env)
            op = node.op
            if isinstance(op, ast.Add):
                return left + right
            if isinstance(op, ast.Sub):
                return left - right
            if isinstance(op, ast.Mult):
                return left * right
            if isinstance(op, ast.Div):
                return left / right
            result = left ** right
            if isinstance(result, complex):
                raise ValueError(
                    f"{left} to the power {right} is not a real number"
                )
            return result
        if isinstance(node, ast.Call):
            func, _ = FUNCTIONS[node.func.id]
            args = [self._evaluate(a, env) for a in node.args]
            return float(func(*args))
        raise AssertionError(f"Bug: unchecked node {ast.dump(node)}")

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def bounds(self, **intervals: Interval) -> Interval:
        """
        Returns an interval guaranteed to contain the value of the formula
        for every input within the (box of) intervals given. The enclosure
        may be loose, and is unbounded where nothing better can be said.
        """
        self._check_arguments(list(intervals.keys()))
        try:
            return self._bounds(self._tree.body, intervals)
        except (OverflowError, ZeroDivisionError, ValueError):
            return Interval.unbounded()

    def _bounds(self, node: ast.AST, env: Dict[str, Interval]) -> Interval:
        if isinstance(node, ast.Constant):
            return Interval(float(node.value))
        if isinstance(node, ast.Name):
            if node.id in env:
                return env[node.id]
            return Interval(CONSTANTS[node.id])
        if isinstance(node, ast.UnaryOp):
            operand = self._bounds(node.operand, env)
            return -operand if isinstance(node.op, ast.USub) else operand
        if isinstance(node, ast.BinOp):
            left = self._bounds(node.left, env)
            right = self._bounds(node.right, env)
            op = node.op
            if isinstance(op, ast.Add):
                return left + right
            if isinstance(op, ast.Sub):
                return left - right
            if isinstance(op, ast.Mult):
                return left * right
            if isinstance(op, ast.Div):
                return left / right
            return left ** right
        if isinstance(node, ast.Call):
            args = [self._bounds(a, env) for a in node.args]
            return _interval_function(node.func.id, args)
        raise AssertionError(f"Bug: unchecked node {ast.dump(node)}")

    def is_affine(self) -> bool:
        """
        Is the formula (structurally) of the form ``a + b*x + c*y + ...``?
        If so, optimizing it over a linear model is itself a linear problem.
        """
        return self._degree(self._tree.body) is not None

    def _degree(self, node: ast.AST):
        """
        0 for a constant, 1 for affine, ``None`` for anything else.
        """
        if isinstance(node, ast.Constant):
            return 0
        if isinstance(node, ast.Name):
            return 1 if node.id in self.variables else 0
        if isinstance(node, ast.UnaryOp):
            return self._degree(node.operand)
        if isinstance(node, ast.BinOp):
            left = self._degree(node.left)
            right = self._degree(node.right)
            if left is None or right is None:
                return None
            op = node.op
            if isinstance(op, (ast.Add, ast.Sub)):
                return max(left, right)
            if isinstance(op, ast.Mult):
                return left + right if left + right <= 1 else None
            if isinstance(op, ast.Div):
                return left if right == 0 else None
            return 0 if left == right == 0 else None
        if isinstance(node, ast.Call):
            degrees = [self._degree(a) for a in node.args]
            return 0 if all(d == 0 for d in degrees) else None
        return None

    def gradient(
        self, step: float = 1e-4, **values: float
    ) -> Dict[str, float]:
        """
        Central-difference gradient at a point. Exact (to rounding) for an
        affine formula.

        Raises:
            :exc:`ExpressionEvaluationError` if the formula cannot be
            evaluated around this point.
        """
        self._check_arguments(list(values.keys()))
        grad = {}  # type: Dict[str, float]
        for var in self.variables:
            h = step * max(1.0, abs(values[var]))
            up = dict(values)
            up[var] = values[var] + h
            down = dict(values)
            down[var] = values[var] - h
            grad[var] = (self(**up) - self(**down)) / (2 * h)
        return grad


# =============================================================================
# Compiler
# =============================================================================


def _token(formula: str, node: ast.AST) -> str:
    """
    Source text of a node, for error messages.
    """
    segment = ast.get_source_segment(formula, node)
    return segment if segment is not None else type(node).__name__


def _check_node(
    node: ast.AST, formula: str, source: str, variables: Sequence[str]
) -> None:
    """
    Checks a parsed node (recursively) against the allow-list.
    ``source`` is the text that was actually parsed.
    """
    if isinstance(node, ast.Constant):
        value = node.value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedExpressionError(
                "Only real numeric literals are permitted",
                formula,
                _token(source, node),
            )
        return
    if isinstance(node, ast.Name):
        if node.id in variables or node.id in CONSTANTS:
            return
        raise IllegalSymbolError(
            f"Unknown variable (permitted: {', '.join(variables)})",
            formula,
            node.id,
        )
    if isinstance(node, ast.UnaryOp):
        if type(node.op) not in UNARY_OPERATORS:
            raise MalformedExpressionError(
                "Unsupported operator", formula, _token(source, node)
            )
        _check_node(node.operand, formula, source, variables)
        return
    if isinstance(node, ast.BinOp):
        if type(node.op) not in BINARY_OPERATORS:
            raise MalformedExpressionError(
                "Unsupported operator", formula, _token(source, node)
            )
        _check_node(node.left, formula, source, variables)
        _check_node(node.right, formula, source, variables)
        return
    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name):
            raise MalformedExpressionError(
                "Only named functions may be called",
                formula,
                _token(source, node.func),
            )
        name = node.func.id
        if name not in FUNCTIONS:
            raise IllegalSymbolError(
                f"Function not permitted (permitted: "
                f"{', '.join(sorted(FUNCTIONS))})",
                formula,
                name,
            )
        if node.keywords or any(
            isinstance(a, ast.Starred) for a in node.args
        ):
            raise MalformedExpressionError(
                "Function arguments must be plain and positional",
                formula,
                _token(source, node),
            )
        _, n_args_permitted = FUNCTIONS[name]
        if len(node.args) not in n_args_permitted:
            raise MalformedExpressionError(
                f"Wrong number of arguments to {name}()",
                formula,
                _token(source, node),
            )
        for arg in node.args:
            _check_node(arg, formula, source, variables)
        return
    raise MalformedExpressionError(
        f"Unsupported construct ({type(node).__name__})",
        formula,
        _token(source, node),
    )


def compile_expression(
    formula: str, context: ExpressionContext
) -> ExpressionFunction:
    """
    Compiles a formula for use in a given context.

    Args:
        formula:
            The formula, e.g. ``"10 - 2^(ranking - 1) + 1"``.
        context:
            Where it will be used; this determines which variables it may
            refer to.

    Raises:
        :exc:`MalformedExpressionError` if it can't be parsed;
        :exc:`IllegalSymbolError` if it refers to things it shouldn't.
    """
    if not isinstance(formula, str) or not formula.strip():
        raise MalformedExpressionError("Empty formula", str(formula))
    # "^" is exponentiation in our formula language (it is XOR in Python,
    # which we don't support).
    source = formula.strip().replace("^", "**")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        token = None
        if e.offset is not None and 0 < e.offset <= len(source):
            token = source[e.offset - 1:].split()[0]
        raise MalformedExpressionError(
            f"Syntax error ({e.msg})", formula, token
        )
    except ValueError as e:  # e.g. null bytes
        raise MalformedExpressionError(f"Unparseable ({e})", formula)
    _check_node(tree.body, formula, source, context.value)
    log.debug(f"Compiled {context.name} formula: {formula!r}")
    return ExpressionFunction(formula, context, tree)
