#!/usr/bin/env python

"""
uniadmin_tools/errors.py

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

Exception classes.

"""

from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from uniadmin_tools.constants import SolveStatus


# =============================================================================
# Base class
# =============================================================================


class UniAdminError(Exception):
    """
    Base class for all errors that should abort a run with an informative
    message (rather than a traceback).
    """

    pass


# =============================================================================
# Expressions
# =============================================================================


class ExpressionError(UniAdminError):
    """
    Something is wrong with a user-supplied formula.
    """

    def __init__(
        self, message: str, formula: str, token: Optional[str] = None
    ) -> None:
        """
        Args:
            message:
                What went wrong.
            formula:
                The formula, verbatim.
            token:
                The offending part of the formula, if known.
        """
        self.formula = formula
        self.token = token
        detail = f"{message} in formula {formula!r}"
        if token is not None:
            detail += f" (at {token!r})"
        super().__init__(detail)


class MalformedExpressionError(ExpressionError):
    """
    The formula could not be parsed, or uses a construct that is not part of
    the formula language.
    """

    pass


class IllegalSymbolError(ExpressionError):
    """
    The formula refers to a variable or function that is not permitted in its
    context.
    """

    pass


class ExpressionEvaluationError(ExpressionError):
    """
    The formula is well-formed but undefined for particular inputs (e.g.
    division by zero, or a negative number to a fractional power).
    """

    def __init__(self, message: str, formula: str, **inputs: Any) -> None:
        args = ", ".join(f"{k}={v!r}" for k, v in sorted(inputs.items()))
        super().__init__(f"{message} [with {args}]", formula)
        self.inputs = inputs


# =============================================================================
# Allocation
# =============================================================================


class CapacityInfeasibleError(UniAdminError):
    """
    The allocation problem cannot possibly be solved, as detected before the
    solver is run.
    """

    pass


class SolverError(UniAdminError):
    """
    The solver did not produce a usable allocation.
    """

    def __init__(self, message: str, status: "SolveStatus") -> None:
        self.status = status
        super().__init__(f"{message} [status: {status.name}]")


# =============================================================================
# Score reconciliation
# =============================================================================


class SamplingError(UniAdminError):
    """
    The Markov chain sampler failed, or produced results that cannot be
    trusted.
    """

    pass
