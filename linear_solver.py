import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import NamedTuple, Tuple

import numpy as np
import scipy.linalg as sla

logger = logging.getLogger(__name__)

# Working precision for every computation
FLOAT_DTYPE = np.float64


class InvalidInputError(ValueError):
    """Raised when A, b or tol cannot be used as given."""


class DimensionMismatchError(InvalidInputError):
    """Raised when len(b) does not match the row count of A."""


class CaseLabel(Enum):
    SQUARE = "square"
    WIDE = "wide"
    TALL = "tall"
    RANK_DEFICIENT = "rank-deficient"


class SolutionType(Enum):
    UNIQUE = "unique solution"
    MINIMAL_NORM = "minimal-norm solution"
    LEAST_SQUARES_UNIQUE = "least-squares solution (unique)"
    MINIMAL_NORM_CONSISTENT = "minimal-norm solution (consistent)"
    MINIMUM_NORM_LEAST_SQUARES = "least-squares solution of minimum norm"


@dataclass(frozen=True)
class Diagnostics:
    """What solve() decided and how well the returned x fits."""
    rank: int
    tol: float
    case: CaseLabel
    solution_type: SolutionType
    residual: float
    norm_x: float
    consistent: bool
    shape: Tuple[int, int]

    def to_dict(self):
        data = asdict(self)
        data["case"] = self.case.value
        data["solution_type"] = self.solution_type.value
        return data

    def summary(self):
        return f"Rank = {self.rank}, {self.solution_type.value}"


class Solution(NamedTuple):
    x: np.ndarray
    meta: Diagnostics


def _as_real_array(value, name):
    arr = np.asarray(value)
    if np.iscomplexobj(arr):
        raise TypeError(f"{name} must be real; complex input is not supported")
    if not (np.issubdtype(arr.dtype, np.number) or arr.dtype == np.bool_):
        raise InvalidInputError(f"{name} must be numeric, got dtype {arr.dtype}")
    arr = arr.astype(FLOAT_DTYPE, copy=True)
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError(f"{name} must contain only finite entries")
    return arr


def _validate(A, b):
    """
    Normalize A to an (m, n) float array and b to a length-m vector.

    Returns:
      A (ndarray)   : (m, n) float copy
      b (ndarray)   : (m,) float copy
      column (bool) : True when b was passed as an (m, 1) column
    """
    # --- validate A ---
    A = _as_real_array(A, "A")
    if A.ndim != 2:
        raise InvalidInputError("A must be two-dimensional")
    m = A.shape[0]

    # --- normalize/validate b -> (m,) ---
    b = _as_real_array(b, "b")
    column = False
    if b.ndim == 2 and b.shape[1] == 1:
        column = True
        b = b.reshape(b.shape[0])
    elif b.ndim != 1:
        raise InvalidInputError("b must be a vector of shape (m,) or (m, 1)")
    if b.shape[0] != m:
        raise DimensionMismatchError(
            f"b has length {b.shape[0]} but A has {m} rows"
        )
    return A, b, column


def resolve_tolerance(A, tol=None):
    """
    Return the tolerance shared by the rank and consistency tests.

    With tol=None this is max(m, n) * spacing(||A||_F), i.e. the matrix
    dimension times the float gap at the magnitude of A's Frobenius norm.
    A caller tolerance must be a finite real number >= 0.
    """
    if tol is not None:
        try:
            tol = float(tol)
        except (TypeError, ValueError) as exc:
            raise InvalidInputError(f"tol must be a real number, got {tol!r}") from exc
        if not np.isfinite(tol) or tol < 0:
            raise InvalidInputError(f"tol must be finite and nonnegative, got {tol}")
        return tol

    A = np.asarray(A, dtype=FLOAT_DTYPE)
    m, n = A.shape
    return float(max(m, n) * np.spacing(np.linalg.norm(A, "fro")))


def estimate_rank(A, tol):
    """Numerical rank of A: the number of singular values above tol."""
    if A.size == 0:
        return 0
    return int(np.linalg.matrix_rank(A, tol=tol))


def _below_tolerance(value, tol):
    # at zero tolerance only an exact zero passes
    if tol == 0:
        return value == 0
    return value < tol


def is_consistent(A, b, tol):
    """
    Decide whether b lies in range(A) within tol.

    The residual of b against the projector I - A A^+ (pseudoinverse taken
    at the same absolute cutoff as the rank) must fall below tol.
    """
    m, n = A.shape
    if m == 0:
        return _below_tolerance(0.0, tol)
    if n == 0:
        return _below_tolerance(float(np.linalg.norm(b)), tol)

    A_pinv = sla.pinv(A, atol=tol, rtol=0.0)
    P = np.eye(m, dtype=FLOAT_DTYPE) - A @ A_pinv
    return _below_tolerance(float(np.linalg.norm(P @ b)), tol)


def classify(m, n, rank):
    """
    Pick the regime for an (m, n) matrix of the given rank.

    The full-rank branches are tried in order square, wide, tall; anything
    left over is rank-deficient.
    """
    if rank < 0 or rank > min(m, n):
        raise InvalidInputError(f"rank {rank} is impossible for a {m}x{n} matrix")
    if m == n and rank == n:
        return CaseLabel.SQUARE
    if rank == m and m < n:
        return CaseLabel.WIDE
    if rank == n and n < m:
        return CaseLabel.TALL
    return CaseLabel.RANK_DEFICIENT


def _solve_square(A, b):
    return np.linalg.solve(A, b)


def _solve_wide(A, b):
    # right inverse: x = A^T (A A^T)^{-1} b
    return A.T @ np.linalg.solve(A @ A.T, b)


def _solve_tall(A, b):
    # left inverse / normal equations: x = (A^T A)^{-1} A^T b
    return np.linalg.solve(A.T @ A, A.T @ b)


def _solve_pinv(A, b, tol):
    return sla.pinv(A, atol=tol, rtol=0.0) @ b


_FULL_RANK_SOLUTION_TYPES = {
    CaseLabel.SQUARE: SolutionType.UNIQUE,
    CaseLabel.WIDE: SolutionType.MINIMAL_NORM,
    CaseLabel.TALL: SolutionType.LEAST_SQUARES_UNIQUE,
}


def solution_type_for(case, consistent):
    """Textbook label for a case; consistency only matters when rank deficient."""
    if case is CaseLabel.RANK_DEFICIENT:
        if consistent:
            return SolutionType.MINIMAL_NORM_CONSISTENT
        return SolutionType.MINIMUM_NORM_LEAST_SQUARES
    return _FULL_RANK_SOLUTION_TYPES[case]


def _dispatch(case, A, b, tol):
    if case is CaseLabel.SQUARE:
        return _solve_square(A, b)
    if case is CaseLabel.WIDE:
        return _solve_wide(A, b)
    if case is CaseLabel.TALL:
        return _solve_tall(A, b)
    if case is CaseLabel.RANK_DEFICIENT:
        return _solve_pinv(A, b, tol)
    raise AssertionError(f"unhandled case {case!r}")


def solve(A, b, tol=None):
    """
    Solve A x = b choosing among the four rank/shape regimes.

      square, full rank            -> unique solution       x = A^{-1} b
      wide (m < n), rank m         -> minimal-norm solution x = A^T (A A^T)^{-1} b
      tall (m > n), rank n         -> least-squares (unique) x = (A^T A)^{-1} A^T b
      anything rank deficient      -> x = A^+ b, labelled minimal-norm if b is in
                                      range(A), minimum-norm least-squares otherwise

    Args:
      A   : (m, n) array-like of finite reals
      b   : (m,) or (m, 1) array-like of finite reals
      tol : optional nonnegative tolerance; defaults to max(m, n) * spacing(||A||_F)

    Returns:
      Solution(x, meta): x has shape (n,) (or (n, 1) for a column b) and meta is
      a Diagnostics record.

    Example:
      >>> x, meta = solve([[2.0, 0.0], [0.0, 3.0]], [4.0, 9.0])
      >>> meta.summary()
      'Rank = 2, unique solution'
    """
    A, b, column = _validate(A, b)
    m, n = A.shape

    tol = resolve_tolerance(A, tol)
    if tol == 0:
        logger.warning("tolerance resolved to 0 for a %dx%d matrix; "
                       "rank and consistency tests use exact comparisons", m, n)

    r = estimate_rank(A, tol)
    consistent = is_consistent(A, b, tol)
    case = classify(m, n, r)
    logger.debug("shape=%dx%d tol=%.3e rank=%d case=%s consistent=%s",
                 m, n, tol, r, case.value, consistent)

    # --- edge cases: no equations or no unknowns ---
    if m == 0 or n == 0:
        x = np.zeros(n, dtype=FLOAT_DTYPE)
    else:
        x = _dispatch(case, A, b, tol)

    meta = Diagnostics(
        rank=r,
        tol=tol,
        case=case,
        solution_type=solution_type_for(case, consistent),
        residual=float(np.linalg.norm(A @ x - b)),
        norm_x=float(np.linalg.norm(x)),
        consistent=bool(consistent),
        shape=(m, n),
    )

    # return a column for a column right-hand side
    if column:
        x = x.reshape(n, 1)
    return Solution(x, meta)


__all__ = [
    "FLOAT_DTYPE",
    "InvalidInputError",
    "DimensionMismatchError",
    "CaseLabel",
    "SolutionType",
    "Diagnostics",
    "Solution",
    "resolve_tolerance",
    "estimate_rank",
    "is_consistent",
    "classify",
    "solution_type_for",
    "solve",
]
