"""
Algebra module: weight spaces and operator tables.
"""

from tablefactor.algebra.operators import (
    Op,
    BinaryOperator,
    REAL_OPERATORS,
    LOG_OPERATORS,
)
from tablefactor.algebra.semiring import (
    ProbSemiring,
    LogProbSemiring,
    Semiring,
    PROB,
    LOGPROB,
    DEFAULT_SEMIRING,
    prob_semiring,
    logprob_semiring,
    get_semiring,
)

__all__ = [
    "Op",
    "BinaryOperator",
    "REAL_OPERATORS",
    "LOG_OPERATORS",
    "ProbSemiring",
    "LogProbSemiring",
    "Semiring",
    "PROB",
    "LOGPROB",
    "DEFAULT_SEMIRING",
    "prob_semiring",
    "logprob_semiring",
    "get_semiring",
]
