"""
tablefactor: dense table factors over finite variables

Multi-dimensional tables indexed by joint assignments to discrete variables,
with the algebra used by probabilistic graphical models: combine, collapse,
restrict, normalize and the information-theoretic statistics, in real or
log space.

Key components:
- core: Variables, the universe that creates them, logging helpers
- algebra: Weight spaces (semirings) and operator tables
- tensor: Shape algebra and the generic dense-table algorithms
- factor: TableFactor, free functions and persistence
- data: Assignments, records and datasets
- crf: Conditional (CRF) table factors with gradients and regularization
- inference: Junction tree calibration
"""

__version__ = "1.0.0"
__author__ = "tablefactor Team"

from tablefactor.errors import InvalidArgumentError, NormalizationError, PreconditionError
from tablefactor.core.universe import Variable, Universe, Domain, make_domain, ordered
from tablefactor.core.logging import setup_logging, get_logger
from tablefactor.algebra.operators import Op, BinaryOperator
from tablefactor.algebra.semiring import (
    ProbSemiring,
    LogProbSemiring,
    PROB,
    LOGPROB,
    prob_semiring,
    logprob_semiring,
    get_semiring,
)
from tablefactor.tensor.dense_table import DenseTable
from tablefactor.data.record import Record, Dataset
from tablefactor.factor.table_factor import TableFactor
from tablefactor.factor.operations import (
    combine,
    make_dense_table_factor,
    norm_1,
    norm_inf,
    norm_1_log,
    norm_inf_log,
    weighted_update,
    power,
    arg_max,
    arg_min,
    identity_factor,
)
from tablefactor.factor.io import dump_factor, load_factor
from tablefactor.crf.table_crf_factor import TableCRFFactor, Regularization
from tablefactor.inference.junction_tree import JunctionTree

__all__ = [
    # Errors
    "InvalidArgumentError",
    "NormalizationError",
    "PreconditionError",
    # Variables
    "Variable",
    "Universe",
    "Domain",
    "make_domain",
    "ordered",
    # Logging
    "setup_logging",
    "get_logger",
    # Algebra
    "Op",
    "BinaryOperator",
    "ProbSemiring",
    "LogProbSemiring",
    "PROB",
    "LOGPROB",
    "prob_semiring",
    "logprob_semiring",
    "get_semiring",
    # Tables and factors
    "DenseTable",
    "TableFactor",
    "combine",
    "make_dense_table_factor",
    "norm_1",
    "norm_inf",
    "norm_1_log",
    "norm_inf_log",
    "weighted_update",
    "power",
    "arg_max",
    "arg_min",
    "identity_factor",
    "dump_factor",
    "load_factor",
    # Data
    "Record",
    "Dataset",
    # CRF and inference
    "TableCRFFactor",
    "Regularization",
    "JunctionTree",
]
