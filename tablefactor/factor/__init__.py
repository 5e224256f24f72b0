"""
Factor module: table factors over finite variables and the operations on them.
"""

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
    elementwise_max,
    elementwise_min,
    identity_factor,
)
from tablefactor.factor.io import (
    to_fields,
    from_fields,
    dump_factor,
    load_factor,
    save_factor,
    load_factor_file,
)

__all__ = [
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
    "elementwise_max",
    "elementwise_min",
    "identity_factor",
    "to_fields",
    "from_fields",
    "dump_factor",
    "load_factor",
    "save_factor",
    "load_factor_file",
]
