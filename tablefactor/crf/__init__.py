"""
CRF module: conditional table factors and their learning interface.
"""

from tablefactor.crf.table_crf_factor import (
    TableCRFFactor,
    Regularization,
    REGULARIZATION_NONE,
    REGULARIZATION_L2,
)

__all__ = [
    "TableCRFFactor",
    "Regularization",
    "REGULARIZATION_NONE",
    "REGULARIZATION_L2",
]
