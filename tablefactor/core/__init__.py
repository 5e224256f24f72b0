"""
Core module: variables, universe and logging helpers.
"""

from tablefactor.core.universe import (
    Variable,
    Universe,
    Domain,
    make_domain,
    ordered,
    num_assignments,
    includes,
)
from tablefactor.core.logging import get_logger, setup_logging

__all__ = [
    "Variable",
    "Universe",
    "Domain",
    "make_domain",
    "ordered",
    "num_assignments",
    "includes",
    "get_logger",
    "setup_logging",
]
