"""
Data module: assignments, records and datasets.
"""

from tablefactor.data.record import Assignment, Record, Dataset

__all__ = ["Assignment", "Record", "Dataset"]
