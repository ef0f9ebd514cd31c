"""
Core data model and selection engine for cinema-explorer.

Everything in this package is synchronous and independent of FastAPI, except
the batched index redraw which runs as an asyncio task.
"""
from .csv_parser import format_csv, parse_csv
from .dataset_model import Dataset, Dimension, DimensionType, load_dataset
from .errors import AxisOrderingWarning, IngestionFailure, StructuralError

__all__ = [
    "parse_csv",
    "format_csv",
    "Dataset",
    "Dimension",
    "DimensionType",
    "load_dataset",
    "StructuralError",
    "AxisOrderingWarning",
    "IngestionFailure",
]
