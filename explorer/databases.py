"""
Database and dataset API routes for cinema-explorer.

This module provides FastAPI routes for:
- the database registry (databases.json) and switching databases
- loading a dataset from inline CSV text
- the loaded dataset: summary, rows, axis orderings
- "find similar" queries and their overlay bounds
"""

import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, Field

from .session import LoadSuperseded, NoDatasetLoaded, Session, get_session
from .shared.dataset_model import Dataset
from .shared.errors import IngestionFailure, StructuralError, ViewSettingsError
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


class LoadTextRequest(BaseModel):
    """Request model for loading a dataset from CSV text."""

    data: str = Field(..., description="Text of data.csv")
    axis_order: Optional[str] = Field(None, description="Text of axis_order.csv")
    name: str = "inline"


class SimilarRequest(BaseModel):
    """Request model for a similarity query."""

    query: Dict[str, Any] = Field(default_factory=dict)
    threshold: float = Field(1.0, ge=0)
    apply: bool = Field(False, description="Fit the brushes around the result")


def require_dataset(session: Session) -> Dataset:
    """Loaded dataset, or HTTP 409 when there is none."""
    try:
        return session.require_dataset()
    except NoDatasetLoaded as e:
        raise HTTPException(status_code=409, detail=str(e))


def _json_value(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return "NaN"
    return value


@router.get("/databases")
async def list_databases(session: Session = Depends(get_session)):
    """List the databases of databases.json with their view settings."""
    return {
        "databases": [
            {"index": i, **entry.to_dict()} for i, entry in enumerate(session.registry.entries)
        ],
        "active": session.entry_index,
    }


@router.post("/databases/{index}/load")
async def load_database(index: int, session: Session = Depends(get_session)):
    """Switch to another database and load its data.csv / axis_order.csv."""
    try:
        await session.load_database(index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (StructuralError, ViewSettingsError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except IngestionFailure as e:
        raise HTTPException(status_code=502, detail=str(e))
    except LoadSuperseded as e:
        raise HTTPException(status_code=409, detail=str(e))
    finally:
        await session.flush_events()
    return session.summary()


@router.get("/databases/settings")
async def download_settings(session: Session = Depends(get_session)):
    """databases.json with the current view settings, as a download."""
    return ORJSONResponse(
        session.settings(),
        headers={"Content-Disposition": 'attachment; filename="databases.json"'},
    )


@router.post("/dataset/load")
async def load_dataset_text(request: LoadTextRequest, session: Session = Depends(get_session)):
    """Load a dataset from CSV text sent by the client."""
    try:
        session.load_text(request.data, request.axis_order, request.name)
    except StructuralError as e:
        raise HTTPException(status_code=422, detail=str(e))
    finally:
        await session.flush_events()
    return session.summary()


@router.get("/dataset")
async def get_dataset(session: Session = Depends(get_session)):
    """Session state and, once loaded, the dataset summary."""
    return session.summary()


@router.get("/dataset/rows/{index}")
async def get_row(index: int, session: Session = Depends(get_session)):
    """Values of one row (info pane)."""
    dataset = require_dataset(session)
    try:
        dataset.row(index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "index": index,
        "row": dataset.row_to_json(index),
        "picked": index in session.picked,
        "highlighted": index in session.highlighted,
    }


@router.post("/dataset/similar")
async def find_similar(request: SimilarRequest, session: Session = Depends(get_session)):
    """Rows within ``threshold`` of a (partial) query row."""
    dataset = require_dataset(session)
    indices = dataset.get_similar(request.query, request.threshold)

    applied = False
    if request.apply and indices:
        session.pcoord.set_selection(indices)
        applied = True
        await session.flush_events()

    return {
        "indices": indices,
        "count": len(indices),
        "applied": applied,
        "selection_count": len(session.pcoord.selection),
    }


@router.post("/dataset/similar/bounds")
async def similarity_bounds(request: SimilarRequest, session: Session = Depends(get_session)):
    """Lower/upper overlay rows for a similarity query."""
    dataset = require_dataset(session)
    lower, upper = dataset.similarity_bounds(request.query, request.threshold)
    return {
        "lower": {k: _json_value(v) for k, v in lower.items()},
        "upper": {k: _json_value(v) for k, v in upper.items()},
    }


@router.get("/dataset/axis-orderings")
async def get_axis_orderings(session: Session = Depends(get_session)):
    """Named axis orderings of the dataset, by category."""
    dataset = require_dataset(session)
    orderings: Dict[str, List[Dict[str, Any]]] = (
        dataset.axis_ordering.to_dict() if dataset.axis_ordering is not None else {}
    )
    return {
        "has_axis_ordering": dataset.has_axis_ordering,
        "orderings": orderings,
    }
