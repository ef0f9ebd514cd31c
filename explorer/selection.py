"""
Selection, chart and pick API routes for cinema-explorer.

This module provides FastAPI routes for:
- brushing the parallel coordinates chart and reading the selection
- resizing charts, dragging and reordering axes
- choosing the scatter plot dimensions
- picking and highlighting rows
"""

from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from .databases import require_dataset
from .session import Session, get_session

router = APIRouter()


class SelectionRequest(BaseModel):
    """Rows the brushes should be fitted around."""

    rows: List[int]


class BrushRequest(BaseModel):
    """Brush extent in axis pixels; null clears the brush."""

    extent: Optional[List[float]] = Field(None, min_length=2, max_length=2)


class SizeRequest(BaseModel):
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class DragPhase(str, Enum):
    START = "start"
    MOVE = "move"
    END = "end"


class DragRequest(BaseModel):
    x: Optional[float] = None


class AxisOrderRequest(BaseModel):
    """Either an explicit order or a named ordering of the dataset."""

    order: Optional[List[str]] = None
    category: Optional[str] = None
    name: Optional[str] = None


class ScatterAxesRequest(BaseModel):
    x: Optional[str] = None
    y: Optional[str] = None


class HighlightRequest(BaseModel):
    rows: List[int] = Field(default_factory=list)


def _selection_response(session: Session):
    pcoord = session.pcoord
    return {
        "selection": pcoord.selection,
        "count": len(pcoord.selection),
        "row_count": session.dataset.row_count,
        "extents": {d: list(e) for d, e in pcoord.brushes.extents.items()},
    }


# ============= Selection =============


@router.get("/selection")
async def get_selection(session: Session = Depends(get_session)):
    require_dataset(session)
    return _selection_response(session)


@router.post("/selection")
async def set_selection(request: SelectionRequest, session: Session = Depends(get_session)):
    """Fit every brush around the given rows."""
    require_dataset(session)
    try:
        session.pcoord.set_selection(request.rows)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    await session.flush_events()
    return _selection_response(session)


@router.put("/selection/brushes/{dimension}")
async def set_brush(dimension: str, request: BrushRequest, session: Session = Depends(get_session)):
    """Set or clear the brush of one axis."""
    require_dataset(session)
    try:
        session.pcoord.set_extent(dimension, request.extent)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Dimension '{dimension}' is not on the chart")
    await session.flush_events()
    return _selection_response(session)


@router.delete("/selection/brushes")
async def clear_brushes(session: Session = Depends(get_session)):
    require_dataset(session)
    session.pcoord.clear_brushes()
    await session.flush_events()
    return _selection_response(session)


# ============= Parallel coordinates =============


@router.get("/charts/pcoord")
async def get_pcoord(session: Session = Depends(get_session)):
    require_dataset(session)
    return session.pcoord.to_dict()


@router.put("/charts/pcoord/size")
async def resize_pcoord(request: SizeRequest, session: Session = Depends(get_session)):
    require_dataset(session)
    session.pcoord.update_size(request.width, request.height)
    return session.pcoord.to_dict()


@router.post("/charts/pcoord/axes/{dimension}/drag/{phase}")
async def drag_axis(
    dimension: str,
    phase: DragPhase,
    request: Optional[DragRequest] = None,
    session: Session = Depends(get_session),
):
    """Start, move or end dragging an axis."""
    require_dataset(session)
    axes = session.pcoord.axes
    try:
        if phase == DragPhase.START:
            position = axes.begin_drag(dimension)
        elif phase == DragPhase.MOVE:
            if request is None or request.x is None:
                raise HTTPException(status_code=400, detail="Dragging an axis requires 'x'")
            axes.update_drag(dimension, request.x)
            position = axes.position(dimension)
        else:
            position = axes.end_drag(dimension)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Dimension '{dimension}' is not on the chart")

    await session.flush_events()
    return {
        "dimension": dimension,
        "position": position,
        "order": axes.order,
        "positions": axes.positions(),
    }


@router.put("/charts/pcoord/axis-order")
async def set_axis_order(request: AxisOrderRequest, session: Session = Depends(get_session)):
    """Apply an explicit order or a named axis ordering."""
    require_dataset(session)
    if request.category is not None and request.name is not None:
        try:
            session.set_axis_ordering(request.category, request.name)
        except KeyError as e:
            raise HTTPException(status_code=404, detail=str(e).strip("'\""))
    elif request.order is not None:
        session.set_axis_order(request.order)
    else:
        raise HTTPException(status_code=400, detail="Provide 'order' or both 'category' and 'name'")

    await session.flush_events()
    return {"order": session.pcoord.order, "positions": session.pcoord.axes.positions()}


# ============= Scatter plot =============


@router.get("/charts/scatter")
async def get_scatter(session: Session = Depends(get_session)):
    require_dataset(session)
    return session.scatter.to_dict()


@router.put("/charts/scatter/size")
async def resize_scatter(request: SizeRequest, session: Session = Depends(get_session)):
    require_dataset(session)
    session.scatter.update_size(request.width, request.height)
    return session.scatter.to_dict()


@router.put("/charts/scatter/axes")
async def set_scatter_axes(request: ScatterAxesRequest, session: Session = Depends(get_session)):
    require_dataset(session)
    try:
        session.scatter.set_axes(request.x, request.y)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Dimension {e} is not on the chart")
    return session.scatter.to_dict()


# ============= Picks and highlight =============


@router.post("/picks/{index}")
async def toggle_pick(index: int, session: Session = Depends(get_session)):
    """Pick a row, or un-pick it if it is already picked."""
    require_dataset(session)
    try:
        picked = session.toggle_pick(index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    await session.flush_events()
    return {"index": index, "picked": picked, "picks": list(session.picked)}


@router.put("/highlight")
async def set_highlight(request: HighlightRequest, session: Session = Depends(get_session)):
    require_dataset(session)
    try:
        rows = session.set_highlight(request.rows)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    await session.flush_events()
    return {"highlighted": rows}
