"""
Index color API routes for cinema-explorer.

Pointer picking works on the offscreen index raster of each chart: every
drawn item is painted in a color encoding its slot, and a small window of
pixels around the pointer is decoded by majority vote.
"""

from enum import Enum
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from .databases import require_dataset
from .session import Session, get_session
from .shared.index_color import DEFAULT_QUORUM, DEFAULT_WINDOW, decode_samples, encode_index, index_to_css

router = APIRouter()


class DecodeRequest(BaseModel):
    """Pixel samples (RGB or RGBA) read around the pointer."""

    samples: List[List[int]] = Field(default_factory=list)
    quorum: int = Field(DEFAULT_QUORUM, ge=1)


class PointerAction(str, Enum):
    MOVE = "move"
    CLICK = "click"


class PickRequest(BaseModel):
    x: int
    y: int
    action: PointerAction = PointerAction.MOVE
    redraw: bool = Field(True, description="Redraw the index raster before testing")


@router.get("/hit-test/encode/{index}")
async def encode(index: int):
    """Index color of ``index``."""
    try:
        rgb = encode_index(index)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"index": index, "rgb": list(rgb), "css": index_to_css(index)}


@router.post("/hit-test/decode")
async def decode(request: DecodeRequest):
    """Decode a window of index-raster pixels to an index."""
    try:
        index = decode_samples(request.samples, request.quorum)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"index": index}


@router.post("/charts/{chart}/pick")
async def pick(chart: str, request: PickRequest, session: Session = Depends(get_session)):
    """Hover or click a chart at pixel ``(x, y)``."""
    require_dataset(session)
    try:
        target = session.chart(chart)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Chart '{chart}' not found")

    if request.redraw or not target.scheduler.drawn:
        await session.ensure_index_raster(chart)

    if request.action == PointerAction.CLICK:
        row = target.click(request.x, request.y)
    else:
        row = target.pointer_move(request.x, request.y)

    await session.flush_events()
    return {
        "chart": chart,
        "row": row,
        "window": DEFAULT_WINDOW,
        "picked": list(session.picked),
        "highlighted": list(session.highlighted),
    }
