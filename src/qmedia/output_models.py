from __future__ import annotations

from pydantic import BaseModel, Field


class TagOutput(BaseModel):
    key: str
    value: str


class MediaOutput(BaseModel):
    hash: int
    path: str
    media_type: str
    folder: str
    date: str
    modified: str
    width: int
    height: int
    ratio: float
    padding: float
    rating: float = 0.0
    shutter_speed: str = ""
    aperture: float = 0.0
    iso: float = 0.0
    lens: str = ""
    camera: str = ""
    focal_length: float = 0.0
    focal_length_35: float = 0.0
    focus_distance: float = 0.0
    altitude: float = 0.0
    latitude: float = 0.0
    longitude: float = 0.0
    color: str = ""
    location: str = ""
    description: str = ""
    title: str = ""
    software: str = ""
    offset: float = 0.0
    rotation: float = 0.0
    tags: list[TagOutput] = []
    srcset: str = ""


class NeighborOutput(BaseModel):
    hash: int
    path: str
    media_type: str
    date: str
    width: int
    height: int
    color: str = ""
    srcset: str = ""


class MediaDetailOutput(BaseModel):
    media: MediaOutput
    previous: list[NeighborOutput] = []
    next: list[NeighborOutput] = []


class TimelineItem(BaseModel):
    id: int
    w: int
    h: int
    c: str = ""
    t: str = ""
    d: str


class DayCount(BaseModel):
    day: str
    total: int


class TimelineOutput(BaseModel):
    total: int
    items: list[TimelineItem] = []
    days: list[DayCount] = []
    next_cursor: str = ""


class FolderNode(BaseModel):
    key: str
    name: str
    id: int = 0
    image_count: int = 0
    media: list[NeighborOutput] = []
    children: list[FolderNode] = Field(default_factory=list)


class GearItem(BaseModel):
    name: str
    total: int


class GearOutput(BaseModel):
    camera: list[GearItem] = []
    lens: list[GearItem] = []
    focal_length_35: list[GearItem] = []
    software: list[GearItem] = []


class MemoryYear(BaseModel):
    years_ago: int
    date: str
    total: int
    media: list[NeighborOutput] = []


FolderNode.model_rebuild()
