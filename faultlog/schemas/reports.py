from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import ALL


class ReportStatus(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"


class CamelModel(BaseModel):
    """Persisted and exchanged with camelCase keys, built with either spelling."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(CamelModel):
    lat: float
    lng: float
    accuracy: Optional[float] = None


class PositionFix(CamelModel):
    lat: float
    lng: float
    accuracy: float


class RawPhoto(BaseModel):
    filename: str = "photo.jpg"
    content: bytes


class Photo(CamelModel):
    data_url: str
    filename: str = ""
    captured_at: datetime
    lat: Optional[float] = None
    lng: Optional[float] = None
    compressed: bool = False


class Report(CamelModel):
    id: str
    site: str
    comment: str = ""
    created_at: datetime
    photos: List[Photo] = Field(default_factory=list)
    status: ReportStatus = ReportStatus.OPEN
    completed_at: Optional[datetime] = None
    closing_comment: str = ""
    closing_photos: List[Photo] = Field(default_factory=list)

    @property
    def is_completed(self):
        return self.status == ReportStatus.COMPLETED

    @property
    def coordinates(self):
        """First geotagged photo's (lat, lng), or None."""
        for p in self.photos:
            if p.lat is not None and p.lng is not None:
                return p.lat, p.lng
        return None


class ReportUpdate(BaseModel):
    site: Optional[str] = None
    comment: Optional[str] = None


StatusFilter = Literal["all", "open", "completed"]


class ReportFilter(BaseModel):
    text_query: str = ""
    site: str = ALL
    status: StatusFilter = ALL

    def matches(self, report: Report) -> bool:
        if self.text_query and self.text_query.lower() not in report.comment.lower():
            return False
        if self.site != ALL and report.site != self.site:
            return False
        if self.status != ALL and report.status.value != self.status:
            return False
        return True


class MapMarker(CamelModel):
    lat: float
    lng: float
    color: str
    popup_text: str


class MapView(CamelModel):
    center: Position
    markers: List[MapMarker] = Field(default_factory=list)


class SampleRequest(BaseModel):
    fixes: List[PositionFix] = Field(default_factory=list)
    count: Optional[int] = None
    timeout_ms: Optional[int] = None
