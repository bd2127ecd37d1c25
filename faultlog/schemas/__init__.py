from .reports import (
    ReportStatus, Position, PositionFix, RawPhoto, Photo, Report,
    ReportUpdate, ReportFilter, StatusFilter, MapMarker, MapView, SampleRequest,
)
