"""In-memory report collection with lifecycle transitions and persistence.

``ReportStore`` is the only writer of the persisted report list.  Every
operation validates first and mutates second, so a rejected call leaves the
collection untouched.
"""
import logging
import threading
from datetime import datetime, timezone
from uuid import uuid4

from .. import config
from ..errors import (
    EmptyPhotoSet, EmptyComment, EmptyClosingComment, InvalidSite,
    InvalidState, NotFound, StorageError,
)
from ..schemas import Photo, Report, ReportFilter, ReportStatus, MapMarker, MapView
from .geolocation import DEFAULT_POSITION
from .images import REPORT_PHOTO, CLOSING_PHOTO, normalize, to_data_url

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


def build_photos(raw_photos, constraints, captured_at, position=None):
    """Normalize raw captures into Photo records stamped with time and position."""
    photos = []
    for raw in raw_photos:
        result = normalize(raw.content, constraints)
        photos.append(Photo(
            data_url=to_data_url(result.encoded),
            filename=raw.filename,
            captured_at=captured_at,
            lat=position.lat if position else None,
            lng=position.lng if position else None,
            compressed=result.was_compressed,
        ))
    compressed = sum(1 for p in photos if p.compressed)
    if compressed:
        logger.info("%d photo(s) compressed automatically", compressed)
    return photos


class ReportStore:
    def __init__(self, kv_store, key=config.STORAGE_KEY, sites=None, require_comment=None):
        self.kv_store = kv_store
        self.key = key
        self.sites = list(sites or config.SITES)
        self.require_comment = config.REQUIRE_CREATION_COMMENT if require_comment is None else require_comment
        self.last_position = None
        self.last_persist_error = None
        self._closing_id = None
        self._lock = threading.Lock()
        self._reports = self._load()

    # ==========================================
    # PERSISTENCE
    # ==========================================
    def _load(self):
        raw = self.kv_store.load(self.key)
        if not raw:
            return []
        return [Report.model_validate(r) for r in raw]

    def _persist(self):
        data = [r.model_dump(mode="json", by_alias=True) for r in self._reports]
        try:
            self.kv_store.save(self.key, data)
            self.last_persist_error = None
        except StorageError as e:
            # In-memory state stays authoritative; the next save retries the full list.
            logger.warning("Reports not persisted: %s", e)
            self.last_persist_error = str(e)

    # ==========================================
    # HELPERS
    # ==========================================
    def _index(self, report_id):
        for i, r in enumerate(self._reports):
            if r.id == report_id:
                return i
        raise NotFound(report_id)

    def _check_site(self, site):
        if site not in self.sites:
            raise InvalidSite(site)

    def _check_comment(self, comment):
        if self.require_comment and not (comment or "").strip():
            raise EmptyComment()

    def _require(self, report, status, operation):
        if report.status != status:
            raise InvalidState(report.id, report.status.value, operation)

    def _replace(self, report):
        # Photos are normalized outside the lock, so the slot is found again by id.
        self._reports[self._index(report.id)] = report
        self._persist()
        return report

    # ==========================================
    # LETTURA
    # ==========================================
    def get(self, report_id) -> Report:
        return self._reports[self._index(report_id)]

    def list(self, filter=None):
        filter = filter or ReportFilter()
        return [r for r in self._reports if filter.matches(r)]

    def __len__(self):
        return len(self._reports)

    @property
    def closing_id(self):
        return self._closing_id

    def map_markers(self, reports=None) -> MapView:
        reports = self._reports if reports is None else reports
        markers = []
        for r in reports:
            color = config.MARKER_COLOR_COMPLETED if r.is_completed else config.MARKER_COLOR_OPEN
            popup = f"{r.site}\n{r.comment}\n{r.created_at.strftime('%d/%m/%Y %H:%M')}"
            for p in r.photos:
                if p.lat is not None and p.lng is not None:
                    markers.append(MapMarker(lat=p.lat, lng=p.lng, color=color, popup_text=popup))
        return MapView(center=self.last_position or DEFAULT_POSITION, markers=markers)

    # ==========================================
    # CREAZIONE / MODIFICA
    # ==========================================
    def create(self, site, comment, photos, position=None) -> Report:
        if not photos:
            raise EmptyPhotoSet()
        self._check_site(site)
        self._check_comment(comment)

        position = position or DEFAULT_POSITION
        created_at = _now()
        report = Report(
            id=str(uuid4()),
            site=site,
            comment=(comment or "").strip(),
            created_at=created_at,
            photos=build_photos(photos, REPORT_PHOTO, created_at, position),
        )
        with self._lock:
            self.last_position = position
            self._reports.insert(0, report)
            self._persist()
        logger.info("Report %s created on %s with %d photo(s)", report.id, site, len(report.photos))
        return report

    def update(self, report_id, site=None, comment=None) -> Report:
        with self._lock:
            report = self.get(report_id)
            self._require(report, ReportStatus.OPEN, "update")

            changes = {}
            if site is not None:
                self._check_site(site)
                changes["site"] = site
            if comment is not None:
                self._check_comment(comment)
                changes["comment"] = comment.strip()
            if not changes:
                return report
            return self._replace(report.model_copy(update=changes))

    # ==========================================
    # CHIUSURA
    # ==========================================
    def start_closing(self, report_id):
        with self._lock:
            report = self.get(report_id)
            self._require(report, ReportStatus.OPEN, "start_closing")
            if self._closing_id is not None and self._closing_id != report_id:
                raise InvalidState(self._closing_id, "closing", "start_closing")
            self._closing_id = report_id

    def cancel_closing(self, report_id):
        with self._lock:
            if self._closing_id == report_id:
                self._closing_id = None

    def complete(self, report_id, closing_comment, closing_photos=(), position=None) -> Report:
        self._require(self.get(report_id), ReportStatus.OPEN, "complete")
        if not (closing_comment or "").strip():
            raise EmptyClosingComment()

        completed_at = _now()
        photos = build_photos(closing_photos, CLOSING_PHOTO, completed_at, position)
        with self._lock:
            # The report may have been removed or closed while photos were normalized.
            report = self.get(report_id)
            self._require(report, ReportStatus.OPEN, "complete")
            report = report.model_copy(update={
                "status": ReportStatus.COMPLETED,
                "completed_at": completed_at,
                "closing_comment": closing_comment.strip(),
                "closing_photos": photos,
            })
            if self._closing_id == report_id:
                self._closing_id = None
            self._replace(report)
        logger.info("Report %s completed", report_id)
        return report

    def amend_completed(self, report_id, closing_comment, additional_photos=(), position=None) -> Report:
        self._require(self.get(report_id), ReportStatus.COMPLETED, "amend_completed")
        if not (closing_comment or "").strip():
            raise EmptyClosingComment()

        photos = build_photos(additional_photos, CLOSING_PHOTO, _now(), position)
        with self._lock:
            report = self.get(report_id)
            self._require(report, ReportStatus.COMPLETED, "amend_completed")
            return self._replace(report.model_copy(update={
                "closing_comment": closing_comment.strip(),
                "closing_photos": report.closing_photos + photos,
            }))

    def reopen(self, report_id) -> Report:
        with self._lock:
            report = self.get(report_id)
            self._require(report, ReportStatus.COMPLETED, "reopen")
            # TODO: archive the discarded closing comment and photos instead of dropping them
            logger.info("Report %s reopened, closing data discarded", report_id)
            return self._replace(report.model_copy(update={
                "status": ReportStatus.OPEN,
                "completed_at": None,
                "closing_comment": "",
                "closing_photos": [],
            }))

    # ==========================================
    # CANCELLAZIONE
    # ==========================================
    def remove(self, report_id):
        with self._lock:
            del self._reports[self._index(report_id)]
            if self._closing_id == report_id:
                self._closing_id = None
            self._persist()
        logger.info("Report %s deleted", report_id)
