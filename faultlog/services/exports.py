"""Report exports: CSV, JSON, spreadsheet and paginated document.

Every export goes through ``export()``, which reads ``ReportStore.list()``
with the caller's filter, so an export always matches the on-screen list.
"""
import csv
import io
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from ..config import ALL
from ..errors import ExportDependencyError, ImageDecodeError
from ..schemas import ReportFilter
from .images import decode_image, from_data_url

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"
    SPREADSHEET = "xlsx"
    DOCUMENT = "pdf"


MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
    ExportFormat.SPREADSHEET: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.DOCUMENT: "application/pdf",
}

STATUS_LABELS = {"open": "Aperta", "completed": "Completata"}

# (header, column width) for the spreadsheet text columns, then the two image anchors
SPREADSHEET_COLUMNS = [
    ("Cantiere", 20),
    ("Commento", 40),
    ("Creato il", 20),
    ("Stato", 12),
    ("Chiusura", 40),
    ("Foto", 18),
    ("Foto chiusura", 18),
]
PHOTO_COLUMN = "F"
CLOSING_PHOTO_COLUMN = "G"
ROW_HEIGHT_PT = 80
THUMBNAIL_PX = 100

# Codecs tried in order when embedding a stored photo
EMBED_CODECS = ("JPEG", "PNG")


@dataclass
class Artifact:
    filename: str
    media_type: str
    content: bytes
    notices: List[str] = field(default_factory=list)


def format_date(value):
    return value.strftime("%d/%m/%Y %H:%M") if value else "-"


def format_coord(value):
    return f"{value:.6f}" if value is not None else ""


def status_label(report):
    return STATUS_LABELS[report.status.value]


def export_filename(format, site=ALL, status=ALL):
    name = f"export_{site if site != ALL else 'all'}"
    if status != ALL:
        name += f"_{status}"
    return f"{name}.{ExportFormat(format).value}"


def load_embeddable_image(data_url, notices):
    """Decode a stored photo trying each codec in EMBED_CODECS; None (plus a notice) when all fail."""
    try:
        data = from_data_url(data_url)
    except ImageDecodeError as e:
        notices.append(str(e))
        logger.warning("Skipping photo: %s", e)
        return None

    for codec in EMBED_CODECS:
        try:
            return decode_image(data, formats=[codec])
        except ImageDecodeError:
            logger.debug("Photo is not %s, trying next codec", codec)
    notices.append("Foto non leggibile, saltata")
    logger.warning("Skipping photo: no codec in %s could decode it", EMBED_CODECS)
    return None


# ==========================================
# 1. CSV / JSON
# ==========================================
def to_row(report):
    return {
        "id": report.id,
        "site": report.site,
        "comment": report.comment,
        "createdAt": report.created_at.isoformat(),
        "status": report.status.value,
        "closingComment": report.closing_comment,
        "completedAt": report.completed_at.isoformat() if report.completed_at else None,
    }


def generate_csv(reports):
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["site", "comment", "createdAt", "status", "closingComment", "completedAt", "lat", "lng"])
    for r in reports:
        row = to_row(r)
        lat, lng = r.coordinates or (None, None)
        writer.writerow([
            row["site"], row["comment"], row["createdAt"], row["status"],
            row["closingComment"], row["completedAt"] or "",
            format_coord(lat), format_coord(lng),
        ])
    # BOM so that Excel opens the file as UTF-8
    return buffer.getvalue().encode("utf-8-sig"), []


def generate_json(reports):
    return json.dumps([to_row(r) for r in reports], ensure_ascii=False, indent=2).encode("utf-8"), []


# ==========================================
# 2. SPREADSHEET
# ==========================================
def _thumbnail(img):
    from openpyxl.drawing.image import Image as XLImage

    img = img.convert("RGB")
    img.thumbnail((THUMBNAIL_PX, THUMBNAIL_PX))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)
    return XLImage(buffer)


def generate_spreadsheet(reports):
    from openpyxl import Workbook

    notices = []
    wb = Workbook()
    ws = wb.active
    ws.title = "Segnalazioni"

    ws.append([header for header, _ in SPREADSHEET_COLUMNS])
    for i, (_, width) in enumerate(SPREADSHEET_COLUMNS):
        ws.column_dimensions[chr(ord("A") + i)].width = width

    for row_index, r in enumerate(reports, start=2):
        ws.append([
            r.site,
            r.comment,
            format_date(r.created_at),
            status_label(r),
            r.closing_comment or "",
        ])
        ws.row_dimensions[row_index].height = ROW_HEIGHT_PT

        anchors = [(PHOTO_COLUMN, r.photos), (CLOSING_PHOTO_COLUMN, r.closing_photos)]
        for column, photos in anchors:
            if not photos:
                continue
            img = load_embeddable_image(photos[0].data_url, notices)
            if img is not None:
                ws.add_image(_thumbnail(img), f"{column}{row_index}")

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue(), notices


# ==========================================
# 3. DISPATCH
# ==========================================
def _document(reports, label):
    try:
        from . import pdf as pdf_service
    except ImportError as e:
        raise ExportDependencyError("PDF", "reportlab") from e
    return pdf_service.generate_document(reports, label)


def _spreadsheet(reports, label):
    try:
        import openpyxl  # noqa: F401
    except ImportError as e:
        raise ExportDependencyError("Excel", "openpyxl") from e
    return generate_spreadsheet(reports)


RENDERERS = {
    ExportFormat.CSV: lambda reports, label: generate_csv(reports),
    ExportFormat.JSON: lambda reports, label: generate_json(reports),
    ExportFormat.SPREADSHEET: _spreadsheet,
    ExportFormat.DOCUMENT: _document,
}


def generate(format, reports, label=ALL, filename=None) -> Artifact:
    format = ExportFormat(format)
    content, notices = RENDERERS[format](reports, label)
    logger.info("Exported %d report(s) as %s (%d notice(s))", len(reports), format.value, len(notices))
    return Artifact(
        filename=filename or export_filename(format, label),
        media_type=MEDIA_TYPES[format],
        content=content,
        notices=notices,
    )


def export(store, format, site=ALL, status=ALL) -> Artifact:
    reports = store.list(ReportFilter(site=site, status=status))
    return generate(format, reports, label=site, filename=export_filename(format, site, status))
