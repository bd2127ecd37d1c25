import unicodedata
from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from .. import config, schemas
from ..dependencies import get_report_store
from ..services import exports as export_service
from ..services.reports import ReportStore

router = APIRouter(prefix="/exports", tags=["Export"])


def content_disposition(filename):
    """Quoted ASCII name, plus an RFC 5987 ``filename*`` when the name needs escaping."""
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode()
    fallback = fallback.replace("\\", "_").replace('"', "_")
    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


@router.get("/{format}")
def download_export(
    format: export_service.ExportFormat,
    site: str = config.ALL,
    status: schemas.StatusFilter = config.ALL,
    store: ReportStore = Depends(get_report_store),
):
    artifact = export_service.export(store, format, site=site, status=status)
    headers = {"Content-Disposition": content_disposition(artifact.filename)}
    if artifact.notices:
        headers["X-Export-Notices"] = str(len(artifact.notices))
    return Response(content=artifact.content, media_type=artifact.media_type, headers=headers)
