from functools import lru_cache

from fastapi import Response

from .services.reports import ReportStore
from .services.storage import SqlKeyValueStore


@lru_cache
def get_report_store() -> ReportStore:
    return ReportStore(SqlKeyValueStore())


def flag_persist_warning(response: Response, store: ReportStore):
    if store.last_persist_error:
        # header values must be latin-1
        response.headers["X-Persist-Warning"] = store.last_persist_error.encode("ascii", "replace").decode("ascii")
