"""Shared fixtures for the fault log tests."""

from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from faultlog.schemas import Position, RawPhoto
from faultlog.services.reports import ReportStore
from faultlog.services.storage import InMemoryKeyValueStore


def make_image_bytes(size=(64, 48), color=(200, 30, 30), format="JPEG", mode="RGB") -> bytes:
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, format=format)
    return buffer.getvalue()


def make_photo(name="photo.jpg", **kwargs) -> RawPhoto:
    return RawPhoto(filename=name, content=make_image_bytes(**kwargs))


@pytest.fixture
def photo() -> RawPhoto:
    return make_photo()


@pytest.fixture
def position() -> Position:
    return Position(lat=41.0, lng=12.0)


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv_store) -> ReportStore:
    return ReportStore(kv_store, key="test_reports", require_comment=True)
