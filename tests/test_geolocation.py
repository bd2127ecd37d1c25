"""Tests for best-of-N position sampling."""

from __future__ import annotations

import asyncio

import pytest

from faultlog.errors import SensorUnavailable
from faultlog.schemas import Position, PositionFix
from faultlog.services.geolocation import (
    DEFAULT_POSITION,
    QueuePositionSource,
    StaticPositionSource,
    sample_best_position,
)


def _fixes(*accuracies: float) -> list[PositionFix]:
    return [PositionFix(lat=41.0 + i, lng=12.0 + i, accuracy=a) for i, a in enumerate(accuracies)]


@pytest.mark.asyncio
async def test_returns_best_of_first_n_fixes() -> None:
    source = StaticPositionSource(_fixes(20, 8, 15, 3, 30))

    result = await sample_best_position(source, n=3, timeout_ms=1000)

    assert result.accuracy == 8
    assert (result.lat, result.lng) == (42.0, 13.0)
    assert source.closed is True


@pytest.mark.asyncio
async def test_reports_progress_after_each_fix() -> None:
    progress: list[tuple[float, int]] = []
    source = StaticPositionSource(_fixes(20, 8, 15))

    await sample_best_position(source, n=3, timeout_ms=1000, on_progress=lambda best, seen: progress.append((best.accuracy, seen)))

    assert progress == [(20, 1), (8, 2), (8, 3)]


@pytest.mark.asyncio
async def test_returns_fallback_when_no_sensor() -> None:
    fallback = Position(lat=1.0, lng=2.0)

    assert await sample_best_position(None, fallback=fallback) == fallback


@pytest.mark.asyncio
async def test_returns_fallback_when_sensor_fails_before_first_fix() -> None:
    source = StaticPositionSource([], error=SensorUnavailable("denied"))

    result = await sample_best_position(source, n=3, timeout_ms=1000)

    assert result == DEFAULT_POSITION
    assert source.closed is True


@pytest.mark.asyncio
async def test_keeps_best_fix_when_sensor_fails_later() -> None:
    source = StaticPositionSource(_fixes(12, 9), error=SensorUnavailable("lost"))

    result = await sample_best_position(source, n=5, timeout_ms=1000)

    assert result.accuracy == 9


@pytest.mark.asyncio
async def test_timeout_returns_best_so_far_and_unsubscribes() -> None:
    source = QueuePositionSource()

    task = asyncio.create_task(sample_best_position(source, n=5, timeout_ms=100))
    await asyncio.sleep(0.01)
    assert source.subscriber_count == 1
    source.push(PositionFix(lat=45.0, lng=9.0, accuracy=25))
    source.push(PositionFix(lat=45.1, lng=9.1, accuracy=11))

    result = await task

    assert result.accuracy == 11
    assert source.subscriber_count == 0


@pytest.mark.asyncio
async def test_timeout_without_fix_returns_fallback() -> None:
    source = QueuePositionSource()

    result = await sample_best_position(source, n=5, timeout_ms=50)

    assert result == DEFAULT_POSITION
    assert source.subscriber_count == 0


@pytest.mark.asyncio
async def test_queue_source_failure_is_recovered() -> None:
    source = QueuePositionSource()

    task = asyncio.create_task(sample_best_position(source, n=5, timeout_ms=1000))
    await asyncio.sleep(0.01)
    source.fail()

    assert await task == DEFAULT_POSITION
    assert source.subscriber_count == 0
