"""Best-of-N GPS sampling over a live stream of position fixes.

The device sensor is reached through a *source*: any object whose
``subscribe()`` returns an async iterator of ``PositionFix``.  A sensor that
fails (denied permission, hardware off) raises ``SensorUnavailable`` from the
iterator.  Closing the iterator releases the sensor subscription.
"""
import asyncio
import logging

from ..config import DEFAULT_LAT, DEFAULT_LNG, GPS_SAMPLE_COUNT, GPS_TIMEOUT_MS
from ..errors import SensorUnavailable
from ..schemas import Position, PositionFix

logger = logging.getLogger(__name__)

DEFAULT_POSITION = Position(lat=DEFAULT_LAT, lng=DEFAULT_LNG)

_CLOSED = object()


class QueuePositionSource:
    """Source fed by the shell, which pushes fixes as the device reports them."""

    def __init__(self):
        self._subscribers = []

    def push(self, fix: PositionFix):
        for queue in self._subscribers:
            queue.put_nowait(fix)

    def fail(self, error=None):
        error = error or SensorUnavailable("Geolocalizzazione non disponibile")
        for queue in self._subscribers:
            queue.put_nowait(error)

    def close(self):
        for queue in self._subscribers:
            queue.put_nowait(_CLOSED)

    @property
    def subscriber_count(self):
        return len(self._subscribers)

    async def subscribe(self):
        queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self._subscribers.remove(queue)


class StaticPositionSource:
    """Replays a fixed list of fixes, then raises ``error`` if one is given."""

    def __init__(self, fixes, error=None):
        self.fixes = list(fixes)
        self.error = error
        self.closed = False

    async def subscribe(self):
        try:
            for fix in self.fixes:
                await asyncio.sleep(0)
                yield fix
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


def _as_position(fix: PositionFix) -> Position:
    return Position(lat=fix.lat, lng=fix.lng, accuracy=fix.accuracy)


async def sample_best_position(
    source,
    n: int = GPS_SAMPLE_COUNT,
    timeout_ms: int = GPS_TIMEOUT_MS,
    fallback: Position = DEFAULT_POSITION,
    on_progress=None,
) -> Position:
    """Return the most accurate of the first ``n`` fixes, or what was seen before ``timeout_ms``.

    Falls back to ``fallback`` when there is no sensor, when it fails before
    the first fix, or when nothing arrives in time.  The subscription is
    always closed before returning.
    """
    if source is None:
        logger.warning("No geolocation sensor, using fallback position %s", fallback)
        return fallback

    best = None
    seen = 0
    stream = source.subscribe()

    async def consume():
        nonlocal best, seen
        async for fix in stream:
            seen += 1
            if best is None or fix.accuracy < best.accuracy:
                best = fix
            if on_progress is not None:
                on_progress(best, seen)
            if seen >= n:
                return

    try:
        await asyncio.wait_for(consume(), timeout_ms / 1000)
    except asyncio.TimeoutError:
        logger.info("GPS sampling timed out after %d ms with %d fix(es)", timeout_ms, seen)
    except SensorUnavailable as e:
        logger.warning("Geolocation error after %d fix(es): %s", seen, e)
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()

    if best is None:
        logger.warning("No GPS fix received, using fallback position %s", fallback)
        return fallback
    return _as_position(best)
