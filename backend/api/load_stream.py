from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import AsyncIterator

from browser.session import BrowserSession
from state.types import AppState, VnbDisplay

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    progress = "progress"
    features = "features"
    done = "done"
    error = "error"


def format_event(type: EventType, data: str):
    return f"event: {type.value}\ndata: {data}\n\n"


def _progress(display: VnbDisplay) -> str:
    return format_event(
        EventType.progress,
        json.dumps({"loaded": display.loaded, "total": display.total}),
    )


async def stream_vnb_load(session: BrowserSession) -> AsyncIterator[str]:
    """
    Run one VNB batch load and stream it as SSE.

    Emits a `progress` event per published batch, then the final `features`
    collection and `done`. A load superseded by a newer one ends with the
    newer load's display and `loaded` counting only what this load returned.
    """
    queue: asyncio.Queue[VnbDisplay] = asyncio.Queue()

    def on_change(new: AppState, old: AppState) -> None:
        if new.display is not old.display:
            queue.put_nowait(new.display)

    unsubscribe = session.store.subscribe(on_change)
    task = asyncio.ensure_future(session.load_vnbs())
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                yield _progress(getter.result())
                continue
            getter.cancel()
            break
        while not queue.empty():
            yield _progress(queue.get_nowait())
        records = task.result()
    except Exception as e:
        logger.exception("VNB load stream failed")
        yield format_event(EventType.error, json.dumps({"message": f"{type(e).__name__}: {e}"}))
        yield format_event(EventType.done, json.dumps({"ok": False}))
        return
    finally:
        unsubscribe()

    display = session.store.state.display
    yield format_event(
        EventType.features,
        json.dumps(
            {"type": "FeatureCollection", "features": list(display.features)},
            ensure_ascii=False,
        ),
    )
    yield format_event(
        EventType.done,
        json.dumps({"ok": True, "records": len(records), "total": display.total}),
    )
