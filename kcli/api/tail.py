"""WebSocket tail: `/ws/v1/tail/{topic}?filter=&before=`.

Each matching message is pushed as one JSON frame. The tail runs in a worker
thread; frames cross into the event loop through a bounded queue, so a slow
client slows the tail down instead of growing memory. Disconnecting cancels
the tail.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Optional

from fastapi import APIRouter, WebSocket

from kcli.core.exceptions import DecodeError, KcliError
from kcli.domain.services.filter_parser import parse_filter
from kcli.domain.services.path_accessor import decode_payload
from kcli.domain.services.tail_controller import CancellationToken, TailController
from kcli.models.messages import MessageRecord

logger = logging.getLogger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008
_FRAME_BUFFER = 256


def message_frame(message: MessageRecord) -> dict:
    try:
        value = decode_payload(message.value)
    except DecodeError:
        value = message.value.decode("utf-8", "replace") if message.value is not None else None
    return {
        "event": "message",
        "topic": message.topic,
        "partition": message.partition,
        "offset": message.offset,
        "timestamp": message.timestamp,
        "key": message.key.decode("utf-8", "replace") if message.key is not None else None,
        "value": value,
    }


async def _until_disconnect(ws: WebSocket) -> None:
    while True:
        msg = await ws.receive()
        if msg["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/v1/tail/{topic}")
async def tail_stream(ws: WebSocket, topic: str, filter: Optional[str] = None, before: Optional[int] = None):
    await ws.accept()
    try:
        expression = parse_filter(filter) if filter else None
        if before is not None and before < 0:
            raise ValueError("before must be >= 0")
    except ValueError as exc:
        await ws.send_json({"event": "error", "detail": str(exc)})
        await ws.close(code=POLICY_VIOLATION)
        return

    loop = asyncio.get_running_loop()
    frames: asyncio.Queue = asyncio.Queue(maxsize=_FRAME_BUFFER)
    token = CancellationToken()

    def sink(message: MessageRecord) -> None:
        fut = asyncio.run_coroutine_threadsafe(frames.put(message_frame(message)), loop)
        while True:
            try:
                fut.result(timeout=0.5)
                return
            except FuturesTimeout:
                if token.cancelled:
                    fut.cancel()
                    return

    controller = TailController(
        ws.app.state.client, topic, sink,
        before=before, expression=expression, token=token, settings=ws.app.state.settings,
    )
    runner = asyncio.ensure_future(asyncio.to_thread(controller.run))
    watcher = asyncio.ensure_future(_until_disconnect(ws))
    try:
        while True:
            getter = asyncio.ensure_future(frames.get())
            done, _ = await asyncio.wait({getter, watcher, runner}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await ws.send_json(getter.result())
                continue
            getter.cancel()
            if watcher in done:
                logger.info("tail %s: client disconnected", topic)
                break
            # tail ended on its own: flush what it emitted, then report
            while not frames.empty():
                await ws.send_json(frames.get_nowait())
            exc = runner.exception()
            if exc is not None:
                await ws.send_json({"event": "error", "detail": str(exc)})
            else:
                await ws.send_json({"event": "end"})
            await ws.close()
            break
    finally:
        token.cancel()
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError, KcliError):
            await runner
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
