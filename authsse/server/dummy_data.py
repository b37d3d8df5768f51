"""
MODULE OVERVIEW:
Fake business events for the demo stream.

WHAT IS HAPPENING HERE:
The client treats payloads as opaque strings, so the demo only needs something
that looks like a real state-change feed: IOU-style records whose outstanding
amount changes over time, plus the occasional multi-line note to exercise
`data:` joining on the client side.
"""

import asyncio
import json
import random
from datetime import datetime, timezone
from typing import AsyncIterator

PARTIES = ["alice@example.com", "bob@example.com", "carol@example.com"]


async def state_event_generator(interval_s: float, limit: int | None = None) -> AsyncIterator[dict]:
    """Yields sse-starlette event dicts: `state` changes and now and then a `note`."""
    outstanding = {f"iou-{n}": round(random.uniform(10.0, 500.0), 2) for n in range(3)}
    seq = 0

    while limit is None or seq < limit:
        seq += 1
        iou_id = random.choice(list(outstanding))
        payment = round(min(outstanding[iou_id], random.uniform(1.0, 50.0)), 2)
        outstanding[iou_id] = round(outstanding[iou_id] - payment, 2)

        if seq % 5 == 0:
            yield {
                "event": "note",
                "id": str(seq),
                "data": f"checkpoint {seq}\n{len(outstanding)} IOUs tracked",
            }
        else:
            yield {
                "event": "state",
                "id": str(seq),
                "data": json.dumps({
                    "iou_id": iou_id,
                    "lender": random.choice(PARTIES),
                    "payment": payment,
                    "outstanding": outstanding[iou_id],
                    "at": datetime.now(timezone.utc).isoformat(),
                }),
            }
        await asyncio.sleep(interval_s)
