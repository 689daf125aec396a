"""WebSocket API for real-time enrollment updates.

Provides:
- WS /ws/enrollments/{course_id}/{user_id} - Enrollment snapshot stream
"""

import asyncio
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from trilha.core.logging import get_logger

from .feed import RedisEnrollmentFeed
from .schemas import EnrollmentSnapshot


logger = get_logger(__name__)

router = APIRouter(tags=["enrollments-ws"])

PING_INTERVAL_SECONDS = 30


@router.websocket("/ws/enrollments/{course_id}/{user_id}")
async def enrollments_websocket(
    websocket: WebSocket,
    course_id: UUID,
    user_id: UUID,
) -> None:
    """Stream enrollment snapshots of one (course, learner) pair.

    Messages received:
    - {"type": "connected", ...} - Subscription established
    - {"type": "enrollment", "data": {...}} - New stored snapshot
    - {"type": "ping"} - Keep-alive ping (every 30s)

    Messages you can send:
    - {"type": "ping"} - Answered with {"type": "pong"}
    """
    feed: RedisEnrollmentFeed | None = getattr(
        websocket.app.state, "enrollment_feed", None
    )
    if feed is None:
        await websocket.close(code=1013, reason="Push feed unavailable")
        return

    await websocket.accept()

    async def forward(snapshot: EnrollmentSnapshot) -> None:
        await websocket.send_json(
            {"type": "enrollment", "data": snapshot.model_dump(mode="json")}
        )

    subscription = None
    try:
        subscription = await feed.subscribe(course_id, user_id, forward)
        logger.info(
            "websocket_connected", course_id=str(course_id), user_id=str(user_id)
        )
        await websocket.send_json(
            {
                "type": "connected",
                "course_id": str(course_id),
                "user_id": str(user_id),
            }
        )

        while True:
            try:
                message = await asyncio.wait_for(
                    websocket.receive_json(), timeout=PING_INTERVAL_SECONDS
                )
                if message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
            except TimeoutError:
                await websocket.send_json({"type": "ping"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("websocket_error", user_id=str(user_id), error=str(e))
    finally:
        if subscription is not None:
            await subscription.unsubscribe()
        logger.info(
            "websocket_disconnected", course_id=str(course_id), user_id=str(user_id)
        )
