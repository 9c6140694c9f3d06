"""
Server-Sent Events endpoint for live refresh.

List pages subscribe to channel "all"; detail pages subscribe to the id of
the record they show.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.sse import connection_manager, ConnectionManager, SSEConnection, ALL_CHANNEL
from app.api.routes.auth import bearer_scheme, get_current_admin, get_user_from_token
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()


async def event_generator(connection: SSEConnection, heartbeat_seconds: float):
    """
    Yield queued events for a connection.

    Sends a heartbeat event whenever the queue stays empty for
    heartbeat_seconds.
    """
    try:
        while True:
            try:
                message = await asyncio.wait_for(connection.queue.get(), timeout=heartbeat_seconds)
                yield message
            except asyncio.TimeoutError:
                yield ConnectionManager.heartbeat_message()
    except asyncio.CancelledError:
        logger.debug(f"SSE generator cancelled for user {connection.user_id}")
        raise


@router.get("/events")
async def stream_events(
    request: Request,
    channel: str = Query(ALL_CHANNEL, description='"all" or a record id'),
    token: Optional[str] = Query(None, description="Session token, for clients that cannot send headers"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
):
    """
    Stream record events.

    Events (the JSON payload repeats the name in its "type" field):
    - connected
    - assignment_created / assignment_updated / assignment_deleted
    - sa_assignment_created / sa_assignment_updated / sa_assignment_deleted
    - issue_created / issue_updated
    - heartbeat

    Authentication uses the session cookie (sent automatically by
    EventSource), a bearer header, or the `token` query parameter.
    """
    if credentials is not None:
        token = credentials.credentials
    token = token or request.cookies.get(settings.SESSION_COOKIE_NAME)

    user = await get_user_from_token(token, db)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session"
        )

    connection = await connection_manager.connect(user_id=user.id, channel=channel)

    async def generate():
        try:
            yield ConnectionManager.format_message(
                "connected", {"userId": user.id, "channel": channel}
            )
            async for message in event_generator(connection, settings.SSE_HEARTBEAT_SECONDS):
                yield message
        finally:
            await connection_manager.disconnect(connection)

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        }
    )


@router.get("/events/stats")
async def get_event_stats(current_user: User = Depends(get_current_admin)):
    """SSE connection statistics (admin only)."""
    return {"success": True, **connection_manager.get_stats()}
