"""Session lifecycle: the notification poller runs only while a session is active."""

import logging

from fastapi import APIRouter

from ..core.dependencies import ContextDep, CurrentActorDep
from ..schemas import SessionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


@router.post("", response_model=SessionResponse)
async def begin_session(context: ContextDep, actor: CurrentActorDep) -> SessionResponse:
    started = await context.poller.start()
    logger.info(f"Session started by {actor.id}")
    return SessionResponse(active=context.poller.running, changed=started)


@router.delete("", response_model=SessionResponse)
async def end_session(context: ContextDep, actor: CurrentActorDep) -> SessionResponse:
    stopped = await context.poller.stop()
    logger.info(f"Session ended by {actor.id}")
    return SessionResponse(active=context.poller.running, changed=stopped)
