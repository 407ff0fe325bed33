from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
import logging

from status_tracker.deps import get_current_active_user, get_services
from status_tracker.exceptions import NotFoundError
from status_tracker.middleware.request_id import get_request_id
from status_tracker.models import User
from status_tracker.rate_limit import limiter, AI_RATE_LIMIT
from status_tracker.schemas import (
    ChatMessageResponse,
    ChatSessionResponse,
    MessageResponse,
    SubmitMessageRequest,
    SubmitMessageResponse,
)
from status_tracker.services.chat_session import ChatSession, SessionState
from status_tracker.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])

# Terminal open states map onto an HTTP status; the body still carries the session
OPEN_STATE_STATUS = {
    SessionState.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    SessionState.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
}


def _session_response(session: ChatSession) -> ChatSessionResponse:
    return ChatSessionResponse(
        session_id=session.session_id,
        project_id=session.project_id,
        project_name=session.project.get("name") if session.project else None,
        state=session.state,
        in_flight=session.in_flight,
        messages=[ChatMessageResponse.model_validate(m) for m in session.transcript],
    )


def _require_session(services: Services, user: User, project_id: str) -> ChatSession:
    session = services.chat_sessions.get(str(user.id), project_id)
    if session is None:
        raise NotFoundError("Chat session", project_id)
    return session


@router.post("/{project_id}/session", response_model=ChatSessionResponse)
def open_session(
    project_id: str,
    request: Request,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Open (or re-open) the contractor's status-update chat for a project"""
    session = services.chat_sessions.open(current_user, project_id)
    logger.info(
        f"Chat session opened: {session.state.value}",
        extra={
            "request_id": get_request_id(request),
            "project_id": project_id,
            "session_id": session.session_id,
            "user_id": str(current_user.id),
        },
    )
    body = _session_response(session)
    status_code = OPEN_STATE_STATUS.get(session.state)
    if status_code is not None:
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
    return body


@router.get("/{project_id}/session", response_model=ChatSessionResponse)
def get_session(
    project_id: str,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    return _session_response(_require_session(services, current_user, project_id))


@router.post("/{project_id}/messages", response_model=SubmitMessageResponse)
@limiter.limit(AI_RATE_LIMIT)
async def submit_message(
    project_id: str,
    payload: SubmitMessageRequest,
    request: Request,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """
    Submit one status update. Ignored submissions (blank text, a turn
    already in flight, a session that is not ready) come back with
    ``accepted`` false and the transcript unchanged.
    """
    session = _require_session(services, current_user, project_id)
    # A bearer token is proof of sign-in even after an earlier logout
    services.chat_sessions.sign_in(current_user)

    turn = await session.submit(payload.text)
    accepted = turn is not None
    if not accepted:
        logger.info(
            "Status update submission ignored",
            extra={
                "request_id": get_request_id(request),
                "project_id": project_id,
                "session_id": session.session_id,
                "status": session.state.value,
            },
        )
    return SubmitMessageResponse(
        accepted=accepted,
        state=session.state,
        messages=[ChatMessageResponse.model_validate(m) for m in session.transcript],
    )


@router.delete("/{project_id}/session", response_model=MessageResponse)
def close_session(
    project_id: str,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    if not services.chat_sessions.close(str(current_user.id), project_id):
        raise NotFoundError("Chat session", project_id)
    return MessageResponse(message="Chat session closed")
