"""
Chat API endpoints - The browser-facing chat window.

Each browser is identified by a client cookie and gets its own session
lifecycle controller. Every request first re-synchronizes the controller
with the caller's identity, so signing in or out reloads the chat state.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..core.errors import AssistantBusyError, NoActiveSessionError, PersistenceError, SessionNotFoundError
from ..core.lifecycle import SessionLifecycleController
from ..models import (
    ChatStateView,
    Identity,
    Message,
    MessageView,
    SendMessageRequest,
    SendMessageResponse,
    SessionSummary,
)
from ..plugins import PluginRegistry, render_message
from ..services.container import AppServices, get_services
from ..utils.auth import get_optional_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


async def get_chat_controller(
    request: Request,
    response: Response,
    identity: Optional[Identity] = Depends(get_optional_identity),
    services: AppServices = Depends(get_services),
) -> SessionLifecycleController:
    """Controller for this browser, synchronized with the caller's identity."""
    cookie_name = services.settings.client_cookie_name
    client_id = request.cookies.get(cookie_name)
    if not client_id:
        client_id = uuid.uuid4().hex
        response.set_cookie(
            key=cookie_name,
            value=client_id,
            httponly=True,
            samesite="lax",
            secure=services.settings.secure_cookies,
        )

    controller = services.clients.get_or_create(client_id)
    await controller.set_identity(identity)
    return controller


def _message_view(message: Message, registry: PluginRegistry) -> MessageView:
    return MessageView(**message.model_dump(), card=render_message(message, registry))


def _state_view(controller: SessionLifecycleController, registry: PluginRegistry) -> ChatStateView:
    state = controller.state
    sessions = []
    for session in state.all_sessions:
        summary = SessionSummary.from_session(session)
        if session.id == state.active_session_id:
            summary.message_count = len(state.current_messages)
        sessions.append(summary)

    return ChatStateView(
        user=controller.identity,
        active_session_id=state.active_session_id,
        is_initialized=state.is_initialized,
        is_loading=state.is_loading,
        is_assistant_processing=state.is_assistant_processing,
        sessions=sessions,
        messages=[_message_view(m, registry) for m in state.current_messages],
    )


@router.get("/state", response_model=ChatStateView)
async def get_state(
    controller: SessionLifecycleController = Depends(get_chat_controller),
    services: AppServices = Depends(get_services),
):
    """Current chat window: roster, active session and its messages."""
    return _state_view(controller, services.plugins)


@router.post("/message", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    controller: SessionLifecycleController = Depends(get_chat_controller),
    services: AppServices = Depends(get_services),
):
    """
    Send one command and wait for the assistant's reply.

    Raises:
        HTTPException: 409 with no active session or while a command is
            running, 400 for empty content
    """
    try:
        reply = await controller.send_message(body.content)
    except (NoActiveSessionError, AssistantBusyError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SendMessageResponse(
        reply=_message_view(reply, services.plugins) if reply is not None else None,
        state=_state_view(controller, services.plugins),
    )


@router.post("/new", response_model=ChatStateView, status_code=status.HTTP_201_CREATED)
async def new_chat(
    controller: SessionLifecycleController = Depends(get_chat_controller),
    services: AppServices = Depends(get_services),
):
    """
    Start a new session and make it active.

    Raises:
        HTTPException: 409 while busy, 500 if the session could not be created
    """
    try:
        await controller.new_session()
    except (NoActiveSessionError, AssistantBusyError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create a new chat",
        )
    return _state_view(controller, services.plugins)


@router.post("/switch/{session_id}", response_model=ChatStateView)
async def switch_chat(
    session_id: str,
    controller: SessionLifecycleController = Depends(get_chat_controller),
    services: AppServices = Depends(get_services),
):
    """
    Make another session active.

    Raises:
        HTTPException: 404 for an unknown session, 409 while busy
    """
    try:
        await controller.switch_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (NoActiveSessionError, AssistantBusyError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return _state_view(controller, services.plugins)
