"""
Session API endpoints - Durable session storage for signed-in users.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.errors import PersistenceError, SessionNotFoundError, SessionOwnershipError
from ..models import ChatSession, CreateSessionRequest, Identity
from ..services.container import AppServices, get_services
from ..utils.auth import get_current_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat/sessions", tags=["sessions"])


@router.get("", response_model=List[ChatSession])
async def list_sessions(
    identity: Identity = Depends(get_current_identity),
    services: AppServices = Depends(get_services),
):
    """All of the caller's sessions with their messages, most recently updated first."""
    return await services.sessions.list_sessions(identity.id)


@router.post("", response_model=ChatSession, status_code=status.HTTP_201_CREATED)
async def create_session(
    body: CreateSessionRequest,
    identity: Identity = Depends(get_current_identity),
    services: AppServices = Depends(get_services),
):
    """
    Create an empty session named "Chat {session_number + 1}".

    Raises:
        HTTPException: 500 if the session could not be stored
    """
    try:
        return await services.sessions.create_session(identity.id, body.session_number)
    except PersistenceError as e:
        logger.error(f"Creating session for user {identity.id} failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create session",
        )


@router.put("/{session_id}", response_model=ChatSession)
async def save_session(
    session_id: str,
    session: ChatSession,
    identity: Identity = Depends(get_current_identity),
    services: AppServices = Depends(get_services),
):
    """
    Save a session's name and messages.

    Returns:
        ChatSession: The stored copy, carrying the server's last_updated_at

    Raises:
        HTTPException: 403 on id or owner mismatch, 404 if the session does
            not exist, 500 if it could not be written
    """
    if session.id != session_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Session id mismatch")

    try:
        return await services.sessions.save_session(identity.id, session)
    except SessionOwnershipError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Session owner mismatch")
    except SessionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Saving session {session_id} failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save session",
        )
