"""
Authentication API endpoints.

Successful sign-in and sign-up return the access token and also set it as
an HttpOnly cookie, so the browser chat endpoints pick the identity up
without extra headers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from ..models import AuthResponse, AuthResult, Credentials, Identity
from ..services.container import AppServices, get_services
from ..utils.auth import get_access_token, get_optional_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _set_access_cookie(response: Response, token: str, services: AppServices) -> None:
    config = services.settings
    response.set_cookie(
        key=config.access_cookie_name,
        value=token,
        max_age=config.access_token_expire_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=config.secure_cookies,
    )


def _auth_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(user=result.identity, access_token=result.access_token, message=result.message)


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    credentials: Credentials,
    response: Response,
    services: AppServices = Depends(get_services),
):
    """
    Create an account and sign it in.

    Raises:
        HTTPException: 400 if the e-mail is taken or the account cannot be created
    """
    result = await services.identity.sign_up(credentials)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    _set_access_cookie(response, result.access_token, services)
    return _auth_response(result)


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: Credentials,
    response: Response,
    services: AppServices = Depends(get_services),
):
    """
    Sign in with e-mail and password.

    Raises:
        HTTPException: 401 on wrong credentials
    """
    result = await services.identity.sign_in(credentials)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.error,
            headers={"WWW-Authenticate": "Bearer"},
        )

    _set_access_cookie(response, result.access_token, services)
    return _auth_response(result)


@router.post("/logout", response_model=AuthResponse)
async def logout(
    request: Request,
    response: Response,
    token: Optional[str] = Depends(get_access_token),
    services: AppServices = Depends(get_services),
):
    """Revoke the token, clear the cookie and drop this browser's chat back to a guest context."""
    result = await services.identity.sign_out(token)
    response.delete_cookie(services.settings.access_cookie_name)

    client_id = request.cookies.get(services.settings.client_cookie_name)
    controller = services.clients.get(client_id) if client_id else None
    if controller is not None:
        await controller.sign_out()

    return _auth_response(result)


@router.get("/user", response_model=AuthResponse)
async def current_user(identity: Optional[Identity] = Depends(get_optional_identity)):
    """The signed-in user, or null for a guest."""
    return AuthResponse(user=identity)
