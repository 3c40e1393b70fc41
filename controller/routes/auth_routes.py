"""Account API routes."""

from fastapi import APIRouter, status

from controller.schemas.auth import LoginRequest, LoginResponse, RegisterRequest, RegisterResponse
from controller.schemas.common import ErrorResponse
from controller.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def register(request: RegisterRequest):
    """
    Create an account. The response carries the first API key ('dfs_' prefix),
    to be sent as `Authorization: Bearer <api_key>`.
    """
    api_key, user_id = AuthService().register_user(request.username, request.password)

    return RegisterResponse(api_key=api_key, user_id=user_id)


@router.post("/login", response_model=LoginResponse, responses={401: {"model": ErrorResponse}})
async def login(request: LoginRequest):
    """Exchange credentials for a new API key; the previous key stops working."""
    api_key = AuthService().login_user(request.username, request.password)

    return LoginResponse(api_key=api_key)
