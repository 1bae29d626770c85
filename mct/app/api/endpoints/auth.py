from fastapi import APIRouter, Depends, Response, status

from mct.app.api.deps import get_bearer_token, get_current_user, get_identity_service
from mct.app.models.user import AuthSession, SignUpRequest, User, UserCredentials
from mct.app.services.identity import IdentityService

router = APIRouter()


@router.post("/sign-up", response_model=AuthSession, status_code=status.HTTP_201_CREATED)
async def sign_up(
    request: SignUpRequest,
    identity: IdentityService = Depends(get_identity_service),
):
    """
    Registers a user and signs them in. `redirect_to` falls back to the
    configured SIGNUP_REDIRECT_URL.
    """
    return await identity.sign_up(request)


@router.post("/sign-in", response_model=AuthSession)
async def sign_in(
    credentials: UserCredentials,
    identity: IdentityService = Depends(get_identity_service),
):
    return await identity.sign_in(credentials)


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    token: str = Depends(get_bearer_token),
    identity: IdentityService = Depends(get_identity_service),
):
    await identity.sign_out(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/user", response_model=User)
async def current_user(user: User = Depends(get_current_user)):
    return user
