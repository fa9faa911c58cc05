from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from icc_checker.core.dependencies import get_current_principal
from icc_checker.db.session import get_session
from icc_checker.models.user import User
from icc_checker.schemas.auth import LoginRequest, LoginResponse, PrincipalResponse, TokenResponse
from icc_checker.services import auth as auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session)) -> LoginResponse:
    user, token = await auth_service.sign_in(session, payload.email, payload.password)
    return LoginResponse(user=PrincipalResponse.model_validate(user), tokens=TokenResponse(access_token=token))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    principal: tuple[User, str] = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
) -> Response:
    _, jti = principal
    await auth_service.sign_out(session, jti)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=PrincipalResponse)
async def read_me(principal: tuple[User, str] = Depends(get_current_principal)) -> PrincipalResponse:
    return PrincipalResponse.model_validate(principal[0])
