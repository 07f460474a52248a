from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User
from caseace.auth.schemas import LoginRequest, LoginResponse, RegisterRequest, UserResponse
from caseace.auth.service import authenticate_user, create_access_token, create_audit_log, register_user
from caseace.config import settings
from caseace.database import get_db
from caseace.dependencies import get_current_user

router = APIRouter()


def _set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite="lax",
        max_age=settings.jwt_access_token_expire_minutes * 60,
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, request: Request, db: Annotated[AsyncSession, Depends(get_db)]):
    user = await register_user(db, data)
    await create_audit_log(
        db, user.id, "user", str(user.id), "register",
        user_email=user.email,
        ip_address=request.client.host if request.client else None,
    )
    return user


@router.post("/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    user = await authenticate_user(db, data.email, data.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    access_token = create_access_token(str(user.id), user.role.value)
    _set_auth_cookie(response, access_token)

    await create_audit_log(
        db, user.id, "user", str(user.id), "login",
        user_email=user.email,
        ip_address=request.client.host if request.client else None,
    )
    return LoginResponse(access_token=access_token, user=UserResponse.model_validate(user))


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(settings.auth_cookie_name)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: Annotated[User, Depends(get_current_user)]):
    return current_user
