from fastapi import APIRouter, status

from app.dependencies import AuthServiceDep
from app.models import AuthResponse, LoginRequest, RegisterRequest

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, auth: AuthServiceDep):
    return await auth.register(data.email, data.password)


@router.post("/login", response_model=AuthResponse)
async def login(data: LoginRequest, auth: AuthServiceDep):
    return await auth.login(data.email, data.password)
