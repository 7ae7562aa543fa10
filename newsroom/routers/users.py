from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from newsroom.database import get_db
from newsroom.dependencies import get_principal
from newsroom.identity import Principal
from newsroom.schemas import UserCreate, UserResponse, UserUpdate
from newsroom.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("", response_model=list[UserResponse])
async def list_users(
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
):
    return await user_service.list_users(db, principal)

@router.post("", status_code=201, response_model=UserResponse)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
):
    return await user_service.create_user(db, data, principal)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)

@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
):
    return await user_service.update_user(db, user_id, data, principal)

@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
):
    await user_service.delete_user(db, user_id, principal)
    return Response(status_code=204)
