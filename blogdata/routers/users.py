from fastapi import APIRouter, Depends

from blogdata.client import DataClient
from blogdata.dependencies import get_client
from blogdata.schemas import UserCreate, UserDetail, UserListItem, UserResponse
from blogdata.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("", response_model=list[UserListItem])
async def list_users(client: DataClient = Depends(get_client)):
    return await user_service.get_users(client)

@router.get("/{user_id}", response_model=UserDetail)
async def get_user(user_id: str, client: DataClient = Depends(get_client)):
    return await user_service.get_user_by_id(client, user_id)

@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, client: DataClient = Depends(get_client)):
    return await user_service.create_user(client, data)
