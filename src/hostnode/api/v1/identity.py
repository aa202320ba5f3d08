# src/hostnode/api/v1/identity.py

from fastapi import APIRouter, Depends, status
from hostnode.core.context import AppContext
from hostnode.api.dependencies.authentication import get_identity_key
from hostnode.api.dependencies.context import PublicContextDep, AuthContextDep
from hostnode.schemas.identity.user_schemas import UserRegister, UserRead
from hostnode.services.identity.user_service import UserService
from hostnode.schemas.common import JsonResponse

router = APIRouter()

@router.post(
    "/register",
    response_model=JsonResponse[UserRead],
    status_code=status.HTTP_201_CREATED,
    summary="Register Caller",
    description="Record the verified caller identity and an optional notification email."
)
async def register_user(
    user_in: UserRegister,
    identity_key: str = Depends(get_identity_key),
    context: AppContext = PublicContextDep
):
    user = await UserService(context).register(identity_key, user_in)
    return JsonResponse(data=user)

@router.get("/me", response_model=JsonResponse[UserRead], summary="Get Current User")
async def read_users_me(context: AppContext = AuthContextDep):
    return JsonResponse(data=UserRead.model_validate(context.actor))
