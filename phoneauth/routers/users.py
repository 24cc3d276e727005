from fastapi import APIRouter, Depends

from phoneauth.deps import RequestContext, get_request_context
from phoneauth.schemas.auth import MeResponse

router = APIRouter(tags=["users"])


@router.get("/me", response_model=MeResponse)
def get_me(context: RequestContext = Depends(get_request_context)) -> MeResponse:
    return MeResponse(phone=context.phone)
