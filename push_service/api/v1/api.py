from fastapi import APIRouter

from push_service.api.v1.endpoints import push

api_router = APIRouter()
api_router.include_router(push.router, prefix="/push", tags=["push"])
