from fastapi import APIRouter, Depends
from mct.app.api.deps import require_api_key
from mct.app.api.endpoints import auth, chat, concepts

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"], dependencies=[Depends(require_api_key)])
api_router.include_router(concepts.router, prefix="/concepts", tags=["concepts"], dependencies=[Depends(require_api_key)])
api_router.include_router(chat.router, prefix="/chat", tags=["chat"])
