import logging

from fastapi import FastAPI
from mct.app.core.config import settings
from mct.app.core.logging_config import configure_logging
from mct.app.db.arango import db
from mct.app.api.api import api_router
from mct.app.api.errors import register_exception_handlers

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)
register_exception_handlers(app)

@app.on_event("startup")
async def startup_event():
    configure_logging()
    # Fail fast: neither the gateway nor the chat relay can run half-configured
    settings.require("Concept gateway", "PUBLIC_API_KEY", "JWT_SECRET_KEY")
    settings.require("Chat relay", "CHAT_API_KEY")
    db.initialize()
    logger.info("%s started", settings.PROJECT_NAME)

@app.on_event("shutdown")
async def shutdown_event():
    db.close()

app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "Micro Concept Tracker API is running"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
