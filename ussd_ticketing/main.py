import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ussd_ticketing.config import settings
from ussd_ticketing.database import get_db, init_db, ping
from ussd_ticketing.ussd import router as ussd_router

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"{settings.PROJECT_NAME} started ({settings.ENVIRONMENT})")
    yield


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="USSD bus ticket booking for customers and operators",
    lifespan=lifespan
)

# Include routers
app.include_router(
    ussd_router,
    tags=["USSD"]
)

@app.get("/ok", response_class=PlainTextResponse)
def liveness():
    """Liveness check"""
    return "OK"

@app.get("/db-ping")
def db_ping(db: Session = Depends(get_db)):
    """Database connectivity check"""
    try:
        ping(db)
    except SQLAlchemyError:
        logger.exception("Database ping failed")
        return JSONResponse(status_code=500, content={"ok": 0})
    return {"ok": 1}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
