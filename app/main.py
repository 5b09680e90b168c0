import logging
from datetime import datetime

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from app.auth.firebase_auth import init_firebase
from app.core.config import CORS_ORIGINS
from app.core.database import create_indexes, get_database, get_db, ping
from app.core.logging_config import configure_logging
from app.courses.course_router import router as course_router
from app.learning.progress_router import router as progress_router
from app.questionnaires.admin_router import router as admin_router
from app.questionnaires.questionnaire_router import router as questionnaire_router

logger = logging.getLogger(__name__)

app = FastAPI(title="Learning Gate Service")


@app.on_event("startup")
async def startup_event():
    configure_logging()
    init_firebase()
    await create_indexes(get_database())
    logger.info("Startup complete")


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ROUTER REGISTRATION ====================
app.include_router(admin_router)
app.include_router(questionnaire_router)
app.include_router(course_router)
app.include_router(progress_router)
# ============================================================


@app.get("/health")
async def health(db: AsyncIOMotorDatabase = Depends(get_db)):
    try:
        await ping(db)
    except PyMongoError as e:
        logger.error("Health check failed: %s", e)
        raise HTTPException(status_code=503, detail="Database unavailable")

    return {"status": "ok", "timestamp": datetime.utcnow()}
