from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from smile_api.config import settings
from smile_api.database import get_db, init_db
from smile_api.logging_config import get_logger, setup_logging
from smile_api.models import Message, User
from smile_api.routers import webhook

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="SMILE API",
    description="WhatsApp relay for the SMILE AI companion",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)


@app.on_event("startup")
def create_tables() -> None:
    init_db()
    logger.info("Database ready")


@app.get("/")
@app.get("/health")
async def health():
    return {"status": "ok", "service": "SMILE AI"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    users_count = db.query(User).count()
    messages_count = db.query(Message).count()
    return {
        "status": "ok",
        "users": users_count,
        "messages": messages_count,
    }
