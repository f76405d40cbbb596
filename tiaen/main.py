from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from tiaen.config import settings
from tiaen.database import get_db, session_scope
from tiaen.logging_config import get_logger, setup_logging
from tiaen.models import Contact, Conversation, KnowledgeEntry, Message
from tiaen.routers import admin, webhook
from tiaen.services.automation_service import validate_active_rules
from tiaen.services.store import SqlStore, StoreError

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Tiaen Chat API",
    description="WhatsApp conversation pipeline with automation rules and RAG replies",
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
app.include_router(admin.router)


@app.on_event("startup")
def validate_automation_rules() -> None:
    try:
        with session_scope() as db:
            valid, errors = validate_active_rules(SqlStore(db))
    except StoreError as e:
        logger.error("Automation rule validation skipped", extra={"context": {"error": str(e)}})
        return
    logger.info(
        "Automation rules validated",
        extra={"context": {"valid": valid, "invalid": len(errors)}},
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "contacts": db.query(Contact).count(),
        "conversations": db.query(Conversation).count(),
        "messages": db.query(Message).count(),
        "knowledge_entries": db.query(KnowledgeEntry).count(),
    }
