"""
TrustSafe API Server
Exposes the Trust & Safety Engine over REST for the marketplace backend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables (TRUSTSAFE_* settings)
load_dotenv()

from trustsafe.config import EngineSettings
from trustsafe.errors import (
    ConflictError,
    NotFoundError,
    TrustSafetyError,
    ValidationError,
)
from trustsafe.reports.models import ReportCategory
from trustsafe.scoring.models import SuspensionReason
from trustsafe.service import (
    MaintenanceReport,
    MessageVerdict,
    SafetyStatusView,
    TrustSafetyService,
)
from trustsafe.store.models import ActorRole, BookingOutcome, ViolationCategory

# Configure Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# Service container (singleton)
class TrustSafeContainer:
    def __init__(self, settings: Optional[EngineSettings] = None):
        self.service = TrustSafetyService(settings=settings)
        logger.info("TrustSafe components initialized")


trustsafe = TrustSafeContainer()


async def maintenance_loop(interval: float) -> None:
    """Retry pending incidents and lift ended suspensions until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(trustsafe.service.run_maintenance)
        except Exception as e:
            # Next pass retries; pending rows stay pending
            logger.error(f"Maintenance pass failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    interval = trustsafe.service.settings.maintenance_interval_seconds
    task = None
    if interval > 0:
        task = asyncio.create_task(maintenance_loop(interval), name="trustsafe-maintenance")
        logger.info(f"Maintenance loop started (every {interval:g}s)")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


# FastAPI App
app = FastAPI(title="TrustSafe API", version="0.1.0", lifespan=lifespan)

# CORS middleware
origins = [
    "http://localhost:5173",  # Vite dev server
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Data Models
class MessageRequest(BaseModel):
    sender_id: str
    text: str
    message_id: Optional[str] = None


class ReviewRequest(BaseModel):
    target_id: str
    rating: float


class BookingOutcomeRequest(BaseModel):
    actor_id: str
    outcome: BookingOutcome
    booking_id: Optional[str] = None


class ReportRequest(BaseModel):
    reporter_id: str
    reporter_role: ActorRole
    reported_id: str
    reported_role: ActorRole
    category: ReportCategory
    reason: str = ""
    evidence: List[str] = Field(default_factory=list)
    booking_id: Optional[str] = None
    review_id: Optional[str] = None
    conversation_id: Optional[str] = None


class AssignRequest(BaseModel):
    assignee_id: str


class ResolveReportRequest(BaseModel):
    note: str
    violation_category: Optional[ViolationCategory] = None


class NoteRequest(BaseModel):
    note: Optional[str] = None


class AppealRequest(BaseModel):
    actor_id: str
    message: str


class AppealDecisionRequest(BaseModel):
    reviewer_id: str
    approve: bool
    note: Optional[str] = None


class SuspendRequest(BaseModel):
    reason: SuspensionReason
    details: Optional[str] = None
    duration_days: Optional[int] = Field(default=None, ge=1)
    appealable: bool = True


class ReactivateRequest(BaseModel):
    reviewer_id: str
    note: Optional[str] = None


# Error mapping
def _status_code_for(error: TrustSafetyError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    return 500


@app.exception_handler(TrustSafetyError)
async def trust_safety_error_handler(request: Request, exc: TrustSafetyError):
    status_code = _status_code_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )


# Routes
@app.get("/")
async def root():
    return {"status": "online", "system": "TrustSafe"}


@app.get("/actors/{actor_id}/safety", response_model=SafetyStatusView)
def get_safety_status(actor_id: str):
    return trustsafe.service.get_safety_status(actor_id)


@app.get("/actors/{actor_id}/can-message")
def can_message(actor_id: str):
    return {"actor_id": actor_id, "can_message": trustsafe.service.can_message(actor_id)}


@app.get("/actors/{actor_id}/score-breakdown")
def score_breakdown(actor_id: str):
    return trustsafe.service.score_breakdown(actor_id).model_dump()


@app.post("/messages", response_model=MessageVerdict)
def submit_message(req: MessageRequest):
    """Scan a chat message before it is delivered."""
    return trustsafe.service.message_submitted(req.sender_id, req.text, req.message_id)


@app.post("/reviews")
def submit_review(req: ReviewRequest):
    actor = trustsafe.service.review_submitted(req.target_id, req.rating)
    return trustsafe.service.get_safety_status(actor.actor_id).model_dump()


@app.post("/bookings/outcome")
def booking_outcome(req: BookingOutcomeRequest):
    actor = trustsafe.service.booking_outcome_changed(req.actor_id, req.outcome, req.booking_id)
    return trustsafe.service.get_safety_status(actor.actor_id).model_dump()


@app.post("/reports", status_code=201)
def submit_report(req: ReportRequest):
    report = trustsafe.service.report_submitted(
        req.reporter_id,
        req.reporter_role,
        req.reported_id,
        req.reported_role,
        req.category,
        reason=req.reason,
        evidence=req.evidence,
        booking_id=req.booking_id,
        review_id=req.review_id,
        conversation_id=req.conversation_id,
    )
    return report.model_dump(mode="json")


@app.get("/reports/{report_id}")
def get_report(report_id: str):
    return trustsafe.service.reports.get_report(report_id).model_dump(mode="json")


@app.post("/reports/{report_id}/assign")
def assign_report(report_id: str, req: AssignRequest):
    return trustsafe.service.reports.assign(report_id, req.assignee_id).model_dump(mode="json")


@app.post("/reports/{report_id}/resolve")
def resolve_report(report_id: str, req: ResolveReportRequest):
    report = trustsafe.service.reports.resolve(report_id, req.note, req.violation_category)
    return report.model_dump(mode="json")


@app.post("/reports/{report_id}/dismiss")
def dismiss_report(report_id: str, req: NoteRequest):
    report = trustsafe.service.reports.dismiss(report_id, req.note or "")
    return report.model_dump(mode="json")


@app.post("/reports/{report_id}/escalate")
def escalate_report(report_id: str, req: NoteRequest):
    return trustsafe.service.reports.escalate(report_id, req.note).model_dump(mode="json")


@app.post("/appeals", status_code=201)
def submit_appeal(req: AppealRequest):
    appeal_id = trustsafe.service.submit_appeal(req.actor_id, req.message)
    return {"appeal_id": appeal_id}


@app.post("/appeals/{appeal_id}/resolve")
def resolve_appeal(appeal_id: str, req: AppealDecisionRequest):
    appeal = trustsafe.service.resolve_appeal(appeal_id, req.reviewer_id, req.approve, req.note)
    return appeal.model_dump(mode="json")


@app.post("/actors/{actor_id}/suspend")
def suspend_actor(actor_id: str, req: SuspendRequest):
    record = trustsafe.service.suspend(
        actor_id,
        req.reason,
        details=req.details,
        duration_days=req.duration_days,
        appealable=req.appealable,
    )
    return record.model_dump(mode="json")


@app.post("/actors/{actor_id}/reactivate")
def reactivate_actor(actor_id: str, req: ReactivateRequest):
    trustsafe.service.reactivate(actor_id, req.reviewer_id, req.note)
    return trustsafe.service.get_safety_status(actor_id).model_dump()


@app.post("/incidents/flush")
def flush_incidents():
    """Retry delivery of pending critical-report incidents."""
    delivered = trustsafe.service.flush_incidents()
    return {
        "delivered": delivered,
        "pending": trustsafe.service.store.count_pending_incidents(),
    }


@app.post("/suspensions/expire")
def expire_suspensions():
    return {"expired": trustsafe.service.expire_suspensions()}


@app.post("/maintenance/run", response_model=MaintenanceReport)
def run_maintenance():
    return trustsafe.service.run_maintenance()


@app.get("/ledger/validate")
def validate_ledger():
    """Check the audit trail hash chain."""
    return trustsafe.service.ledger.validate_chain().model_dump()
