"""FastAPI web application for quietblocks."""

import logging
from datetime import datetime
from typing import List, Optional
from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from quietblocks.api.schemas import (
    PreferencesUpdate,
    QuietBlockListResponse,
    QuietBlockResponse,
    ReminderPreviewResponse,
    ReminderRunResponse,
    StatsResponse,
    TestEmailRequest,
    TestEmailResponse,
    UserResponse,
)
from quietblocks.auth.dependencies import get_current_user, verify_cron_secret
from quietblocks.database.database import get_db, init_db
from quietblocks.database.user_repository import UserRepository
from quietblocks.engine.errors import (
    NotFound,
    QuietBlockError,
    ScheduleConflict,
    StorageUnavailable,
    ValidationError,
)
from quietblocks.engine.reminders import Notifier
from quietblocks.integrations.resend_email import ResendEmailNotifier
from quietblocks.models.quiet_block import QuietBlockStatus
from quietblocks.models.quiet_block_input import QuietBlockCreate, QuietBlockUpdate
from quietblocks.models.time_utils import to_utc_naive, utc_now
from quietblocks.models.user import User
from quietblocks.services.quiet_blocks import QuietBlockService
from quietblocks.services.reminders import build_scheduler, sweep_block_statuses

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="quietblocks API",
    description="Schedule quiet blocks without overlaps and get reminded before they start",
    version="0.1.0"
)


@app.on_event("startup")
async def startup_event():
    """Create or migrate the database schema."""
    init_db()


def _status_for(error: QuietBlockError) -> int:
    if isinstance(error, ScheduleConflict):
        return status.HTTP_409_CONFLICT
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, StorageUnavailable):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(QuietBlockError)
async def quiet_block_error_handler(request, exc: QuietBlockError):
    """Render domain errors as ``{"error": kind, "message": ...}``."""
    body = {"error": exc.kind, "message": exc.message}
    if isinstance(exc, ScheduleConflict):
        body["conflicting_blocks"] = [c.to_dict() for c in exc.conflicts]
    return JSONResponse(status_code=_status_for(exc), content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request, exc: RequestValidationError):
    """Malformed payloads are validation errors too (400, not 422)."""
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    message = details[0]["msg"] if details else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": ValidationError.kind, "message": message, "details": details},
    )


def get_notifier() -> Notifier:
    """Email notifier for the reminder trigger (overridable in tests)."""
    try:
        return ResendEmailNotifier()
    except ValueError as e:
        logger.error(f"Email notifier unavailable: {str(e)}")
        raise HTTPException(status_code=503, detail="Email service not configured")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.post("/quiet-blocks", response_model=QuietBlockResponse, status_code=status.HTTP_201_CREATED)
def create_quiet_block(
    payload: QuietBlockCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a quiet block; rejects invalid times and overlaps."""
    block = QuietBlockService(db).create(current_user, payload)
    return QuietBlockResponse(quiet_block=block)


@app.get("/quiet-blocks", response_model=QuietBlockListResponse)
def list_quiet_blocks(
    status_filter: Optional[List[QuietBlockStatus]] = Query(None, alias="status"),
    start_from: Optional[datetime] = None,
    start_to: Optional[datetime] = None,
    tag: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the current user's quiet blocks ordered by start time."""
    blocks = QuietBlockService(db).list(
        current_user.id,
        start_from=to_utc_naive(start_from) if start_from else None,
        start_to=to_utc_naive(start_to) if start_to else None,
        statuses=status_filter,
        tags=tag,
        limit=limit,
        offset=offset,
    )
    return QuietBlockListResponse(quiet_blocks=blocks, count=len(blocks))


@app.get("/quiet-blocks/{block_id}", response_model=QuietBlockResponse)
def get_quiet_block(
    block_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return QuietBlockResponse(quiet_block=QuietBlockService(db).get(current_user.id, block_id))


@app.put("/quiet-blocks/{block_id}", response_model=QuietBlockResponse)
def update_quiet_block(
    block_id: str,
    payload: QuietBlockUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Partially update a quiet block (only the fields sent are changed)."""
    block = QuietBlockService(db).update(current_user, block_id, payload)
    return QuietBlockResponse(quiet_block=block)


@app.delete("/quiet-blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quiet_block(
    block_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Soft-delete a quiet block."""
    QuietBlockService(db).delete(current_user.id, block_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/quiet-blocks/{block_id}/start", response_model=QuietBlockResponse)
def start_quiet_block(
    block_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return QuietBlockResponse(quiet_block=QuietBlockService(db).start(current_user.id, block_id))


@app.post("/quiet-blocks/{block_id}/complete", response_model=QuietBlockResponse)
def complete_quiet_block(
    block_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return QuietBlockResponse(quiet_block=QuietBlockService(db).complete(current_user.id, block_id))


@app.post("/quiet-blocks/{block_id}/cancel", response_model=QuietBlockResponse)
def cancel_quiet_block(
    block_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return QuietBlockResponse(quiet_block=QuietBlockService(db).cancel(current_user.id, block_id))


@app.get("/users/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return UserResponse(user=current_user)


@app.put("/users/me/preferences", response_model=UserResponse)
def update_preferences(
    payload: PreferencesUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update reminder and display preferences; ``null`` clears optional values."""
    changes = {name: getattr(payload, name) for name in payload.model_fields_set}
    user = UserRepository(db).update_preferences(current_user.id, updated_at=utc_now(), **changes)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(user=user)


@app.get("/users/me/stats", response_model=StatsResponse)
def get_my_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return StatsResponse(**QuietBlockService(db).stats(current_user.id))


@app.post("/cron/send-reminders", response_model=ReminderRunResponse)
def send_reminders(
    _: None = Depends(verify_cron_secret),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Reminder trigger: dispatch every due reminder, then sweep block statuses."""
    now = utc_now()
    summary = build_scheduler(db, notifier).run(now=now)
    try:
        updated = sweep_block_statuses(db, now)
    except Exception as e:
        # Sent reminders are reported even when the sweep fails
        logger.error(f"Status sweep failed after reminder run: {type(e).__name__}: {str(e)}")
        updated = 0
    return ReminderRunResponse(**summary.to_dict(), statuses_updated=updated)


@app.get("/cron/send-reminders", response_model=ReminderPreviewResponse)
def preview_reminders(
    _: None = Depends(verify_cron_secret),
    db: Session = Depends(get_db),
):
    """Dry run: list reminder candidates and whether each is due, without sending."""
    now = utc_now()
    decisions = build_scheduler(db, notifier=None).preview(now=now)
    return ReminderPreviewResponse(
        timestamp=now.isoformat(),
        candidates=[d.to_dict() for d in decisions],
        due_count=sum(1 for d in decisions if d.due),
    )


@app.post("/cron/test-email", response_model=TestEmailResponse)
def send_test_email(
    payload: TestEmailRequest,
    _: None = Depends(verify_cron_secret),
    notifier: ResendEmailNotifier = Depends(get_notifier),
):
    """Send one email to check the email service configuration."""
    result = notifier.send_test_email(payload.to)
    if not result.success:
        logger.warning(f"Test email failed: {result.error}")
    return TestEmailResponse(success=result.success, message_id=result.message_id, error=result.error)
