"""
Cron Endpoints

External triggers for the janitors (Bearer CRON_SECRET). The in-process
scheduler runs the same functions.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.v1.deps import require_cron_secret
from storefront.db.session import get_db
from storefront.schemas.common import ApiResponse
from storefront.schemas.jobs import CountResult, DispatchResultResponse, TrackingResultResponse
from storefront.services import jobs

router = APIRouter(
    prefix="/cron",
    tags=["Cron"],
    dependencies=[Depends(require_cron_secret)],
)


@router.post("/auto-cancel", response_model=ApiResponse[CountResult])
def auto_cancel(db: Session = Depends(get_db)):
    """Cancel new orders left unprocessed past the auto-cancel window."""
    return ApiResponse(data=CountResult(count=jobs.auto_cancel_stale_orders(db)))


@router.post("/auto-tracking", response_model=ApiResponse[TrackingResultResponse])
def auto_tracking(db: Session = Depends(get_db)):
    """Complete shipped orders Nova Poshta reports as delivered."""
    result = jobs.auto_track_deliveries(db)
    return ApiResponse(data=TrackingResultResponse(
        checked=result.checked,
        updated=result.updated,
        failed=result.failed,
    ))


@router.post("/cleanup-carts", response_model=ApiResponse[CountResult])
def cleanup_carts(db: Session = Depends(get_db)):
    return ApiResponse(data=CountResult(count=jobs.cleanup_stale_carts(db)))


@router.post("/cleanup-tokens", response_model=ApiResponse[CountResult])
def cleanup_tokens(db: Session = Depends(get_db)):
    return ApiResponse(data=CountResult(count=jobs.cleanup_expired_tokens(db)))


@router.post("/dispatch-notifications", response_model=ApiResponse[DispatchResultResponse])
def dispatch_notifications(db: Session = Depends(get_db)):
    result = jobs.dispatch_notifications(db)
    return ApiResponse(data=DispatchResultResponse(sent=result.sent, failed=result.failed))
