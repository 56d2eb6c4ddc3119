"""
Payment Provider Webhooks

Providers retry on anything but 2xx, so every delivery is acknowledged with
200 once it has been looked at. The one exception is a bad signature: that
is answered with 403 and nothing is applied. No rate limits here.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Form, Header, HTTPException, Request, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront.core.status_config import PaymentProvider
from storefront.db.session import get_db
from storefront.exceptions import InvalidSignatureError, StorefrontException
from storefront.schemas.payment import WebhookAck
from storefront.services.payment_providers import get_provider
from storefront.services.payment_providers.base import PaymentCallbackResult
from storefront.services.payment_service import reconcile_payment
from storefront.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _reconcile(db: Session, provider: str, result: PaymentCallbackResult) -> WebhookAck:
    try:
        outcome = reconcile_payment(db, provider, result)
    except Exception as e:
        logger.error(
            f"{provider} webhook processing failed: {e}",
            exc_info=True,
            extra={"provider": provider, "order_id": result.order_id},
        )
        return WebhookAck(ok=False, outcome="error")
    return WebhookAck(ok=True, outcome=outcome.value)


def _reject_signature(provider: str, exc: InvalidSignatureError, request: Request):
    logger.warning(
        f"{provider} webhook rejected: {exc.message}",
        extra={"provider": provider, "client": request.client.host if request.client else None},
    )
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")


@router.post("/liqpay", response_model=WebhookAck)
def liqpay_webhook(
    request: Request,
    data: Optional[str] = Form(None),
    signature: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """LiqPay server callback: form fields ``data`` (base64 JSON) and ``signature``."""
    provider = PaymentProvider.LIQPAY.value
    try:
        result = get_provider(provider).verify_callback(data or "", signature or "")
    except InvalidSignatureError as e:
        _reject_signature(provider, e, request)
    except StorefrontException as e:
        logger.error(f"LiqPay webhook not processed: {e.message}", extra={"provider": provider})
        return WebhookAck(ok=False, outcome="error")
    return _reconcile(db, provider, result)


@router.post("/monobank", response_model=WebhookAck)
async def monobank_webhook(
    request: Request,
    x_sign: Optional[str] = Header(None, alias="X-Sign"),
    db: Session = Depends(get_db),
):
    """Monobank server callback: raw JSON body signed in the ``X-Sign`` header."""
    provider = PaymentProvider.MONOBANK.value
    body = await request.body()
    try:
        result = await run_in_threadpool(get_provider(provider).verify_callback, body, x_sign)
    except InvalidSignatureError as e:
        _reject_signature(provider, e, request)
    except StorefrontException as e:
        logger.error(f"Monobank webhook not processed: {e.message}", extra={"provider": provider})
        return WebhookAck(ok=False, outcome="error")
    return await run_in_threadpool(_reconcile, db, provider, result)
