import stripe
import structlog
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from parcel_service.config import webhook_secret
from parcel_service.database import Base, engine
from parcel_service.exceptions import InvalidSessionError, ParcelNotFound, ProviderError, StoreError
from parcel_service.logging_config import configure_logging
from parcel_service.routes import get_reconciler, router

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="Parcel Shipping Service")

app.include_router(router)

Base.metadata.create_all(bind=engine)

RECONCILE_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}


@app.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    reconciler=Depends(get_reconciler),
):
    payload = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload,
            stripe_signature,
            webhook_secret()
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    if event["type"] in RECONCILE_EVENTS:
        session_id = event["data"]["object"]["id"]
        try:
            result = await run_in_threadpool(reconciler.confirm, session_id)
        except (InvalidSessionError, ParcelNotFound) as exc:
            # Acknowledged so Stripe stops redelivering
            logger.warning(
                "webhook_session_unreconcilable",
                event_type=event["type"],
                session_id=session_id,
                reason=type(exc).__name__,
            )
            return {"ok": True}
        except ProviderError:
            raise HTTPException(status_code=502, detail="Unable to verify payment at the moment.")
        except StoreError:
            raise HTTPException(status_code=500, detail="Unable to record payment at the moment.")
        logger.info(
            "webhook_processed",
            event_type=event["type"],
            session_id=session_id,
            success=result.success,
        )

    return {"ok": True}
