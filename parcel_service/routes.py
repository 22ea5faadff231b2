from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError

from parcel_service.checkout import CheckoutInitiator
from parcel_service.config import CANCEL_URL, PAYMENT_CURRENCY, SUCCESS_URL
from parcel_service.database import get_db
from parcel_service.exceptions import (
    InvalidCheckoutRequest,
    InvalidSessionError,
    ParcelNotFound,
    ProviderError,
    StoreError,
)
from parcel_service.reconciliation import PaymentReconciler
from parcel_service.stores import ParcelStore, PaymentLedger
from parcel_service.stripe_service import get_provider

logger = structlog.get_logger(__name__)

router = APIRouter()

# Only the store or the reconciler may set these, in any key spelling
RESERVED_FIELDS = {"id", "paymentstatus", "trackingid", "createdat"}


def is_reserved(key):
    return key.replace("_", "").replace("-", "").lower() in RESERVED_FIELDS


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutRequest(CamelModel):
    cost: float = Field(gt=0)
    parcel_name: str = Field(min_length=1)
    parcel_id: str = Field(min_length=1)
    sender_email: str = Field(min_length=3)


class ParcelCreate(CamelModel):
    model_config = ConfigDict(extra="allow")

    parcel_name: str = Field(min_length=1)
    sender_email: str = Field(min_length=3)
    cost: float = Field(ge=0)


def get_initiator(provider=Depends(get_provider)):
    return CheckoutInitiator(provider, PAYMENT_CURRENCY, SUCCESS_URL, CANCEL_URL)


def get_reconciler(db=Depends(get_db), provider=Depends(get_provider)):
    return PaymentReconciler(db, provider)


def confirm_payment(reconciler, session_id):
    try:
        return reconciler.confirm(session_id)
    except ProviderError:
        raise HTTPException(status_code=502, detail="Unable to verify payment at the moment.")
    except InvalidSessionError:
        raise HTTPException(status_code=400, detail="Checkout session cannot be reconciled.")
    except ParcelNotFound:
        raise HTTPException(status_code=404, detail="Parcel not found.")
    except StoreError:
        raise HTTPException(status_code=500, detail="Unable to record payment at the moment.")


@router.get("/")
def root():
    return "Parcel service is running..."


@router.get("/parcels")
def list_parcels(email: Optional[str] = None, db=Depends(get_db)):
    try:
        parcels = ParcelStore(db).list(sender_email=email)
    except SQLAlchemyError:
        logger.exception("parcel_list_failed")
        raise HTTPException(status_code=500, detail="Couldn't find any Parcel.")
    return {
        "success": True,
        "message": "Parcel Found successfully.",
        "data": [parcel.to_dict() for parcel in parcels],
    }


@router.post("/parcels", status_code=status.HTTP_201_CREATED)
def create_parcel(request: ParcelCreate, db=Depends(get_db)):
    details = {
        key: value
        for key, value in (request.model_extra or {}).items()
        if not is_reserved(key)
    }
    try:
        parcel = ParcelStore(db).create(
            parcel_name=request.parcel_name,
            sender_email=request.sender_email,
            cost=request.cost,
            details=details,
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("parcel_create_failed")
        raise HTTPException(status_code=500, detail="Unable to create parcel at the moment.")
    logger.info("parcel_created", parcel_id=parcel.id)
    return {
        "success": True,
        "message": "Parcel created successfully.",
        "data": parcel.to_dict(),
    }


@router.get("/parcels/{parcel_id}")
def get_parcel(parcel_id: str, db=Depends(get_db)):
    try:
        parcel = ParcelStore(db).get(parcel_id)
    except SQLAlchemyError:
        logger.exception("parcel_get_failed", parcel_id=parcel_id)
        raise HTTPException(status_code=500, detail="Unable to load parcel at the moment.")
    if parcel is None:
        raise HTTPException(status_code=404, detail="Parcel not found.")
    return {"success": True, "data": parcel.to_dict()}


@router.get("/parcels/{parcel_id}/payments")
def list_parcel_payments(parcel_id: str, db=Depends(get_db)):
    try:
        payments = PaymentLedger(db).list_for_parcel(parcel_id)
    except SQLAlchemyError:
        logger.exception("payment_list_failed", parcel_id=parcel_id)
        raise HTTPException(status_code=500, detail="Unable to load payments at the moment.")
    return {"success": True, "data": [payment.to_dict() for payment in payments]}


@router.delete("/parcels/{parcel_id}")
def delete_parcel(parcel_id: str, db=Depends(get_db)):
    try:
        deleted = ParcelStore(db).delete(parcel_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("parcel_delete_failed", parcel_id=parcel_id)
        raise HTTPException(status_code=500, detail="Unable to delete parcel at the moment.")
    if not deleted:
        raise HTTPException(status_code=404, detail="Parcel not found.")
    logger.info("parcel_deleted", parcel_id=parcel_id)
    return {"success": True, "message": "Parcel deleted successfully."}


@router.post("/create-checkout-session")
def create_checkout_session(request: CheckoutRequest, initiator=Depends(get_initiator)):
    try:
        url = initiator.start(
            parcel_id=request.parcel_id,
            parcel_name=request.parcel_name,
            sender_email=request.sender_email,
            cost=request.cost,
        )
    except InvalidCheckoutRequest:
        raise HTTPException(status_code=400, detail="Invalid checkout request.")
    except ProviderError:
        raise HTTPException(status_code=502, detail="Unable to start payment at the moment.")
    return {"url": url}


@router.patch("/payment-success")
def payment_success(session_id: str = Query(min_length=1), reconciler=Depends(get_reconciler)):
    return confirm_payment(reconciler, session_id).to_dict()
