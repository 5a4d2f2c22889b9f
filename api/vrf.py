"""
VRF Coordinator API Endpoints（本地亂數提供者）

職責：
1. 管理 subscription（建立、加值、登記 consumer）
2. 送達亂數請求（會回呼 Raffle 開獎），這是唯一的開獎入口，需要 coordinator token
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import VrfConsumer
from schemas import (
    SubscriptionCreate,
    SubscriptionFund,
    ConsumerAdd,
    SubscriptionResponse,
    CoordinatorFulfillRequest,
    CoordinatorFulfillResponse,
)
from core.exceptions import (
    InvalidSubscription,
    RequestNotFound,
    InsufficientSubscriptionBalance,
    UnknownRandomnessRequest,
    OnlyCoordinatorCanFulfill,
    InvalidRandomWords,
    PrizeTransferFailed,
)
from services.vrf_service import get_coordinator, LocalVRFCoordinator
from api.auth import require_coordinator

router = APIRouter(prefix="/api/vrf", tags=["vrf"])
logger = logging.getLogger(__name__)


def _subscription_response(db: Session, coordinator: LocalVRFCoordinator, subscription_id: int):
    subscription = coordinator.get_subscription(db, subscription_id)
    consumers = db.query(VrfConsumer).filter(
        VrfConsumer.subscription_id == subscription_id
    ).order_by(VrfConsumer.id).all()
    return SubscriptionResponse(
        subscription_id=subscription.id,
        owner=subscription.owner,
        balance=subscription.balance,
        consumers=[c.consumer for c in consumers]
    )


@router.post("/subscriptions", response_model=SubscriptionResponse)
def create_subscription(
    data: SubscriptionCreate,
    db: Session = Depends(get_db),
    coordinator: LocalVRFCoordinator = Depends(get_coordinator)
):
    try:
        subscription_id = coordinator.create_subscription(db, data.owner)
        db.commit()
        return _subscription_response(db, coordinator, subscription_id)

    except Exception as e:
        logger.error(f"Failed to create subscription: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: int,
    db: Session = Depends(get_db),
    coordinator: LocalVRFCoordinator = Depends(get_coordinator)
):
    try:
        return _subscription_response(db, coordinator, subscription_id)

    except InvalidSubscription as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get subscription: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/subscriptions/{subscription_id}/fund", response_model=SubscriptionResponse)
def fund_subscription(
    subscription_id: int,
    data: SubscriptionFund,
    db: Session = Depends(get_db),
    coordinator: LocalVRFCoordinator = Depends(get_coordinator)
):
    try:
        coordinator.fund_subscription(db, subscription_id, data.amount)
        db.commit()
        return _subscription_response(db, coordinator, subscription_id)

    except InvalidSubscription as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to fund subscription: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/subscriptions/{subscription_id}/consumers", response_model=SubscriptionResponse)
def add_consumer(
    subscription_id: int,
    data: ConsumerAdd,
    db: Session = Depends(get_db),
    coordinator: LocalVRFCoordinator = Depends(get_coordinator)
):
    try:
        coordinator.add_consumer(db, subscription_id, data.consumer)
        db.commit()
        return _subscription_response(db, coordinator, subscription_id)

    except InvalidSubscription as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to add consumer: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/requests/{request_id}/fulfill", response_model=CoordinatorFulfillResponse)
def fulfill_request(
    request_id: int,
    data: CoordinatorFulfillRequest,
    db: Session = Depends(get_db),
    coordinator: LocalVRFCoordinator = Depends(get_coordinator),
    _auth: bool = Depends(require_coordinator)
):
    """
    送達亂數請求

    random_words 可省略（由 request id 推導）；consumer 回呼失敗時請求維持 PENDING，
    可以再呼叫一次重新送達
    """
    try:
        words = coordinator.fulfill_random_words(db, request_id, data.random_words)
        return CoordinatorFulfillResponse(request_id=request_id, random_words=words)

    except (RequestNotFound, UnknownRandomnessRequest) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OnlyCoordinatorCanFulfill as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidRandomWords as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientSubscriptionBalance as e:
        raise HTTPException(status_code=402, detail=str(e))
    except PrizeTransferFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to fulfill request {request_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
