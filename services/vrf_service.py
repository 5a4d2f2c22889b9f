"""
VRF 服務：本地的亂數提供者（coordinator）

Raffle 對亂數提供者只依賴兩件事：
1. request_random_words(...) -> request_id（非阻塞，立刻返回）
2. 稍後由提供者呼叫 RaffleManager.raw_fulfill_random_words(...) 回呼

LocalVRFCoordinator 在資料庫裡實作這個協定（subscription / consumer / request），
讓整個流程在本地就能跑完；接真正的提供者時，只要換掉這個物件即可。
"""
import hashlib
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session
import logging

from models import RandomnessRequest, RequestStatus, VrfConsumer, VrfSubscription
from core.exceptions import (
    InsufficientSubscriptionBalance,
    InvalidConsumer,
    InvalidSubscription,
    NumWordsTooBig,
    RequestNotFound,
)
from core.locks import serialized
from database import get_settings, transactional

logger = logging.getLogger(__name__)

MAX_NUM_WORDS = 500


def derive_random_words(request_id: int, num_words: int) -> List[int]:
    """
    由 request id 推導出確定性的亂數（僅供本地使用）

    word_i = int(sha256("{request_id}:{i}"))，256 位元無號整數
    """
    return [
        int.from_bytes(hashlib.sha256(f"{request_id}:{i}".encode()).digest(), "big")
        for i in range(num_words)
    ]


class LocalVRFCoordinator:
    """
    本地 VRF coordinator

    管理類的方法（subscription / consumer / request）只 flush 不 commit，
    交給呼叫者的 transaction；fulfill_random_words 是獨立的對外操作，自己負責 transaction。
    """

    def __init__(self, address: str, base_fee: int = 0):
        self.address = address
        self.base_fee = base_fee

    # ============ Subscription ============

    def create_subscription(self, db: Session, owner: str) -> int:
        subscription = VrfSubscription(owner=owner, balance=0)
        db.add(subscription)
        db.flush()
        logger.info(f"Created VRF subscription {subscription.id} for {owner}")
        return subscription.id

    def get_subscription(self, db: Session, subscription_id: int) -> VrfSubscription:
        subscription = db.query(VrfSubscription).filter(
            VrfSubscription.id == subscription_id
        ).first()
        if not subscription:
            raise InvalidSubscription(subscription_id)
        return subscription

    def fund_subscription(self, db: Session, subscription_id: int, amount: int) -> int:
        """返回加值後的餘額"""
        subscription = self.get_subscription(db, subscription_id)
        subscription.balance = subscription.balance + amount
        db.flush()
        logger.info(f"Funded VRF subscription {subscription_id} with {amount}")
        return subscription.balance

    def add_consumer(self, db: Session, subscription_id: int, consumer: str) -> None:
        """重複加入同一個 consumer 是 no-op"""
        self.get_subscription(db, subscription_id)
        if self.consumer_is_added(db, subscription_id, consumer):
            return
        db.add(VrfConsumer(subscription_id=subscription_id, consumer=consumer))
        db.flush()
        logger.info(f"Added consumer {consumer} to VRF subscription {subscription_id}")

    def remove_consumer(self, db: Session, subscription_id: int, consumer: str) -> None:
        self.get_subscription(db, subscription_id)
        row = db.query(VrfConsumer).filter(
            VrfConsumer.subscription_id == subscription_id,
            VrfConsumer.consumer == consumer
        ).first()
        if not row:
            raise InvalidConsumer(subscription_id, consumer)
        db.delete(row)
        db.flush()

    def consumer_is_added(self, db: Session, subscription_id: int, consumer: str) -> bool:
        return db.query(VrfConsumer).filter(
            VrfConsumer.subscription_id == subscription_id,
            VrfConsumer.consumer == consumer
        ).count() > 0

    # ============ Request / Fulfillment ============

    def request_random_words(
        self,
        db: Session,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
        consumer: str,
    ) -> int:
        """
        登記一筆亂數請求，立刻返回 request id（遞增，從 1 開始）

        異常：
            InvalidSubscription: subscription 不存在
            InvalidConsumer: consumer 沒有登記在 subscription 上
            NumWordsTooBig: num_words 超過 MAX_NUM_WORDS
        """
        self.get_subscription(db, subscription_id)
        if not self.consumer_is_added(db, subscription_id, consumer):
            raise InvalidConsumer(subscription_id, consumer)
        if num_words > MAX_NUM_WORDS:
            raise NumWordsTooBig(f"num_words {num_words} exceeds {MAX_NUM_WORDS}")

        request = RandomnessRequest(
            subscription_id=subscription_id,
            consumer=consumer,
            key_hash=key_hash,
            min_confirmations=request_confirmations,
            callback_gas_limit=callback_gas_limit,
            num_words=num_words,
            status=RequestStatus.PENDING,
        )
        db.add(request)
        db.flush()

        logger.info(
            f"Randomness requested: id={request.request_id} consumer={consumer} "
            f"sub={subscription_id} words={num_words}"
        )
        return request.request_id

    def get_request(self, db: Session, request_id: int) -> Optional[RandomnessRequest]:
        return db.query(RandomnessRequest).filter(
            RandomnessRequest.request_id == request_id
        ).first()

    @serialized
    @transactional
    def fulfill_random_words(
        self,
        db: Session,
        request_id: int,
        random_words: Optional[List[int]] = None,
        now: Optional[int] = None,
    ) -> List[int]:
        """
        送達亂數：扣 subscription 費用，回呼 consumer，標記請求完成

        參數：
            db: SQLAlchemy Session
            request_id: 要送達的請求
            random_words: 指定亂數（測試用）；None 則由 request id 推導
            now: 回呼使用的時間（epoch 秒）

        返回：
            送達的亂數

        異常：
            RequestNotFound: 請求不存在或已送達
            InsufficientSubscriptionBalance: subscription 餘額不足
            以及 consumer 回呼拋出的任何異常（例如 PrizeTransferFailed）

        注意：
            - 整個流程是同一個 transaction：consumer 失敗時全部 rollback，
              請求維持 PENDING，之後可以重新送達
        """
        # 避免 circular import
        from core.raffle_manager import RaffleManager

        request = self.get_request(db, request_id)
        if not request or request.status != RequestStatus.PENDING:
            raise RequestNotFound(request_id)

        words = list(random_words) if random_words else derive_random_words(
            request_id, request.num_words
        )

        subscription = self.get_subscription(db, request.subscription_id)
        if subscription.balance < self.base_fee:
            raise InsufficientSubscriptionBalance(
                subscription.id, subscription.balance, self.base_fee
            )
        subscription.balance = subscription.balance - self.base_fee

        RaffleManager.raw_fulfill_random_words(
            db,
            caller=self.address,
            request_id=request_id,
            random_words=words,
            now=now,
        )

        request.status = RequestStatus.FULFILLED
        request.fulfilled_at = datetime.now(timezone.utc)

        logger.info(f"Randomness request {request_id} fulfilled for {request.consumer}")
        return words


def get_coordinator() -> LocalVRFCoordinator:
    """FastAPI dependency：依設定建立 coordinator"""
    settings = get_settings()
    return LocalVRFCoordinator(
        address=settings.vrf_coordinator_address,
        base_fee=settings.vrf_base_fee,
    )
