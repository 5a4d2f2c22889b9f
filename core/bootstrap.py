"""
部署：建立 Raffle 並接上 VRF subscription

流程：
1. 依 chain id 取得網路設定（Settings 可覆蓋）
2. subscription_id 為 0 時，建立並加值一個新的 subscription
3. 建立 Raffle
4. 把 Raffle 登記為 subscription 的 consumer
"""
from typing import Optional

from sqlalchemy.orm import Session
import logging

from models import Raffle
from core.raffle_manager import RaffleManager
from services.network_config import network_config_from_settings
from database import transactional

logger = logging.getLogger(__name__)


@transactional
def deploy_raffle(db: Session, settings, coordinator, now: Optional[int] = None) -> Raffle:
    """
    部署一個新的 Raffle

    參數：
        db: SQLAlchemy Session
        settings: database.Settings
        coordinator: LocalVRFCoordinator
        now: 初始 last_timestamp（epoch 秒）

    返回：
        新建立的 Raffle

    異常：
        InvalidRaffleConfig: chain id 不支援或入場費太低
        InvalidSubscription: 指定的 subscription 不存在
    """
    config = network_config_from_settings(settings)

    subscription_id = config.subscription_id
    if subscription_id == 0:
        subscription_id = coordinator.create_subscription(db, owner=settings.operator)
        coordinator.fund_subscription(db, subscription_id, settings.vrf_fund_amount)

    raffle = RaffleManager.create_raffle(
        db,
        entrance_fee=config.entrance_fee,
        interval=config.interval,
        key_hash=config.key_hash,
        subscription_id=subscription_id,
        callback_gas_limit=config.callback_gas_limit,
        request_confirmations=config.request_confirmations,
        num_words=config.num_words,
        operator=settings.operator,
        vrf_coordinator=coordinator.address,
        now=now,
    )

    coordinator.add_consumer(db, subscription_id, raffle.address)

    logger.info(
        f"Deployed raffle {raffle.address} on chain {settings.chain_id} "
        f"with subscription {subscription_id}"
    )
    return raffle


def ensure_raffle(db: Session, settings, coordinator) -> Raffle:
    """啟動時使用：已經有 Raffle 就沿用，沒有才部署"""
    raffle = db.query(Raffle).order_by(Raffle.id).first()
    if raffle:
        return raffle
    return deploy_raffle(db, settings, coordinator)
