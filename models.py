"""
ORM Models

Raffle 是整個系統唯一的聚合（設定 + 回合狀態），其他表都掛在它底下：
- Entry：每一筆下注（同一個玩家可以重複出現）
- Draw：每一回合的開獎紀錄
- Account：轉帳收款方的帳本
- EventLog：通知事件
- VrfSubscription / VrfConsumer / RandomnessRequest：本地 VRF coordinator
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    TypeDecorator,
    UniqueConstraint,
)

from database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Uint256(TypeDecorator):
    """
    無號大整數欄位

    金額以最小單位（wei）計算，很容易超過 SQLite INTEGER 的 64 位元上限，
    所以存成十進位字串，讀出時轉回 int。
    """
    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if value < 0:
            raise ValueError(f"Uint256 cannot store negative value {value}")
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class RaffleState(str, enum.Enum):
    OPEN = "OPEN"
    CALCULATING = "CALCULATING"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"


class Raffle(Base):
    __tablename__ = "raffles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    address = Column(String(64), unique=True, nullable=False)

    # 設定（建立後不再變動）
    entrance_fee = Column(Uint256, nullable=False)
    interval = Column(Integer, nullable=False)
    key_hash = Column(String(66), nullable=False)
    subscription_id = Column(Integer, nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)
    request_confirmations = Column(Integer, nullable=False)
    num_words = Column(Integer, nullable=False, default=1)
    operator = Column(String(64), nullable=False)
    vrf_coordinator = Column(String(64), nullable=False)

    # 回合狀態
    state = Column(Enum(RaffleState), nullable=False, default=RaffleState.OPEN)
    round_number = Column(Integer, nullable=False, default=1)
    last_timestamp = Column(Integer, nullable=False)
    recent_winner = Column(String(64), nullable=True)
    pending_request_id = Column(Integer, nullable=True)

    # 帳本
    balance = Column(Uint256, nullable=False, default=0)
    accrued_profit = Column(Uint256, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)


class Entry(Base):
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raffle_id = Column(Integer, ForeignKey("raffles.id"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False, index=True)
    player = Column(String(64), nullable=False)
    amount = Column(Uint256, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Draw(Base):
    __tablename__ = "draws"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raffle_id = Column(Integer, ForeignKey("raffles.id"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    request_id = Column(Integer, nullable=False)
    random_word = Column(String(78), nullable=False)
    winner_index = Column(Integer, nullable=False)
    winner = Column(String(64), nullable=False)
    prize = Column(Uint256, nullable=False)
    player_count = Column(Integer, nullable=False)
    settled_at = Column(Integer, nullable=False)


class Account(Base):
    __tablename__ = "accounts"

    address = Column(String(64), primary_key=True)
    balance = Column(Uint256, nullable=False, default=0)
    # False 代表收款方拒收（轉帳會失敗）
    accepts_payments = Column(Boolean, nullable=False, default=True)


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    raffle_id = Column(Integer, ForeignKey("raffles.id"), nullable=True, index=True)
    event_type = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class VrfSubscription(Base):
    __tablename__ = "vrf_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner = Column(String(64), nullable=False)
    balance = Column(Uint256, nullable=False, default=0)


class VrfConsumer(Base):
    __tablename__ = "vrf_consumers"
    __table_args__ = (UniqueConstraint("subscription_id", "consumer"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("vrf_subscriptions.id"), nullable=False)
    consumer = Column(String(64), nullable=False)


class RandomnessRequest(Base):
    __tablename__ = "randomness_requests"

    request_id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(Integer, ForeignKey("vrf_subscriptions.id"), nullable=False)
    consumer = Column(String(64), nullable=False)
    key_hash = Column(String(66), nullable=False)
    min_confirmations = Column(Integer, nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)
    num_words = Column(Integer, nullable=False)
    status = Column(Enum(RequestStatus), nullable=False, default=RequestStatus.PENDING)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)
