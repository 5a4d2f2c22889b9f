from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./raffle.db"
    log_level: str = "INFO"

    # 網路設定：未填的欄位由 services.network_config 依 chain_id 補上
    chain_id: int = 31337
    entrance_fee: Optional[int] = None
    interval: Optional[int] = None
    key_hash: Optional[str] = None
    subscription_id: Optional[int] = None
    callback_gas_limit: Optional[int] = None
    request_confirmations: Optional[int] = None
    operator: str = "operator"

    # 本地 VRF coordinator
    vrf_coordinator_address: str = "vrf-coordinator"
    vrf_base_fee: int = 250_000_000_000_000_000
    vrf_fund_amount: int = 3_000_000_000_000_000_000

    # 特權呼叫的 bearer token；未設定時只有 debug 模式放行
    operator_token: Optional[str] = None
    vrf_callback_token: Optional[str] = None
    debug: bool = False

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite 需要特殊設定：connect_args={"check_same_thread": False}
# 這允許多執行緒存取同一個 SQLite 連線（FastAPI 的多執行緒環境需要）
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：提供 Database Session

    使用 yield 確保 session 在請求結束後會被關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def some_business_logic(db: Session, ...):
            raffle = ...
            raffle.state = RaffleState.CALCULATING
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback（開獎時轉帳失敗，所有狀態變更一併撤銷）
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 第一個參數必須是 db: Session（instance method 則是 self 之後的第一個）
        - 不要在函式內手動 commit（decorator 會處理）
        - 被 @transactional 包住的函式不應再呼叫另一個 @transactional 函式，
          否則內層會提前 commit；需要組合時請呼叫不帶 decorator 的版本
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs；instance method 時 args[0] 是 self）
        db = next((arg for arg in args[:2] if isinstance(arg, Session)), None)
        if db is None and 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
