"""
並發控制工具

每一個對外操作（enter / perform_upkeep / fulfill / withdraw）都必須完整執行完，
不能和另一個操作交錯：

1. Database-level：SELECT ... FOR UPDATE 行級鎖（PostgreSQL 有效，SQLite 會忽略）
2. Process-level：serialized decorator，同一個 process 內一次只跑一個操作
   （SQLite 沒有行級鎖，靠這個補上）
"""
import threading
from functools import wraps

from sqlalchemy.orm import Session, Query

from models import Raffle


_raffle_mutex = threading.RLock()


def with_raffle_lock(db: Session) -> Query:
    """
    鎖定 Raffle（行級鎖）

    使用場景：
    - 檢查並修改 Raffle 狀態時
    - 開獎回呼時（防止同一個 request 被重複結算）

    範例：
        raffle = with_raffle_lock(db).first()
        if not raffle:
            raise RaffleNotFound()
        raffle.state = RaffleState.CALCULATING

    參數：
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 來取得結果）

    注意：
        - 系統只有一個 live Raffle，取 id 最小的那一筆
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(Raffle).order_by(Raffle.id).with_for_update(nowait=False)


def serialized(func):
    """
    讓被包住的操作在 process 內互斥執行

    必須放在 @transactional 外層，確保 commit / rollback 也在鎖內完成：

        @staticmethod
        @serialized
        @transactional
        def enter(db, player, amount): ...

    使用 RLock，同一個 thread 內的巢狀呼叫不會 deadlock
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        with _raffle_mutex:
            return func(*args, **kwargs)

    return wrapper
