"""
狀態機：集中管理 Raffle 的狀態轉換

OPEN ──perform_upkeep──> CALCULATING ──fulfill──> OPEN

沒有終止狀態，Raffle 會在兩個狀態之間一直循環
"""
from sqlalchemy.orm import Session
import logging

from models import Raffle, RaffleState, EventLog
from core.exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


class RaffleStateMachine:
    """Raffle 狀態轉換規則"""

    TRANSITIONS = {
        RaffleState.OPEN: {RaffleState.CALCULATING},
        RaffleState.CALCULATING: {RaffleState.OPEN},
    }

    @classmethod
    def can_transition(cls, current: RaffleState, new_state: RaffleState) -> bool:
        return new_state in cls.TRANSITIONS.get(current, set())

    @classmethod
    def transition(cls, db: Session, raffle: Raffle, new_state: RaffleState) -> Raffle:
        """
        執行狀態轉換並記錄 RAFFLE_STATE_CHANGED 事件

        參數：
            db: SQLAlchemy Session
            raffle: 已鎖定的 Raffle
            new_state: 目標狀態

        返回：
            更新後的 Raffle

        異常：
            InvalidStateTransition: 轉換不在允許清單內

        注意：
            - 不 commit，交給外層 transaction
        """
        current = raffle.state
        if not cls.can_transition(current, new_state):
            raise InvalidStateTransition(
                f"Cannot transition raffle {raffle.id} from {current.value} to {new_state.value}"
            )

        raffle.state = new_state
        db.add(EventLog(
            raffle_id=raffle.id,
            event_type="RAFFLE_STATE_CHANGED",
            data={"from": current.value, "to": new_state.value}
        ))

        logger.info(f"Raffle {raffle.id} state {current.value} -> {new_state.value}")
        return raffle
