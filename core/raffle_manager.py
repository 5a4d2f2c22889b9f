"""
Raffle Manager：管理抽獎回合的完整生命週期

職責：
1. 下注（Entry Manager）
2. 判斷是否可以開獎（Eligibility，純函式）
3. 發出亂數請求 / 處理亂數回呼（Request/Fulfillment Handler）
4. operator 提領抽成（Accounting Ledger）

原則：
- 單一聚合：所有操作都先鎖定唯一的 Raffle，再對它做修改
- 所有狀態變更經過 StateMachine
- 開獎時先寫入狀態，最後才轉帳；轉帳失敗就整筆 rollback
"""
import time
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session
import logging

from models import Raffle, RaffleState, Entry, Draw, EventLog
from core.state_machine import RaffleStateMachine
from core.locks import with_raffle_lock, serialized
from core.exceptions import (
    RaffleNotFound,
    InsufficientStake,
    RoundNotOpen,
    PlayerIndexOutOfRange,
    UpkeepNotNeeded,
    OnlyCoordinatorCanFulfill,
    UnknownRandomnessRequest,
    InvalidRandomWords,
    PrizeTransferFailed,
    NotAuthorized,
    ProfitTransferFailed,
)
from services.profit_service import profit_per_entry, validate_entrance_fee, prize_pool
from services.winner_service import select_winner
from services.upkeep_service import check_upkeep
from services.payout_service import send_funds
from services.naming_service import generate_raffle_address
from database import transactional

logger = logging.getLogger(__name__)


def current_timestamp() -> int:
    return int(time.time())


def _emit(db: Session, raffle: Raffle, event_type: str, data: dict) -> None:
    db.add(EventLog(raffle_id=raffle.id, event_type=event_type, data=data))


class RaffleManager:
    """Raffle 生命週期管理器"""

    @staticmethod
    def create_raffle(
        db: Session,
        entrance_fee: int,
        interval: int,
        key_hash: str,
        subscription_id: int,
        callback_gas_limit: int,
        request_confirmations: int,
        operator: str,
        vrf_coordinator: str,
        num_words: int = 1,
        now: Optional[int] = None,
    ) -> Raffle:
        """
        建立 Raffle（初始狀態 OPEN，名單為空）

        異常：
            InvalidRaffleConfig: 入場費太低

        注意：
            - 不 commit，由 bootstrap.deploy_raffle 的 transaction 處理
        """
        validate_entrance_fee(entrance_fee)

        address = generate_raffle_address()
        while db.query(Raffle).filter(Raffle.address == address).first():
            address = generate_raffle_address()
            logger.warning(f"Raffle address collision detected, regenerating: {address}")

        raffle = Raffle(
            address=address,
            entrance_fee=entrance_fee,
            interval=interval,
            key_hash=key_hash,
            subscription_id=subscription_id,
            callback_gas_limit=callback_gas_limit,
            request_confirmations=request_confirmations,
            num_words=num_words,
            operator=operator,
            vrf_coordinator=vrf_coordinator,
            state=RaffleState.OPEN,
            round_number=1,
            last_timestamp=now if now is not None else current_timestamp(),
            balance=0,
            accrued_profit=0,
        )
        db.add(raffle)
        db.flush()

        _emit(db, raffle, "RAFFLE_CREATED", {
            "address": address,
            "entrance_fee": str(entrance_fee),
            "interval": interval,
        })

        logger.info(
            f"Created raffle {raffle.id} at {address} "
            f"(fee={entrance_fee}, interval={interval}s)"
        )
        return raffle

    # ============ 查詢 ============

    @staticmethod
    def get_raffle(db: Session) -> Raffle:
        """
        取得唯一的 live Raffle

        異常：
            RaffleNotFound: 尚未部署
        """
        raffle = db.query(Raffle).order_by(Raffle.id).first()
        if not raffle:
            raise RaffleNotFound()
        return raffle

    @staticmethod
    def _lock_raffle(db: Session) -> Raffle:
        raffle = with_raffle_lock(db).first()
        if not raffle:
            raise RaffleNotFound()
        return raffle

    @staticmethod
    def _current_entries(db: Session, raffle: Raffle):
        return db.query(Entry).filter(
            Entry.raffle_id == raffle.id,
            Entry.round_number == raffle.round_number
        ).order_by(Entry.id)

    @staticmethod
    def get_players(db: Session, raffle: Raffle) -> List[str]:
        """目前回合的名單（依下注順序，同一玩家可重複出現）"""
        return [entry.player for entry in RaffleManager._current_entries(db, raffle).all()]

    @staticmethod
    def get_player_count(db: Session, raffle: Raffle) -> int:
        return RaffleManager._current_entries(db, raffle).count()

    @staticmethod
    def get_player(db: Session, index: int) -> str:
        """
        取得目前回合第 index 位下注者

        異常：
            PlayerIndexOutOfRange: index 超出名單範圍
        """
        raffle = RaffleManager.get_raffle(db)
        count = RaffleManager.get_player_count(db, raffle)
        if index < 0 or index >= count:
            raise PlayerIndexOutOfRange(index, count)
        entry = RaffleManager._current_entries(db, raffle).offset(index).first()
        return entry.player

    @staticmethod
    def get_prize_pool(db: Session) -> int:
        raffle = RaffleManager.get_raffle(db)
        return prize_pool(raffle.balance, raffle.accrued_profit)

    # ============ Entry Manager ============

    @staticmethod
    @serialized
    @transactional
    def enter(db: Session, player: str, amount: int) -> Entry:
        """
        下注進入目前回合

        前置條件：
        1. amount >= entrance_fee
        2. Raffle 狀態必須是 OPEN

        效果：
        - 名單尾端加入 player（可以重複下注）
        - balance 增加 amount（超付部分進獎池）
        - accrued_profit 增加 profit_per_entry(entrance_fee)
        - 記錄 RAFFLE_ENTERED 事件

        異常：
            InsufficientStake: 金額不足
            RoundNotOpen: 正在開獎
        """
        raffle = RaffleManager._lock_raffle(db)

        if amount < raffle.entrance_fee:
            raise InsufficientStake(amount, raffle.entrance_fee)

        if raffle.state != RaffleState.OPEN:
            raise RoundNotOpen(raffle.state)

        entry = Entry(
            raffle_id=raffle.id,
            round_number=raffle.round_number,
            player=player,
            amount=amount
        )
        db.add(entry)

        raffle.balance = raffle.balance + amount
        raffle.accrued_profit = raffle.accrued_profit + profit_per_entry(raffle.entrance_fee)

        _emit(db, raffle, "RAFFLE_ENTERED", {"player": player})
        db.flush()

        logger.info(f"Player {player} entered raffle {raffle.id} round {raffle.round_number} with {amount}")
        return entry

    # ============ Eligibility Evaluator ============

    @staticmethod
    def check_upkeep(db: Session, now: Optional[int] = None) -> Tuple[bool, bytes]:
        """
        判斷是否可以開獎（不修改任何狀態）

        返回：
            (upkeep_needed, perform_data)，perform_data 固定為 b""
        """
        raffle = RaffleManager.get_raffle(db)
        player_count = RaffleManager.get_player_count(db, raffle)
        return check_upkeep(raffle, player_count, now if now is not None else current_timestamp())

    # ============ Request / Fulfillment Handler ============

    @staticmethod
    @serialized
    @transactional
    def perform_upkeep(db: Session, coordinator, now: Optional[int] = None) -> int:
        """
        開獎第一階段：OPEN -> CALCULATING，發出亂數請求

        前置條件：
            check_upkeep 為 True（這裡重新驗證，不信任呼叫者）

        流程：
        1. 鎖定 Raffle 並重新判斷資格
        2. 透過 StateMachine 轉成 CALCULATING
        3. 向 coordinator 請求 num_words 個亂數（非阻塞）
        4. 記錄 pending_request_id 與 REQUESTED_RAFFLE_WINNER 事件

        返回：
            request id

        異常：
            UpkeepNotNeeded: 不符合開獎條件（帶 balance / 人數 / 狀態）
        """
        now = now if now is not None else current_timestamp()
        raffle = RaffleManager._lock_raffle(db)
        player_count = RaffleManager.get_player_count(db, raffle)

        upkeep_needed, _ = check_upkeep(raffle, player_count, now)
        if not upkeep_needed:
            raise UpkeepNotNeeded(raffle.balance, player_count, raffle.state)

        RaffleStateMachine.transition(db, raffle, RaffleState.CALCULATING)

        request_id = coordinator.request_random_words(
            db,
            key_hash=raffle.key_hash,
            subscription_id=raffle.subscription_id,
            request_confirmations=raffle.request_confirmations,
            callback_gas_limit=raffle.callback_gas_limit,
            num_words=raffle.num_words,
            consumer=raffle.address,
        )
        raffle.pending_request_id = request_id

        _emit(db, raffle, "REQUESTED_RAFFLE_WINNER", {"request_id": request_id})
        db.flush()

        logger.info(
            f"Raffle {raffle.id} round {raffle.round_number} requested winner "
            f"(request={request_id}, players={player_count})"
        )
        return request_id

    @staticmethod
    def raw_fulfill_random_words(
        db: Session,
        caller: str,
        request_id: int,
        random_words: List[int],
        now: Optional[int] = None,
    ) -> str:
        """
        開獎第二階段：亂數回呼，選出得主並結算

        前置條件：
        1. caller 是設定的 VRF coordinator
        2. Raffle 是 CALCULATING，且 request_id 等於 pending_request_id

        流程（順序很重要）：
        1. winner_index = random_words[0] mod 人數
        2. 先寫入所有狀態：recent_winner、last_timestamp、OPEN、
           清空名單（round_number + 1）、清除 pending request、扣除 balance、
           Draw 紀錄、WINNER_PICKED 事件
        3. 最後才把獎金轉給得主

        返回：
            得主

        異常：
            OnlyCoordinatorCanFulfill: caller 不是 coordinator
            UnknownRandomnessRequest: 不是等待中的請求（狀態不變）
            InvalidRandomWords: 沒有亂數
            PrizeTransferFailed: 得主拒收；呼叫者的 transaction 必須 rollback

        注意：
            - 不 commit，由 coordinator 的 fulfill_random_words transaction 處理
            - 這是唯一的開獎入口，請求的帳（FULFILLED、扣費）由 coordinator 同一筆 transaction 記錄
        """
        raffle = RaffleManager._lock_raffle(db)

        if caller != raffle.vrf_coordinator:
            raise OnlyCoordinatorCanFulfill(caller, raffle.vrf_coordinator)

        if raffle.state != RaffleState.CALCULATING or request_id != raffle.pending_request_id:
            raise UnknownRandomnessRequest(request_id, raffle.pending_request_id)

        if not random_words:
            raise InvalidRandomWords(f"No random words delivered for request {request_id}")

        players = RaffleManager.get_players(db, raffle)
        random_word = random_words[0]
        winner_index, winner = select_winner(players, random_word)
        prize = prize_pool(raffle.balance, raffle.accrued_profit)
        settled_round = raffle.round_number
        now = now if now is not None else current_timestamp()

        raffle.recent_winner = winner
        raffle.last_timestamp = now
        RaffleStateMachine.transition(db, raffle, RaffleState.OPEN)
        raffle.round_number = settled_round + 1
        raffle.pending_request_id = None
        raffle.balance = raffle.balance - prize

        db.add(Draw(
            raffle_id=raffle.id,
            round_number=settled_round,
            request_id=request_id,
            random_word=str(random_word),
            winner_index=winner_index,
            winner=winner,
            prize=prize,
            player_count=len(players),
            settled_at=now
        ))
        _emit(db, raffle, "WINNER_PICKED", {"winner": winner})
        db.flush()

        if not send_funds(db, winner, prize):
            raise PrizeTransferFailed(winner, prize)

        logger.info(
            f"Raffle {raffle.id} round {settled_round} winner {winner} "
            f"(index={winner_index}/{len(players)}, prize={prize})"
        )
        return winner

    # ============ Accounting Ledger ============

    @staticmethod
    @serialized
    @transactional
    def withdraw_profit(db: Session, caller: str) -> int:
        """
        operator 提領全部累積抽成

        前置條件：
            caller 是 operator

        效果：
        - 先把 accrued_profit 歸零並從 balance 扣除，再轉帳
        - 只動 accrued_profit 那一份，永遠不會碰到獎池
        - 連續呼叫第二次會提領 0（不是錯誤）

        返回：
            提領金額

        異常：
            NotAuthorized: caller 不是 operator
            ProfitTransferFailed: operator 拒收；整筆 rollback
        """
        raffle = RaffleManager._lock_raffle(db)

        if caller != raffle.operator:
            raise NotAuthorized(caller)

        amount = raffle.accrued_profit
        raffle.accrued_profit = 0
        raffle.balance = raffle.balance - amount

        _emit(db, raffle, "PROFIT_WITHDRAWN", {"operator": caller, "amount": str(amount)})
        db.flush()

        if not send_funds(db, caller, amount):
            raise ProfitTransferFailed(caller, amount)

        logger.info(f"Operator {caller} withdrew profit {amount} from raffle {raffle.id}")
        return amount
