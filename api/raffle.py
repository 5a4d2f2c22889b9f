"""
Raffle API Endpoints

重點：
1. 所有業務邏輯集中在 RaffleManager，這裡只負責轉換 HTTP <-> 異常
2. 玩家身分由 X-Caller header 提供；operator 需要 bearer token（api.auth）
3. /upkeep 給外部 automation poller 使用：GET 判斷、POST 觸發（會重新驗證）
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

import logging

from database import get_db
from schemas import (
    RaffleResponse,
    EnterRequest,
    EnterResponse,
    PlayerResponse,
    PlayersResponse,
    UpkeepResponse,
    PerformUpkeepResponse,
    WithdrawResponse,
    DrawResponse,
    EventResponse,
)
from core.raffle_manager import RaffleManager
from core.exceptions import (
    RaffleNotFound,
    InsufficientStake,
    RoundNotOpen,
    PlayerIndexOutOfRange,
    UpkeepNotNeeded,
    NotAuthorized,
    ProfitTransferFailed,
    InvalidConsumer,
    InvalidSubscription,
)
from services.profit_service import prize_pool
from services.history_service import get_winner_history, get_events
from services.vrf_service import get_coordinator, LocalVRFCoordinator
from api.auth import require_operator

router = APIRouter(prefix="/api/raffle", tags=["raffle"])
logger = logging.getLogger(__name__)


def get_caller(x_caller: str = Header(...)) -> str:
    """呼叫者身分（X-Caller header）"""
    return x_caller


@router.get("", response_model=RaffleResponse)
def get_raffle_state(db: Session = Depends(get_db)):
    """
    取得 Raffle 目前的設定與狀態

    返回：
        - state: OPEN / CALCULATING
        - player_count: 目前回合人數
        - prize_pool: balance - accrued_profit
    """
    try:
        raffle = RaffleManager.get_raffle(db)
        return RaffleResponse(
            address=raffle.address,
            state=raffle.state,
            round_number=raffle.round_number,
            entrance_fee=raffle.entrance_fee,
            interval=raffle.interval,
            last_timestamp=raffle.last_timestamp,
            recent_winner=raffle.recent_winner,
            pending_request_id=raffle.pending_request_id,
            operator=raffle.operator,
            player_count=RaffleManager.get_player_count(db, raffle),
            balance=raffle.balance,
            accrued_profit=raffle.accrued_profit,
            prize_pool=prize_pool(raffle.balance, raffle.accrued_profit)
        )

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get raffle: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/enter", response_model=EnterResponse)
def enter_raffle(
    entry_data: EnterRequest,
    caller: str = Depends(get_caller),
    db: Session = Depends(get_db)
):
    """
    下注進入目前回合

    前置條件：
    - amount >= entrance_fee
    - Raffle 狀態必須是 OPEN
    """
    try:
        entry = RaffleManager.enter(db, caller, entry_data.amount)
        raffle = RaffleManager.get_raffle(db)

        return EnterResponse(
            player=entry.player,
            round_number=entry.round_number,
            player_count=RaffleManager.get_player_count(db, raffle)
        )

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientStake as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RoundNotOpen as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to enter raffle: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/players", response_model=PlayersResponse)
def list_players(db: Session = Depends(get_db)):
    try:
        raffle = RaffleManager.get_raffle(db)
        return PlayersResponse(players=RaffleManager.get_players(db, raffle))

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list players: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/players/{index}", response_model=PlayerResponse)
def get_player(index: int, db: Session = Depends(get_db)):
    try:
        return PlayerResponse(index=index, player=RaffleManager.get_player(db, index))

    except (RaffleNotFound, PlayerIndexOutOfRange) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/upkeep", response_model=UpkeepResponse)
def check_upkeep(db: Session = Depends(get_db)):
    """
    判斷是否可以開獎（不修改狀態，poller 可以頻繁呼叫）
    """
    try:
        upkeep_needed, perform_data = RaffleManager.check_upkeep(db)
        return UpkeepResponse(upkeep_needed=upkeep_needed, perform_data=perform_data.hex())

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to check upkeep: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/upkeep", response_model=PerformUpkeepResponse)
def perform_upkeep(
    db: Session = Depends(get_db),
    coordinator: LocalVRFCoordinator = Depends(get_coordinator)
):
    """
    觸發開獎（OPEN -> CALCULATING）並發出亂數請求

    poller 不是可信任的一方：這裡會重新判斷資格，不符合就回 409，
    detail 帶 balance / player_count / state 方便診斷
    """
    try:
        request_id = RaffleManager.perform_upkeep(db, coordinator)
        return PerformUpkeepResponse(request_id=request_id)

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UpkeepNotNeeded as e:
        raise HTTPException(
            status_code=409,
            detail={
                "error": "UpkeepNotNeeded",
                "balance": e.balance,
                "player_count": e.player_count,
                "state": e.state.value,
            }
        )
    except (InvalidSubscription, InvalidConsumer) as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to perform upkeep: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/withdraw", response_model=WithdrawResponse)
def withdraw_profit(
    caller: str = Depends(require_operator),
    db: Session = Depends(get_db)
):
    """
    operator 提領累積抽成（Host endpoint，需要 operator token）
    """
    try:
        amount = RaffleManager.withdraw_profit(db, caller)
        return WithdrawResponse(amount=amount)

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotAuthorized as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ProfitTransferFailed as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to withdraw profit: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/winners", response_model=list[DrawResponse])
def list_winners(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    try:
        raffle = RaffleManager.get_raffle(db)
        return get_winner_history(raffle.id, db, limit=limit)

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list winners: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/events", response_model=list[EventResponse])
def list_events(
    event_type: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    try:
        raffle = RaffleManager.get_raffle(db)
        return get_events(raffle.id, db, event_type=event_type, limit=limit)

    except RaffleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list events: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
