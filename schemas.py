"""
Pydantic request / response models
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field

from models import RaffleState

# VRF 亂數是 uint256
RandomWord = Annotated[int, Field(ge=0, lt=2**256)]


# ============ Raffle ============

class RaffleResponse(BaseModel):
    address: str
    state: RaffleState
    round_number: int
    entrance_fee: int
    interval: int
    last_timestamp: int
    recent_winner: Optional[str] = None
    pending_request_id: Optional[int] = None
    operator: str
    player_count: int
    balance: int
    accrued_profit: int
    prize_pool: int


class EnterRequest(BaseModel):
    amount: int = Field(..., ge=0)


class EnterResponse(BaseModel):
    player: str
    round_number: int
    player_count: int


class PlayerResponse(BaseModel):
    index: int
    player: str


class PlayersResponse(BaseModel):
    players: List[str]


class UpkeepResponse(BaseModel):
    upkeep_needed: bool
    perform_data: str = ""


class PerformUpkeepResponse(BaseModel):
    request_id: int


class WithdrawResponse(BaseModel):
    amount: int


class DrawResponse(BaseModel):
    round_number: int
    request_id: int
    random_word: str
    winner_index: int
    winner: str
    prize: int
    player_count: int
    settled_at: int


class EventResponse(BaseModel):
    id: int
    event_type: str
    data: Dict[str, Any]
    created_at: Optional[datetime] = None


# ============ VRF Coordinator ============

class SubscriptionCreate(BaseModel):
    owner: str


class SubscriptionFund(BaseModel):
    amount: int = Field(..., ge=0)


class ConsumerAdd(BaseModel):
    consumer: str


class SubscriptionResponse(BaseModel):
    subscription_id: int
    owner: str
    balance: int
    consumers: List[str]


class CoordinatorFulfillRequest(BaseModel):
    random_words: Optional[List[RandomWord]] = Field(None, min_length=1)


class CoordinatorFulfillResponse(BaseModel):
    request_id: int
    random_words: List[int]


# ============ Accounts ============

class AccountResponse(BaseModel):
    address: str
    balance: int
    accepts_payments: bool
