import pytest

from conftest import T0, INTERVAL, ENTRANCE_FEE, OPERATOR, COORDINATOR, BASE_FEE
from core.exceptions import (
    InsufficientStake,
    InvalidRaffleConfig,
    InvalidRandomWords,
    NotAuthorized,
    OnlyCoordinatorCanFulfill,
    PlayerIndexOutOfRange,
    PrizeTransferFailed,
    ProfitTransferFailed,
    RequestNotFound,
    RoundNotOpen,
    UnknownRandomnessRequest,
    UpkeepNotNeeded,
)
from core.raffle_manager import RaffleManager
from models import Account, Draw, EventLog, RaffleState, RequestStatus
from services.payout_service import get_balance
from services.vrf_service import LocalVRFCoordinator

READY = T0 + INTERVAL + 1


def _events(db, event_type):
    return db.query(EventLog).filter(EventLog.event_type == event_type).all()


def _assert_ledger_invariant(db):
    raffle = RaffleManager.get_raffle(db)
    assert raffle.accrued_profit <= raffle.balance


def _start_draw(db, coordinator, players, now=READY):
    for player in players:
        RaffleManager.enter(db, player, ENTRANCE_FEE)
    return RaffleManager.perform_upkeep(db, coordinator, now=now)


# ============ 部署 ============

def test_raffle_starts_open_and_empty(db, raffle, coordinator):
    raffle = RaffleManager.get_raffle(db)
    assert raffle.state == RaffleState.OPEN
    assert raffle.entrance_fee == ENTRANCE_FEE
    assert raffle.operator == OPERATOR
    assert raffle.last_timestamp == T0
    assert raffle.recent_winner is None
    assert raffle.pending_request_id is None
    assert RaffleManager.get_player_count(db, raffle) == 0
    assert coordinator.consumer_is_added(db, raffle.subscription_id, raffle.address)


def test_create_raffle_rejects_tiny_fee(db):
    with pytest.raises(InvalidRaffleConfig):
        RaffleManager.create_raffle(
            db,
            entrance_fee=99,
            interval=INTERVAL,
            key_hash="0x00",
            subscription_id=1,
            callback_gas_limit=500_000,
            request_confirmations=3,
            operator=OPERATOR,
            vrf_coordinator=COORDINATOR,
        )


# ============ Entry Manager ============

def test_enter_below_fee_is_rejected(db, raffle):
    with pytest.raises(InsufficientStake) as exc_info:
        RaffleManager.enter(db, "alice", ENTRANCE_FEE - 1)

    assert exc_info.value.entrance_fee == ENTRANCE_FEE
    raffle = RaffleManager.get_raffle(db)
    assert raffle.balance == 0
    assert RaffleManager.get_player_count(db, raffle) == 0


def test_enter_records_player_and_profit(db, raffle):
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)

    raffle = RaffleManager.get_raffle(db)
    assert RaffleManager.get_player(db, 0) == "alice"
    assert raffle.balance == ENTRANCE_FEE
    assert raffle.accrued_profit == 1
    assert [e.data for e in _events(db, "RAFFLE_ENTERED")] == [{"player": "alice"}]


def test_overpayment_goes_to_pool_not_profit(db, raffle):
    RaffleManager.enter(db, "alice", 150)

    raffle = RaffleManager.get_raffle(db)
    assert raffle.balance == 150
    assert raffle.accrued_profit == 1
    assert RaffleManager.get_prize_pool(db) == 149


def test_repeat_entries_are_kept(db, raffle):
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)
    RaffleManager.enter(db, "bob", ENTRANCE_FEE)
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)

    raffle = RaffleManager.get_raffle(db)
    assert RaffleManager.get_players(db, raffle) == ["alice", "bob", "alice"]


def test_player_index_out_of_range(db, raffle):
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)
    with pytest.raises(PlayerIndexOutOfRange):
        RaffleManager.get_player(db, 1)


def test_enter_while_calculating_is_rejected(db, raffle, coordinator):
    _start_draw(db, coordinator, ["alice"])

    with pytest.raises(RoundNotOpen):
        RaffleManager.enter(db, "bob", ENTRANCE_FEE)

    raffle = RaffleManager.get_raffle(db)
    assert RaffleManager.get_players(db, raffle) == ["alice"]


# ============ Eligibility ============

def test_check_upkeep_follows_interval(db, raffle):
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)

    assert RaffleManager.check_upkeep(db, now=T0 + INTERVAL - 1) == (False, b"")
    assert RaffleManager.check_upkeep(db, now=T0 + INTERVAL) == (False, b"")
    assert RaffleManager.check_upkeep(db, now=READY) == (True, b"")


def test_check_upkeep_without_players(db, raffle):
    assert RaffleManager.check_upkeep(db, now=READY)[0] is False


# ============ Request / Fulfillment ============

def test_perform_upkeep_when_not_needed(db, raffle, coordinator):
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)

    with pytest.raises(UpkeepNotNeeded) as exc_info:
        RaffleManager.perform_upkeep(db, coordinator, now=T0 + 10)

    assert exc_info.value.player_count == 1
    assert exc_info.value.balance == ENTRANCE_FEE
    assert exc_info.value.state == RaffleState.OPEN
    assert RaffleManager.get_raffle(db).state == RaffleState.OPEN


def test_perform_upkeep_moves_to_calculating(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice"])

    raffle = RaffleManager.get_raffle(db)
    assert raffle.state == RaffleState.CALCULATING
    assert raffle.pending_request_id == request_id
    assert coordinator.get_request(db, request_id).num_words == 1
    assert [e.data for e in _events(db, "REQUESTED_RAFFLE_WINNER")] == [{"request_id": request_id}]


def test_second_trigger_fails_closed(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice"])

    with pytest.raises(UpkeepNotNeeded) as exc_info:
        RaffleManager.perform_upkeep(db, coordinator, now=READY + 5)

    assert exc_info.value.state == RaffleState.CALCULATING
    assert RaffleManager.get_raffle(db).pending_request_id == request_id


def test_full_round_trip(db, raffle, coordinator):
    players = ["alice", "bob", "carol"]
    request_id = _start_draw(db, coordinator, players)

    coordinator.fulfill_random_words(db, request_id, [7], now=READY + 1)

    raffle = RaffleManager.get_raffle(db)
    assert raffle.state == RaffleState.OPEN
    assert RaffleManager.get_player_count(db, raffle) == 0
    assert raffle.last_timestamp == READY + 1
    assert raffle.last_timestamp > T0
    assert raffle.recent_winner == "bob"  # 7 % 3 == 1
    assert raffle.pending_request_id is None
    assert raffle.round_number == 2

    # 300 入帳，3 是 operator 抽成，其餘全部給得主
    assert get_balance(db, "bob") == 297
    assert raffle.balance == 3
    assert raffle.accrued_profit == 3
    assert RaffleManager.get_prize_pool(db) == 0

    draw = db.query(Draw).one()
    assert (draw.round_number, draw.winner_index, draw.prize) == (1, 1, 297)
    assert [e.data for e in _events(db, "WINNER_PICKED")] == [{"winner": "bob"}]
    _assert_ledger_invariant(db)


def test_random_word_equal_to_count_picks_first(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice", "bob"])
    coordinator.fulfill_random_words(db, request_id, [2], now=READY + 1)
    assert RaffleManager.get_raffle(db).recent_winner == "alice"


def test_next_round_starts_empty(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice"])
    coordinator.fulfill_random_words(db, request_id, now=READY + 1)

    RaffleManager.enter(db, "dave", ENTRANCE_FEE)
    raffle = RaffleManager.get_raffle(db)
    assert RaffleManager.get_players(db, raffle) == ["dave"]
    # 新回合重新計時
    assert RaffleManager.check_upkeep(db, now=READY + 1 + INTERVAL)[0] is False
    assert RaffleManager.check_upkeep(db, now=READY + 2 + INTERVAL)[0] is True


def test_unknown_request_leaves_state_unchanged(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice"])

    with pytest.raises(UnknownRandomnessRequest):
        RaffleManager.raw_fulfill_random_words(
            db, caller=COORDINATOR, request_id=request_id + 1, random_words=[1]
        )
    db.rollback()

    raffle = RaffleManager.get_raffle(db)
    assert raffle.state == RaffleState.CALCULATING
    assert raffle.pending_request_id == request_id
    assert RaffleManager.get_player_count(db, raffle) == 1


def test_only_coordinator_can_fulfill(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice"])
    subscription_id = raffle.subscription_id
    funded = coordinator.get_subscription(db, subscription_id).balance

    impostor = LocalVRFCoordinator(address="mallory", base_fee=BASE_FEE)
    with pytest.raises(OnlyCoordinatorCanFulfill):
        impostor.fulfill_random_words(db, request_id, [1], now=READY + 1)

    assert RaffleManager.get_raffle(db).state == RaffleState.CALCULATING
    assert coordinator.get_request(db, request_id).status == RequestStatus.PENDING
    assert coordinator.get_subscription(db, subscription_id).balance == funded


def test_fulfill_requires_random_words(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice"])

    with pytest.raises(InvalidRandomWords):
        RaffleManager.raw_fulfill_random_words(
            db, caller=COORDINATOR, request_id=request_id, random_words=[]
        )
    db.rollback()

    assert RaffleManager.get_raffle(db).state == RaffleState.CALCULATING


def test_settlement_is_recorded_by_coordinator(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice", "bob"])
    subscription_id = raffle.subscription_id
    funded = coordinator.get_subscription(db, subscription_id).balance

    coordinator.fulfill_random_words(db, request_id, [5], now=READY + 1)

    assert RaffleManager.get_raffle(db).recent_winner == "bob"
    assert coordinator.get_request(db, request_id).status == RequestStatus.FULFILLED
    assert coordinator.get_subscription(db, subscription_id).balance == funded - BASE_FEE

    # 同一個請求不能再結算一次
    with pytest.raises(RequestNotFound):
        coordinator.fulfill_random_words(db, request_id, [5], now=READY + 2)
    assert RaffleManager.get_raffle(db).state == RaffleState.OPEN


def test_failed_prize_transfer_rolls_back(db, raffle, coordinator, rejecting_account):
    rejecting_account("alice")
    request_id = _start_draw(db, coordinator, ["alice"])

    with pytest.raises(PrizeTransferFailed) as exc_info:
        coordinator.fulfill_random_words(db, request_id, [0], now=READY + 1)

    assert exc_info.value.winner == "alice"
    assert exc_info.value.prize == 99

    raffle = RaffleManager.get_raffle(db)
    assert raffle.state == RaffleState.CALCULATING
    assert raffle.pending_request_id == request_id
    assert raffle.recent_winner is None
    assert raffle.last_timestamp == T0
    assert raffle.balance == ENTRANCE_FEE
    assert RaffleManager.get_players(db, raffle) == ["alice"]
    assert db.query(Draw).count() == 0
    assert get_balance(db, "alice") == 0

    # 收款方改為接受後，重新送達同一個請求即可完成
    db.query(Account).filter(Account.address == "alice").one().accepts_payments = True
    db.commit()

    coordinator.fulfill_random_words(db, request_id, [0], now=READY + 2)

    raffle = RaffleManager.get_raffle(db)
    assert raffle.state == RaffleState.OPEN
    assert raffle.recent_winner == "alice"
    assert get_balance(db, "alice") == 99


# ============ Accounting Ledger ============

def test_withdraw_requires_operator(db, raffle):
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)

    with pytest.raises(NotAuthorized):
        RaffleManager.withdraw_profit(db, "alice")

    assert RaffleManager.get_raffle(db).accrued_profit == 1


def test_withdraw_scenario(db, raffle):
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)
    RaffleManager.enter(db, "bob", ENTRANCE_FEE)

    raffle = RaffleManager.get_raffle(db)
    assert raffle.balance == 200
    assert raffle.accrued_profit == 2

    assert RaffleManager.withdraw_profit(db, OPERATOR) == 2
    assert get_balance(db, OPERATOR) == 2
    assert RaffleManager.get_raffle(db).accrued_profit == 0
    assert RaffleManager.get_prize_pool(db) == 198

    assert RaffleManager.withdraw_profit(db, OPERATOR) == 0
    assert get_balance(db, OPERATOR) == 2
    assert RaffleManager.get_prize_pool(db) == 198
    _assert_ledger_invariant(db)


def test_withdraw_never_touches_prize_pool(db, raffle, coordinator):
    request_id = _start_draw(db, coordinator, ["alice", "bob"])
    RaffleManager.withdraw_profit(db, OPERATOR)

    coordinator.fulfill_random_words(db, request_id, [0], now=READY + 1)

    assert get_balance(db, "alice") == 198
    assert get_balance(db, OPERATOR) == 2
    assert RaffleManager.get_raffle(db).balance == 0


def test_failed_profit_transfer_rolls_back(db, raffle, rejecting_account):
    rejecting_account(OPERATOR)
    RaffleManager.enter(db, "alice", ENTRANCE_FEE)

    with pytest.raises(ProfitTransferFailed):
        RaffleManager.withdraw_profit(db, OPERATOR)

    raffle = RaffleManager.get_raffle(db)
    assert raffle.accrued_profit == 1
    assert raffle.balance == ENTRANCE_FEE
