"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
"""


class RaffleException(Exception):
    """所有抽獎異常的基類"""
    pass


# ============ Raffle 設定相關異常 ============

class RaffleNotFound(RaffleException):
    """尚未部署任何抽獎"""
    def __init__(self):
        super().__init__("No raffle has been deployed")


class InvalidRaffleConfig(RaffleException):
    """設定不合法（例如入場費太低，利潤計算會變成 0）"""
    pass


# ============ 下注相關異常 ============

class InsufficientStake(RaffleException):
    """下注金額低於入場費"""
    def __init__(self, amount, entrance_fee):
        self.amount = amount
        self.entrance_fee = entrance_fee
        super().__init__(
            f"Stake {amount} is below the entrance fee {entrance_fee}"
        )


class RoundNotOpen(RaffleException):
    """回合正在開獎（CALCULATING），不接受下注"""
    def __init__(self, state):
        self.state = state
        super().__init__(f"Raffle is not open (state: {state.value})")


class PlayerIndexOutOfRange(RaffleException):
    def __init__(self, index, player_count):
        self.index = index
        self.player_count = player_count
        super().__init__(
            f"Player index {index} out of range (players: {player_count})"
        )


# ============ 開獎相關異常 ============

class UpkeepNotNeeded(RaffleException):
    """
    尚未符合開獎條件

    帶上 balance / player_count / state，呼叫者不必再查狀態就能知道原因
    """
    def __init__(self, balance, player_count, state):
        self.balance = balance
        self.player_count = player_count
        self.state = state
        super().__init__(
            f"Upkeep not needed (balance={balance}, players={player_count}, "
            f"state={state.value})"
        )


class OnlyCoordinatorCanFulfill(RaffleException):
    """只有設定的 VRF coordinator 可以回呼開獎"""
    def __init__(self, have, want):
        self.have = have
        self.want = want
        super().__init__(f"Only coordinator {want} can fulfill, got {have}")


class UnknownRandomnessRequest(RaffleException):
    """回呼的 request id 不是目前等待中的那一個"""
    def __init__(self, request_id, pending_request_id):
        self.request_id = request_id
        self.pending_request_id = pending_request_id
        super().__init__(
            f"Randomness request {request_id} is not pending "
            f"(pending: {pending_request_id})"
        )


class InvalidRandomWords(RaffleException):
    pass


class PrizeTransferFailed(RaffleException):
    """
    獎金轉帳失敗

    整筆開獎交易必須 rollback：Raffle 維持 CALCULATING，
    pending request 保留，等待重新送達回呼
    """
    def __init__(self, winner, prize):
        self.winner = winner
        self.prize = prize
        super().__init__(f"Prize transfer of {prize} to {winner} failed")


# ============ 帳本相關異常 ============

class NotAuthorized(RaffleException):
    """非 operator 呼叫特權操作"""
    def __init__(self, caller):
        self.caller = caller
        super().__init__(f"Caller {caller} is not authorized")


class ProfitTransferFailed(RaffleException):
    def __init__(self, operator, amount):
        self.operator = operator
        self.amount = amount
        super().__init__(f"Profit transfer of {amount} to {operator} failed")


# ============ 狀態轉換異常 ============

class InvalidStateTransition(RaffleException):
    """非法的狀態轉換"""
    pass


# ============ VRF Coordinator 相關異常 ============

class InvalidSubscription(RaffleException):
    def __init__(self, subscription_id):
        self.subscription_id = subscription_id
        super().__init__(f"Subscription {subscription_id} does not exist")


class InvalidConsumer(RaffleException):
    def __init__(self, subscription_id, consumer):
        self.subscription_id = subscription_id
        self.consumer = consumer
        super().__init__(
            f"Consumer {consumer} is not registered on subscription {subscription_id}"
        )


class NumWordsTooBig(RaffleException):
    pass


class RequestNotFound(RaffleException):
    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"Randomness request {request_id} not found")


class InsufficientSubscriptionBalance(RaffleException):
    def __init__(self, subscription_id, balance, payment):
        self.subscription_id = subscription_id
        self.balance = balance
        self.payment = payment
        super().__init__(
            f"Subscription {subscription_id} balance {balance} cannot cover {payment}"
        )
