"""
利潤服務：operator 抽成的計算邏輯

純計算邏輯，不涉及狀態轉換

帳本只有一份實際餘額（Raffle.balance），分成兩個會計分區：
- accrued_profit：operator 應得但尚未提領的抽成
- prize pool：balance - accrued_profit，全部給這回合的得主
"""
from core.exceptions import InvalidRaffleConfig

PROFIT_BPS = 100
BPS_DENOMINATOR = 10_000


def profit_per_entry(entrance_fee: int) -> int:
    """
    計算每筆下注的 operator 抽成（固定 1%）

    注意：
    - 以「設定的」入場費計算，超付的部分全部進獎池，不抽成
    - 無條件捨去

    範例：
        profit_per_entry(100) -> 1
        profit_per_entry(10**16) -> 10**14
    """
    return entrance_fee * PROFIT_BPS // BPS_DENOMINATOR


def validate_entrance_fee(entrance_fee: int) -> None:
    """
    確認入場費夠大，抽成不會被捨去成 0

    異常：
        InvalidRaffleConfig: entrance_fee * PROFIT_BPS < BPS_DENOMINATOR
    """
    if entrance_fee * PROFIT_BPS < BPS_DENOMINATOR:
        raise InvalidRaffleConfig(
            f"Entrance fee {entrance_fee} too small: must be at least "
            f"{BPS_DENOMINATOR // PROFIT_BPS}"
        )


def prize_pool(balance: int, accrued_profit: int) -> int:
    """獎池 = 總餘額 - 尚未提領的抽成"""
    return balance - accrued_profit
