"""
開獎服務：由亂數決定得主

純計算邏輯，不涉及狀態轉換
"""
from typing import Sequence, Tuple


def pick_winner_index(random_word: int, player_count: int) -> int:
    """
    winner_index = random_word mod player_count

    同一個玩家下注多次，在名單中就出現多次，中獎機率等比例提高
    （這是規則，不是 bug）

    異常：
        ValueError: player_count <= 0
    """
    if player_count <= 0:
        raise ValueError("Cannot pick a winner without players")
    return random_word % player_count


def select_winner(players: Sequence[str], random_word: int) -> Tuple[int, str]:
    """
    從目前回合的名單中選出得主

    返回：
        (winner_index, winner)
    """
    index = pick_winner_index(random_word, len(players))
    return index, players[index]
