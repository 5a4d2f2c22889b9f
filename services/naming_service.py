"""
命名服務：生成 Raffle 的位址

純計算邏輯，不涉及狀態轉換
"""
import secrets


def generate_raffle_address() -> str:
    """
    生成隨機的 20 bytes 十六進位位址

    範例：0x5fbdb2315678afecb367f032d93f642f64180aa3

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 2^160 種可能，碰撞機率可以忽略
    """
    return "0x" + secrets.token_hex(20)
