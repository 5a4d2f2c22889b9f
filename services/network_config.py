"""
網路設定：依 chain id 提供部署 Raffle 所需的預設參數

Settings 裡有填的欄位會覆蓋預設值，沒填的才用這裡的
"""
from dataclasses import dataclass, replace
from typing import Dict, Optional

from core.exceptions import InvalidRaffleConfig

SEPOLIA_CHAIN_ID = 11155111
LOCAL_CHAIN_ID = 31337

GAS_LANE = "0x474e34a077df58807dbe9c96d3c009b23b3c6d0cce433e59bbf5b34f823bc56c"
NUM_WORDS = 1


@dataclass(frozen=True)
class NetworkConfig:
    entrance_fee: int
    interval: int
    key_hash: str
    subscription_id: int
    callback_gas_limit: int
    request_confirmations: int
    num_words: int = NUM_WORDS


NETWORK_CONFIGS: Dict[int, NetworkConfig] = {
    SEPOLIA_CHAIN_ID: NetworkConfig(
        entrance_fee=10**16,  # 0.01 ether
        interval=30,
        key_hash=GAS_LANE,
        subscription_id=0,  # 0 代表部署時建立新的 subscription
        callback_gas_limit=500_000,
        request_confirmations=3,
    ),
    LOCAL_CHAIN_ID: NetworkConfig(
        entrance_fee=10**16,
        interval=30,
        key_hash=GAS_LANE,
        subscription_id=0,
        callback_gas_limit=500_000,
        request_confirmations=3,
    ),
}


def get_network_config(chain_id: int, **overrides: Optional[int]) -> NetworkConfig:
    """
    取得 chain id 對應的設定，並套用非 None 的覆蓋值

    參數：
        chain_id: 鏈 id
        overrides: NetworkConfig 欄位名稱 -> 值（None 表示不覆蓋）

    異常：
        InvalidRaffleConfig: 不支援的 chain id
    """
    config = NETWORK_CONFIGS.get(chain_id)
    if config is None:
        raise InvalidRaffleConfig(f"No network config for chain id {chain_id}")

    changes = {k: v for k, v in overrides.items() if v is not None}
    return replace(config, **changes) if changes else config


def network_config_from_settings(settings) -> NetworkConfig:
    return get_network_config(
        settings.chain_id,
        entrance_fee=settings.entrance_fee,
        interval=settings.interval,
        key_hash=settings.key_hash,
        subscription_id=settings.subscription_id,
        callback_gas_limit=settings.callback_gas_limit,
        request_confirmations=settings.request_confirmations,
    )
