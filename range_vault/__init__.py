__version__ = "0.1.0"

from range_vault.adapters.pool_adapter.simulated import ManualClock, SimulatedPool
from range_vault.adapters.token_adapter.ledger import ERC20Token, ShareLedger
from range_vault.core import BaseAdapter
from range_vault.vault.controller import VaultController, VaultState
from range_vault.vault.governance import Governance
from range_vault.vault.params import StrategyParams

__all__ = [
    "__version__",
    "BaseAdapter",
    "ERC20Token",
    "Governance",
    "ManualClock",
    "ShareLedger",
    "SimulatedPool",
    "StrategyParams",
    "VaultController",
    "VaultState",
]
