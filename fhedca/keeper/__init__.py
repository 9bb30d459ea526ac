"""
Keeper - async driver that executes ready batches.
"""

from fhedca.keeper.amounts import AmountSource, FixedAmountSource, PublicDecryptionSource
from fhedca.keeper.client import ExecutorClient, LocalExecutorClient, TransportError
from fhedca.keeper.keeper import Keeper, KeeperOutcome, KeeperStats, run_keepers
from fhedca.keeper.settings import KeeperSettings, load_keeper_settings

__all__ = [
    "AmountSource",
    "FixedAmountSource",
    "PublicDecryptionSource",
    "ExecutorClient",
    "LocalExecutorClient",
    "TransportError",
    "Keeper",
    "KeeperOutcome",
    "KeeperStats",
    "run_keepers",
    "KeeperSettings",
    "load_keeper_settings",
]
