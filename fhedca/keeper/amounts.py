"""
Aggregate amount sources for the keeper.

The executor trusts the caller for the aggregate input amount. A
production keeper obtains it by asking for the batch sum to be released
and decrypting it publicly; demos use a fixed amount.
"""

from typing import Protocol, runtime_checkable

from fhedca.crypto.fhe import FheBackend
from fhedca.keeper.client import ExecutorClient
from fhedca.utils.logger import get_logger

logger = get_logger("keeper.amounts")


@runtime_checkable
class AmountSource(Protocol):
    async def get_amount(self) -> int:
        ...


class FixedAmountSource:
    """Always returns the same amount (DEMO_DECRYPTED_AMOUNT)."""

    def __init__(self, amount: int):
        if amount <= 0:
            raise ValueError("Amount must be positive")
        self.amount = amount

    async def get_amount(self) -> int:
        return self.amount


class PublicDecryptionSource:
    """
    Releases the ready batch sum and decrypts it through the backend.
    """

    def __init__(self, client: ExecutorClient, fhe: FheBackend):
        self.client = client
        self.fhe = fhe

    async def get_amount(self) -> int:
        handle = await self.client.request_decryption()
        amount = self.fhe.public_decrypt(handle)
        logger.debug("Aggregate sum decrypted")
        return amount
