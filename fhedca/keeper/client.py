"""
Executor clients - how a keeper talks to a DcaExecutor.

A keeper only needs three calls: readiness, decryption release and
execution. Contract rejections surface as `Revert` subclasses; anything
that prevented the call from reaching the contract is a TransportError.
"""

import asyncio
from typing import Protocol, Tuple, runtime_checkable

from fhedca.core.executor import DcaExecutor


class TransportError(Exception):
    """The executor could not be reached (network, RPC, timeout)."""


@runtime_checkable
class ExecutorClient(Protocol):
    """Async view of an executor from the keeper's side."""

    async def is_ready(self) -> Tuple[bool, bool]:
        ...

    async def request_decryption(self) -> bytes:
        ...

    async def execute_if_ready(self, amount_in: int, min_amount_out: int) -> Tuple[int, int]:
        ...


class LocalExecutorClient:
    """
    Client for an executor on an in-process chain.

    Calls run in a worker thread; the chain serializes them.
    """

    def __init__(self, executor: DcaExecutor, keeper: bytes):
        """
        Args:
            executor: Target executor
            keeper: Keeper address (sender of calls, fee recipient)
        """
        self.executor = executor
        self.keeper = keeper

    async def is_ready(self) -> Tuple[bool, bool]:
        return await asyncio.to_thread(self.executor.is_ready)

    async def request_decryption(self) -> bytes:
        return await asyncio.to_thread(self.executor.request_decryption, self.keeper)

    async def execute_if_ready(self, amount_in: int, min_amount_out: int) -> Tuple[int, int]:
        return await asyncio.to_thread(
            self.executor.execute_if_ready, self.keeper, amount_in, min_amount_out
        )

    def __repr__(self) -> str:
        return f"LocalExecutorClient(executor={self.executor!r})"
