"""Swap adapter boundary and reference router"""
from fhedca.core.swap.adapter import DexAdapter, MockRouter, SwapAdapter

__all__ = [
    "DexAdapter",
    "MockRouter",
    "SwapAdapter",
]
