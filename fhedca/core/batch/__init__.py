"""
Batch module - per-pair aggregation of encrypted contributions.
"""

from fhedca.core.batch.aggregator import Batch, BatchAggregator, pair_key

__all__ = [
    "Batch",
    "BatchAggregator",
    "pair_key",
]
