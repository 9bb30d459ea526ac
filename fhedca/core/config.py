"""
Operator configuration for the batching contracts.

Defines readiness thresholds and the keeper fee.
"""

from dataclasses import dataclass

from fhedca.utils.validation import BPS_DENOMINATOR, validate_bps, validate_integer


# Defaults used by the production deployment scripts
DEFAULT_K_MIN = 10
DEFAULT_TIME_WINDOW_SECS = 900
DEFAULT_KEEPER_FEE_BPS = 10  # 0.10%


@dataclass
class AggregatorConfig:
    """Batch readiness parameters"""

    k_min: int = DEFAULT_K_MIN  # Minimum distinct contributors (k-anonymity)
    time_window_secs: int = DEFAULT_TIME_WINDOW_SECS  # Fallback readiness window

    def __post_init__(self):
        valid, err = validate_integer(self.k_min, "k_min", min_val=1)
        if not valid:
            raise ValueError(err)
        valid, err = validate_integer(self.time_window_secs, "time_window_secs", min_val=0)
        if not valid:
            raise ValueError(err)


@dataclass
class ExecutorConfig:
    """Settlement parameters"""

    keeper_fee_bps: int = DEFAULT_KEEPER_FEE_BPS  # Basis points of amount_out paid to the keeper

    def __post_init__(self):
        valid, err = validate_bps(self.keeper_fee_bps, "keeper_fee_bps")
        if not valid:
            raise ValueError(err)


__all__ = [
    "AggregatorConfig",
    "ExecutorConfig",
    "BPS_DENOMINATOR",
    "DEFAULT_K_MIN",
    "DEFAULT_TIME_WINDOW_SECS",
    "DEFAULT_KEEPER_FEE_BPS",
]
