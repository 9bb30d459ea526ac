"""
Keeper settings.

Loaded from a .env file (python-dotenv) and the process environment:

    KEEPER_POLL_INTERVAL     seconds between readiness polls (30)
    KEEPER_BACKOFF_INTERVAL  seconds to wait after a transport error (60)
    DEMO_DECRYPTED_AMOUNT    fixed aggregate input amount (1e18)
    DEMO_MIN_OUT             slippage bound passed to execute (0)
    TOKEN_IN / TOKEN_OUT     monitored pair (0x-prefixed addresses)
    EXECUTOR_ADDRESS         executor to drive
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from fhedca.utils.validation import validate_hex_address

DEFAULT_POLL_INTERVAL = 30.0
DEFAULT_BACKOFF_INTERVAL = 60.0
DEFAULT_DECRYPTED_AMOUNT = 10**18

ENV_VARS = {
    "poll_interval": "KEEPER_POLL_INTERVAL",
    "backoff_interval": "KEEPER_BACKOFF_INTERVAL",
    "decrypted_amount": "DEMO_DECRYPTED_AMOUNT",
    "min_amount_out": "DEMO_MIN_OUT",
    "token_in": "TOKEN_IN",
    "token_out": "TOKEN_OUT",
    "executor_address": "EXECUTOR_ADDRESS",
}


class KeeperSettings(BaseModel):
    """Configuration for one keeper worker."""

    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0,
        description="Seconds between readiness polls.",
    )
    backoff_interval: float = Field(
        default=DEFAULT_BACKOFF_INTERVAL,
        gt=0,
        description="Seconds to wait after a transport failure.",
    )
    decrypted_amount: int = Field(
        default=DEFAULT_DECRYPTED_AMOUNT,
        gt=0,
        description="Aggregate input amount used when no decryption source is configured.",
    )
    min_amount_out: int = Field(
        default=0,
        ge=0,
        description="Minimum output accepted from the swap.",
    )
    token_in: Optional[str] = Field(default=None, description="Input token address.")
    token_out: Optional[str] = Field(default=None, description="Output token address.")
    executor_address: Optional[str] = Field(default=None, description="Executor address.")

    @field_validator("token_in", "token_out", "executor_address")
    @classmethod
    def _check_address(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        valid, err = validate_hex_address(value)
        if not valid:
            raise ValueError(err)
        return value

    def pair_label(self) -> Optional[str]:
        """Short `token_in/token_out` label for log lines, if both are set."""
        if self.token_in is None or self.token_out is None:
            return None
        return f"{self.token_in[:10]}/{self.token_out[:10]}"


def load_keeper_settings(env_file: Optional[str] = None, **overrides) -> KeeperSettings:
    """
    Build settings from .env, the environment and explicit overrides.

    Overrides win over the environment; the environment wins over
    defaults. Values already set in the environment are not replaced by
    the .env file.
    """
    load_dotenv(env_file)

    values = {}
    for field_name, env_var in ENV_VARS.items():
        raw = os.getenv(env_var)
        if raw not in (None, ""):
            values[field_name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})

    return KeeperSettings(**values)
