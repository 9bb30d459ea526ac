"""
Input Validation - sanitization for values crossing a contract boundary.

Validators return (is_valid, error_message) so callers decide whether
to revert, raise or report.
"""

from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

ADDRESS_SIZE = 20
HANDLE_SIZE = 32
MAX_PROOF_SIZE = 1024

MIN_AMOUNT = 0
MAX_AMOUNT = 2**256 - 1  # uint256

BPS_DENOMINATOR = 10_000


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 20-byte address."""
    return validate_bytes(address, name, expected_length=ADDRESS_SIZE)


def validate_handle(handle: Any, name: str = "handle") -> Tuple[bool, str]:
    """Validate a 32-byte ciphertext handle."""
    return validate_bytes(handle, name, expected_length=HANDLE_SIZE)


def validate_proof(proof: Any, name: str = "proof") -> Tuple[bool, str]:
    """Validate an input proof blob."""
    valid, err = validate_bytes(proof, name, max_length=MAX_PROOF_SIZE)
    if valid and len(proof) == 0:
        return False, f"{name} is empty"
    return valid, err


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a uint256 token amount."""
    return validate_integer(amount, name, MIN_AMOUNT, MAX_AMOUNT)


def validate_bps(bps: Any, name: str = "bps") -> Tuple[bool, str]:
    """Validate a basis-point value (0-10000)."""
    return validate_integer(bps, name, 0, BPS_DENOMINATOR)


def validate_hex_address(value: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 0x-prefixed hex address string."""
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if not value.startswith("0x") or len(value) != 2 + 2 * ADDRESS_SIZE:
        return False, f"{name} must be 0x followed by {2 * ADDRESS_SIZE} hex chars"

    try:
        bytes.fromhex(value[2:])
    except ValueError:
        return False, f"{name} contains invalid hex characters"

    return True, ""


__all__ = [
    "validate_bytes",
    "validate_address",
    "validate_handle",
    "validate_proof",
    "validate_integer",
    "validate_amount",
    "validate_bps",
    "validate_hex_address",
    "ADDRESS_SIZE",
    "HANDLE_SIZE",
    "BPS_DENOMINATOR",
]
