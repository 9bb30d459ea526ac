"""
Encrypted DCA intents.

A DCA intent is a user's recurring-buy configuration:

    budget              total amount to spend         (euint128)
    per_buy             amount per purchase           (euint64)
    frequency           seconds between purchases     (euint32)
    start / end         active window (unix seconds)  (euint64)
    dip_threshold_bps   buy-the-dip trigger           (euint16)

Every field arrives as an EncryptedField (opaque handle + input proof).
The registry stores the handles and never decrypts them.
"""

from dataclasses import dataclass
from typing import Iterator, Tuple

from fhedca.crypto.fhe import EncryptedField, FheBackend, FheType


# Expected ciphertext type per field
FIELD_TYPES = {
    "budget": FheType.EUINT128,
    "per_buy": FheType.EUINT64,
    "frequency": FheType.EUINT32,
    "start": FheType.EUINT64,
    "end": FheType.EUINT64,
    "dip_threshold_bps": FheType.EUINT16,
}

# Per-buy contribution submitted to the aggregator
CONTRIBUTION_TYPE = FheType.EUINT64


@dataclass(frozen=True)
class EncryptedIntentInput:
    """The six encrypted fields of an intent, each with its input proof."""
    budget: EncryptedField
    per_buy: EncryptedField
    frequency: EncryptedField
    start: EncryptedField
    end: EncryptedField
    dip_threshold_bps: EncryptedField

    def fields(self) -> Iterator[Tuple[str, EncryptedField]]:
        """Iterate (field_name, encrypted_field) in declaration order."""
        for name in FIELD_TYPES:
            yield name, getattr(self, name)


@dataclass
class Intent:
    """
    A stored intent.

    Attributes:
        owner: 20-byte owner address
        fields: Encrypted fields as last submitted
        active: Whether the intent may join batches
        created_at: Chain timestamp of the first write
        updated_at: Chain timestamp of the last write
    """
    owner: bytes
    fields: EncryptedIntentInput
    created_at: int
    updated_at: int
    active: bool = True

    def __repr__(self) -> str:
        return f"Intent(owner=0x{self.owner.hex()[:8]}..., active={self.active})"


@dataclass(frozen=True)
class DcaParams:
    """Plaintext DCA parameters, client side only."""
    budget: int
    per_buy: int
    frequency: int
    start: int
    end: int
    dip_threshold_bps: int = 0


def encrypt_intent(
    backend: FheBackend,
    params: DcaParams,
    registry: bytes,
    user: bytes,
) -> EncryptedIntentInput:
    """
    Encrypt DCA parameters for submission to a registry.

    Each field gets its own ciphertext and proof, bound to the registry
    address and the submitting user.

    Args:
        backend: Encryption backend
        params: Plaintext parameters
        registry: Registry contract address
        user: Submitting user's address

    Returns:
        EncryptedIntentInput ready for create_or_update_intent
    """
    encrypted = {
        name: backend.encrypt(getattr(params, name), fhe_type, registry, user)
        for name, fhe_type in FIELD_TYPES.items()
    }
    return EncryptedIntentInput(**encrypted)


def encrypt_contribution(
    backend: FheBackend,
    amount: int,
    aggregator: bytes,
    user: bytes,
) -> EncryptedField:
    """Encrypt a per-buy contribution for a batch enqueue."""
    return backend.encrypt(amount, CONTRIBUTION_TYPE, aggregator, user)
