"""
Encrypted values - opaque ciphertext handles and input proofs.

Conceptual Background:
---------------------
The batching contracts never see plaintext amounts. Every encrypted
value is referenced by a 32-byte *handle*; the ciphertext itself lives
with the encryption backend (a coprocessor in the EVM deployment).

A user submitting an encrypted input also submits an *input proof*
attesting that the handle was produced for a specific contract and a
specific user. Contracts only ask the backend "is this proof valid for
this handle, bound to me and to this sender?" - they never inspect the
ciphertext.

Handle Layout:
-------------
    handle = keccak256(seed)[:30] || fhe_type (1 byte) || version (1 byte)

The type byte lets a contract check that a field was encrypted at the
expected bit width (e.g. per-buy amounts are euint64).

The MockFheBackend below stands in for the coprocessor: it keeps the
plaintexts in memory, signs input proofs with its secp256k1 key and
supports homomorphic addition plus gated public decryption. Any backend
implementing the FheBackend protocol can replace it.
"""

import secrets
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Protocol, Set, runtime_checkable

from fhedca.core.chain import NotDecryptable
from fhedca.crypto import KeyPair, generate_keypair, keccak256, sign, verify


# =============================================================================
# Constants
# =============================================================================

HANDLE_SIZE = 32
HANDLE_VERSION = 0

# Domain separator for input proof digests
DOMAIN_INPUT_PROOF = b"fhedca.input-proof.v0"


class FheType(IntEnum):
    """Encrypted integer types (type byte of a handle)."""
    EUINT8 = 2
    EUINT16 = 3
    EUINT32 = 4
    EUINT64 = 5
    EUINT128 = 6

    @property
    def bits(self) -> int:
        return {
            FheType.EUINT8: 8,
            FheType.EUINT16: 16,
            FheType.EUINT32: 32,
            FheType.EUINT64: 64,
            FheType.EUINT128: 128,
        }[self]


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class EncryptedField:
    """
    An encrypted input as submitted to a contract.

    Attributes:
        handle: 32-byte opaque ciphertext handle
        proof: Input proof binding the handle to (contract, user)
    """
    handle: bytes
    proof: bytes

    @property
    def fhe_type(self) -> Optional[FheType]:
        return handle_type(self.handle)

    def __repr__(self) -> str:
        # Never print anything beyond a short handle prefix
        return f"EncryptedField(handle={self.handle.hex()[:8]}...)"


def handle_type(handle: bytes) -> Optional[FheType]:
    """Extract the FheType encoded in a handle, or None if malformed."""
    if len(handle) != HANDLE_SIZE:
        return None
    try:
        return FheType(handle[30])
    except ValueError:
        return None


def input_proof_digest(handle: bytes, contract: bytes, user: bytes) -> bytes:
    """Digest signed by the backend for an input proof."""
    return keccak256(DOMAIN_INPUT_PROOF + handle + contract + user)


# =============================================================================
# Backend Protocols
# =============================================================================


@runtime_checkable
class ProofVerifier(Protocol):
    """Capability to validate input proofs. The only thing registries need."""

    def verify_input(
        self,
        field: EncryptedField,
        contract: bytes,
        user: bytes,
        expected_type: Optional[FheType] = None,
    ) -> bool:
        ...


@runtime_checkable
class FheBackend(ProofVerifier, Protocol):
    """Full encryption backend: proofs, homomorphic ops, public decryption."""

    def encrypt(self, value: int, fhe_type: FheType, contract: bytes, user: bytes) -> EncryptedField:
        ...

    def add(self, lhs: bytes, rhs: bytes) -> bytes:
        ...

    def allow_public_decryption(self, handle: bytes) -> None:
        ...

    def public_decrypt(self, handle: bytes) -> int:
        ...


# =============================================================================
# Mock Backend
# =============================================================================


class MockFheBackend:
    """
    In-memory stand-in for the encryption coprocessor.

    Plaintexts are kept in a private table keyed by handle. Contracts
    interact only through handles, proofs and the public-decryption gate.
    """

    def __init__(self, signer: Optional[KeyPair] = None):
        self.signer = signer or generate_keypair()
        self._plaintexts: Dict[bytes, int] = {}
        self._publicly_decryptable: Set[bytes] = set()

    def _new_handle(self, fhe_type: FheType) -> bytes:
        seed = keccak256(secrets.token_bytes(32) + len(self._plaintexts).to_bytes(8, "big"))
        return seed[:30] + bytes([int(fhe_type), HANDLE_VERSION])

    def encrypt(
        self,
        value: int,
        fhe_type: FheType,
        contract: bytes,
        user: bytes,
    ) -> EncryptedField:
        """
        Encrypt a value for (contract, user) and issue its input proof.

        Raises:
            ValueError: If value does not fit the requested type
        """
        if not (0 <= value < 2 ** fhe_type.bits):
            raise ValueError(f"Value out of range for {fhe_type.name}")

        handle = self._new_handle(fhe_type)
        self._plaintexts[handle] = value
        proof = sign(input_proof_digest(handle, contract, user), self.signer.private_key)
        return EncryptedField(handle=handle, proof=proof)

    def verify_input(
        self,
        field: EncryptedField,
        contract: bytes,
        user: bytes,
        expected_type: Optional[FheType] = None,
    ) -> bool:
        """Check the proof signature, the handle's existence and its type."""
        if handle_type(field.handle) is None:
            return False
        if expected_type is not None and handle_type(field.handle) != expected_type:
            return False
        if field.handle not in self._plaintexts:
            return False
        digest = input_proof_digest(field.handle, contract, user)
        return verify(digest, field.proof, self.signer.public_key)

    def add(self, lhs: bytes, rhs: bytes) -> bytes:
        """
        Homomorphic addition.

        The result takes the wider of the two types and wraps modulo
        2**bits, matching encrypted-integer overflow semantics.
        """
        lhs_type = handle_type(lhs)
        rhs_type = handle_type(rhs)
        if lhs_type is None or rhs_type is None:
            raise ValueError("Malformed handle")
        if lhs not in self._plaintexts or rhs not in self._plaintexts:
            raise ValueError("Unknown handle")

        result_type = max(lhs_type, rhs_type)
        handle = self._new_handle(result_type)
        self._plaintexts[handle] = (self._plaintexts[lhs] + self._plaintexts[rhs]) % (2 ** result_type.bits)
        return handle

    def allow_public_decryption(self, handle: bytes) -> None:
        if handle not in self._plaintexts:
            raise ValueError("Unknown handle")
        self._publicly_decryptable.add(handle)

    def is_publicly_decryptable(self, handle: bytes) -> bool:
        return handle in self._publicly_decryptable

    def public_decrypt(self, handle: bytes) -> int:
        """
        Decrypt a handle that was explicitly released for public decryption.

        Raises:
            NotDecryptable: If the handle was never released
        """
        if handle not in self._publicly_decryptable:
            raise NotDecryptable()
        return self._plaintexts[handle]


__all__ = [
    "HANDLE_SIZE",
    "FheType",
    "EncryptedField",
    "ProofVerifier",
    "FheBackend",
    "MockFheBackend",
    "handle_type",
    "input_proof_digest",
]
