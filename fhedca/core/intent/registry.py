"""
Intent Registry - one encrypted DCA intent per user.

This module provides:
- Intent creation / wholesale replacement (owner-only)
- Intent cancellation
- The activity flag read used by the batch aggregator

The registry validates every field's input proof through a
ProofVerifier bound to its own address and the owner; it never reads or
decrypts ciphertexts. The aggregator may only ever call
`get_intent_active`.
"""

from typing import Dict, Optional

from fhedca.core.chain import Contract, InvalidAddress, InvalidProof, NoActiveIntent, atomic
from fhedca.core.events import IntentCancelled, IntentCreated, IntentUpdated
from fhedca.core.intent.intent import FIELD_TYPES, EncryptedIntentInput, Intent
from fhedca.crypto import short_hex
from fhedca.crypto.fhe import ProofVerifier
from fhedca.utils.logger import get_logger
from fhedca.utils.validation import validate_address, validate_handle, validate_proof

logger = get_logger("registry")


class IntentRegistry(Contract):
    """
    Registry of encrypted DCA intents.

    Each owner has at most one intent. Writes only ever touch the
    caller's own record.
    """

    _state_fields = ("intents",)

    def __init__(self, chain, deployer: bytes, verifier: ProofVerifier):
        """
        Args:
            chain: Host chain
            deployer: Deployer address
            verifier: Input proof verifier (encryption backend)
        """
        super().__init__(chain, deployer)
        self.verifier = verifier

        # Owner address -> Intent
        self.intents: Dict[bytes, Intent] = {}

        logger.info(f"IntentRegistry deployed at {short_hex(self.address)}")

    # =========================================================================
    # Writes
    # =========================================================================

    @atomic
    def create_or_update_intent(self, owner: bytes, intent_input: EncryptedIntentInput) -> None:
        """
        Store (or replace) the caller's intent and mark it active.

        Emits IntentCreated on the first write for an owner and
        IntentUpdated on every later write.

        Args:
            owner: Calling user (the intent owner)
            intent_input: Six encrypted fields with proofs

        Raises:
            InvalidAddress: If the owner is not a 20-byte address
            InvalidProof: If any field fails validation
        """
        valid, err = validate_address(owner, "owner")
        if not valid:
            raise InvalidAddress(err)

        for name, field in intent_input.fields():
            self._verify_field(name, field, owner)

        existing = self.intents.get(owner)
        now = self.now
        if existing is None:
            self.intents[owner] = Intent(
                owner=owner,
                fields=intent_input,
                active=True,
                created_at=now,
                updated_at=now,
            )
            self.emit(IntentCreated(owner=owner))
            logger.info(f"Intent created for {short_hex(owner)}")
        else:
            self.intents[owner] = Intent(
                owner=owner,
                fields=intent_input,
                active=True,
                created_at=existing.created_at,
                updated_at=now,
            )
            self.emit(IntentUpdated(owner=owner))
            logger.info(f"Intent updated for {short_hex(owner)}")

    @atomic
    def cancel_intent(self, owner: bytes) -> None:
        """
        Deactivate the caller's intent.

        Raises:
            NoActiveIntent: If the owner has no intent or it is inactive
        """
        intent = self.intents.get(owner)
        if intent is None or not intent.active:
            raise NoActiveIntent()

        intent.active = False
        intent.updated_at = self.now
        self.emit(IntentCancelled(owner=owner))
        logger.info(f"Intent cancelled for {short_hex(owner)}")

    def _verify_field(self, name: str, field, owner: bytes) -> None:
        valid, err = validate_handle(field.handle, f"{name}.handle")
        if valid:
            valid, err = validate_proof(field.proof, f"{name}.proof")
        if not valid:
            raise InvalidProof(f"invalid proof: {err}")

        if not self.verifier.verify_input(field, self.address, owner, FIELD_TYPES[name]):
            raise InvalidProof(f"invalid proof: {name}")

    # =========================================================================
    # Reads
    # =========================================================================

    def get_intent_active(self, owner: bytes) -> bool:
        """Whether the owner has an active intent. Unknown owners are inactive."""
        intent = self.intents.get(owner)
        return intent is not None and intent.active

    def get_intent(self, owner: bytes) -> Optional[Intent]:
        """Stored intent (handles only) for the owner's own tooling."""
        return self.intents.get(owner)

    def stats(self) -> dict:
        active = sum(1 for i in self.intents.values() if i.active)
        return {
            "total_intents": len(self.intents),
            "active_intents": active,
        }
