"""Encrypted intent registry"""
from fhedca.core.intent.intent import (
    CONTRIBUTION_TYPE,
    FIELD_TYPES,
    DcaParams,
    EncryptedIntentInput,
    Intent,
    encrypt_contribution,
    encrypt_intent,
)
from fhedca.core.intent.registry import IntentRegistry

__all__ = [
    "CONTRIBUTION_TYPE",
    "FIELD_TYPES",
    "DcaParams",
    "EncryptedIntentInput",
    "Intent",
    "encrypt_contribution",
    "encrypt_intent",
    "IntentRegistry",
]
