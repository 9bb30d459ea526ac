"""
fhedca - Private batched DCA execution

A batching engine for encrypted recurring-buy intents:
- Encrypted intent registry (opaque ciphertext handles + input proofs)
- Per-pair batch aggregation with k-anonymity / time-window readiness
- Aggregated swap execution with keeper fee settlement
- Keeper process that polls readiness and drives execution
"""

__version__ = "0.1.0"
