"""
Kernel Layer

Identity reconciliation, token verification and cached configuration.

Invariants:
- The local store is only written after the legacy store has confirmed the principal
- An expired session never validates
- Configuration readers only ever observe a fully loaded snapshot
"""
