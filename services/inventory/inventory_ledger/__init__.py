"""
Inventory ledger service.

Tracks item quantities and records every change as a movement.
"""
