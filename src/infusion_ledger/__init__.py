"""
Infusion Ledger - Dose logging and consumable inventory for infusion therapy.

Keeps a once-per-day therapy log, decrements the consumables each dose uses,
aggregates monthly usage and raises low-stock alerts. All state lives in a
per-user key-value store.
"""

__version__ = "0.1.0"
