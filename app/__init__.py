"""
                Restaurant Order Management

Order lifecycle and inventory consistency backend: atomic order creation
with stock reservation, status workflow, cancellation with stock
restoration, and an audited stock ledger.

Version: 1.0.0
"""

__version__ = "1.0.0"
