"""
Credit Loader Job

Loads the configured Amount onto the 10bis moneycard on working days
(Sunday-Thursday, Israel time).

Usage:
------
    python -m services.credit_loader.main
    python -m services.credit_loader.main --test
"""

from services.credit_loader.main import (
    CreditLoadAction,
    check_configuration,
    LOAD_CREDIT_PATH,
)

__all__ = [
    'CreditLoadAction',
    'check_configuration',
    'LOAD_CREDIT_PATH',
]
