"""
Ledgerbook - Source Package

The ledger core of a personal-finance app: accounts, income, expenses
and transfers, with account balances kept consistent as records are
created, edited and deleted.

DESIGN PRINCIPLES:
1. Balances change only through a reconciliation plan
2. Fail early, fail visibly
3. Balance updates are written before the record they belong to
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledgerbook Team"
