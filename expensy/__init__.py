"""
Expensy - Source Package

Credit-card expense reconciliation: import statement lines with an AI
extraction service, attach receipts, and track what is still pending.

DESIGN PRINCIPLES:
1. AI proposes records, the account store decides what is kept
2. A failed import changes nothing
3. Every mutation produces a whole new account collection
4. Every step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Expensy Team"
