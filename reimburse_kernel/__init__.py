"""
Reimburse Kernel

Shared persistence, domain types, and infrastructure for the expense
reimbursement core:
- Expense / receipt / batch / export data model
- Injectable clock for deterministic job timing
- Structured JSON logging
- Typed error hierarchy
- Object storage capability
"""

__version__ = "0.1.0"
