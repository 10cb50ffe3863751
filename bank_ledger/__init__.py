"""
Bank Ledger

An in-memory bank ledger with pluggable currency conversion, queued
reversible transactions and balance-change notifications. All monetary
values use Decimal.
"""

__version__ = "1.0.0"
