"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import Numeric, Uuid

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid

# Money columns: 12 digits, 2 decimal places, always returned as Decimal
MoneyType = Numeric(12, 2, asdecimal=True)
