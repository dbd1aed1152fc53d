"""
데이터베이스 패키지

SQLite 기반 가면 키오스크 로컬 원장 레이어
"""

from .database_manager import DatabaseManager, create_database_manager
from .ledger_store import LedgerStore, SqliteLedgerStore, parse_rental_no

__all__ = [
    'DatabaseManager', 'create_database_manager',
    'LedgerStore', 'SqliteLedgerStore', 'parse_rental_no'
]
