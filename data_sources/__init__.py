"""
외부 원장 연동 패키지
"""

from .google_sheets import GoogleSheetsLedgerStore

__all__ = ['GoogleSheetsLedgerStore']
