"""
대여번호 할당
"""

import logging

from database.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class RentalNumberAllocator:
    """원장 최대 대여번호 + 1 을 다음 번호로 제안

    번호를 예약하지는 않는다. 실제 확정은 원장 추가(append) 시점이며,
    같은 번호가 먼저 기록된 경우 원장이 DuplicateRentalNumberError 를 던진다.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    async def next_rental_number(self) -> int:
        """다음 대여번호 (빈 원장이면 1)"""
        current_max = await self.store.scan_max_rental_number()
        next_number = current_max + 1
        logger.debug(f"대여번호 할당: {next_number} (현재 최대 {current_max})")
        return next_number
