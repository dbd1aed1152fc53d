"""
반납 대상 대여 기록 조회
"""

import logging
from typing import List, Optional

from app.errors import ValidationError
from app.models.rental import RentalRecord
from database.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class ReturnMatcher:
    """번호 또는 이름으로 대여중 기록 찾기 (반납 완료 기록은 제외)"""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def find_by_number(self, number: int) -> Optional[RentalRecord]:
        """대여번호로 대여중 기록 조회

        Args:
            number: 대여번호

        Returns:
            대여중 RentalRecord 또는 None
        """
        record = await self.store.find_open_rental_by_number(number)
        if record is None:
            logger.info(f"대여중 기록 없음: rental {number}")
        return record

    async def find_by_name(self, partial_name: str) -> List[RentalRecord]:
        """이름 일부로 대여중 기록 조회 (대소문자 구분, 원장 순서)

        Args:
            partial_name: 이름 일부 (앞뒤 공백 제거)

        Returns:
            대여중 RentalRecord 리스트
        """
        query = (partial_name or '').strip()
        if not query:
            raise ValidationError('검색할 이름을 입력해주세요.')

        records = await self.store.find_open_rentals_by_name_substring(query)
        logger.info(f"이름 검색: '{query}' -> {len(records)}건")
        return records
