"""
대여 엔진 서비스

체크아웃(대여 시작), 반납 검색, 반납 처리, 판매 기록을 담당한다.
원장 저장은 LedgerStore(SQLite / 구글시트)에 위임한다.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from app.errors import (
    AlreadyClosedError, DuplicateRentalNumberError, InvalidStateError,
    NotFoundError, RecordNotFoundError, ValidationError
)
from app.models.rental import RentalRecord, Returnable
from app.models.sale import SaleRecord
from app.services import rental_lifecycle
from app.services.clock import KioskClock
from app.services.pricing import get_sale_unit_price, is_rental_allowed
from app.services.rental_number import RentalNumberAllocator
from app.services.return_matcher import ReturnMatcher
from database.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class RentalService:
    """대여 엔진"""

    def __init__(self, store: LedgerStore, clock: Optional[KioskClock] = None,
                 clamp_refund: bool = False, staff_name: str = ''):
        """
        Args:
            store: 원장 저장소
            clock: 현지 시각 제공자
            clamp_refund: 음수 환불 0 처리 여부
            staff_name: 기본 담당 스태프
        """
        self.store = store
        self.clock = clock or KioskClock()
        self.clamp_refund = clamp_refund
        self.staff_name = staff_name
        self.allocator = RentalNumberAllocator(store)
        self.matcher = ReturnMatcher(store)

    async def next_rental_number(self) -> int:
        """다음 대여번호 미리보기"""
        return await self.allocator.next_rental_number()

    async def open_rental(self, item_name: str, category: str, customer_name: str = '',
                          deposit_amount: Optional[int] = None,
                          start_time: Optional[datetime] = None,
                          staff: Optional[str] = None, note: str = '') -> RentalRecord:
        """대여 시작 (체크아웃)

        Args:
            item_name: 물품명
            category: 물품 카테고리
            customer_name: 고객 이름
            deposit_amount: 보증금 (없으면 카테고리 판매가)
            start_time: 대여 시작 시각 (없으면 현재 시각)
            staff: 담당 스태프 (없으면 기본 스태프)
            note: 비고

        Returns:
            원장에 기록된 Open 상태 RentalRecord
        """
        if not item_name or not str(item_name).strip():
            raise ValidationError('물품명이 필요합니다.')

        if not is_rental_allowed(category):
            raise ValidationError(f'{category} 카테고리는 판매 전용입니다.')

        if deposit_amount is None:
            deposit_amount = get_sale_unit_price(category)

        start = self.clock.localize(start_time) if start_time else self.clock.now()
        staff = self.staff_name if staff is None else staff

        # 다른 키오스크와 번호가 겹치면 한 번만 다시 할당
        for attempt in range(2):
            rental_number = await self.allocator.next_rental_number()
            record = rental_lifecycle.open_rental(
                item_name=item_name,
                category=category,
                customer_name=customer_name,
                deposit_amount=deposit_amount,
                start_time=start,
                rental_number=rental_number,
                staff=staff,
                note=note
            )

            try:
                await self.store.append_rental_record(record)
            except DuplicateRentalNumberError:
                if attempt:
                    logger.error(f"대여번호 재할당 실패: rental {rental_number}")
                    raise
                logger.warning(f"대여번호 충돌, 재할당: rental {rental_number}")
                continue

            logger.info(f"✅ 대여 시작: rental {record.rental_number} ({item_name}, 보증금 {deposit_amount})")
            return record

    async def search_open_rentals(self, number: Optional[int] = None,
                                  name: Optional[str] = None) -> List[RentalRecord]:
        """반납 대상 검색 (번호 우선, 없으면 이름)"""
        if number is not None:
            record = await self.matcher.find_by_number(self._coerce_number(number))
            return [record] if record else []

        if name is not None:
            return await self.matcher.find_by_name(name)

        raise ValidationError('대여번호 또는 이름을 입력해주세요.')

    async def close_rental(self, rental_number: int, returnable: Union[Returnable, str],
                           end_time: Optional[datetime] = None) -> RentalRecord:
        """반납 처리

        Args:
            rental_number: 대여번호
            returnable: OK(정상 반납) / NG(반납 불가)
            end_time: 반납 시각 (없으면 현재 시각)

        Returns:
            반납 필드가 채워진 RentalRecord
        """
        number = self._coerce_number(rental_number)
        returnable = self._coerce_returnable(returnable)

        record = await self.store.find_rental_by_number(number)
        if record is None:
            raise NotFoundError(f'대여번호 {number} 을(를) 찾을 수 없습니다.')

        if not record.is_open:
            logger.warning(f"이미 반납된 대여 반납 시도: rental {number}")
            raise InvalidStateError(f'대여번호 {number} 은(는) 이미 반납 처리되었습니다.')

        end = self.clock.localize(end_time) if end_time else self.clock.now()
        closed = rental_lifecycle.close_rental(record, end, returnable, self.clamp_refund)

        try:
            await self.store.update_rental_on_return(
                number,
                end_time=closed.end_time,
                used_minutes=closed.used_minutes,
                plan=closed.plan,
                fee=closed.fee,
                refund=closed.refund,
                returnable=closed.returnable
            )
        except RecordNotFoundError as e:
            raise NotFoundError(e.message) from e
        except AlreadyClosedError as e:
            raise InvalidStateError(e.message) from e

        logger.info(
            f"✅ 반납 완료: rental {number} ({closed.used_minutes}분, {closed.plan.value}, "
            f"요금 {closed.fee}, 환불 {closed.refund}, {closed.returnable.value})"
        )
        return closed

    async def record_sale(self, items: List[Dict[str, Any]], staff: Optional[str] = None,
                          sold_at: Optional[datetime] = None) -> List[SaleRecord]:
        """판매 기록

        Args:
            items: [{'category', 'product_name', 'quantity', 'unit_price'(선택), 'note'(선택)}]
            staff: 담당 스태프
            sold_at: 판매 시각 (없으면 현재 시각)

        Returns:
            기록된 SaleRecord 리스트
        """
        if not items:
            raise ValidationError('판매 품목이 없습니다.')

        sold_at = self.clock.localize(sold_at) if sold_at else self.clock.now()
        staff = self.staff_name if staff is None else staff

        sales = []
        for item in items:
            category = item.get('category', '')
            product_name = item.get('product_name', '')
            quantity = item.get('quantity', 1)
            unit_price = item.get('unit_price')
            if unit_price is None:
                unit_price = get_sale_unit_price(category)

            if not product_name:
                raise ValidationError('상품명이 필요합니다.')
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                raise ValidationError(f'수량은 1 이상의 정수여야 합니다: {quantity!r}')
            if not isinstance(unit_price, int) or isinstance(unit_price, bool) or unit_price < 0:
                raise ValidationError(f'단가는 0 이상의 정수여야 합니다: {unit_price!r}')

            sales.append(SaleRecord(
                sold_at=sold_at,
                category=category,
                product_name=product_name,
                quantity=quantity,
                unit_price=unit_price,
                staff=staff,
                note=item.get('note', '')
            ))

        await self.store.append_sale_rows(sales)
        logger.info(f"판매 완료: {len(sales)}건, 합계 {sum(s.subtotal for s in sales)}")
        return sales

    @staticmethod
    def _coerce_number(value) -> int:
        """대여번호 입력값 정규화 (문자열 허용)"""
        if isinstance(value, bool):
            raise ValidationError(f'잘못된 대여번호: {value!r}')
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            raise ValidationError(f'잘못된 대여번호: {value!r}')
        if number <= 0:
            raise ValidationError(f'잘못된 대여번호: {value!r}')
        return number

    @staticmethod
    def _coerce_returnable(value) -> Returnable:
        """반납 상태 입력값 정규화 ('OK' / 'NG')"""
        if isinstance(value, Returnable):
            return value
        try:
            return Returnable(str(value).strip().upper())
        except ValueError:
            raise ValidationError(f'반납 상태는 OK 또는 NG 이어야 합니다: {value!r}')
