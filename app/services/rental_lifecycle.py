"""
대여 기록 상태 전이

Open(대여중) -> Returned(정상 반납 OK / 반납 불가 NG) 단방향 전이만 허용한다.
두 함수 모두 부수효과 없이 새 RentalRecord 를 돌려주며,
원장 저장은 호출 측(RentalService) 책임이다.
"""

import dataclasses
import logging
from datetime import datetime

from app.errors import InvalidStateError, ValidationError
from app.models.rental import RentalRecord, Returnable
from app.services.pricing import compute_plan

logger = logging.getLogger(__name__)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def open_rental(item_name: str, category: str, customer_name: str,
                deposit_amount: int, start_time: datetime, rental_number: int,
                staff: str = '', note: str = '') -> RentalRecord:
    """대여 기록 생성 (Open 상태)

    Args:
        item_name: 물품명
        category: 물품 카테고리
        customer_name: 고객 이름 (빈 문자열 허용)
        deposit_amount: 보증금 (0 이상 정수)
        start_time: 대여 시작 시각
        rental_number: 대여번호 (양의 정수)
        staff: 담당 스태프
        note: 비고

    Returns:
        Open 상태 RentalRecord
    """
    if not _is_int(rental_number) or rental_number <= 0:
        raise ValidationError(f'대여번호는 양의 정수여야 합니다: {rental_number!r}')

    if not _is_int(deposit_amount) or deposit_amount < 0:
        raise ValidationError(f'보증금은 0 이상의 정수여야 합니다: {deposit_amount!r}')

    if start_time is None:
        raise ValidationError('대여 시작 시각이 필요합니다.')

    return RentalRecord(
        rental_number=rental_number,
        customer_name=customer_name or '',
        item_name=item_name,
        category=category,
        deposit_amount=deposit_amount,
        start_time=start_time,
        staff=staff or '',
        note=note or ''
    )


def elapsed_minutes(start_time: datetime, end_time: datetime) -> int:
    """경과 시간 (분, 내림)"""
    seconds = (end_time - start_time).total_seconds()
    return max(0, int(seconds // 60))


def compute_refund(deposit_amount: int, fee: int, returnable: Returnable,
                   clamp_refund: bool = False) -> int:
    """환불액 계산

    NG 는 요금과 무관하게 0, OK 는 보증금 - 요금.
    clamp_refund 가 켜져 있으면 음수 환불을 0 으로 자른다.
    """
    if returnable is Returnable.NG:
        return 0

    refund = deposit_amount - fee
    if clamp_refund:
        return max(0, refund)
    return refund


def close_rental(record: RentalRecord, end_time: datetime, returnable: Returnable,
                 clamp_refund: bool = False) -> RentalRecord:
    """대여 기록 반납 처리 (Open -> Returned)

    Args:
        record: Open 상태 대여 기록
        end_time: 반납 시각
        returnable: OK(정상) / NG(반납 불가)
        clamp_refund: 음수 환불 0 처리 여부

    Returns:
        반납 필드가 모두 채워진 새 RentalRecord
    """
    if not record.is_open:
        raise InvalidStateError(f'{record.rental_number}번은 이미 반납 처리되었습니다.')

    if not isinstance(returnable, Returnable) or returnable is Returnable.UNSET:
        raise ValidationError(f'반납 상태는 OK 또는 NG 이어야 합니다: {returnable!r}')

    if end_time is None:
        raise ValidationError('반납 시각이 필요합니다.')

    if end_time < record.start_time:
        raise ValidationError(
            f'반납 시각({end_time.isoformat()})이 대여 시작({record.start_time.isoformat()})보다 이릅니다.'
        )

    used_minutes = elapsed_minutes(record.start_time, end_time)
    plan, fee = compute_plan(record.category, used_minutes)
    refund = compute_refund(record.deposit_amount, fee, returnable, clamp_refund)

    if refund < 0:
        logger.warning(f"환불액 음수: rental {record.rental_number}, 보증금 {record.deposit_amount}, 요금 {fee}")

    return dataclasses.replace(
        record,
        end_time=end_time,
        used_minutes=used_minutes,
        plan=plan,
        fee=fee,
        refund=refund,
        returnable=returnable
    )
