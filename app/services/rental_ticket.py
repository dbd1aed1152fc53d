"""
대여증 데이터 생성
"""

from typing import Any, Dict

from app.models.rental import RentalRecord
from app.services.pricing import CATEGORY_LABELS

NO_NAME_PLACEHOLDER = '(이름 없음)'

TICKET_INSTRUCTIONS = (
    '반납 시 이 번호를 알려주세요',
    '가면은 소중히 다뤄주세요',
    '파손·분실 시 실비를 받습니다',
    '영업 종료 30분 전까지 반납해주세요',
)


def build_rental_ticket(record: RentalRecord) -> Dict[str, Any]:
    """체크아웃 완료 화면/출력용 대여증 (대여 기록 1건당 1장)"""
    return {
        'rental_no': str(record.rental_number),
        'customer_name': record.customer_name or NO_NAME_PLACEHOLDER,
        'item_name': record.item_name,
        'category': CATEGORY_LABELS.get(record.category, record.category),
        'deposit': record.deposit_amount,
        'start_time': record.start_time.strftime('%Y-%m-%d %H:%M:%S'),
        'instructions': list(TICKET_INSTRUCTIONS),
    }
