"""
대여 기록 모델
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RentalPlan(Enum):
    """요금 플랜"""
    ONE_HOUR = "1h"
    THREE_HOURS = "3h"
    SIX_HOURS = "6h"
    ALL_DAY = "allday"


class Returnable(Enum):
    """반납 상태 (OK: 정상 반납, NG: 반납 불가 - 파손/분실)"""
    UNSET = ""
    OK = "OK"
    NG = "NG"


@dataclass(frozen=True)
class RentalRecord:
    """대여 기록 (대여 1건 = 물품 1개)

    end_time 이 None 이면 대여중(Open), 반납 처리되면
    end_time / used_minutes / plan / fee / refund / returnable 이 한 번에 채워진다.
    """
    rental_number: int
    customer_name: str
    item_name: str
    category: str
    deposit_amount: int
    start_time: datetime
    end_time: Optional[datetime] = None
    used_minutes: Optional[int] = None
    plan: Optional[RentalPlan] = None
    fee: Optional[int] = None
    refund: Optional[int] = None
    returnable: Returnable = Returnable.UNSET
    staff: str = ''
    note: str = ''

    @property
    def is_open(self) -> bool:
        """대여중 여부"""
        return self.end_time is None

    @property
    def is_returned(self) -> bool:
        """반납 완료 여부"""
        return (
            self.end_time is not None
            and self.used_minutes is not None
            and self.plan is not None
            and self.fee is not None
            and self.refund is not None
            and self.returnable is not Returnable.UNSET
        )

    def to_dict(self):
        """딕셔너리로 변환"""
        return {
            'rental_no': self.rental_number,
            'customer_name': self.customer_name,
            'item_name': self.item_name,
            'category': self.category,
            'deposit': self.deposit_amount,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'used_minutes': self.used_minutes,
            'plan': self.plan.value if self.plan else None,
            'fee': self.fee,
            'refund': self.refund,
            'returnable': self.returnable.value or None,
            'staff': self.staff,
            'note': self.note,
            'is_open': self.is_open
        }

    def __repr__(self):
        state = 'open' if self.is_open else 'returned'
        return f"<RentalRecord #{self.rental_number} {self.item_name} ({state})>"
