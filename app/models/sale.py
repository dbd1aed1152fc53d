"""
판매 기록 모델
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class SaleRecord:
    """판매 기록 (품목 1줄)"""
    sold_at: datetime
    category: str
    product_name: str
    quantity: int
    unit_price: int
    staff: str = ''
    note: str = ''

    @property
    def subtotal(self) -> int:
        return self.quantity * self.unit_price

    def to_dict(self):
        return {
            'sold_at': self.sold_at.isoformat(),
            'category': self.category,
            'product_name': self.product_name,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'subtotal': self.subtotal,
            'staff': self.staff,
            'note': self.note
        }
