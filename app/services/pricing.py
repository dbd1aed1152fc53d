"""
요금 계산

경과 시간(분)으로 요금 플랜과 요금을 결정한다.
각 플랜 경계에는 15분 유예가 붙는다 (1시간 15분까지 1시간 플랜 등).
"""

from typing import Tuple

from app.errors import ValidationError
from app.models.rental import RentalPlan


GRACE_HOURS = 0.25

# (플랜 상한 시간, 플랜, 기본 요금) - 상한은 유예 포함, 경계값 포함(<=)
PLAN_TIERS = (
    (1 + GRACE_HOURS, RentalPlan.ONE_HOUR, 100),
    (3 + GRACE_HOURS, RentalPlan.THREE_HOURS, 200),
    (6 + GRACE_HOURS, RentalPlan.SIX_HOURS, 300),
)
ALL_DAY_FEE = 400

RENTAL_PLANS = tuple(plan for plan in RentalPlan)

PLAN_BASE_FEES = {plan: fee for _, plan, fee in PLAN_TIERS}
PLAN_BASE_FEES[RentalPlan.ALL_DAY] = ALL_DAY_FEE

PLAN_LABELS = {
    RentalPlan.ONE_HOUR: '1시간',
    RentalPlan.THREE_HOURS: '3시간',
    RentalPlan.SIX_HOURS: '6시간',
    RentalPlan.ALL_DAY: '종일',
}

# 카테고리별 판매 단가 (대여 보증금 = 판매가)
SALE_UNIT_PRICES = {
    'OMEN': 500,
    'MINGEI': 1000,
    'VINYL': 300,
}

CATEGORY_LABELS = {
    'OMEN': '가면',
    'MINGEI': '민예 가면',
    'VINYL': '비닐 완구',
}

# 판매 전용 카테고리
SALE_ONLY_CATEGORIES = frozenset({'VINYL'})


def compute_plan(category: str, elapsed_minutes: int) -> Tuple[RentalPlan, int]:
    """경과 시간으로 요금 플랜/요금 결정

    Args:
        category: 물품 카테고리 (현재 요금에는 영향 없음)
        elapsed_minutes: 대여 경과 시간 (분)

    Returns:
        (플랜, 요금) 튜플
    """
    if elapsed_minutes < 0:
        raise ValidationError(f'경과 시간은 음수일 수 없습니다: {elapsed_minutes}')

    hours = elapsed_minutes / 60

    for limit_hours, plan, fee in PLAN_TIERS:
        if hours <= limit_hours:
            return plan, fee

    return RentalPlan.ALL_DAY, ALL_DAY_FEE


def get_sale_unit_price(category: str) -> int:
    """카테고리 판매 단가 (미등록 카테고리는 0)"""
    return SALE_UNIT_PRICES.get(category, 0)


def is_rental_allowed(category: str) -> bool:
    """대여 가능 카테고리 여부"""
    return category not in SALE_ONLY_CATEGORIES


def get_plan_display_name(plan: RentalPlan) -> str:
    return PLAN_LABELS[plan]


def get_rental_estimate_text(plan: RentalPlan) -> str:
    """체크아웃 화면용 예상 요금 문구"""
    return f"약 {PLAN_BASE_FEES[plan]}엔"
