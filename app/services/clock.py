"""
키오스크 현재 시각

타임존 DB 없이 고정 UTC 오프셋 하나(기본 JST +9)만 사용한다.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


DEFAULT_OFFSET_HOURS = 9


class KioskClock:
    """고정 오프셋 현지 시각 제공자"""

    def __init__(self, offset_hours: int = DEFAULT_OFFSET_HOURS):
        self.tz = timezone(timedelta(hours=offset_hours))

    def now(self) -> datetime:
        """현재 현지 시각 (초 단위 절삭)"""
        return datetime.now(self.tz).replace(microsecond=0)

    def localize(self, value: datetime) -> datetime:
        """naive datetime 은 키오스크 현지 시각으로 간주, aware 는 현지 시각으로 변환"""
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)


class FixedClock(KioskClock):
    """고정 시각을 돌려주는 시계 (테스트/재처리용)"""

    def __init__(self, fixed: datetime, offset_hours: int = DEFAULT_OFFSET_HOURS):
        super().__init__(offset_hours)
        self.fixed = self.localize(fixed)

    def now(self) -> datetime:
        return self.fixed

    def advance(self, minutes: int = 0, seconds: int = 0) -> datetime:
        self.fixed = self.fixed + timedelta(minutes=minutes, seconds=seconds)
        return self.fixed


def parse_timestamp(value: str, clock: Optional[KioskClock] = None) -> datetime:
    """ISO 형식 시각 문자열 파싱 ('Z' 접미사 허용)"""
    clock = clock or KioskClock()
    parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    return clock.localize(parsed)
