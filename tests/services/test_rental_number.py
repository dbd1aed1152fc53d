"""
대여번호 할당 / 반납 대상 조회 테스트
"""

import asyncio
import os
import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from app.errors import ValidationError
from app.models.rental import RentalPlan, RentalRecord, Returnable
from app.services.rental_number import RentalNumberAllocator
from app.services.return_matcher import ReturnMatcher
from database.database_manager import create_database_manager
from database.ledger_store import SqliteLedgerStore

JST = timezone(timedelta(hours=9))


def make_record(number, name=''):
    return RentalRecord(
        rental_number=number,
        customer_name=name,
        item_name='여우 가면',
        category='OMEN',
        deposit_amount=500,
        start_time=datetime(2024, 8, 1, 10, 0, tzinfo=JST)
    )


class LedgerTestCase(unittest.TestCase):
    """임시 SQLite 원장을 쓰는 테스트 기본 클래스"""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_manager = create_database_manager(os.path.join(self.temp_dir.name, 'ledger.db'))
        self.store = SqliteLedgerStore(db_manager)

    def tearDown(self):
        self.store.close()
        self.temp_dir.cleanup()


class TestRentalNumberAllocator(LedgerTestCase):
    """RentalNumberAllocator 테스트 클래스"""

    def test_empty_ledger(self):
        """빈 원장이면 1번"""
        allocator = RentalNumberAllocator(self.store)
        self.assertEqual(asyncio.run(allocator.next_rental_number()), 1)

    def test_after_append(self):
        """N번 기록 후 N+1"""
        async def run_test():
            allocator = RentalNumberAllocator(self.store)
            await self.store.append_rental_record(make_record(41))
            self.assertEqual(await allocator.next_rental_number(), 42)

            # 할당만으로는 번호가 예약되지 않음
            self.assertEqual(await allocator.next_rental_number(), 42)

        asyncio.run(run_test())

    def test_gaps_use_maximum(self):
        async def run_test():
            allocator = RentalNumberAllocator(self.store)
            for number in (3, 10, 5):
                await self.store.append_rental_record(make_record(number))
            self.assertEqual(await allocator.next_rental_number(), 11)

        asyncio.run(run_test())


class TestReturnMatcher(LedgerTestCase):
    """ReturnMatcher 테스트 클래스"""

    def setUp(self):
        super().setUp()
        self.matcher = ReturnMatcher(self.store)

        async def seed():
            await self.store.append_rental_record(make_record(1, 'Yamada Taro'))
            await self.store.append_rental_record(make_record(2, 'Yamamoto'))
            await self.store.append_rental_record(make_record(3, ''))
            await self.store.update_rental_on_return(
                2, datetime(2024, 8, 1, 11, 0, tzinfo=JST), 60,
                RentalPlan.ONE_HOUR, 100, 400, Returnable.OK
            )

        asyncio.run(seed())

    def test_find_by_number(self):
        record = asyncio.run(self.matcher.find_by_number(1))
        self.assertEqual(record.customer_name, 'Yamada Taro')

    def test_find_by_number_hides_returned(self):
        """반납 완료 기록은 조회되지 않음"""
        self.assertIsNone(asyncio.run(self.matcher.find_by_number(2)))

    def test_find_by_number_unknown(self):
        self.assertIsNone(asyncio.run(self.matcher.find_by_number(99)))

    def test_find_by_name(self):
        """부분 일치, 반납 완료 제외"""
        records = asyncio.run(self.matcher.find_by_name('Yama'))
        self.assertEqual([r.rental_number for r in records], [1])

    def test_find_by_name_trims_query(self):
        records = asyncio.run(self.matcher.find_by_name('  Taro '))
        self.assertEqual([r.rental_number for r in records], [1])

    def test_find_by_name_case_sensitive(self):
        self.assertEqual(asyncio.run(self.matcher.find_by_name('yamada')), [])

    def test_blank_name_rejected(self):
        for query in ('', '   ', None):
            with self.assertRaises(ValidationError):
                asyncio.run(self.matcher.find_by_name(query))


if __name__ == '__main__':
    unittest.main(verbosity=2)
