"""
SQLite 원장 저장소 테스트
"""

import asyncio
import os
import sys
import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from app.errors import (
    AlreadyClosedError, DuplicateRentalNumberError, RecordNotFoundError, StoreError
)
from app.models.rental import RentalPlan, RentalRecord, Returnable
from app.models.sale import SaleRecord
from database.database_manager import create_database_manager
from database.ledger_store import SqliteLedgerStore, parse_rental_no

JST = timezone(timedelta(hours=9))


def make_record(number, name='山田', start=None, item='여우 가면', category='OMEN', deposit=500):
    return RentalRecord(
        rental_number=number,
        customer_name=name,
        item_name=item,
        category=category,
        deposit_amount=deposit,
        start_time=start or datetime(2024, 8, 1, 10, 0, tzinfo=JST),
        staff='staffA'
    )


class TestParseRentalNo(unittest.TestCase):
    """대여번호 파싱 테스트"""

    def test_valid_numbers(self):
        self.assertEqual(parse_rental_no('12'), 12)
        self.assertEqual(parse_rental_no(' 7 '), 7)
        self.assertEqual(parse_rental_no(3), 3)

    def test_malformed_numbers(self):
        for value in (None, '', 'abc', '0', '-4', '1.5'):
            self.assertIsNone(parse_rental_no(value), value)


class TestSqliteLedgerStore(unittest.TestCase):
    """SqliteLedgerStore 테스트 클래스"""

    def setUp(self):
        """테스트 설정"""
        self.temp_dir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.temp_dir.name, 'ledger.db')
        self.db_manager = create_database_manager(db_path, initialize=True)
        self.store = SqliteLedgerStore(self.db_manager)

    def tearDown(self):
        """테스트 정리"""
        self.store.close()
        self.temp_dir.cleanup()

    def test_scan_empty_ledger(self):
        """빈 원장의 최대 번호는 0"""
        self.assertEqual(asyncio.run(self.store.scan_max_rental_number()), 0)

    def test_append_and_find(self):
        """대여 기록 추가 및 조회"""
        async def run_test():
            await self.store.append_rental_record(make_record(1))
            await self.store.append_rental_record(make_record(2, name='佐藤'))

            self.assertEqual(await self.store.scan_max_rental_number(), 2)

            record = await self.store.find_open_rental_by_number(1)
            self.assertIsNotNone(record)
            self.assertEqual(record.customer_name, '山田')
            self.assertEqual(record.deposit_amount, 500)
            self.assertEqual(record.start_time, datetime(2024, 8, 1, 10, 0, tzinfo=JST))
            self.assertTrue(record.is_open)

            self.assertIsNone(await self.store.find_open_rental_by_number(3))

        asyncio.run(run_test())

    def test_duplicate_number_rejected(self):
        """같은 대여번호 중복 추가 불가"""
        async def run_test():
            await self.store.append_rental_record(make_record(1))
            with self.assertRaises(DuplicateRentalNumberError):
                await self.store.append_rental_record(make_record(1, name='佐藤'))

            rentals = await self.store.list_rentals()
            self.assertEqual(len(rentals), 1)

        asyncio.run(run_test())

    def test_scan_ignores_malformed_numbers(self):
        """숫자가 아닌 대여번호 행은 무시"""
        self.db_manager.execute_query("""
            INSERT INTO rentals (rental_no, item_name, category, deposit, start_time)
            VALUES ('abc', '여우 가면', 'OMEN', 500, '2024-08-01T10:00:00+09:00')
        """)
        asyncio.run(self.store.append_rental_record(make_record(4)))

        self.assertEqual(asyncio.run(self.store.scan_max_rental_number()), 4)
        self.assertEqual(len(asyncio.run(self.store.list_rentals())), 1)

    def test_update_on_return(self):
        """반납 정보 기록"""
        async def run_test():
            await self.store.append_rental_record(make_record(1))
            end = datetime(2024, 8, 1, 11, 15, tzinfo=JST)

            await self.store.update_rental_on_return(
                1, end_time=end, used_minutes=75, plan=RentalPlan.ONE_HOUR,
                fee=100, refund=400, returnable=Returnable.OK
            )

            self.assertIsNone(await self.store.find_open_rental_by_number(1))

            record = await self.store.find_rental_by_number(1)
            self.assertTrue(record.is_returned)
            self.assertEqual(record.end_time, end)
            self.assertEqual(record.used_minutes, 75)
            self.assertEqual(record.plan, RentalPlan.ONE_HOUR)
            self.assertEqual(record.fee, 100)
            self.assertEqual(record.refund, 400)
            self.assertEqual(record.returnable, Returnable.OK)

        asyncio.run(run_test())

    def test_update_already_closed(self):
        """이미 반납된 기록은 다시 갱신 불가"""
        async def run_test():
            await self.store.append_rental_record(make_record(1))
            end = datetime(2024, 8, 1, 11, 0, tzinfo=JST)
            await self.store.update_rental_on_return(
                1, end, 60, RentalPlan.ONE_HOUR, 100, 400, Returnable.OK
            )

            with self.assertRaises(AlreadyClosedError):
                await self.store.update_rental_on_return(
                    1, end + timedelta(hours=5), 360, RentalPlan.SIX_HOURS, 300, 0, Returnable.NG
                )

            record = await self.store.find_rental_by_number(1)
            self.assertEqual(record.fee, 100)
            self.assertEqual(record.returnable, Returnable.OK)

        asyncio.run(run_test())

    def test_update_unknown_number(self):
        """없는 대여번호 갱신"""
        with self.assertRaises(RecordNotFoundError):
            asyncio.run(self.store.update_rental_on_return(
                99, datetime(2024, 8, 1, 11, 0, tzinfo=JST), 60,
                RentalPlan.ONE_HOUR, 100, 400, Returnable.OK
            ))

    def test_name_search(self):
        """이름 부분 일치 검색 (대여중, 대소문자 구분, 원장 순서)"""
        async def run_test():
            await self.store.append_rental_record(make_record(1, name='Tanaka Taro'))
            await self.store.append_rental_record(make_record(2, name='tanaka hanako'))
            await self.store.append_rental_record(make_record(3, name='Suzuki'))
            await self.store.append_rental_record(make_record(4, name='Tanaka Jiro'))
            await self.store.update_rental_on_return(
                4, datetime(2024, 8, 1, 11, 0, tzinfo=JST), 60,
                RentalPlan.ONE_HOUR, 100, 400, Returnable.OK
            )

            records = await self.store.find_open_rentals_by_name_substring('Tanaka')
            self.assertEqual([r.rental_number for r in records], [1])

            records = await self.store.find_open_rentals_by_name_substring('a')
            self.assertEqual([r.rental_number for r in records], [1, 2])

        asyncio.run(run_test())

    def test_list_rentals(self):
        """전체 / 대여중 목록"""
        async def run_test():
            await self.store.append_rental_record(make_record(1))
            await self.store.append_rental_record(make_record(2))
            await self.store.update_rental_on_return(
                1, datetime(2024, 8, 1, 10, 30, tzinfo=JST), 30,
                RentalPlan.ONE_HOUR, 100, 0, Returnable.NG
            )

            self.assertEqual(len(await self.store.list_rentals()), 2)
            open_rentals = await self.store.list_rentals(open_only=True)
            self.assertEqual([r.rental_number for r in open_rentals], [2])

        asyncio.run(run_test())

    def test_append_sale_rows(self):
        """판매 기록 추가"""
        sold_at = datetime(2024, 8, 1, 12, 30, tzinfo=JST)
        sales = [
            SaleRecord(sold_at, 'VINYL', '풍선', 2, 300, staff='staffA'),
            SaleRecord(sold_at, 'OMEN', '여우 가면', 1, 500, staff='staffA'),
        ]

        self.assertEqual(asyncio.run(self.store.append_sale_rows(sales)), 2)
        self.assertEqual(asyncio.run(self.store.append_sale_rows([])), 0)

        cursor = self.db_manager.execute_query("SELECT * FROM sales ORDER BY row_id")
        rows = cursor.fetchall()
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]['sale_date'], '2024-08-01')
        self.assertEqual(rows[0]['sale_time'], '12:30:00')
        self.assertEqual(rows[0]['subtotal'], 600)

    def test_append_sale_rows_all_or_nothing(self):
        """판매 품목 중 하나라도 실패하면 아무 행도 남지 않음"""
        sold_at = datetime(2024, 8, 1, 12, 30, tzinfo=JST)
        sales = [
            SaleRecord(sold_at, 'VINYL', '풍선', 2, 300, staff='staffA'),
            SaleRecord(sold_at, 'OMEN', None, 1, 500, staff='staffA'),
        ]

        with self.assertRaises(StoreError):
            asyncio.run(self.store.append_sale_rows(sales))

        cursor = self.db_manager.execute_query("SELECT COUNT(*) AS count FROM sales")
        self.assertEqual(cursor.fetchone()['count'], 0)

        # 실패 후에도 다음 판매는 정상 기록
        self.assertEqual(asyncio.run(self.store.append_sale_rows(sales[:1])), 1)

    def test_closed_connection_raises_store_error(self):
        """연결이 끊긴 경우 StoreError"""
        self.db_manager.close()
        with self.assertRaises(StoreError):
            asyncio.run(self.store.scan_max_rental_number())

    def test_concurrent_double_return(self):
        """동시에 두 번 반납하면 한 쪽만 성공"""
        asyncio.run(self.store.append_rental_record(make_record(1)))
        end = datetime(2024, 8, 1, 11, 0, tzinfo=JST)
        results = []

        def worker(returnable):
            try:
                asyncio.run(self.store.update_rental_on_return(
                    1, end, 60, RentalPlan.ONE_HOUR, 100,
                    400 if returnable is Returnable.OK else 0, returnable
                ))
                results.append('ok')
            except AlreadyClosedError:
                results.append('closed')

        threads = [threading.Thread(target=worker, args=(r,)) for r in (Returnable.OK, Returnable.NG)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(results), ['closed', 'ok'])


if __name__ == '__main__':
    unittest.main(verbosity=2)
