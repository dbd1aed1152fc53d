"""
원장 저장소 인터페이스와 SQLite 구현

대여 엔진이 호출하는 원장 연산만 정의한다.
구글시트 구현은 data_sources/google_sheets.py 참고.
"""

import abc
import logging
import sqlite3
import threading
from datetime import datetime
from typing import List, Optional

from app.errors import (
    AlreadyClosedError, DuplicateRentalNumberError, RecordNotFoundError,
    StoreError, StoreTimeoutError
)
from app.models.rental import RentalPlan, RentalRecord, Returnable
from app.models.sale import SaleRecord
from .database_manager import DatabaseManager

logger = logging.getLogger(__name__)


def parse_rental_no(value) -> Optional[int]:
    """저장된 대여번호 파싱 (숫자가 아니거나 0 이하이면 None)"""
    if value is None:
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number if number > 0 else None


class LedgerStore(abc.ABC):
    """대여/판매 원장 저장소"""

    backend_name = 'abstract'

    @abc.abstractmethod
    async def append_rental_record(self, record: RentalRecord) -> None:
        """대여 기록 추가 (같은 번호가 있으면 DuplicateRentalNumberError)"""

    @abc.abstractmethod
    async def scan_max_rental_number(self) -> int:
        """현재 최대 대여번호 (없으면 0, 잘못된 행은 무시)"""

    @abc.abstractmethod
    async def find_rental_by_number(self, number: int) -> Optional[RentalRecord]:
        """번호로 대여 기록 조회 (상태 무관)"""

    @abc.abstractmethod
    async def find_open_rental_by_number(self, number: int) -> Optional[RentalRecord]:
        """번호로 대여중 기록 조회"""

    @abc.abstractmethod
    async def find_open_rentals_by_name_substring(self, text: str) -> List[RentalRecord]:
        """이름 부분 일치로 대여중 기록 조회 (원장 순서)"""

    @abc.abstractmethod
    async def update_rental_on_return(self, number: int, end_time: datetime, used_minutes: int,
                                      plan: RentalPlan, fee: int, refund: int,
                                      returnable: Returnable) -> None:
        """반납 정보 기록 (대여중인 경우에만)"""

    @abc.abstractmethod
    async def list_rentals(self, open_only: bool = False) -> List[RentalRecord]:
        """전체 대여 기록 (원장 순서)"""

    @abc.abstractmethod
    async def append_sale_rows(self, sales: List[SaleRecord]) -> int:
        """판매 기록 추가, 추가된 행 수 반환"""

    def close(self):
        """리소스 정리"""


class SqliteLedgerStore(LedgerStore):
    """SQLite 로컬 원장 (오프라인 모드)"""

    backend_name = 'sqlite'

    def __init__(self, db_manager: DatabaseManager):
        """
        Args:
            db_manager: 연결된 데이터베이스 매니저
        """
        self.db = db_manager
        self._write_lock = threading.RLock()
        logger.info(f"SQLite 원장 초기화: {db_manager.db_path}")

    def _execute(self, query: str, params=()) -> sqlite3.Cursor:
        """쿼리 실행 (sqlite 오류를 StoreError 로 변환, IntegrityError 는 그대로)"""
        try:
            return self.db.execute_query(query, params, strict=True)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise self._store_error('원장 쿼리 실패', e) from e

    @staticmethod
    def _store_error(message: str, error: sqlite3.Error) -> StoreError:
        """sqlite 오류 -> StoreError (잠금 대기 초과는 StoreTimeoutError)"""
        if isinstance(error, sqlite3.OperationalError) and (
                'locked' in str(error) or 'busy' in str(error)):
            return StoreTimeoutError(f'원장 잠금 대기 시간 초과: {error}')
        return StoreError(f'{message}: {error}')

    def _row_to_record(self, row) -> Optional[RentalRecord]:
        """DB 행 -> RentalRecord (손상된 행은 None)"""
        number = parse_rental_no(row['rental_no'])
        if number is None:
            logger.warning(f"잘못된 대여번호 행 무시: {row['rental_no']!r}")
            return None

        try:
            return RentalRecord(
                rental_number=number,
                customer_name=row['customer_name'] or '',
                item_name=row['item_name'],
                category=row['category'],
                deposit_amount=int(row['deposit']),
                start_time=datetime.fromisoformat(row['start_time']),
                end_time=datetime.fromisoformat(row['end_time']) if row['end_time'] else None,
                used_minutes=row['used_minutes'],
                plan=RentalPlan(row['plan']) if row['plan'] else None,
                fee=row['fee'],
                refund=row['refund'],
                returnable=Returnable(row['returnable'] or ''),
                staff=row['staff'] or '',
                note=row['note'] or ''
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"손상된 대여 행 무시: rental {number}, {e}")
            return None

    def _rows_to_records(self, rows) -> List[RentalRecord]:
        records = []
        for row in rows:
            record = self._row_to_record(row)
            if record:
                records.append(record)
        return records

    async def append_rental_record(self, record: RentalRecord) -> None:
        with self._write_lock:
            try:
                self._execute("""
                    INSERT INTO rentals (
                        rental_no, customer_name, item_name, category, deposit,
                        start_time, staff, note
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    str(record.rental_number),
                    record.customer_name,
                    record.item_name,
                    record.category,
                    record.deposit_amount,
                    record.start_time.isoformat(),
                    record.staff,
                    record.note
                ))
            except sqlite3.IntegrityError as e:
                if 'UNIQUE' in str(e):
                    raise DuplicateRentalNumberError(
                        f'대여번호 {record.rental_number} 이(가) 이미 존재합니다.'
                    ) from e
                raise StoreError(f'대여 기록 추가 실패: {e}') from e

        logger.info(f"대여 기록 추가: rental {record.rental_number} ({record.item_name})")

    async def scan_max_rental_number(self) -> int:
        cursor = self._execute("SELECT rental_no FROM rentals")
        numbers = [parse_rental_no(row['rental_no']) for row in cursor.fetchall()]
        numbers = [n for n in numbers if n is not None]
        return max(numbers) if numbers else 0

    async def find_rental_by_number(self, number: int) -> Optional[RentalRecord]:
        cursor = self._execute(
            "SELECT * FROM rentals WHERE rental_no = ?", (str(number),)
        )
        row = cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def find_open_rental_by_number(self, number: int) -> Optional[RentalRecord]:
        cursor = self._execute(
            "SELECT * FROM rentals WHERE rental_no = ? AND end_time IS NULL", (str(number),)
        )
        row = cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def find_open_rentals_by_name_substring(self, text: str) -> List[RentalRecord]:
        # instr() 는 대소문자를 구분한다 (LIKE 는 구분하지 않음)
        cursor = self._execute("""
            SELECT * FROM rentals
            WHERE end_time IS NULL AND instr(customer_name, ?) > 0
            ORDER BY row_id
        """, (text,))
        return self._rows_to_records(cursor.fetchall())

    async def update_rental_on_return(self, number: int, end_time: datetime, used_minutes: int,
                                      plan: RentalPlan, fee: int, refund: int,
                                      returnable: Returnable) -> None:
        with self._write_lock:
            # end_time IS NULL 조건부 갱신 (compare-and-swap)
            cursor = self._execute("""
                UPDATE rentals
                SET end_time = ?, used_minutes = ?, plan = ?, fee = ?, refund = ?,
                    returnable = ?, updated_at = ?
                WHERE rental_no = ? AND end_time IS NULL
            """, (
                end_time.isoformat(),
                used_minutes,
                plan.value,
                fee,
                refund,
                returnable.value,
                datetime.now().isoformat(),
                str(number)
            ))

            if cursor.rowcount == 1:
                logger.info(f"반납 기록 완료: rental {number} ({plan.value}, 요금 {fee}, 환불 {refund})")
                return

            cursor = self._execute("SELECT end_time FROM rentals WHERE rental_no = ?", (str(number),))
            if cursor.fetchone() is None:
                raise RecordNotFoundError(f'대여번호 {number} 을(를) 찾을 수 없습니다.')

        logger.warning(f"이미 반납된 대여 갱신 시도: rental {number}")
        raise AlreadyClosedError(f'대여번호 {number} 은(는) 이미 반납 처리되었습니다.')

    async def list_rentals(self, open_only: bool = False) -> List[RentalRecord]:
        if open_only:
            cursor = self._execute("SELECT * FROM rentals WHERE end_time IS NULL ORDER BY row_id")
        else:
            cursor = self._execute("SELECT * FROM rentals ORDER BY row_id")
        return self._rows_to_records(cursor.fetchall())

    async def append_sale_rows(self, sales: List[SaleRecord]) -> int:
        if not sales:
            return 0

        params_list = [(
            sale.sold_at.strftime('%Y-%m-%d'),
            sale.sold_at.strftime('%H:%M:%S'),
            sale.category,
            sale.product_name,
            sale.quantity,
            sale.unit_price,
            sale.subtotal,
            sale.staff,
            sale.note
        ) for sale in sales]

        # 장바구니 전체를 한 트랜잭션으로 (일부 행만 남지 않음)
        with self._write_lock:
            try:
                with self.db.transaction():
                    self.db.execute_many("""
                        INSERT INTO sales (
                            sale_date, sale_time, category, product_name, quantity,
                            unit_price, subtotal, staff, note
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, params_list, strict=True)
            except sqlite3.Error as e:
                raise self._store_error('판매 기록 추가 실패', e) from e

        logger.info(f"판매 기록 추가: {len(sales)}건")
        return len(sales)

    def close(self):
        self.db.close()
