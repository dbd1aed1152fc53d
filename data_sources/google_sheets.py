"""
구글시트 원장 연동 모듈

Rentals / Sales 워크시트를 대여·판매 원장으로 사용한다.
행 <-> RentalRecord 위치 기반 변환은 이 모듈 안에서만 이루어진다.

Rentals 열: A 대여번호 B 이름 C 물품명 D 카테고리 E 날짜 F 시작시각 G 종료시각
           H 사용시간(분) I 플랜 J 요금 K 보증금 L 환불액 M 반납상태 N 스태프 O 비고
Sales 열:   A 날짜 B 시각 C 카테고리 D 상품명 E 수량 F 단가 G 소계 H 스태프 I 비고
"""

import asyncio
import logging
import re
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import gspread
import requests
from google.oauth2.service_account import Credentials

from app.errors import (
    AlreadyClosedError, DuplicateRentalNumberError, RecordNotFoundError,
    StoreError, StoreTimeoutError
)
from app.models.rental import RentalPlan, RentalRecord, Returnable
from app.models.sale import SaleRecord
from database.ledger_store import LedgerStore, parse_rental_no

logger = logging.getLogger(__name__)


RENTAL_HEADERS = [
    "RentalNo", "Name", "ProductName", "Category", "Date", "StartTime", "EndTime",
    "UsedMinutes", "Plan", "Amount", "Deposit", "Refund", "Returnable", "Staff", "Note"
]

SALES_HEADERS = [
    "Date", "Time", "Category", "ProductName", "Quantity", "UnitPrice", "Subtotal", "Staff", "Note"
]

DEFAULT_SHEET_NAMES = {
    "rentals": "Rentals",
    "sales": "Sales",
}

SCOPES = ['https://www.googleapis.com/auth/spreadsheets']

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M:%S"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_UPDATED_ROW_PATTERN = re.compile(r'![A-Z]+(\d+)')


def _int_or_none(value: Any) -> Optional[int]:
    text = str(value).strip() if value is not None else ''
    if not text:
        return None
    return int(text)


def format_end_time(start_time: datetime, end_time: datetime) -> str:
    """종료시각 셀 값 (같은 날이면 시각만, 날짜가 넘어가면 날짜 포함)"""
    if end_time.date() == start_time.date():
        return end_time.strftime(TIME_FORMAT)
    return end_time.strftime(DATETIME_FORMAT)


def record_to_row(record: RentalRecord) -> List[str]:
    """RentalRecord -> Rentals 시트 행"""
    returned = not record.is_open
    return [
        str(record.rental_number),
        record.customer_name,
        record.item_name,
        record.category,
        record.start_time.strftime(DATE_FORMAT),
        record.start_time.strftime(TIME_FORMAT),
        format_end_time(record.start_time, record.end_time) if returned else '',
        str(record.used_minutes) if returned else '',
        record.plan.value if returned else '',
        str(record.fee) if returned else '',
        str(record.deposit_amount),
        str(record.refund) if returned else '',
        record.returnable.value,
        record.staff,
        record.note,
    ]


def _parse_sheet_datetime(value: str, tz: timezone) -> datetime:
    """날짜 문자열 파싱 (여러 형식 지원)"""
    formats = [
        DATETIME_FORMAT,
        "%Y/%m/%d %H:%M:%S",
        "%Y-%m-%d %H:%M",
        "%Y/%m/%d %H:%M",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(value.strip(), fmt).replace(tzinfo=tz)
        except ValueError:
            continue

    raise ValueError(f"날짜 형식 오류: {value}")


def row_to_record(row: List[str], tz: timezone) -> Optional[RentalRecord]:
    """Rentals 시트 행 -> RentalRecord (대여번호가 잘못된 행은 None)"""
    cells = [str(cell) for cell in row] + [''] * (len(RENTAL_HEADERS) - len(row))

    number = parse_rental_no(cells[0])
    if number is None:
        return None

    start_time = _parse_sheet_datetime(f"{cells[4].strip()} {cells[5].strip()}", tz)

    end_text = cells[6].strip()
    if not end_text:
        # 대여중 행의 플랜 칸에는 체크아웃 시 예상 플랜 문구가 있을 수 있음
        return RentalRecord(
            rental_number=number,
            customer_name=cells[1],
            item_name=cells[2],
            category=cells[3],
            deposit_amount=int(cells[10].strip() or 0),
            start_time=start_time,
            staff=cells[13],
            note=cells[14]
        )

    if '-' in end_text or '/' in end_text:
        end_time = _parse_sheet_datetime(end_text, tz)
    else:
        end_time = _parse_sheet_datetime(f"{cells[4].strip()} {end_text}", tz)

    return RentalRecord(
        rental_number=number,
        customer_name=cells[1],
        item_name=cells[2],
        category=cells[3],
        deposit_amount=int(cells[10].strip() or 0),
        start_time=start_time,
        end_time=end_time,
        used_minutes=_int_or_none(cells[7]),
        plan=RentalPlan(cells[8].strip()),
        fee=_int_or_none(cells[9]),
        refund=_int_or_none(cells[11]),
        returnable=Returnable(cells[12].strip()),
        staff=cells[13],
        note=cells[14]
    )


def sale_to_row(sale: SaleRecord) -> List[str]:
    """SaleRecord -> Sales 시트 행"""
    return [
        sale.sold_at.strftime(DATE_FORMAT),
        sale.sold_at.strftime(TIME_FORMAT),
        sale.category,
        sale.product_name,
        str(sale.quantity),
        str(sale.unit_price),
        str(sale.subtotal),
        sale.staff,
        sale.note,
    ]


class GoogleSheetsLedgerStore(LedgerStore):
    """구글시트 원장"""

    backend_name = 'sheets'

    def __init__(self, spreadsheet_id: str = '', credentials_file: Optional[str] = None,
                 credentials_info: Optional[Dict[str, Any]] = None,
                 sheet_names: Optional[Dict[str, str]] = None,
                 timeout_seconds: float = 10.0, offset_hours: int = 9,
                 min_interval: float = 1.0, spreadsheet=None):
        """
        Args:
            spreadsheet_id: 구글시트 ID
            credentials_file: 서비스 계정 JSON 파일 경로
            credentials_info: 서비스 계정 정보 (base64 환경변수에서 읽은 경우)
            sheet_names: 워크시트 이름 ({'rentals': ..., 'sales': ...})
            timeout_seconds: HTTP 요청 타임아웃 (초)
            offset_hours: 시트 시각의 UTC 오프셋
            min_interval: API 호출 최소 간격 (초)
            spreadsheet: 이미 열린 gspread Spreadsheet (주입용)
        """
        self.spreadsheet_id = spreadsheet_id
        self.credentials_file = credentials_file
        self.credentials_info = credentials_info
        self.sheet_names = dict(DEFAULT_SHEET_NAMES)
        self.sheet_names.update(sheet_names or {})
        self.timeout_seconds = timeout_seconds
        self.tz = timezone(timedelta(hours=offset_hours))

        self.client: Optional[gspread.Client] = None
        self.spreadsheet = spreadsheet
        self._worksheets: Dict[str, Any] = {}

        # Rate limit 관리
        self.last_api_call = 0.0
        self.min_interval = min_interval

        # 같은 프로세스 안의 쓰기 직렬화
        self._write_lock = threading.RLock()

        logger.info("GoogleSheetsLedgerStore 초기화")

    def connect(self) -> bool:
        """구글시트에 연결

        Returns:
            연결 성공 여부
        """
        if self.spreadsheet is not None:
            return True

        try:
            if self.credentials_info:
                credentials = Credentials.from_service_account_info(
                    self.credentials_info, scopes=SCOPES
                )
            else:
                credentials = Credentials.from_service_account_file(
                    self.credentials_file, scopes=SCOPES
                )

            self.client = gspread.authorize(credentials)
            self.client.set_timeout(self.timeout_seconds)
            self.spreadsheet = self.client.open_by_key(self.spreadsheet_id)

            logger.info(f"구글시트 연결 성공: {self.spreadsheet.title}")
            return True

        except FileNotFoundError:
            logger.error(f"인증 파일 없음: {self.credentials_file}")
            return False
        except Exception as e:
            logger.error(f"구글시트 연결 실패: {e}")
            return False

    async def _rate_limit(self):
        """API 호출 제한 관리 (분당 60회 제한 대응)"""
        now = time.monotonic()
        elapsed = now - self.last_api_call

        if elapsed < self.min_interval:
            await asyncio.sleep(self.min_interval - elapsed)

        self.last_api_call = time.monotonic()

    async def _call(self, fn, *args, **kwargs):
        """gspread 호출 (오류를 StoreError 로 변환)"""
        await self._rate_limit()
        try:
            return fn(*args, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.error(f"구글시트 요청 타임아웃: {e}")
            raise StoreTimeoutError(f'구글시트 요청 타임아웃: {e}') from e
        except gspread.exceptions.GSpreadException as e:
            logger.error(f"구글시트 API 오류: {e}")
            raise StoreError(f'구글시트 API 오류: {e}') from e
        except requests.exceptions.RequestException as e:
            logger.error(f"구글시트 통신 오류: {e}")
            raise StoreError(f'구글시트 통신 오류: {e}') from e

    async def _get_worksheet(self, sheet_key: str):
        """워크시트 가져오기 (캐시)"""
        if self.spreadsheet is None:
            raise StoreError('구글시트 연결되지 않음')

        if sheet_key not in self._worksheets:
            sheet_name = self.sheet_names[sheet_key]
            self._worksheets[sheet_key] = await self._call(self.spreadsheet.worksheet, sheet_name)
        return self._worksheets[sheet_key]

    async def _load_rental_rows(self) -> List[Tuple[int, List[str]]]:
        """(시트 행 번호, 행) 리스트 - 헤더 제외"""
        worksheet = await self._get_worksheet("rentals")
        values = await self._call(worksheet.get_all_values)
        return [(index, row) for index, row in enumerate(values[1:], start=2)]

    async def _load_records(self) -> List[RentalRecord]:
        records = []
        for index, row in await self._load_rental_rows():
            try:
                record = row_to_record(row, self.tz)
            except (ValueError, IndexError) as e:
                logger.warning(f"손상된 대여 행 무시: {index}행, {e}")
                continue
            if record:
                records.append(record)
        return records

    async def _rental_number_rows(self, number: int) -> List[int]:
        """해당 대여번호가 있는 시트 행 번호들"""
        worksheet = await self._get_worksheet("rentals")
        column = await self._call(worksheet.col_values, 1)
        return [
            index for index, value in enumerate(column[1:], start=2)
            if parse_rental_no(value) == number
        ]

    async def append_rental_record(self, record: RentalRecord) -> None:
        number = record.rental_number

        with self._write_lock:
            if await self._rental_number_rows(number):
                raise DuplicateRentalNumberError(f'대여번호 {number} 이(가) 이미 존재합니다.')

            worksheet = await self._get_worksheet("rentals")
            response = await self._call(worksheet.append_row, record_to_row(record),
                                        value_input_option='RAW')

            # 다른 키오스크와 동시에 추가된 경우 먼저 쓴 행이 이긴다
            own_row = self._appended_row_index(response)
            rows = await self._rental_number_rows(number)
            if own_row and len(rows) > 1 and own_row != rows[0]:
                logger.warning(f"대여번호 충돌, 추가한 행 삭제: rental {number} ({own_row}행)")
                await self._discard_rental_row(worksheet, own_row, number)
                raise DuplicateRentalNumberError(f'대여번호 {number} 이(가) 동시에 할당되었습니다.')

        logger.info(f"대여 기록 추가: rental {number} ({record.item_name})")

    async def _discard_rental_row(self, worksheet, row_index: int, number: int):
        """충돌로 진 행 제거

        삭제가 실패하면 대여번호 칸을 비워 손상된 행으로 만든다 (조회 시 무시됨).
        둘 다 실패해 같은 번호가 두 행에 남으면 StoreError.
        """
        try:
            await self._call(worksheet.delete_rows, row_index)
        except StoreError as e:
            logger.error(f"충돌 행 삭제 실패, 대여번호 칸 비움: rental {number} ({row_index}행), {e}")
            try:
                await self._call(worksheet.batch_update, [
                    {'range': f'A{row_index}:A{row_index}', 'values': [['']]},
                ], value_input_option='RAW')
            except StoreError as blank_error:
                raise StoreError(
                    f'대여번호 {number} 중복 행 정리 실패 ({row_index}행): {blank_error.message}'
                ) from blank_error

        remaining = await self._rental_number_rows(number)
        if len(remaining) > 1:
            logger.error(f"대여번호 중복 행 남음: rental {number} {remaining}")
            raise StoreError(f'대여번호 {number} 중복 행 정리 실패: {remaining}')

    @staticmethod
    def _appended_row_index(response) -> Optional[int]:
        """append 응답의 updatedRange 에서 행 번호 추출"""
        if not isinstance(response, dict):
            return None
        updated_range = response.get('updates', {}).get('updatedRange', '')
        match = _UPDATED_ROW_PATTERN.search(updated_range)
        return int(match.group(1)) if match else None

    async def scan_max_rental_number(self) -> int:
        worksheet = await self._get_worksheet("rentals")
        column = await self._call(worksheet.col_values, 1)
        numbers = [parse_rental_no(value) for value in column[1:]]
        numbers = [n for n in numbers if n is not None]
        return max(numbers) if numbers else 0

    async def find_rental_by_number(self, number: int) -> Optional[RentalRecord]:
        for record in await self._load_records():
            if record.rental_number == number:
                return record
        return None

    async def find_open_rental_by_number(self, number: int) -> Optional[RentalRecord]:
        record = await self.find_rental_by_number(number)
        if record and record.is_open:
            return record
        return None

    async def find_open_rentals_by_name_substring(self, text: str) -> List[RentalRecord]:
        return [
            record for record in await self._load_records()
            if record.is_open and text in record.customer_name
        ]

    async def update_rental_on_return(self, number: int, end_time: datetime, used_minutes: int,
                                      plan: RentalPlan, fee: int, refund: int,
                                      returnable: Returnable) -> None:
        with self._write_lock:
            target = None
            for index, row in await self._load_rental_rows():
                if row and parse_rental_no(row[0]) == number:
                    target = (index, row)
                    break

            if target is None:
                raise RecordNotFoundError(f'대여번호 {number} 을(를) 찾을 수 없습니다.')

            index, row = target
            if len(row) > 6 and str(row[6]).strip():
                logger.warning(f"이미 반납된 대여 갱신 시도: rental {number}")
                raise AlreadyClosedError(f'대여번호 {number} 은(는) 이미 반납 처리되었습니다.')

            start_time = _parse_sheet_datetime(f"{row[4].strip()} {row[5].strip()}", self.tz)
            end_text = format_end_time(start_time, end_time.astimezone(self.tz))

            # 반납 필드는 batch_update 한 번으로 기록 (부분 반영 없음)
            worksheet = await self._get_worksheet("rentals")
            await self._call(worksheet.batch_update, [
                {
                    'range': f'G{index}:J{index}',
                    'values': [[end_text, str(used_minutes), plan.value, str(fee)]],
                },
                {
                    'range': f'L{index}:M{index}',
                    'values': [[str(refund), returnable.value]],
                },
            ], value_input_option='RAW')

        logger.info(f"반납 기록 완료: rental {number} ({plan.value}, 요금 {fee}, 환불 {refund})")

    async def list_rentals(self, open_only: bool = False) -> List[RentalRecord]:
        records = await self._load_records()
        if open_only:
            return [record for record in records if record.is_open]
        return records

    async def append_sale_rows(self, sales: List[SaleRecord]) -> int:
        if not sales:
            return 0

        with self._write_lock:
            worksheet = await self._get_worksheet("sales")
            await self._call(worksheet.append_rows, [sale_to_row(sale) for sale in sales],
                             value_input_option='RAW')

        logger.info(f"판매 기록 추가: {len(sales)}건")
        return len(sales)
