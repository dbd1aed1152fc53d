"""
원장 저장소 선택

구글시트 ID 와 서비스 계정 인증 정보가 있으면 구글시트 원장,
없으면 SQLite 로컬 원장(오프라인 모드)을 사용한다.
"""

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from app.errors import StoreError
from data_sources.google_sheets import GoogleSheetsLedgerStore
from database.database_manager import create_database_manager
from database.ledger_store import LedgerStore, SqliteLedgerStore

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "kiosk_config.json"


def load_kiosk_config(config_path=None) -> Dict[str, Any]:
    """설정 파일 로드 (없거나 깨진 경우 빈 딕셔너리)"""
    config_path = Path(config_path or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        return {}

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"설정 파일 로드 실패: {config_path}, {e}")
        return {}


def decode_service_account(value: str) -> Optional[Dict[str, Any]]:
    """base64 로 인코딩된 서비스 계정 JSON 디코딩"""
    if not value:
        return None
    try:
        return json.loads(base64.b64decode(value).decode('utf-8'))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.error(f"서비스 계정 정보 디코딩 실패: {e}")
        return None


def _resolve_path(path: str) -> Path:
    resolved = Path(path)
    if not resolved.is_absolute():
        resolved = PROJECT_ROOT / resolved
    return resolved


def _sheets_configured(config: Mapping[str, Any]) -> bool:
    if not config.get('GOOGLE_SHEETS_SPREADSHEET_ID'):
        return False
    if config.get('GOOGLE_SERVICE_ACCOUNT_BASE64'):
        return True
    credentials_file = config.get('GOOGLE_CREDENTIALS_FILE')
    return bool(credentials_file) and _resolve_path(credentials_file).exists()


def create_sheets_store(config: Mapping[str, Any]) -> GoogleSheetsLedgerStore:
    """구글시트 원장 생성 및 연결"""
    credentials_file = config.get('GOOGLE_CREDENTIALS_FILE')
    store = GoogleSheetsLedgerStore(
        spreadsheet_id=config['GOOGLE_SHEETS_SPREADSHEET_ID'],
        credentials_file=str(_resolve_path(credentials_file)) if credentials_file else None,
        credentials_info=decode_service_account(config.get('GOOGLE_SERVICE_ACCOUNT_BASE64', '')),
        sheet_names=config.get('GOOGLE_SHEET_NAMES'),
        timeout_seconds=config.get('LEDGER_TIMEOUT_SECONDS', 10),
        offset_hours=config.get('TIMEZONE_OFFSET_HOURS', 9)
    )

    if not store.connect():
        raise StoreError('구글시트 원장 연결 실패')
    return store


def create_sqlite_store(config: Mapping[str, Any]) -> SqliteLedgerStore:
    """SQLite 로컬 원장 생성"""
    # 상대 경로는 실행 위치가 아니라 프로젝트 루트 기준 (scripts/init_database.py 와 동일)
    db_path = _resolve_path(config.get('DB_PATH') or 'instance/omen_kiosk.db')
    try:
        db_manager = create_database_manager(
            str(db_path), initialize=True, timeout=config.get('LEDGER_TIMEOUT_SECONDS', 10)
        )
    except Exception as e:
        raise StoreError(f'로컬 원장 초기화 실패: {e}') from e
    return SqliteLedgerStore(db_manager)


def create_ledger_store(config: Mapping[str, Any]) -> LedgerStore:
    """설정에 맞는 원장 저장소 생성

    Args:
        config: LEDGER_BACKEND ('auto' | 'sheets' | 'sqlite') 등을 담은 설정

    Returns:
        LedgerStore 구현체
    """
    backend = (config.get('LEDGER_BACKEND') or 'auto').lower()

    if backend == 'sheets':
        store = create_sheets_store(config)
    elif backend == 'sqlite':
        store = create_sqlite_store(config)
    elif backend == 'auto':
        if _sheets_configured(config):
            try:
                store = create_sheets_store(config)
            except StoreError as e:
                logger.warning(f"⚠️ {e.message}, 로컬 원장(오프라인 모드)으로 전환")
                store = create_sqlite_store(config)
        else:
            store = create_sqlite_store(config)
    else:
        raise StoreError(f'알 수 없는 원장 종류: {backend}')

    logger.info(f"원장 저장소: {store.backend_name}")
    return store
