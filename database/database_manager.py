"""
SQLite 데이터베이스 연결 및 기본 CRUD 관리

가면 키오스크 로컬 원장(오프라인 모드)의 데이터베이스 레이어 핵심 클래스
"""

import sqlite3
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any, Union
from pathlib import Path
import threading
from contextlib import contextmanager


class DatabaseManager:
    """SQLite 데이터베이스 연결 및 기본 CRUD 관리"""

    def __init__(self, db_path: str = 'instance/omen_kiosk.db', timeout: float = 30.0):
        """
        Args:
            db_path: SQLite 데이터베이스 파일 경로
            timeout: 잠금 대기 시간 (초)
        """
        self.db_path = db_path
        self.timeout = timeout
        self.conn: Optional[sqlite3.Connection] = None
        self.logger = logging.getLogger(__name__)
        self._lock = threading.RLock()  # 스레드 안전성을 위한 락

    def connect(self) -> bool:
        """데이터베이스 연결

        Returns:
            연결 성공 여부
        """
        try:
            with self._lock:
                if self.conn:
                    self.conn.close()

                parent = Path(self.db_path).parent
                if str(parent) and not parent.exists():
                    parent.mkdir(parents=True, exist_ok=True)

                self.conn = sqlite3.connect(
                    self.db_path,
                    check_same_thread=False,
                    timeout=self.timeout,
                    isolation_level=None  # autocommit 모드
                )

                # Row 팩토리 설정 (딕셔너리 형태로 결과 반환)
                self.conn.row_factory = sqlite3.Row

                # WAL 모드 활성화 (동시성 향상)
                self.conn.execute("PRAGMA journal_mode = WAL")

                # 동기화 모드 설정 (성능 향상)
                self.conn.execute("PRAGMA synchronous = NORMAL")

                self.logger.info(f"데이터베이스 연결 성공: {self.db_path}")
                return True

        except Exception as e:
            self.logger.error(f"데이터베이스 연결 실패: {e}")
            return False

    def initialize_schema(self) -> bool:
        """스키마 초기화

        Returns:
            초기화 성공 여부
        """
        try:
            with self._lock:
                if not self.conn:
                    self.logger.error("데이터베이스 연결이 필요합니다")
                    return False

                schema_path = Path(__file__).parent / "schema.sql"

                if not schema_path.exists():
                    self.logger.error(f"스키마 파일을 찾을 수 없습니다: {schema_path}")
                    return False

                with open(schema_path, 'r', encoding='utf-8') as f:
                    schema_sql = f.read()

                self.conn.executescript(schema_sql)
                self.logger.info("데이터베이스 스키마 초기화 완료")
                return True

        except Exception as e:
            self.logger.error(f"스키마 초기화 실패: {e}")
            return False

    def execute_query(self, query: str, params: Union[tuple, dict] = (),
                      strict: bool = False) -> Optional[sqlite3.Cursor]:
        """쿼리 실행

        Args:
            query: SQL 쿼리
            params: 쿼리 파라미터
            strict: True 이면 실패 시 None 대신 예외를 다시 던짐

        Returns:
            커서 객체 또는 None
        """
        try:
            with self._lock:
                if not self.conn:
                    self.logger.error("데이터베이스 연결이 필요합니다")
                    if strict:
                        raise sqlite3.OperationalError("데이터베이스 연결 없음")
                    return None

                cursor = self.conn.execute(query, params)
                self.logger.debug(f"쿼리 실행: {query[:100]}...")
                return cursor

        except Exception as e:
            self.logger.error(f"쿼리 실행 실패: {query[:100]}..., 오류: {e}")
            if strict:
                raise
            return None

    def execute_many(self, query: str, params_list: List[Union[tuple, dict]],
                     strict: bool = False) -> bool:
        """다중 쿼리 실행

        Args:
            query: SQL 쿼리
            params_list: 파라미터 리스트
            strict: True 이면 실패 시 False 대신 예외를 다시 던짐

        Returns:
            실행 성공 여부
        """
        try:
            with self._lock:
                if not self.conn:
                    self.logger.error("데이터베이스 연결이 필요합니다")
                    if strict:
                        raise sqlite3.OperationalError("데이터베이스 연결 없음")
                    return False

                self.conn.executemany(query, params_list)
                self.logger.debug(f"다중 쿼리 실행 완료: {len(params_list)}건")
                return True

        except Exception as e:
            self.logger.error(f"다중 쿼리 실행 실패: {e}")
            if strict:
                raise
            return False

    def begin_transaction(self):
        """트랜잭션 시작 (실패 시 예외)"""
        with self._lock:
            if not self.conn:
                raise sqlite3.OperationalError("데이터베이스 연결 없음")
            self.conn.execute("BEGIN IMMEDIATE")
            self.logger.debug("트랜잭션 시작")

    def commit(self):
        """트랜잭션 커밋 (실패 시 예외)"""
        with self._lock:
            if self.conn:
                self.conn.commit()
                self.logger.debug("트랜잭션 커밋")

    def rollback(self):
        """트랜잭션 롤백"""
        try:
            with self._lock:
                if self.conn:
                    self.conn.rollback()
                    self.logger.debug("트랜잭션 롤백")
        except Exception as e:
            self.logger.error(f"트랜잭션 롤백 실패: {e}")

    @contextmanager
    def transaction(self):
        """트랜잭션 블록 (예외 시 롤백 후 다시 던짐)

        블록이 끝날 때까지 연결 락을 잡고 있으므로 다른 스레드의 쿼리는 대기한다.
        """
        with self._lock:
            self.begin_transaction()
            try:
                yield self
            except Exception:
                self.rollback()
                raise
            self.commit()

    def close(self):
        """연결 종료"""
        try:
            with self._lock:
                if self.conn:
                    self.conn.close()
                    self.conn = None
                    self.logger.info("데이터베이스 연결 종료")
        except Exception as e:
            self.logger.error(f"연결 종료 실패: {e}")

    # =====================================================
    # 편의 메서드들
    # =====================================================

    def get_system_setting(self, key: str, default_value: Any = None) -> Any:
        """시스템 설정 조회

        Args:
            key: 설정 키
            default_value: 기본값

        Returns:
            설정 값
        """
        cursor = self.execute_query(
            "SELECT setting_value, setting_type FROM system_settings WHERE setting_key = ?",
            (key,)
        )

        if cursor:
            row = cursor.fetchone()
            if row:
                value = row['setting_value']
                setting_type = row['setting_type']

                # 타입에 따른 변환
                if setting_type == 'integer':
                    return int(value)
                elif setting_type == 'boolean':
                    return value.lower() in ('true', '1', 'yes')
                elif setting_type == 'json':
                    return json.loads(value)
                else:
                    return value

        return default_value

    def set_system_setting(self, key: str, value: Any, setting_type: str = 'string') -> bool:
        """시스템 설정 저장

        Args:
            key: 설정 키
            value: 설정 값
            setting_type: 값 타입

        Returns:
            저장 성공 여부
        """
        try:
            if setting_type == 'json':
                str_value = json.dumps(value)
            elif setting_type == 'boolean':
                str_value = 'true' if value else 'false'
            else:
                str_value = str(value)

            cursor = self.execute_query("""
                INSERT OR REPLACE INTO system_settings
                (setting_key, setting_value, setting_type)
                VALUES (?, ?, ?)
            """, (key, str_value, setting_type))

            return cursor is not None

        except Exception as e:
            self.logger.error(f"시스템 설정 저장 실패: {key}={value}, 오류: {e}")
            return False

    def get_database_stats(self) -> Dict[str, Any]:
        """데이터베이스 통계 정보

        Returns:
            통계 정보 딕셔너리
        """
        stats = {}

        try:
            for table in ['rentals', 'sales']:
                cursor = self.execute_query(f"SELECT COUNT(*) as count FROM {table}")
                if cursor:
                    row = cursor.fetchone()
                    stats[f'{table}_count'] = row['count'] if row else 0

            # 대여중 건수
            cursor = self.execute_query("SELECT COUNT(*) as count FROM rentals WHERE end_time IS NULL")
            if cursor:
                row = cursor.fetchone()
                stats['open_rentals'] = row['count'] if row else 0

            db_path = Path(self.db_path)
            if db_path.exists():
                stats['db_size_bytes'] = db_path.stat().st_size
                stats['db_size_mb'] = round(stats['db_size_bytes'] / (1024 * 1024), 2)

            stats['last_updated'] = datetime.now(timezone.utc).isoformat()

        except Exception as e:
            self.logger.error(f"통계 정보 조회 실패: {e}")

        return stats


def create_database_manager(db_path: str = 'instance/omen_kiosk.db', initialize: bool = True,
                            timeout: float = 30.0) -> DatabaseManager:
    """데이터베이스 매니저 생성 및 초기화

    Args:
        db_path: 데이터베이스 파일 경로
        initialize: 스키마 초기화 여부
        timeout: 잠금 대기 시간 (초)

    Returns:
        초기화된 DatabaseManager 인스턴스
    """
    manager = DatabaseManager(db_path, timeout=timeout)

    if not manager.connect():
        raise Exception("데이터베이스 연결 실패")

    if initialize:
        if not manager.initialize_schema():
            raise Exception("데이터베이스 스키마 초기화 실패")

    return manager
