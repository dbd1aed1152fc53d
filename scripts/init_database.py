#!/usr/bin/env python3
"""
로컬 원장 데이터베이스 초기화 스크립트

SQLite 데이터베이스를 생성하고 스키마를 초기화합니다.
"""

import sys
import os
import argparse
import logging
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from database.database_manager import create_database_manager


def setup_logging():
    """로깅 설정"""
    logs_dir = project_root / 'logs'
    logs_dir.mkdir(exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(logs_dir / 'database_init.log', encoding='utf-8')
        ]
    )


def main():
    """메인 함수"""
    parser = argparse.ArgumentParser(description='가면 키오스크 로컬 원장 초기화')
    parser.add_argument('--db-path', default=str(project_root / 'instance' / 'omen_kiosk.db'),
                        help='데이터베이스 파일 경로')
    parser.add_argument('--backup', action='store_true', help='기존 데이터베이스를 백업 후 새로 생성')
    args = parser.parse_args()

    print("🚀 가면 키오스크 로컬 원장 초기화")
    print("=" * 50)

    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        db_path = Path(args.db_path)

        # 기존 데이터베이스 백업 (요청한 경우)
        if args.backup and db_path.exists():
            backup_path = db_path.with_name(f'{db_path.stem}_backup_{int(os.path.getmtime(db_path))}.db')
            print(f"📦 기존 데이터베이스 백업: {backup_path}")
            os.rename(db_path, backup_path)

        print("🔧 데이터베이스 매니저 생성 중...")
        db_manager = create_database_manager(str(db_path), initialize=True)

        stats = db_manager.get_database_stats()
        print("📊 데이터베이스 초기화 완료!")
        print(f"   • 대여 기록: {stats.get('rentals_count', 0)}건")
        print(f"   • 대여중: {stats.get('open_rentals', 0)}건")
        print(f"   • 판매 기록: {stats.get('sales_count', 0)}건")
        print(f"   • 데이터베이스 크기: {stats.get('db_size_mb', 0)}MB")
        print(f"   • 스키마 버전: {db_manager.get_system_setting('system_version')}")

        db_manager.close()

        print("\n✅ 데이터베이스 초기화가 성공적으로 완료되었습니다!")
        print(f"📁 데이터베이스 파일: {db_path}")

        return True

    except Exception as e:
        logger.error(f"데이터베이스 초기화 실패: {e}")
        print(f"\n❌ 초기화 실패: {e}")
        return False


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
