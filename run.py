#!/usr/bin/env python3
"""
가면 판매/대여 키오스크 Flask 웹 애플리케이션 실행 파일
"""

import os
import sys
import argparse
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from app import create_app, socketio


def main():
    """메인 함수"""
    parser = argparse.ArgumentParser(description='가면 키오스크 웹 애플리케이션')
    parser.add_argument('--host', default='0.0.0.0', help='호스트 주소')
    parser.add_argument('--port', type=int, default=5000, help='포트 번호')
    parser.add_argument('--debug', action='store_true', help='디버그 모드')
    parser.add_argument('--config', default='default', help='설정 환경 (development, production)')

    args = parser.parse_args()

    # 환경 변수 설정
    os.environ['FLASK_ENV'] = 'development' if args.debug else 'production'
    os.environ['FLASK_DEBUG'] = '1' if args.debug else '0'

    # Flask 앱 생성
    config_name = 'development' if args.debug else args.config
    app = create_app(config_name)

    # 시작 시간 기록
    from datetime import datetime
    app.config['START_TIME'] = datetime.now().isoformat()

    print("🎭 가면 판매/대여 키오스크")
    print("=" * 50)
    print(f"📱 모드: {'개발' if args.debug else '프로덕션'}")
    print(f"🌐 주소: http://{args.host}:{args.port}")
    print(f"📒 원장: {app.ledger_store.backend_name}")
    print(f"🔧 설정: {config_name}")
    print("=" * 50)

    try:
        # SocketIO 서버 실행
        socketio.run(
            app,
            host=args.host,
            port=args.port,
            debug=args.debug,
            use_reloader=args.debug,
            log_output=True
        )
    except KeyboardInterrupt:
        print("\n👋 애플리케이션 종료")
    except Exception as e:
        print(f"❌ 실행 오류: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
