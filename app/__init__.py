"""
가면 판매/대여 키오스크 Flask 웹 애플리케이션

체크아웃(대여 시작)과 반납 화면이 호출하는 API 서버
"""

from flask import Flask, jsonify
from flask_socketio import SocketIO
import logging
import os
from pathlib import Path

# SocketIO 인스턴스 (전역)
socketio = SocketIO()

# kiosk_config.json 키 -> Flask 설정 키
FILE_CONFIG_KEYS = {
    'ledger_backend': 'LEDGER_BACKEND',
    'db_path': 'DB_PATH',
    'timezone_offset_hours': 'TIMEZONE_OFFSET_HOURS',
    'clamp_refund': 'CLAMP_REFUND',
    'staff_name': 'STAFF_NAME',
    'ledger_timeout_seconds': 'LEDGER_TIMEOUT_SECONDS',
}

# 환경변수 -> 변환 함수 (설정 키는 환경변수 이름과 같음)
ENV_CONFIG_KEYS = {
    'LEDGER_BACKEND': str,
    'DB_PATH': str,
    'TIMEZONE_OFFSET_HOURS': int,
    'CLAMP_REFUND': lambda value: value.lower() in ('true', '1', 'yes'),
    'STAFF_NAME': str,
    'LEDGER_TIMEOUT_SECONDS': float,
    'GOOGLE_SHEETS_SPREADSHEET_ID': str,
    'GOOGLE_CREDENTIALS_FILE': str,
    'GOOGLE_SERVICE_ACCOUNT_BASE64': str,
}


def create_app(config_name='default', test_config=None):
    """Flask 애플리케이션 팩토리"""

    app = Flask(__name__)

    # 기본 설정
    app.config.update(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-key-change-in-production'),
        DEBUG=os.environ.get('FLASK_DEBUG', 'False').lower() == 'true',
        TESTING=False,

        # 원장 설정
        LEDGER_BACKEND='auto',
        DB_PATH='instance/omen_kiosk.db',
        LEDGER_TIMEOUT_SECONDS=10,
        GOOGLE_SHEETS_SPREADSHEET_ID='',
        GOOGLE_CREDENTIALS_FILE='config/google_credentials.json',
        GOOGLE_SERVICE_ACCOUNT_BASE64='',
        GOOGLE_SHEET_NAMES={'rentals': 'Rentals', 'sales': 'Sales'},

        # 대여 설정
        TIMEZONE_OFFSET_HOURS=9,
        CLAMP_REFUND=False,
        STAFF_NAME='staffA',

        KIOSK_CONFIG_PATH=os.environ.get('KIOSK_CONFIG_PATH', ''),
    )

    # kiosk_config.json / 환경변수
    load_config(app)

    # 환경별 설정 로드
    if config_name == 'development':
        app.config.update(DEBUG=True)
    elif config_name == 'production':
        app.config.update(DEBUG=False)
    elif config_name == 'testing':
        app.config.update(TESTING=True, LEDGER_BACKEND='sqlite')

    if test_config:
        app.config.update(test_config)

    # 로깅 설정
    setup_logging(app)

    # SocketIO 초기화 (키오스크는 폴링 기반이므로 threading 기본)
    async_mode = os.environ.get("SOCKETIO_ASYNC_MODE", "threading")
    socketio.init_app(app, cors_allowed_origins="*", async_mode=async_mode)
    app.logger.info(f"🧵 SocketIO async_mode={async_mode}")

    # 대여 엔진 초기화
    setup_rental_service(app)

    # 블루프린트 등록
    register_blueprints(app)

    # 에러 핸들러 등록
    register_error_handlers(app)

    # 종료 시 원장 정리
    setup_shutdown_hook(app)

    app.logger.info("🚀 가면 키오스크 웹 애플리케이션 초기화 완료")

    return app


def load_config(app):
    """kiosk_config.json 과 환경변수 설정 반영 (환경변수 우선)"""
    from app.services.ledger_factory import load_kiosk_config

    file_config = load_kiosk_config(app.config.get('KIOSK_CONFIG_PATH') or None)

    for file_key, config_key in FILE_CONFIG_KEYS.items():
        if file_key in file_config:
            app.config[config_key] = file_config[file_key]

    sheets_config = file_config.get('google_sheets', {})
    if sheets_config.get('spreadsheet_id'):
        app.config['GOOGLE_SHEETS_SPREADSHEET_ID'] = sheets_config['spreadsheet_id']
    if sheets_config.get('credentials_file'):
        app.config['GOOGLE_CREDENTIALS_FILE'] = sheets_config['credentials_file']
    if sheets_config.get('sheet_names'):
        app.config['GOOGLE_SHEET_NAMES'] = sheets_config['sheet_names']

    for env_key, convert in ENV_CONFIG_KEYS.items():
        value = os.environ.get(env_key)
        if value:
            app.config[env_key] = convert(value)


def setup_rental_service(app):
    """원장 저장소 선택 및 대여 엔진 생성"""
    from app.services.clock import KioskClock
    from app.services.ledger_factory import create_ledger_store
    from app.services.rental_service import RentalService

    store = create_ledger_store(app.config)
    app.ledger_store = store
    app.rental_service = RentalService(
        store,
        clock=KioskClock(app.config['TIMEZONE_OFFSET_HOURS']),
        clamp_refund=app.config['CLAMP_REFUND'],
        staff_name=app.config['STAFF_NAME']
    )
    app.logger.info(
        f"대여 엔진 준비: 원장={store.backend_name}, 환불 0 처리={app.config['CLAMP_REFUND']}"
    )


def setup_shutdown_hook(app):
    """종료 시 원장 연결 정리"""
    import atexit

    def cleanup_on_exit():
        store = getattr(app, 'ledger_store', None)
        if store:
            store.close()

    if not app.config.get('TESTING', False):
        atexit.register(cleanup_on_exit)
        app.logger.info("종료 hook 등록 완료")


def setup_logging(app):
    """로깅 설정"""
    if not app.debug and not app.testing:
        # 프로덕션 로깅
        log_dir = Path(__file__).parent.parent / 'logs'
        log_dir.mkdir(exist_ok=True)

        file_handler = logging.FileHandler(log_dir / 'kiosk.log', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))

        app.logger.addHandler(file_handler)
        app.logger.setLevel(logging.INFO)

        # 서비스/원장 모듈 로그도 같은 파일로
        for name in ('app.services', 'database', 'data_sources'):
            module_logger = logging.getLogger(name)
            module_logger.addHandler(file_handler)
            module_logger.setLevel(logging.INFO)


def register_blueprints(app):
    """블루프린트 등록"""

    # API 라우트
    from app.api import bp as api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # WebSocket 이벤트
    from app import events  # noqa: F401


def register_error_handlers(app):
    """에러 핸들러 등록"""
    from app.errors import RentalError

    @app.errorhandler(RentalError)
    def rental_error(error):
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({
            'success': False,
            'error': 'NOT_FOUND',
            'message': '요청한 경로를 찾을 수 없습니다.'
        }), 404

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f'서버 오류: {error}')
        return jsonify({
            'success': False,
            'error': 'INTERNAL_ERROR',
            'message': '서버 오류가 발생했습니다.'
        }), 500
