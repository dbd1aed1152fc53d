"""
대여 엔진 오류 분류

각 오류는 호출 측(체크아웃/반납 화면)이 메시지를 고를 수 있도록
고정된 code 값을 가진다.
"""


class RentalError(Exception):
    """대여 엔진 오류 기본 클래스"""

    code = 'RENTAL_ERROR'
    http_status = 500

    def __init__(self, message: str = ''):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {
            'success': False,
            'error': self.code,
            'message': self.message
        }


class ValidationError(RentalError):
    """잘못된 입력 (음수 보증금, 시작 전 종료시각 등)"""

    code = 'VALIDATION_ERROR'
    http_status = 400


class InvalidStateError(RentalError):
    """현재 상태에서 허용되지 않는 전이 (이미 반납됨 등)"""

    code = 'INVALID_STATE'
    http_status = 409


class NotFoundError(RentalError):
    """해당 번호의 대여 기록 없음"""

    code = 'NOT_FOUND'
    http_status = 404


class StoreError(RentalError):
    """원장 저장소(SQLite / 구글시트) 오류"""

    code = 'STORE_ERROR'
    http_status = 503


class RecordNotFoundError(StoreError):
    """갱신 대상 행이 원장에 없음"""

    code = 'STORE_NOT_FOUND'


class AlreadyClosedError(StoreError):
    """갱신 시점에 이미 반납 처리된 행"""

    code = 'STORE_ALREADY_CLOSED'


class DuplicateRentalNumberError(StoreError):
    """동일 대여번호가 이미 원장에 존재"""

    code = 'DUPLICATE_RENTAL_NUMBER'


class StoreTimeoutError(StoreError):
    """원장 요청 타임아웃 (성공 여부 불명)"""

    code = 'STORE_TIMEOUT'
