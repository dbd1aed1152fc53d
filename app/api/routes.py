"""
REST API 엔드포인트
"""

import asyncio

from flask import jsonify, request, current_app

from app import socketio
from app.api import bp
from app.errors import RentalError, ValidationError
from app.services.clock import parse_timestamp
from app.services.pricing import (
    CATEGORY_LABELS, PLAN_BASE_FEES, RENTAL_PLANS, SALE_UNIT_PRICES,
    compute_plan, get_plan_display_name, get_rental_estimate_text, is_rental_allowed
)
from app.services.rental_ticket import build_rental_ticket


def _rental_service():
    return current_app.rental_service


def _error_response(error: RentalError):
    current_app.logger.warning(f'요청 거부: {error.code} {error.message}')
    return jsonify(error.to_dict()), error.http_status


def _int_arg(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} 값이 올바르지 않습니다: {value!r}')


def _optional_timestamp(value):
    if not value:
        return None
    try:
        return parse_timestamp(value, _rental_service().clock)
    except ValueError:
        raise ValidationError(f'시각 형식이 올바르지 않습니다: {value!r}')


@bp.route('/health')
def health_check():
    """헬스 체크"""
    store = current_app.ledger_store
    return jsonify({
        'status': 'healthy',
        'version': '1.0.0',
        'ledger_backend': store.backend_name,
        'timestamp': current_app.config.get('START_TIME', '')
    })


@bp.route('/pricing/plans', methods=['GET'])
def get_pricing_plans():
    """요금 플랜 / 카테고리 단가 목록"""
    return jsonify({
        'success': True,
        'plans': [{
            'plan': plan.value,
            'name': get_plan_display_name(plan),
            'fee': PLAN_BASE_FEES[plan]
        } for plan in RENTAL_PLANS],
        'categories': [{
            'category': category,
            'name': CATEGORY_LABELS.get(category, category),
            'unit_price': price,
            'rentable': is_rental_allowed(category)
        } for category, price in SALE_UNIT_PRICES.items()]
    })


@bp.route('/pricing/estimate', methods=['GET'])
def estimate_fee():
    """경과 시간 기준 예상 요금"""
    try:
        category = request.args.get('category', '')
        minutes = _int_arg(request.args.get('minutes'), 'minutes')
        plan, fee = compute_plan(category, minutes)

        return jsonify({
            'success': True,
            'category': category,
            'minutes': minutes,
            'plan': plan.value,
            'plan_name': get_plan_display_name(plan),
            'fee': fee,
            'estimate_text': get_rental_estimate_text(plan)
        })

    except RentalError as e:
        return _error_response(e)


@bp.route('/rentals/next-number', methods=['GET'])
def next_rental_number():
    """다음 대여번호 미리보기"""
    try:
        number = asyncio.run(_rental_service().next_rental_number())
        return jsonify({'success': True, 'rental_no': number})

    except RentalError as e:
        return _error_response(e)


@bp.route('/rentals', methods=['POST'])
def open_rental():
    """대여 시작 (체크아웃)"""
    try:
        data = request.get_json(silent=True) or {}

        deposit = data.get('deposit')
        if deposit is not None and not isinstance(deposit, int):
            raise ValidationError(f'보증금 값이 올바르지 않습니다: {deposit!r}')

        record = asyncio.run(_rental_service().open_rental(
            item_name=data.get('item_name', ''),
            category=data.get('category', ''),
            customer_name=data.get('customer_name', ''),
            deposit_amount=deposit,
            start_time=_optional_timestamp(data.get('start_time')),
            staff=data.get('staff'),
            note=data.get('note', '')
        ))

        socketio.emit('rental_opened', record.to_dict(), room='kiosk')

        return jsonify({
            'success': True,
            'rental': record.to_dict(),
            'ticket': build_rental_ticket(record)
        }), 201

    except RentalError as e:
        return _error_response(e)
    except Exception as e:
        current_app.logger.error(f'대여 시작 오류: {e}')
        return jsonify({'success': False, 'error': 'INTERNAL_ERROR', 'message': str(e)}), 500


@bp.route('/rentals/search', methods=['GET'])
def search_rentals():
    """반납 대상 검색 (대여번호 또는 이름)"""
    try:
        rental_no = request.args.get('rental_no')
        name = request.args.get('name')

        if rental_no:
            records = asyncio.run(_rental_service().search_open_rentals(number=rental_no))
        else:
            records = asyncio.run(_rental_service().search_open_rentals(name=name))

        return jsonify({
            'success': True,
            'rentals': [record.to_dict() for record in records],
            'count': len(records)
        })

    except RentalError as e:
        return _error_response(e)
    except Exception as e:
        current_app.logger.error(f'대여 검색 오류: {e}')
        return jsonify({'success': False, 'error': 'INTERNAL_ERROR', 'message': str(e)}), 500


@bp.route('/rentals/<rental_no>/return', methods=['POST'])
def return_rental(rental_no):
    """반납 처리"""
    try:
        data = request.get_json(silent=True) or {}

        record = asyncio.run(_rental_service().close_rental(
            rental_no,
            returnable=data.get('returnable', ''),
            end_time=_optional_timestamp(data.get('end_time'))
        ))

        socketio.emit('rental_returned', record.to_dict(), room='kiosk')

        return jsonify({
            'success': True,
            'rental': record.to_dict(),
            'used_minutes': record.used_minutes,
            'plan': record.plan.value,
            'plan_name': get_plan_display_name(record.plan),
            'fee': record.fee,
            'deposit': record.deposit_amount,
            'refund': record.refund,
            'returnable': record.returnable.value
        })

    except RentalError as e:
        return _error_response(e)
    except Exception as e:
        current_app.logger.error(f'반납 처리 오류: {e}')
        return jsonify({'success': False, 'error': 'INTERNAL_ERROR', 'message': str(e)}), 500


@bp.route('/sales', methods=['POST'])
def record_sales():
    """판매 기록 (장바구니 판매 품목)"""
    try:
        data = request.get_json(silent=True) or {}
        items = data.get('items')
        if not isinstance(items, list):
            raise ValidationError('items 목록이 필요합니다.')

        sales = asyncio.run(_rental_service().record_sale(
            items,
            staff=data.get('staff'),
            sold_at=_optional_timestamp(data.get('sold_at'))
        ))

        return jsonify({
            'success': True,
            'sales': [sale.to_dict() for sale in sales],
            'total': sum(sale.subtotal for sale in sales)
        }), 201

    except RentalError as e:
        return _error_response(e)
    except Exception as e:
        current_app.logger.error(f'판매 기록 오류: {e}')
        return jsonify({'success': False, 'error': 'INTERNAL_ERROR', 'message': str(e)}), 500
