"""
WebSocket 이벤트 핸들러

대여 시작/반납 시 다른 키오스크 화면이 목록을 새로 고칠 수 있도록
모든 클라이언트를 'kiosk' 방에 넣는다.
"""

from flask_socketio import emit, join_room, leave_room
from flask import request, current_app
from app import socketio


@socketio.on('connect')
def handle_connect():
    """클라이언트 연결"""
    client_id = request.sid
    current_app.logger.info(f'클라이언트 연결: {client_id}')

    # 키오스크 방에 참가
    join_room('kiosk')

    emit('connected', {
        'status': 'success',
        'client_id': client_id,
        'message': '가면 키오스크에 연결되었습니다.'
    })


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    """클라이언트 연결 해제"""
    client_id = request.sid
    current_app.logger.info(f'클라이언트 연결 해제: {client_id}')

    leave_room('kiosk')
