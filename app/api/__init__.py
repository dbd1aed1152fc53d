"""
REST API 블루프린트
"""

from flask import Blueprint

bp = Blueprint('api', __name__)

from app.api import routes  # noqa: E402,F401
