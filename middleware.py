"""
Session 驗證

token 的讀取 (cookie 優先,其次 Authorization: Bearer)、簽章和過期檢查都交給
Flask-JWT-Extended,位置由 JWT_TOKEN_LOCATION / JWT_HEADER_TYPE 決定。
這裡負責把它的各種失敗統一成 NoToken / InvalidToken 兩種回應。
"""
from functools import wraps
from flask import jsonify, request
from flask_jwt_extended import verify_jwt_in_request, current_user
from models import db, User
from security import has_session_claims
from errors import NoToken, InvalidToken
import logging

logger = logging.getLogger(__name__)


def _error_response(error):
    return jsonify(error.to_dict()), error.status_code

# ============================================
# JWT callbacks
# ============================================

def register_jwt_callbacks(jwt):
    """在 create_app() 裡呼叫,jwt 是該 app 的 JWTManager"""

    @jwt.user_lookup_loader
    def load_session_user(jwt_header, jwt_data):
        return db.session.get(User, jwt_data['id'])

    @jwt.user_lookup_error_loader
    def session_user_not_found(jwt_header, jwt_data):
        """token 有效但使用者已經不存在"""
        logger.warning(f"Token valid but user not found: {jwt_data.get('id')}")
        return _error_response(InvalidToken())

    @jwt.token_verification_loader
    def verify_session_claims(jwt_header, jwt_data):
        return has_session_claims(jwt_data)

    @jwt.token_verification_failed_loader
    def session_claims_invalid(jwt_header, jwt_data):
        logger.warning(f"Token without session claims from: {request.remote_addr}")
        return _error_response(InvalidToken())

    @jwt.unauthorized_loader
    def missing_token(error):
        """沒有 token"""
        logger.warning(f"Unauthorized access attempt from: {request.remote_addr}")
        return _error_response(NoToken())

    # 過期、簽章錯誤、格式錯誤、token 類型錯誤: client 看到的都是同一個 InvalidToken
    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return _error_response(InvalidToken())

    @jwt.invalid_token_loader
    def invalid_token(error):
        logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return _error_response(InvalidToken())

# ============================================
# Decorator
# ============================================

def auth_required(f):
    """
    需要登入的 endpoint

    驗證失敗時 handler 不會執行,由上面的 callbacks 產生 401
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        verify_jwt_in_request()
        return f(*args, **kwargs)

    return decorated


def get_current_user():
    """取得當前登入的使用者 (只能在 @auth_required 之後使用)"""
    return current_user._get_current_object()
