from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import set_access_cookies, unset_jwt_cookies
from marshmallow import Schema, fields, EXCLUDE
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from models import db, User
from middleware import auth_required, get_current_user
from security import hash_password, check_password, issue_token
from validation import (load_request, validate_username, validate_password,
                        username_errors, password_errors)
from serializers import user_profile, user_summary
from extensions import limiter
from errors import ValidationError, Conflict, Unauthorized, ServerError
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class RegisterSchema(Schema):
    """註冊輸入 (規則檢查在 validation.py)"""
    class Meta:
        unknown = EXCLUDE

    username = fields.Str(required=True, error_messages={'required': 'Username is required'})
    password = fields.Str(required=True, error_messages={'required': 'Password is required'})


class LoginSchema(Schema):
    """登入輸入驗證"""
    class Meta:
        unknown = EXCLUDE

    username = fields.Str(required=True)
    password = fields.Str(required=True)

# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit(lambda: current_app.config['REGISTER_RATE_LIMIT'])
def register():
    """
    使用者註冊

    1. 帳號、密碼規則檢查 (在碰資料庫之前)
    2. 檢查 username 是否已存在
    3. bcrypt + pepper 雜湊密碼
    """
    result = load_request(RegisterSchema)

    errors = {}
    if not validate_username(result['username']):
        errors['username'] = username_errors(result['username'])
    if not validate_password(result['password']):
        errors['password'] = password_errors(result['password'])

    if errors:
        first_message = next(iter(errors.values()))[0]
        raise ValidationError(first_message, details=errors)

    if User.query.filter_by(username=result['username']).first():
        raise Conflict('Username already taken')

    user = User(
        username=result['username'],
        password_hash=hash_password(result['password'])
    )

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        # 兩個請求同時註冊同一個 username
        db.session.rollback()
        raise Conflict('Username already taken')
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Registration error for {result['username']}: {str(e)}", exc_info=True)
        raise ServerError('Registration failed due to server error')

    logger.info(f"New user registered: {user.username}")

    return jsonify({
        'message': 'User created',
        'user': user_profile(user)
    }), 201

# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit(lambda: current_app.config['LOGIN_RATE_LIMIT'])
def login():
    """
    使用者登入

    不區分是 username 錯還是 password 錯,避免帳號枚舉攻擊。
    Token 同時放在 httpOnly cookie 和 response body (給不用 cookie 的 client)
    """
    result = load_request(LoginSchema)

    user = User.query.filter_by(username=result['username']).first()

    if not user or not check_password(user.password_hash, result['password']):
        logger.warning(f"Failed login attempt for username: {result['username']}")
        raise Unauthorized()

    token = issue_token(user.id, user.username)

    logger.info(f"User logged in: {user.username}")

    response = jsonify({
        'message': 'Login successful',
        'token': token,
        'user': user_profile(user)
    })
    set_access_cookies(response, token)
    return response, 200

# ============================================
# 登出 API
# ============================================

@auth_bp.route('/logout', methods=['POST'])
@auth_required
def logout():
    """
    登出 (只清除 cookie)

    沒有 token 黑名單,已經外流的 token 在過期之前仍然有效
    """
    logger.info(f"User logged out: {get_current_user().username}")

    response = jsonify({'message': 'Logout successful'})
    unset_jwt_cookies(response)
    return response, 200

# ============================================
# 取得當前使用者資訊
# ============================================

@auth_bp.route('/profile', methods=['GET'])
@auth_required
def get_profile():
    return jsonify(user_profile(get_current_user())), 200

# ============================================
# 搜尋使用者
# ============================================

@auth_bp.route('/users/search', methods=['GET'])
@auth_required
def search_users():
    """用 username 做不分大小寫的部分比對,只回傳 id 和 username"""
    query = request.args.get('query', '').strip()
    if not query:
        return jsonify([]), 200

    limit = max(1, min(request.args.get('limit', 20, type=int), 50))

    users = User.query.filter(
        User.username.icontains(query, autoescape=True)
    ).order_by(User.username).limit(limit).all()

    return jsonify([user_summary(user) for user in users]), 200
