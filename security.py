"""
密碼雜湊與 session token

- 密碼: bcrypt(password + pepper),cost factor 由 BCRYPT_LOG_ROUNDS 決定
- Token: Flask-JWT-Extended 簽發的 access token,claims 帶 id 與 username
"""
from flask import current_app
from flask_bcrypt import Bcrypt
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
import logging

from errors import InvalidToken

logger = logging.getLogger(__name__)

# ============================================
# 密碼雜湊
# ============================================

def get_bcrypt():
    """從 Flask app extensions 取得 bcrypt 實例 (不用 global variable)"""
    bcrypt = current_app.extensions.get('bcrypt')
    if bcrypt is None:
        bcrypt = Bcrypt(current_app)
        current_app.extensions['bcrypt'] = bcrypt
    return bcrypt


def _peppered(password):
    return password + current_app.config['PEPPER']


def hash_password(password):
    bcrypt = get_bcrypt()
    return bcrypt.generate_password_hash(
        _peppered(password),
        current_app.config['BCRYPT_LOG_ROUNDS']
    ).decode('utf-8')


def check_password(password_hash, password):
    return get_bcrypt().check_password_hash(password_hash, _peppered(password))

# ============================================
# Token Service
# ============================================

def issue_token(user_id, username, expires_delta=None):
    """
    簽發 access token

    過期時間預設為 JWT_ACCESS_TOKEN_EXPIRES (4 小時)
    """
    kwargs = {}
    if expires_delta is not None:
        kwargs['expires_delta'] = expires_delta

    return create_access_token(
        identity=str(user_id),
        additional_claims={'id': user_id, 'username': username},
        **kwargs
    )


def has_session_claims(claims):
    """session token 必須是 access token,而且帶著整數的 user id"""
    return claims.get('type') == 'access' and isinstance(claims.get('id'), int)


def verify_token(token):
    """
    驗證 token 並回傳 claims

    過期、簽章錯誤、格式錯誤全部都是 InvalidToken,
    呼叫端無法分辨是哪一種 (避免被當成 oracle)
    """
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException, ValueError) as e:
        logger.info(f"Token verification failed: {type(e).__name__}")
        raise InvalidToken()

    if not has_session_claims(claims):
        raise InvalidToken()

    return claims
