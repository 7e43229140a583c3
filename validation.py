"""
輸入驗證

- 帳號密碼規則是純函數,不碰資料庫
- load_request() 是所有 endpoint 共用的 marshmallow 驗證入口
"""
from flask import request
from marshmallow import ValidationError as SchemaValidationError
import re

from errors import ValidationError

USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9]{3,20}$')

PASSWORD_SYMBOLS = '@$!%*?&'
PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128
PASSWORD_ALLOWED = re.compile(r'^[A-Za-z0-9@$!%*?&]*$')

USERNAME_RULE_MESSAGE = 'Your username should have 3-20 alphanumeric characters'

# ============================================
# 帳號 / 密碼規則
# ============================================

def username_errors(username):
    if not isinstance(username, str) or not USERNAME_PATTERN.match(username):
        return [USERNAME_RULE_MESSAGE]
    return []


def password_errors(password):
    """回傳每一條沒通過的規則各一個訊息"""
    if not isinstance(password, str):
        return ['Password is required']

    errors = []
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        errors.append(f'Password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters')
    if not re.search(r'[a-z]', password):
        errors.append('Password must contain at least one lowercase letter')
    if not re.search(r'[A-Z]', password):
        errors.append('Password must contain at least one uppercase letter')
    if not re.search(r'\d', password):
        errors.append('Password must contain at least one number')
    if not any(symbol in password for symbol in PASSWORD_SYMBOLS):
        errors.append(f'Password must contain at least one special sign ({PASSWORD_SYMBOLS})')
    if not PASSWORD_ALLOWED.match(password):
        errors.append(f'Password may only contain letters, numbers and {PASSWORD_SYMBOLS}')
    return errors


def validate_username(username):
    return not username_errors(username)


def validate_password(password):
    return not password_errors(password)

# ============================================
# Request body 驗證
# ============================================

def load_request(schema_class, data=None):
    """
    用 marshmallow schema 驗證 request body

    失敗時丟 ValidationError,details 是 marshmallow 的欄位錯誤
    """
    if data is None:
        data = request.get_json(silent=True)

    if not isinstance(data, dict):
        raise ValidationError('Request body must be JSON')

    try:
        return schema_class().load(data)
    except SchemaValidationError as err:
        raise ValidationError('Validation failed', details=err.messages)
