"""
API 錯誤類型

handler 只需要 raise,統一由 app.py 的 error handler 轉成 JSON 回應。
回應格式: {'error': <code>, 'message': <text>, 'details': <optional>}
"""


class APIError(Exception):
    status_code = 500
    error = 'server_error'
    message = 'An internal error occurred'

    def __init__(self, message=None, details=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.details = details

    def to_dict(self):
        body = {
            'error': self.error,
            'message': self.message
        }
        if self.details is not None:
            body['details'] = self.details
        return body


class ValidationError(APIError):
    """使用者可以自行修正的輸入錯誤"""
    status_code = 400
    error = 'validation_error'
    message = 'Validation failed'


class VersionError(APIError):
    """文件版本號沒有遞增"""
    status_code = 400
    error = 'version_error'
    message = 'You must increase the version number before saving'


class NoToken(APIError):
    status_code = 401
    error = 'authorization_required'
    message = 'No token provided'


class InvalidToken(APIError):
    # 不區分過期、簽章錯誤或格式錯誤
    status_code = 401
    error = 'invalid_token'
    message = 'Invalid token'


class Unauthorized(APIError):
    status_code = 401
    error = 'unauthorized'
    message = 'Wrong username or password'


class Forbidden(APIError):
    status_code = 403
    error = 'forbidden'
    message = 'Permission denied'


class NotFound(APIError):
    status_code = 404
    error = 'not_found'
    message = 'Resource not found'


class Conflict(APIError):
    status_code = 409
    error = 'conflict'
    message = 'Resource already exists'


class ServerError(APIError):
    status_code = 500
    error = 'server_error'
    message = 'An internal error occurred'
