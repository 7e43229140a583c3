from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_bcrypt import Bcrypt
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from config import Config, get_config
from models import db
from extensions import limiter
from middleware import register_jwt_callbacks
from errors import APIError
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
import os

# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定 logging 系統

    1. 分開 info 和 error logs
    2. 使用 RotatingFileHandler 避免 log 檔案過大
    3. 各模組的 logging.getLogger(__name__) 都會傳到 root logger
    """
    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    # Info log handler (記錄一般資訊)
    info_handler = RotatingFileHandler(
        os.path.join(log_dir, 'app.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    # Error log handler (只記錄錯誤)
    error_handler = RotatingFileHandler(
        os.path.join(log_dir, 'error.log'),
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(info_handler)
    root_logger.addHandler(error_handler)
    root_logger.setLevel(app.config['LOG_LEVEL'])

    app.logger.info('Application startup')

# ============================================
# 錯誤處理
# ============================================

def register_error_handlers(app):

    @app.errorhandler(APIError)
    def handle_api_error(error):
        """所有 handler 丟出的 APIError 都在這裡轉成 JSON"""
        if error.status_code >= 500:
            db.session.rollback()
            app.logger.error(f"{error.error}: {error.message}")
        else:
            app.logger.warning(
                f"{error.error} on {request.method} {request.path}: {error.message}"
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        """沒有對應的路由"""
        return jsonify({
            'success': False,
            'message': 'Page not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'method_not_allowed',
            'message': 'The HTTP method is not allowed for this endpoint'
        }), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        """處理 rate limit 超過"""
        app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return jsonify({
            'error': 'rate_limit_exceeded',
            'message': 'Too many requests. Please try again later.'
        }), 429

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        # 其他 werkzeug 的 HTTP 錯誤 (413 等)
        return jsonify({
            'error': error.name.lower().replace(' ', '_'),
            'message': error.description
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """
        處理所有未預期的錯誤

        不洩漏錯誤細節給前端,完整的 stack trace 只寫進 log
        """
        db.session.rollback()

        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)

        return jsonify({
            'error': 'server_error',
            'message': 'An internal error occurred'
        }), 500

# ============================================
# Request/Response Logging
# ============================================

def register_request_hooks(app):

    @app.before_request
    def log_request():
        if not app.debug:
            app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        if not app.debug:
            app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        # 加上 security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response

# ============================================
# Health Check / 首頁
# ============================================

def register_service_routes(app):

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """健康檢查端點 (給 load balancer 或監控系統用)"""
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError as e:
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': 'Database connection failed'
            }), 503

        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'timestamp': datetime.utcnow().isoformat()
        }), 200

    @app.route('/')
    def home():
        prefix = app.config['API_PREFIX']
        return jsonify({
            'message': 'Project RAM API',
            'version': app.config['API_VERSION'],
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': f'{prefix}/register', 'methods': ['POST']},
                    'login': {'path': f'{prefix}/login', 'methods': ['POST']},
                    'logout': {'path': f'{prefix}/logout', 'methods': ['POST']},
                    'profile': {'path': f'{prefix}/profile', 'methods': ['GET']},
                    'search': {'path': f'{prefix}/users/search', 'methods': ['GET']}
                },
                'projects': {
                    'list': {'path': f'{prefix}/projects', 'methods': ['GET', 'POST']},
                    'detail': {'path': f'{prefix}/projects/:id',
                               'methods': ['GET', 'PUT', 'PATCH', 'DELETE']},
                    'members': {'path': f'{prefix}/projects/:id/members', 'methods': ['GET']},
                    'invite': {'path': f'{prefix}/projects/:id/invite', 'methods': ['POST']}
                },
                'invitations': {
                    'detail': {'path': f'{prefix}/invitations/:id', 'methods': ['GET']},
                    'respond': {'path': f'{prefix}/invitations/:id/respond', 'methods': ['POST']}
                },
                'tasks': {
                    'list': {'path': f'{prefix}/projects/:id/tasks', 'methods': ['GET', 'POST']},
                    'detail': {'path': f'{prefix}/projects/:id/tasks/:taskId',
                               'methods': ['GET', 'PUT', 'PATCH', 'DELETE']}
                },
                'notifications': {
                    'list': {'path': f'{prefix}/notifications', 'methods': ['GET']},
                    'delete': {'path': f'{prefix}/notifications/:id', 'methods': ['DELETE']}
                }
            },
            'rate_limits': {
                'default': '200 per hour, 1000 per day',
                'auth': {
                    'register': app.config['REGISTER_RATE_LIMIT'],
                    'login': app.config['LOGIN_RATE_LIMIT']
                }
            }
        })

# ============================================
# App Factory
# ============================================

def create_app(config_object=None):
    """
    建立 Flask app

    資料庫、JWT、bcrypt、rate limiter 都綁在 app 上,
    測試時傳入 TestingConfig 就能拿到一個乾淨的 app
    """
    app = Flask(__name__)
    app.config.from_object(config_object or get_config())
    if not app.testing:
        Config.validate()

    # 不要用 '*',來源從 CORS_ORIGINS 讀取;cookie 需要 supports_credentials
    CORS(app,
         supports_credentials=True,
         origins=app.config['CORS_ORIGINS'],
         methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization'])

    # ---------- 擴展初始化 ----------
    db.init_app(app)
    jwt = JWTManager(app)
    register_jwt_callbacks(jwt)
    app.extensions['bcrypt'] = Bcrypt(app)
    limiter.init_app(app)

    if not app.debug and not app.testing:
        setup_logging(app)

    # ---------- Blueprints ----------
    from auth import auth_bp
    from projects import projects_bp
    from invitations import invitations_bp
    from tasks import tasks_bp
    from notifications import notifications_bp

    prefix = app.config['API_PREFIX']
    for blueprint in (auth_bp, projects_bp, invitations_bp, tasks_bp, notifications_bp):
        app.register_blueprint(blueprint, url_prefix=prefix)

    register_error_handlers(app)
    register_request_hooks(app)
    register_service_routes(app)

    # ---------- 資料庫初始化 ----------
    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    return app


# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # 在 production 環境不要用 Flask 內建的 server,應該用 gunicorn
    app = create_app()

    port = int(os.getenv('FLASK_PORT', 8888))

    app.run(
        debug=app.config['DEBUG'],
        port=port,
        host='0.0.0.0'
    )
