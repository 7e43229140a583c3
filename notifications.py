from flask import Blueprint, jsonify
from models import db, Notification, commit_or_fail
from middleware import auth_required, get_current_user
from serializers import notification_dict
from errors import NotFound
import logging

notifications_bp = Blueprint('notifications', __name__)
logger = logging.getLogger(__name__)

# ============================================
# 建立通知 (給其他模組使用)
# ============================================

def notify(user, content, project=None, invitation=None):
    """
    建立一則通知,只加到 session,由呼叫端一起 commit

    invitation 有值時,前端可以從通知直接打開邀請
    """
    notification = Notification(
        user=user,
        content=content,
        project_id=project.id if project is not None else None,
        project_invitation=invitation
    )
    db.session.add(notification)
    return notification

# ============================================
# 1. 取得使用者的通知
# ============================================

@notifications_bp.route('/notifications', methods=['GET'])
@auth_required
def get_notifications():
    """取得當前使用者的通知 (最新的在前)"""
    current_user = get_current_user()

    notifications = Notification.query.filter_by(user_id=current_user.id)\
        .order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    return jsonify({
        'notifications': [notification_dict(n) for n in notifications],
        'total': len(notifications)
    }), 200

# ============================================
# 2. 刪除通知
# ============================================

@notifications_bp.route('/notifications/<int:notification_id>', methods=['DELETE'])
@auth_required
def delete_notification(notification_id):
    """只能刪除自己的通知,別人的通知一律當作不存在"""
    current_user = get_current_user()

    notification = Notification.query.filter_by(
        id=notification_id,
        user_id=current_user.id
    ).first()

    if not notification:
        raise NotFound('Notification not found')

    db.session.delete(notification)
    commit_or_fail('Notification deletion failed')

    logger.info(f"Notification {notification_id} deleted by user {current_user.username}")

    return jsonify({'message': 'Notification deleted'}), 200
