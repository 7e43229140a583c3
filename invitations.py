from flask import Blueprint, jsonify
from marshmallow import Schema, fields, validate, EXCLUDE
from models import db, ProjectInvitation, commit_or_fail
from membership import is_effective_member
from middleware import auth_required, get_current_user
from notifications import notify
from serializers import invitation_dict
from tasks import refresh_ram_matrix
from validation import load_request
from errors import NotFound, Forbidden
import logging

invitations_bp = Blueprint('invitations', __name__)
logger = logging.getLogger(__name__)

# response -> 過去式 (回應訊息用)
INVITATION_RESPONSES = {'accept': 'accepted', 'decline': 'declined'}


class RespondSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    response = fields.Str(
        required=True,
        validate=validate.OneOf(list(INVITATION_RESPONSES)),
        error_messages={'required': 'Response is required'}
    )


def get_invitation_or_404(invitation_id):
    invitation = db.session.get(ProjectInvitation, invitation_id)
    if invitation is None:
        raise NotFound('Invitation not found')
    return invitation

# ============================================
# 查詢邀請
# ============================================

@invitations_bp.route('/invitations/<int:invitation_id>', methods=['GET'])
@auth_required
def get_invitation(invitation_id):
    """受邀者、邀請者、專案 manager 可以查看"""
    current_user = get_current_user()
    invitation = get_invitation_or_404(invitation_id)

    allowed = {invitation.user_id, invitation.invited_by_id, invitation.project.managed_by_id}
    if current_user.id not in allowed:
        raise Forbidden('You cannot view this invitation')

    return jsonify(invitation_dict(invitation)), 200

# ============================================
# 回覆邀請
# ============================================

@invitations_bp.route('/invitations/<int:invitation_id>/respond', methods=['POST'])
@auth_required
def respond_to_invitation(invitation_id):
    """
    接受或拒絕邀請 (只有受邀者本人可以)

    接受: 加入專案成員,通知 manager
    不論接受或拒絕,邀請和它的通知都會刪除,所以第二次回覆會是 NotFound
    """
    current_user = get_current_user()
    invitation = get_invitation_or_404(invitation_id)

    if invitation.user_id != current_user.id:
        raise Forbidden('Only the invited user can respond to this invitation')

    response = load_request(RespondSchema)['response']
    project = invitation.project

    if response == 'accept':
        if not is_effective_member(project, current_user.id):
            project.members.append(current_user)
            refresh_ram_matrix(project)
        notify(project.managed_by,
               f'{current_user.username} has joined to the project "{project.name}".',
               project=project)

    for notification in list(invitation.notifications):
        db.session.delete(notification)
    db.session.delete(invitation)

    commit_or_fail('Invitation response failed')

    logger.info(f"Invitation {invitation_id} {INVITATION_RESPONSES[response]} by user {current_user.username}")

    return jsonify({
        'message': f'Invitation {INVITATION_RESPONSES[response]}',
        'projectId': project.id
    }), 200
