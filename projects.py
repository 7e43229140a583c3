from flask import Blueprint, jsonify
from marshmallow import Schema, fields, validate, EXCLUDE
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from models import (db, Project, User, CaseStudy, ProjectStatutes, ProjectInvitation,
                    commit_or_fail, project_members as project_members_table)
from membership import (check_project_access, get_project_or_404, is_effective_member,
                        project_members, require_manager)
from middleware import auth_required, get_current_user
from tasks import apply_ram_matrix, check_ram_matrix, refresh_ram_matrix
from notifications import notify
from versions import parse_version, ensure_version_increases
from serializers import project_summary, project_detail, user_summary, invitation_dict
from validation import load_request
from errors import ValidationError, NotFound, Forbidden, Conflict, ServerError
from datetime import datetime
import logging

projects_bp = Blueprint('projects', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class CreateProjectSchema(Schema):
    """建立專案驗證"""
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Project name is required'}
    )
    description = fields.Str(validate=validate.Length(max=2000), load_default='')


class CaseStudySchema(Schema):
    # lastModified / modifiedBy 由伺服器決定,client 傳來的忽略
    class Meta:
        unknown = EXCLUDE

    content = fields.Str(required=True)
    version = fields.Str(required=True)


class StatuteSectionSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    title = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    content = fields.Str(load_default='')


class ProjectStatutesSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    content = fields.List(fields.Nested(StatuteSectionSchema), required=True)
    version = fields.Str(required=True)


class UpdateProjectSchema(Schema):
    """
    更新專案驗證 (部分更新)

    前端會把整個 members 列表一起送來,這裡不採用,欄位順序以伺服器的成員列表為準
    """
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(validate=validate.Length(min=1, max=255))
    description = fields.Str(validate=validate.Length(max=2000))
    case_study = fields.Nested(CaseStudySchema, data_key='caseStudy')
    project_statutes = fields.Nested(ProjectStatutesSchema, data_key='projectStatutes')
    managed_by_id = fields.Int(data_key='managedById')
    ram_matrix = fields.List(fields.List(fields.Raw()), data_key='ramMatrix')


class InviteSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    usernames = fields.List(
        fields.Str(validate=validate.Length(min=1, max=20)),
        required=True,
        validate=validate.Length(min=1, max=50)
    )

# ============================================
# 輔助函數
# ============================================

def apply_document(project, attribute, model_class, payload, version, author):
    """Case Study / 專案章程的 upsert (版本號已經先檢查過)"""
    document = getattr(project, attribute)
    if document is None:
        document = model_class()
        setattr(project, attribute, document)

    document.content = payload['content']
    document.version = version
    document.last_modified = datetime.utcnow()
    document.modified_by = author.username
    return document


def transfer_leadership(project, new_manager, current_user):
    """
    移交 manager

    舊 manager 變成一般成員,新 manager 從 members 表移除 (manager 不重複存)
    """
    old_manager = project.managed_by
    if new_manager.id == old_manager.id:
        return False

    if new_manager in project.members:
        project.members.remove(new_manager)
    if old_manager not in project.members:
        project.members.append(old_manager)
    project.managed_by = new_manager

    notify(new_manager,
           f'{current_user.username} made you the manager of the project "{project.name}".',
           project=project)
    return True

# ============================================
# 建立專案
# ============================================

@projects_bp.route('/projects', methods=['POST'])
@auth_required
def create_project():
    """
    建立新專案

    建立者就是 manager,不會另外加到 members
    """
    current_user = get_current_user()
    result = load_request(CreateProjectSchema)

    project = Project(
        name=result['name'],
        description=result['description'],
        managed_by=current_user
    )
    db.session.add(project)
    refresh_ram_matrix(project)

    commit_or_fail('Project creation failed')

    logger.info(f"Project created: {project.name} by user {current_user.username}")

    return jsonify(project_detail(project)), 201

# ============================================
# 查詢我的所有專案
# ============================================

@projects_bp.route('/projects', methods=['GET'])
@auth_required
def get_my_projects():
    """查詢我管理或參與的所有專案 (不重複)"""
    current_user = get_current_user()

    member_project_ids = select(project_members_table.c.project_id).where(
        project_members_table.c.user_id == current_user.id
    )

    projects = Project.query.filter(
        or_(
            Project.managed_by_id == current_user.id,
            Project.id.in_(member_project_ids)
        )
    ).order_by(Project.id).all()

    return jsonify({
        'projects': [project_summary(project) for project in projects],
        'total': len(projects)
    }), 200

# ============================================
# 查詢單一專案
# ============================================

@projects_bp.route('/projects/<int:project_id>', methods=['GET'])
@auth_required
def get_project(project_id):
    project = check_project_access(project_id, get_current_user())
    return jsonify(project_detail(project)), 200

# ============================================
# 更新專案
# ============================================

@projects_bp.route('/projects/<int:project_id>', methods=['PUT', 'PATCH'])
@auth_required
def update_project(project_id):
    """
    更新專案 (部分更新)

    1. 整個 patch 先全部驗證,任何一項失敗都不會寫入
    2. caseStudy / projectStatutes 的版本號必須遞增
    3. managedById 只有目前的 manager 可以改
    4. ramMatrix 會反向套用到任務的 assignee / approvers / informed
    """
    current_user = get_current_user()
    project = check_project_access(project_id, current_user)

    result = load_request(UpdateProjectSchema)

    # ---------- 驗證 ----------
    case_study_version = None
    if 'case_study' in result:
        stored = project.case_study.version if project.case_study else None
        case_study_version = ensure_version_increases(
            stored, parse_version(result['case_study']['version'])
        )

    statutes_version = None
    if 'project_statutes' in result:
        stored = project.project_statutes.version if project.project_statutes else None
        statutes_version = ensure_version_increases(
            stored, parse_version(result['project_statutes']['version'])
        )

    new_manager = None
    if 'managed_by_id' in result:
        require_manager(project, current_user, 'Only the project manager can transfer leadership')
        new_manager = db.session.get(User, result['managed_by_id'])
        if new_manager is None or not is_effective_member(project, new_manager.id):
            raise ValidationError('The new manager must be a member of this project',
                                  details={'managedById': result['managed_by_id']})

    if 'ram_matrix' in result:
        check_ram_matrix(project, result['ram_matrix'])

    # ---------- 套用 ----------
    changes = []

    for field in ['name', 'description']:
        if field in result and getattr(project, field) != result[field]:
            setattr(project, field, result[field])
            changes.append(field)

    if case_study_version is not None:
        apply_document(project, 'case_study', CaseStudy, result['case_study'],
                       case_study_version, current_user)
        changes.append('caseStudy')

    if statutes_version is not None:
        apply_document(project, 'project_statutes', ProjectStatutes, result['project_statutes'],
                       statutes_version, current_user)
        changes.append('projectStatutes')

    # 矩陣的欄位順序是移交前的成員列表,所以要在移交 manager 之前套用
    if 'ram_matrix' in result:
        updated = apply_ram_matrix(project, result['ram_matrix'])
        changes.append('ramMatrix')
        logger.info(f"RAM matrix applied to project {project.id}: {updated} task(s) changed")

    if new_manager is not None and transfer_leadership(project, new_manager, current_user):
        changes.append('managedById')

    refresh_ram_matrix(project)

    commit_or_fail('Project update failed')

    logger.info(f"Project {project.id} updated by user {current_user.username}: {changes}")

    return jsonify(project_detail(project)), 200

# ============================================
# 刪除專案
# ============================================

@projects_bp.route('/projects/<int:project_id>', methods=['DELETE'])
@auth_required
def delete_project(project_id):
    """
    刪除專案 (只有 manager 可以)

    任務和文件由 cascade 刪除;待處理的邀請和它們的通知要另外刪
    """
    current_user = get_current_user()
    project = get_project_or_404(project_id)
    require_manager(project, current_user, 'Only the project manager can delete the project')

    project_name = project.name

    invitations = ProjectInvitation.query.filter_by(project_id=project.id).all()
    for invitation in invitations:
        for notification in invitation.notifications:
            db.session.delete(notification)
        db.session.delete(invitation)

    db.session.delete(project)

    commit_or_fail('Project deletion failed')

    logger.info(f"Project deleted: {project_name} by user {current_user.username}")

    return '', 204

# ============================================
# 專案成員
# ============================================

@projects_bp.route('/projects/<int:project_id>/members', methods=['GET'])
@auth_required
def get_project_members(project_id):
    project = check_project_access(project_id, get_current_user())
    members = project_members(project)

    return jsonify({
        'members': [dict(user_summary(user), isManager=user.id == project.managed_by_id)
                    for user in members],
        'total': len(members)
    }), 200


@projects_bp.route('/projects/<int:project_id>/members/<int:user_id>', methods=['DELETE'])
@auth_required
def remove_project_member(project_id, user_id):
    """
    移除成員 (manager 移除別人,或成員自己離開)

    被移除的人在任務中的角色會清掉,他負責的任務改由 manager 負責
    """
    current_user = get_current_user()
    project = check_project_access(project_id, current_user)

    if user_id == project.managed_by_id:
        raise Forbidden('The project manager cannot be removed, transfer leadership first')

    if user_id != current_user.id:
        require_manager(project, current_user, 'Only the project manager can remove members')

    member = next((user for user in project.members if user.id == user_id), None)
    if member is None:
        raise NotFound('User is not a member of this project')

    project.members.remove(member)

    for task in project.tasks:
        changed = False
        if member in task.approvers:
            task.approvers.remove(member)
            changed = True
        if member in task.informed:
            task.informed.remove(member)
            changed = True
        if task.assignee is not None and task.assignee.id == member.id:
            task.assignee = project.managed_by
            changed = True
        if changed:
            task.last_change = datetime.utcnow()

    if member.id == current_user.id:
        notify(project.managed_by,
               f'{member.username} has left the project "{project.name}".',
               project=project)
    else:
        notify(member,
               f'{current_user.username} removed you from the project "{project.name}".',
               project=project)

    refresh_ram_matrix(project)

    commit_or_fail('Member removal failed')

    logger.info(f"User {member.username} removed from project {project.id} by {current_user.username}")

    return jsonify({
        'message': 'Member removed',
        'members': [user_summary(user) for user in project_members(project)]
    }), 200

# ============================================
# 邀請成員
# ============================================

@projects_bp.route('/projects/<int:project_id>/invite', methods=['POST'])
@auth_required
def invite_users(project_id):
    """
    用 username 邀請使用者加入專案

    1. 所有 username 都必須存在,否則整批不建立
    2. 跳過邀請者自己、已經是成員的人、已經有待處理邀請的人
    3. 每位受邀者各一張邀請和一則通知,同一個 transaction
    """
    current_user = get_current_user()
    project = check_project_access(project_id, current_user)

    result = load_request(InviteSchema)
    usernames = list(dict.fromkeys(name.strip() for name in result['usernames'] if name.strip()))
    if not usernames:
        raise ValidationError('At least one username is required')

    users = {user.username: user for user in User.query.filter(User.username.in_(usernames)).all()}

    missing = [name for name in usernames if name not in users]
    if missing:
        raise NotFound('Some users were not found', details={'usernames': missing})

    pending = {
        invitation.user_id
        for invitation in ProjectInvitation.query.filter_by(project_id=project.id).all()
    }

    invitees = [
        users[name] for name in usernames
        if users[name].id != current_user.id
        and not is_effective_member(project, users[name].id)
        and users[name].id not in pending
    ]

    invitations = []
    for user in invitees:
        invitation = ProjectInvitation(project=project, user=user, invited_by=current_user)
        db.session.add(invitation)
        notify(user,
               f'{current_user.username} invited you to join the project "{project.name}".',
               project=project,
               invitation=invitation)
        invitations.append(invitation)

    try:
        db.session.commit()
    except IntegrityError:
        # 同時有另一個請求邀請了同一個人
        db.session.rollback()
        raise Conflict('An invitation for one of these users is already pending')
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Invitation error for project {project_id}: {str(e)}", exc_info=True)
        raise ServerError('Failed to send invitations due to server error')

    logger.info(f"{len(invitations)} invitation(s) sent for project {project.id} by {current_user.username}")

    return jsonify({
        'message': 'Invitations and notifications sent',
        'invitations': [invitation_dict(invitation) for invitation in invitations],
        'skipped': [name for name in usernames if users[name] not in invitees]
    }), 200


@projects_bp.route('/projects/<int:project_id>/invitations', methods=['GET'])
@auth_required
def get_project_invitations(project_id):
    """專案目前待處理的邀請"""
    project = check_project_access(project_id, get_current_user())

    invitations = ProjectInvitation.query.filter_by(project_id=project.id)\
        .order_by(ProjectInvitation.id).all()

    return jsonify({
        'invitations': [invitation_dict(invitation) for invitation in invitations],
        'total': len(invitations)
    }), 200
