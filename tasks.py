from flask import Blueprint, request, jsonify
from marshmallow import Schema, fields, validate, EXCLUDE
from models import db, Task, TASK_STATUSES, commit_or_fail
from membership import check_project_access, project_members
from middleware import auth_required, get_current_user
from ram_matrix import TaskRoles, build_matrix, apply_matrix, validate_matrix, ensure_matrix_current
from serializers import task_dict, project_summary
from validation import load_request
from errors import NotFound, ValidationError
from datetime import datetime
import logging

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 10000

# ============================================
# Input Validation Schemas
# ============================================

class CreateTaskSchema(Schema):
    """建立任務驗證"""
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=255),
        error_messages={'required': 'Task name is required'}
    )
    description = fields.Str(validate=validate.Length(max=DESCRIPTION_MAX_LENGTH), load_default='')
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES), load_default='To Do')
    priority = fields.Int(validate=validate.Range(min=1, max=5), load_default=3)


class UpdateTaskSchema(Schema):
    """更新任務驗證 (只更新有傳的欄位)"""
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(validate=validate.Length(min=1, max=255))
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Int(validate=validate.Range(min=1, max=5))
    description = fields.Str(validate=validate.Length(max=DESCRIPTION_MAX_LENGTH))
    # 每個任務一定有負責人,不能清空
    assignee_id = fields.Int(data_key='assigneeId')
    approvers = fields.List(fields.Int())
    informed = fields.List(fields.Int())

# ============================================
# RAM 矩陣同步 (任務 ↔ 矩陣)
# ============================================

def refresh_ram_matrix(project):
    """任務或成員有變動後,重新推導專案儲存的 RAM 矩陣"""
    roles = [TaskRoles.from_task(task) for task in project.tasks]
    project.ram_matrix = build_matrix(roles, project_members(project))
    return project.ram_matrix


def write_task_roles(task, roles, users_by_id):
    task.assignee = users_by_id[roles.assignee_id]
    task.approvers = [users_by_id[user_id] for user_id in sorted(roles.approver_ids)]
    task.informed = [users_by_id[user_id] for user_id in sorted(roles.informed_ids)]
    task.last_change = datetime.utcnow()


def check_ram_matrix(project, matrix):
    """只驗證,不修改: cell 的值、表頭和任務名稱都要對得上目前的專案"""
    validate_matrix(matrix)
    task_roles = [TaskRoles.from_task(task) for task in project.tasks]
    ensure_matrix_current(task_roles, project_members(project), matrix)


def apply_ram_matrix(project, matrix):
    """
    把前端編輯的矩陣套用回每個任務的 assignee / approvers / informed

    欄位順序是目前的成員列表 (manager 第一個),列的順序是任務 id 順序
    """
    members = project_members(project)
    tasks = list(project.tasks)
    task_roles = [TaskRoles.from_task(task) for task in tasks]

    apply_matrix(task_roles, members, matrix)

    changed = 0
    for task, roles in zip(tasks, task_roles):
        if roles == TaskRoles.from_task(task):
            continue
        users_by_id = {
            user.id: user
            for user in [*members, task.assignee, *task.approvers, *task.informed]
            if user is not None
        }
        write_task_roles(task, roles, users_by_id)
        changed += 1

    return changed

# ============================================
# 輔助函數
# ============================================

def get_project_task(project, task_id):
    """任務必須屬於這個專案,否則視為不存在"""
    task = db.session.get(Task, task_id)
    if task is None or task.project_id != project.id:
        raise NotFound('Task not found')
    return task


def resolve_members(project, user_ids, field):
    """把 user id 轉成 User,必須是專案成員"""
    members_by_id = {user.id: user for user in project_members(project)}
    unknown = [user_id for user_id in user_ids if user_id not in members_by_id]
    if unknown:
        raise ValidationError(
            f'{field} must be members of this project',
            details={field: unknown}
        )
    return [members_by_id[user_id] for user_id in dict.fromkeys(user_ids)]

# ============================================
# 查詢專案的所有任務
# ============================================

@tasks_bp.route('/projects/<int:project_id>/tasks', methods=['GET'])
@auth_required
def get_project_tasks(project_id):
    """
    查詢專案的任務列表

    可選篩選: status, assigneeId
    """
    project = check_project_access(project_id, get_current_user())

    query = Task.query.filter_by(project_id=project.id)

    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)

    assignee_id = request.args.get('assigneeId', type=int)
    if assignee_id:
        query = query.filter_by(assignee_id=assignee_id)

    tasks = query.order_by(Task.id).all()

    return jsonify({
        'tasks': [task_dict(task) for task in tasks],
        'total': len(tasks)
    }), 200

# ============================================
# 建立任務
# ============================================

@tasks_bp.route('/projects/<int:project_id>/tasks', methods=['POST'])
@auth_required
def create_task(project_id):
    """
    在專案中建立任務

    建立者是負責人 (O),其他成員 (包含 manager) 都是知會對象 (P)
    """
    current_user = get_current_user()
    project = check_project_access(project_id, current_user)

    result = load_request(CreateTaskSchema)

    task = Task(
        project=project,
        name=result['name'],
        description=result['description'],
        status=result['status'],
        priority=result['priority'],
        assignee=current_user,
        informed=[member for member in project_members(project) if member.id != current_user.id],
        last_change=datetime.utcnow()
    )
    db.session.add(task)
    refresh_ram_matrix(project)

    commit_or_fail('Task creation failed')

    logger.info(f"Task created: {task.name} in project {project.id} by user {current_user.username}")

    return jsonify(task_dict(task)), 201

# ============================================
# 查詢單一任務
# ============================================

@tasks_bp.route('/projects/<int:project_id>/tasks/<int:task_id>', methods=['GET'])
@auth_required
def get_task(project_id, task_id):
    project = check_project_access(project_id, get_current_user())
    task = get_project_task(project, task_id)

    data = task_dict(task)
    data['project'] = project_summary(project)
    return jsonify(data), 200

# ============================================
# 更新任務
# ============================================

@tasks_bp.route('/projects/<int:project_id>/tasks/<int:task_id>', methods=['PUT', 'PATCH'])
@auth_required
def update_task(project_id, task_id):
    """
    更新任務 (部分更新)

    assigneeId / approvers / informed 都必須是專案成員;
    approvers / informed 是整組取代
    """
    current_user = get_current_user()
    project = check_project_access(project_id, current_user)
    task = get_project_task(project, task_id)

    result = load_request(UpdateTaskSchema)

    # 先驗證所有人員欄位,再開始修改
    new_assignee = resolve_members(project, [result['assignee_id']], 'assigneeId')[0] \
        if 'assignee_id' in result else None
    new_approvers = resolve_members(project, result['approvers'], 'approvers') \
        if 'approvers' in result else None
    new_informed = resolve_members(project, result['informed'], 'informed') \
        if 'informed' in result else None

    changes = {}

    for field in ['name', 'status', 'priority', 'description']:
        if field in result:
            old_value = getattr(task, field)
            new_value = result[field]
            if old_value != new_value:
                changes[field] = {'old': old_value, 'new': new_value}
                setattr(task, field, new_value)

    if 'assignee_id' in result and task.assignee_id != result['assignee_id']:
        changes['assigneeId'] = {'old': task.assignee_id, 'new': result['assignee_id']}
        task.assignee = new_assignee

    if new_approvers is not None:
        old_ids = [user.id for user in task.approvers]
        new_ids = sorted(user.id for user in new_approvers)
        if sorted(old_ids) != new_ids:
            changes['approvers'] = {'old': sorted(old_ids), 'new': new_ids}
            task.approvers = new_approvers

    if new_informed is not None:
        old_ids = [user.id for user in task.informed]
        new_ids = sorted(user.id for user in new_informed)
        if sorted(old_ids) != new_ids:
            changes['informed'] = {'old': sorted(old_ids), 'new': new_ids}
            task.informed = new_informed

    if not changes:
        return jsonify({'message': 'No changes to update', 'task': task_dict(task)}), 200

    task.last_change = datetime.utcnow()
    refresh_ram_matrix(project)

    commit_or_fail('Task update failed')

    logger.info(f"Task {task.id} updated by user {current_user.username}")

    data = task_dict(task)
    data['project'] = project_summary(project)
    return jsonify({
        'message': 'Task updated successfully',
        'task': data,
        'changes': changes
    }), 200

# ============================================
# 刪除任務
# ============================================

@tasks_bp.route('/projects/<int:project_id>/tasks/<int:task_id>', methods=['DELETE'])
@auth_required
def delete_task(project_id, task_id):
    current_user = get_current_user()
    project = check_project_access(project_id, current_user)
    task = get_project_task(project, task_id)

    task_name = task.name
    # delete-orphan cascade 會在 commit 時刪除
    project.tasks.remove(task)
    refresh_ram_matrix(project)

    commit_or_fail('Task deletion failed')

    logger.info(f"Task deleted: {task_name} by user {current_user.username}")

    return '', 204
