from models import db, Project
from errors import NotFound, Forbidden


def effective_members(manager, members):
    """
    回傳給前端的成員列表

    manager 不存在 project_members 表裡,但所有成員列表都必須包含他:
    manager 排第一,之後依序是其他成員,用 id 去重
    """
    result = []
    seen = set()
    for user in [manager, *members]:
        if user is None or user.id in seen:
            continue
        seen.add(user.id)
        result.append(user)
    return result


def project_members(project):
    return effective_members(project.managed_by, project.members)


def is_effective_member(project, user_id):
    if project.managed_by_id == user_id:
        return True
    return any(member.id == user_id for member in project.members)


def get_project_or_404(project_id):
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFound('Project not found')
    return project


def check_project_access(project_id, user):
    """
    檢查使用者是否有權限訪問專案

    專案不存在 → NotFound,不是成員 → Forbidden
    """
    project = get_project_or_404(project_id)
    if not is_effective_member(project, user.id):
        raise Forbidden('You are not a member of this project')
    return project


def require_manager(project, user, message='Only the project manager can do this'):
    if project.managed_by_id != user.id:
        raise Forbidden(message)
