"""
回應格式

所有 JSON 欄位名稱都是 camelCase (前端的約定),
成員列表一律經過 effective_members,確保 manager 一定在裡面而且只出現一次。
"""
from membership import project_members


def isoformat(value):
    return value.isoformat() if value else None


def user_summary(user):
    if user is None:
        return None
    return {
        'id': user.id,
        'username': user.username
    }


def user_profile(user):
    return {
        'id': user.id,
        'username': user.username,
        'registeredAt': isoformat(user.registered_at)
    }


def document_dict(document):
    if document is None:
        return None
    return {
        'content': document.content,
        'version': str(document.version),
        'lastModified': isoformat(document.last_modified),
        'modifiedBy': document.modified_by
    }


def task_dict(task):
    return {
        'id': task.id,
        'projectId': task.project_id,
        'name': task.name,
        'status': task.status,
        'priority': task.priority,
        'description': task.description,
        'assigneeId': task.assignee_id,
        'assignee': user_summary(task.assignee),
        'approvers': [user_summary(user) for user in task.approvers],
        'informed': [user_summary(user) for user in task.informed],
        'lastChange': isoformat(task.last_change),
        'createdAt': isoformat(task.created_at)
    }


def project_summary(project):
    return {
        'id': project.id,
        'name': project.name,
        'description': project.description,
        'managedById': project.managed_by_id,
        'managedBy': user_summary(project.managed_by),
        'members': [user_summary(user) for user in project_members(project)],
        'createdAt': isoformat(project.created_at)
    }


def project_detail(project):
    data = project_summary(project)
    data.update({
        'caseStudy': document_dict(project.case_study),
        'projectStatutes': document_dict(project.project_statutes),
        'ramMatrix': project.ram_matrix or [],
        'tasks': [task_dict(task) for task in project.tasks]
    })
    return data


def invitation_dict(invitation):
    return {
        'id': invitation.id,
        'projectId': invitation.project_id,
        'userId': invitation.user_id,
        'invitedBy': invitation.invited_by_id,
        'project': {
            'id': invitation.project.id,
            'name': invitation.project.name,
            'description': invitation.project.description
        },
        'user': user_summary(invitation.user),
        'inviter': user_summary(invitation.invited_by),
        'createdAt': isoformat(invitation.created_at)
    }


def notification_dict(notification):
    return {
        'id': notification.id,
        'userId': notification.user_id,
        'content': notification.content,
        'projectId': notification.project_id,
        'projectInvitationId': notification.project_invitation_id,
        'projectInvitation': {
            'id': notification.project_invitation_id,
            'projectId': notification.project_invitation.project_id
        } if notification.project_invitation_id else None,
        'createdAt': isoformat(notification.created_at)
    }
