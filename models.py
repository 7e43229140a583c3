from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
import logging

from versions import Version
from errors import ServerError

db = SQLAlchemy()
logger = logging.getLogger(__name__)

TASK_STATUSES = ('To Do', 'In Progress', 'Done')


def commit_or_fail(message):
    """
    統一的 commit

    失敗時 rollback、把完整錯誤寫進 log,前端只會看到通用訊息
    """
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"{message}: {str(e)}", exc_info=True)
        raise ServerError(f'{message} due to server error')

# ============================================
# 1. User 模型
# ============================================
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(20), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    registered_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # 關聯
    managed_projects = db.relationship('Project', backref='managed_by', lazy=True,
                                       foreign_keys='Project.managed_by_id')
    notifications = db.relationship('Notification', backref='user', lazy=True,
                                    cascade='all,delete-orphan')

# ============================================
# 2. 多對多關聯表：專案成員
#    注意:manager 不會存在這張表裡
# ============================================
project_members = db.Table('project_members',
    db.Column('project_id', db.Integer, db.ForeignKey('project.id', ondelete='CASCADE'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), primary_key=True)
)

# ============================================
# 3. Project 模型
# ============================================
class Project(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    managed_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)

    # RAM 矩陣 (由任務推導出來的反正規化結果)
    ram_matrix = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # 關聯
    members = db.relationship('User', secondary=project_members, order_by='User.id',
                              backref=db.backref('member_projects', lazy=True))
    tasks = db.relationship('Task', backref='project', lazy=True, order_by='Task.id',
                            cascade='all,delete-orphan')
    case_study = db.relationship('CaseStudy', backref='project', uselist=False,
                                 cascade='all,delete-orphan')
    project_statutes = db.relationship('ProjectStatutes', backref='project', uselist=False,
                                       cascade='all,delete-orphan')

    __table_args__ = (
        db.Index('idx_project_manager', 'managed_by_id'),
    )

# ============================================
# 4. 有版本號的專案文件 (Case Study / 專案章程)
# ============================================
class VersionedDocumentMixin:
    # 版本號拆成三個整數欄位存,不用每次比較都重新 parse 字串
    version_major = db.Column(db.Integer, nullable=False, default=0)
    version_minor = db.Column(db.Integer, nullable=False, default=0)
    version_patch = db.Column(db.Integer, nullable=False, default=0)
    last_modified = db.Column(db.DateTime, default=datetime.utcnow)
    modified_by = db.Column(db.String(20))

    @property
    def version(self):
        return Version(self.version_major, self.version_minor, self.version_patch)

    @version.setter
    def version(self, value):
        self.version_major, self.version_minor, self.version_patch = value


class CaseStudy(VersionedDocumentMixin, db.Model):
    __tablename__ = 'case_study'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id', ondelete='CASCADE'),
                           nullable=False, unique=True)
    content = db.Column(db.Text, nullable=False, default='')


class ProjectStatutes(VersionedDocumentMixin, db.Model):
    __tablename__ = 'project_statutes'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id', ondelete='CASCADE'),
                           nullable=False, unique=True)
    # [{'title': ..., 'content': ...}, ...] 有順序的章節
    content = db.Column(db.JSON, nullable=False, default=list)

# ============================================
# 5. 多對多關聯表：任務的核准者 (Z) 與知會對象 (P)
# ============================================
task_approvers = db.Table('task_approvers',
    db.Column('task_id', db.Integer, db.ForeignKey('task.id', ondelete='CASCADE'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), primary_key=True)
)

task_informed = db.Table('task_informed',
    db.Column('task_id', db.Integer, db.ForeignKey('task.id', ondelete='CASCADE'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), primary_key=True)
)

# ============================================
# 6. Task 模型
# ============================================
class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='To Do')  # To Do, In Progress, Done
    priority = db.Column(db.Integer, nullable=False, default=3)  # 1-5
    description = db.Column(db.Text, nullable=False, default='')

    # 負責人 (O),每個任務剛好一個
    assignee_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_change = db.Column(db.DateTime, default=datetime.utcnow)

    # 關聯
    assignee = db.relationship('User', foreign_keys=[assignee_id])
    approvers = db.relationship('User', secondary=task_approvers, order_by='User.id')
    informed = db.relationship('User', secondary=task_informed, order_by='User.id')

    __table_args__ = (
        db.Index('idx_task_project', 'project_id'),
    )

# ============================================
# 7. ProjectInvitation 模型
#    接受或拒絕後直接刪除,不保留歷史
# ============================================
class ProjectInvitation(db.Model):
    __tablename__ = 'project_invitation'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    invited_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # 關聯
    project = db.relationship('Project')
    user = db.relationship('User', foreign_keys=[user_id])
    invited_by = db.relationship('User', foreign_keys=[invited_by_id])
    notifications = db.relationship('Notification', backref='project_invitation', lazy=True)

    # 同一個專案對同一個人只能有一張待處理的邀請
    __table_args__ = (
        db.UniqueConstraint('project_id', 'user_id', name='unique_pending_invitation'),
    )

# ============================================
# 8. Notification 模型
# ============================================
class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey('project.id', ondelete='SET NULL'), nullable=True)
    project_invitation_id = db.Column(db.Integer, db.ForeignKey('project_invitation.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('idx_notification_user_created', 'user_id', 'created_at'),
    )
