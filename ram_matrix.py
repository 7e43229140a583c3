"""
RAM (Responsibility Assignment Matrix) 矩陣

矩陣格式:
    row 0          ['', 成員1 username, 成員2 username, ...]   (表頭,必須跟目前的成員一致)
    row i (i >= 1) [任務名稱, cell, cell, ...]                  (第 i 個任務)

cell 的值:
    'O' 負責人 (Odpowiedzialny),每一列剛好一個
    'Z' 核准者 (Zatwierdzający)
    'P' 知會對象 (Poinformowany)
    ''  沒有角色

這個模組不碰資料庫,任務用 TaskRoles 表示,成員只需要有 id / username。
"""
from errors import ValidationError, Conflict

RESPONSIBLE = 'O'
APPROVER = 'Z'
INFORMED = 'P'
EMPTY = ''

CELL_VALUES = (EMPTY, RESPONSIBLE, APPROVER, INFORMED)


class TaskRoles:
    """一個任務的負責人 / 核准者 / 知會對象"""

    def __init__(self, label, assignee_id=None, approver_ids=(), informed_ids=(), task_id=None):
        self.task_id = task_id
        self.label = label
        self.assignee_id = assignee_id
        self.approver_ids = set(approver_ids)
        self.informed_ids = set(informed_ids)

    @classmethod
    def from_task(cls, task):
        # 用 relationship 物件而不是 assignee_id,flush 之前的變更也看得到
        return cls(
            task.name,
            assignee_id=task.assignee.id if task.assignee is not None else None,
            approver_ids=[user.id for user in task.approvers],
            informed_ids=[user.id for user in task.informed],
            task_id=task.id
        )

    def cell_for(self, member_id):
        # 同一個人可以同時有多個角色,矩陣只顯示優先順序最高的那個
        if self.assignee_id == member_id:
            return RESPONSIBLE
        if member_id in self.approver_ids:
            return APPROVER
        if member_id in self.informed_ids:
            return INFORMED
        return EMPTY

    def __eq__(self, other):
        if not isinstance(other, TaskRoles):
            return NotImplemented
        return (self.assignee_id, self.approver_ids, self.informed_ids) == \
            (other.assignee_id, other.approver_ids, other.informed_ids)

    def __repr__(self):
        return (f'TaskRoles({self.label!r}, assignee_id={self.assignee_id!r}, '
                f'approver_ids={sorted(self.approver_ids)!r}, informed_ids={sorted(self.informed_ids)!r})')


def build_matrix(task_roles, members):
    """由任務推導出矩陣,每個任務一列,每個成員一欄"""
    header = [EMPTY] + [member.username for member in members]
    rows = [
        [roles.label] + [roles.cell_for(member.id) for member in members]
        for roles in task_roles
    ]
    return [header] + rows


def set_cell(roles, member_id, value):
    """
    把單一 cell 的編輯套用回任務角色

    'O'  : member 成為負責人,原本的負責人 (如果是別人) 降為 'P'
    'Z'  : member 加入核准者
    'P'  : member 加入知會對象
    ''   : 移除 member 的核准 / 知會角色

    每個任務一定有負責人,只有另一個 'O' 能換掉它
    """
    if value not in CELL_VALUES:
        raise ValidationError(f'Invalid RAM matrix value: {value!r}',
                              details={'allowed': list(CELL_VALUES)})

    if value == RESPONSIBLE:
        previous = roles.assignee_id
        if previous is not None and previous != member_id:
            roles.approver_ids.discard(previous)
            roles.informed_ids.add(previous)
        roles.assignee_id = member_id
        roles.approver_ids.discard(member_id)
        roles.informed_ids.discard(member_id)
    elif value == APPROVER:
        roles.approver_ids.add(member_id)
    elif value == INFORMED:
        roles.informed_ids.add(member_id)
    else:
        roles.approver_ids.discard(member_id)
        roles.informed_ids.discard(member_id)
    return roles


def validate_matrix(matrix):
    """只檢查結構和 cell 的值,不修改任何東西"""
    if not isinstance(matrix, list) or not all(isinstance(row, list) for row in matrix):
        raise ValidationError('RAM matrix must be a list of rows')

    for row_index, row in enumerate(matrix[1:], start=1):
        for value in row[1:]:
            if value not in CELL_VALUES:
                raise ValidationError(
                    f'Invalid RAM matrix value {value!r} in row {row_index}',
                    details={'allowed': list(CELL_VALUES)}
                )
    return matrix


def ensure_matrix_current(task_roles, members, matrix):
    """
    矩陣必須是根據目前的成員和任務畫出來的

    表頭要跟目前的成員 username 一致 (順序也要一樣),每一列的任務名稱要對得上,
    否則欄或列會錯位,角色會套到別人身上
    """
    if not matrix:
        return matrix

    usernames = [member.username for member in members]
    if matrix[0][1:] != usernames:
        raise Conflict(
            'RAM matrix is out of date, reload the project and try again',
            details={'expectedMembers': usernames, 'receivedMembers': matrix[0][1:]}
        )

    for row_index, (roles, row) in enumerate(zip(task_roles, matrix[1:]), start=1):
        label = row[0] if row else None
        if label != roles.label:
            raise Conflict(
                'RAM matrix is out of date, reload the project and try again',
                details={'row': row_index, 'expectedTask': roles.label, 'receivedTask': label}
            )
    return matrix


def apply_matrix(task_roles, members, matrix):
    """
    把前端編輯過的矩陣套用回任務角色

    - row 0 是表頭,第 i 列對應第 i 個任務,兩者都要跟目前的資料對得上
    - 只有跟原本推導值不同的 cell 才會套用,由左到右
    - 超出任務數的列、超出成員數的欄忽略,缺少的 cell 視為沒有變更
    """
    validate_matrix(matrix)
    ensure_matrix_current(task_roles, members, matrix)

    for roles, row in zip(task_roles, matrix[1:]):
        original = [roles.cell_for(member.id) for member in members]
        for member, before, value in zip(members, original, row[1:]):
            if value != before:
                set_cell(roles, member.id, value)

    return task_roles
