"""Role-keyed case visibility.

Each role maps to a function building a SQL predicate over ``Case``. Every
place that needs to know "which cases can this user see" (case lists, case
detail, communications, documents, client invoice scoping) goes through
``visible_cases_clause`` instead of branching on the role itself.
"""

import uuid
from typing import Callable

from sqlalchemy import ColumnElement, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from caseace.auth.models import User, UserRole
from caseace.cases.models import Case, CaseAssignment
from caseace.tasks.models import Task


def _all_cases(user: User) -> ColumnElement[bool]:
    return true()


def _own_cases(user: User) -> ColumnElement[bool]:
    return Case.client_id == user.id


def _assigned_or_tasked_cases(user: User) -> ColumnElement[bool]:
    assigned = select(CaseAssignment.case_id).where(CaseAssignment.user_id == user.id)
    tasked = select(Task.case_id).where(Task.assigned_to_id == user.id)
    return or_(Case.id.in_(assigned), Case.id.in_(tasked))


CASE_VISIBILITY: dict[UserRole, Callable[[User], ColumnElement[bool]]] = {
    UserRole.partner: _all_cases,
    UserRole.associate: _assigned_or_tasked_cases,
    UserRole.paralegal: _assigned_or_tasked_cases,
    UserRole.client: _own_cases,
}


def visible_cases_clause(user: User) -> ColumnElement[bool]:
    return CASE_VISIBILITY[user.role](user)


async def can_view_case(db: AsyncSession, user: User, case_id: uuid.UUID) -> bool:
    result = await db.execute(select(Case.id).where(Case.id == case_id, visible_cases_clause(user)))
    return result.scalar_one_or_none() is not None
