"""
Read-only lookups into the project and user tables.
"""
from typing import Optional
from sqlalchemy.orm import Session

from ..models.models import Project, ProjectMember, User
from .errors import NotFound


class ProjectDirectory:
    def get(self, db: Session, project_id: int) -> Project:
        project = db.get(Project, project_id)
        if project is None:
            raise NotFound("project", project_id)
        return project

    def name_of(self, db: Session, project_id: int) -> Optional[str]:
        project = db.get(Project, project_id)
        return project.name if project else None

    def is_manager(self, db: Session, project_id: int, user_id: int) -> bool:
        return db.query(ProjectMember).filter(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
            ProjectMember.role == "manager",
        ).first() is not None

    def is_member(self, db: Session, project_id: int, user_id: int) -> bool:
        return db.query(ProjectMember).filter(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        ).first() is not None


class UserDirectory:
    def require(self, db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None or not user.is_active:
            raise NotFound("user", user_id)
        return user


projects = ProjectDirectory()
users = UserDirectory()
