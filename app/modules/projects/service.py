from sqlalchemy.orm import Session
from typing import List, Optional
from app.modules.projects.models import Project
from app.common.exceptions import NotFoundError


def get_all_projects(db: Session) -> List[Project]:
    return db.query(Project).order_by(Project.name).all()


def find_project(db: Session, project_id: int) -> Optional[Project]:
    return db.query(Project).filter(Project.id == project_id).first()


def get_project_by_id(db: Session, project_id: int) -> Project:
    project = find_project(db, project_id)
    if not project:
        raise NotFoundError(f"El proyecto {project_id} no existe")
    return project
