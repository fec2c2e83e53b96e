from fastapi import APIRouter
from typing import List

from app.dependencies.dbDependecies import db_dependency
from app.modules.projects import service
from app.modules.projects.schemas import ProjectOut

projects_router = APIRouter(prefix="/admin/projects", tags=["Projects"])


@projects_router.get("", response_model=List[ProjectOut])
def list_projects(db: db_dependency):
    """
    Listar proyectos con el nombre del cliente.

    Se usan para elegir el proyecto al crear una factura.
    """
    return service.get_all_projects(db)


@projects_router.get("/{project_id}", response_model=ProjectOut)
def get_project(project_id: int, db: db_dependency):
    return service.get_project_by_id(db, project_id)
