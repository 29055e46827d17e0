from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import date

from bakeops.db import get_db
from bakeops.deps import get_actor
from bakeops.models.core import TaskStatus, TaskType, SignoffType
from bakeops.schemas.production import (
    GenerateTasksIn, GenerateTasksOut, TaskOut, SignoffIn, SignoffOut, TemplateOut,
)
from bakeops.schemas.shopping import ShoppingListIn, ShoppingListOut
from bakeops.services import production
from bakeops.services.shopping_list import generate_shopping_list

router = APIRouter(prefix="/production", tags=["production"])


@router.get("/templates", response_model=list[TemplateOut])
def templates():
    return [
        TemplateOut(
            task_type=t.task_type,
            name=t.name,
            duration_minutes=t.duration_minutes,
            days_before=t.days_before,
            depends_on=list(t.depends_on),
            delivery_only=t.delivery_only,
        )
        for t in production.TASK_TEMPLATES
    ]


@router.post("/orders/{order_id}/tasks", response_model=GenerateTasksOut)
def generate(order_id: str, body: GenerateTasksIn | None = None,
             db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    body = body or GenerateTasksIn()
    types = [TaskType(t) for t in body.include_types] if body.include_types else None
    created = production.generate_tasks(db, order_id, body.scheduled_date, types, actor)
    return GenerateTasksOut(
        created=[TaskOut.model_validate(t) for t in created],
        tasks=[TaskOut.model_validate(t) for t in production.list_tasks(db, order_id=order_id)],
    )


@router.get("/tasks", response_model=list[TaskOut])
def list_tasks(order_id: str | None = None, scheduled_date: date | None = None,
               status: TaskStatus | None = None, db: Session = Depends(get_db)):
    return production.list_tasks(db, order_id, scheduled_date, status)


@router.get("/tasks/{task_id}", response_model=TaskOut)
def get_task(task_id: str, db: Session = Depends(get_db)):
    return production.get_task(db, task_id)


@router.post("/tasks/{task_id}/signoffs", response_model=SignoffOut)
def signoff(task_id: str, body: SignoffIn, db: Session = Depends(get_db)):
    return production.record_signoff(db, task_id, SignoffType(body.signoff_type), body.signed_by, body.notes)


@router.get("/tasks/{task_id}/signoffs", response_model=list[SignoffOut])
def signoffs(task_id: str, db: Session = Depends(get_db)):
    return production.task_signoffs(db, task_id)


@router.post("/tasks/{task_id}/start", response_model=TaskOut)
def start(task_id: str, db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    return production.start_task(db, task_id, actor)


@router.post("/tasks/{task_id}/complete", response_model=TaskOut)
def complete(task_id: str, db: Session = Depends(get_db), actor: str = Depends(get_actor)):
    return production.complete_task(db, task_id, actor)


@router.post("/shopping-list", response_model=ShoppingListOut)
def shopping_list(body: ShoppingListIn, db: Session = Depends(get_db)):
    return generate_shopping_list(db, body.order_ids)
