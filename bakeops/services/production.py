import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bakeops.errors import NotFoundError, InvalidTransitionError, ConflictError
from bakeops.models.core import (
    CakeOrder, OrderStatus, ProductionTask, TaskDependency, TaskSignoff, TaskStatus,
    TaskType, SignoffType, OrderPrepSignoff,
)
from bakeops.util.audit import audit

logger = logging.getLogger(__name__)

SCHEDULABLE = (OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS)


@dataclass(frozen=True)
class TaskTemplate:
    task_type: TaskType
    name: str
    duration_minutes: int
    days_before: int  # from the event date, not cumulative
    depends_on: tuple[TaskType, ...] = ()
    delivery_only: bool = False


# Listed so every template comes after its predecessors.
TASK_TEMPLATES: tuple[TaskTemplate, ...] = (
    TaskTemplate(TaskType.BAKE, "Bake cake layers", 60, 2),
    TaskTemplate(TaskType.PREP, "Prep fillings & frostings", 45, 2),
    TaskTemplate(TaskType.COOL, "Cool & level layers", 30, 1, (TaskType.BAKE,)),
    TaskTemplate(TaskType.STACK, "Stack & fill tiers", 45, 1, (TaskType.COOL, TaskType.PREP)),
    TaskTemplate(TaskType.FROST, "Crumb coat & frost", 60, 1, (TaskType.STACK,)),
    TaskTemplate(TaskType.FINAL, "Final decoration", 30, 0, (TaskType.FROST,)),
    TaskTemplate(TaskType.PACKAGE, "Box & package", 15, 0, (TaskType.FINAL,)),
    TaskTemplate(TaskType.DELIVERY, "Deliver order", 60, 0, (TaskType.PACKAGE,), delivery_only=True),
)


def _now():
    return datetime.now(timezone.utc)


def _get_order(db: Session, order_id: str) -> CakeOrder:
    o = db.get(CakeOrder, order_id)
    if not o or o.deleted_at is not None:
        raise NotFoundError("order", order_id)
    return o


def get_task(db: Session, task_id: str) -> ProductionTask:
    t = db.get(ProductionTask, task_id)
    if not t or t.deleted_at is not None:
        raise NotFoundError("task", task_id)
    return t


def list_tasks(db: Session, order_id: str | None = None, scheduled_date: date | None = None,
               status: TaskStatus | None = None) -> list[ProductionTask]:
    q = db.query(ProductionTask).filter(ProductionTask.deleted_at.is_(None))
    if order_id:
        q = q.filter(ProductionTask.order_id == order_id)
    if scheduled_date:
        q = q.filter(ProductionTask.scheduled_date == scheduled_date)
    if status:
        q = q.filter(ProductionTask.status == status)
    return q.order_by(ProductionTask.scheduled_date, ProductionTask.order_id, ProductionTask.position).all()


def predecessor_ids(db: Session, task: ProductionTask) -> set[str]:
    ids = {d.predecessor_id for d in db.query(TaskDependency).filter(TaskDependency.task_id == task.id)}
    if task.depends_on_id:
        ids.add(task.depends_on_id)
    return ids


def generate_tasks(
    db: Session,
    order_id: str,
    scheduled_date: Optional[date] = None,
    include_types: Optional[Iterable[TaskType]] = None,
    actor: str = "system",
) -> list[ProductionTask]:
    """Create the order's missing production tasks; returns only the new ones.

    Task types the order already has are left alone, so calling this again is
    a no-op. ``scheduled_date`` overrides every new task's date.
    """
    order = _get_order(db, order_id)
    if order.status not in SCHEDULABLE:
        raise InvalidTransitionError(f"order {order_id} is {order.status.value}; only confirmed orders are scheduled")

    wanted = set(include_types) if include_types else None
    existing = {t.task_type: t for t in list_tasks(db, order_id=order_id)}
    created: list[ProductionTask] = []
    try:
        for pos, tpl in enumerate(TASK_TEMPLATES):
            if tpl.delivery_only and not order.is_delivery:
                continue
            if wanted is not None and tpl.task_type not in wanted:
                continue
            if tpl.task_type in existing:
                continue

            preds = [existing[t] for t in tpl.depends_on if t in existing]
            ready = all(p.status == TaskStatus.COMPLETED for p in preds)
            task = ProductionTask(
                order_id=order_id,
                task_type=tpl.task_type,
                task_name=tpl.name,
                position=pos,
                scheduled_date=scheduled_date or (order.event_date - timedelta(days=tpl.days_before)),
                duration_minutes=tpl.duration_minutes,
                status=TaskStatus.PENDING if ready else TaskStatus.BLOCKED,
                depends_on_id=preds[0].id if preds else None,
            )
            db.add(task)
            db.flush()
            for p in preds:
                db.add(TaskDependency(task_id=task.id, predecessor_id=p.id))
            _link_existing_dependents(db, task, existing)
            existing[tpl.task_type] = task
            created.append(task)

        if created:
            audit(db, actor, "CakeOrder", order_id, "TASKS_GENERATED",
                  after={"task_types": [t.task_type.value for t in created]})
            db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("generated %d production tasks for order %s", len(created), order_id)
    return created


def _link_existing_dependents(db: Session, task: ProductionTask, existing: dict) -> None:
    # a predecessor generated after its dependent (e.g. via include_types) still gates it
    for tpl in TASK_TEMPLATES:
        dependent = existing.get(tpl.task_type)
        if dependent is None or task.task_type not in tpl.depends_on:
            continue
        if dependent.status not in (TaskStatus.PENDING, TaskStatus.BLOCKED):
            continue
        db.add(TaskDependency(task_id=dependent.id, predecessor_id=task.id))
        if dependent.depends_on_id is None:
            dependent.depends_on_id = task.id
        dependent.status = TaskStatus.BLOCKED


def _unblock_dependents(db: Session, task: ProductionTask) -> list[ProductionTask]:
    db.flush()
    dep_ids = {d.task_id for d in db.query(TaskDependency).filter(TaskDependency.predecessor_id == task.id)}
    dependents = (db.query(ProductionTask)
                    .filter(or_(ProductionTask.id.in_(list(dep_ids)), ProductionTask.depends_on_id == task.id),
                            ProductionTask.status == TaskStatus.BLOCKED)
                    .all())
    unblocked = []
    for dep in dependents:
        preds = db.query(ProductionTask).filter(ProductionTask.id.in_(list(predecessor_ids(db, dep)))).all()
        if all(p.status == TaskStatus.COMPLETED for p in preds):
            dep.status = TaskStatus.PENDING
            unblocked.append(dep)
    for dep in unblocked:
        logger.info("task %s (%s) unblocked by %s", dep.id, dep.task_type.value, task.id)
    return unblocked


def _applicable_types(order: CakeOrder) -> set[TaskType]:
    return {tpl.task_type for tpl in TASK_TEMPLATES if order.is_delivery or not tpl.delivery_only}


def _sync_order_status(db: Session, order: CakeOrder) -> None:
    db.flush()
    tasks = list_tasks(db, order_id=order.id)
    statuses = [t.status for t in tasks]
    done = {t.task_type for t in tasks if t.status == TaskStatus.COMPLETED}
    # a partially generated schedule keeps the order open for gap filling
    if statuses and all(s == TaskStatus.COMPLETED for s in statuses) and _applicable_types(order) <= done:
        new = OrderStatus.COMPLETED
    elif any(s in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED) for s in statuses):
        new = OrderStatus.IN_PROGRESS
    else:
        return
    if order.status != new and order.status in (OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS):
        audit(db, "system", "CakeOrder", order.id, "STATUS",
              before={"status": order.status.value}, after={"status": new.value})
        order.status = new
        order.version = order.version + 1


def _start(task: ProductionTask, strict: bool) -> bool:
    if task.status == TaskStatus.BLOCKED:
        raise InvalidTransitionError(f"task {task.id} is blocked by an unfinished predecessor")
    if task.status == TaskStatus.PENDING:
        task.status = TaskStatus.IN_PROGRESS
        task.started_at = _now()
        return True
    if strict:
        raise InvalidTransitionError(f"task {task.id} is {task.status.value}; only PENDING tasks can start")
    return False


def _complete(db: Session, task: ProductionTask, by: str) -> bool:
    if task.status == TaskStatus.BLOCKED:
        raise InvalidTransitionError(f"task {task.id} is blocked by an unfinished predecessor")
    if task.status == TaskStatus.COMPLETED:
        return False
    now = _now()
    task.started_at = task.started_at or now
    task.status = TaskStatus.COMPLETED
    task.completed_at = now
    task.completed_by = by
    _unblock_dependents(db, task)
    return True


def _task_for_update(db: Session, task_id: str) -> tuple[ProductionTask, CakeOrder]:
    task = get_task(db, task_id)
    order = _get_order(db, task.order_id)
    if order.status not in SCHEDULABLE + (OrderStatus.COMPLETED,):
        raise InvalidTransitionError(f"order {order.id} is {order.status.value}")
    return task, order


def record_signoff(db: Session, task_id: str, signoff_type: SignoffType, signed_by: str,
                   notes: str | None = None) -> TaskSignoff:
    """Append a signoff and apply the transition it drives.

    START moves a PENDING task to IN_PROGRESS; COMPLETE moves a PENDING or
    IN_PROGRESS task to COMPLETED and unblocks its ready dependents. A
    signoff on a task already past that point is recorded without a state
    change. The signoff, task, dependents and order status commit together.
    """
    task, order = _task_for_update(db, task_id)
    before = task.status.value
    try:
        if signoff_type == SignoffType.START:
            _start(task, strict=False)
        else:
            _complete(db, task, signed_by)
        signoff = TaskSignoff(
            task_id=task.id,
            signoff_type=signoff_type,
            signed_by=signed_by,
            notes=notes,
            signed_at=_now(),
        )
        db.add(signoff)
        _sync_order_status(db, order)
        audit(db, signed_by, "ProductionTask", task.id, f"SIGNOFF_{signoff_type.value}",
              before={"status": before}, after={"status": task.status.value}, reason=notes)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(signoff)
    logger.info("%s signoff on task %s by %s (%s -> %s)",
                signoff_type.value, task.id, signed_by, before, task.status.value)
    return signoff


def start_task(db: Session, task_id: str, actor: str = "system") -> ProductionTask:
    task, order = _task_for_update(db, task_id)
    try:
        _start(task, strict=True)
        _sync_order_status(db, order)
        audit(db, actor, "ProductionTask", task.id, "START", after={"status": task.status.value})
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(task)
    return task


def complete_task(db: Session, task_id: str, actor: str = "system") -> ProductionTask:
    task, order = _task_for_update(db, task_id)
    try:
        if _complete(db, task, actor):
            _sync_order_status(db, order)
            audit(db, actor, "ProductionTask", task.id, "COMPLETE", after={"status": task.status.value})
            db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(task)
    return task


def task_signoffs(db: Session, task_id: str) -> list[TaskSignoff]:
    get_task(db, task_id)
    return (db.query(TaskSignoff)
              .filter(TaskSignoff.task_id == task_id)
              .order_by(TaskSignoff.signed_at, TaskSignoff.created_at)
              .all())


def prep_signoff(db: Session, order_id: str, signed_by: str, manager_notes: str | None = None) -> OrderPrepSignoff:
    """Manager review of an order before production; once per order."""
    order = _get_order(db, order_id)
    if order.status not in SCHEDULABLE:
        raise InvalidTransitionError(f"order {order_id} is {order.status.value}; prep review needs a confirmed order")
    if db.query(OrderPrepSignoff).filter(OrderPrepSignoff.order_id == order_id).first():
        raise ConflictError(f"order {order_id} already has a prep signoff")
    s = OrderPrepSignoff(order_id=order_id, signed_by=signed_by, signed_at=_now(), manager_notes=manager_notes)
    db.add(s)
    audit(db, signed_by, "CakeOrder", order_id, "PREP_SIGNOFF", reason=manager_notes)
    db.commit()
    db.refresh(s)
    logger.info("prep review signed for order %s by %s", order_id, signed_by)
    return s


def get_prep_signoff(db: Session, order_id: str) -> OrderPrepSignoff | None:
    _get_order(db, order_id)
    return db.query(OrderPrepSignoff).filter(OrderPrepSignoff.order_id == order_id).first()
