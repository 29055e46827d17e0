from datetime import timedelta

import pytest

from bakeops.errors import ConflictError, InvalidTransitionError, NotFoundError
from bakeops.models import CakeOrder, OrderStatus, SignoffType, TaskStatus, TaskType
from bakeops.schemas.orders import OrderIn
from bakeops.services import production
from bakeops.services.orders import confirm_order, create_order

T = TaskType


def _confirmed_order(db, seeded, **doc):
    req = OrderIn(customer_name="Riley", event_date=seeded.event_date,
                  tiers=[{"tier_index": 0, "tier_size_id": "tier-8"}], **doc)
    order = create_order(db, req)
    confirm_order(db, order.id)
    return db.get(CakeOrder, order.id)


def _tasks(db, order_id):
    return {t.task_type: t for t in production.list_tasks(db, order_id=order_id)}


def test_generate_pickup_order_tasks(db, seeded):
    order = _confirmed_order(db, seeded)
    created = production.generate_tasks(db, order.id)

    assert [t.task_type for t in created] == [T.BAKE, T.PREP, T.COOL, T.STACK, T.FROST, T.FINAL, T.PACKAGE]
    tasks = _tasks(db, order.id)
    assert tasks[T.BAKE].status == TaskStatus.PENDING
    assert tasks[T.PREP].status == TaskStatus.PENDING
    for t in (T.COOL, T.STACK, T.FROST, T.FINAL, T.PACKAGE):
        assert tasks[t].status == TaskStatus.BLOCKED

    assert tasks[T.BAKE].scheduled_date == seeded.event_date - timedelta(days=2)
    assert tasks[T.STACK].scheduled_date == seeded.event_date - timedelta(days=1)
    assert tasks[T.PACKAGE].scheduled_date == seeded.event_date
    assert tasks[T.COOL].depends_on_id == tasks[T.BAKE].id
    assert production.predecessor_ids(db, tasks[T.STACK]) == {tasks[T.COOL].id, tasks[T.PREP].id}


def test_generate_is_idempotent(db, seeded):
    order = _confirmed_order(db, seeded)
    production.generate_tasks(db, order.id)
    assert production.generate_tasks(db, order.id) == []
    assert len(production.list_tasks(db, order_id=order.id)) == 7


def test_delivery_orders_get_a_delivery_task(db, seeded):
    order = _confirmed_order(db, seeded, is_delivery=True, delivery_distance=5)
    created = production.generate_tasks(db, order.id)
    assert created[-1].task_type == T.DELIVERY
    assert created[-1].status == TaskStatus.BLOCKED


def test_scheduled_date_override(db, seeded):
    order = _confirmed_order(db, seeded)
    day = seeded.event_date - timedelta(days=5)
    created = production.generate_tasks(db, order.id, scheduled_date=day)
    assert {t.scheduled_date for t in created} == {day}


def test_draft_orders_are_not_scheduled(db, seeded):
    order = create_order(db, OrderIn(customer_name="Riley", event_date=seeded.event_date))
    with pytest.raises(InvalidTransitionError):
        production.generate_tasks(db, order.id)
    with pytest.raises(NotFoundError):
        production.generate_tasks(db, "nope")


def test_late_generated_predecessor_blocks_existing_task(db, seeded):
    order = _confirmed_order(db, seeded)
    cool = production.generate_tasks(db, order.id, include_types=[T.COOL])[0]
    assert cool.status == TaskStatus.PENDING

    production.generate_tasks(db, order.id)
    tasks = _tasks(db, order.id)
    assert tasks[T.COOL].status == TaskStatus.BLOCKED
    assert tasks[T.BAKE].id in production.predecessor_ids(db, tasks[T.COOL])


def test_completion_unblocks_only_ready_dependents(db, seeded):
    order = _confirmed_order(db, seeded)
    production.generate_tasks(db, order.id)
    tasks = _tasks(db, order.id)

    production.complete_task(db, tasks[T.BAKE].id, actor="sam")
    tasks = _tasks(db, order.id)
    assert tasks[T.BAKE].completed_by == "sam"
    assert tasks[T.COOL].status == TaskStatus.PENDING

    production.complete_task(db, tasks[T.COOL].id)
    # STACK still waits on PREP
    assert _tasks(db, order.id)[T.STACK].status == TaskStatus.BLOCKED

    production.complete_task(db, tasks[T.PREP].id)
    assert _tasks(db, order.id)[T.STACK].status == TaskStatus.PENDING


def test_blocked_tasks_cannot_start_or_complete(db, seeded):
    order = _confirmed_order(db, seeded)
    production.generate_tasks(db, order.id)
    frost = _tasks(db, order.id)[T.FROST]
    with pytest.raises(InvalidTransitionError):
        production.start_task(db, frost.id)
    with pytest.raises(InvalidTransitionError):
        production.complete_task(db, frost.id)
    with pytest.raises(InvalidTransitionError):
        production.record_signoff(db, frost.id, SignoffType.COMPLETE, "sam")


def test_start_is_strict_but_signoff_is_lenient(db, seeded):
    order = _confirmed_order(db, seeded)
    production.generate_tasks(db, order.id)
    bake = _tasks(db, order.id)[T.BAKE]

    production.start_task(db, bake.id)
    with pytest.raises(InvalidTransitionError):
        production.start_task(db, bake.id)
    # a second START signoff is recorded without moving the task
    production.record_signoff(db, bake.id, SignoffType.START, "sam")
    assert production.get_task(db, bake.id).status == TaskStatus.IN_PROGRESS


def test_signoffs_drive_the_task_and_order(db, seeded):
    order = _confirmed_order(db, seeded)
    production.generate_tasks(db, order.id)
    bake = _tasks(db, order.id)[T.BAKE]

    production.record_signoff(db, bake.id, SignoffType.START, "sam", notes="oven 2")
    assert production.get_task(db, bake.id).status == TaskStatus.IN_PROGRESS
    assert db.get(CakeOrder, order.id).status == OrderStatus.IN_PROGRESS

    production.record_signoff(db, bake.id, SignoffType.COMPLETE, "sam")
    bake = production.get_task(db, bake.id)
    assert bake.status == TaskStatus.COMPLETED
    assert bake.completed_by == "sam"

    signoffs = production.task_signoffs(db, bake.id)
    assert [s.signoff_type for s in signoffs] == [SignoffType.START, SignoffType.COMPLETE]
    assert signoffs[0].notes == "oven 2"


def test_completing_every_task_completes_the_order(db, seeded):
    order = _confirmed_order(db, seeded)
    production.generate_tasks(db, order.id)
    for tpl in production.TASK_TEMPLATES:
        task = _tasks(db, order.id).get(tpl.task_type)
        if task is not None:
            production.complete_task(db, task.id)

    assert db.get(CakeOrder, order.id).status == OrderStatus.COMPLETED
    # completing again is a no-op
    bake = _tasks(db, order.id)[T.BAKE]
    assert production.complete_task(db, bake.id).status == TaskStatus.COMPLETED


def test_partial_schedule_leaves_order_open_for_gap_filling(db, seeded):
    order = _confirmed_order(db, seeded)
    bake = production.generate_tasks(db, order.id, include_types=[T.BAKE])[0]
    production.complete_task(db, bake.id)
    assert db.get(CakeOrder, order.id).status == OrderStatus.IN_PROGRESS

    filled = production.generate_tasks(db, order.id)
    assert [t.task_type for t in filled] == [T.PREP, T.COOL, T.STACK, T.FROST, T.FINAL, T.PACKAGE]
    assert _tasks(db, order.id)[T.COOL].status == TaskStatus.PENDING


def test_list_tasks_filters(db, seeded):
    order = _confirmed_order(db, seeded)
    production.generate_tasks(db, order.id)
    day = seeded.event_date - timedelta(days=2)
    assert {t.task_type for t in production.list_tasks(db, scheduled_date=day)} == {T.BAKE, T.PREP}
    assert len(production.list_tasks(db, order_id=order.id, status=TaskStatus.BLOCKED)) == 5


def test_prep_signoff_once_per_confirmed_order(db, seeded):
    order = _confirmed_order(db, seeded)
    s = production.prep_signoff(db, order.id, "manager", "looks good")
    assert s.signed_by == "manager"
    assert production.get_prep_signoff(db, order.id).id == s.id
    with pytest.raises(ConflictError):
        production.prep_signoff(db, order.id, "manager")

    draft = create_order(db, OrderIn(customer_name="Riley", event_date=seeded.event_date))
    with pytest.raises(InvalidTransitionError):
        production.prep_signoff(db, draft.id, "manager")
    assert production.get_prep_signoff(db, draft.id) is None
