import logging
import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bakeops.errors import NotFoundError, ConflictError, InvalidTransitionError
from bakeops.models.core import Quote, QuoteChain, QuoteStatus, CakeOrder, OrderStatus
from bakeops.schemas.costing import CalculationRequest
from bakeops.services.costing import finalize_order_costing
from bakeops.services.distance import DistanceProvider
from bakeops.services.documents import apply_selections, add_children, copy_selections, copy_children
from bakeops.util.audit import audit

logger = logging.getLogger(__name__)

_VERSION_SUFFIX = re.compile(r"-v\d+$")

# manual status moves; CONVERTED only happens through convert_quote
_STATUS_MOVES = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT, QuoteStatus.DECLINED},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.DECLINED, QuoteStatus.DRAFT},
    QuoteStatus.ACCEPTED: {QuoteStatus.DECLINED},
    QuoteStatus.DECLINED: set(),
    QuoteStatus.CONVERTED: set(),
}


def revision_number(source_number: str, version: int) -> str:
    return f"{_VERSION_SUFFIX.sub('', source_number)}-v{version}"


def get_quote(db: Session, quote_id: str) -> Quote:
    q = db.get(Quote, quote_id)
    if not q or q.deleted_at is not None:
        raise NotFoundError("quote", quote_id)
    return q


def _root_id(q: Quote) -> str:
    return q.original_quote_id or q.id


def quote_chain(db: Session, quote_id: str) -> list[Quote]:
    """Every revision sharing ``quote_id``'s root, oldest first."""
    root = _root_id(get_quote(db, quote_id))
    return (db.query(Quote)
              .filter(or_(Quote.id == root, Quote.original_quote_id == root))
              .order_by(Quote.revision_version.asc())
              .all())


def latest_in_chain(db: Session, quote_id: str) -> Quote:
    q = get_quote(db, quote_id)
    chain = db.get(QuoteChain, _root_id(q))
    if chain is not None:
        return get_quote(db, chain.latest_quote_id)
    return quote_chain(db, quote_id)[-1]


def create_quote(db: Session, req: CalculationRequest, actor: str = "system") -> Quote:
    # Human-friendly daily sequence: Q-YYYYMMDD-0001; revisions add -v2, -v3...
    today = datetime.now(timezone.utc).date()
    prefix = f"Q-{today.strftime('%Y%m%d')}"
    base_q = db.query(func.count(Quote.id)).filter(
        Quote.quote_number.like(f"{prefix}-%"), Quote.original_quote_id.is_(None)
    )
    start_n = int(base_q.scalar() or 0)

    attempts = 0
    while attempts < 3:
        number = f"{prefix}-{start_n + 1 + attempts:04d}"
        try:
            q = Quote(quote_number=number, status=QuoteStatus.DRAFT, revision_version=1)
            apply_selections(q, req, "quote")
            db.add(q)
            db.flush()
            add_children(db, "quote", q.id, req)
            db.add(QuoteChain(root_quote_id=q.id, latest_quote_id=q.id, latest_version=1))
            audit(db, actor, "Quote", q.id, "CREATE", after={"quote_number": number})
            db.commit()
            db.refresh(q)
            logger.info("created quote %s (%s)", q.quote_number, q.id)
            return q
        except IntegrityError:
            db.rollback()
            attempts += 1

    raise ConflictError("Could not allocate a unique quote number")


def revise_quote(db: Session, quote_id: str, actor: str = "system") -> Quote:
    """Clone a quote into the next version of its chain.

    The new header and every child row commit together or not at all. The
    chain index is advanced only if nobody else advanced it first.
    """
    source = get_quote(db, quote_id)
    root = _root_id(source)
    max_version = (db.query(func.max(Quote.revision_version))
                     .filter(or_(Quote.id == root, Quote.original_quote_id == root))
                     .scalar()) or 1
    new_version = max_version + 1

    try:
        new = Quote(
            quote_number=revision_number(source.quote_number, new_version),
            status=QuoteStatus.DRAFT,
            revision_version=new_version,
            original_quote_id=root,
        )
        copy_selections(source, new)
        db.add(new)
        db.flush()
        copied = copy_children(db, "quote", source.id, "quote", new.id)

        chain = db.get(QuoteChain, root)
        if chain is None:
            db.add(QuoteChain(root_quote_id=root, latest_quote_id=new.id, latest_version=new_version))
        else:
            moved = db.execute(
                update(QuoteChain)
                .where(QuoteChain.root_quote_id == root, QuoteChain.latest_version == max_version)
                .values(latest_quote_id=new.id, latest_version=new_version)
            )
            if moved.rowcount != 1:
                raise ConflictError(f"quote chain {root} was revised concurrently")

        audit(db, actor, "Quote", new.id, "REVISE",
              before={"quote_id": source.id, "version": source.revision_version},
              after={"quote_number": new.quote_number, "version": new_version, "children": copied})
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"quote chain {root} was revised concurrently")
    except Exception:
        db.rollback()
        raise

    db.refresh(new)
    logger.info("revised quote %s -> %s (v%s)", source.quote_number, new.quote_number, new_version)
    return new


def set_quote_status(db: Session, quote_id: str, status: QuoteStatus, actor: str = "system") -> Quote:
    q = get_quote(db, quote_id)
    if q.id != latest_in_chain(db, quote_id).id:
        raise InvalidTransitionError("only the latest revision of a quote can change status")
    if status not in _STATUS_MOVES[q.status]:
        raise InvalidTransitionError(f"cannot move quote from {q.status.value} to {status.value}")
    before = q.status.value
    q.status = status
    audit(db, actor, "Quote", q.id, "STATUS", before={"status": before}, after={"status": status.value})
    db.commit()
    db.refresh(q)
    return q


def convert_quote(db: Session, quote_id: str, actor: str = "system",
                  distance_provider: Optional[DistanceProvider] = None) -> CakeOrder:
    """Turn the latest revision of a quote into a confirmed order.

    The order carries the quote's selections and children; its costing is
    saved straight after.
    """
    q = get_quote(db, quote_id)
    latest = latest_in_chain(db, quote_id)
    if q.id != latest.id:
        raise InvalidTransitionError(
            f"quote {q.quote_number} is superseded by {latest.quote_number}; only the latest revision can be converted"
        )
    if q.status in (QuoteStatus.CONVERTED, QuoteStatus.DECLINED):
        raise InvalidTransitionError(f"quote {q.quote_number} is {q.status.value}")

    try:
        order = CakeOrder(
            status=OrderStatus.CONFIRMED,
            quote_id=q.id,
            confirmed_at=datetime.now(timezone.utc),
        )
        copy_selections(q, order)
        db.add(order)
        db.flush()
        copy_children(db, "quote", q.id, "order", order.id)
        q.status = QuoteStatus.CONVERTED
        audit(db, actor, "Quote", q.id, "CONVERT", after={"order_id": order.id})
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("converted quote %s into order %s", q.quote_number, order.id)
    finalize_order_costing(db, order.id, distance_provider, actor=actor)
    db.refresh(order)
    return order
