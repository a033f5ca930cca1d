"""
Repair order numbering.

Numbers look like ``RO-00001``. The normal path increments a named counter row
in place, which the database serializes. When the counter is missing or the
increment fails, the next number is derived from the highest existing RO and
the counter is seeded with it so later calls go back to the atomic path.
"""
import logging
import re
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bodyshop.database_models import RepairOrder, RONumberSequence
from bodyshop.errors import ROAllocationError

logger = logging.getLogger(__name__)

SEQUENCE_NAME = "repair_orders"
RO_PREFIX = "RO-"
RO_NUMBER_RE = re.compile(r"RO-(\d+)")


def format_ro_number(number: int) -> str:
    return f"{RO_PREFIX}{number:05d}"


def _increment_sequence(db: Session) -> Optional[int]:
    result = db.execute(
        update(RONumberSequence)
        .where(RONumberSequence.name == SEQUENCE_NAME)
        .values(last_value=RONumberSequence.last_value + 1)
    )
    if result.rowcount == 0:
        db.rollback()
        return None
    value = db.query(RONumberSequence.last_value).filter(RONumberSequence.name == SEQUENCE_NAME).scalar()
    db.commit()
    return value


def next_from_existing(db: Session) -> int:
    """Highest existing RO number plus one, or 1 when there are none."""
    last = (
        db.query(RepairOrder.ro_number)
        .filter(RepairOrder.ro_number.like(f"{RO_PREFIX}%"))
        .order_by(RepairOrder.ro_number.desc())
        .first()
    )
    if last:
        match = RO_NUMBER_RE.match(last.ro_number)
        if match:
            return int(match.group(1)) + 1
    return 1


def _seed_sequence(db: Session, value: int) -> None:
    try:
        counter = db.get(RONumberSequence, SEQUENCE_NAME)
        if counter is None:
            db.add(RONumberSequence(name=SEQUENCE_NAME, last_value=value))
        elif counter.last_value < value:
            counter.last_value = value
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not seed RO number sequence at %s: %s", value, e)


def allocate_ro_number(db: Session) -> str:
    """Returns a fresh RO number or raises ``ROAllocationError``."""
    try:
        value = _increment_sequence(db)
        if value:
            return format_ro_number(value)
        logger.info("RO number sequence not initialised, using fallback numbering")
    except SQLAlchemyError as e:
        db.rollback()
        logger.info("RO number sequence failed, using fallback numbering: %s", e)

    try:
        value = next_from_existing(db)
    except SQLAlchemyError as e:
        db.rollback()
        raise ROAllocationError("Failed to allocate RO number", details=str(e))

    _seed_sequence(db, value)
    return format_ro_number(value)
