"""
Access to the inventory store (the ``drugs`` table).

Reads are plain lookups. The only write is ``adjust_stock``, a single
conditional UPDATE that refuses to take stock below zero, so two concurrent
approvals of the same drug can never both succeed on insufficient stock.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from . import models
from .errors import DrugNotFound, InsufficientStock

logger = logging.getLogger(__name__)


def get_drug(db: Session, drug_id: int) -> Optional[models.Drug]:
    """
    Retrieve a single drug by ID.

    Args:
        db: Database session
        drug_id: ID of the drug to retrieve

    Returns:
        Drug object or None if not found
    """
    return db.query(models.Drug).filter(models.Drug.id == drug_id).first()


def get_drug_for_owner(db: Session, drug_id: int, owner_id: int) -> Optional[models.Drug]:
    """
    Retrieve a drug only if it belongs to the given owner.

    Returns:
        Drug object or None if the drug does not exist or has another owner
    """
    return (
        db.query(models.Drug)
        .filter(models.Drug.id == drug_id, models.Drug.created_by == owner_id)
        .first()
    )


def current_stock(db: Session, drug_id: int) -> Optional[int]:
    """Read the committed stock of a drug, bypassing any cached ORM state."""
    return db.query(models.Drug.stock).filter(models.Drug.id == drug_id).scalar()


def adjust_stock(db: Session, drug_id: int, delta: int) -> None:
    """
    Atomically add ``delta`` to a drug's stock unless that would make it negative.

    This issues ``UPDATE drugs SET stock = stock + :delta WHERE id = :id AND
    stock + :delta >= 0`` and inspects the affected row count. It does not
    commit; the caller owns the transaction.

    Args:
        db: Database session
        drug_id: ID of the drug to adjust
        delta: Signed quantity (negative to take stock, positive to return it)

    Raises:
        DrugNotFound: If the drug does not exist
        InsufficientStock: If the stock cannot cover a negative delta
    """
    if delta == 0:
        return

    result = db.execute(
        update(models.Drug)
        .where(models.Drug.id == drug_id, models.Drug.stock + delta >= 0)
        .values(stock=models.Drug.stock + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        logger.info(f"Adjusted stock of drug {drug_id} by {delta}")
        # Drop any cached instance so later reads in this session see the new value
        drug = db.identity_map.get(db.identity_key(models.Drug, drug_id))
        if drug is not None:
            db.expire(drug, ["stock"])
        return

    available = current_stock(db, drug_id)
    if available is None:
        raise DrugNotFound(drug_id)
    logger.warning(f"Stock adjustment refused for drug {drug_id}: delta {delta}, available {available}")
    raise InsufficientStock(drug_id, requested=-delta, available=available)
