"""
SCD Type 2 Versioning

Customer and product dimensions keep history by versioning rows per
business key. Each business key moves through two states per row:

    current --supersede--> expired
    current --expire-----> expired

A supersede expires the current row (expiration_date = new effective date,
is_current = False) and inserts the next version as current. Both writes go
through the caller's session and are flushed together, so a failure leaves
the previous version current. Validity windows are half-open:
[effective_date, expiration_date).
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Type, Union

import structlog
from sqlalchemy import Numeric, or_, select, true
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.models import DimCustomer, DimProduct
from src.ingestion.errors import ScdConflictError
from src.transformation.measures import to_money

logger = structlog.get_logger(__name__)

VersionedDimension = Union[DimCustomer, DimProduct]

BUSINESS_KEYS: Dict[type, str] = {
    DimCustomer: "customer_id",
    DimProduct: "product_id",
}

TRACKED_ATTRIBUTES: Dict[type, tuple] = {
    DimCustomer: (
        "customer_name",
        "email",
        "phone",
        "customer_segment",
        "customer_tier",
        "registration_date",
        "city",
        "state",
        "country",
        "postal_code",
    ),
    DimProduct: (
        "product_name",
        "product_description",
        "category",
        "subcategory",
        "brand",
        "unit_price",
        "unit_cost",
        "supplier_name",
    ),
}


class ScdAction(str, Enum):
    """What apply_scd2 did for a business key"""
    INSERTED = "inserted"
    SUPERSEDED = "superseded"
    UNCHANGED = "unchanged"


@dataclass
class ScdResult:
    """Outcome of one SCD Type 2 upsert"""
    action: ScdAction
    current: Any
    expired: Optional[Any] = None


def _business_key_column(model: Type[VersionedDimension]):
    try:
        return getattr(model, BUSINESS_KEYS[model])
    except KeyError:
        raise ValueError(f"{model.__name__} is not an SCD Type 2 dimension") from None


def _normalize(model: Type[VersionedDimension], attributes: Dict[str, Any]) -> Dict[str, Any]:
    """Validate attribute names and quantize money columns for comparison"""
    tracked = TRACKED_ATTRIBUTES[model]
    unknown = set(attributes) - set(tracked)
    if unknown:
        raise ValueError(f"Unknown {model.__tablename__} attributes: {sorted(unknown)}")

    normalized = {}
    for name, value in attributes.items():
        if isinstance(model.__table__.c[name].type, Numeric):
            value = to_money(value)
        normalized[name] = value
    return normalized


async def get_current(
    session: AsyncSession,
    model: Type[VersionedDimension],
    business_key: str,
    for_update: bool = False,
) -> Optional[VersionedDimension]:
    """Return the current version of a business key, if any"""
    stmt = select(model).where(
        _business_key_column(model) == business_key,
        model.is_current == true(),
    )
    if for_update:
        stmt = stmt.with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_latest_version(
    session: AsyncSession,
    model: Type[VersionedDimension],
    business_key: str,
) -> Optional[VersionedDimension]:
    """Return the most recent version of a business key, current or not"""
    stmt = (
        select(model)
        .where(_business_key_column(model) == business_key)
        .order_by(model.effective_date.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_version_as_of(
    session: AsyncSession,
    model: Type[VersionedDimension],
    business_key: str,
    as_of: date,
) -> Optional[VersionedDimension]:
    """Return the version whose validity window contains as_of"""
    stmt = (
        select(model)
        .where(
            _business_key_column(model) == business_key,
            model.effective_date <= as_of,
            or_(model.expiration_date.is_(None), model.expiration_date > as_of),
        )
        .order_by(model.effective_date.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def apply_scd2(
    session: AsyncSession,
    model: Type[VersionedDimension],
    business_key: str,
    attributes: Dict[str, Any],
    effective_date: date,
) -> ScdResult:
    """
    Insert or supersede a versioned dimension row.

    Attributes not supplied are carried forward from the current version.
    Supplying the same values as the current version is a no-op.

    Args:
        session: Active session; the caller owns the transaction
        model: DimCustomer or DimProduct
        business_key: customer_id or product_id value
        attributes: Tracked attribute values for the new version
        effective_date: First day the new version is valid

    Returns:
        ScdResult with the current row and, on supersede, the expired row

    Raises:
        ScdConflictError: effective_date is not after the latest version, or
            precedes the expiration date of an expired latest version
    """
    _business_key_column(model)
    key_name = BUSINESS_KEYS[model]
    values = _normalize(model, attributes)

    current = await get_current(session, model, business_key, for_update=True)

    if current is not None:
        changed = {
            name: value for name, value in values.items()
            if getattr(current, name) != value
        }
        if not changed:
            logger.debug(
                "Dimension version unchanged",
                dimension=model.__tablename__,
                business_key=business_key,
            )
            return ScdResult(action=ScdAction.UNCHANGED, current=current)
        latest = current
    else:
        latest = await get_latest_version(session, model, business_key)

    if latest is not None and effective_date <= latest.effective_date:
        raise ScdConflictError(
            f"{model.__tablename__} {business_key!r}: effective date {effective_date} "
            f"is not after the latest version ({latest.effective_date})"
        )
    if latest is not None and latest.expiration_date is not None and effective_date < latest.expiration_date:
        raise ScdConflictError(
            f"{model.__tablename__} {business_key!r}: effective date {effective_date} "
            f"falls inside the expired version ending {latest.expiration_date}"
        )

    new_values = {}
    if current is not None:
        new_values = {name: getattr(current, name) for name in TRACKED_ATTRIBUTES[model]}
        current.expiration_date = effective_date
        current.is_current = False
        await session.flush()
    new_values.update(values)

    new_version = model(
        **{key_name: business_key},
        **new_values,
        effective_date=effective_date,
        expiration_date=None,
        is_current=True,
    )
    session.add(new_version)
    await session.flush()

    action = ScdAction.SUPERSEDED if current is not None else ScdAction.INSERTED
    logger.info(
        "Dimension version written",
        dimension=model.__tablename__,
        business_key=business_key,
        action=action.value,
        effective_date=str(effective_date),
        changed=sorted(changed) if current is not None else None,
    )
    return ScdResult(action=action, current=new_version, expired=current)


async def expire_current(
    session: AsyncSession,
    model: Type[VersionedDimension],
    business_key: str,
    expiration_date: date,
) -> Optional[VersionedDimension]:
    """
    Expire the current version without a replacement.

    Used when the business entity disappears from the source (for example
    a discontinued product). Facts keep referencing the expired row.

    Returns:
        The expired row, or None if the key had no current version
    """
    current = await get_current(session, model, business_key, for_update=True)
    if current is None:
        return None

    if expiration_date < current.effective_date:
        raise ScdConflictError(
            f"{model.__tablename__} {business_key!r}: expiration {expiration_date} "
            f"precedes effective date {current.effective_date}"
        )

    current.expiration_date = expiration_date
    current.is_current = False
    await session.flush()

    logger.info(
        "Dimension version expired",
        dimension=model.__tablename__,
        business_key=business_key,
        expiration_date=str(expiration_date),
    )
    return current


async def upsert_customer(
    session: AsyncSession,
    customer_id: str,
    attributes: Dict[str, Any],
    effective_date: date,
) -> ScdResult:
    """SCD Type 2 upsert for dim_customer"""
    return await apply_scd2(session, DimCustomer, customer_id, attributes, effective_date)


async def upsert_product(
    session: AsyncSession,
    product_id: str,
    attributes: Dict[str, Any],
    effective_date: date,
) -> ScdResult:
    """SCD Type 2 upsert for dim_product"""
    return await apply_scd2(session, DimProduct, product_id, attributes, effective_date)
