"""
ORM-level immutability enforcement for the inventory ledger.

===============================================================================
WHAT IT GUARDS
===============================================================================

The ledger is append-only.  Stock is corrected by new, compensating movements
and transactions are cancelled by voiding them, never by editing or deleting
rows.  SQLAlchemy fires mapper events before UPDATE/DELETE statements reach
the database; the listeners below inspect attribute history and raise
ImmutabilityViolationError, which aborts the flush.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | Rule
-----------------------|-------------------------------------------------------
Movement               | ALWAYS immutable, never deleted
SaleItem               | ALWAYS immutable, never deleted
Transaction headers    | Only the ACTIVE -> VOID transition (is_void,
(sale, transfer,       | voided_at, void_reason) may be written; nothing after
purchase, wastage,     | that.  Never deleted.
production)            |
Product / Location     | Cannot be deleted once movements reference them

updated_at is audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to violate the rules on purpose call
unregister_immutability_listeners() and register again afterwards.
"""

from sqlalchemy import event, func, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at"})
_VOID_FIELDS = frozenset({"is_void", "voided_at", "void_reason"})


def _changed_columns(target) -> list[str]:
    insp = inspect(target)
    changed = []
    for attr in insp.mapper.column_attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if insp.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_movement_immutability(mapper, connection, target):
    """Movements are never updated."""
    changed = _changed_columns(target)
    if changed:
        _block(
            "Movement", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a movement",
            field=changed[0],
        )


def _check_movement_delete(mapper, connection, target):
    _block("Movement", target, "DELETE", "Movements cannot be deleted")


def _check_sale_item_immutability(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        _block(
            "SaleItem", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a sale item",
            field=changed[0],
        )


def _check_sale_item_delete(mapper, connection, target):
    _block("SaleItem", target, "DELETE", "Sale items cannot be deleted")


def _check_header_immutability(mapper, connection, target):
    """
    Allow exactly one update on a header: the void transition.

    Logic:
        1. If is_void is changing FROM True: block (un-voiding).
        2. If is_void is unchanged and True: block (header already void).
        3. Otherwise only the void fields may change.
    """
    entity_type = type(target).__name__
    void_history = get_history(target, "is_void")

    was_void_before = False
    if void_history.deleted:
        was_void_before = bool(void_history.deleted[0])
    elif not void_history.added:
        was_void_before = bool(target.is_void)

    changed = _changed_columns(target)

    if was_void_before and changed:
        _block(
            entity_type, target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on a void transaction",
            field=changed[0],
        )

    for key in changed:
        if key not in _VOID_FIELDS:
            _block(
                entity_type, target, "UPDATE",
                f"Cannot modify field '{key}' on a recorded transaction",
                field=key,
            )


def _check_header_delete(mapper, connection, target):
    _block(
        type(target).__name__, target, "DELETE",
        "Transactions cannot be deleted; reverse them instead",
    )


def _check_referenced_deletion_before_flush(session, flush_context, instances):
    """
    Block deletion of products and locations that movements reference.

    Runs in SessionEvents.before_flush, before the flush plan is fixed.
    """
    from inventory_kernel.models.movement import Movement
    from inventory_kernel.models.product import Location, Product

    for obj in list(session.deleted):
        if isinstance(obj, Product):
            column = Movement.product_id
        elif isinstance(obj, Location):
            column = Movement.location_id
        else:
            continue

        with session.no_autoflush:
            count = session.execute(
                select(func.count()).select_from(Movement).where(column == obj.id)
            ).scalar_one()

        if count:
            _block(
                type(obj).__name__, obj, "DELETE",
                f"{type(obj).__name__} is referenced by {count} movement(s)",
            )


def _listener_table():
    from inventory_kernel.models.movement import Movement
    from inventory_kernel.models.transactions import TRANSACTION_MODELS, SaleItem

    table = [
        (Movement, "before_update", _check_movement_immutability),
        (Movement, "before_delete", _check_movement_delete),
        (SaleItem, "before_update", _check_sale_item_immutability),
        (SaleItem, "before_delete", _check_sale_item_delete),
    ]
    for model in TRANSACTION_MODELS.values():
        table.append((model, "before_update", _check_header_immutability))
        table.append((model, "before_delete", _check_header_delete))
    return table


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; a listener already registered is skipped.
    """
    if not event.contains(Session, "before_flush", _check_referenced_deletion_before_flush):
        event.listen(Session, "before_flush", _check_referenced_deletion_before_flush)

    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    _safe_remove_listener(Session, "before_flush", _check_referenced_deletion_before_flush)
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
