from typing import Callable, List, Optional, Tuple
from uuid import UUID
from datetime import datetime, timedelta
from decimal import Decimal
import logging

from sqlalchemy.orm import Session
from sqlalchemy import and_, func, update

from retailpos.core.config import settings
from retailpos.core.exceptions import (
    POSError, InsufficientStockError, NegativeStockError, InvalidMovementError,
    StockConflictError, ProductNotFoundError
)
from retailpos.common.money import quantize
from retailpos.common.schemas import Actor, SystemParty
from retailpos.modules.products.models import Product
from retailpos.modules.inventory.models import (
    StockLedgerEntry, StockReservation, TransactionKind, PartyType, utcnow
)
from retailpos.modules.inventory.schemas import (
    SaleLine, ReconciliationLine, ReconciliationReport, ReleasedReservations
)

logger = logging.getLogger(__name__)


class InventoryService:
    """
    Inventory counter and stock ledger.

    Every write to ``Product.stock`` goes through ``apply_movement`` which
    appends exactly one ledger entry in the same transaction. Reservations only
    touch ``Product.reserved`` and the reservation rows; they never create
    ledger entries.
    """

    def __init__(self, db: Session, max_retries: Optional[int] = None):
        self.db = db
        self.max_retries = max_retries or settings.STOCK_UPDATE_MAX_RETRIES

    # ===== READS =====

    def get_product(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError("Product not found", product_id=product_id)
        return product

    def fetch_product(self, product_id: UUID) -> Product:
        """Read the product bypassing the identity map, i.e. the live counter."""
        product = self.db.query(Product).filter(
            Product.id == product_id
        ).populate_existing().first()
        if not product:
            raise ProductNotFoundError("Product not found", product_id=product_id)
        return product

    def held_quantity(self, order_id: UUID, product_id: UUID) -> int:
        hold = self._hold(order_id, product_id)
        return hold.quantity if hold else 0

    def holds_for_order(self, order_id: UUID) -> List[StockReservation]:
        return self.db.query(StockReservation).filter(
            StockReservation.order_id == order_id
        ).all()

    # ===== RESERVATIONS =====

    def reserve(
        self,
        order_id: UUID,
        product_id: UUID,
        quantity: int = 1,
        session_key: Optional[str] = None
    ) -> Product:
        """
        Hold ``quantity`` units for an order.

        Check and write are one conditional UPDATE on the product row, so two
        carts racing for the last unit cannot both win.
        """
        if quantity <= 0:
            raise InvalidMovementError("Reservation quantity must be positive", quantity=quantity)

        try:
            result = self.db.execute(
                update(Product)
                .where(
                    Product.id == product_id,
                    Product.is_active.is_(True),
                    Product.stock - Product.reserved >= quantity
                )
                .values(reserved=Product.reserved + quantity, version=Product.version + 1)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                self.db.rollback()
                product = self.fetch_product(product_id)
                if not product.is_active:
                    raise InvalidMovementError(
                        f"Product '{product.name}' is inactive and cannot be sold",
                        product_id=product_id
                    )
                raise InsufficientStockError(product.name, max(product.available, 0), quantity, product.id)

            hold = self._hold(order_id, product_id)
            if hold:
                hold.quantity += quantity
            else:
                self.db.add(StockReservation(
                    order_id=order_id,
                    session_key=session_key,
                    product_id=product_id,
                    quantity=quantity
                ))
            self.db.commit()

        except POSError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Reservation failed for product {product_id}: {e}", exc_info=True)
            raise

        product = self.fetch_product(product_id)
        logger.debug(f"Reserved {quantity} x {product.name} for order {order_id} (available now {product.available})")
        return product

    def release(self, order_id: UUID, product_id: UUID, quantity: Optional[int] = None) -> int:
        """Give back held units (all of them when ``quantity`` is None). Returns units released."""
        try:
            hold = self._hold(order_id, product_id)
            if hold is None:
                return 0
            released = self._release_hold(hold, quantity)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.debug(f"Released {released} units of product {product_id} from order {order_id}")
        return released

    def release_order(self, order_id: UUID) -> int:
        """Release every hold of an order (tab deleted or abandoned)."""
        try:
            released = sum(self._release_hold(hold) for hold in self.holds_for_order(order_id))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if released:
            logger.info(f"Released {released} reserved units held by order {order_id}")
        return released

    def release_stale_reservations(self, older_than_minutes: Optional[int] = None) -> ReleasedReservations:
        """Drop holds that have not changed for longer than the configured age."""
        minutes = older_than_minutes if older_than_minutes is not None else settings.STALE_RESERVATION_MINUTES
        cutoff = utcnow() - timedelta(minutes=minutes)

        try:
            stale = self.db.query(StockReservation).filter(
                StockReservation.updated_at < cutoff
            ).all()
            units = sum(self._release_hold(hold) for hold in stale)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if stale:
            logger.warning(f"Released {len(stale)} stale reservations ({units} units) older than {minutes} minutes")
        return ReleasedReservations(released_rows=len(stale), released_units=units)

    def reconcile_reservations(self) -> List[UUID]:
        """Rebuild ``Product.reserved`` from reservation rows; returns corrected product ids."""
        held = dict(
            self.db.query(StockReservation.product_id, func.sum(StockReservation.quantity))
            .group_by(StockReservation.product_id)
            .all()
        )
        corrected = []
        try:
            for product in self.db.query(Product).all():
                expected = int(held.get(product.id, 0) or 0)
                if product.reserved != expected:
                    logger.warning(
                        f"Reserved counter drift on '{product.name}': counter={product.reserved}, holds={expected}"
                    )
                    self._set_reserved(product.id, expected)
                    corrected.append(product.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return corrected

    # ===== LEDGER =====

    def record_movement(
        self,
        product_id: UUID,
        quantity: int,
        transaction_type: TransactionKind,
        actor: Actor,
        party=None,
        unit_price: Optional[Decimal] = None,
        reference: Optional[str] = None,
        notes: str = ""
    ) -> StockLedgerEntry:
        """
        Apply a signed stock delta and append its ledger entry atomically.

        ``quantity`` is the signed delta; its sign must agree with the kind
        (sale/supplier_return negative, purchase/customer_return positive).
        """
        try:
            entry = self.apply_movement(
                product_id,
                transaction_type,
                lambda product: quantity,
                actor,
                party=party,
                unit_price=unit_price,
                reference=reference,
                notes=notes
            )
            self.db.commit()
        except POSError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Stock movement failed for product {product_id}: {e}", exc_info=True)
            raise

        self.db.refresh(entry)
        logger.info(
            f"Stock {entry.transaction_type.value} on '{entry.product_name}': "
            f"{entry.previous_stock} -> {entry.new_stock} ({entry.quantity:+d}) by {entry.user_name}"
        )
        return entry

    def adjust_to(self, product_id: UUID, counted_stock: int, actor: Actor, notes: str = "") -> StockLedgerEntry:
        """Adjustment whose delta brings the counter to ``counted_stock``."""
        if counted_stock < 0:
            raise NegativeStockError("Counted stock cannot be negative", counted_stock=counted_stock)

        try:
            entry = self.apply_movement(
                product_id,
                TransactionKind.ADJUSTMENT,
                lambda product: counted_stock - product.stock,
                actor,
                party=SystemParty(name="stock count"),
                notes=notes or f"Stock count set to {counted_stock}"
            )
            self.db.commit()
        except POSError:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(entry)
        logger.info(f"Stock count on '{entry.product_name}': {entry.previous_stock} -> {entry.new_stock}")
        return entry

    def commit_sale(
        self,
        order_id: UUID,
        lines: List[SaleLine],
        actor: Actor,
        party=None,
        notes: str = ""
    ) -> List[StockLedgerEntry]:
        """
        Turn an order's holds into sale entries: one entry per line, the
        counter advanced by ``-quantity`` and the hold consumed.

        All lines commit together. If sale entries already exist for the order
        they are returned unchanged, so a repeated completion never decrements
        twice.
        """
        reference = str(order_id)
        existing = self.db.query(StockLedgerEntry).filter(
            StockLedgerEntry.reference == reference,
            StockLedgerEntry.transaction_type == TransactionKind.SALE
        ).order_by(StockLedgerEntry.id).all()
        if existing:
            logger.info(f"Sale entries for order {order_id} already recorded; skipping")
            return existing

        entries = []
        try:
            for line in lines:
                hold = self._hold(order_id, line.product_id)
                consumed = min(hold.quantity, line.quantity) if hold else 0
                entries.append(self.apply_movement(
                    line.product_id,
                    TransactionKind.SALE,
                    lambda product, qty=line.quantity: -qty,
                    actor,
                    party=party,
                    unit_price=line.unit_price,
                    reference=reference,
                    notes=notes,
                    consume_reserved=consumed
                ))
                if hold:
                    self._drop_hold_units(hold, consumed)

            # Holds without a matching line (should not happen) go back to stock
            for leftover in self.holds_for_order(order_id):
                self._release_hold(leftover)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Recorded {len(entries)} sale entries for order {order_id}")
        return entries

    def compensate_failed_sale(
        self,
        order_id: UUID,
        lines: List[SaleLine],
        actor: Actor,
        notes: str = ""
    ) -> List[StockLedgerEntry]:
        """
        Recovery for a completed order whose sale entries were never written:
        post one negative adjustment per line (referencing the order) and
        consume what the order still holds. Lines already covered by a sale or
        an earlier compensation are skipped.
        """
        reference = str(order_id)
        covered = {
            row.product_id
            for row in self.db.query(StockLedgerEntry).filter(
                StockLedgerEntry.reference == reference,
                StockLedgerEntry.transaction_type.in_([TransactionKind.SALE, TransactionKind.ADJUSTMENT])
            ).all()
        }

        entries = []
        try:
            for line in lines:
                if line.product_id in covered:
                    continue
                hold = self._hold(order_id, line.product_id)
                consumed = min(hold.quantity, line.quantity) if hold else 0
                entries.append(self.apply_movement(
                    line.product_id,
                    TransactionKind.ADJUSTMENT,
                    lambda product, qty=line.quantity: -qty,
                    actor,
                    party=SystemParty(name="reconciliation"),
                    unit_price=line.unit_price,
                    reference=reference,
                    notes=notes or f"Compensating adjustment for order {order_id}",
                    consume_reserved=consumed
                ))
                if hold:
                    self._drop_hold_units(hold, consumed)

            for leftover in self.holds_for_order(order_id):
                self._release_hold(leftover)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.warning(f"Posted {len(entries)} compensating adjustments for order {order_id}")
        return entries

    def list_movements(
        self,
        product_id: Optional[UUID] = None,
        transaction_type: Optional[TransactionKind] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        reference: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[StockLedgerEntry], int]:
        """Ledger entries newest first, with filters and pagination."""
        query = self.db.query(StockLedgerEntry)

        if product_id:
            query = query.filter(StockLedgerEntry.product_id == product_id)
        if transaction_type:
            query = query.filter(StockLedgerEntry.transaction_type == transaction_type)
        if start_date:
            query = query.filter(StockLedgerEntry.created_at >= start_date)
        if end_date:
            query = query.filter(StockLedgerEntry.created_at <= end_date)
        if reference:
            query = query.filter(StockLedgerEntry.reference == reference)

        total = query.count()
        entries = query.order_by(
            StockLedgerEntry.created_at.desc(),
            StockLedgerEntry.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        return entries, total

    def replay_counter(self, product_id: UUID) -> int:
        """Stock rebuilt from zero by summing the product's ledger deltas."""
        total = self.db.query(func.coalesce(func.sum(StockLedgerEntry.quantity), 0)).filter(
            StockLedgerEntry.product_id == product_id
        ).scalar()
        return int(total or 0)

    def reconcile(self, product_id: Optional[UUID] = None) -> ReconciliationReport:
        """Compare each counter with its ledger replay and its reservation rows."""
        query = self.db.query(Product)
        if product_id:
            query = query.filter(Product.id == product_id)
        products = query.all()
        if product_id and not products:
            raise ProductNotFoundError("Product not found", product_id=product_id)

        inconsistent = []
        for product in products:
            running = 0
            broken = 0
            for entry in self.db.query(StockLedgerEntry).filter(
                StockLedgerEntry.product_id == product.id
            ).order_by(StockLedgerEntry.id):
                if entry.previous_stock != running:
                    broken += 1
                running += entry.quantity

            held = self.db.query(func.coalesce(func.sum(StockReservation.quantity), 0)).filter(
                StockReservation.product_id == product.id
            ).scalar()

            line = ReconciliationLine(
                product_id=product.id,
                product_name=product.name,
                counter=product.stock,
                ledger_total=running,
                drift=product.stock - running,
                broken_links=broken,
                reserved=product.reserved,
                held_by_reservations=int(held or 0)
            )
            if not line.consistent:
                logger.warning(
                    f"Ledger/counter mismatch on '{product.name}': counter={line.counter}, "
                    f"ledger={line.ledger_total}, broken_links={broken}"
                )
                inconsistent.append(line)

        return ReconciliationReport(checked=len(products), inconsistent=inconsistent)

    # ===== INTERNALS =====

    def _hold(self, order_id: UUID, product_id: UUID) -> Optional[StockReservation]:
        return self.db.query(StockReservation).filter(
            and_(
                StockReservation.order_id == order_id,
                StockReservation.product_id == product_id
            )
        ).first()

    def _lock_product(self, product_id: UUID) -> Product:
        product = self.db.query(Product).filter(
            Product.id == product_id
        ).populate_existing().with_for_update().first()
        if not product:
            raise ProductNotFoundError("Product not found", product_id=product_id)
        return product

    def apply_movement(
        self,
        product_id: UUID,
        transaction_type: TransactionKind,
        compute_delta: Callable[[Product], int],
        actor: Actor,
        party=None,
        unit_price: Optional[Decimal] = None,
        reference: Optional[str] = None,
        notes: str = "",
        consume_reserved: int = 0
    ) -> StockLedgerEntry:
        """Counter update + ledger append, inside the caller's transaction."""
        for attempt in range(1, self.max_retries + 1):
            product = self._lock_product(product_id)
            delta = compute_delta(product)
            self._validate_delta(transaction_type, delta, product)

            previous_stock = product.stock
            new_stock = previous_stock + delta
            new_reserved = max(product.reserved - consume_reserved, 0)

            if new_stock < 0:
                raise NegativeStockError(
                    f"Movement would result in negative stock for '{product.name}'. "
                    f"Current stock: {previous_stock}, Change: {delta}",
                    product_id=product.id,
                    current_stock=previous_stock,
                    change=delta
                )
            if new_stock < new_reserved:
                raise NegativeStockError(
                    f"Movement would leave '{product.name}' with fewer units ({new_stock}) "
                    f"than open carts hold ({new_reserved})",
                    product_id=product.id,
                    current_stock=previous_stock,
                    change=delta,
                    reserved=new_reserved
                )

            result = self.db.execute(
                update(Product)
                .where(Product.id == product_id, Product.version == product.version)
                .values(stock=new_stock, reserved=new_reserved, version=product.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                break

            logger.warning(
                f"Concurrent stock update on '{product.name}' (attempt {attempt}/{self.max_retries}); retrying"
            )
        else:
            raise StockConflictError(
                "Stock counter kept changing underneath this movement; try again",
                product_id=product_id
            )

        price = unit_price if unit_price is not None else self._default_price(product, transaction_type)
        entry = StockLedgerEntry(
            product_id=product.id,
            product_name=product.name,
            transaction_type=transaction_type,
            quantity=delta,
            previous_stock=previous_stock,
            new_stock=new_stock,
            unit_price=quantize(price),
            total_value=quantize(abs(delta) * Decimal(price)),
            reference=reference,
            party_type=PartyType(party.type) if party is not None else None,
            party_id=party.id if party is not None else None,
            party_name=party.name if party is not None else None,
            user_id=actor.id,
            user_name=actor.username,
            notes=notes or ""
        )
        self.db.add(entry)
        self.db.flush()
        self.db.expire(product)
        return entry

    def _validate_delta(self, transaction_type: TransactionKind, delta: int, product: Product) -> None:
        if delta == 0:
            raise InvalidMovementError(
                f"Movement quantity for '{product.name}' cannot be zero",
                product_id=product.id
            )
        direction = transaction_type.direction
        if direction and (delta > 0) != (direction > 0):
            raise InvalidMovementError(
                f"A {transaction_type.value} must {'increase' if direction > 0 else 'decrease'} stock",
                product_id=product.id,
                change=delta
            )

    def _default_price(self, product: Product, transaction_type: TransactionKind) -> Decimal:
        if transaction_type in (TransactionKind.SALE, TransactionKind.CUSTOMER_RETURN):
            return Decimal(product.selling_price or 0)
        return Decimal(product.cost_price or 0)

    def _release_hold(self, hold: StockReservation, quantity: Optional[int] = None) -> int:
        """Return held units to the product counter; no commit."""
        qty = hold.quantity if quantity is None else min(quantity, hold.quantity)
        if qty <= 0:
            return 0

        product_id = hold.product_id
        self._drop_hold_units(hold, qty)
        self.db.flush()

        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.reserved >= qty)
            .values(reserved=Product.reserved - qty, version=Product.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(f"Reserved counter of product {product_id} below its holds; resyncing")
            held = self.db.query(func.coalesce(func.sum(StockReservation.quantity), 0)).filter(
                StockReservation.product_id == product_id
            ).scalar()
            self._set_reserved(product_id, int(held or 0))
        return qty

    def _drop_hold_units(self, hold: StockReservation, quantity: int) -> None:
        if quantity >= hold.quantity:
            self.db.delete(hold)
        elif quantity > 0:
            hold.quantity -= quantity

    def _set_reserved(self, product_id: UUID, reserved: int) -> None:
        self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(reserved=reserved, version=Product.version + 1)
            .execution_options(synchronize_session=False)
        )
