import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from core.exceptions import InsufficientStock, NotFound, PostingError, QuantityExceedsOrdered
from core.models import AccountRule
from core.services.rules import resolve_account_code
from core.services.scoping import get_entity, require_atomic
from documents.models import PurchaseOrderLine
from inventory.models import InventoryItem, StockMove, Warehouse
from ledger.services.posting import commit_in_tx
from ledger.services.proposal import Proposal, ProposalLine
from masterdata.models import Product

logger = logging.getLogger(__name__)

COST_PLACES = Decimal("0.0001")
CENT = Decimal("0.01")
ZERO = Decimal("0")


@dataclass
class StockLevel:
    product_code: str
    product_name: str
    warehouse_code: str
    qty_on_hand: Decimal
    qty_reserved: Decimal
    qty_available: Decimal
    unit_cost: Decimal


def get_warehouses(company_code):
    entity = get_entity(company_code)
    return list(Warehouse.objects.filter(entity=entity, is_active=True).order_by("code"))


def get_default_warehouse(entity) -> Warehouse:
    """The flagged default warehouse, else the oldest active one."""
    warehouse = (
        Warehouse.objects.filter(entity=entity, is_active=True)
        .order_by("-is_default", "id")
        .first()
    )
    if warehouse is None:
        raise NotFound(f"no active warehouse for company {entity.code}")
    return warehouse


def get_warehouse(entity, warehouse_code=None) -> Warehouse:
    if not warehouse_code:
        return get_default_warehouse(entity)
    try:
        return Warehouse.objects.get(entity=entity, code=warehouse_code, is_active=True)
    except Warehouse.DoesNotExist:
        raise NotFound(f"warehouse {warehouse_code} not found")


def get_product(entity, product_code) -> Product:
    try:
        return Product.objects.get(entity=entity, code=product_code, is_active=True)
    except Product.DoesNotExist:
        raise NotFound(f"product {product_code} not found")


def get_stock_levels(company_code):
    entity = get_entity(company_code)
    items = (
        InventoryItem.objects.filter(entity=entity)
        .select_related("product", "warehouse")
        .order_by("product__code", "warehouse__code")
    )
    return [
        StockLevel(
            product_code=item.product.code,
            product_name=item.product.name,
            warehouse_code=item.warehouse.code,
            qty_on_hand=item.qty_on_hand,
            qty_reserved=item.qty_reserved,
            qty_available=item.qty_available,
            unit_cost=item.unit_cost,
        )
        for item in items
    ]


def weighted_average(old_qty, old_cost, qty, unit_cost) -> Decimal:
    """(old_qty*old_cost + qty*unit_cost) / (old_qty + qty), at 4 decimals."""
    total_qty = old_qty + qty
    if total_qty <= 0:
        return Decimal(unit_cost).quantize(COST_PLACES)
    return ((old_qty * old_cost + qty * unit_cost) / total_qty).quantize(COST_PLACES)


def _lock_item(entity, product, warehouse):
    return InventoryItem.objects.select_for_update().get(entity=entity, product=product, warehouse=warehouse)


def _lock_stocked(entity, product, quantity, field="qty_available"):
    """Lock every active stock row of a product; pick the first that covers `quantity`.

    Rows are locked in warehouse order. Returns (item or None, largest quantity found).
    """
    items = list(
        InventoryItem.objects.select_for_update(of=("self",))
        .select_related("warehouse")
        .filter(entity=entity, product=product, warehouse__is_active=True)
        .order_by("warehouse_id")
    )
    best = ZERO
    for item in items:
        held = getattr(item, field)
        if held >= quantity:
            return item, held
        best = max(best, held)
    return None, best


def _lock_po_line(entity, po_line_id):
    try:
        return (
            PurchaseOrderLine.objects.select_for_update()
            .select_related("product")
            .get(pk=po_line_id, order__entity=entity)
        )
    except (PurchaseOrderLine.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"purchase order line {po_line_id} not found")


def received_quantity(po_line) -> Decimal:
    total = StockMove.objects.filter(purchase_line=po_line, kind=StockMove.Kind.RECEIPT).aggregate(q=Sum("qty"))["q"]
    return total or ZERO


@transaction.atomic
def receive_stock(company_code, warehouse_code, product_code, quantity, unit_cost,
                  movement_date=None, credit_account_code=None, po_line_id=None) -> StockMove:
    """Receive goods in their own transaction (see receive_stock_in_tx)."""
    entity = get_entity(company_code)
    warehouse = get_warehouse(entity, warehouse_code)
    product = get_product(entity, product_code)
    return receive_stock_in_tx(
        entity, warehouse, product, quantity, unit_cost,
        movement_date=movement_date,
        credit_account_code=credit_account_code,
        po_line_id=po_line_id,
    )


def receive_stock_in_tx(entity, warehouse, product, quantity, unit_cost,
                        movement_date=None, credit_account_code=None, po_line_id=None,
                        reference="") -> StockMove:
    """Put goods on stock at weighted-average cost and book DR Inventory / CR credit account.

    Step-by-step:
    1) Resolve the INVENTORY and credit accounts (RECEIPT_CREDIT rule by default)
    2) With a PO line: lock it and check the cumulative received quantity
    3) Lock (create if needed) the inventory item and recompute its unit cost
    4) Write the RECEIPT movement
    5) Post the GR entry keyed by the movement id and link it

    Lock order: PO line, inventory item, then the document sequence inside the ledger.
    """
    require_atomic()

    quantity = Decimal(str(quantity))
    unit_cost = Decimal(str(unit_cost))
    if quantity <= 0:
        raise PostingError(f"receive quantity must be positive, got {quantity}")
    if unit_cost < 0:
        raise PostingError(f"unit cost cannot be negative, got {unit_cost}")
    if not product.is_stock_item:
        raise PostingError(f"product {product.code} is not a stock item")

    movement_date = movement_date or timezone.localdate()
    inventory_account = resolve_account_code(entity, AccountRule.RuleType.INVENTORY, on_date=movement_date)
    credit_account = credit_account_code or resolve_account_code(
        entity, AccountRule.RuleType.RECEIPT_CREDIT, on_date=movement_date
    )

    po_line = None
    if po_line_id is not None:
        po_line = _lock_po_line(entity, po_line_id)
        if po_line.product_id != product.pk:
            raise PostingError(f"PO line {po_line.pk} is for {po_line.product}, not {product.code}")
        already = received_quantity(po_line)
        attempted = already + quantity
        if attempted > po_line.quantity:
            raise QuantityExceedsOrdered(po_line.pk, attempted, po_line.quantity, already)

    InventoryItem.objects.get_or_create(entity=entity, product=product, warehouse=warehouse)
    item = _lock_item(entity, product, warehouse)

    item.unit_cost = weighted_average(item.qty_on_hand, item.unit_cost, quantity, unit_cost)
    item.qty_on_hand = item.qty_on_hand + quantity
    item.save(update_fields=["unit_cost", "qty_on_hand", "updated_at"])

    total_cost = (quantity * unit_cost).quantize(CENT)
    move = StockMove.objects.create(
        entity=entity,
        product=product,
        warehouse=warehouse,
        kind=StockMove.Kind.RECEIPT,
        date=movement_date,
        qty=quantity,
        unit_cost=unit_cost,
        total_cost=total_cost,
        purchase_line=po_line,
        reference=reference,
    )

    # free goods move stock but have no accounting consequence
    if total_cost > 0:
        entry = commit_in_tx(Proposal(
            document_type_code="GR",
            company_code=entity.code,
            idempotency_key=f"goods-receipt-{move.pk}",
            transaction_currency=entity.base_currency,
            exchange_rate="1",
            posting_date=movement_date,
            narration=f"Goods receipt: {quantity} x {product.code} @ {unit_cost}",
            reference=reference,
            lines=[
                ProposalLine.debit(inventory_account, total_cost),
                ProposalLine.credit(credit_account, total_cost),
            ],
        ))
        StockMove.objects.filter(pk=move.pk).update(journal_entry=entry)
        move.journal_entry = entry

    logger.info(
        "received %s x %s into %s at %s, average cost now %s",
        quantity, product.code, warehouse.code, unit_cost, item.unit_cost,
    )
    return move


def reserve_stock(entity, order, lines, on_date=None):
    """Reserve stock for the product lines of a confirmed order.

    Each line is reserved in the first active warehouse that has enough
    available; the warehouse is recorded on the RESERVATION move. Non-stock
    products are skipped. A line no single warehouse can cover fails the whole
    confirmation.
    """
    require_atomic()
    on_date = on_date or timezone.localdate()
    for line in lines:
        product = line.product
        if not product.is_stock_item:
            continue
        item, available = _lock_stocked(entity, product, line.quantity)
        if item is None:
            raise InsufficientStock(product.code, "any warehouse", line.quantity, available)

        item.qty_reserved = item.qty_reserved + line.quantity
        item.save(update_fields=["qty_reserved", "updated_at"])
        StockMove.objects.create(
            entity=entity,
            product=product,
            warehouse=item.warehouse,
            kind=StockMove.Kind.RESERVATION,
            date=on_date,
            qty=line.quantity,
            sales_order=order,
            reference=f"Reserved for order {order.order_number or order.pk}",
        )


def release_reservation(entity, order, on_date=None):
    """Undo every open reservation of an order."""
    require_atomic()
    on_date = on_date or timezone.localdate()
    reserved = (
        StockMove.objects.filter(
            sales_order=order,
            kind__in=[StockMove.Kind.RESERVATION, StockMove.Kind.RESERVATION_CANCEL],
        )
        .values("product_id", "warehouse_id")
        .annotate(qty=Sum("qty"))
    )
    for row in reserved:
        if row["qty"] <= 0:
            continue
        item = InventoryItem.objects.select_for_update().get(
            entity=entity, product_id=row["product_id"], warehouse_id=row["warehouse_id"]
        )
        item.qty_reserved = max(item.qty_reserved - row["qty"], ZERO)
        item.save(update_fields=["qty_reserved", "updated_at"])
        StockMove.objects.create(
            entity=entity,
            product_id=row["product_id"],
            warehouse_id=row["warehouse_id"],
            kind=StockMove.Kind.RESERVATION_CANCEL,
            date=on_date,
            qty=-row["qty"],
            sales_order=order,
            reference=f"Reservation released for order {order.order_number or order.pk}",
        )


def _reserved_warehouses(order):
    """{product_id: [warehouse_id, ...]} from the order's RESERVATION moves, in line order."""
    reserved = defaultdict(list)
    moves = StockMove.objects.filter(sales_order=order, kind=StockMove.Kind.RESERVATION).order_by("id")
    for product_id, warehouse_id in moves.values_list("product_id", "warehouse_id"):
        reserved[product_id].append(warehouse_id)
    return reserved


def ship_stock(entity, order, lines, on_date=None):
    """Take shipped goods off stock at the current weighted-average cost.

    Each line ships from the warehouse its reservation was made in.

    Returns (total_cogs, moves). The caller posts the COGS entry.
    """
    require_atomic()
    on_date = on_date or timezone.localdate()
    total_cogs = Decimal("0.00")
    moves = []
    reserved = _reserved_warehouses(order)
    for line in lines:
        product = line.product
        if not product.is_stock_item:
            continue
        warehouse_ids = reserved.get(product.pk)
        if warehouse_ids:
            item = (
                InventoryItem.objects.select_for_update(of=("self",))
                .select_related("warehouse")
                .get(entity=entity, product=product, warehouse_id=warehouse_ids.pop(0))
            )
            if item.qty_on_hand < line.quantity:
                raise InsufficientStock(product.code, item.warehouse.code, line.quantity, item.qty_on_hand)
        else:
            item, on_hand = _lock_stocked(entity, product, line.quantity, field="qty_on_hand")
            if item is None:
                raise InsufficientStock(product.code, "any warehouse", line.quantity, on_hand)

        line_cogs = (line.quantity * item.unit_cost).quantize(CENT)
        total_cogs += line_cogs

        item.qty_on_hand = item.qty_on_hand - line.quantity
        item.qty_reserved = max(item.qty_reserved - line.quantity, ZERO)
        item.save(update_fields=["qty_on_hand", "qty_reserved", "updated_at"])

        moves.append(StockMove.objects.create(
            entity=entity,
            product=product,
            warehouse=item.warehouse,
            kind=StockMove.Kind.SHIPMENT,
            date=on_date,
            qty=-line.quantity,
            unit_cost=item.unit_cost,
            total_cost=-line_cogs,
            sales_order=order,
            reference=f"Shipped for order {order.order_number or order.pk}",
        ))
    return total_cogs, moves
