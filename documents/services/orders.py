import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from core.exceptions import InvalidProposal, NotFound, PostingError
from core.models import AccountRule
from core.services.numbering import create_draft, post_document_in_tx
from core.services.rules import resolve_account_code
from core.services.scoping import get_entity, get_owned
from core.utils.numbers import to_decimal
from documents.models import SalesOrder, SalesOrderLine
from documents.services.workflow import Transition
from inventory.models import StockMove
from inventory.services.stock import get_product, release_reservation, reserve_stock, ship_stock
from ledger.services.proposal import Proposal, ProposalLine
from masterdata.models import Customer

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class OrderLineInput:
    product_code: str
    quantity: object
    unit_price: object = None  # None or 0 -> product price


@transaction.atomic
def create_order(company_code, customer_code, lines, order_date=None, currency=None,
                 exchange_rate="1", notes="") -> SalesOrder:
    """Create a DRAFT order with its lines. Lines are fixed from here on."""
    if not lines:
        raise InvalidProposal("order must have at least one line")

    entity = get_entity(company_code)
    try:
        customer = Customer.objects.get(entity=entity, code=customer_code, is_active=True)
    except Customer.DoesNotExist:
        raise NotFound(f"customer {customer_code} not found")

    rate = to_decimal(exchange_rate or "1", "exchange rate")
    if rate <= 0:
        raise InvalidProposal(f"exchange rate must be positive, got {rate}")

    priced = []
    total_tx = Decimal("0.00")
    for i, line in enumerate(lines, start=1):
        product = get_product(entity, line.product_code)
        quantity = to_decimal(line.quantity, f"line {i} quantity")
        if quantity <= 0:
            raise InvalidProposal(f"line {i}: quantity must be positive")
        price = to_decimal(line.unit_price, f"line {i} unit price") if line.unit_price else product.unit_price
        if price < 0:
            raise InvalidProposal(f"line {i}: unit price cannot be negative")
        priced.append((product, quantity, price))
        total_tx += (quantity * price).quantize(CENT)

    order = SalesOrder.objects.create(
        entity=entity,
        customer=customer,
        order_date=order_date or timezone.localdate(),
        currency=(currency or entity.base_currency).strip().upper(),
        exchange_rate=rate,
        total_tx=total_tx,
        total_base=(total_tx * rate).quantize(CENT),
        notes=notes,
    )
    for product, quantity, price in priced:
        SalesOrderLine.objects.create(order=order, product=product, quantity=quantity, unit_price=price)

    logger.info("order %s created for %s, total %s %s", order.pk, customer.code, total_tx, order.currency)
    return order


class ConfirmOrder(Transition):
    model = SalesOrder
    action = "confirm order"
    required_status = SalesOrder.Status.DRAFT
    transition_name = "confirm"

    def apply(self, order):
        # stock rows before the sequence row
        reserve_stock(self.entity, order, order.lines.select_related("product"))
        document = create_draft(self.entity, "SO", financial_year=order.order_date.year)
        document = post_document_in_tx(document.pk)
        order.order_document = document
        order.order_number = document.number


class ShipOrder(Transition):
    model = SalesOrder
    action = "ship order"
    required_status = SalesOrder.Status.CONFIRMED
    transition_name = "ship"

    def __init__(self, company_code, pk, shipment_date=None):
        super().__init__(company_code, pk)
        self.shipment_date = shipment_date or timezone.localdate()
        self.cogs = Decimal("0.00")
        self.moves = []

    def apply(self, order):
        self.cogs, self.moves = ship_stock(
            self.entity, order, order.lines.select_related("product"), on_date=self.shipment_date
        )

    def proposals(self, order):
        if not self.cogs:
            return []
        on_date = self.shipment_date
        return [Proposal(
            document_type_code="GI",
            company_code=self.entity.code,
            idempotency_key=f"goods-issue-order-{order.pk}",
            transaction_currency=self.entity.base_currency,
            exchange_rate="1",
            posting_date=on_date,
            narration=f"Cost of goods sold, order {order.order_number}",
            reasoning=f"COGS booked on shipment of order {order.order_number}.",
            reference=order.order_number,
            lines=[
                ProposalLine.debit(resolve_account_code(self.entity, AccountRule.RuleType.COGS, on_date), self.cogs),
                ProposalLine.credit(resolve_account_code(self.entity, AccountRule.RuleType.INVENTORY, on_date), self.cogs),
            ],
        )]

    def posted(self, order, entries):
        if entries:
            for move in self.moves:
                StockMove.objects.filter(pk=move.pk).update(journal_entry=entries[0])


class InvoiceOrder(Transition):
    model = SalesOrder
    action = "invoice order"
    required_status = SalesOrder.Status.SHIPPED
    transition_name = "invoice"
    related = ("customer",)

    def __init__(self, company_code, pk, invoice_date=None):
        super().__init__(company_code, pk)
        self.invoice_date = invoice_date or timezone.localdate()

    def proposals(self, order):
        revenue = OrderedDict()
        for line in order.lines.select_related("product__revenue_account").order_by("line_no"):
            code = line.product.revenue_account.code
            revenue[code] = revenue.get(code, Decimal("0.00")) + line.line_total

        ar = resolve_account_code(self.entity, AccountRule.RuleType.AR, self.invoice_date)
        lines = [ProposalLine.debit(ar, order.total_tx)]
        lines += [ProposalLine.credit(code, amount) for code, amount in revenue.items()]

        return [Proposal(
            document_type_code="SI",
            company_code=self.entity.code,
            idempotency_key=f"invoice-order-{order.pk}",
            transaction_currency=order.currency,
            exchange_rate=order.exchange_rate,
            posting_date=self.invoice_date,
            document_date=order.order_date,
            narration=f"Sales invoice for order {order.order_number}, {order.customer.name}",
            reference=order.order_number,
            lines=lines,
        )]

    def posted(self, order, entries):
        document = entries[0].document
        order.invoice_document = document
        order.invoice_number = document.number if document else ""


class RecordPayment(Transition):
    model = SalesOrder
    action = "record payment"
    required_status = SalesOrder.Status.INVOICED
    transition_name = "mark_paid"
    related = ("customer",)

    def __init__(self, company_code, pk, bank_account_code=None, payment_date=None):
        super().__init__(company_code, pk)
        self.bank_account_code = bank_account_code
        self.payment_date = payment_date or timezone.localdate()

    def proposals(self, order):
        on_date = self.payment_date
        bank = self.bank_account_code or resolve_account_code(self.entity, AccountRule.RuleType.BANK_DEFAULT, on_date)
        ar = resolve_account_code(self.entity, AccountRule.RuleType.AR, on_date)
        return [Proposal(
            document_type_code="JE",
            company_code=self.entity.code,
            idempotency_key=f"payment-order-{order.pk}",
            transaction_currency=order.currency,
            exchange_rate=order.exchange_rate,
            posting_date=on_date,
            narration=f"Payment received from {order.customer.name} for order {order.order_number}",
            reference=order.invoice_number or order.order_number,
            lines=[
                ProposalLine.debit(bank, order.total_tx),
                ProposalLine.credit(ar, order.total_tx),
            ],
        )]


class CancelOrder(Transition):
    model = SalesOrder
    action = "cancel order"
    required_status = SalesOrder.Status.DRAFT
    transition_name = "cancel"

    def apply(self, order):
        release_reservation(self.entity, order)


def confirm_order(company_code, order_id) -> SalesOrder:
    """DRAFT -> CONFIRMED: assign the SO number and reserve stock."""
    return ConfirmOrder(company_code, order_id).run()


def ship_order(company_code, order_id, shipment_date=None) -> SalesOrder:
    """CONFIRMED -> SHIPPED: take stock off hand and book COGS."""
    return ShipOrder(company_code, order_id, shipment_date=shipment_date).run()


def invoice_order(company_code, order_id, invoice_date=None) -> SalesOrder:
    """SHIPPED -> INVOICED: DR AR / CR revenue per product revenue account."""
    return InvoiceOrder(company_code, order_id, invoice_date=invoice_date).run()


def record_payment(company_code, order_id, bank_account_code=None, payment_date=None) -> SalesOrder:
    """INVOICED -> PAID: DR bank / CR AR."""
    return RecordPayment(
        company_code, order_id, bank_account_code=bank_account_code, payment_date=payment_date
    ).run()


def cancel_order(company_code, order_id) -> SalesOrder:
    return CancelOrder(company_code, order_id).run()


def get_order(company_code, order_id) -> SalesOrder:
    entity = get_entity(company_code)
    return get_owned(SalesOrder, entity, order_id)


def get_order_by_number(company_code, order_number) -> SalesOrder:
    entity = get_entity(company_code)
    try:
        return SalesOrder.objects.get(entity=entity, order_number=order_number)
    except SalesOrder.DoesNotExist:
        raise NotFound(f"order {order_number} not found")


def get_orders(company_code, status=None):
    entity = get_entity(company_code)
    qs = SalesOrder.objects.filter(entity=entity).select_related("customer")
    if status:
        if status not in SalesOrder.Status.values:
            raise PostingError(f"unknown order status {status}")
        qs = qs.filter(status=status)
    return list(qs)
