import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import InvalidProposal, NotFound, PostingError, QuantityExceedsOrdered
from core.models import AccountRule
from core.services.accounts import resolve_account
from core.services.numbering import create_draft, post_document_in_tx
from core.services.rules import resolve_account_code
from core.services.scoping import get_entity, get_owned
from core.utils.numbers import to_decimal
from documents.models import PurchaseOrder, PurchaseOrderLine
from documents.services.workflow import Transition
from inventory.services.stock import get_product, get_warehouse, receive_stock_in_tx
from ledger.services.proposal import Proposal, ProposalLine
from masterdata.models import Vendor

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class PurchaseLineInput:
    quantity: object
    unit_cost: object
    product_code: str = ""
    description: str = ""
    expense_account_code: str = ""


@dataclass
class ReceivedLine:
    po_line_id: int
    quantity: object


def _ap_account_code(entity, vendor, on_date) -> str:
    if vendor.ap_account_id:
        return vendor.ap_account.code
    return resolve_account_code(entity, AccountRule.RuleType.AP, on_date)


@transaction.atomic
def create_po(company_code, vendor_code, lines, po_date=None, currency=None, exchange_rate="1",
              expected_delivery_date=None, notes="") -> PurchaseOrder:
    """Create a DRAFT purchase order.

    A line is either goods (product_code, must be a stock item) or a service
    (expense_account_code). A line with neither falls back to the vendor's
    default expense account.
    """
    if not lines:
        raise InvalidProposal("purchase order must have at least one line")

    entity = get_entity(company_code)
    try:
        vendor = Vendor.objects.select_related("default_expense_account").get(
            entity=entity, code=vendor_code, is_active=True
        )
    except Vendor.DoesNotExist:
        raise NotFound(f"vendor {vendor_code} not found")

    rate = to_decimal(exchange_rate or "1", "exchange rate")
    if rate <= 0:
        raise InvalidProposal(f"exchange rate must be positive, got {rate}")

    prepared = []
    total_tx = Decimal("0.00")
    for i, line in enumerate(lines, start=1):
        quantity = to_decimal(line.quantity, f"line {i} quantity")
        unit_cost = to_decimal(line.unit_cost, f"line {i} unit cost")
        if quantity <= 0:
            raise InvalidProposal(f"line {i}: quantity must be positive")
        if unit_cost < 0:
            raise InvalidProposal(f"line {i}: unit cost cannot be negative")

        product = None
        expense_account = None
        if line.product_code:
            product = get_product(entity, line.product_code)
            if not product.is_stock_item:
                raise InvalidProposal(f"line {i}: product {product.code} is not a stock item; use an expense account")
        elif line.expense_account_code:
            expense_account = resolve_account(entity, line.expense_account_code)
        elif vendor.default_expense_account_id:
            expense_account = vendor.default_expense_account
        else:
            raise InvalidProposal(f"line {i}: needs a product or an expense account")

        prepared.append((product, expense_account, line.description, quantity, unit_cost))
        total_tx += (quantity * unit_cost).quantize(CENT)

    po = PurchaseOrder.objects.create(
        entity=entity,
        vendor=vendor,
        po_date=po_date or timezone.localdate(),
        expected_delivery_date=expected_delivery_date,
        currency=(currency or entity.base_currency).strip().upper(),
        exchange_rate=rate,
        total_tx=total_tx,
        total_base=(total_tx * rate).quantize(CENT),
        notes=notes,
    )
    for product, expense_account, description, quantity, unit_cost in prepared:
        PurchaseOrderLine.objects.create(
            order=po,
            product=product,
            expense_account=expense_account,
            description=description,
            quantity=quantity,
            unit_cost=unit_cost,
        )

    logger.info("purchase order %s created for vendor %s, total %s %s", po.pk, vendor.code, total_tx, po.currency)
    return po


class ApprovePO(Transition):
    model = PurchaseOrder
    action = "approve purchase order"
    required_status = PurchaseOrder.Status.DRAFT
    transition_name = "approve"

    def already_done(self, po):
        # approving twice only hands out a number once
        return po.status == PurchaseOrder.Status.APPROVED

    def apply(self, po):
        document = create_draft(self.entity, "PO", financial_year=po.po_date.year)
        document = post_document_in_tx(document.pk)
        po.po_document = document
        po.po_number = document.number


class ReceivePO(Transition):
    """APPROVED -> RECEIVED.

    Goods lines go through receive_stock_in_tx (weighted average, movement
    linked to the PO line, DR Inventory / CR AP). Service lines post
    DR expense / CR AP directly.
    """
    model = PurchaseOrder
    action = "receive purchase order"
    required_status = PurchaseOrder.Status.APPROVED
    transition_name = "receive"
    related = ("vendor", "vendor__ap_account")

    def __init__(self, company_code, pk, received_lines, warehouse_code=None, receipt_date=None):
        super().__init__(company_code, pk)
        self.received_lines = received_lines
        self.warehouse_code = warehouse_code
        self.receipt_date = receipt_date or timezone.localdate()
        self.service_lines = []

    def _merged(self):
        """Sum quantities per PO line; the same line may appear more than once."""
        if not self.received_lines:
            raise InvalidProposal("at least one received line is required")
        merged = OrderedDict()
        for received in self.received_lines:
            quantity = to_decimal(received.quantity, f"PO line {received.po_line_id} quantity")
            if quantity <= 0:
                raise InvalidProposal(f"PO line {received.po_line_id}: received quantity must be positive")
            merged[received.po_line_id] = merged.get(received.po_line_id, Decimal("0")) + quantity
        return merged

    def apply(self, po):
        merged = self._merged()
        lines = {line.pk: line for line in po.lines.select_related("product", "expense_account")}
        credit_account = _ap_account_code(self.entity, po.vendor, self.receipt_date)
        warehouse = None

        for line_id, quantity in merged.items():
            line = lines.get(line_id)
            if line is None:
                raise NotFound(f"PO line {line_id} not found on purchase order {po.pk}")

            if line.is_goods:
                warehouse = warehouse or get_warehouse(self.entity, self.warehouse_code)
                move = receive_stock_in_tx(
                    self.entity, warehouse, line.product, quantity,
                    (line.unit_cost * po.exchange_rate).quantize(Decimal("0.0001")),
                    movement_date=self.receipt_date,
                    credit_account_code=credit_account,
                    po_line_id=line.pk,
                    reference=po.po_number,
                )
                if move.journal_entry_id:
                    self.entries.append(move.journal_entry)
            elif line.expense_account_id:
                if quantity > line.quantity:
                    raise QuantityExceedsOrdered(line.pk, quantity, line.quantity, Decimal("0"))
                self.service_lines.append((line, quantity, credit_account))
            else:
                raise PostingError(f"PO line {line.pk} has no product or expense account")

    def proposals(self, po):
        return [
            Proposal(
                document_type_code="GR",
                company_code=self.entity.code,
                idempotency_key=f"po-{po.pk}-line-{line.pk}-service-receipt",
                transaction_currency=po.currency,
                exchange_rate=po.exchange_rate,
                posting_date=self.receipt_date,
                narration=f"Service receipt: {line.description} (PO {po.po_number}, line {line.line_no})",
                reference=po.po_number,
                lines=[
                    ProposalLine.debit(line.expense_account.code, (quantity * line.unit_cost).quantize(CENT)),
                    ProposalLine.credit(credit_account, (quantity * line.unit_cost).quantize(CENT)),
                ],
            )
            for line, quantity, credit_account in self.service_lines
        ]


class RecordVendorInvoice(Transition):
    """RECEIVED -> INVOICED. Assigns a PI number; posts nothing.

    An invoice amount that deviates from the PO total by more than the
    configured threshold produces a warning but is accepted.
    """
    model = PurchaseOrder
    action = "record vendor invoice"
    required_status = PurchaseOrder.Status.RECEIVED
    transition_name = "invoice"

    def __init__(self, company_code, pk, invoice_number, invoice_amount, invoice_date=None):
        super().__init__(company_code, pk)
        self.invoice_number = (invoice_number or "").strip()
        self.invoice_amount = to_decimal(invoice_amount, "invoice amount")
        self.invoice_date = invoice_date or timezone.localdate()
        self.warning = ""

    def apply(self, po):
        if not self.invoice_number:
            raise InvalidProposal("vendor invoice number is required")
        if self.invoice_amount <= 0:
            raise InvalidProposal("invoice amount must be positive")

        self.warning = deviation_warning(self.invoice_amount, po.total_base)
        if self.warning:
            logger.warning("purchase order %s: %s", po.po_number or po.pk, self.warning)

        document = create_draft(self.entity, "PI", financial_year=self.invoice_date.year)
        document = post_document_in_tx(document.pk)
        po.pi_document = document
        po.invoice_number = self.invoice_number
        po.invoice_date = self.invoice_date
        po.invoice_amount = self.invoice_amount.quantize(CENT)


class PayVendor(Transition):
    model = PurchaseOrder
    action = "pay vendor"
    required_status = PurchaseOrder.Status.INVOICED
    transition_name = "mark_paid"
    related = ("vendor", "vendor__ap_account")

    def __init__(self, company_code, pk, bank_account_code=None, payment_date=None):
        super().__init__(company_code, pk)
        self.bank_account_code = bank_account_code
        self.payment_date = payment_date or timezone.localdate()

    def proposals(self, po):
        on_date = self.payment_date
        amount = po.invoice_amount or po.total_base
        bank = self.bank_account_code or resolve_account_code(self.entity, AccountRule.RuleType.BANK_DEFAULT, on_date)
        return [Proposal(
            document_type_code="JE",
            company_code=self.entity.code,
            idempotency_key=f"pay-vendor-po-{po.pk}",
            transaction_currency=self.entity.base_currency,
            exchange_rate="1",
            posting_date=on_date,
            narration=f"Vendor payment for PO {po.po_number} ({po.vendor.name})",
            reference=po.invoice_number or po.po_number,
            lines=[
                ProposalLine.debit(_ap_account_code(self.entity, po.vendor, on_date), amount),
                ProposalLine.credit(bank, amount),
            ],
        )]


def deviation_warning(invoice_amount, po_total) -> str:
    if not po_total:
        return ""
    threshold = Decimal(str(settings.LEDGER_INVOICE_DEVIATION_THRESHOLD))
    deviation = abs(invoice_amount - po_total) / po_total
    if deviation <= threshold:
        return ""
    return (
        f"invoice amount {invoice_amount.quantize(CENT)} deviates "
        f"{(deviation * 100).quantize(Decimal('0.1'))}% from PO total {po_total.quantize(CENT)} "
        f"(threshold {(threshold * 100).normalize()}%)"
    )


def approve_po(company_code, po_id) -> PurchaseOrder:
    """DRAFT -> APPROVED: assign the PO number. No-op when already approved."""
    return ApprovePO(company_code, po_id).run()


def receive_po(company_code, po_id, received_lines, warehouse_code=None, receipt_date=None) -> PurchaseOrder:
    return ReceivePO(
        company_code, po_id, received_lines, warehouse_code=warehouse_code, receipt_date=receipt_date
    ).run()


def record_vendor_invoice(company_code, po_id, invoice_number, invoice_amount, invoice_date=None):
    """Returns (purchase_order, warning); warning is "" unless the amount deviates."""
    step = RecordVendorInvoice(company_code, po_id, invoice_number, invoice_amount, invoice_date=invoice_date)
    po = step.run()
    return po, step.warning


def pay_vendor(company_code, po_id, bank_account_code=None, payment_date=None) -> PurchaseOrder:
    """INVOICED -> PAID: DR AP / CR bank for the invoiced amount."""
    return PayVendor(company_code, po_id, bank_account_code=bank_account_code, payment_date=payment_date).run()


def get_po(company_code, po_id) -> PurchaseOrder:
    entity = get_entity(company_code)
    return get_owned(PurchaseOrder, entity, po_id)


def get_pos(company_code, status=None):
    entity = get_entity(company_code)
    qs = PurchaseOrder.objects.filter(entity=entity).select_related("vendor")
    if status:
        if status not in PurchaseOrder.Status.values:
            raise PostingError(f"unknown purchase order status {status}")
        qs = qs.filter(status=status)
    return list(qs)
