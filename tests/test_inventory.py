# tests/test_inventory.py
"""
Tests for stock receipts and weighted-average costing.
"""
import datetime
from decimal import Decimal

import pytest

from core.exceptions import NotFound, PostingError, QuantityExceedsOrdered
from inventory.models import InventoryItem, StockMove
from inventory.services.stock import get_stock_levels, receive_stock, weighted_average
from ledger.models import JournalEntry
from ledger.services.balances import get_account_balance

D = datetime.date(2026, 3, 2)


class TestWeightedAverage:

    def test_first_receipt_takes_its_cost(self):
        assert weighted_average(Decimal("0"), Decimal("0"), Decimal("100"), Decimal("200")) == Decimal("200.0000")

    def test_blends_by_quantity(self):
        assert weighted_average(Decimal("100"), Decimal("200"), Decimal("100"), Decimal("300")) == Decimal("250.0000")

    def test_rounds_to_four_places(self):
        assert weighted_average(Decimal("3"), Decimal("1"), Decimal("0"), Decimal("0")) == Decimal("1.0000")
        assert weighted_average(Decimal("1"), Decimal("1"), Decimal("2"), Decimal("2")) == Decimal("1.6667")


@pytest.mark.django_db
class TestReceiveStock:

    def test_two_receipts_average_to_250(self, company, warehouse, product):
        receive_stock("ACME", "MAIN", "WIDGET", 100, "200", movement_date=D)
        receive_stock("ACME", "MAIN", "WIDGET", 100, "300", movement_date=D)

        item = InventoryItem.objects.get(entity=company, product=product, warehouse=warehouse)
        assert item.qty_on_hand == Decimal("200")
        assert item.unit_cost == Decimal("250")

        assert get_account_balance("ACME", "1400") == Decimal("50000")
        assert get_account_balance("ACME", "2100") == Decimal("-50000")

    def test_each_receipt_posts_its_own_entry(self, company, warehouse, product):
        first = receive_stock("ACME", "MAIN", "WIDGET", 1, "10", movement_date=D)
        second = receive_stock("ACME", "MAIN", "WIDGET", 1, "10", movement_date=D)

        assert first.journal_entry_id != second.journal_entry_id
        keys = set(JournalEntry.objects.values_list("idempotency_key", flat=True))
        assert keys == {f"goods-receipt-{first.pk}", f"goods-receipt-{second.pk}"}
        assert JournalEntry.objects.get(pk=first.journal_entry_id).document.number == "GR-2026-00001"

    def test_free_goods_move_stock_without_entry(self, company, warehouse, product):
        move = receive_stock("ACME", "MAIN", "WIDGET", 5, "0", movement_date=D)
        assert move.journal_entry is None
        assert JournalEntry.objects.count() == 0
        assert InventoryItem.objects.get(product=product).qty_on_hand == Decimal("5")

    def test_explicit_credit_account(self, company, warehouse, product):
        receive_stock("ACME", "MAIN", "WIDGET", 2, "50", movement_date=D, credit_account_code="2000")
        assert get_account_balance("ACME", "2000") == Decimal("-100")
        assert get_account_balance("ACME", "2100") == Decimal("0")

    def test_rejects_non_positive_quantity(self, company, warehouse, product):
        with pytest.raises(PostingError, match="quantity must be positive"):
            receive_stock("ACME", "MAIN", "WIDGET", 0, "10")
        assert StockMove.objects.count() == 0

    def test_rejects_service_product(self, company, warehouse, service_product):
        with pytest.raises(PostingError, match="not a stock item"):
            receive_stock("ACME", "MAIN", "INSTALL", 1, "10")

    def test_unknown_warehouse_or_product(self, company, warehouse, product):
        with pytest.raises(NotFound):
            receive_stock("ACME", "NOPE", "WIDGET", 1, "10")
        with pytest.raises(NotFound):
            receive_stock("ACME", "MAIN", "NOPE", 1, "10")

    def test_default_warehouse_when_code_is_empty(self, company, warehouse, product):
        move = receive_stock("ACME", "", "WIDGET", 1, "10", movement_date=D)
        assert move.warehouse == warehouse

    def test_stock_levels(self, company, stocked):
        (level,) = get_stock_levels("ACME")
        assert level.product_code == "WIDGET"
        assert level.warehouse_code == "MAIN"
        assert level.qty_on_hand == Decimal("10")
        assert level.qty_available == Decimal("10")
        assert level.unit_cost == Decimal("200")


@pytest.mark.django_db
class TestReceiveAgainstPurchaseLine:

    @pytest.fixture
    def po_line(self, company, vendor, product):
        from documents.services.purchasing import PurchaseLineInput, create_po

        po = create_po("ACME", "V001", [PurchaseLineInput(quantity=10, unit_cost="200", product_code="WIDGET")], po_date=D)
        return po.lines.get()

    def test_partial_receipts_up_to_ordered(self, company, warehouse, po_line):
        receive_stock("ACME", "MAIN", "WIDGET", 4, "200", movement_date=D, po_line_id=po_line.pk)
        receive_stock("ACME", "MAIN", "WIDGET", 6, "200", movement_date=D, po_line_id=po_line.pk)
        assert StockMove.objects.filter(purchase_line=po_line).count() == 2

    def test_over_receipt_rejected(self, company, warehouse, po_line):
        receive_stock("ACME", "MAIN", "WIDGET", 8, "200", movement_date=D, po_line_id=po_line.pk)
        with pytest.raises(QuantityExceedsOrdered) as exc:
            receive_stock("ACME", "MAIN", "WIDGET", 3, "200", movement_date=D, po_line_id=po_line.pk)

        assert exc.value.attempted_total == Decimal("11")
        assert exc.value.ordered == Decimal("10")
        assert exc.value.already_received == Decimal("8")
        assert InventoryItem.objects.get(product=po_line.product).qty_on_hand == Decimal("8")

    def test_line_of_other_company_not_found(self, company, other_company, po_line):
        from core.models import AccountRule
        from masterdata.models import Product
        from inventory.models import Warehouse

        for rule_type, code in ((AccountRule.RuleType.INVENTORY, "1400"), (AccountRule.RuleType.RECEIPT_CREDIT, "2100")):
            AccountRule.objects.create(
                entity=other_company, rule_type=rule_type, account_code=code, effective_from=datetime.date(2000, 1, 1)
            )
        Warehouse.objects.create(entity=other_company, code="MAIN", name="Main")
        Product.objects.create(
            entity=other_company, code="WIDGET", name="Widget",
            revenue_account=other_company.accounts.get(code="4000"),
        )
        with pytest.raises(NotFound):
            receive_stock("OTHER", "MAIN", "WIDGET", 1, "1", movement_date=D, po_line_id=po_line.pk)
