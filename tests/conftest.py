# tests/conftest.py
"""
Pytest fixtures for the ledger tests.

One company (ACME, base DKK) with a small chart of accounts, the account
rules every workflow needs and all document types used by the services.
A second company (OTHER) exists for company-scoping checks.
"""
import datetime
from decimal import Decimal

import pytest

from core.models import Account, AccountRule, DocumentType, Entity
from inventory.models import Warehouse
from masterdata.models import Customer, Product, Vendor

D = datetime.date(2026, 3, 2)

ACCOUNTS = [
    ("1100", "Accounts receivable", Account.AccountType.ASSET),
    ("1200", "Bank", Account.AccountType.ASSET),
    ("1400", "Inventory", Account.AccountType.ASSET),
    ("2000", "Accounts payable", Account.AccountType.LIABILITY),
    ("2100", "Goods received not invoiced", Account.AccountType.LIABILITY),
    ("3000", "Equity", Account.AccountType.EQUITY),
    ("4000", "Sales, goods", Account.AccountType.REVENUE),
    ("4100", "Sales, services", Account.AccountType.REVENUE),
    ("5000", "Cost of goods sold", Account.AccountType.EXPENSE),
    ("6000", "Consulting", Account.AccountType.EXPENSE),
]

RULES = [
    (AccountRule.RuleType.AR, "1100"),
    (AccountRule.RuleType.AP, "2000"),
    (AccountRule.RuleType.INVENTORY, "1400"),
    (AccountRule.RuleType.COGS, "5000"),
    (AccountRule.RuleType.BANK_DEFAULT, "1200"),
    (AccountRule.RuleType.RECEIPT_CREDIT, "2100"),
]

DOCUMENT_TYPES = [
    ("JE", "Journal entry"),
    ("SI", "Sales invoice"),
    ("PI", "Purchase invoice"),
    ("SO", "Sales order"),
    ("PO", "Purchase order"),
    ("GR", "Goods receipt"),
    ("GI", "Goods issue"),
]


@pytest.fixture
def today():
    return D


@pytest.fixture
def document_types(db):
    return {
        code: DocumentType.objects.create(
            code=code,
            name=name,
            numbering_strategy=DocumentType.Numbering.PER_FY,
            resets_every_fy=True,
        )
        for code, name in DOCUMENT_TYPES
    }


def _chart(entity):
    assets = Account.objects.create(
        entity=entity, code="1000", name="Assets", account_type=Account.AccountType.ASSET, is_postable=False
    )
    accounts = {"1000": assets}
    for code, name, account_type in ACCOUNTS:
        parent = assets if code.startswith("1") else None
        accounts[code] = Account.objects.create(
            entity=entity, code=code, name=name, account_type=account_type, parent=parent
        )
    return accounts


@pytest.fixture
def company(db, document_types):
    """ACME with chart of accounts and rules."""
    entity = Entity.objects.create(code="ACME", name="Acme ApS", base_currency="DKK")
    _chart(entity)
    for rule_type, account_code in RULES:
        AccountRule.objects.create(
            entity=entity,
            rule_type=rule_type,
            account_code=account_code,
            effective_from=datetime.date(2000, 1, 1),
        )
    return entity


@pytest.fixture
def other_company(db, document_types):
    """Second company with its own chart but no rules."""
    entity = Entity.objects.create(code="OTHER", name="Other A/S", base_currency="EUR")
    _chart(entity)
    Account.objects.create(entity=entity, code="9999", name="Only in OTHER", account_type=Account.AccountType.ASSET)
    return entity


@pytest.fixture
def accounts(company):
    return {a.code: a for a in Account.objects.filter(entity=company)}


@pytest.fixture
def warehouse(company):
    return Warehouse.objects.create(entity=company, code="MAIN", name="Main warehouse", is_default=True)


@pytest.fixture
def product(company, accounts):
    return Product.objects.create(
        entity=company, code="WIDGET", name="Widget", unit_price=Decimal("500.00"),
        revenue_account=accounts["4000"],
    )


@pytest.fixture
def service_product(company, accounts):
    return Product.objects.create(
        entity=company, code="INSTALL", name="Installation", is_stock_item=False,
        unit_price=Decimal("750.00"), revenue_account=accounts["4100"],
    )


@pytest.fixture
def customer(company):
    return Customer.objects.create(entity=company, code="C001", name="Jensen Cykler")


@pytest.fixture
def vendor(company):
    return Vendor.objects.create(entity=company, code="V001", name="Nordic Parts")


@pytest.fixture
def stocked(company, warehouse, product):
    """10 widgets on hand at 200."""
    from inventory.services.stock import receive_stock

    receive_stock("ACME", "MAIN", "WIDGET", 10, "200", movement_date=D)
    return product
