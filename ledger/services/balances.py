from dataclasses import dataclass
from decimal import Decimal

from django.db.models import DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from core.models import Account
from core.services.scoping import get_entity
from ledger.models import JournalLine

ZERO = Decimal("0.00")


@dataclass
class AccountBalance:
    code: str
    name: str
    account_type: str
    debit: Decimal
    credit: Decimal

    @property
    def balance(self) -> Decimal:
        """Debit minus credit; sign interpretation is left to reporting."""
        return self.debit - self.credit


@dataclass
class StatementLine:
    entry_id: int
    posting_date: object
    document_date: object
    narration: str
    reference: str
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


def _sum(field_name):
    return Coalesce(
        Sum(field_name),
        Value(ZERO),
        output_field=DecimalField(max_digits=18, decimal_places=2),
    )


def get_balances(company_code):
    """Debit/credit totals for every account of the company, zero when unused."""
    entity = get_entity(company_code)
    accounts = (
        Account.objects.filter(entity=entity)
        .annotate(
            debit=_sum("journal_lines__debit_base"),
            credit=_sum("journal_lines__credit_base"),
        )
        .order_by("code")
    )
    return [
        AccountBalance(a.code, a.name, a.account_type, a.debit, a.credit)
        for a in accounts
    ]


def get_account_balance(company_code, account_code) -> Decimal:
    entity = get_entity(company_code)
    sums = JournalLine.objects.filter(entry__entity=entity, account__code=account_code).aggregate(
        d=Sum("debit_base"), c=Sum("credit_base")
    )
    return (sums["d"] or ZERO) - (sums["c"] or ZERO)


def get_account_statement(company_code, account_code, from_date=None, to_date=None):
    """Lines on one account in posting-date, entry-id order with a running balance.

    The running balance starts at zero at the first line inside the window.
    An unknown account code yields an empty statement.
    """
    entity = get_entity(company_code)
    lines = (
        JournalLine.objects.filter(entry__entity=entity, account__entity=entity, account__code=account_code)
        .select_related("entry")
        .order_by("entry__posting_date", "entry_id", "id")
    )
    if from_date:
        lines = lines.filter(entry__posting_date__gte=from_date)
    if to_date:
        lines = lines.filter(entry__posting_date__lte=to_date)

    running = ZERO
    statement = []
    for line in lines:
        running += line.debit_base - line.credit_base
        statement.append(StatementLine(
            entry_id=line.entry_id,
            posting_date=line.entry.posting_date,
            document_date=line.entry.document_date,
            narration=line.entry.narration,
            reference=line.entry.reference,
            debit=line.debit_base,
            credit=line.credit_base,
            running_balance=running,
        ))
    return statement
