"""Proposal shape, normalization and structural validation.

A Proposal is what a caller (manual entry, a script, an AI interpreter, a
workflow) hands to the ledger. It is never persisted as-is. Upstream input
is often sloppy, so `normalize` fills gaps first and `validate` then fails
loudly on anything that is still wrong.
"""
import dataclasses
import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, NamedTuple, Optional

from django.utils.dateparse import parse_date

from core.exceptions import InvalidProposal, UnbalancedProposal
from core.utils.numbers import to_decimal

NULL_STRINGS = ("", "null", "none")


@dataclass
class ProposalLine:
    account_code: str
    is_debit: bool
    amount: object  # Decimal, int or str

    @classmethod
    def debit(cls, account_code, amount):
        return cls(account_code=account_code, is_debit=True, amount=amount)

    @classmethod
    def credit(cls, account_code, amount):
        return cls(account_code=account_code, is_debit=False, amount=amount)


@dataclass
class Proposal:
    document_type_code: str
    company_code: str
    idempotency_key: Optional[str]
    transaction_currency: str
    posting_date: object  # date or "YYYY-MM-DD"
    lines: List[ProposalLine] = field(default_factory=list)
    exchange_rate: object = None
    document_date: object = None
    narration: str = ""
    reasoning: str = ""
    reference: str = ""
    branch: Optional[int] = None
    confidence: Optional[float] = None


class ParsedLine(NamedTuple):
    account_code: str
    is_debit: bool
    amount: Decimal
    base_amount: Decimal  # exact, unrounded


class ParsedProposal(NamedTuple):
    posting_date: datetime.date
    document_date: datetime.date
    exchange_rate: Decimal
    lines: List[ParsedLine]


def _is_null(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip().lower() in NULL_STRINGS)


def _is_zero(value) -> bool:
    try:
        return to_decimal(value, "exchange rate") == 0
    except InvalidProposal:
        # unparseable; validate reports it
        return False


def normalize(proposal: Proposal) -> Proposal:
    """Return a copy with gaps filled; present values are left alone."""
    currency = (proposal.transaction_currency or "").strip().upper()

    posting_date = proposal.posting_date
    if isinstance(posting_date, str):
        posting_date = posting_date.strip()

    document_date = proposal.document_date
    if isinstance(document_date, str):
        document_date = document_date.strip()
    if _is_null(document_date):
        document_date = posting_date

    rate = proposal.exchange_rate
    if _is_null(rate) or _is_zero(rate):
        rate = "1"
    elif isinstance(rate, str):
        rate = rate.strip()

    lines = []
    for line in proposal.lines:
        amount = line.amount
        if _is_null(amount):
            amount = "0.00"
        elif isinstance(amount, str):
            amount = amount.strip()
        lines.append(dataclasses.replace(line, account_code=str(line.account_code).strip(), amount=amount))

    key = proposal.idempotency_key
    key = None if _is_null(key) else str(key).strip()

    return dataclasses.replace(
        proposal,
        document_type_code=(proposal.document_type_code or "").strip().upper(),
        company_code=(proposal.company_code or "").strip(),
        idempotency_key=key,
        transaction_currency=currency,
        posting_date=posting_date,
        document_date=document_date,
        exchange_rate=rate,
        lines=lines,
    )


def _parse_date(value, label) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if not value:
        raise InvalidProposal(f"{label} is required")
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise InvalidProposal(f"{label} {value!r} is not a valid date (YYYY-MM-DD)")
    return parsed


def validate(proposal: Proposal) -> ParsedProposal:
    """Structural check of a normalized proposal; no database access.

    Base totals are compared exactly (amount x rate, no rounding).
    Idempotency is not checked here; it depends on what is already stored.
    """
    if not proposal.document_type_code:
        raise InvalidProposal("proposal must specify a document type code")
    if not proposal.company_code:
        raise InvalidProposal("proposal must specify a company code")
    if not proposal.transaction_currency:
        raise InvalidProposal("proposal must specify a transaction currency")

    posting_date = _parse_date(proposal.posting_date, "posting date")
    document_date = _parse_date(proposal.document_date or proposal.posting_date, "document date")

    rate = to_decimal(proposal.exchange_rate, "exchange rate")
    if rate <= 0:
        raise InvalidProposal(f"exchange rate must be positive, got {rate}")

    if len(proposal.lines) < 2:
        raise InvalidProposal("transaction must have at least 2 lines")

    parsed_lines = []
    debit = Decimal("0")
    credit = Decimal("0")
    for line in proposal.lines:
        if not line.account_code:
            raise InvalidProposal("every line must specify an account code")
        amount = to_decimal(line.amount, f"amount for account {line.account_code}")
        if amount <= 0:
            raise InvalidProposal(f"amount must be > 0 for account {line.account_code}")
        base = amount * rate
        if line.is_debit:
            debit += base
        else:
            credit += base
        parsed_lines.append(ParsedLine(line.account_code, bool(line.is_debit), amount, base))

    if debit != credit:
        raise UnbalancedProposal(debit, credit)

    return ParsedProposal(posting_date, document_date, rate, parsed_lines)
