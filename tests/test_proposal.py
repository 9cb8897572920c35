# tests/test_proposal.py
"""
Tests for proposal normalization and structural validation.

These run without touching the database except for validate_proposal,
which also resolves the company and its accounts.
"""
import datetime
from decimal import Decimal

import pytest

from core.exceptions import AccountNotFound, InvalidProposal, NotFound, UnbalancedProposal
from ledger.services.posting import validate_proposal
from ledger.services.proposal import Proposal, ProposalLine, normalize, validate


def make(lines=None, **overrides):
    data = dict(
        document_type_code="JE",
        company_code="ACME",
        idempotency_key="k-1",
        transaction_currency="DKK",
        posting_date="2026-03-02",
        lines=lines if lines is not None else [
            ProposalLine.debit("1200", "100.00"),
            ProposalLine.credit("3000", "100.00"),
        ],
    )
    data.update(overrides)
    return Proposal(**data)


class TestNormalize:

    def test_fills_missing_rate_and_document_date(self):
        p = normalize(make(exchange_rate=None, document_date=None))
        assert p.exchange_rate == "1"
        assert p.document_date == "2026-03-02"

    @pytest.mark.parametrize("rate", ["", "null", "None", "0", "0.00", "0.000", "0E-2", " 0 ", 0, 0.0, Decimal("0.0000")])
    def test_empty_or_zero_rate_becomes_one(self, rate):
        assert normalize(make(exchange_rate=rate)).exchange_rate == "1"

    def test_unparseable_rate_is_left_for_validate(self):
        p = normalize(make(exchange_rate="seven"))
        assert p.exchange_rate == "seven"
        with pytest.raises(InvalidProposal, match="exchange rate"):
            validate(p)

    def test_present_values_are_kept(self):
        p = normalize(make(exchange_rate="7.45", document_date="2026-02-27"))
        assert p.exchange_rate == "7.45"
        assert p.document_date == "2026-02-27"

    def test_trims_and_upper_cases_codes(self):
        p = normalize(make(document_type_code=" je ", transaction_currency=" eur ", company_code=" ACME "))
        assert p.document_type_code == "JE"
        assert p.transaction_currency == "EUR"
        assert p.company_code == "ACME"

    def test_null_key_means_no_deduplication(self):
        assert normalize(make(idempotency_key="null")).idempotency_key is None
        assert normalize(make(idempotency_key="  ")).idempotency_key is None

    def test_null_amount_becomes_zero(self):
        p = normalize(make(lines=[ProposalLine.debit("1200", None), ProposalLine.credit("3000", "1")]))
        assert p.lines[0].amount == "0.00"

    def test_does_not_mutate_input(self):
        original = make(exchange_rate=None)
        normalize(original)
        assert original.exchange_rate is None


class TestValidate:

    def test_balanced_proposal_parses(self):
        parsed = validate(normalize(make()))
        assert parsed.posting_date == datetime.date(2026, 3, 2)
        assert parsed.document_date == datetime.date(2026, 3, 2)
        assert parsed.exchange_rate == Decimal("1")
        assert [line.amount for line in parsed.lines] == [Decimal("100.00"), Decimal("100.00")]

    def test_base_amount_is_exact(self):
        parsed = validate(normalize(make(exchange_rate="7.4567", lines=[
            ProposalLine.debit("1200", "10.01"),
            ProposalLine.credit("3000", "10.01"),
        ])))
        assert parsed.lines[0].base_amount == Decimal("74.641567")

    def test_single_line_rejected(self):
        with pytest.raises(InvalidProposal, match="at least 2 lines"):
            validate(normalize(make(lines=[ProposalLine.debit("1200", "1")])))

    @pytest.mark.parametrize("amount", ["0", "-5", None])
    def test_non_positive_amount_rejected(self, amount):
        lines = [ProposalLine.debit("1200", amount), ProposalLine.credit("3000", "5")]
        with pytest.raises(InvalidProposal, match="amount must be > 0 for account 1200"):
            validate(normalize(make(lines=lines)))

    def test_unparseable_amount_rejected(self):
        lines = [ProposalLine.debit("1200", "ten"), ProposalLine.credit("3000", "10")]
        with pytest.raises(InvalidProposal, match="not a decimal number"):
            validate(normalize(make(lines=lines)))

    def test_unbalanced_rejected(self):
        lines = [ProposalLine.debit("1200", "100"), ProposalLine.credit("3000", "99.99")]
        with pytest.raises(UnbalancedProposal) as exc:
            validate(normalize(make(lines=lines)))
        assert exc.value.debit == Decimal("100")
        assert exc.value.credit == Decimal("99.99")

    def test_bad_posting_date_rejected(self):
        with pytest.raises(InvalidProposal, match="posting date"):
            validate(normalize(make(posting_date="02-03-2026")))

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidProposal, match="exchange rate must be positive"):
            validate(normalize(make(exchange_rate="-1")))

    @pytest.mark.parametrize("field, message", [
        ("document_type_code", "document type code"),
        ("company_code", "company code"),
        ("transaction_currency", "transaction currency"),
    ])
    def test_required_fields(self, field, message):
        with pytest.raises(InvalidProposal, match=message):
            validate(normalize(make(**{field: ""})))

    def test_float_amounts_are_read_by_their_repr(self):
        lines = [ProposalLine.debit("1200", 0.1), ProposalLine.credit("3000", "0.1")]
        parsed = validate(normalize(make(lines=lines)))
        assert parsed.lines[0].amount == Decimal("0.1")


@pytest.mark.django_db
class TestValidateProposal:

    def test_resolves_company_and_accounts(self, company):
        parsed = validate_proposal(make())
        assert len(parsed.lines) == 2

    def test_unknown_company(self, company):
        with pytest.raises(NotFound):
            validate_proposal(make(company_code="NOPE"))

    def test_account_of_other_company_not_found(self, company, other_company):
        lines = [ProposalLine.debit("9999", "1"), ProposalLine.credit("3000", "1")]
        with pytest.raises(AccountNotFound):
            validate_proposal(make(lines=lines))

    def test_unknown_document_type(self, company):
        with pytest.raises(InvalidProposal, match="unknown document type"):
            validate_proposal(make(document_type_code="XX"))
