# tests/test_ledger.py
"""
Tests for committing, reversing and reading journal entries.

Covers:
- balanced commit with base amounts and document number
- nothing written when a proposal fails (including the number)
- idempotency keys
- per-line cent rounding
- company scoping of accounts
- reversals, balances and statements
"""
import datetime
import threading
import time
from decimal import Decimal

import pytest
from django.db import connection, transaction

from core.exceptions import (
    AccountNotFound, AlreadyReversed, DuplicateProposal, InvalidProposal, NotFound, UnbalancedProposal,
)
from core.models import Document, DocumentSequence, DocumentType
from ledger.models import JournalEntry, JournalLine
from ledger.services.balances import get_account_balance, get_account_statement, get_balances
from ledger.services.posting import commit, commit_in_tx, get_entry, reverse
from ledger.services.proposal import Proposal, ProposalLine


def proposal(key="je-1", amount="1000.00", debit="1200", credit="3000", **overrides):
    data = dict(
        document_type_code="JE",
        company_code="ACME",
        idempotency_key=key,
        transaction_currency="DKK",
        posting_date=datetime.date(2026, 3, 2),
        narration="Owner deposit",
        lines=[ProposalLine.debit(debit, amount), ProposalLine.credit(credit, amount)],
    )
    data.update(overrides)
    return Proposal(**data)


@pytest.mark.django_db
class TestCommit:

    def test_commit_writes_entry_lines_and_number(self, company):
        entry = commit(proposal())

        assert entry.document.number == "JE-2026-00001"
        assert entry.document.status == Document.Status.POSTED
        assert entry.posting_date == datetime.date(2026, 3, 2)
        assert entry.document_date == datetime.date(2026, 3, 2)

        lines = list(entry.lines.select_related("account"))
        assert [(l.account.code, l.debit_base, l.credit_base) for l in lines] == [
            ("1200", Decimal("1000.00"), Decimal("0.00")),
            ("3000", Decimal("0.00"), Decimal("1000.00")),
        ]

    def test_numbers_are_consecutive(self, company):
        numbers = [commit(proposal(key=f"je-{i}")).document.number for i in range(3)]
        assert numbers == ["JE-2026-00001", "JE-2026-00002", "JE-2026-00003"]

    def test_foreign_currency_amounts(self, company):
        entry = commit(proposal(transaction_currency="EUR", exchange_rate="7.45", amount="100"))
        line = entry.lines.get(account__code="1200")
        assert line.currency == "EUR"
        assert line.fx_rate == Decimal("7.45")
        assert line.debit_tx == Decimal("100")
        assert line.debit_base == Decimal("745.00")

    def test_unbalanced_writes_nothing(self, company):
        bad = proposal()
        bad.lines[1] = ProposalLine.credit("3000", "999.99")
        with pytest.raises(UnbalancedProposal):
            commit(bad)
        assert JournalEntry.objects.count() == 0
        assert Document.objects.count() == 0
        assert DocumentSequence.objects.count() == 0

    def test_cent_rounding_drift_goes_to_one_line(self, company):
        # exact totals balance (1.005 = 0.5025 + 0.5025); rounded they would not (1.01 != 1.00)
        entry = commit(proposal(lines=[
            ProposalLine.debit("1200", "1.005"),
            ProposalLine.credit("3000", "0.5025"),
            ProposalLine.credit("3000", "0.5025"),
        ]))
        lines = list(entry.lines.all())
        assert [(l.debit_base, l.credit_base) for l in lines] == [
            (Decimal("1.00"), Decimal("0.00")),
            (Decimal("0.00"), Decimal("0.50")),
            (Decimal("0.00"), Decimal("0.50")),
        ]
        assert lines[0].debit_tx == Decimal("1.005")

    def test_drift_taken_from_largest_line_of_heavier_side(self, company):
        entry = commit(proposal(exchange_rate="1.005", transaction_currency="EUR", lines=[
            ProposalLine.debit("1100", "4.00"),
            ProposalLine.credit("4000", "1.00"),
            ProposalLine.credit("4100", "1.00"),
            ProposalLine.credit("3000", "2.00"),
        ]))
        base = {l.account.code: l.debit_base + l.credit_base for l in entry.lines.select_related("account")}
        # debit 4.02; credits 1.01 + 1.01 + 2.01 = 4.03, the cent comes off the 2.01 line
        assert base == {"1100": Decimal("4.02"), "4000": Decimal("1.01"), "4100": Decimal("1.01"), "3000": Decimal("2.00")}

    def test_duplicate_key_rejected_and_number_not_consumed(self, company):
        commit(proposal(key="same"))
        with pytest.raises(DuplicateProposal) as exc:
            commit(proposal(key="same"))
        assert exc.value.idempotency_key == "same"
        assert JournalEntry.objects.count() == 1

        assert commit(proposal(key="next")).document.number == "JE-2026-00002"

    def test_same_key_allowed_in_other_company(self, company, other_company):
        commit(proposal(key="shared"))
        commit(proposal(key="shared", company_code="OTHER", transaction_currency="EUR"))
        assert JournalEntry.objects.filter(idempotency_key="shared").count() == 2

    def test_without_key_no_deduplication(self, company):
        commit(proposal(key=None))
        commit(proposal(key=None))
        assert JournalEntry.objects.count() == 2

    def test_account_from_other_company_is_not_found(self, company, other_company):
        with pytest.raises(AccountNotFound):
            commit(proposal(debit="9999"))
        assert JournalEntry.objects.count() == 0

    def test_group_account_rejected(self, company):
        with pytest.raises(InvalidProposal, match="group account"):
            commit(proposal(debit="1000"))

    def test_unnumbered_type_posts_without_document(self, company):
        DocumentType.objects.filter(code="JE").update(is_numbered=False)
        entry = commit(proposal())
        assert entry.document is None
        assert DocumentSequence.objects.count() == 0

    def test_rollback_of_caller_releases_everything(self, company):
        with pytest.raises(RuntimeError):
            with transaction.atomic():
                commit_in_tx(proposal())
                raise RuntimeError("caller failed after posting")
        assert JournalEntry.objects.count() == 0
        assert commit(proposal()).document.number == "JE-2026-00001"

    def test_entries_and_lines_are_immutable(self, company):
        entry = commit(proposal())
        with pytest.raises(ValueError):
            entry.save()
        with pytest.raises(ValueError):
            entry.delete()
        with pytest.raises(ValueError):
            entry.lines.first().save()


@pytest.mark.django_db
class TestReverse:

    def test_reverse_mirrors_lines(self, company):
        original = commit(proposal())
        reversal = reverse("ACME", original.pk, reason="typo")

        assert reversal.reversal_of_id == original.pk
        assert reversal.idempotency_key == f"reversal-of-{original.pk}"
        assert reversal.narration == f"Reversal of entry {original.pk}: typo"
        bank = reversal.lines.get(account__code="1200")
        assert bank.credit_base == Decimal("1000.00")
        assert bank.debit_base == Decimal("0.00")
        assert get_account_balance("ACME", "1200") == Decimal("0")
        assert JournalEntry.objects.get(pk=original.pk).is_reversed

    def test_second_reversal_rejected(self, company):
        original = commit(proposal())
        reverse("ACME", original.pk)
        with pytest.raises(AlreadyReversed):
            reverse("ACME", original.pk)

    def test_reverse_entry_of_other_company_not_found(self, company, other_company):
        original = commit(proposal())
        with pytest.raises(NotFound):
            reverse("OTHER", original.pk)
        with pytest.raises(NotFound):
            get_entry("OTHER", original.pk)


@pytest.mark.django_db
class TestBalances:

    def test_balances_per_account(self, company):
        commit(proposal(key="a", amount="1000"))
        commit(proposal(key="b", amount="250", debit="6000", credit="1200"))

        balances = {b.code: b for b in get_balances("ACME")}
        assert balances["1200"].debit == Decimal("1000")
        assert balances["1200"].credit == Decimal("250")
        assert balances["1200"].balance == Decimal("750")
        assert balances["3000"].balance == Decimal("-1000")
        assert balances["4000"].balance == Decimal("0")

        total_debit = sum(b.debit for b in balances.values())
        total_credit = sum(b.credit for b in balances.values())
        assert total_debit == total_credit

    def test_statement_running_balance(self, company):
        commit(proposal(key="a", amount="100", posting_date=datetime.date(2026, 1, 5)))
        commit(proposal(key="b", amount="40", debit="6000", credit="1200", posting_date=datetime.date(2026, 2, 1)))
        commit(proposal(key="c", amount="10", posting_date=datetime.date(2026, 3, 1)))

        statement = get_account_statement("ACME", "1200")
        assert [s.running_balance for s in statement] == [Decimal("100"), Decimal("60"), Decimal("70")]

        window = get_account_statement(
            "ACME", "1200", from_date=datetime.date(2026, 2, 1), to_date=datetime.date(2026, 2, 28)
        )
        assert len(window) == 1
        assert window[0].credit == Decimal("40")
        assert window[0].running_balance == Decimal("-40")

    def test_statement_of_unknown_account_is_empty(self, company):
        commit(proposal())
        assert get_account_statement("ACME", "7777") == []

    def test_balances_are_scoped_to_company(self, company, other_company):
        commit(proposal())
        assert get_account_balance("OTHER", "1200") == Decimal("0")
        assert JournalLine.objects.filter(entry__entity=other_company).count() == 0


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(connection.vendor != "postgresql", reason="row locks need PostgreSQL")
class TestConcurrentIdempotency:

    def test_racing_commits_with_same_key(self, company):
        """The second writer passes the key check before the first commits and hits the constraint."""
        first_posted = threading.Event()
        errors = []

        def first():
            try:
                with transaction.atomic():
                    commit_in_tx(proposal(key="race"))
                    first_posted.set()
                    time.sleep(1)
            finally:
                connection.close()

        def second():
            first_posted.wait(5)
            try:
                commit(proposal(key="race"))
            except DuplicateProposal as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(errors) == 1
        assert errors[0].idempotency_key == "race"
        assert JournalEntry.objects.filter(idempotency_key="race").count() == 1
        assert DocumentSequence.objects.get(entity=company, document_type_id="JE").last_number == 1
