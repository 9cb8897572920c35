"""Shared shape of every lifecycle step that moves money.

Each step (confirm, ship, invoice, pay, approve, receive, ...) does the same
dance inside one transaction:

1) resolve the company and lock the header row, scoped to the company
2) check the current status is the one legal predecessor
3) domain writes (stock, movements, numbers)
4) post the accounting consequence with commit_in_tx
5) flip the FSM status, stamp the *_at field, save

A subclass fills in the blanks; run() owns the transaction. If anything
raises, every write including the ledger entry and any document number is
rolled back and the status stays where it was.
"""
import logging

from django.db import transaction

from core.exceptions import IllegalTransition
from core.services.scoping import get_entity, lock_owned
from ledger.services.posting import commit_in_tx

logger = logging.getLogger(__name__)


class Transition:
    model = None
    action = ""            # e.g. "ship order", used in errors and logs
    required_status = None
    transition_name = ""   # FSM method on the model
    related = ()           # select_related for the locked read

    def __init__(self, company_code, pk):
        self.company_code = company_code
        self.pk = pk
        self.entity = None
        self.entries = []

    def already_done(self, obj) -> bool:
        """Return True to make the step an idempotent no-op."""
        return False

    def apply(self, obj):
        """Domain writes. Runs after the status check, before posting."""

    def proposals(self, obj):
        """Ledger proposals for this step."""
        return []

    def posted(self, obj, entries):
        """Called with the committed entries, before the status flips."""

    def advance(self, obj):
        getattr(obj, self.transition_name)()
        obj.save()

    def require_status(self, obj):
        if obj.status != self.required_status:
            raise IllegalTransition(self.action, obj.status, self.required_status)

    def run(self):
        with transaction.atomic():
            self.entity = get_entity(self.company_code)
            obj = lock_owned(self.model, self.entity, self.pk, related=self.related)

            if self.already_done(obj):
                logger.info("%s %s: already done, nothing to do", self.action, obj.pk)
                return obj

            self.require_status(obj)
            self.apply(obj)

            for proposal in self.proposals(obj):
                self.entries.append(commit_in_tx(proposal))
            self.posted(obj, self.entries)

            self.advance(obj)

        logger.info(
            "%s %s for %s: now %s, entries posted: %s",
            self.action, obj.pk, self.entity.code, obj.status,
            [entry.pk for entry in self.entries],
        )
        return obj
