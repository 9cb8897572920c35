import logging
from decimal import ROUND_HALF_UP, Decimal

from django.db import IntegrityError, transaction

from core.exceptions import AlreadyReversed, DuplicateProposal, UnbalancedProposal
from core.services.accounts import resolve_accounts
from core.services.numbering import create_draft, get_document_type, post_document_in_tx, scope_for
from core.services.scoping import get_entity, get_owned, lock_owned, require_atomic
from ledger.models import JournalEntry, JournalLine
from ledger.services.proposal import normalize, validate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
TX_PLACES = Decimal("0.0001")


def validate_proposal(proposal):
    """Normalize and validate without writing anything.

    Besides the structural checks this resolves the company, the document type
    and every account code, so a proposal that passes here fails at commit
    only on idempotency or on a concurrent change.
    """
    proposal = normalize(proposal)
    parsed = validate(proposal)
    entity = get_entity(proposal.company_code)
    get_document_type(proposal.document_type_code)
    resolve_accounts(entity, [line.account_code for line in parsed.lines])
    return parsed


def rounded_rows(lines):
    """Round each line to cents; the rounding drift goes to one line.

    The exact amounts balance (validate checked that), so rounding every line
    on its own can leave the sides a few cents apart. The difference is taken
    off the largest line of the heavier side, so stored debits equal credits.
    Returns [(account_code, is_debit, tx_amount, base_amount)].
    """
    rows = [
        [line.account_code, line.is_debit,
         line.amount.quantize(TX_PLACES, rounding=ROUND_HALF_UP),
         line.base_amount.quantize(CENT, rounding=ROUND_HALF_UP)]
        for line in lines
    ]
    debit = sum((row[3] for row in rows if row[1]), Decimal("0.00"))
    credit = sum((row[3] for row in rows if not row[1]), Decimal("0.00"))
    drift = debit - credit
    if drift:
        heavier = drift > 0
        target = max((row for row in rows if row[1] == heavier), key=lambda row: row[3])
        target[3] -= abs(drift)
        if target[3] <= 0:
            raise UnbalancedProposal(debit, credit)
        logger.debug("rounding drift %s moved to account %s", drift, target[0])
    return [tuple(row) for row in rows]


@transaction.atomic
def commit(proposal) -> JournalEntry:
    """Validate and post a proposal in its own transaction."""
    return commit_in_tx(proposal)


def commit_in_tx(proposal) -> JournalEntry:
    """Post a proposal inside the caller's transaction.

    Never commits or rolls back; any exception propagates and the caller's
    atomic block discards every write made so far, including the document
    number.

    Step-by-step:
    1) Normalize + structural validation
    2) Resolve the company and reject a known idempotency key
    3) Resolve every account strictly within the company
    4) Round base amounts to cents, moving any drift onto one line
    5) Number the source document (when the type is numbered)
    6) Insert the entry and its lines
    """
    require_atomic()

    proposal = normalize(proposal)
    parsed = validate(proposal)

    entity = get_entity(proposal.company_code)
    key = proposal.idempotency_key
    if key and JournalEntry.objects.filter(entity=entity, idempotency_key=key).exists():
        raise DuplicateProposal(key)

    accounts = resolve_accounts(entity, [line.account_code for line in parsed.lines])

    rows = rounded_rows(parsed.lines)
    total_debit = sum((base for _, is_debit, _, base in rows if is_debit), Decimal("0.00"))
    rows = [(accounts[code], is_debit, tx, base) for code, is_debit, tx, base in rows]

    document_type = get_document_type(proposal.document_type_code)
    document = None
    if document_type.is_numbered:
        draft = create_draft(entity, document_type.code, **scope_for(document_type, parsed.posting_date, proposal.branch))
        document = post_document_in_tx(draft.pk)

    try:
        with transaction.atomic():
            entry = JournalEntry.objects.create(
                entity=entity,
                idempotency_key=key,
                posting_date=parsed.posting_date,
                document_date=parsed.document_date,
                narration=(proposal.narration or "")[:500],
                reasoning=proposal.reasoning or "",
                reference=(proposal.reference or "")[:255],
                document=document,
            )
    except IntegrityError:
        # lost a race against a concurrent commit with the same key
        raise DuplicateProposal(key)

    JournalLine.objects.bulk_create([
        JournalLine(
            entry=entry,
            account=account,
            currency=proposal.transaction_currency,
            fx_rate=parsed.exchange_rate,
            debit_tx=tx if is_debit else Decimal("0"),
            credit_tx=Decimal("0") if is_debit else tx,
            debit_base=base if is_debit else Decimal("0.00"),
            credit_base=Decimal("0.00") if is_debit else base,
        )
        for account, is_debit, tx, base in rows
    ])

    logger.info(
        "posted entry %s (%s) for %s, total %s %s",
        entry.pk, document.number if document else "unnumbered", entity.code, total_debit, entity.base_currency,
    )
    return entry


@transaction.atomic
def reverse(company_code, entry_id, reason="") -> JournalEntry:
    """Post the exact debit/credit mirror of an entry.

    The original is locked first, so two concurrent reversals of the same entry
    serialize and the second one sees the first.
    """
    entity = get_entity(company_code)
    original = lock_owned(JournalEntry, entity, entry_id)

    if JournalEntry.objects.filter(reversal_of=original).exists():
        raise AlreadyReversed(original.pk)

    narration = f"Reversal of entry {original.pk}: {reason}" if reason else f"Reversal of entry {original.pk}"
    reversal = JournalEntry.objects.create(
        entity=entity,
        idempotency_key=f"reversal-of-{original.pk}",
        posting_date=original.posting_date,
        document_date=original.document_date,
        narration=narration[:500],
        reasoning=reason or "",
        reference=original.reference,
        reversal_of=original,
    )

    JournalLine.objects.bulk_create([
        JournalLine(
            entry=reversal,
            account_id=line.account_id,
            currency=line.currency,
            fx_rate=line.fx_rate,
            debit_tx=line.credit_tx,
            credit_tx=line.debit_tx,
            debit_base=line.credit_base,
            credit_base=line.debit_base,
        )
        for line in original.lines.all()
    ])

    logger.info("entry %s reversed by entry %s", original.pk, reversal.pk)
    return reversal


def get_entry(company_code, entry_id) -> JournalEntry:
    entity = get_entity(company_code)
    return get_owned(JournalEntry, entity, entry_id)
