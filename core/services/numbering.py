import logging

from django.db import connection, transaction

from core.exceptions import IllegalTransition, InvalidProposal, NotFound
from core.models import Document, DocumentSequence, DocumentType
from core.services.scoping import require_atomic

logger = logging.getLogger(__name__)

# 0 stands for "no financial year" / "no branch" in DocumentSequence
NO_SCOPE = 0


def get_document_type(type_code) -> DocumentType:
    try:
        return DocumentType.objects.get(code=str(type_code).strip().upper())
    except DocumentType.DoesNotExist:
        raise InvalidProposal(f"unknown document type {type_code}")


def scope_for(document_type, on_date, branch=None) -> dict:
    """Numbering scope for a document of `document_type` dated `on_date`."""
    per_year = (
        document_type.numbering_strategy == DocumentType.Numbering.PER_FY
        or document_type.resets_every_fy
    )
    per_branch = document_type.numbering_strategy == DocumentType.Numbering.PER_BRANCH
    return {
        "financial_year": on_date.year if per_year else None,
        "branch": branch if per_branch else None,
    }


def create_draft(entity, type_code, financial_year=None, branch=None) -> Document:
    """Insert a DRAFT document without a number."""
    document_type = get_document_type(type_code)
    if document_type.numbering_strategy == DocumentType.Numbering.PER_BRANCH and branch is None:
        raise InvalidProposal(f"document type {document_type.code} is numbered per branch; a branch is required")
    return Document.objects.create(
        entity=entity,
        document_type=document_type,
        financial_year=financial_year,
        branch=branch,
    )


def format_number(type_code, financial_year, branch, counter) -> str:
    """SI-2026-00001, PO-GLOBAL-00012, GR-B2-2026-00003."""
    parts = [type_code]
    if branch:
        parts.append(f"B{branch}")
    parts.append(str(financial_year) if financial_year else "GLOBAL")
    parts.append(f"{counter:05d}")
    return "-".join(parts)


def next_number(entity_id, type_code, financial_year=None, branch=None) -> int:
    """Increment and return the counter for one numbering scope.

    One INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement: the first
    caller creates the row with 1, later callers increment it. The row lock the
    statement takes is held until the surrounding transaction ends, so two
    concurrent posters always get consecutive values, and a rollback gives the
    number back together with everything else.

    Never cache the returned value outside the transaction.
    """
    require_atomic()
    table = connection.ops.quote_name(DocumentSequence._meta.db_table)
    sql = (
        f"INSERT INTO {table} (entity_id, document_type_id, financial_year, branch, last_number) "
        f"VALUES (%s, %s, %s, %s, 1) "
        f"ON CONFLICT (entity_id, document_type_id, financial_year, branch) "
        f"DO UPDATE SET last_number = {table}.last_number + 1 "
        f"RETURNING last_number"
    )
    with connection.cursor() as cursor:
        cursor.execute(sql, [entity_id, type_code, financial_year or NO_SCOPE, branch or NO_SCOPE])
        (value,) = cursor.fetchone()
    return int(value)


@transaction.atomic
def post_document(document_id, entity=None) -> Document:
    """Post a draft in its own transaction."""
    return post_document_in_tx(document_id, entity=entity)


def post_document_in_tx(document_id, entity=None) -> Document:
    """Assign the next number to a DRAFT document inside the caller's transaction.

    Step-by-step:
    1) Lock the document row (select_for_update)
    2) Reject anything that is not DRAFT
    3) Upsert-increment the sequence row for the document's scope
    4) Format the number, flip the status to POSTED, stamp posted_at

    Lock order is document row, then sequence row.
    """
    require_atomic()

    qs = Document.objects.select_for_update().select_related("document_type")
    if entity is not None:
        qs = qs.filter(entity=entity)
    try:
        document = qs.get(pk=document_id)
    except (Document.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"document {document_id} not found")

    if document.status != Document.Status.DRAFT:
        raise IllegalTransition("post document", document.status, Document.Status.DRAFT)

    counter = next_number(
        document.entity_id,
        document.document_type_id,
        financial_year=document.financial_year,
        branch=document.branch,
    )
    document.post(
        format_number(document.document_type_id, document.financial_year, document.branch, counter)
    )
    document.save()

    logger.info("document %s posted as %s", document.pk, document.number)
    return document


@transaction.atomic
def cancel_document(document_id, entity=None) -> Document:
    """Cancel a DRAFT or POSTED document. A posted number stays consumed."""
    qs = Document.objects.select_for_update()
    if entity is not None:
        qs = qs.filter(entity=entity)
    try:
        document = qs.get(pk=document_id)
    except (Document.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"document {document_id} not found")

    if document.status == Document.Status.CANCELLED:
        raise IllegalTransition("cancel document", document.status, "DRAFT or POSTED")

    document.cancel()
    document.save()
    logger.info("document %s cancelled", document.number or document.pk)
    return document
