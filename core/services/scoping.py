from django.db import transaction
from django.db.transaction import TransactionManagementError

from core.exceptions import NotFound
from core.models import Entity


def get_entity(company_code) -> Entity:
    try:
        return Entity.objects.get(code=company_code, is_active=True)
    except Entity.DoesNotExist:
        raise NotFound(f"company {company_code} not found")


def lock_owned(model, entity, pk, related=()):
    """Fetch one row by id, locked for update, only if it belongs to `entity`.

    The id and the ownership check go into the same locked query, so a caller
    from another company gets the same NotFound as for an id that does not
    exist at all.
    """
    qs = model.objects.select_for_update(of=("self",))
    if related:
        qs = qs.select_related(*related)
    try:
        return qs.get(pk=pk, entity=entity)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"{model._meta.verbose_name} {pk} not found")


def get_owned(model, entity, pk):
    """Unlocked variant of lock_owned for read paths."""
    try:
        return model.objects.get(pk=pk, entity=entity)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"{model._meta.verbose_name} {pk} not found")


def require_atomic(using=None):
    """Fail fast when a *_in_tx service is called outside transaction.atomic()."""
    if not transaction.get_connection(using).in_atomic_block:
        raise TransactionManagementError(
            "This operation joins the caller's transaction; wrap the call in transaction.atomic()."
        )
