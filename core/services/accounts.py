from core.exceptions import AccountNotFound, InvalidProposal
from core.models import Account


def resolve_account(entity, code) -> Account:
    """Resolve an account code for exactly one entity.

    A code that only exists under another entity is reported as not found,
    same as a code that does not exist anywhere.
    """
    try:
        account = Account.objects.get(entity=entity, code=str(code).strip())
    except Account.DoesNotExist:
        raise AccountNotFound(entity.code, code)
    if not account.is_postable:
        raise InvalidProposal(f"account {code} is a group account and cannot be posted to")
    return account


def resolve_accounts(entity, codes) -> dict:
    """Resolve several codes at once; returns {code: Account}."""
    return {code: resolve_account(entity, code) for code in dict.fromkeys(codes)}
