import logging

from django.db.models import Q
from django.utils import timezone

from core.exceptions import RuleNotConfigured
from core.models import AccountRule

logger = logging.getLogger(__name__)


def resolve_account_code(entity, rule_type, on_date=None, qualifier=None) -> str:
    """Return the account code configured for `rule_type` on `on_date`.

    - Only rules whose effective range covers the day are considered.
    - A qualifier (key, value) prefers matching qualified rules over the
      unqualified ones; without a qualifier only unqualified rules apply.
    - Highest priority wins, then the most recent effective_from.

    There is no fallback account: a missing rule fails the caller.
    """
    on_date = on_date or timezone.localdate()

    rules = AccountRule.objects.filter(
        entity=entity,
        rule_type=rule_type,
        effective_from__lte=on_date,
    ).filter(Q(effective_to__isnull=True) | Q(effective_to__gte=on_date))

    candidates = []
    if qualifier:
        key, value = qualifier
        candidates.append(rules.filter(qualifier_key=key, qualifier_value=str(value)))
    candidates.append(rules.filter(qualifier_key=""))

    for qs in candidates:
        rule = qs.order_by("-priority", "-effective_from", "-id").first()
        if rule:
            logger.debug("rule %s for %s resolved to %s", rule_type, entity.code, rule.account_code)
            return rule.account_code

    raise RuleNotConfigured(entity.code, rule_type)
