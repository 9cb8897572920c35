"""Business errors raised by the posting core.

Everything derives from ValueError, so callers that only catch ValueError
(admin actions, older services) keep working. The subclasses let an adapter
tell "already done" apart from "fix your input" without parsing messages.
"""


class PostingError(ValueError):
    """Base class for every business-rule failure."""


class InvalidProposal(PostingError):
    """A proposal failed structural validation. Nothing was written."""


class UnbalancedProposal(InvalidProposal):
    def __init__(self, debit, credit):
        self.debit = debit
        self.credit = credit
        super().__init__(f"base currency imbalance: debits {debit} != credits {credit}")


class DuplicateProposal(PostingError):
    def __init__(self, idempotency_key):
        self.idempotency_key = idempotency_key
        super().__init__(f"duplicate proposal: idempotency key {idempotency_key} already exists")


class NotFound(PostingError):
    """Missing row, or a row owned by another company. The two are never told apart."""


class AccountNotFound(NotFound):
    def __init__(self, company_code, account_code):
        self.company_code = company_code
        self.account_code = account_code
        super().__init__(f"account {account_code} not found for company {company_code}")


class RuleNotConfigured(PostingError):
    def __init__(self, company_code, rule_type):
        self.company_code = company_code
        self.rule_type = rule_type
        super().__init__(f"no account rule {rule_type} configured for company {company_code}")


class IllegalTransition(PostingError):
    def __init__(self, action, actual, required):
        self.action = action
        self.actual = actual
        self.required = required
        super().__init__(f"cannot {action}: status is {actual}, must be {required}")


class AlreadyReversed(PostingError):
    def __init__(self, entry_id):
        self.entry_id = entry_id
        super().__init__(f"entry {entry_id} is already reversed")


class QuantityExceedsOrdered(PostingError):
    def __init__(self, line_id, attempted_total, ordered, already_received):
        self.line_id = line_id
        self.attempted_total = attempted_total
        self.ordered = ordered
        self.already_received = already_received
        super().__init__(
            f"PO line {line_id}: receiving would bring total to {attempted_total}, "
            f"ordered {ordered}, already received {already_received}"
        )


class InsufficientStock(PostingError):
    def __init__(self, product_code, warehouse_code, requested, available):
        self.product_code = product_code
        self.warehouse_code = warehouse_code
        self.requested = requested
        self.available = available
        super().__init__(
            f"insufficient stock for {product_code} in {warehouse_code}: "
            f"requested {requested}, available {available}"
        )
