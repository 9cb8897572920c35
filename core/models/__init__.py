from .entity import Entity
from .account import Account
from .account_rule import AccountRule
from .document import Document, DocumentSequence, DocumentType
