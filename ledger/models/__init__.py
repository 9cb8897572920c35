from .journal import JournalEntry
from .journal_line import JournalLine
