# Importing every model registers its table on Base.metadata
from inkwell.models.account import Account
from inkwell.models.ledger import EntryKind, LedgerEntry
from inkwell.models.note import ChatTurn, Note

__all__ = ["Account", "ChatTurn", "EntryKind", "LedgerEntry", "Note"]
