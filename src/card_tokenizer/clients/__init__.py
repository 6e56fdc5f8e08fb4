"""Clients for external collaborators."""

from card_tokenizer.clients.ledger_client import LedgerClient

__all__ = ["LedgerClient"]
