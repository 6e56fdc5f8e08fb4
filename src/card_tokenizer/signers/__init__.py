"""
Transaction signers.

- base.TransactionSigner: interface the session signs through
- local.LocalSigner: in-process Ed25519 keypair
- delegated.DelegatedSigner: external wallet reached through an async callback
"""

from card_tokenizer.signers.base import TransactionSigner
from card_tokenizer.signers.delegated import DelegatedSigner, TransactionSignCallback
from card_tokenizer.signers.local import LocalSigner

__all__ = [
    "TransactionSigner",
    "LocalSigner",
    "DelegatedSigner",
    "TransactionSignCallback",
]
