"""Session services: token lifecycle and access-mode control."""

from card_tokenizer.services.access_mode import AccessMode, AccessModeController
from card_tokenizer.services.session import TokenizerSession

__all__ = ["TokenizerSession", "AccessMode", "AccessModeController"]
