"""Account adapters: local keypairs and externally signed accounts."""

from multiwallet.adapters.accounts.external import ExternalSignerAccount
from multiwallet.adapters.accounts.keypair import KeypairAccount

__all__ = ["ExternalSignerAccount", "KeypairAccount"]
