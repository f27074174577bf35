# src/gatedcounter/ledger/constants.py
from __future__ import annotations

"""Fixed record layout and protocol constants.

Every record has a fixed allocation (no variable-length fields), so its size is
known at creation time.
"""

DISCRIMINATOR_LENGTH: int = 8
PUBKEY_LENGTH: int = 32
UNSIGNED64_LENGTH: int = 8
# The bump is a single byte but the layout reserves a full word for it.
UNSIGNED8_LENGTH: int = 8

U64_MAX: int = 2**64 - 1

# Record kinds
KIND_COUNTER: str = "Counter"
KIND_WHITELIST_CONFIG: str = "WhitelistConfig"
KIND_WALLET_MEMBERSHIP: str = "WalletMembership"

COUNTER_SPACE: int = DISCRIMINATOR_LENGTH + PUBKEY_LENGTH * 2 + UNSIGNED64_LENGTH + UNSIGNED8_LENGTH
WHITELIST_CONFIG_SPACE: int = DISCRIMINATOR_LENGTH + PUBKEY_LENGTH + UNSIGNED64_LENGTH
WALLET_MEMBERSHIP_SPACE: int = DISCRIMINATOR_LENGTH

RECORD_SPACE = {
    KIND_COUNTER: COUNTER_SPACE,
    KIND_WHITELIST_CONFIG: WHITELIST_CONFIG_SPACE,
    KIND_WALLET_MEMBERSHIP: WALLET_MEMBERSHIP_SPACE,
}

# Default program ids
COUNTER_PROGRAM_ID: str = "Bt86r9ytWScWYfVd6sNefoVcow1TRw3ncvYPQ93BZgWP"
WHITELIST_PROGRAM_ID: str = "6Ks63cD2xLXF6umVaSZLJY6ejxinDTJvjE3X3GtezUcM"
