"""
Deglet - Recovery Shares (Shamir Secret Sharing)

The recovery phrase alone regenerates every key. To avoid a single point of
loss it can be split into k-of-n SLIP-0039 shares:
- Any k shares rebuild the phrase
- Fewer than k shares reveal nothing about it
"""

from typing import List

from shamir_mnemonic import shamir
from shamir_mnemonic.utils import MnemonicError

from .errors import ConfigError, InvalidPhrase
from .keys import entropy_to_phrase, phrase_to_entropy
from .logger import get_logger

MAX_SHARES = 16

log = get_logger(__name__)


def split_recovery_phrase(phrase: str, k: int, n: int) -> List[str]:
    """
    Split the phrase's entropy into n shares (need k to recover).

    Args:
        phrase: BIP-39 recovery phrase from keys.derive()
        k: Threshold (minimum shares needed)
        n: Total number of shares to create

    Returns:
        List of n SLIP-0039 mnemonics

    Raises:
        ConfigError: invalid k/n
        InvalidPhrase: phrase fails validation
    """
    if k > n:
        raise ConfigError(f"k ({k}) cannot be greater than n ({n})")
    if k < 2:
        raise ConfigError("k must be at least 2")
    if n > MAX_SHARES:
        raise ConfigError(f"n cannot exceed {MAX_SHARES}")

    entropy = phrase_to_entropy(phrase)

    # One group with a k-of-n member threshold
    groups = shamir.generate_mnemonics(
        group_threshold=1,
        groups=[(k, n)],
        master_secret=entropy,
    )
    log.debug("split recovery phrase into %d-of-%d shares", k, n)
    return groups[0]


def combine_recovery_shares(shares: List[str]) -> str:
    """
    Rebuild the recovery phrase from at least k shares.

    Raises:
        InvalidPhrase: shares are invalid, inconsistent or insufficient
    """
    try:
        entropy = shamir.combine_mnemonics([" ".join(s.split()) for s in shares])
    except (MnemonicError, ValueError) as e:
        raise InvalidPhrase(f"Failed to combine shares: {e}") from e
    return entropy_to_phrase(entropy)


def format_recovery_kit(shares: List[str], username: str, k: int) -> str:
    """Printable page listing every share, one per section."""
    n = len(shares)
    rule = "=" * 70
    lines = [
        rule,
        "DEGLET RECOVERY KIT",
        rule,
        f"Account:   {username}",
        f"Threshold: Need {k} of {n} shares to recover",
        "",
        f"Any {k} shares rebuild the recovery phrase and every key derived from it.",
        f"Keep each share in a different place; up to {n - k} may be lost.",
        rule,
    ]
    for i, share in enumerate(shares, 1):
        lines += ["", f"SHARE {i}/{n} ({len(share.split())} words)", "-" * 70, share]
    lines += ["", rule, "Restore with recovery.combine_recovery_shares([...])", rule]
    return "\n".join(lines)
