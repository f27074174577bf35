# src/gatedcounter/crypto/address.py
from __future__ import annotations

"""Deterministic record addressing.

Every persistent record lives at an address computed purely from a list of seeds
and the id of the program that owns it:

    sha256(seed_0 || ... || seed_n || bump || program_id || b"ProgramDerivedAddress")

A candidate that decodes to a valid Ed25519 point is rejected, because someone
could hold the matching private key. The search walks the bump byte from 255 down
to 0 and keeps the first off-curve candidate (the canonical bump). The bump is
stored next to the record so the address can be recomputed without searching.
"""

import hashlib
from typing import Sequence, Tuple, Union

from gatedcounter.runtime.errors import ErrorKind, ProgramError

PUBKEY_BYTES = 32
MAX_SEEDS = 16
MAX_SEED_LEN = 32
PDA_MARKER = b"ProgramDerivedAddress"

COUNTER_SEED = b"counter"

# All-zero identity, used as the "unset" sentinel.
NULL_ADDRESS = "11111111111111111111111111111111"

Seed = Union[bytes, str]

# Base58 (bitcoin alphabet)
B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}


def b58decode(s: str) -> bytes:
    if isinstance(s, str):
        s_bytes = s.encode("ascii")
    else:
        s_bytes = s
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def pubkey_bytes(identity: str) -> bytes:
    """Decode a base58 identity into exactly 32 bytes (ValueError otherwise)."""
    s = str(identity or "").strip()
    if not s:
        raise ValueError("empty identity")
    raw = b58decode(s)
    if len(raw) != PUBKEY_BYTES:
        raise ValueError(f"identity must decode to {PUBKEY_BYTES} bytes, got {len(raw)}")
    return raw


def is_valid_identity(identity: str) -> bool:
    try:
        pubkey_bytes(identity)
        return True
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Ed25519 curve membership
# ---------------------------------------------------------------------------

_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def is_on_curve(raw: bytes) -> bool:
    """True if `raw` is the compressed encoding of a point on edwards25519.

    Mirrors point decompression: y is the low 255 bits (reduced mod p), and the
    point exists iff (y^2 - 1) / (d*y^2 + 1) is a square in GF(p).
    """
    if len(raw) != PUBKEY_BYTES:
        return False
    y = (int.from_bytes(raw, "little") & ((1 << 255) - 1)) % _P
    y2 = (y * y) % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = (u * pow(v, _P - 2, _P)) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def _seed_bytes(seed: Seed) -> bytes:
    if isinstance(seed, bytes):
        return seed
    if isinstance(seed, str):
        # Identities are seeded by their raw 32 bytes.
        return pubkey_bytes(seed)
    raise ProgramError(ErrorKind.INVALID_SEEDS, "seed_type", {"type": type(seed).__name__})


def _normalize_seeds(seeds: Sequence[Seed]) -> list[bytes]:
    out = [_seed_bytes(s) for s in seeds]
    if len(out) > MAX_SEEDS:
        raise ProgramError(ErrorKind.INVALID_SEEDS, "too_many_seeds", {"count": len(out), "max": MAX_SEEDS})
    for s in out:
        if len(s) > MAX_SEED_LEN:
            raise ProgramError(ErrorKind.INVALID_SEEDS, "seed_too_long", {"len": len(s), "max": MAX_SEED_LEN})
    return out


def create_program_address(seeds: Sequence[Seed], program_id: str) -> str:
    """Compute the address for an explicit seed list (bump already appended).

    Raises ProgramError(InvalidSeeds) if the result lands on the curve.
    """
    raw_seeds = _normalize_seeds(seeds)
    h = hashlib.sha256()
    for s in raw_seeds:
        h.update(s)
    h.update(pubkey_bytes(program_id))
    h.update(PDA_MARKER)
    digest = h.digest()
    if is_on_curve(digest):
        raise ProgramError(ErrorKind.INVALID_SEEDS, "address_on_curve", {"program_id": program_id})
    return b58encode(digest)


def find_program_address(seeds: Sequence[Seed], program_id: str) -> Tuple[str, int]:
    base = _normalize_seeds(seeds)
    if len(base) >= MAX_SEEDS:
        raise ProgramError(ErrorKind.INVALID_SEEDS, "too_many_seeds", {"count": len(base) + 1, "max": MAX_SEEDS})
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*base, bytes([bump])], program_id), bump
        except ProgramError as e:
            if e.reason != "address_on_curve":
                raise
    raise ProgramError(ErrorKind.ADDRESS_DERIVATION_EXHAUSTED, "no_viable_bump", {"program_id": program_id})


def verify_program_address(expected: str, seeds: Sequence[Seed], bump: int, program_id: str) -> str:
    """Recompute an address from seeds + stored bump and compare it to `expected`."""
    b = int(bump)
    if b < 0 or b > 255:
        raise ProgramError(ErrorKind.ADDRESS_DERIVATION_MISMATCH, "bump_out_of_range", {"bump": b})
    try:
        derived = create_program_address([*seeds, bytes([b])], program_id)
    except ProgramError as e:
        raise ProgramError(
            ErrorKind.ADDRESS_DERIVATION_MISMATCH,
            "bump_not_viable",
            {"expected": expected, "bump": b, "cause": e.reason},
        ) from e
    if derived != str(expected):
        raise ProgramError(
            ErrorKind.ADDRESS_DERIVATION_MISMATCH,
            "address_mismatch",
            {"expected": str(expected), "derived": derived, "bump": b},
        )
    return derived


def counter_seeds(owner: str) -> list[Seed]:
    return [COUNTER_SEED, owner]


def counter_address(owner: str, program_id: str) -> Tuple[str, int]:
    return find_program_address(counter_seeds(owner), program_id)


def membership_seeds(whitelist_id: str, wallet: str) -> list[Seed]:
    return [whitelist_id, wallet]


def membership_address(whitelist_id: str, wallet: str, program_id: str) -> Tuple[str, int]:
    return find_program_address(membership_seeds(whitelist_id, wallet), program_id)


__all__ = [
    "COUNTER_SEED",
    "NULL_ADDRESS",
    "b58decode",
    "b58encode",
    "counter_address",
    "counter_seeds",
    "create_program_address",
    "find_program_address",
    "is_on_curve",
    "is_valid_identity",
    "membership_address",
    "membership_seeds",
    "pubkey_bytes",
    "verify_program_address",
]
