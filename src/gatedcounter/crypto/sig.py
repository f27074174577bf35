# src/gatedcounter/crypto/sig.py
from __future__ import annotations

import base64
import json
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from gatedcounter.crypto.address import b58encode, pubkey_bytes

Json = Dict[str, Any]


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    # hex
    try:
        return bytes.fromhex(s)
    except Exception:
        pass
    # base64 / base64url
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2)
    except Exception as e:
        raise ValueError("not hex or base64") from e


def canonical_tx_message(
    *,
    chain_id: str,
    program: str,
    instruction: str,
    signers: Sequence[str],
    payload: Json,
    nonce: int,
) -> bytes:
    obj: Json = {
        "chain_id": str(chain_id),
        "nonce": int(nonce),
        "program": str(program),
        "instruction": str(instruction),
        "signers": [str(s) for s in signers],
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def identity_of(key: Ed25519PrivateKey) -> str:
    """Base58 identity of the public half of `key`."""
    return b58encode(key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw))


def verify_ed25519_signature(*, message: bytes, sig: str, identity: str) -> bool:
    try:
        sig_b = _decode_bytes(sig)
        key = Ed25519PublicKey.from_public_bytes(pubkey_bytes(identity))
        key.verify(sig_b, message)
        return True
    except (InvalidSignature, ValueError):
        return False


def sign_ed25519(*, message: bytes, privkey: Ed25519PrivateKey | str, encoding: str = "hex") -> str:
    """Sign a message with an Ed25519 private key.

    privkey: a key object, or a hex/base64 string holding the 32-byte seed
    (a 64-byte expanded key is truncated to its seed).
    encoding: "hex" (default) or "b64".
    """
    if isinstance(privkey, Ed25519PrivateKey):
        key = privkey
    else:
        pk_b = _decode_bytes(privkey)
        if len(pk_b) == 64:
            pk_b = pk_b[:32]
        if len(pk_b) != 32:
            raise ValueError("ed25519 privkey must be 32-byte seed (or 64-byte expanded key)")
        key = Ed25519PrivateKey.from_private_bytes(pk_b)

    sig_b = key.sign(message)
    if encoding == "hex":
        return sig_b.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig_b).decode("ascii")
    raise ValueError("unsupported encoding")


def verify_signers(
    *,
    message: bytes,
    signers: Sequence[str],
    sigs: Mapping[str, str],
) -> Tuple[bool, Dict[str, Any]]:
    """Every declared signer must carry a valid signature over `message`."""
    missing: List[str] = [s for s in signers if not str(sigs.get(s) or "").strip()]
    if missing:
        return False, {"reason": "missing_signature", "signers": missing}

    bad: List[str] = []
    for s in signers:
        if not verify_ed25519_signature(message=message, sig=str(sigs[s]), identity=s):
            bad.append(s)
    if bad:
        return False, {"reason": "invalid_signature", "signers": bad}

    return True, {}


__all__ = [
    "canonical_tx_message",
    "identity_of",
    "sign_ed25519",
    "verify_ed25519_signature",
    "verify_signers",
]
