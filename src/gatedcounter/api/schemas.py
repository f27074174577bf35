from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; the executor normalizes and verifies
the envelope itself.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    program: str = Field(..., description="Base58 program id the tx is addressed to")
    instruction: str = Field(..., description="Instruction name, e.g. GRANT_ACCESS")
    signers: List[str] = Field(default_factory=list, description="Base58 identities that sign the tx")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Instruction arguments")
    nonce: int = Field(0, ge=0, description="Next nonce of the first signer")
    sigs: Dict[str, str] = Field(default_factory=dict, description="signer -> hex Ed25519 signature")

    # Any extra fields are ignored (forward compatible)
    model_config = {"extra": "ignore"}
