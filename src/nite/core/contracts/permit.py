"""
Permit extension for the booking ledger.

Lets a token owner authorize approvals off-band by signing EIP-712 typed
data instead of sending a transaction:

- ``Permit(spender, tokenId, nonce, deadline)`` grants a per-token approval
- ``PermitForAll(owner, operator, approved, nonce, deadline)`` sets an
  operator approval

Signers may be plain key holders (signature recovery) or contract accounts
that implement ERC-1271 ``is_valid_signature``. Each consumed signature
bumps the signer's nonce, so a signature can be used at most once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

from eth_utils import to_bytes

from .. import config
from ..addresses import is_zero, normalize, short
from ..metrics import get_metrics
from ..typed_signing import (
    PERMIT_FOR_ALL_TYPES,
    PERMIT_TYPES,
    TypedDataDomain,
    hash_domain,
    hash_typed_data,
    recover_hash_signer,
)
from ..chain import atomic
from ..ledger_exceptions import (
    ApprovalToCurrentOwnerError,
    ContractError,
    InvalidPermitSignatureError,
    PermitExpiredError,
    WrongOperatorError,
    ZeroAddressError,
)
from .erc721_booking import ERC721Booking

logger = logging.getLogger(__name__)

# bytes4(keccak256("isValidSignature(bytes32,bytes)"))
ERC1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")


def _as_bytes(signature: Union[bytes, str]) -> bytes:
    if isinstance(signature, str):
        return to_bytes(hexstr=signature)
    return bytes(signature)


@dataclass
class ERC721Permit(ERC721Booking):
    """Booking ledger with signature-based approvals."""

    domain_name: str = config.PERMIT_DOMAIN_NAME
    domain_version: str = config.PERMIT_DOMAIN_VERSION
    sig_nonces: dict[str, int] = field(default_factory=dict)  # signer -> next nonce

    # ==================== View Functions ====================

    def get_sig_nonce(self, account: str) -> int:
        return self.sig_nonces.get(normalize(account), 0)

    def domain(self) -> TypedDataDomain:
        return TypedDataDomain(
            name=self.domain_name,
            version=self.domain_version,
            chain_id=self.chain.chain_id,
            verifying_contract=self.address,
        )

    def domain_separator(self) -> bytes:
        return hash_domain(self.domain())

    def permit_digest(self, spender: str, token_id: int, nonce: int, deadline: int) -> bytes:
        message = {
            "spender": normalize(spender),
            "tokenId": token_id,
            "nonce": nonce,
            "deadline": deadline,
        }
        return hash_typed_data(self.domain(), "Permit", PERMIT_TYPES, message)

    def permit_for_all_digest(
        self, owner: str, operator: str, approved: bool, nonce: int, deadline: int
    ) -> bytes:
        message = {
            "owner": normalize(owner),
            "operator": normalize(operator),
            "approved": bool(approved),
            "nonce": nonce,
            "deadline": deadline,
        }
        return hash_typed_data(self.domain(), "PermitForAll", PERMIT_FOR_ALL_TYPES, message)

    # ==================== State-Changing Functions ====================

    @atomic
    def permit(
        self,
        caller: str,
        spender: str,
        token_id: int,
        deadline: int,
        signature: Union[bytes, str],
    ) -> bool:
        """
        Approve ``spender`` for ``token_id`` using the owner's signature.

        Args:
            caller: Message sender (anyone may relay a permit)
            spender: Address being approved
            token_id: Token ID
            deadline: Last timestamp at which the permit is valid
            signature: Owner's 65-byte EIP-712 signature

        Raises:
            PermitExpiredError: If the deadline has passed
            ApprovalToCurrentOwnerError: If ``spender`` owns the token
            InvalidPermitSignatureError: If the signature does not verify
        """
        self._permit(normalize(spender), token_id, deadline, _as_bytes(signature))
        return True

    @atomic
    def permit_for_all(
        self,
        caller: str,
        owner: str,
        operator: str,
        approved: bool,
        deadline: int,
        signature: Union[bytes, str],
    ) -> bool:
        """
        Set ``operator`` approval for ``owner`` using the owner's signature.

        Raises:
            PermitExpiredError: If the deadline has passed
            ZeroAddressError: If ``owner`` or ``operator`` is the zero address
            WrongOperatorError: If ``operator`` equals ``owner``
            InvalidPermitSignatureError: If the signature does not verify
        """
        self._require_not_expired(deadline)
        owner_norm = normalize(owner)
        operator_norm = normalize(operator)
        if is_zero(owner_norm) or is_zero(operator_norm):
            raise ZeroAddressError("ERC721Permit: zero owner or operator")
        if owner_norm == operator_norm:
            raise WrongOperatorError("ERC721Permit: approve to owner", {"operator": operator_norm})

        nonce = self.get_sig_nonce(owner_norm)
        digest = self.permit_for_all_digest(owner_norm, operator_norm, approved, nonce, deadline)
        self._verify_signer(owner_norm, digest, _as_bytes(signature), "permit_for_all")

        self.sig_nonces[owner_norm] = nonce + 1
        self._set_approval_for_all(owner_norm, operator_norm, approved)
        self._record_permit("permit_for_all")
        return True

    @atomic
    def transfer_with_permit(
        self,
        caller: str,
        to_addr: str,
        token_id: int,
        deadline: int,
        signature: Union[bytes, str],
        data: bytes = b"",
    ) -> bool:
        """
        Consume a permit naming the caller as spender, then safe-transfer
        the token from its owner to ``to_addr`` in the same call.
        """
        caller_norm = normalize(caller)
        owner = self.owner_of(token_id)
        self._permit(caller_norm, token_id, deadline, _as_bytes(signature))
        self._transfer_range(caller_norm, owner, to_addr, token_id, token_id, data, safe=True)
        return True

    def _permit(self, spender: str, token_id: int, deadline: int, signature: bytes) -> None:
        self._require_not_expired(deadline)
        owner = self.owner_of(token_id)
        if spender == owner:
            raise ApprovalToCurrentOwnerError(
                "ERC721Permit: approval to current owner", {"token_id": token_id}
            )

        nonce = self.get_sig_nonce(owner)
        digest = self.permit_digest(spender, token_id, nonce, deadline)
        self._verify_signer(owner, digest, signature, "permit")

        self.sig_nonces[owner] = nonce + 1
        self._approve(owner, spender, token_id)
        self._record_permit("permit")

    # ==================== Verification ====================

    def _require_not_expired(self, deadline: int) -> None:
        now = self.chain.block_timestamp()
        if now > deadline:
            raise PermitExpiredError(
                "ERC721Permit: permit expired", {"deadline": deadline, "now": now}
            )

    def _verify_signer(self, signer: str, digest: bytes, signature: bytes, kind: str) -> None:
        """
        Require ``signature`` over ``digest`` to be valid for ``signer``.

        Contract signers are asked through ERC-1271; everything else goes
        through signature recovery.
        """
        wallet = self.chain.get_contract(signer)
        if wallet is not None:
            validator = getattr(wallet, "is_valid_signature", None)
            if validator is None:
                self._reject_signature(signer, kind, "no_validator")
            try:
                result = validator(self.address, digest, signature)
            except (ContractError, ValueError):
                self._reject_signature(signer, kind, "validator_reverted")
            if result != ERC1271_MAGIC_VALUE:
                self._reject_signature(signer, kind, "validator_rejected")
            return

        try:
            recovered = recover_hash_signer(digest, signature)
        except ValueError:
            self._reject_signature(signer, kind, "malformed")
        if recovered != signer:
            self._reject_signature(signer, kind, "signer_mismatch")

    def _reject_signature(self, signer: str, kind: str, reason: str) -> None:
        logger.warning(
            "Permit signature rejected",
            extra={
                "event": "permit.rejected",
                "kind": kind,
                "signer": short(signer),
                "reason": reason,
            }
        )
        raise InvalidPermitSignatureError("ERC721Permit: invalid signature")

    def _record_permit(self, kind: str) -> None:
        logger.info(
            "Permit consumed",
            extra={"event": f"permit.{kind}", "collection": self.symbol}
        )
        if config.FEATURE_FLAGS["metrics"]:
            self.chain.on_commit(lambda: get_metrics().record_permit(kind))
