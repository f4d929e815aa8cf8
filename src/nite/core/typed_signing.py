"""
Nite Typed Data Signing - EIP-712

Structured data hashing for ledger permits, plus the signing and recovery
helpers used by wallets, the CLI and the ledger itself.

The digest produced by :func:`hash_typed_data` is byte-for-byte the one
``eth_signTypedData_v4`` wallets sign, so permits created by browser wallets
verify against the ledger unchanged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from eth_abi import encode as abi_encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_utils import keccak, to_bytes

logger = logging.getLogger(__name__)

EIP712_PREFIX = b"\x19\x01"

# secp256k1 group order; signatures with s above half of it are malleable
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

SIGNATURE_LENGTH = 65


@dataclass
class TypedDataDomain:
    """
    EIP-712 domain separator.

    Prevents signature replay across different:
    - Contracts/applications (name, verifyingContract)
    - Chains (chainId)
    - Versions (version)
    """
    name: str
    version: str
    chain_id: int
    verifying_contract: Optional[str] = None
    salt: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for hashing."""
        d: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
        }
        if self.verifying_contract:
            d["verifyingContract"] = self.verifying_contract
        if self.salt:
            d["salt"] = self.salt
        return d

    def type_fields(self) -> List[Dict[str, str]]:
        fields = [
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
            {"name": "chainId", "type": "uint256"},
        ]
        if self.verifying_contract:
            fields.append({"name": "verifyingContract", "type": "address"})
        if self.salt:
            fields.append({"name": "salt", "type": "bytes32"})
        return fields


PERMIT_TYPES = {
    "Permit": [
        {"name": "spender", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ]
}

PERMIT_FOR_ALL_TYPES = {
    "PermitForAll": [
        {"name": "owner", "type": "address"},
        {"name": "operator", "type": "address"},
        {"name": "approved", "type": "bool"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ]
}


def _is_array_type(type_name: str) -> Tuple[bool, str, Optional[int]]:
    """
    Check if type is an array type.

    Returns:
        Tuple of (is_array, base_type, array_length or None for dynamic)
    """
    match = re.match(r'^(.+)\[(\d*)\]$', type_name)
    if match:
        base_type = match.group(1)
        length = int(match.group(2)) if match.group(2) else None
        return True, base_type, length
    return False, type_name, None


def _find_type_dependencies(type_name: str, types: Dict, visited: Optional[set] = None) -> set:
    """Find all struct types referenced (transitively) by ``type_name``."""
    if visited is None:
        visited = set()

    if type_name in visited or type_name not in types:
        return set()

    visited.add(type_name)
    deps = set()

    for field in types[type_name]:
        _, field_type, _ = _is_array_type(field['type'])
        if field_type in types:
            deps.add(field_type)
            deps.update(_find_type_dependencies(field_type, types, visited))

    return deps


def _encode_struct_signature(type_name: str, types: Dict[str, List[Dict[str, str]]]) -> str:
    fields = types[type_name]
    return f"{type_name}({','.join(f['type'] + ' ' + f['name'] for f in fields)})"


def encode_type(type_name: str, types: Dict[str, List[Dict[str, str]]]) -> str:
    """
    EIP-712 encodeType: the primary type followed by its dependencies
    sorted by name.
    """
    deps = _find_type_dependencies(type_name, types)
    deps.discard(type_name)
    encoded = _encode_struct_signature(type_name, types)
    for dep in sorted(deps):
        encoded += _encode_struct_signature(dep, types)
    return encoded


def type_hash(type_name: str, types: Dict[str, List[Dict[str, str]]]) -> bytes:
    """Compute typeHash for a type."""
    return keccak(text=encode_type(type_name, types))


def _encode_value(
    type_name: str,
    value: Any,
    types: Dict[str, List[Dict[str, str]]]
) -> bytes:
    """Encode a single member value to its 32-byte EIP-712 word."""
    is_array, base_type, _ = _is_array_type(type_name)
    if is_array:
        items = value or []
        return keccak(b"".join(_encode_value(base_type, item, types) for item in items))

    if type_name in types:
        return keccak(encode_data(type_name, value or {}, types))
    if type_name == "string":
        return keccak(text=value or "")
    if type_name == "bytes":
        return keccak(to_bytes(hexstr=value) if isinstance(value, str) else (value or b""))
    if type_name.startswith("bytes") and isinstance(value, str):
        value = to_bytes(hexstr=value)

    # Atomic types (address, bool, intN, uintN, bytesN) use plain ABI encoding
    return abi_encode([type_name], [value])


def encode_data(
    type_name: str,
    data: Dict[str, Any],
    types: Dict[str, List[Dict[str, str]]]
) -> bytes:
    """
    EIP-712 encodeData: typeHash followed by each member's encoded word.

    Raises:
        ValueError: If a declared member is missing from ``data``
    """
    encoded = type_hash(type_name, types)

    for field in types[type_name]:
        if field['name'] not in data:
            raise ValueError(f"Missing field {field['name']!r} for type {type_name}")
        encoded += _encode_value(field['type'], data[field['name']], types)

    return encoded


def hash_domain(domain: TypedDataDomain) -> bytes:
    """Compute the domain separator hash."""
    domain_types = {"EIP712Domain": domain.type_fields()}
    return keccak(encode_data("EIP712Domain", domain.to_dict(), domain_types))


def hash_struct(
    primary_type: str,
    types: Dict[str, List[Dict[str, str]]],
    message: Dict[str, Any],
) -> bytes:
    return keccak(encode_data(primary_type, message, types))


def hash_typed_data(
    domain: TypedDataDomain,
    primary_type: str,
    types: Dict[str, List[Dict[str, str]]],
    message: Dict[str, Any]
) -> bytes:
    """
    Hash typed structured data (EIP-712).

    Args:
        domain: Domain separator (app name, version, chain, contract)
        primary_type: Name of the primary type being signed
        types: Dictionary of type definitions (without EIP712Domain)
        message: The structured data to sign

    Returns:
        32-byte keccak256 digest ready for signing
    """
    return keccak(
        EIP712_PREFIX + hash_domain(domain) + hash_struct(primary_type, types, message)
    )


def build_typed_data(
    domain: TypedDataDomain,
    primary_type: str,
    types: Dict[str, List[Dict[str, str]]],
    message: Dict[str, Any],
) -> Dict[str, Any]:
    """Assemble the ``eth_signTypedData_v4`` payload for wallets."""
    return {
        "types": {"EIP712Domain": domain.type_fields(), **types},
        "primaryType": primary_type,
        "domain": domain.to_dict(),
        "message": message,
    }


def create_typed_sign_request(
    domain: TypedDataDomain,
    primary_type: str,
    types: Dict[str, List[Dict[str, str]]],
    message: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Create a signTypedData request object.

    Compatible with wallet RPC methods (``eth_signTypedData_v4``).

    Returns:
        Request object with full typed data and hash
    """
    return {
        "method": "eth_signTypedData_v4",
        "params": {
            "typedData": build_typed_data(domain, primary_type, types, message),
            "hash": "0x" + hash_typed_data(domain, primary_type, types, message).hex(),
        }
    }


def sign_typed_data(
    private_key: Union[str, bytes],
    domain: TypedDataDomain,
    primary_type: str,
    types: Dict[str, List[Dict[str, str]]],
    message: Dict[str, Any],
) -> bytes:
    """
    Sign typed data with a local private key.

    Returns:
        65-byte ``r || s || v`` signature with ``v`` in {27, 28}
    """
    signable = encode_typed_data(
        full_message=build_typed_data(domain, primary_type, types, message)
    )
    signed = Account.sign_message(signable, private_key)
    return bytes(signed.signature)


def split_signature(signature: bytes) -> Tuple[int, int, int]:
    """
    Split a 65-byte signature into ``(v, r, s)`` with ``v`` in {0, 1}.

    Raises:
        ValueError: If the length, recovery id or s-value is not canonical
    """
    if not isinstance(signature, (bytes, bytearray)) or len(signature) != SIGNATURE_LENGTH:
        raise ValueError("signature must be 65 bytes")

    r = int.from_bytes(signature[0:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v >= 27:
        v -= 27
    if v not in (0, 1):
        raise ValueError("invalid recovery id")
    if not (0 < r < SECP256K1_N) or not (0 < s <= SECP256K1_HALF_N):
        raise ValueError("non-canonical signature values")
    return v, r, s


def recover_hash_signer(digest: bytes, signature: bytes) -> str:
    """
    Recover the checksum address that produced ``signature`` over ``digest``.

    Raises:
        ValueError: If the signature is malformed or does not recover
    """
    v, r, s = split_signature(signature)
    try:
        public_key = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(digest)
    except BadSignature as exc:
        raise ValueError("signature does not recover to a public key") from exc
    return public_key.to_checksum_address()


__all__ = [
    "TypedDataDomain",
    "PERMIT_TYPES",
    "PERMIT_FOR_ALL_TYPES",
    "encode_type",
    "type_hash",
    "encode_data",
    "hash_domain",
    "hash_struct",
    "hash_typed_data",
    "build_typed_data",
    "create_typed_sign_request",
    "sign_typed_data",
    "split_signature",
    "recover_hash_signer",
]
