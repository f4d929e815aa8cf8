"""Account and signing helpers for ledger tests."""

from eth_account import Account
from eth_utils import keccak

from nite.core.typed_signing import PERMIT_FOR_ALL_TYPES, PERMIT_TYPES, sign_typed_data

ONE_HOUR = 3600


def make_account(label: str):
    """Deterministic local account derived from ``label``."""
    return Account.from_key(keccak(text=f"nite-test-account-{label}"))


def sign_permit(signer, ledger, spender, token_id, nonce=None, deadline=None):
    """Sign a Permit for ``ledger`` with ``signer``'s key."""
    if nonce is None:
        nonce = ledger.get_sig_nonce(signer.address)
    if deadline is None:
        deadline = ledger.chain.block_timestamp() + ONE_HOUR
    message = {"spender": spender, "tokenId": token_id, "nonce": nonce, "deadline": deadline}
    return sign_typed_data(signer.key, ledger.domain(), "Permit", PERMIT_TYPES, message), deadline


def sign_permit_for_all(signer, ledger, owner, operator, approved=True, nonce=None, deadline=None):
    """Sign a PermitForAll for ``ledger`` with ``signer``'s key."""
    if nonce is None:
        nonce = ledger.get_sig_nonce(owner)
    if deadline is None:
        deadline = ledger.chain.block_timestamp() + ONE_HOUR
    message = {
        "owner": owner,
        "operator": operator,
        "approved": approved,
        "nonce": nonce,
        "deadline": deadline,
    }
    return (
        sign_typed_data(signer.key, ledger.domain(), "PermitForAll", PERMIT_FOR_ALL_TYPES, message),
        deadline,
    )


def events_of(contract, event_type):
    return [e.args for e in contract.events if e.event_type == event_type]
