"""
signatures.py - Maker order signing and verification

Orders are EIP-712 typed data bound to the venue (domain verifyingContract),
the chain id and the minting fund (`minter`), so a signature cannot be
replayed on another venue, chain or fund. A batch of orders is additionally
authorized by one aggregated EIP-191 signature over the XOR of
keccak256(maker ++ order_signature) for every order in the batch.

Curve math is delegated to eth_account; the verifier only reconstructs the
payloads and compares recovered signers.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import AbstractSet, Any, Callable, Dict, Iterable, Optional, Sequence
import logging

from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct, encode_typed_data
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from eth_utils import keccak, to_canonical_address, to_checksum_address

from .core import (
    InvalidMakerSignature, OrderExpired, SignatureConsumed,
    DEFAULT_DECIMALS, to_base_units,
)
from .orders import MakerOrder

logger = logging.getLogger(__name__)


EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

MINT_TYPE = [
    {"name": "minter", "type": "address"},
    {"name": "totalCollateral", "type": "uint256"},
    {"name": "expiry", "type": "uint256"},
    {"name": "anchorPrices", "type": "uint256[]"},
    {"name": "collateralAtRisk", "type": "uint256"},
    {"name": "makerCollateral", "type": "uint256"},
    {"name": "deadline", "type": "uint256"},
    {"name": "vault", "type": "address"},
]

# (message, signature, expected_signer) -> bool
SignatureCheck = Callable[[SignableMessage, bytes, str], bool]

_RECOVERY_ERRORS = (BadSignature, KeyValidationError, ValueError, TypeError)


def to_epoch(moment: datetime) -> int:
    """Seconds since the epoch; naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def recover_signer(message: SignableMessage, signature: bytes) -> Optional[str]:
    """Checksummed signer of message, or None if the signature is malformed."""
    try:
        return Account.recover_message(message, signature=signature)
    except _RECOVERY_ERRORS:
        return None


def eth_signature_check(message: SignableMessage, signature: bytes, expected_signer: str) -> bool:
    recovered = recover_signer(message, signature)
    return recovered is not None and recovered.lower() == expected_signer.lower()


def message_digest(message: SignableMessage) -> str:
    """Hex keccak digest of an EIP-191 message, as signed."""
    return "0x" + keccak(b"\x19" + message.version + message.header + message.body).hex()


def aggregate_order_hash(orders: Iterable[MakerOrder]) -> bytes:
    """XOR of keccak256(maker ++ signature) over all orders."""
    acc = bytes(32)
    for order in orders:
        h = keccak(to_canonical_address(order.maker) + order.signature)
        acc = bytes(a ^ b for a, b in zip(acc, h))
    return acc


class OrderVerifier:
    """
    Validates maker orders for one chain and token precision.

    Args:
        chain_id: Chain id bound into the EIP-712 domain
        decimals: Base-unit precision of amounts and prices
        domain_name: EIP-712 domain name of the venues
        domain_version: EIP-712 domain version of the venues
        signature_check: (message, signature, signer) -> bool, defaults to
                         ECDSA recovery through eth_account

    Example:
        verifier = OrderVerifier(chain_id=1)
        signed = verifier.sign_order(order, maker_key, minter=fund_address)
        digest = verifier.verify(signed, fund_address, now, consumed=set())
    """

    def __init__(
        self,
        chain_id: int = 1,
        decimals: int = DEFAULT_DECIMALS,
        domain_name: str = "Vault",
        domain_version: str = "1.0",
        signature_check: SignatureCheck = eth_signature_check,
    ):
        self.chain_id = chain_id
        self.decimals = decimals
        self.domain_name = domain_name
        self.domain_version = domain_version
        self.signature_check = signature_check

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    def typed_data(self, order: MakerOrder, minter: str) -> Dict[str, Any]:
        """The full EIP-712 structure a maker signs for order."""
        venue = to_checksum_address(order.venue)
        risk = order.risk_parameter if order.risk_parameter is not None else 0
        return {
            "types": {"EIP712Domain": EIP712_DOMAIN_TYPE, "Mint": MINT_TYPE},
            "primaryType": "Mint",
            "domain": {
                "name": self.domain_name,
                "version": self.domain_version,
                "chainId": self.chain_id,
                "verifyingContract": venue,
            },
            "message": {
                "minter": to_checksum_address(minter),
                "totalCollateral": to_base_units(order.total_collateral, self.decimals),
                "expiry": to_epoch(order.expiry),
                "anchorPrices": [to_base_units(p, self.decimals) for p in order.strike_parameters],
                "collateralAtRisk": to_base_units(risk, self.decimals),
                "makerCollateral": to_base_units(order.maker_collateral, self.decimals),
                "deadline": to_epoch(order.deadline),
                "vault": venue,
            },
        }

    def signable(self, order: MakerOrder, minter: str) -> SignableMessage:
        return encode_typed_data(full_message=self.typed_data(order, minter))

    def order_digest(self, order: MakerOrder, minter: str) -> str:
        """Replay-protection key: digest of the full signed payload."""
        return message_digest(self.signable(order, minter))

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(
        self,
        order: MakerOrder,
        minter: str,
        now: datetime,
        consumed: AbstractSet[str] = frozenset(),
    ) -> str:
        """
        Validate a single order and return its digest.

        The caller marks the digest consumed when the operation commits.

        Raises:
            InvalidMakerSignature: Signature does not belong to order.maker
            OrderExpired: now is past the order's deadline
            SignatureConsumed: The exact payload was already used
        """
        message = self.signable(order, minter)
        if not order.signature or not self.signature_check(message, order.signature, order.maker):
            raise InvalidMakerSignature(f"invalid maker signature for {order.maker}")
        if now > order.deadline:
            raise OrderExpired(f"order deadline {order.deadline.isoformat()} passed")
        digest = message_digest(message)
        if digest in consumed:
            raise SignatureConsumed(f"order {digest} already used")
        return digest

    def recover_batch_signer(self, orders: Sequence[MakerOrder], aggregated_signature: bytes) -> str:
        """
        Recover who signed the aggregated batch hash.

        Raises:
            InvalidMakerSignature: If the aggregated signature is malformed
        """
        message = encode_defunct(primitive=aggregate_order_hash(orders))
        signer = recover_signer(message, bytes(aggregated_signature))
        if signer is None:
            raise InvalidMakerSignature("invalid aggregated maker signature")
        return signer

    # ------------------------------------------------------------------
    # Maker tooling
    # ------------------------------------------------------------------

    def sign_order(self, order: MakerOrder, private_key: Any, minter: str) -> MakerOrder:
        """Return order carrying the maker's EIP-712 signature."""
        signed = Account.sign_message(self.signable(order, minter), private_key)
        return order.with_signature(bytes(signed.signature))

    def sign_batch(self, orders: Sequence[MakerOrder], private_key: Any) -> bytes:
        """Aggregated signature authorizing a batch of signed orders."""
        message = encode_defunct(primitive=aggregate_order_hash(orders))
        return bytes(Account.sign_message(message, private_key).signature)
