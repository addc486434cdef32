"""On-chain redemption of resolved conditions through the CTF contract."""

import logging
import threading
from typing import Any

from web3 import Web3
from web3.exceptions import Web3Exception

from updown.config.schema import VenueConfig
from updown.execution.errors import ConfigurationError, TransientError
from updown.models.market import normalize_condition_id

logger = logging.getLogger(__name__)

CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"
PARENT_COLLECTION_ID = b"\x00" * 32
INDEX_SETS = [1, 2]  # both outcome slots of a binary condition
REDEEM_GAS = 250_000
RECEIPT_TIMEOUT_SECONDS = 120

CTF_REDEEM_ABI = [
    {
        "inputs": [
            {"name": "collateralToken", "type": "address"},
            {"name": "parentCollectionId", "type": "bytes32"},
            {"name": "conditionId", "type": "bytes32"},
            {"name": "indexSets", "type": "uint256[]"},
        ],
        "name": "redeemPositions",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]


class OnChainRedeemer:
    """Calls CTF.redeemPositions signed with the configured private key.

    The transaction is sent from the key's own address, so only holdings of
    that address can be redeemed; a proxy wallet that differs from it is
    refused up front. Redemptions are serialized so nonces never collide.
    """

    def __init__(self, venue: VenueConfig, web3: Any = None, timeout: float = 30.0):
        if not venue.private_key:
            raise ConfigurationError("On-chain redemption requires venue.private_key")
        self.venue = venue
        self.w3 = web3 or Web3(
            Web3.HTTPProvider(venue.polygon_rpc_url, request_kwargs={"timeout": timeout})
        )
        self.account = self.w3.eth.account.from_key(venue.private_key)
        self.ctf = self.w3.eth.contract(
            address=Web3.to_checksum_address(CTF_ADDRESS), abi=CTF_REDEEM_ABI
        )
        self._lock = threading.Lock()
        if venue.proxy_wallet_address:
            self._check_sender(venue.proxy_wallet_address)

    def redeem(self, condition_id: str, wallet: str | None) -> str:
        """Submit redeemPositions and wait for the receipt. Returns tx hash."""
        if wallet:
            self._check_sender(wallet)
        cid = normalize_condition_id(condition_id)
        with self._lock:
            try:
                tx_hash = self._send(cid)
                receipt = self.w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=RECEIPT_TIMEOUT_SECONDS
                )
            except (Web3Exception, OSError, ValueError) as e:
                raise TransientError(f"Redeem {cid[:18]} failed: {e}") from e

        tx_id = Web3.to_hex(tx_hash)
        if receipt.get("status") != 1:
            raise TransientError(f"Redeem {cid[:18]} reverted in {tx_id}")
        logger.info(
            "Redeemed %s for %s (tx %s)", cid[:18], self.account.address, tx_id
        )
        return tx_id

    def _send(self, condition_id: str) -> Any:
        gas_price = self.w3.eth.gas_price
        tx = self.ctf.functions.redeemPositions(
            Web3.to_checksum_address(USDC_ADDRESS),
            PARENT_COLLECTION_ID,
            bytes.fromhex(condition_id[2:]),
            INDEX_SETS,
        ).build_transaction({
            "from": self.account.address,
            "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
            "gas": REDEEM_GAS,
            "maxFeePerGas": gas_price * 2,
            "maxPriorityFeePerGas": self.w3.to_wei(50, "gwei"),
            "chainId": self.venue.chain_id,
        })
        signed = self.account.sign_transaction(tx)
        return self.w3.eth.send_raw_transaction(signed.raw_transaction)

    def _check_sender(self, wallet: str) -> None:
        if wallet.lower() != self.account.address.lower():
            raise ConfigurationError(
                f"Cannot redeem holdings of {wallet}: transactions are sent from "
                f"{self.account.address}, the address of venue.private_key. "
                "Proxy wallet redemption is not supported; set "
                "venue.proxy_wallet_address to that address or leave it unset"
            )
