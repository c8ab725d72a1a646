"""Escrow contract adapter — releases escrowed tokens to the buyer on-chain.

Signs ``releaseToBuyer(uint256 listingId, address buyer)`` with the service's
admin key through Coinbase AgentKit's EthAccountWalletProvider and waits for
the receipt before reporting the hash. The wallet provider is synchronous, so
the call runs in a worker thread; the settlement orchestrator bounds the wait.

Requires the ``chain`` extra (coinbase-agentkit, web3).
"""

from __future__ import annotations

import asyncio
from typing import Any

from token_bazaar.domain.exceptions import EscrowReleaseError
from token_bazaar.logging_config import get_logger

logger = get_logger(__name__)

ESCROW_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "releaseToBuyer",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "listingId", "type": "uint256"},
            {"name": "buyer", "type": "address"},
        ],
        "outputs": [],
    },
]


class ChainEscrowReleaser:
    """EscrowReleaser that calls the escrow contract with the admin key."""

    def __init__(
        self,
        contract_address: str,
        admin_private_key: str,
        rpc_url: str,
        chain_id: int,
        receipt_timeout_seconds: float = 120.0,
    ) -> None:
        from web3 import Web3

        self._contract_address = Web3.to_checksum_address(contract_address)
        self._contract = Web3().eth.contract(address=self._contract_address, abi=ESCROW_ABI)
        self._receipt_timeout = receipt_timeout_seconds
        self._wallet = self._build_wallet(admin_private_key, rpc_url, chain_id)
        logger.info(
            "escrow.releaser_ready",
            contract=self._contract_address,
            signer=self._wallet.get_address(),
            chain_id=chain_id,
        )

    @staticmethod
    def _build_wallet(private_key: str, rpc_url: str, chain_id: int) -> Any:
        from coinbase_agentkit import EthAccountWalletProvider, EthAccountWalletProviderConfig
        from eth_account import Account

        return EthAccountWalletProvider(
            config=EthAccountWalletProviderConfig(
                account=Account.from_key(private_key),
                chain_id=str(chain_id),
                rpc_url=rpc_url,
            )
        )

    async def release(self, listing_id: str, buyer_address: str) -> str:
        return await asyncio.to_thread(self._release_sync, listing_id, buyer_address)

    def _release_sync(self, listing_id: str, buyer_address: str) -> str:
        from web3 import Web3

        tx_hash: str | None = None
        try:
            data = self._contract.encode_abi(
                "releaseToBuyer",
                args=[int(listing_id), Web3.to_checksum_address(buyer_address)],
            )
            tx_hash = self._wallet.send_transaction(
                {"to": self._contract_address, "data": data}
            )
            tx_hash = tx_hash if str(tx_hash).startswith("0x") else f"0x{tx_hash}"
            logger.info("escrow.release_submitted", listing_id=listing_id, tx_hash=tx_hash)

            receipt = self._wallet.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except Exception as exc:
            raise EscrowReleaseError(f"Escrow release failed: {exc}", tx_hash=tx_hash) from exc

        if receipt.get("status") != 1:
            raise EscrowReleaseError("Escrow release transaction reverted", tx_hash=tx_hash)

        logger.info("escrow.release_confirmed", listing_id=listing_id, tx_hash=tx_hash)
        return str(tx_hash)
