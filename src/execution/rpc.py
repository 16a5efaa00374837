from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import asyncio
import base64
import json
import logging
import aiohttp
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Processed
from solana.rpc.types import TxOpts, TokenAccountOpts
from utils.backoff import is_rate_limited
from .errors import NetworkError, RateLimitedError, TransactionError

@dataclass
class SignatureInfo:
    signature: str
    slot: int
    failed: bool

@dataclass
class SimulationResult:
    err: Any = None
    logs: Optional[List[str]] = None
    units_consumed: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.err is None

class SolanaRpc:
    """Thin async gateway over the chain RPC node"""

    def __init__(self, rpc_url: str, logger: Optional[logging.Logger] = None,
                 timeout: float = 10.0, client: Optional[AsyncClient] = None):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.client = client or AsyncClient(rpc_url, timeout=timeout)
        self.logger = logger or logging.getLogger(__name__)

    async def get_slot(self) -> int:
        resp = await self.client.get_slot(commitment=Confirmed)
        return resp.value

    async def get_signatures(self, program: Pubkey, limit: int) -> List[SignatureInfo]:
        """Most recent signatures that touched a program, newest first"""
        resp = await self.client.get_signatures_for_address(program, limit=limit, commitment=Confirmed)
        return [
            SignatureInfo(signature=str(info.signature), slot=info.slot, failed=info.err is not None)
            for info in resp.value
        ]

    async def get_transaction(self, signature: str) -> Optional[Dict]:
        """Fetch a transaction in jsonParsed form as plain RPC JSON"""
        resp = await self.client.get_transaction(
            Signature.from_string(signature),
            encoding="jsonParsed",
            commitment=Confirmed,
            max_supported_transaction_version=0,
        )
        if resp.value is None:
            return None

        payload = json.loads(resp.to_json())
        return payload["result"] if "result" in payload else payload

    async def get_account(self, address: str):
        """Account info or None if the account does not exist"""
        resp = await self.client.get_account_info(Pubkey.from_string(address), commitment=Confirmed)
        return resp.value

    async def get_largest_token_accounts(self, mint: str) -> List[int]:
        """Raw balances of the largest holders of a mint, largest first"""
        resp = await self.client.get_token_largest_accounts(Pubkey.from_string(mint), commitment=Confirmed)
        return [int(account.amount.amount) for account in resp.value]

    async def get_token_balance(self, owner: Pubkey, mint: str) -> int:
        """Raw token balance of the owner's first token account for a mint"""
        accounts = await self.client.get_token_accounts_by_owner(
            owner,
            TokenAccountOpts(mint=Pubkey.from_string(mint)),
            commitment=Confirmed,
        )
        if not accounts.value:
            return 0

        balance = await self.client.get_token_account_balance(accounts.value[0].pubkey, commitment=Confirmed)
        return int(balance.value.amount)

    async def get_balance(self, owner: Pubkey) -> int:
        """SOL balance in lamports"""
        resp = await self.client.get_balance(owner, commitment=Confirmed)
        return resp.value

    async def get_pool_liquidity(self, pool_address: str) -> Optional[int]:
        """Lamport balance of the pool account, None if the account is gone"""
        account = await self.get_account(pool_address)
        if account is None:
            return None
        return account.lamports

    async def simulate(self, transaction: VersionedTransaction) -> SimulationResult:
        """Simulate without signature verification against a fresh blockhash"""
        request_data = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "simulateTransaction",
            "params": [
                base64.b64encode(bytes(transaction)).decode("ascii"),
                {
                    "encoding": "base64",
                    "sigVerify": False,
                    "replaceRecentBlockhash": True,
                    "commitment": "processed",
                },
            ],
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.rpc_url,
                    json=request_data,
                    headers={"Content-Type": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status == 429:
                        raise RateLimitedError("simulateTransaction rate limited (429)")
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"simulateTransaction failed: {str(e)}") from e

        if "error" in result:
            raise NetworkError(f"simulateTransaction error: {result['error']}")

        value = result.get("result", {}).get("value", {})
        return SimulationResult(
            err=value.get("err"),
            logs=value.get("logs"),
            units_consumed=value.get("unitsConsumed"),
        )

    async def send_raw_transaction(self, raw: bytes) -> str:
        """Submit a signed transaction with preflight disabled"""
        try:
            resp = await self.client.send_raw_transaction(
                raw,
                opts=TxOpts(
                    skip_preflight=True,
                    preflight_commitment=Processed,
                    max_retries=0
                )
            )
        except Exception as e:
            if is_rate_limited(e):
                raise RateLimitedError(str(e)) from e
            raise TransactionError(f"Failed to send transaction: {str(e)}") from e
        return str(resp.value)

    async def confirm(self, signature: str, timeout: float) -> None:
        """Wait for confirmation; raises TransactionError on timeout or on-chain error"""
        try:
            resp = await asyncio.wait_for(
                self.client.confirm_transaction(Signature.from_string(signature), commitment=Confirmed),
                timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise TransactionError(f"Confirmation timed out after {timeout}s: {signature}") from e
        except Exception as e:
            raise TransactionError(f"Confirmation failed for {signature}: {str(e)}") from e

        status = resp.value[0] if resp.value else None
        if status is None:
            raise TransactionError(f"No status for {signature}")
        if status.err is not None:
            raise TransactionError(f"Transaction {signature} failed on-chain: {status.err}")

    def sign(self, transaction: VersionedTransaction, wallet: Keypair) -> VersionedTransaction:
        """Sign an unsigned provider transaction with the trading wallet"""
        return VersionedTransaction(transaction.message, [wallet])

    async def close(self):
        await self.client.close()
