from dataclasses import dataclass, field
from typing import Dict, List, Optional
import asyncio
import base64
import logging
import aiohttp
from solders.transaction import VersionedTransaction
from utils.backoff import BackoffPolicy
from .errors import RateLimitedError

@dataclass
class Quote:
    """A priced swap route from the aggregator"""
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    other_amount_threshold: int
    price_impact_pct: float
    route_plan: List[Dict] = field(default_factory=list)
    raw: Dict = field(default_factory=dict)

    @classmethod
    def from_response(cls, data: Dict) -> "Quote":
        return cls(
            input_mint=data['inputMint'],
            output_mint=data['outputMint'],
            in_amount=int(data['inAmount']),
            out_amount=int(data['outAmount']),
            other_amount_threshold=int(data.get('otherAmountThreshold') or 0),
            price_impact_pct=float(data.get('priceImpactPct') or 0),
            route_plan=data.get('routePlan') or [],
            raw=data,
        )

class JupiterClient:
    """Quote and swap-transaction source backed by the Jupiter swap API"""

    def __init__(self, api_url: str, backoff: BackoffPolicy,
                 priority_fee_lamports: int = 1_000_000,
                 timeout: float = 10.0,
                 logger: Optional[logging.Logger] = None):
        self.api_url = api_url.rstrip('/')
        self.backoff = backoff
        self.priority_fee_lamports = priority_fee_lamports
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.logger = logger or logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def quote(self, input_mint: str, output_mint: str, amount: int,
                    slippage_bps: int) -> Optional[Quote]:
        """Best route for `amount` raw units of input_mint, None when no route exists"""
        params = {
            'inputMint': input_mint,
            'outputMint': output_mint,
            'amount': str(amount),
            'slippageBps': str(slippage_bps),
        }

        try:
            data = await self.backoff.run(
                self._get_json, f"{self.api_url}/swap/v1/quote", params,
                retry_on=(RateLimitedError,),
                logger=self.logger,
                label="quote",
            )
        except (RateLimitedError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning(f"Quote request failed for {input_mint} -> {output_mint}: {str(e)}")
            return None

        if not data or 'outAmount' not in data or not data.get('routePlan'):
            self.logger.debug(f"No route for {input_mint} -> {output_mint}")
            return None

        try:
            quote = Quote.from_response(data)
        except (KeyError, ValueError, TypeError) as e:
            self.logger.warning(f"Malformed quote response: {str(e)}")
            return None

        if quote.out_amount <= 0:
            return None
        return quote

    async def build_swap_transaction(self, quote: Quote, wallet_pubkey: str) -> Optional[VersionedTransaction]:
        """Unsigned swap transaction for a quote, None if the aggregator refuses"""
        payload = {
            'quoteResponse': quote.raw,
            'userPublicKey': wallet_pubkey,
            'wrapAndUnwrapSol': True,
            'dynamicComputeUnitLimit': True,
            'prioritizationFeeLamports': self.priority_fee_lamports,
        }

        try:
            data = await self.backoff.run(
                self._post_json, f"{self.api_url}/swap/v1/swap", payload,
                retry_on=(RateLimitedError,),
                logger=self.logger,
                label="swap build",
            )
        except (RateLimitedError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning(f"Swap build request failed: {str(e)}")
            return None

        if not data or not data.get('swapTransaction'):
            self.logger.warning(f"Swap build returned no transaction: {data}")
            return None

        try:
            raw = base64.b64decode(data['swapTransaction'])
            return VersionedTransaction.from_bytes(raw)
        except Exception as e:
            self.logger.error(f"Could not decode swap transaction: {str(e)}")
            return None

    async def _get_json(self, url: str, params: Dict) -> Optional[Dict]:
        session = self._get_session()
        async with session.get(url, params=params) as response:
            return await self._read(response)

    async def _post_json(self, url: str, payload: Dict) -> Optional[Dict]:
        session = self._get_session()
        async with session.post(url, json=payload) as response:
            return await self._read(response)

    async def _read(self, response: aiohttp.ClientResponse) -> Optional[Dict]:
        if response.status == 429:
            raise RateLimitedError(f"Jupiter rate limited (429) on {response.url}")
        if response.status != 200:
            body = await response.text()
            self.logger.debug(f"Jupiter HTTP {response.status}: {body[:200]}")
            return None
        return await response.json()

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
