from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Set
import asyncio
import logging
import time
from solders.pubkey import Pubkey
from core.types import PoolCreated, PoolSource
from execution.constants import (
    MIN_GRADUATION_DEPOSIT_LAMPORTS, PUMP_PROGRAM, RAYDIUM_AMM_V4,
    RAYDIUM_BASE_MINT_INDEX, RAYDIUM_LP_MINT_INDEX, RAYDIUM_MIN_ACCOUNTS,
    RAYDIUM_POOL_INDEX, RAYDIUM_QUOTE_MINT_INDEX, RAYDIUM_QUOTE_VAULT_INDEX, SOL_MINT
)
from utils.backoff import BackoffPolicy, is_rate_limited
from utils.config import WatcherSettings

RAYDIUM_PROGRAM_ID = str(RAYDIUM_AMM_V4)
PUMP_PROGRAM_ID = str(PUMP_PROGRAM)

def _normalize(tx: Dict) -> Dict:
    """Flatten {"transaction": {"transaction", "meta"}} into the getTransaction shape"""
    inner = tx.get("transaction")
    if "meta" not in tx and isinstance(inner, dict) and "meta" in inner:
        return {**tx, **inner}
    return tx

def account_keys(tx: Dict) -> List[str]:
    keys = tx["transaction"]["message"].get("accountKeys", [])
    return [str(k.get("pubkey")) if isinstance(k, dict) else str(k) for k in keys]

def _program_of(instruction: Dict, keys: List[str]) -> Optional[str]:
    if "programId" in instruction:
        return instruction["programId"]
    index = instruction.get("programIdIndex")
    if index is not None and index < len(keys):
        return keys[index]
    return None

def _accounts_of(instruction: Dict, keys: List[str]) -> List[str]:
    accounts = instruction.get("accounts") or []
    return [keys[a] if isinstance(a, int) else a for a in accounts]

def top_level_instructions(tx: Dict) -> List[Dict]:
    return tx["transaction"]["message"].get("instructions", [])

def inner_instructions(tx: Dict) -> List[Dict]:
    meta = tx.get("meta") or {}
    return [ix for group in meta.get("innerInstructions") or [] for ix in group.get("instructions", [])]

def programs_touched(tx: Dict) -> Set[str]:
    keys = account_keys(tx)
    return {
        _program_of(ix, keys)
        for ix in top_level_instructions(tx) + inner_instructions(tx)
    } - {None}

def _find_raydium_accounts(instructions: List[Dict], keys: List[str]) -> Optional[List[str]]:
    for ix in instructions:
        if _program_of(ix, keys) != RAYDIUM_PROGRAM_ID:
            continue
        accounts = _accounts_of(ix, keys)
        if len(accounts) >= RAYDIUM_MIN_ACCOUNTS:
            return accounts
    return None

def estimate_initial_liquidity(tx: Dict, reserve_account: Optional[str]) -> int:
    """Lamports deposited into the pool by the creation transaction"""
    meta = tx.get("meta") or {}
    keys = account_keys(tx)
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []

    if reserve_account in keys:
        index = keys.index(reserve_account)
    else:
        index = RAYDIUM_QUOTE_VAULT_INDEX
    if index < len(pre) and index < len(post):
        delta = abs(post[index] - pre[index])
        if delta > 0:
            return delta

    # Largest wSOL token account increase
    pre_tokens = {
        b["accountIndex"]: int(b["uiTokenAmount"]["amount"])
        for b in meta.get("preTokenBalances") or []
        if b.get("mint") == SOL_MINT
    }
    best = 0
    for balance in meta.get("postTokenBalances") or []:
        if balance.get("mint") != SOL_MINT:
            continue
        increase = int(balance["uiTokenAmount"]["amount"]) - pre_tokens.get(balance["accountIndex"], 0)
        best = max(best, increase)
    return best

def _largest_deposit(tx: Dict) -> int:
    meta = tx.get("meta") or {}
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    deposits = [after - before for before, after in zip(pre, post)]
    largest = max(deposits, default=0)
    return largest if largest > MIN_GRADUATION_DEPOSIT_LAMPORTS else 0

def _pool_from_accounts(accounts: List[str], tx: Dict, source: PoolSource,
                        signature: str, slot: int, detected_at: float) -> PoolCreated:
    liquidity = estimate_initial_liquidity(tx, accounts[RAYDIUM_QUOTE_VAULT_INDEX])
    if liquidity == 0 and source is PoolSource.PUMPFUN_GRADUATION:
        liquidity = _largest_deposit(tx)

    return PoolCreated(
        pool_address=accounts[RAYDIUM_POOL_INDEX],
        base_mint=accounts[RAYDIUM_BASE_MINT_INDEX],
        quote_mint=accounts[RAYDIUM_QUOTE_MINT_INDEX],
        initial_liquidity=liquidity,
        source=source,
        signature=signature,
        slot=slot,
        detected_at=detected_at,
        lp_mint=accounts[RAYDIUM_LP_MINT_INDEX],
    )

def parse_raydium_pool_creation(tx: Dict, signature: str, slot: int,
                                detected_at: float) -> Optional[PoolCreated]:
    tx = _normalize(tx)
    keys = account_keys(tx)
    accounts = _find_raydium_accounts(top_level_instructions(tx), keys)
    if accounts is None:
        return None
    return _pool_from_accounts(accounts, tx, PoolSource.RAYDIUM, signature, slot, detected_at)

def parse_pumpfun_graduation(tx: Dict, signature: str, slot: int,
                             detected_at: float) -> Optional[PoolCreated]:
    """A bonding-curve token migrating into a Raydium pool"""
    tx = _normalize(tx)
    touched = programs_touched(tx)
    if PUMP_PROGRAM_ID not in touched or RAYDIUM_PROGRAM_ID not in touched:
        return None

    keys = account_keys(tx)
    accounts = _find_raydium_accounts(inner_instructions(tx), keys)
    if accounts is None:
        return None
    return _pool_from_accounts(accounts, tx, PoolSource.PUMPFUN_GRADUATION, signature, slot, detected_at)

class PoolWatcher:
    def __init__(self, rpc, settings: WatcherSettings, backoff: BackoffPolicy,
                 logger: Optional[logging.Logger] = None, clock=time.time):
        self.rpc = rpc
        self.settings = settings
        self.backoff = backoff
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

        self.callbacks: List[Callable] = []
        self.heartbeat: Optional[Callable[[], None]] = None
        self.seen_signatures: "OrderedDict[str, None]" = OrderedDict()
        self.start_slot = 0
        self.is_running = False

        self._rate_limit_streak = 0
        self._window_start = 0.0
        self._window_calls = 0

        self.poll_health = {
            'polls_completed': 0,
            'transactions_fetched': 0,
            'pools_emitted': 0,
            'non_native_skipped': 0,
            'processing_errors': 0,
            'rate_limited': 0,
        }

        self.venues = [
            (RAYDIUM_AMM_V4, settings.raydium_signature_limit, parse_raydium_pool_creation),
            (PUMP_PROGRAM, settings.pumpfun_signature_limit, parse_pumpfun_graduation),
        ]

    def add_callback(self, callback: Callable):
        """Add an async callback to receive PoolCreated events"""
        self.callbacks.append(callback)

    async def start(self):
        """Poll both venues until stop() is called"""
        self.is_running = True
        try:
            self.start_slot = await self.rpc.get_slot()
        except Exception as e:
            self.logger.error(f"Could not read starting slot, watching from 0: {str(e)}")
            self.start_slot = 0

        self.logger.info(f"Pool watcher started at slot {self.start_slot}")

        while self.is_running:
            try:
                await self.poll_once()
                self._rate_limit_streak = 0
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if is_rate_limited(e):
                    self.poll_health['rate_limited'] += 1
                    wait_time = await self.backoff.sleep(self._rate_limit_streak)
                    self._rate_limit_streak += 1
                    self.logger.warning(f"Rate limited, backed off {wait_time:.2f}s")
                    continue
                self.poll_health['processing_errors'] += 1
                self.logger.error(f"Poll failed: {str(e)}")

            await asyncio.sleep(self.settings.poll_interval_seconds)

        self.logger.info("Pool watcher stopped")

    async def stop(self):
        self.is_running = False

    async def poll_once(self) -> List[PoolCreated]:
        emitted = []
        for program, limit, parser in self.venues:
            emitted.extend(await self._poll_venue(program, limit, parser))

        self.poll_health['polls_completed'] += 1
        if self.heartbeat:
            self.heartbeat()
        return emitted

    async def _poll_venue(self, program: Pubkey, limit: int, parser) -> List[PoolCreated]:
        await self._throttle()
        signatures = await self.rpc.get_signatures(program, limit)

        emitted = []
        for info in signatures:
            if info.signature in self.seen_signatures:
                continue
            self._mark_seen(info.signature)

            if info.slot <= self.start_slot or info.failed:
                continue

            await self._throttle()
            try:
                tx = await self.rpc.get_transaction(info.signature)
            except Exception as e:
                if is_rate_limited(e):
                    raise
                self.poll_health['processing_errors'] += 1
                self.logger.debug(f"Failed to fetch {info.signature}: {str(e)}")
                continue

            self.poll_health['transactions_fetched'] += 1
            if not tx or (tx.get("meta") or {}).get("err") is not None:
                continue

            try:
                pool = parser(tx, info.signature, info.slot, self.clock())
            except Exception as e:
                self.poll_health['processing_errors'] += 1
                self.logger.debug(f"Failed to parse {info.signature}: {str(e)}")
                continue

            if pool is None:
                continue
            if pool.quote_mint != SOL_MINT:
                self.poll_health['non_native_skipped'] += 1
                self.logger.debug(f"Skipping non-SOL pool {pool.pool_address} (quote {pool.quote_mint})")
                continue

            self.logger.info(
                f"New {pool.source.value} pool {pool.pool_address}: token={pool.base_mint} "
                f"liquidity={pool.initial_liquidity / 1e9:.2f} SOL"
            )
            self.poll_health['pools_emitted'] += 1
            emitted.append(pool)
            await self._emit(pool)

        return emitted

    async def _emit(self, pool: PoolCreated):
        for callback in self.callbacks:
            try:
                await callback(pool)
            except Exception as e:
                self.logger.error(f"Pool callback failed for {pool.base_mint}: {str(e)}")

    def _mark_seen(self, signature: str):
        self.seen_signatures[signature] = None
        if len(self.seen_signatures) > self.settings.seen_signature_cap:
            while len(self.seen_signatures) > self.settings.seen_signature_keep:
                self.seen_signatures.popitem(last=False)

    async def _throttle(self):
        """At most max_rpc_per_second calls per one-second window"""
        now = self.clock()
        if now - self._window_start >= 1.0:
            self._window_start = now
            self._window_calls = 0

        if self._window_calls >= self.settings.max_rpc_per_second:
            await asyncio.sleep(max(0.0, 1.0 - (now - self._window_start)))
            self._window_start = self.clock()
            self._window_calls = 0

        self._window_calls += 1
