from typing import Optional
import logging
import time
from solders.pubkey import Pubkey
from core.layouts import MetadataFieldLengths, MintAccount, metadata_pda
from core.types import PoolCreated, SafetyMetrics, SafetyResult, SubScores
from execution.constants import (
    LAMPORTS_PER_SOL, TOKEN_2022_PROGRAM_ID, TOKEN_METADATA_PROGRAM, TOKEN_PROGRAM_ID
)
from utils.config import SafetySettings

TOKEN_PROGRAMS = {str(TOKEN_PROGRAM_ID), str(TOKEN_2022_PROGRAM_ID)}

def liquidity_score(liquidity_sol: float) -> int:
    if liquidity_sol >= 50:
        return 25
    if liquidity_sol >= 20:
        return 20
    if liquidity_sol >= 10:
        return 15
    if liquidity_sol >= 5:
        return 10
    return 5

def holder_score(top10_pct: float) -> int:
    """Less concentration scores higher"""
    if top10_pct <= 5:
        return 25
    if top10_pct <= 10:
        return 20
    if top10_pct <= 15:
        return 15
    if top10_pct <= 20:
        return 10
    if top10_pct <= 25:
        return 5
    return 2

def metadata_score(data: bytes) -> int:
    """Score Metaplex metadata by which of name/symbol/uri look sane"""
    if len(data) <= 100:
        return 0

    lengths = MetadataFieldLengths.from_buffer(data)
    score = 0
    if lengths.name is not None and 0 < lengths.name < 100:
        score += 7
    if lengths.symbol is not None and 0 < lengths.symbol < 20:
        score += 6
    if lengths.uri is not None and 0 < lengths.uri < 500:
        score += 6

    if score == 0:
        return 3
    if score == 19:
        score += 6
    return min(score, 25)

class SafetyScorer:
    """Hard reject checks followed by a weighted 0-100 safety score"""

    def __init__(self, rpc, settings: SafetySettings,
                 logger: Optional[logging.Logger] = None, clock=time.time):
        self.rpc = rpc
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    async def evaluate(self, mint: str, pool_meta: PoolCreated) -> SafetyResult:
        result = SafetyResult(
            mint=mint,
            metrics=SafetyMetrics(
                initial_liquidity_sol=pool_meta.initial_liquidity / LAMPORTS_PER_SOL,
                pool_age_seconds=self.clock() - pool_meta.detected_at,
            ),
            checked_at=self.clock(),
        )

        try:
            reject_reason = await self._hard_checks(mint, result.metrics)
        except Exception as e:
            reject_reason = f"safety check error: {str(e)}"

        if reject_reason:
            result.reject_reason = reject_reason
            self._log_result(result)
            return result

        result.sub_scores = SubScores(
            liquidity=liquidity_score(result.metrics.initial_liquidity_sol),
            holders=holder_score(result.metrics.top10_holder_pct),
            lp_lock=await self._lp_lock_score(pool_meta.lp_mint),
            metadata=await self._metadata_score(mint),
        )
        result.score = min(100, result.sub_scores.total)
        result.passed = result.score > self.settings.pass_score
        if not result.passed:
            result.reject_reason = f"safety score too low: {result.score}/100"

        self._log_result(result)
        return result

    async def _hard_checks(self, mint: str, metrics: SafetyMetrics) -> Optional[str]:
        """Returns the first failing check's reason, None when all pass"""
        account = await self.rpc.get_account(mint)
        if account is None:
            return "mint not found"

        if str(account.owner) not in TOKEN_PROGRAMS:
            return "mint not parseable"
        try:
            mint_info = MintAccount.from_buffer(bytes(account.data))
        except Exception:
            return "mint not parseable"

        metrics.supply = mint_info.supply
        metrics.mint_authority_revoked = mint_info.mint_authority is None
        metrics.freeze_authority_revoked = mint_info.freeze_authority is None

        if not metrics.mint_authority_revoked:
            return "mint authority not revoked"
        if not metrics.freeze_authority_revoked:
            return "freeze authority not revoked"

        if metrics.initial_liquidity_sol < self.settings.min_liquidity_sol:
            return (f"initial liquidity too low: {metrics.initial_liquidity_sol:.2f} SOL "
                    f"(min {self.settings.min_liquidity_sol})")

        if metrics.pool_age_seconds < self.settings.min_pool_age_seconds:
            return (f"pool too new: {metrics.pool_age_seconds:.0f}s "
                    f"(min {self.settings.min_pool_age_seconds:.0f}s)")

        holders = await self.rpc.get_largest_token_accounts(mint)
        metrics.holder_count = len(holders)
        top10 = holders[:10]
        if metrics.supply > 0 and top10:
            metrics.top10_holder_pct = sum(top10) / metrics.supply * 100
        else:
            metrics.top10_holder_pct = 100.0

        if metrics.top10_holder_pct > self.settings.max_top10_holder_pct:
            return (f"top 10 holders own {metrics.top10_holder_pct:.1f}% "
                    f"(max {self.settings.max_top10_holder_pct}%)")

        return None

    async def _lp_lock_score(self, lp_mint: Optional[str]) -> int:
        if not lp_mint:
            return 5

        try:
            account = await self.rpc.get_account(lp_mint)
            if account is None:
                return 5
            lp_info = MintAccount.from_buffer(bytes(account.data))
        except Exception as e:
            self.logger.debug(f"LP mint {lp_mint} unreadable: {str(e)}")
            return 5

        if lp_info.mint_authority is None and lp_info.supply > 0:
            return 25
        return 10

    async def _metadata_score(self, mint: str) -> int:
        try:
            address = metadata_pda(Pubkey.from_string(mint), TOKEN_METADATA_PROGRAM)
            account = await self.rpc.get_account(str(address))
            if account is None:
                return 0
            return metadata_score(bytes(account.data))
        except Exception as e:
            self.logger.debug(f"Metadata unreadable for {mint}: {str(e)}")
            return 3

    def _log_result(self, result: SafetyResult):
        if result.passed:
            subs = result.sub_scores
            self.logger.info(
                f"Safety PASS {result.mint}: {result.score}/100 "
                f"(liquidity={subs.liquidity} holders={subs.holders} "
                f"lp_lock={subs.lp_lock} metadata={subs.metadata})"
            )
        else:
            self.logger.info(f"Safety REJECT {result.mint}: {result.reject_reason}")
