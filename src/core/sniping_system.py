from dataclasses import asdict, dataclass
from typing import Dict, Optional, Set
import asyncio
import time
from solders.keypair import Keypair
from core.position_journal import PositionJournal
from core.position_registry import PositionRegistry
from core.types import PoolCreated, Position
from data.pool_watcher import PoolWatcher
from db.database import DatabaseConnection
from db.service import DatabaseService
from execution.errors import EntryError
from execution.jupiter import JupiterClient
from execution.rpc import SolanaRpc
from execution.snipe_executor import SnipeExecutor
from risk.monitoring import HeartbeatMonitor
from risk.risk_manager import RiskManager
from risk.safety_scorer import SafetyScorer
from utils.backoff import BackoffPolicy
from utils.config import SniperConfig
from utils.logger import SniperLogger

@dataclass
class SnipingStats:
    pools_detected: int = 0
    tokens_evaluated: int = 0
    tokens_passed: int = 0
    tokens_rejected: int = 0
    snipes_executed: int = 0
    snipes_successful: int = 0
    snipes_failed: int = 0
    total_profit: int = 0  # In lamports, closed positions only
    open_positions: int = 0

class SnipingSystem:
    def __init__(self,
                 config: SniperConfig,
                 wallet: Optional[Keypair] = None,
                 logger: SniperLogger = None,
                 rpc: Optional[SolanaRpc] = None,
                 jupiter: Optional[JupiterClient] = None,
                 db_service: Optional[DatabaseService] = None,
                 run_id: Optional[str] = None,
                 clock=time.time):

        self.config = config
        self.logger = logger or SniperLogger("sniper", log_dir=config.storage.log_dir)
        self.wallet = wallet
        self.clock = clock
        self.is_running = False
        self.is_accepting_new_trades = True
        self.run_id = run_id or time.strftime("%Y%m%d_%H%M%S")

        self.backoff = BackoffPolicy.from_settings(config.backoff)
        self.rpc = rpc or SolanaRpc(config.rpc.rpc_url, self.logger.child("rpc"), config.rpc.request_timeout_seconds)
        self.jupiter = jupiter or JupiterClient(
            config.rpc.jupiter_api_url,
            self.backoff,
            priority_fee_lamports=config.entry.priority_fee_lamports,
            timeout=config.rpc.request_timeout_seconds,
            logger=self.logger.child("jupiter"),
        )

        self.registry = PositionRegistry(self.logger.child("registry"), config.storage.update_queue_size)
        self.watcher = PoolWatcher(self.rpc, config.watcher, self.backoff, self.logger.child("watcher"))
        self.scorer = SafetyScorer(self.rpc, config.safety, self.logger.child("safety"))
        self.executor = SnipeExecutor(
            self.rpc, self.jupiter, self.registry, wallet,
            config.entry, config.exit, self.backoff, self.logger.child("executor"),
        )
        self.risk_manager = RiskManager(config.capital, self.logger.child("risk"))

        if db_service is None and config.storage.database_url:
            db_service = DatabaseService(self.run_id, DatabaseConnection(config.storage.database_url))
            db_service.init_db()
        self.journal = PositionJournal(
            self.registry.updates,
            config.storage.trades_csv_path,
            self.logger.child("journal"),
            db_service=db_service,
            on_closed=self._on_position_closed,
        )

        self.heartbeat = HeartbeatMonitor(self.logger.child("heartbeat"))
        self.watcher.heartbeat = self.heartbeat.beat

        self.stats = SnipingStats()
        self.in_flight: Set[str] = set()
        self._pool_tasks: Set[asyncio.Task] = set()
        self._watcher_task: Optional[asyncio.Task] = None

        self.watcher.add_callback(self.on_pool_created)

        self.logger.info(
            f"Sniping system initialized: entry={config.entry.entry_amount_sol} SOL, "
            f"wallet={'loaded' if wallet else 'missing'}, run_id={self.run_id}"
        )

    async def start(self):
        """Start the watcher loop and background consumers"""
        try:
            self.is_running = True
            self.logger.critical("Sniping system starting")
            self.journal.start()
            self.heartbeat.start_monitoring()
            self._watcher_task = asyncio.create_task(self.watcher.start(), name="pool-watcher")
        except Exception as e:
            self.logger.critical(f"Failed to start sniping system: {str(e)}")
            self.is_running = False
            raise

    async def on_pool_created(self, pool: PoolCreated):
        if not self.is_accepting_new_trades:
            return
        task = asyncio.create_task(self.process_pool(pool))
        self._pool_tasks.add(task)
        task.add_done_callback(self._pool_tasks.discard)

    async def process_pool(self, pool: PoolCreated) -> Optional[Position]:
        """Capital rules, safety screening and entry for one detected pool"""
        self.stats.pools_detected += 1
        mint = pool.base_mint
        self.logger.event(
            "pool", source=pool.source.value, mint=mint, pool=pool.pool_address,
            liquidity_sol=f"{pool.initial_liquidity / 1e9:.2f}", slot=pool.slot,
        )

        if mint in self.in_flight or self.registry.holds_mint(mint):
            self.logger.debug(f"Skipping {mint}: already in flight or held")
            return None

        self.in_flight.add(mint)
        try:
            wallet_balance = await self._wallet_balance()
            if self.wallet is not None and wallet_balance is None:
                return None

            pending = self.registry.open_count() + len(self.in_flight) - 1
            allowed, reason = self.risk_manager.can_enter_position(pending, wallet_balance)
            if not allowed:
                self.logger.info(f"Skipping {mint}: {reason}")
                return None

            # Pools are screened once they reach the minimum age
            wait = self.config.safety.min_pool_age_seconds - (self.clock() - pool.detected_at)
            if wait > 0:
                await asyncio.sleep(wait)
            if not self.is_accepting_new_trades:
                return None

            self.stats.tokens_evaluated += 1
            safety = await self.scorer.evaluate(mint, pool)
            if not safety.passed:
                self.stats.tokens_rejected += 1
                self.logger.event("rejected", mint=mint, score=safety.score, reason=safety.reject_reason)
                return None
            self.stats.tokens_passed += 1

            self.risk_manager.record_snipe()
            self.stats.snipes_executed += 1
            try:
                position = await self.executor.enter(pool, self.config.entry.entry_amount_lamports)
            except EntryError as e:
                self.stats.snipes_failed += 1
                self.logger.warning(f"Entry failed for {mint}: {str(e)}")
                return None

            self.stats.snipes_successful += 1
            self.stats.open_positions = self.registry.open_count()
            self.logger.event(
                "entered", id=position.short_id, mint=mint, tokens=position.entry_token_amount,
                score=safety.score, signature=position.entry_signature,
            )
            return position

        except Exception as e:
            self.logger.error(f"Error processing pool {pool.pool_address}: {str(e)}")
            return None
        finally:
            self.in_flight.discard(mint)

    async def _wallet_balance(self) -> Optional[float]:
        if self.wallet is None:
            return None
        try:
            return await self.executor.wallet_balance_sol()
        except Exception as e:
            self.logger.warning(f"Could not read wallet balance, skipping pool: {str(e)}")
            return None

    def _on_position_closed(self, position: Position):
        self.risk_manager.record_close(position)
        self.stats.total_profit += position.realized_profit
        self.stats.open_positions = self.registry.open_count()
        self.logger.event(
            "closed", id=position.short_id, mint=position.token_mint,
            reason=position.exit_reason.value if position.exit_reason else "emptied",
            profit_sol=f"{position.realized_profit / 1e9:.4f}",
        )

    def get_status(self) -> Dict:
        return {
            'running': self.is_running,
            'accepting_new_trades': self.is_accepting_new_trades,
            'stats': asdict(self.stats),
            'risk': self.risk_manager.get_status(),
            'watcher': dict(self.watcher.poll_health),
            'heartbeat': self.heartbeat.get_status(),
            'performance': self.journal.summary(),
        }

    async def stop(self):
        """Stop watching, cancel monitors, drain the journal and close clients"""
        self.logger.critical("Initiating sniping system shutdown")
        self.is_accepting_new_trades = False

        await self.watcher.stop()
        if self._watcher_task:
            self._watcher_task.cancel()
            await asyncio.gather(self._watcher_task, return_exceptions=True)

        pending = list(self._pool_tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self.registry.shutdown()
        await self.journal.stop()
        self.heartbeat.stop_monitoring()

        await self.jupiter.close()
        await self.rpc.close()

        self.is_running = False
        self.logger.info(f"Sniping system stopped: {asdict(self.stats)}")
