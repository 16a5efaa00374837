from dataclasses import dataclass, field, replace
from typing import Optional
import os
import yaml
import base58
from dotenv import load_dotenv
from solders.keypair import Keypair

# Load environment variables
load_dotenv()

@dataclass(frozen=True)
class RpcSettings:
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    jupiter_api_url: str = "https://lite-api.jup.ag"
    request_timeout_seconds: float = 10.0

@dataclass(frozen=True)
class EntrySettings:
    """Entry swap parameters"""
    entry_amount_sol: float = 0.1            # Size of each snipe
    slippage_bps: int = 1500                 # 15% slippage for new tokens
    priority_fee_lamports: int = 1_000_000   # 0.001 SOL priority fee
    confirm_timeout_seconds: float = 30.0    # Hard wall clock limit on entry confirmation
    send_attempts: int = 3                   # Submission attempts before giving up
    balance_settle_seconds: float = 1.0      # Let the RPC catch up before reading the fill

    @property
    def entry_amount_lamports(self) -> int:
        return int(round(self.entry_amount_sol * 1_000_000_000))

@dataclass(frozen=True)
class ExitSettings:
    """Tiered exit and stop-loss parameters"""
    poll_interval_seconds: float = 3.0
    tier1_multiplier: float = 2.0            # Sell 50% of current balance
    tier2_multiplier: float = 5.0            # Sell 25% of entry amount
    tier3_multiplier: float = 10.0           # Sell the rest
    stop_loss_pct: float = 40.0
    max_time_to_first_target_seconds: float = 600.0
    liquidity_drop_pct: float = 50.0         # Rug signal
    price_probe_divisor: int = 100           # Quote 1/100 of the balance to read the price
    slippage_bps: int = 1500

@dataclass(frozen=True)
class SafetySettings:
    min_liquidity_sol: float = 2.0
    min_pool_age_seconds: float = 60.0
    max_top10_holder_pct: float = 30.0
    pass_score: int = 60

@dataclass(frozen=True)
class WatcherSettings:
    poll_interval_seconds: float = 0.5
    raydium_signature_limit: int = 10
    pumpfun_signature_limit: int = 5
    seen_signature_cap: int = 10_000
    seen_signature_keep: int = 5_000
    max_rpc_per_second: int = 8              # Stay under the free tier 10/sec

@dataclass(frozen=True)
class CapitalRules:
    """Capital limits applied before every snipe"""
    max_snipes_per_hour: int = 5
    max_concurrent_positions: int = 3
    consecutive_loss_limit: int = 3
    consecutive_loss_pause_seconds: float = 3600.0
    daily_halt_threshold_sol: float = 1.5
    daily_halt_seconds: float = 86_400.0

@dataclass(frozen=True)
class BackoffSettings:
    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    jitter: float = 0.1

@dataclass(frozen=True)
class StorageSettings:
    database_url: Optional[str] = None       # Position history is skipped without one
    trades_csv_path: str = "data/trades/snipes.csv"
    log_dir: str = "data/logs"
    update_queue_size: int = 1000

@dataclass(frozen=True)
class SniperConfig:
    rpc: RpcSettings = field(default_factory=RpcSettings)
    entry: EntrySettings = field(default_factory=EntrySettings)
    exit: ExitSettings = field(default_factory=ExitSettings)
    safety: SafetySettings = field(default_factory=SafetySettings)
    watcher: WatcherSettings = field(default_factory=WatcherSettings)
    capital: CapitalRules = field(default_factory=CapitalRules)
    backoff: BackoffSettings = field(default_factory=BackoffSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)

SECTIONS = {
    'rpc': RpcSettings,
    'entry': EntrySettings,
    'exit': ExitSettings,
    'safety': SafetySettings,
    'watcher': WatcherSettings,
    'capital': CapitalRules,
    'backoff': BackoffSettings,
    'storage': StorageSettings,
}

def load_config(config_path: str = "config.yaml") -> SniperConfig:
    """Load configuration from a YAML file, then apply environment overrides"""
    sections = {}
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        for name, section_cls in SECTIONS.items():
            if name in config_data:
                sections[name] = section_cls(**(config_data[name] or {}))

    config = SniperConfig(**sections)
    return apply_env_overrides(config)

def apply_env_overrides(config: SniperConfig) -> SniperConfig:
    """Endpoints and the database URL come from the environment when set"""
    rpc = config.rpc
    if os.getenv('RPC_URL'):
        rpc = replace(rpc, rpc_url=os.getenv('RPC_URL'))
    if os.getenv('JUPITER_API_URL'):
        rpc = replace(rpc, jupiter_api_url=os.getenv('JUPITER_API_URL'))

    storage = config.storage
    if os.getenv('DB_URL'):
        storage = replace(storage, database_url=os.getenv('DB_URL'))

    return replace(config, rpc=rpc, storage=storage)

def load_keypair(env_var: str = 'PRIVATE_KEY') -> Optional[Keypair]:
    """Load the trading wallet from a base58 secret key in the environment"""
    secret = os.getenv(env_var)
    if not secret:
        return None
    return Keypair.from_bytes(bytes(base58.b58decode(secret)))
