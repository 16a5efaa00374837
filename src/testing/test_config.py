import base58
import pytest
import yaml
from solders.keypair import Keypair
from utils.config import SniperConfig, load_config, load_keypair

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('RPC_URL', 'JUPITER_API_URL', 'DB_URL', 'PRIVATE_KEY'):
        monkeypatch.delenv(name, raising=False)

class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"))

        assert config == SniperConfig()
        assert config.entry.entry_amount_lamports == 100_000_000

    def test_yaml_sections_override_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            'entry': {'entry_amount_sol': 0.25, 'slippage_bps': 2000},
            'capital': {'max_concurrent_positions': 1},
            'exit': None,
        }))

        config = load_config(str(path))

        assert config.entry.entry_amount_lamports == 250_000_000
        assert config.entry.slippage_bps == 2000
        assert config.entry.confirm_timeout_seconds == 30.0
        assert config.capital.max_concurrent_positions == 1
        assert config.exit.stop_loss_pct == 40.0

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({'safety': {'min_liquidity': 5}}))

        with pytest.raises(TypeError):
            load_config(str(path))

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv('RPC_URL', 'https://rpc.example.com')
        monkeypatch.setenv('DB_URL', 'sqlite:///sniper.db')

        config = load_config(str(tmp_path / "absent.yaml"))

        assert config.rpc.rpc_url == 'https://rpc.example.com'
        assert config.rpc.jupiter_api_url == 'https://lite-api.jup.ag'
        assert config.storage.database_url == 'sqlite:///sniper.db'

class TestLoadKeypair:
    def test_without_secret(self):
        assert load_keypair() is None

    def test_decodes_base58_secret(self, monkeypatch):
        wallet = Keypair()
        monkeypatch.setenv('PRIVATE_KEY', base58.b58encode(bytes(wallet)).decode())

        assert load_keypair().pubkey() == wallet.pubkey()
