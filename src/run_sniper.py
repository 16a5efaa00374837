import argparse
import asyncio
import signal
from typing import Optional
from core.sniping_system import SnipingSystem
from utils.config import SniperConfig, load_config, load_keypair
from utils.logger import SniperLogger

class InitSnipingSystem:
    def __init__(self, logger: SniperLogger):
        self.sniper: Optional[SnipingSystem] = None
        self.logger = logger
        self._shutdown_event = asyncio.Event()

    def handle_shutdown(self, signum):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signum}. Starting graceful shutdown...")
        self._shutdown_event.set()

    async def run_sniping_system(self, config: SniperConfig) -> None:
        """Run the sniper until a shutdown signal arrives"""
        wallet = load_keypair()
        if wallet is None:
            self.logger.warning("PRIVATE_KEY not set, entries will fail until a wallet is configured")

        self.sniper = SnipingSystem(config, wallet=wallet, logger=self.logger)
        try:
            await self.sniper.start()
            self.logger.info("Sniping system started successfully")

            status_interval = 300
            while not self._shutdown_event.is_set():
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=status_interval)
                except asyncio.TimeoutError:
                    self.logger.info(f"Status: {self.sniper.get_status()}")
        finally:
            await self.shutdown()

    async def shutdown(self, timeout: float = 30.0):
        """Gracefully shutdown the sniping system"""
        if not self.sniper or not self.sniper.is_running:
            return

        self.logger.info("Shutting down sniping system...")
        try:
            await asyncio.wait_for(self.sniper.stop(), timeout=timeout)
            self.logger.info(f"Final performance: {self.sniper.journal.summary()}")
        except asyncio.TimeoutError:
            self.logger.error(f"Shutdown timed out after {timeout} seconds")
        finally:
            self.sniper.is_running = False

async def main():
    parser = argparse.ArgumentParser(description="Solana new-pool sniper")
    parser.add_argument("--config", default="config.yaml", help="Path to the YAML config file")
    parser.add_argument("--console", action="store_true", help="Also log to the console")
    args = parser.parse_args()

    config = load_config(args.config)
    logger = SniperLogger("sniper", log_dir=config.storage.log_dir, console_output=args.console)

    init_system = InitSnipingSystem(logger)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, init_system.handle_shutdown, sig)

    try:
        logger.info("Starting sniping system...")
        await init_system.run_sniping_system(config)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
    finally:
        logger.info("Sniping system shutdown complete")

def cli():
    asyncio.run(main())

if __name__ == "__main__":
    cli()
