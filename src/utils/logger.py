import logging
from datetime import datetime
import os

class SniperLogger:
    """Root logger for a sniper run.

    One log file per run under `log_dir`; components log through named
    children (`sniper.watcher`, `sniper.executor`, ...) so every line in
    the file carries the subsystem that wrote it.
    """

    def __init__(self, name: str = "sniper", log_dir: str = "data/logs", console_output: bool = False):
        self.name = name
        self.log_dir = log_dir
        os.makedirs(log_dir, exist_ok=True)

        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)

        # Handlers are attached once per named logger
        if not self.logger.handlers:
            self._setup_handlers(console_output)

    def _setup_handlers(self, console_output: bool):
        if console_output:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s'))
            self.logger.addHandler(console_handler)

        run_started = datetime.now().strftime('%Y%m%d_%H%M%S')
        file_handler = logging.FileHandler(os.path.join(self.log_dir, f'{self.name}_{run_started}.log'))
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        self.logger.addHandler(file_handler)

    def child(self, component: str) -> logging.Logger:
        """Logger for one subsystem, writing through this run's handlers"""
        return self.logger.getChild(component)

    def event(self, kind: str, **fields) -> None:
        """One pipeline milestone (pool seen, entry, close) as `[kind] key=value ...`"""
        details = " ".join(f"{key}={value}" for key, value in fields.items())
        self.logger.info(f"[{kind}] {details}")

    def critical(self, message: str) -> None:
        self.logger.critical(message)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)
