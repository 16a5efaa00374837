from datetime import datetime
import threading
import time
from typing import Optional, Dict
import logging
import psutil

class HeartbeatMonitor:
    """Watches pool-watcher liveness and host resources from a separate thread"""

    def __init__(self, logger: logging.Logger, heartbeat_interval: int = 30,
                 warning_threshold: int = 60,
                 critical_threshold: int = 90):
        self.logger = logger

        # Configuration
        self.heartbeat_interval = heartbeat_interval  # seconds between checks
        self.warning_threshold = warning_threshold    # seconds without a poll before warning
        self.critical_threshold = critical_threshold  # seconds without a poll before critical

        # State tracking
        self.last_heartbeat: Optional[datetime] = None
        self.is_running: bool = False
        self.system_status: str = "INITIALIZING"
        self.monitor_thread: Optional[threading.Thread] = None
        self.system_metrics: Dict = {}
        self._stop_event = threading.Event()

    def beat(self):
        """Called after every completed watcher poll"""
        self.last_heartbeat = datetime.now()

    def start_monitoring(self):
        self.logger.info("Starting heartbeat monitor")
        self.is_running = True
        self.system_status = "RUNNING"
        self._stop_event.clear()

        self.monitor_thread = threading.Thread(
            target=self._monitor_loop,
            daemon=True,
            name='HeartbeatMonitor'
        )
        self.monitor_thread.start()

    def _monitor_loop(self):
        while self.is_running:
            try:
                self._update_system_metrics()
                self.check_health()
            except Exception as e:
                self.logger.error(f"Monitor loop error: {str(e)}")
                self.system_status = "ERROR"

            self._stop_event.wait(self.heartbeat_interval)

    def _update_system_metrics(self):
        try:
            self.system_metrics = {
                'timestamp': datetime.now(),
                'cpu_usage': psutil.cpu_percent(),
                'memory_usage': psutil.virtual_memory().percent,
                'system_status': self.system_status
            }
        except Exception as e:
            self.logger.error(f"Failed to update metrics: {str(e)}")

    def check_health(self) -> str:
        """Grade resource usage and the time since the last watcher poll"""
        status = "RUNNING"

        if self.system_metrics.get('cpu_usage', 0) > 80:
            self.logger.warning(f"High CPU usage: {self.system_metrics['cpu_usage']}%")
            status = "WARNING"

        if self.system_metrics.get('memory_usage', 0) > 80:
            self.logger.warning(f"High memory usage: {self.system_metrics['memory_usage']}%")
            status = "WARNING"

        if self.last_heartbeat:
            time_since_last = (datetime.now() - self.last_heartbeat).total_seconds()

            if time_since_last > self.critical_threshold:
                status = "CRITICAL"
                self.logger.critical(
                    f"CRITICAL: no completed pool poll for {time_since_last:.0f} seconds "
                    f"(cpu={self.system_metrics.get('cpu_usage')}%, "
                    f"memory={self.system_metrics.get('memory_usage')}%)"
                )
            elif time_since_last > self.warning_threshold:
                status = "WARNING"
                self.logger.warning(f"WARNING: pool watcher delayed for {time_since_last:.0f} seconds")

        self.system_status = status
        return status

    def get_status(self) -> Dict:
        return {
            'status': self.system_status,
            'last_heartbeat': self.last_heartbeat,
            'metrics': self.system_metrics
        }

    def stop_monitoring(self):
        self.logger.info("Stopping heartbeat monitor")
        self.is_running = False
        self._stop_event.set()
        if self.monitor_thread:
            self.monitor_thread.join(timeout=5.0)
