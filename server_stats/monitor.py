import argparse
import logging
import platform
import shutil
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .collectors import HostReporter
from .config import (APP_DATA_DIR, ConfigError, default_config_path,
                     exclude_fstypes, load_config)
from .cpu import CpuSampler, detect_strategy
from .report import render_report


class ServerStatsMonitor:
    """One-shot host performance report"""

    def __init__(self, config_path: Optional[Path] = None,
                 log_level: Optional[str] = None,
                 app_data_dir: Path = APP_DATA_DIR):
        self.app_data_dir = app_data_dir
        self._setup_directories()
        self._load_config(config_path)
        self._setup_logging(log_level)
        self._validate_environment()
        self.system = platform.system().lower()
        self.shutdown_flag = False
        self.cancel_event = threading.Event()
        self._setup_signal_handlers()
        self.cpu_sampler = CpuSampler(detect_strategy(
            self.system,
            tool_timeout=self.config.getfloat('cpu', 'tool_timeout_seconds'),
            cancel_event=self.cancel_event
        ))
        self.reporter = HostReporter(
            system=self.system,
            top_processes=self.config.getint('general', 'top_processes'),
            process_sample_seconds=self.config.getfloat('general', 'process_sample_seconds'),
            excluded_fstypes=exclude_fstypes(self.config),
            failed_login_entries=self.config.getint('auth', 'failed_login_entries')
        )

    def _setup_directories(self) -> None:
        """Ensure the data and log directories exist"""
        try:
            self.log_dir = self.app_data_dir / 'logs'
            for directory in [self.app_data_dir, self.log_dir]:
                directory.mkdir(exist_ok=True, parents=True)
        except Exception as e:
            print(f"CRITICAL: Failed to create directories: {e}", file=sys.stderr)
            sys.exit(1)

    def _load_config(self, config_path: Optional[Path]) -> None:
        """Load or create configuration"""
        self.config_path = config_path or default_config_path(self.app_data_dir)
        try:
            self.config = load_config(self.config_path)
            # Fail early on values that will not convert
            self.config.getint('general', 'top_processes')
            self.config.getfloat('general', 'process_sample_seconds')
            self.config.getfloat('cpu', 'tool_timeout_seconds')
            self.config.getint('auth', 'failed_login_entries')
        except (ConfigError, ValueError) as e:
            print(f"CRITICAL: Config error: {e}", file=sys.stderr)
            sys.exit(1)

    def _setup_logging(self, log_level: Optional[str]) -> None:
        """Configure logging system"""
        try:
            level = (log_level or self.config['logging']['level']).upper()
            max_bytes = int(float(self.config['logging']['max_size_mb']) * 1024 * 1024)
            backup_count = int(self.config['logging']['backup_count'])
            log_file = self.log_dir / 'server_stats.log'

            logging.basicConfig(
                level=level,
                format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                handlers=[
                    RotatingFileHandler(log_file, maxBytes=max_bytes,
                                        backupCount=backup_count),
                    logging.StreamHandler(sys.stderr)
                ]
            )
            self.logger = logging.getLogger('ServerStats')
            self.logger.debug("Logging system initialized")
        except Exception as e:
            print(f"CRITICAL: Failed to setup logging: {e}", file=sys.stderr)
            sys.exit(1)

    def _validate_environment(self) -> None:
        """Check the interpreter and note missing optional tools"""
        if sys.version_info < (3, 8):
            self.logger.critical("Python 3.8 or higher required")
            sys.exit(1)

        missing = self._missing_tools(platform.system().lower())
        if missing:
            self.logger.info(f"Optional tools not found: {', '.join(missing)}")
        self.logger.debug("Environment validation passed")

    @staticmethod
    def _missing_tools(system: str) -> List[str]:
        if system == 'linux':
            optional = ['lastb']
        elif system in ('darwin', 'freebsd'):
            optional = ['top']
        else:
            optional = []
        return [cmd for cmd in optional if shutil.which(cmd) is None]

    def _setup_signal_handlers(self) -> None:
        """Interrupts end the CPU window early and discard the report"""
        if threading.current_thread() is not threading.main_thread():
            return
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

    def _handle_shutdown(self, signum, frame) -> None:
        self.logger.info(f"Received shutdown signal {signum}")
        self.shutdown_flag = True
        self.cancel_event.set()

    def collect_data(self) -> Dict[str, Any]:
        """Collect every report section"""
        return {
            'os_info': self.reporter.collect_os_info(),
            'cpu_percent': self.cpu_sampler.sample(),
            'memory': self.reporter.collect_memory(),
            'disk': self.reporter.collect_disk(),
            'processes': self.reporter.collect_top_processes(),
            'auth': self.reporter.collect_failed_logins()
        }

    def run(self) -> Optional[str]:
        """Report text, or None when interrupted while collecting"""
        self.logger.debug(f"Collecting report with {self.cpu_sampler.strategy.name} CPU sampling")
        data = self.collect_data()
        if self.shutdown_flag:
            self.logger.warning("Interrupted during collection; report discarded")
            return None
        return render_report(data)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='server-stats',
        description='Print a snapshot of this host\'s performance.'
    )
    parser.add_argument('--config', type=Path, default=None,
                        help='path to config.ini (default: ~/.serverstats/config/config.ini)')
    parser.add_argument('--log-level', default=None,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        type=str.upper, help='override [logging] level')
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {__version__}')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    monitor = ServerStatsMonitor(config_path=args.config, log_level=args.log_level)
    report = monitor.run()
    if report is None:
        return 130
    print(report)
    return 0
