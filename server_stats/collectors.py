import logging
import platform
import re
import shutil
import subprocess
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import psutil

from .formatting import format_uptime, pct

DEFAULT_EXCLUDED_FSTYPES = {'tmpfs', 'devtmpfs', 'squashfs'}
_LASTB_ENTRY = re.compile(r'^[a-zA-Z0-9_.-]+')


class HostReporter:
    """Collects the non-CPU report sections with per-section error handling"""

    def __init__(self, system: Optional[str] = None,
                 top_processes: int = 5,
                 process_sample_seconds: float = 0.5,
                 excluded_fstypes: Optional[Iterable[str]] = None,
                 failed_login_entries: int = 100):
        self.system = (system or platform.system()).lower()
        self.top_processes = top_processes
        self.process_sample_seconds = process_sample_seconds
        self.excluded_fstypes = set(
            DEFAULT_EXCLUDED_FSTYPES if excluded_fstypes is None else excluded_fstypes
        )
        self.failed_login_entries = failed_login_entries
        self.logger = logging.getLogger('ServerStats.collectors')

    def collect_os_info(self) -> Dict[str, Any]:
        """OS identity, uptime, load and logged-in sessions"""
        result = {
            'os': self._os_name(),
            'kernel': platform.release(),
            'hostname': platform.node(),
            'uptime': None,
            'boot_time': None,
            'load_average': None,
            'logged_in_users': None
        }

        try:
            boot = psutil.boot_time()
            result['uptime'] = format_uptime(time.time() - boot)
            result['boot_time'] = datetime.fromtimestamp(boot).strftime('%Y-%m-%d %H:%M:%S')
        except Exception as e:
            self.logger.warning(f"Boot time lookup failed: {e}")

        try:
            result['load_average'] = tuple(round(v, 2) for v in psutil.getloadavg())
        except Exception as e:
            self.logger.warning(f"Load average lookup failed: {e}")

        try:
            result['logged_in_users'] = len(psutil.users())
        except Exception as e:
            self.logger.warning(f"Logged-in users lookup failed: {e}")

        return result

    def _os_name(self) -> str:
        if self.system == 'linux':
            return self._linux_os_name()
        elif self.system == 'darwin':
            return self._macos_os_name()
        return platform.system() or 'unknown'

    def _linux_os_name(self) -> str:
        """PRETTY_NAME from /etc/os-release"""
        try:
            with open('/etc/os-release') as f:
                for line in f:
                    if line.startswith('PRETTY_NAME='):
                        name = line.split('=', 1)[1].strip().strip('"').strip("'")
                        if name:
                            return name
        except OSError as e:
            self.logger.debug(f"os-release unavailable: {e}")
        return 'Linux'

    def _macos_os_name(self) -> str:
        version = platform.mac_ver()[0]
        return f"macOS {version}" if version else 'macOS'

    def collect_memory(self) -> Dict[str, Any]:
        """Total/used/free memory, counting reclaimable memory as free"""
        result = {
            'status': 'unknown',
            'total': None,
            'used': None,
            'free': None,
            'percent': None
        }

        try:
            mem = psutil.virtual_memory()
            used = mem.total - mem.available
            result.update({
                'status': 'ok',
                'total': mem.total,
                'used': used,
                'free': mem.available,
                'percent': pct(used, mem.total)
            })
        except Exception as e:
            self.logger.warning(f"Memory check failed: {e}")
            result['error'] = str(e)

        return result

    def collect_disk(self) -> Dict[str, Any]:
        """Aggregate usage across real filesystems"""
        result = {
            'status': 'unknown',
            'total': 0,
            'used': 0,
            'free': 0,
            'percent': '0.00',
            'filesystems': []
        }

        try:
            seen_devices = set()
            for part in psutil.disk_partitions(all=False):
                if part.fstype.lower() in self.excluded_fstypes:
                    continue
                if part.device in seen_devices:
                    continue
                try:
                    usage = psutil.disk_usage(part.mountpoint)
                except OSError as e:
                    self.logger.warning(f"Failed to check volume {part.mountpoint}: {e}")
                    continue

                seen_devices.add(part.device)
                result['total'] += usage.total
                result['used'] += usage.used
                result['free'] += usage.free
                result['filesystems'].append(part.mountpoint)

            result['percent'] = pct(result['used'], result['total'])
            result['status'] = 'ok'
        except Exception as e:
            self.logger.warning(f"Disk check failed: {e}")
            result['error'] = str(e)

        return result

    def collect_top_processes(self) -> Dict[str, Any]:
        """Top processes by CPU and by memory over a short sampling window"""
        result = {
            'status': 'unknown',
            'by_cpu': [],
            'by_memory': []
        }

        try:
            processes = self._sample_processes()
            result['by_cpu'] = sorted(
                processes, key=lambda p: p['cpu_percent'], reverse=True
            )[:self.top_processes]
            result['by_memory'] = sorted(
                processes, key=lambda p: p['memory_percent'], reverse=True
            )[:self.top_processes]
            result['status'] = 'ok'
        except Exception as e:
            self.logger.warning(f"Process listing failed: {e}")
            result['error'] = str(e)

        return result

    def _sample_processes(self) -> List[Dict[str, Any]]:
        # cpu_percent() needs a first call to establish a baseline
        procs = []
        for proc in psutil.process_iter(['pid', 'name']):
            try:
                proc.cpu_percent(None)
                procs.append(proc)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        time.sleep(self.process_sample_seconds)

        rows = []
        for proc in procs:
            try:
                rows.append({
                    'pid': proc.info['pid'],
                    'name': proc.info['name'] or '?',
                    'cpu_percent': round(proc.cpu_percent(None), 1),
                    'memory_percent': round(proc.memory_percent(), 1)
                })
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return rows

    def collect_failed_logins(self) -> Dict[str, Any]:
        """Count recent failed login attempts recorded by lastb"""
        result = {
            'status': 'unavailable',
            'entries_parsed': self.failed_login_entries,
            'failed': None
        }

        if not shutil.which('lastb'):
            result['reason'] = 'lastb not available'
            return result

        try:
            lastb = subprocess.run(
                ['lastb', '-n', str(self.failed_login_entries)],
                capture_output=True, text=True
            )

            if lastb.returncode == 0:
                result['failed'] = count_failed_logins(lastb.stdout)
                result['status'] = 'ok'
            else:
                # btmp is usually root-only
                result['reason'] = lastb.stderr.strip() or f"lastb exited with status {lastb.returncode}"
        except Exception as e:
            self.logger.warning(f"Failed login check failed: {e}")
            result['reason'] = str(e)

        return result


def count_failed_logins(output: str) -> int:
    """Number of entry lines in lastb output"""
    return sum(
        1 for line in output.splitlines()
        if _LASTB_ENTRY.match(line) and not line.startswith('btmp begins')
    )
