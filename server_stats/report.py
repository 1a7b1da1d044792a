"""Plain-text rendering of a collected report."""
from typing import Any, Dict, List, Optional

from .formatting import bytes_h, hr, process_row

UNKNOWN = 'unknown'


def _section(title: str, body: List[str], width: Optional[int]) -> List[str]:
    return [title, hr(width)] + body + ['']


def _or_unknown(value: Any) -> str:
    return UNKNOWN if value is None else str(value)


def render_os_info(info: Dict[str, Any], width: Optional[int] = None) -> List[str]:
    load = info.get('load_average')
    body = [
        f"OS:         {info.get('os') or UNKNOWN}",
        f"Kernel:     {info.get('kernel') or UNKNOWN}",
        f"Hostname:   {info.get('hostname') or UNKNOWN}",
        f"Uptime:     {_or_unknown(info.get('uptime'))}",
        f"Boot time:  {_or_unknown(info.get('boot_time'))}",
        f"Load avg:   {' '.join(f'{v:.2f}' for v in load) if load else UNKNOWN}",
    ]
    if info.get('logged_in_users') is not None:
        body.append(f"Logged-in users: {info['logged_in_users']}")
    return _section('OS / Host Information', body, width)


def render_cpu(utilization: float, width: Optional[int] = None) -> List[str]:
    return _section('CPU', [f"Total CPU usage: {utilization:.2f}%"], width)


def _usage_body(usage: Dict[str, Any]) -> List[str]:
    if usage.get('status') != 'ok':
        return [f"Unavailable: {usage.get('error', UNKNOWN)}"]
    return [
        f"Total:  {bytes_h(usage['total'])}",
        f"Used:   {bytes_h(usage['used'])} ({usage['percent']}%)",
        f"Free:   {bytes_h(usage['free'])}",
    ]


def render_memory(memory: Dict[str, Any], width: Optional[int] = None) -> List[str]:
    return _section('Memory', _usage_body(memory), width)


def render_disk(disk: Dict[str, Any], width: Optional[int] = None) -> List[str]:
    return _section('Disk', _usage_body(disk), width)


def _process_table(rows: List[Dict[str, Any]]) -> List[str]:
    lines = [process_row('PID', 'COMMAND', '%CPU', '%MEM')]
    for row in rows:
        lines.append(process_row(
            row['pid'], row['name'][:25], row['cpu_percent'], row['memory_percent']
        ))
    return lines


def render_top_processes(processes: Dict[str, Any], width: Optional[int] = None) -> List[str]:
    if processes.get('status') != 'ok':
        body = [f"Process listing unavailable: {processes.get('error', UNKNOWN)}"]
    else:
        count = max(len(processes['by_cpu']), len(processes['by_memory']))
        body = [f"Top {count} by CPU:"] + _process_table(processes['by_cpu'])
        body += ['', f"Top {count} by Memory:"] + _process_table(processes['by_memory'])
    return _section('Top Processes', body, width)


def render_auth(auth: Dict[str, Any], width: Optional[int] = None) -> List[str]:
    if auth.get('status') == 'ok':
        body = [
            f"Recent failed login attempts (last {auth['entries_parsed']} "
            f"entries parsed): {auth['failed']}"
        ]
    else:
        body = [f"Failed logins: {auth.get('reason', UNKNOWN)}"]
    return _section('Auth (optional)', body, width)


def render_report(data: Dict[str, Any], width: Optional[int] = None) -> str:
    """Full report text in the fixed section order"""
    lines = []
    lines += render_os_info(data['os_info'], width)
    lines += render_cpu(data['cpu_percent'], width)
    lines += render_memory(data['memory'], width)
    lines += render_disk(data['disk'], width)
    lines += render_top_processes(data['processes'], width)
    lines += render_auth(data['auth'], width)
    return '\n'.join(lines)
