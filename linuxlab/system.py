#!/usr/bin/env python3
"""
Simulated system - Process table and systemd-style service manager
backing ps, top, kill, free, uptime and systemctl
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from linuxlab.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

UPTIME_SECONDS = 86400
LOAD_AVERAGE = '0.15, 0.10, 0.08'
FIRST_DYNAMIC_PID = 2200
SHELL_PID = 1500

# Linux numbering, SIGHUP is 1
SIGNALS = [
    'HUP', 'INT', 'QUIT', 'ILL', 'TRAP', 'ABRT', 'BUS', 'FPE', 'KILL', 'USR1',
    'SEGV', 'USR2', 'PIPE', 'ALRM', 'TERM', 'STKFLT', 'CHLD', 'CONT', 'STOP', 'TSTP',
]
SIGNAL_NUMBERS = {name: num for num, name in enumerate(SIGNALS, 1)}

# kB, as in /proc/meminfo
MEM_TOTAL = 4045572
MEM_FREE = 1523456
MEM_SHARED = 12340
MEM_BUFF_CACHE = 1323900
MEM_AVAILABLE = 2845312
SWAP_TOTAL = 2097148

Clock = Callable[[], float]


@dataclass
class Process:
    """Entry in the simulated process table"""
    pid: int
    user: str
    command: str
    cpu: float = 0.0
    mem: float = 0.1
    ppid: int = 1
    tty: str = '?'

    @property
    def name(self) -> str:
        """Short command name as shown by top and plain ps"""
        head = self.command.split(' ')[0].rstrip(':')
        return head.rsplit('/', 1)[-1]


@dataclass
class Service:
    """A systemd unit"""
    name: str
    description: str
    enabled: bool
    # (user, command) for the main process followed by its children
    commands: List[Tuple[str, str]] = field(default_factory=list)
    active: bool = False
    failed: bool = False
    since: float = 0.0
    pids: List[int] = field(default_factory=list)

    @property
    def unit(self) -> str:
        return f"{self.name}.service"

    @property
    def main_pid(self) -> Optional[int]:
        return self.pids[0] if self.pids else None

    @property
    def active_state(self) -> str:
        if self.failed:
            return 'failed'
        return 'active' if self.active else 'inactive'

    @property
    def sub_state(self) -> str:
        if self.failed:
            return 'failed'
        if not self.active:
            return 'dead'
        return 'running' if self.commands else 'exited'


def format_duration(seconds: float) -> str:
    """Uptime as printed by uptime(1): ``1 day,  2:05`` or ``5 min``"""
    seconds = int(seconds)
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    parts = []
    if days:
        parts.append(f"{days} day{'s' if days != 1 else ''}")
    if hours:
        parts.append(f"{hours:>2}:{minutes:02d}")
    else:
        parts.append(f"{minutes} min")
    return ',  '.join(parts)


def _human_kib(kib: int) -> str:
    if kib >= 1024 * 1024:
        return f"{kib / (1024 * 1024):.1f}Gi"
    if kib >= 1024:
        return f"{kib / 1024:.0f}Mi"
    return f"{kib}Ki" if kib else '0B'


class ProcessTable:
    """Running processes of the lab host"""

    def __init__(self, rng: Optional[random.Random] = None, clock: Optional[Clock] = None):
        self.rng = rng or random.Random()
        self.clock = clock or time.time
        self.boot_time = self.clock() - UPTIME_SECONDS
        self._next_pid = FIRST_DYNAMIC_PID
        self.processes: Dict[int, Process] = {}
        for proc in (
            Process(1, 'root', '/sbin/init', mem=0.3, ppid=0),
            Process(234, 'root', '/usr/lib/systemd/systemd-journald'),
            Process(456, 'root', '/usr/sbin/sshd -D', mem=0.2),
            Process(789, 'root', 'nginx: master process /usr/sbin/nginx', cpu=0.1, mem=0.4),
            Process(790, 'nginx', 'nginx: worker process', mem=0.2, ppid=789),
            Process(791, 'nginx', 'nginx: worker process', mem=0.2, ppid=789),
            Process(1001, 'root', '/usr/sbin/cron -f'),
            Process(SHELL_PID, 'clouduser', '-bash', ppid=456, tty='pts/0'),
            Process(2000, 'root', '/usr/bin/google_guest_agent', cpu=0.2, mem=1.5),
            Process(2100, 'root', '/usr/bin/google_osconfig_agent', mem=0.3),
        ):
            self.processes[proc.pid] = proc

    def list(self) -> List[Process]:
        return [self.processes[pid] for pid in sorted(self.processes)]

    def get(self, pid: int) -> Optional[Process]:
        return self.processes.get(pid)

    def spawn(self, user: str, command: str, ppid: int = 1, pid: Optional[int] = None) -> Process:
        """Start a process, using ``pid`` when it is free"""
        if pid is None or pid in self.processes:
            pid = self._next_pid
            self._next_pid += 1
        proc = Process(pid, user, command, mem=round(self.rng.uniform(0.1, 0.6), 1), ppid=ppid)
        self.processes[pid] = proc
        return proc

    def remove(self, pid: int) -> Optional[Process]:
        return self.processes.pop(pid, None)

    def uptime_line(self) -> str:
        now = self.clock()
        clock_time = time.strftime('%H:%M:%S', time.gmtime(now))
        return (f" {clock_time} up {format_duration(now - self.boot_time)},  1 user,  "
                f"load average: {LOAD_AVERAGE}")

    def render_ps(self, style: str = 'default', user: Optional[str] = None) -> str:
        """Render ps output; ``style`` is ``'aux'``, ``'ef'`` or ``'default'``"""
        start = time.strftime('%b%d', time.gmtime(self.boot_time))
        if style == 'aux':
            lines = ['USER         PID %CPU %MEM    VSZ   RSS TTY      STAT START   TIME COMMAND']
            for p in self.list():
                vsz = self.rng.randint(5000, 500000)
                rss = self.rng.randint(1000, 50000)
                stat = 'Ss' if p.pid in (1, SHELL_PID) or p.ppid == 1 else 'S'
                lines.append(f"{p.user:<8} {p.pid:>6} {p.cpu:>4.1f} {p.mem:>4.1f} {vsz:>6} {rss:>5} "
                             f"{p.tty:<8} {stat:<4} {start:>5}   0:0{self.rng.randint(0, 9)} {p.command}")
            return '\n'.join(lines)
        if style == 'ef':
            lines = ['UID          PID    PPID  C STIME TTY          TIME CMD']
            for p in self.list():
                lines.append(f"{p.user:<8} {p.pid:>7} {p.ppid:>7}  0 {start:>5} {p.tty:<8}     "
                             f"00:00:0{self.rng.randint(0, 9)} {p.command}")
            return '\n'.join(lines)

        lines = ['    PID TTY          TIME CMD']
        for p in self.list():
            if user is None or p.user == user:
                lines.append(f"{p.pid:>7} {'pts/0':<8} 00:00:0{self.rng.randint(0, 9)} {p.name}")
        return '\n'.join(lines)

    def render_top(self) -> str:
        procs = self.list()
        lines = [
            f"top -{self.uptime_line()}",
            f"Tasks: {len(procs):>3} total,   1 running, {len(procs) - 1:>3} sleeping,   "
            f"0 stopped,   0 zombie",
            '%Cpu(s):  0.5 us,  0.2 sy,  0.0 ni, 99.2 id,  0.0 wa,  0.0 hi,  0.1 si,  0.0 st',
            f"MiB Mem : {MEM_TOTAL / 1024:>8.1f} total, {MEM_FREE / 1024:>8.1f} free, "
            f"{(MEM_TOTAL - MEM_FREE - MEM_BUFF_CACHE) / 1024:>8.1f} used, "
            f"{MEM_BUFF_CACHE / 1024:>8.1f} buff/cache",
            f"MiB Swap: {SWAP_TOTAL / 1024:>8.1f} total, {SWAP_TOTAL / 1024:>8.1f} free, "
            f"{0:>8.1f} used. {MEM_AVAILABLE / 1024:>8.1f} avail Mem",
            '',
            '    PID USER      PR  NI    VIRT    RES    SHR S  %CPU  %MEM     TIME+ COMMAND',
        ]
        for p in procs:
            virt = self.rng.randint(5000, 500000)
            res = self.rng.randint(1000, 50000)
            shr = self.rng.randint(500, 20000)
            cpu_time = f"0:0{self.rng.randint(0, 9)}.{self.rng.randint(0, 99):02d}"
            lines.append(f"{p.pid:>7} {p.user:<9} 20   0 {virt:>7} {res:>6} {shr:>6} S "
                         f"{p.cpu:>5.1f} {p.mem:>5.1f} {cpu_time:>9} {p.name}")
        return '\n'.join(lines)


def render_free(unit: str = 'k') -> str:
    """free(1) table; ``unit`` is ``'k'``, ``'m'`` or ``'h'``"""
    used = MEM_TOTAL - MEM_FREE - MEM_BUFF_CACHE
    mem = [MEM_TOTAL, used, MEM_FREE, MEM_SHARED, MEM_BUFF_CACHE, MEM_AVAILABLE]
    swap = [SWAP_TOTAL, 0, SWAP_TOTAL]
    if unit == 'h':
        fmt = _human_kib
    elif unit == 'm':
        def fmt(kib: int) -> str:
            return str(kib // 1024)
    else:
        fmt = str
    header = '               total        used        free      shared  buff/cache   available'
    mem_row = 'Mem:   ' + ''.join(f"{fmt(v):>12}" for v in mem)
    swap_row = 'Swap:  ' + ''.join(f"{fmt(v):>12}" for v in swap)
    return '\n'.join([header, mem_row, swap_row])


class ServiceManager:
    """systemd stand-in driving the process table"""

    def __init__(self, processes: ProcessTable, clock: Optional[Clock] = None,
                 hostname: str = 'gcp-lab'):
        self.processes = processes
        self.clock = clock or time.time
        self.hostname = hostname
        self.journal: List[str] = []
        boot = processes.boot_time
        self.services: Dict[str, Service] = {}
        for service in (
            Service('nginx', 'A high performance web server and a reverse proxy server', True,
                    [('root', 'nginx: master process /usr/sbin/nginx'),
                     ('nginx', 'nginx: worker process'), ('nginx', 'nginx: worker process')],
                    active=True, since=boot, pids=[789, 790, 791]),
            Service('sshd', 'OpenBSD Secure Shell server', True,
                    [('root', '/usr/sbin/sshd -D')], active=True, since=boot, pids=[456]),
            Service('cron', 'Regular background program processing daemon', True,
                    [('root', '/usr/sbin/cron -f')], active=True, since=boot, pids=[1001]),
            Service('docker', 'Docker Application Container Engine', False,
                    [('root', '/usr/bin/dockerd -H fd:// --containerd=/run/containerd/containerd.sock')]),
            Service('google-guest-agent', 'Google Compute Engine Guest Agent', True,
                    [('root', '/usr/bin/google_guest_agent')], active=True, since=boot, pids=[2000]),
            Service('ufw', 'Uncomplicated firewall', False),
            Service('mysql', 'MySQL Community Server', False, [('mysql', '/usr/sbin/mysqld')]),
        ):
            self.services[service.name] = service

    def _log(self, message: str) -> None:
        """Record a systemd line in the journal, syslog layout"""
        stamp = time.strftime('%b %d %H:%M:%S', time.gmtime(self.clock()))
        self.journal.append(f"{stamp} {self.hostname} systemd[1]: {message}")

    def get(self, name: str) -> Optional[Service]:
        return self.services.get(name[:-len('.service')] if name.endswith('.service') else name)

    def _lookup(self, name: str, verb: str) -> Result:
        service = self.get(name)
        if service is None:
            unit = name if name.endswith('.service') else f"{name}.service"
            return Err(ErrorKind.NOT_FOUND, f"Failed to {verb} {unit}: Unit {unit} not found.")
        return Ok(service)

    def start(self, name: str) -> Result:
        found = self._lookup(name, 'start')
        if not found.ok:
            return found
        service = found.value
        if service.active:
            return Ok(service)
        service.pids = []
        for user, command in service.commands:
            parent = service.pids[0] if service.pids else 1
            service.pids.append(self.processes.spawn(user, command, ppid=parent).pid)
        service.active = True
        service.failed = False
        service.since = self.clock()
        self._log(f"Started {service.unit} - {service.description}.")
        logger.debug(f"Started {service.unit}")
        return Ok(service)

    def stop(self, name: str) -> Result:
        found = self._lookup(name, 'stop')
        if not found.ok:
            return found
        service = found.value
        for pid in service.pids:
            self.processes.remove(pid)
        service.pids = []
        service.active = False
        service.failed = False
        service.since = self.clock()
        self._log(f"Stopped {service.unit} - {service.description}.")
        logger.debug(f"Stopped {service.unit}")
        return Ok(service)

    def restart(self, name: str) -> Result:
        found = self._lookup(name, 'restart')
        if not found.ok:
            return found
        self.stop(name)
        return self.start(name)

    def process_killed(self, pid: int) -> None:
        """Mark a service failed when its main process dies"""
        for service in self.services.values():
            if pid not in service.pids:
                continue
            if pid == service.main_pid:
                for child in service.pids[1:]:
                    self.processes.remove(child)
                service.pids = []
                service.active = False
                service.failed = True
                service.since = self.clock()
                self._log(f"{service.unit}: Main process exited, code=killed, status=9/KILL")
                self._log(f"{service.unit}: Failed with result 'signal'.")
                logger.debug(f"{service.unit} main process killed")
            else:
                service.pids.remove(pid)
            return

    def kill(self, pid: int, signal: str = 'TERM') -> Result:
        """Deliver a signal; only SIGKILL removes the process"""
        if self.processes.get(pid) is None:
            return Err(ErrorKind.NOT_FOUND, f"({pid}) - No such process")
        if signal in ('9', 'KILL', 'SIGKILL'):
            self.processes.remove(pid)
            self.process_killed(pid)
        return Ok()

    # ------------------------------------------------------------------
    # Renderers

    def _since(self, service: Service) -> str:
        stamp = time.strftime('%a %Y-%m-%d %H:%M:%S UTC', time.gmtime(service.since))
        ago = format_duration(self.clock() - service.since).replace(',  ', ' ')
        return f"since {stamp}; {ago} ago"

    def status(self, service: Service) -> str:
        enabled = 'enabled' if service.enabled else 'disabled'
        dot = '×' if service.failed else '●'
        lines = [
            f"{dot} {service.unit} - {service.description}",
            f"     Loaded: loaded (/lib/systemd/system/{service.unit}; {enabled}; "
            f"vendor preset: enabled)",
        ]
        if service.failed:
            lines.append(f"     Active: failed (Result: signal) {self._since(service)}")
        elif service.active:
            lines.append(f"     Active: {service.active_state} ({service.sub_state}) "
                         f"{self._since(service)}")
        else:
            lines.append('     Active: inactive (dead)')

        if service.active and service.pids:
            main = self.processes.get(service.pids[0])
            lines.append(f"   Main PID: {service.pids[0]} ({main.name if main else service.name})")
            lines.append(f"      Tasks: {len(service.pids)} (limit: 4915)")
            lines.append(f"     Memory: {self.processes.rng.uniform(2, 50):.1f}M")
            lines.append(f"        CPU: {self.processes.rng.uniform(0, 2):.3f}s")
            lines.append(f"     CGroup: /system.slice/{service.unit}")
            for i, pid in enumerate(service.pids):
                proc = self.processes.get(pid)
                branch = '└─' if i == len(service.pids) - 1 else '├─'
                lines.append(f"             {branch}{pid} \"{proc.command if proc else service.name}\"")
        return '\n'.join(lines)

    def list_units(self, show_all: bool = False) -> str:
        rows = [s for s in self.services.values() if show_all or s.active or s.failed]
        width = max(len(s.unit) for s in self.services.values()) + 2
        lines = [f"  {'UNIT':<{width}}LOAD   ACTIVE   SUB     DESCRIPTION"]
        for s in rows:
            marker = '●' if s.failed else ' '
            lines.append(f"{marker} {s.unit:<{width}}loaded {s.active_state:<8} {s.sub_state:<7} "
                         f"{s.description}")
        lines.extend([
            '',
            'LOAD   = Reflects whether the unit definition was properly loaded.',
            'ACTIVE = The high-level unit activation state, i.e. generalization of SUB.',
            'SUB    = The low-level unit activation state, values depend on unit type.',
            '',
            f"{len(rows)} loaded units listed.",
        ])
        return '\n'.join(lines)

    def systemctl(self, args: List[str]) -> str:
        """Run a systemctl command line"""
        flags = [a for a in args if a.startswith('-')]
        words = [a for a in args if not a.startswith('-')]
        if not words or words[0] in ('list-units', 'list-unit-files'):
            show_all = '--all' in flags or '-a' in flags
            return self.list_units(show_all or (bool(words) and words[0] == 'list-unit-files'))

        action, names = words[0], words[1:]
        if action not in ('start', 'stop', 'restart', 'reload', 'status', 'enable', 'disable',
                          'is-active', 'is-enabled'):
            return f'Unknown command verb {action}.'
        if not names:
            return 'Too few arguments.'

        output = []
        for name in names:
            if action in ('start', 'stop', 'restart'):
                result = getattr(self, action)(name)
                if not result.ok:
                    output.append(result.message)
                continue

            service = self.get(name)
            unit = name if name.endswith('.service') else f"{name}.service"
            if action == 'status':
                output.append(self.status(service) if service
                              else f"Unit {unit} could not be found.")
            elif action == 'is-active':
                output.append(service.active_state if service else 'inactive')
            elif action == 'is-enabled':
                if service is None:
                    output.append(f"Failed to get unit file state for {unit}: "
                                  f"No such file or directory")
                else:
                    output.append('enabled' if service.enabled else 'disabled')
            elif service is None:
                output.append(f"Failed to {action} unit: Unit file {unit} does not exist.")
            elif action == 'reload':
                if not service.active:
                    output.append(f"Failed to reload {unit}: Unit {unit} is not active.")
            elif action == 'enable':
                if not service.enabled:
                    service.enabled = True
                    output.append(f"Created symlink /etc/systemd/system/multi-user.target.wants/"
                                  f"{service.unit} → /lib/systemd/system/{service.unit}.")
                if '--now' in flags:
                    self.start(service.name)
            elif action == 'disable':
                if service.enabled:
                    service.enabled = False
                    output.append(f"Removed /etc/systemd/system/multi-user.target.wants/"
                                  f"{service.unit}.")
                if '--now' in flags:
                    self.stop(service.name)
        return '\n'.join(output)

    def service(self, args: List[str]) -> str:
        """SysV ``service NAME ACTION`` front end"""
        if args and args[0] == '--status-all':
            return '\n'.join(f" [ {'+' if s.active else '-'} ]  {s.name}"
                             for s in sorted(self.services.values(), key=lambda s: s.name))
        if len(args) < 2:
            return 'Usage: service < option > | --status-all | [ service_name [ command | --full-restart ] ]'
        return self.systemctl([args[1], args[0]])
