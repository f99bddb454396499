#!/usr/bin/env python3
"""
Virtual Network - Hosts, DNS, routing, firewall and sockets of the lab
host, plus renderers for the usual diagnostic tools
"""

import ipaddress
import json
import logging
import math
import random
import time
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from linuxlab.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

REACHABILITY_PROBABILITY = 0.9

PRIVATE_PREFIX = '10.128.'
ALWAYS_REACHABLE_PREFIXES = ('142.', '93.', '8.8.')
GATEWAY = '10.128.0.1'
IPTABLES_VERSION = 'iptables v1.8.7 (nf_tables)'
SERVER_BANNER = 'nginx/1.18.0'

CHAINS = ('INPUT', 'FORWARD', 'OUTPUT')
TARGETS = ('ACCEPT', 'DROP', 'REJECT', 'LOG', 'RETURN')
TERMINAL_TARGETS = ('ACCEPT', 'DROP', 'REJECT')

SERVICE_PORTS = {
    'ssh': 22, 'smtp': 25, 'domain': 53, 'http': 80, 'https': 443,
    'mysql': 3306, 'postgresql': 5432, 'http-alt': 8080,
}
PORT_SERVICES = {port: name for name, port in SERVICE_PORTS.items()}

DNS_TYPE_LABELS = {
    'MX': 'mail exchanger',
    'NS': 'nameserver',
    'TXT': 'text',
    'CNAME': 'canonical name',
}
HOST_TYPE_LABELS = {
    'A': 'has address',
    'AAAA': 'has IPv6 address',
    'MX': 'mail is handled by',
    'NS': 'name server',
    'TXT': 'descriptive text',
    'CNAME': 'is an alias for',
}

Clock = Callable[[], float]
SetupHook = Callable[['VirtualNetwork'], None]


@dataclass
class Interface:
    """A network interface of the lab host"""
    name: str
    ip: str
    prefix: int
    mac: str
    mtu: int
    state: str = 'UP'
    rx_packets: int = 0
    rx_bytes: int = 0
    tx_packets: int = 0
    tx_bytes: int = 0

    @property
    def is_loopback(self) -> bool:
        return self.name == 'lo'

    @property
    def netmask(self) -> str:
        return str(ipaddress.IPv4Network(f"0.0.0.0/{self.prefix}").netmask)

    @property
    def broadcast(self) -> str:
        return str(ipaddress.IPv4Interface(f"{self.ip}/{self.prefix}").network.broadcast_address)


@dataclass
class Host:
    """A machine on the simulated network"""
    ip: str
    ports: List[int]
    os: str = 'Ubuntu 22.04'


@dataclass
class Route:
    destination: str
    gateway: str
    iface: str
    metric: int = 0

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(self.destination)


@dataclass
class FirewallRule:
    """One iptables rule"""
    target: str
    protocol: str = 'all'
    source: str = '0.0.0.0/0'
    destination: str = '0.0.0.0/0'
    dport: Optional[int] = None
    state: str = ''

    @property
    def is_catch_all(self) -> bool:
        """True for a rule matching every new packet"""
        return (self.protocol == 'all' and self.source == '0.0.0.0/0'
                and self.destination == '0.0.0.0/0' and self.dport is None
                and not self.state)

    def matches(self, protocol: str, address: str, port: Optional[int], outbound: bool) -> bool:
        """Match a new connection; conntrack state rules never do"""
        if self.state:
            return False
        if self.protocol not in ('all', protocol):
            return False
        if self.dport is not None and self.dport != port:
            return False
        network = self.destination if outbound else self.source
        return ipaddress.ip_address(address) in ipaddress.ip_network(network, strict=False)


@dataclass
class Socket:
    proto: str
    local: str
    foreign: str
    state: str
    pid: int
    program: str


@dataclass
class ArpEntry:
    ip: str
    mac: str
    iface: str
    state: str


@dataclass
class HttpResponse:
    """Canned HTTP reply"""
    status: int
    reason: str
    body: str
    headers: Dict[str, str] = field(default_factory=dict)


def _content_type(body: str) -> str:
    if body.startswith('{'):
        return 'application/json'
    if body.startswith('<'):
        return 'text/html'
    return 'text/plain'


def _display_address(network: str, numeric: bool) -> str:
    """Render a rule address the way iptables -L does"""
    if network == '0.0.0.0/0':
        return network if numeric else 'anywhere'
    if network.endswith('/32'):
        return network[:-3]
    return network


def default_filename(path: str) -> str:
    """File name wget and curl -O save a URL path under"""
    name = path.rstrip('/').rpartition('/')[2] if path.strip('/') else ''
    return name or 'index.html'


class VirtualNetwork:
    """Network state of the lab host.

    Renderers are read-only except ``iptables``; all randomness comes
    from the injected ``rng`` so output is reproducible under a seed.
    """

    def __init__(self, rng: Optional[random.Random] = None, clock: Optional[Clock] = None):
        self.rng = rng or random.Random()
        self.clock = clock or time.time
        self.hostname = 'gcp-lab'
        self.gateway = GATEWAY
        self.dns_servers = ['8.8.8.8', '8.8.4.4']

        self.interfaces: Dict[str, Interface] = {
            'lo': Interface('lo', '127.0.0.1', 8, '00:00:00:00:00:00', 65536,
                            rx_packets=1204, rx_bytes=98312, tx_packets=1204, tx_bytes=98312),
            'eth0': Interface('eth0', '10.128.0.2', 16, '42:01:0a:80:00:02', 1460,
                              rx_packets=84512, rx_bytes=61234567,
                              tx_packets=50231, tx_bytes=9123456),
        }

        self.hosts: Dict[str, Host] = {
            'web-server': Host('10.128.0.2', [22, 80, 443]),
            'db-server': Host('10.128.0.3', [22, 3306, 5432]),
            'app-server': Host('10.128.0.4', [22, 8080, 8443]),
            'load-balancer': Host('10.128.0.10', [80, 443], 'GCP LB'),
            'bastion': Host('10.128.0.20', [22]),
            'monitoring': Host('10.128.0.30', [22, 9090, 3000]),
            'gcp-lab': Host('10.128.0.2', [22, 80]),
            'localhost': Host('127.0.0.1', [22, 80]),
        }

        self.dns_records: Dict[str, Dict[str, str]] = {
            'example.com': {'A': '93.184.216.34', 'MX': '10 mail.example.com',
                            'NS': 'ns1.example.com', 'TXT': 'v=spf1 include:_spf.google.com ~all'},
            'google.com': {'A': '142.250.80.46', 'MX': '10 smtp.google.com',
                           'NS': 'ns1.google.com', 'AAAA': '2607:f8b0:4004:800::200e'},
            'cloud.google.com': {'A': '142.250.80.78', 'CNAME': 'www3.l.google.com'},
            'web-server': {'A': '10.128.0.2'},
            'db-server': {'A': '10.128.0.3'},
            'app-server': {'A': '10.128.0.4'},
            'load-balancer': {'A': '10.128.0.10'},
            'bastion': {'A': '10.128.0.20'},
            'monitoring': {'A': '10.128.0.30'},
            'metadata.google.internal': {'A': '169.254.169.254'},
            'my-project.internal': {'A': '10.128.0.2'},
        }

        self.routes: List[Route] = [
            Route('0.0.0.0/0', GATEWAY, 'eth0', 100),
            Route('10.128.0.0/16', '0.0.0.0', 'eth0', 0),
            Route('127.0.0.0/8', '0.0.0.0', 'lo', 0),
            Route('169.254.169.254/32', GATEWAY, 'eth0', 0),
        ]

        self.chains: Dict[str, List[FirewallRule]] = {
            'INPUT': [
                FirewallRule('ACCEPT', state='RELATED,ESTABLISHED'),
                FirewallRule('ACCEPT', 'tcp', dport=22),
                FirewallRule('ACCEPT', 'tcp', dport=80),
                FirewallRule('ACCEPT', 'icmp'),
                FirewallRule('DROP'),
            ],
            'FORWARD': [FirewallRule('DROP')],
            'OUTPUT': [FirewallRule('ACCEPT')],
        }
        self.policies: Dict[str, str] = {chain: 'ACCEPT' for chain in CHAINS}

        self.sockets: List[Socket] = [
            Socket('tcp', '0.0.0.0:22', '0.0.0.0:*', 'LISTEN', 456, 'sshd'),
            Socket('tcp', '0.0.0.0:80', '0.0.0.0:*', 'LISTEN', 789, 'nginx'),
            Socket('tcp', '127.0.0.1:3306', '0.0.0.0:*', 'LISTEN', 1200, 'mysqld'),
            Socket('tcp', '10.128.0.2:22', '35.202.100.5:52341', 'ESTABLISHED', 5678, 'sshd'),
            Socket('udp', '0.0.0.0:68', '0.0.0.0:*', '', 300, 'dhclient'),
            Socket('udp', '127.0.0.53:53', '0.0.0.0:*', '', 350, 'systemd-resolve'),
        ]

        self.arp_cache: List[ArpEntry] = [
            ArpEntry('10.128.0.1', '42:01:0a:80:00:01', 'eth0', 'REACHABLE'),
            ArpEntry('10.128.0.3', '42:01:0a:80:00:03', 'eth0', 'STALE'),
            ArpEntry('10.128.0.4', '42:01:0a:80:00:04', 'eth0', 'REACHABLE'),
        ]

        index_page = ('<html><head><title>GCP Lab Server</title></head>'
                      '<body><h1>Welcome to GCP Lab</h1></body></html>')
        self.http_responses: Dict[str, str] = {
            'metadata.google.internal': json.dumps(
                {'instance': {'id': '1234567890', 'zone': 'us-central1-a',
                              'machineType': 'e2-medium', 'hostname': 'gcp-lab'}},
                separators=(',', ':')),
            'localhost': index_page,
            '127.0.0.1': index_page,
            'gcp-lab': index_page,
            'web-server': '<html><body><h1>Web Server Running</h1><p>Status: OK</p></body></html>',
        }
        self.default_response = json.dumps(
            {'status': 'ok', 'message': 'Service running'}, separators=(',', ':'))

    # ------------------------------------------------------------------
    # Resolution and reachability

    def resolve(self, target: str) -> Optional[str]:
        """Hosts table, then DNS A record, then an IPv4 literal"""
        target = target.rstrip('.')
        if target in self.hosts:
            return self.hosts[target].ip
        record = self.dns_records.get(target)
        if record and 'A' in record:
            return record['A']
        try:
            return str(ipaddress.IPv4Address(target))
        except ipaddress.AddressValueError:
            return None

    def is_reachable(self, ip: str) -> bool:
        """Whether one probe to ``ip`` gets an answer"""
        if ip.startswith('127.') or ip.startswith(PRIVATE_PREFIX):
            return True
        if ip.startswith(ALWAYS_REACHABLE_PREFIXES):
            return True
        return self.rng.random() < REACHABILITY_PROBABILITY

    def _is_private(self, ip: str) -> bool:
        return ip.startswith('127.') or ipaddress.ip_address(ip).is_private

    def _known_host(self, target: str, ip: str) -> Optional[Host]:
        if target in self.hosts:
            return self.hosts[target]
        for host in self.hosts.values():
            if host.ip == ip:
                return host
        return None

    def evaluate(self, chain: str, protocol: str, address: str,
                 port: Optional[int] = None) -> str:
        """First-match-wins verdict for a new packet; falls back to the chain policy"""
        for rule in self.chains.get(chain, []):
            if rule.target in TERMINAL_TARGETS and rule.matches(
                    protocol, address, port, outbound=chain != 'INPUT'):
                return rule.target
        return self.policies.get(chain, 'ACCEPT')

    def _timestamp(self, fmt: str) -> str:
        return time.strftime(fmt, time.gmtime(self.clock()))

    # ------------------------------------------------------------------
    # Diagnostics

    def ping(self, target: str, count: int = 4) -> str:
        """Simulate ping with computed latency and loss statistics"""
        ip = self.resolve(target)
        if ip is None:
            return f"ping: {target}: Name or service not known"

        lines = [f"PING {target} ({ip}) 56(84) bytes of data."]
        blocked = self.evaluate('OUTPUT', 'icmp', ip) != 'ACCEPT'
        private = self._is_private(ip)
        ttl = 64 if private else 54
        samples: List[float] = []
        errors = 0
        for seq in range(1, count + 1):
            if blocked:
                lines.append('ping: sendmsg: Operation not permitted')
            elif self.is_reachable(ip):
                if ip.startswith('127.'):
                    rtt = self.rng.uniform(0.02, 0.08)
                elif private:
                    rtt = self.rng.uniform(0.3, 2.3)
                else:
                    rtt = self.rng.uniform(10.0, 30.0)
                samples.append(rtt)
                lines.append(f"64 bytes from {ip}: icmp_seq={seq} ttl={ttl} time={rtt:.2f} ms")
            else:
                errors += 1
                lines.append(f"From {GATEWAY} icmp_seq={seq} Destination Host Unreachable")

        received = len(samples)
        loss = round((count - received) / count * 100) if count else 0
        elapsed = max(count - 1, 0) * 1000 + self.rng.randint(1, 9)
        error_note = f"+{errors} errors, " if errors else ''
        lines.append('')
        lines.append(f"--- {target} ping statistics ---")
        lines.append(f"{count} packets transmitted, {received} received, {error_note}"
                     f"{loss}% packet loss, time {elapsed}ms")
        if samples:
            avg = sum(samples) / received
            mdev = math.sqrt(max(sum(s * s for s in samples) / received - avg * avg, 0.0))
            lines.append(f"rtt min/avg/max/mdev = {min(samples):.3f}/{avg:.3f}/"
                         f"{max(samples):.3f}/{mdev:.3f} ms")
        return '\n'.join(lines)

    def traceroute(self, target: str) -> str:
        ip = self.resolve(target)
        if ip is None:
            return (f"{target}: Name or service not known\n"
                    f"Cannot handle \"host\" cmdline arg `{target}' on position 1 (argc 1)")

        lines = [f"traceroute to {target} ({ip}), 30 hops max, 60 byte packets"]
        if ip.startswith('127.'):
            hops = [('localhost', ip)]
        elif ip.startswith(PRIVATE_PREFIX):
            hops = [('gateway.internal', GATEWAY), (target, ip)]
        else:
            hops = [
                ('gateway.internal', GATEWAY),
                ('isp-router-1', '209.85.254.14'),
                ('edge-router', '72.14.232.76'),
                (target, ip),
            ]
        for hop, (name, hop_ip) in enumerate(hops, 1):
            samples = '  '.join(f"{self.rng.uniform(0.5, 5.5):.3f} ms" for _ in range(3))
            lines.append(f" {hop}  {name} ({hop_ip})  {samples}")
        return '\n'.join(lines)

    def dig(self, target: str, record_type: str = 'A', short: bool = False) -> str:
        """Render a dig answer for ``target``"""
        name = target.rstrip('.')
        record_type = record_type.upper()
        record = self.dns_records.get(name)
        if record is None:
            answers: List[Tuple[str, str]] = []
        elif record_type == 'ANY':
            answers = list(record.items())
        elif record_type in record:
            answers = [(record_type, record[record_type])]
        else:
            answers = []

        if short:
            return '\n'.join(value for _, value in answers)

        status = 'NOERROR' if record is not None else 'NXDOMAIN'
        lines = [
            f"; <<>> DiG 9.18.12-0ubuntu0.22.04.3-Ubuntu <<>> {name} {record_type}",
            ';; global options: +cmd',
            ';; Got answer:',
            f";; ->>HEADER<<- opcode: QUERY, status: {status}, id: {self.rng.randint(1, 65535)}",
            f";; flags: qr rd ra; QUERY: 1, ANSWER: {len(answers)}, AUTHORITY: 0, ADDITIONAL: 1",
            '',
            ';; QUESTION SECTION:',
            f";{name}.\t\t\tIN\t{record_type}",
            '',
        ]
        if answers:
            lines.append(';; ANSWER SECTION:')
            for rtype, value in answers:
                lines.append(f"{name}.\t\t300\tIN\t{rtype}\t{value}")
            lines.append('')
        lines.append(f";; Query time: {self.rng.randint(5, 34)} msec")
        lines.append(';; SERVER: 8.8.8.8#53(8.8.8.8) (UDP)')
        lines.append(f";; WHEN: {self._timestamp('%a %b %d %H:%M:%S UTC %Y')}")
        lines.append(f";; MSG SIZE  rcvd: {self.rng.randint(50, 149)}")
        return '\n'.join(lines)

    def nslookup(self, target: str, record_type: str = 'A') -> str:
        name = target.rstrip('.')
        record_type = record_type.upper()
        lines = ['Server:\t\t8.8.8.8', 'Address:\t8.8.8.8#53', '']

        if record_type == 'A':
            ip = self.resolve(name)
            if ip is None:
                lines.append(f"** server can't find {name}: NXDOMAIN")
            else:
                lines.append('Non-authoritative answer:')
                lines.append(f"Name:\t{name}")
                lines.append(f"Address: {ip}")
            return '\n'.join(lines)

        record = self.dns_records.get(name)
        if record is None:
            lines.append(f"** server can't find {name}: NXDOMAIN")
        elif record_type not in record:
            lines.append(f"*** Can't find {name}: No answer")
        elif record_type == 'AAAA':
            lines.append('Non-authoritative answer:')
            lines.append(f"Name:\t{name}")
            lines.append(f"Address: {record['AAAA']}")
        else:
            lines.append('Non-authoritative answer:')
            label = DNS_TYPE_LABELS.get(record_type, record_type)
            lines.append(f"{name}\t{label} = {record[record_type]}")
        return '\n'.join(lines)

    def host(self, target: str, record_type: Optional[str] = None) -> str:
        name = target.rstrip('.')
        ip = self.resolve(name)
        record = self.dns_records.get(name, {})
        if ip is None and not record:
            return f"Host {name} not found: 3(NXDOMAIN)"

        if record_type:
            record_type = record_type.upper()
            if record_type == 'A':
                value = ip
            else:
                value = record.get(record_type)
            if not value:
                return f"{name} has no {record_type} record"
            if record_type == 'TXT':
                value = f'"{value}"'
            return f"{name} {HOST_TYPE_LABELS.get(record_type, record_type)} {value}"

        lines = [f"{name} has address {ip}"]
        if 'AAAA' in record:
            lines.append(f"{name} has IPv6 address {record['AAAA']}")
        if 'MX' in record:
            lines.append(f"{name} mail is handled by {record['MX']}")
        return '\n'.join(lines)

    # ------------------------------------------------------------------
    # HTTP

    def request(self, url: str, method: str = 'GET', data: Optional[str] = None) -> Result:
        """Fetch ``url`` from the simulated network.

        Returns ``Ok((host, ip, port, HttpResponse))`` or an ``Err`` whose
        message is curl's own diagnostic without the ``curl: `` prefix.
        """
        if '://' not in url:
            url = 'http://' + url
        try:
            parts = urlsplit(url)
            port = parts.port or (443 if parts.scheme == 'https' else 80)
        except ValueError:
            return Err(ErrorKind.INVALID_ARGUMENT, '(3) URL using bad/illegal format or missing URL')
        host = parts.hostname or ''
        if not host:
            return Err(ErrorKind.INVALID_ARGUMENT, '(3) URL using bad/illegal format or missing URL')

        ip = self.resolve(host)
        if ip is None:
            return Err(ErrorKind.NOT_FOUND, f"(6) Could not resolve host: {host}")
        if self.evaluate('OUTPUT', 'tcp', ip, port) != 'ACCEPT':
            return Err(ErrorKind.PERMISSION_DENIED,
                       f"(7) Failed to connect to {host} port {port} after 0 ms: "
                       f"Couldn't connect to server")
        known = self._known_host(host, ip)
        if known is not None and port not in known.ports:
            return Err(ErrorKind.CONNECTION_REFUSED,
                       f"(7) Failed to connect to {host} port {port} after 0 ms: "
                       f"Connection refused")

        body = self.http_responses.get(host, self.default_response)
        headers = {
            'Server': SERVER_BANNER,
            'Date': formatdate(self.clock(), usegmt=True),
            'Content-Type': _content_type(body),
            'Content-Length': str(len(body.encode('utf-8'))),
            'Connection': 'keep-alive',
        }
        logger.debug(f"HTTP {method} {url} -> 200")
        return Ok((host, ip, port, HttpResponse(200, 'OK', body, headers)))

    def curl(self, url: str, method: str = 'GET', data: Optional[str] = None,
             headers: Optional[List[str]] = None, verbose: bool = False,
             silent: bool = False, head: bool = False, include: bool = False) -> str:
        """Render what curl prints for ``url``"""
        if head:
            method = 'HEAD'
        result = self.request(url, method, data)
        if not result.ok:
            return '' if silent else f"curl: {result.message}"
        host, ip, port, response = result.value
        status_line = f"HTTP/1.1 {response.status} {response.reason}"
        header_lines = [f"{k}: {v}" for k, v in response.headers.items()]

        if verbose:
            path = urlsplit(url if '://' in url else 'http://' + url).path or '/'
            lines = [
                f"*   Trying {ip}:{port}...",
                f"* Connected to {host} ({ip}) port {port} (#0)",
                f"> {method} {path} HTTP/1.1",
                f"> Host: {host}",
                '> User-Agent: curl/7.81.0',
                '> Accept: */*',
            ]
            lines.extend(f"> {h}" for h in headers or [])
            if data is not None:
                lines.append(f"> Content-Length: {len(data.encode('utf-8'))}")
                lines.append('> Content-Type: application/x-www-form-urlencoded')
            lines.append('>')
            lines.append(f"< {status_line}")
            lines.extend(f"< {h}" for h in header_lines)
            lines.append('<')
            if method != 'HEAD':
                lines.append(response.body)
            lines.append(f"* Connection #0 to host {host} left intact")
            return '\n'.join(lines)

        if method == 'HEAD':
            return '\n'.join([status_line] + header_lines)
        if include:
            return '\n'.join([status_line] + header_lines + ['', response.body])
        return response.body

    def progress_meter(self, size: int) -> str:
        """curl's transfer table, printed when the body goes to a file"""
        speed = size * 10
        return (
            '  % Total    % Received % Xferd  Average Speed   Time    Time     Time  Current\n'
            '                                 Dload  Upload   Total   Spent    Left  Speed\n'
            f"100 {size:>5}  100 {size:>5}    0     0  {speed:>5}      0 "
            '--:--:-- --:--:-- --:--:-- ' + f"{speed:>5}"
        )

    def wget(self, url: str, filename: Optional[str] = None) -> Tuple[str, Optional[HttpResponse]]:
        """Render a wget transfer log; the response is None when nothing was saved"""
        full_url = url if '://' in url else 'http://' + url
        stamp = self._timestamp('%Y-%m-%d %H:%M:%S')
        lines = [f"--{stamp}--  {full_url}"]
        result = self.request(full_url)
        host = urlsplit(full_url).hostname or url

        if not result.ok:
            if result.kind == ErrorKind.NOT_FOUND:
                lines.append(f"Resolving {host} ({host})... failed: Name or service not known.")
                lines.append(f"wget: unable to resolve host address '{host}'")
            elif result.kind == ErrorKind.INVALID_ARGUMENT:
                lines = [f"{url}: Invalid URL"]
            else:
                reason = ('Connection refused' if result.kind == ErrorKind.CONNECTION_REFUSED
                          else 'Connection timed out')
                ip = self.resolve(host)
                lines.append(f"Resolving {host} ({host})... {ip}")
                lines.append(f"Connecting to {host} ({host})|{ip}|... failed: {reason}.")
            return '\n'.join(lines), None

        host, ip, port, response = result.value
        target = filename or default_filename(urlsplit(full_url).path)
        size = len(response.body.encode('utf-8'))
        content_type = response.headers.get('Content-Type', 'text/plain')
        lines.extend([
            f"Resolving {host} ({host})... {ip}",
            f"Connecting to {host} ({host})|{ip}|:{port}... connected.",
            f"HTTP request sent, awaiting response... {response.status} {response.reason}",
            f"Length: {size} [{content_type}]",
            f"Saving to: '{target}'",
            '',
            f"{target:<20}100%[===================>] {size:>7}  --.-KB/s    in 0s",
            '',
            f"{stamp} ({size / 100:.2f} MB/s) - '{target}' saved [{size}/{size}]",
        ])
        return '\n'.join(lines), response

    # ------------------------------------------------------------------
    # Interface, routing and socket tables

    def _select_interfaces(self, name: Optional[str]) -> Result:
        if name is None:
            return Ok(list(self.interfaces.values()))
        if name not in self.interfaces:
            return Err(ErrorKind.NOT_FOUND, f'Device "{name}" does not exist.')
        return Ok([self.interfaces[name]])

    def ip_addr(self, name: Optional[str] = None) -> str:
        selected = self._select_interfaces(name)
        if not selected.ok:
            return selected.message
        lines = []
        for idx, iface in enumerate(self.interfaces.values(), 1):
            if iface not in selected.value:
                continue
            if iface.is_loopback:
                lines.append(f"{idx}: {iface.name}: <LOOPBACK,UP,LOWER_UP> mtu {iface.mtu} "
                             f"qdisc noqueue state UNKNOWN group default qlen 1000")
                lines.append(f"    link/loopback {iface.mac} brd 00:00:00:00:00:00")
                lines.append(f"    inet {iface.ip}/{iface.prefix} scope host {iface.name}")
                lines.append('       valid_lft forever preferred_lft forever')
            else:
                lines.append(f"{idx}: {iface.name}: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu {iface.mtu} "
                             f"qdisc mq state {iface.state} group default qlen 1000")
                lines.append(f"    link/ether {iface.mac} brd ff:ff:ff:ff:ff:ff")
                lines.append(f"    inet {iface.ip}/{iface.prefix} brd {iface.broadcast} "
                             f"scope global dynamic {iface.name}")
                lines.append('       valid_lft 3600sec preferred_lft 3600sec')
        return '\n'.join(lines)

    def ip_link(self, name: Optional[str] = None) -> str:
        selected = self._select_interfaces(name)
        if not selected.ok:
            return selected.message
        lines = []
        for idx, iface in enumerate(self.interfaces.values(), 1):
            if iface not in selected.value:
                continue
            if iface.is_loopback:
                lines.append(f"{idx}: {iface.name}: <LOOPBACK,UP,LOWER_UP> mtu {iface.mtu} "
                             f"qdisc noqueue state UNKNOWN mode DEFAULT group default qlen 1000")
                lines.append(f"    link/loopback {iface.mac} brd 00:00:00:00:00:00")
            else:
                lines.append(f"{idx}: {iface.name}: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu {iface.mtu} "
                             f"qdisc mq state {iface.state} mode DEFAULT group default qlen 1000")
                lines.append(f"    link/ether {iface.mac} brd ff:ff:ff:ff:ff:ff")
        return '\n'.join(lines)

    def ip_route(self) -> str:
        lines = []
        for route in self.routes:
            if route.destination == '0.0.0.0/0':
                lines.append(f"default via {route.gateway} dev {route.iface} proto dhcp "
                             f"metric {route.metric}")
                continue
            dest = route.destination[:-3] if route.destination.endswith('/32') else route.destination
            if route.gateway != '0.0.0.0':
                lines.append(f"{dest} via {route.gateway} dev {route.iface} proto dhcp "
                             f"metric {route.metric}")
            else:
                src = self.interfaces[route.iface].ip if route.iface in self.interfaces else ''
                lines.append(f"{dest} dev {route.iface} proto kernel scope link src {src} "
                             f"metric {route.metric}")
        return '\n'.join(lines)

    def ip_neigh(self) -> str:
        return '\n'.join(f"{e.ip} dev {e.iface} lladdr {e.mac} {e.state}" for e in self.arp_cache)

    def ifconfig(self, name: Optional[str] = None) -> str:
        selected = self._select_interfaces(name)
        if not selected.ok:
            return f"{name}: error fetching interface information: Device not found"
        lines = []
        for iface in selected.value:
            if iface.is_loopback:
                lines.append(f"{iface.name}: flags=73<UP,LOOPBACK,RUNNING>  mtu {iface.mtu}")
                lines.append(f"        inet {iface.ip}  netmask {iface.netmask}")
                lines.append('        loop  txqueuelen 1000  (Local Loopback)')
            else:
                lines.append(f"{iface.name}: flags=4163<UP,BROADCAST,RUNNING,MULTICAST>  mtu {iface.mtu}")
                lines.append(f"        inet {iface.ip}  netmask {iface.netmask}  broadcast {iface.broadcast}")
                lines.append(f"        ether {iface.mac}  txqueuelen 1000  (Ethernet)")
            lines.append(f"        RX packets {iface.rx_packets}  bytes {iface.rx_bytes} "
                         f"({iface.rx_bytes / 1e6:.1f} MB)")
            lines.append('        RX errors 0  dropped 0  overruns 0  frame 0')
            lines.append(f"        TX packets {iface.tx_packets}  bytes {iface.tx_bytes} "
                         f"({iface.tx_bytes / 1e6:.1f} MB)")
            lines.append('        TX errors 0  dropped 0 overruns 0  carrier 0  collisions 0')
            lines.append('')
        return '\n'.join(lines).rstrip('\n')

    def route_table(self, numeric: bool = True) -> str:
        lines = [
            'Kernel IP routing table',
            'Destination     Gateway         Genmask         Flags Metric Ref    Use Iface',
        ]
        for route in self.routes:
            network = route.network
            flags = 'U' if route.gateway == '0.0.0.0' else 'UG'
            if network.prefixlen == 32:
                flags += 'H'
            dest = str(network.network_address)
            gateway = route.gateway
            if not numeric:
                dest = 'default' if network.prefixlen == 0 else dest
                gateway = '_gateway' if gateway == self.gateway else gateway
            lines.append(f"{dest:<16}{gateway:<16}"
                         f"{str(network.netmask):<16}{flags:<6}{route.metric:<7}0      0 {route.iface}")
        return '\n'.join(lines)

    def _select_sockets(self, listening: bool, tcp: bool, udp: bool) -> List[Socket]:
        protos = set()
        if tcp:
            protos.add('tcp')
        if udp:
            protos.add('udp')
        if not protos:
            protos = {'tcp', 'udp'}
        sockets = [s for s in self.sockets if s.proto in protos]
        if listening:
            sockets = [s for s in sockets if s.state in ('LISTEN', '')]
        return sockets

    def netstat(self, listening: bool = False, tcp: bool = False, udp: bool = False) -> str:
        title = ('Active Internet connections (only servers)' if listening
                 else 'Active Internet connections (servers and established)')
        lines = [
            title,
            'Proto Recv-Q Send-Q Local Address           Foreign Address         '
            'State       PID/Program name',
        ]
        for s in self._select_sockets(listening, tcp, udp):
            lines.append(f"{s.proto:<6}{0:>6} {0:>6} {s.local:<24}{s.foreign:<24}"
                         f"{s.state:<12}{s.pid}/{s.program}")
        return '\n'.join(lines)

    def ss(self, listening: bool = False, tcp: bool = False, udp: bool = False) -> str:
        lines = ['Netid State      Recv-Q Send-Q Local Address:Port      Peer Address:Port  Process']
        for s in self._select_sockets(listening, tcp, udp):
            state = s.state or 'UNCONN'
            if state == 'ESTABLISHED':
                state = 'ESTAB'
            lines.append(f"{s.proto:<6}{state:<11}{0:<7}{0:<7}{s.local:<24}{s.foreign:<19}"
                         f'users:(("{s.program}",pid={s.pid},fd=3))')
        return '\n'.join(lines)

    # ------------------------------------------------------------------
    # Firewall

    def _render_rule(self, rule: FirewallRule, numeric: bool) -> str:
        extra = []
        if rule.dport is not None:
            port = str(rule.dport) if numeric else PORT_SERVICES.get(rule.dport, str(rule.dport))
            extra.append(f"{rule.protocol} dpt:{port}")
        if rule.state:
            extra.append(f"state {rule.state}")
        src = _display_address(rule.source, numeric)
        dst = _display_address(rule.destination, numeric)
        return (f"{rule.target:<10} {rule.protocol:<4} --  {src:<20} {dst:<20} "
                f"{' '.join(extra)}").rstrip()

    def list_rules(self, chain: Optional[str] = None, numeric: bool = False,
                   line_numbers: bool = False) -> str:
        chains = [chain] if chain else list(self.chains)
        blocks = []
        for name in chains:
            lines = [f"Chain {name} (policy {self.policies.get(name, 'ACCEPT')})"]
            header = 'target     prot opt source               destination'
            lines.append(f"num  {header}" if line_numbers else header)
            for num, rule in enumerate(self.chains[name], 1):
                row = self._render_rule(rule, numeric)
                lines.append(f"{num:<4} {row}" if line_numbers else row)
            blocks.append('\n'.join(lines))
        return '\n\n'.join(blocks)

    def _parse_address(self, value: str) -> Optional[str]:
        try:
            return str(ipaddress.ip_network(value, strict=False))
        except ValueError:
            ip = self.resolve(value)
            return f"{ip}/32" if ip else None

    def _parse_rule(self, spec: List[str]) -> Result:
        """Build a FirewallRule from ``-p/-s/-d/--dport/-m/--state/-j`` options"""
        rule = FirewallRule(target='')
        i = 0
        while i < len(spec):
            opt = spec[i]
            value = spec[i + 1] if i + 1 < len(spec) else None
            if opt in ('-m', '--match'):
                i += 2
                continue
            if value is None:
                return Err(ErrorKind.INVALID_ARGUMENT,
                           f"{IPTABLES_VERSION}: option \"{opt}\" requires an argument")
            if opt in ('-p', '--protocol'):
                rule.protocol = value.lower()
            elif opt in ('-s', '--source', '-d', '--destination'):
                address = self._parse_address(value)
                if address is None:
                    return Err(ErrorKind.NOT_FOUND,
                               f"{IPTABLES_VERSION}: host/network `{value}' not found")
                if opt in ('-s', '--source'):
                    rule.source = address
                else:
                    rule.destination = address
            elif opt == '--dport':
                if rule.protocol not in ('tcp', 'udp'):
                    return Err(ErrorKind.INVALID_ARGUMENT,
                               f'{IPTABLES_VERSION}: unknown option "--dport"')
                if value.isdigit():
                    rule.dport = int(value)
                elif value in SERVICE_PORTS:
                    rule.dport = SERVICE_PORTS[value]
                else:
                    return Err(ErrorKind.INVALID_ARGUMENT,
                               f"{IPTABLES_VERSION}: invalid port/service `{value}' specified")
            elif opt in ('--state', '--ctstate'):
                rule.state = value.upper()
            elif opt in ('-j', '--jump'):
                if value not in TARGETS:
                    return Err(ErrorKind.NOT_FOUND,
                               'iptables: No chain/target/match by that name.')
                rule.target = value
            else:
                return Err(ErrorKind.INVALID_ARGUMENT,
                           f'{IPTABLES_VERSION}: unknown option "{opt}"')
            i += 2
        return Ok(rule)

    def _chain_arg(self, args: List[str], idx: int) -> Result:
        chain = args[idx] if idx < len(args) else None
        if chain is None or chain not in self.chains:
            return Err(ErrorKind.NOT_FOUND, 'iptables: No chain/target/match by that name.')
        return Ok(chain)

    def append_rule(self, chain: str, rule: FirewallRule) -> None:
        """Append, keeping a trailing catch-all rule last so the new rule can match"""
        rules = self.chains[chain]
        if rules and rules[-1].is_catch_all:
            rules.insert(len(rules) - 1, rule)
        else:
            rules.append(rule)

    def iptables(self, args: List[str]) -> str:
        """Run an iptables command line (caller enforces root)"""
        if not args:
            return (f"{IPTABLES_VERSION}: no command specified\n"
                    "Try `iptables -h' or 'iptables --help' for more information.")
        action = args[0]
        short_flags = ''.join(a[1:] for a in args if a.startswith('-') and not a.startswith('--'))

        if action == '--list' or (action.startswith('-') and not action.startswith('--')
                                  and 'L' in short_flags and action[1:].isalpha()
                                  and set(action[1:]) <= set('Lnv')):
            names = [a for a in args if not a.startswith('-')]
            if names and names[0] not in self.chains:
                return 'iptables: No chain/target/match by that name.'
            return self.list_rules(names[0] if names else None,
                                   numeric='n' in short_flags,
                                   line_numbers='--line-numbers' in args)

        if action in ('-A', '--append', '-I', '--insert', '-D', '--delete'):
            chain = self._chain_arg(args, 1)
            if not chain.ok:
                return chain.message
            rest = args[2:]
            position = None
            if rest and rest[0].isdigit():
                position = int(rest[0])
                rest = rest[1:]
                if position < 1:
                    return (f"{IPTABLES_VERSION}: Invalid rule number `{position}'\n"
                            "Try `iptables -h' or 'iptables --help' for more information.")

            if action in ('-D', '--delete') and position is not None:
                rules = self.chains[chain.value]
                if position > len(rules):
                    return 'iptables: Index of deletion too big.'
                del rules[position - 1]
                return ''

            parsed = self._parse_rule(rest)
            if not parsed.ok:
                return parsed.message
            rule = parsed.value
            rules = self.chains[chain.value]

            if action in ('-D', '--delete'):
                if rule not in rules:
                    return 'iptables: Bad rule (does a matching rule exist in that chain?).'
                rules.remove(rule)
            elif action in ('-I', '--insert'):
                index = (position or 1) - 1
                if index > len(rules):
                    return 'iptables: Index of insertion too big.'
                rules.insert(index, rule)
            else:
                self.append_rule(chain.value, rule)
            logger.debug(f"iptables {' '.join(args)}")
            return ''

        if action in ('-F', '--flush'):
            if len(args) > 1:
                chain = self._chain_arg(args, 1)
                if not chain.ok:
                    return chain.message
                self.chains[chain.value] = []
            else:
                for name in self.chains:
                    self.chains[name] = []
            return ''

        if action in ('-P', '--policy'):
            chain = self._chain_arg(args, 1)
            if not chain.ok:
                return chain.message
            target = args[2] if len(args) > 2 else ''
            if target not in ('ACCEPT', 'DROP'):
                return 'iptables: Bad policy name. Run `dmesg\' for more information.'
            self.policies[chain.value] = target
            return ''

        return (f"{IPTABLES_VERSION}: unknown option \"{action}\"\n"
                "Try `iptables -h' or 'iptables --help' for more information.")

    # ------------------------------------------------------------------
    # Lifecycle

    def reset_to_lesson(self, setup_fn: Optional[SetupHook] = None) -> None:
        """Rebuild baseline network state, then apply a lesson hook.

        The hook runs against a staged instance so a failing hook leaves
        the current state in place.
        """
        staged = VirtualNetwork(rng=self.rng, clock=self.clock)
        if setup_fn is not None:
            setup_fn(staged)
        self.__dict__.update(staged.__dict__)
        logger.debug("Network reset to baseline")
