# python
"""
tests/test_network.py
Firewall rules, name resolution, ping and HTTP on the virtual network.
"""

import random

from linuxlab.network import FirewallRule, Host, VirtualNetwork, default_filename
from linuxlab.result import ErrorKind

from conftest import fixed_clock


def _make_network(seed: int = 1234) -> VirtualNetwork:
    return VirtualNetwork(rng=random.Random(seed), clock=fixed_clock)


def test_append_lands_before_catch_all_drop(net) -> None:
    assert net.iptables(['-A', 'INPUT', '-p', 'tcp', '--dport', '443', '-j', 'ACCEPT']) == ''
    rules = net.chains['INPUT']
    assert rules[-2] == FirewallRule('ACCEPT', 'tcp', dport=443)
    assert rules[-1].is_catch_all
    assert net.evaluate('INPUT', 'tcp', '203.0.113.9', 443) == 'ACCEPT'
    assert net.evaluate('INPUT', 'tcp', '203.0.113.9', 8443) == 'DROP'


def test_listing_symbolic_and_numeric(net) -> None:
    net.iptables(['-A', 'INPUT', '-p', 'tcp', '--dport', '443', '-j', 'ACCEPT'])
    symbolic = net.iptables(['-L', 'INPUT'])
    assert symbolic.startswith('Chain INPUT (policy ACCEPT)')
    assert 'dpt:https' in symbolic
    assert 'anywhere' in symbolic
    numeric = net.iptables(['-L', 'INPUT', '-n'])
    assert 'dpt:443' in numeric
    assert '0.0.0.0/0' in numeric


def test_line_numbers(net) -> None:
    listing = net.iptables(['-L', 'INPUT', '--line-numbers'])
    assert 'num  target' in listing
    assert '5    DROP' in listing


def test_delete_by_position_and_spec(net) -> None:
    before = len(net.chains['INPUT'])
    assert net.iptables(['-D', 'INPUT', '1']) == ''
    assert len(net.chains['INPUT']) == before - 1
    assert net.iptables(['-D', 'INPUT', '99']) == 'iptables: Index of deletion too big.'

    assert net.iptables(['-D', 'INPUT', '-p', 'tcp', '--dport', '22', '-j', 'ACCEPT']) == ''
    assert FirewallRule('ACCEPT', 'tcp', dport=22) not in net.chains['INPUT']
    missing = net.iptables(['-D', 'INPUT', '-p', 'tcp', '--dport', '22', '-j', 'ACCEPT'])
    assert missing == 'iptables: Bad rule (does a matching rule exist in that chain?).'


def test_insert_flush_and_policy(net) -> None:
    net.iptables(['-I', 'INPUT', '-s', '198.51.100.7', '-j', 'DROP'])
    assert net.chains['INPUT'][0].source == '198.51.100.7/32'

    assert net.iptables(['-F', 'INPUT']) == ''
    assert net.chains['INPUT'] == []
    assert net.iptables(['-P', 'INPUT', 'DROP']) == ''
    assert net.evaluate('INPUT', 'tcp', '10.0.0.1', 22) == 'DROP'
    assert net.iptables(['-P', 'INPUT', 'MAYBE']).startswith('iptables: Bad policy name')


def test_iptables_errors(net) -> None:
    assert net.iptables(['-A', 'NOPE', '-j', 'ACCEPT']) == 'iptables: No chain/target/match by that name.'
    assert net.iptables(['-L', 'NOPE']) == 'iptables: No chain/target/match by that name.'
    assert 'unknown option "--dport"' in net.iptables(['-A', 'INPUT', '--dport', '80', '-j', 'ACCEPT'])
    assert net.iptables([]).startswith('iptables v1.8.7 (nf_tables): no command specified')


def test_ping_localhost(net) -> None:
    output = net.ping('localhost', 2)
    lines = output.split('\n')
    assert lines[0] == 'PING localhost (127.0.0.1) 56(84) bytes of data.'
    assert lines[1].startswith('64 bytes from 127.0.0.1: icmp_seq=1 ttl=64 time=')
    assert '2 packets transmitted, 2 received, 0% packet loss' in output
    assert lines[-1].startswith('rtt min/avg/max/mdev = ')


def test_ping_unknown_host(net) -> None:
    assert net.ping('nowhere.invalid') == 'ping: nowhere.invalid: Name or service not known'


def test_ping_blocked_by_output_rule(net) -> None:
    net.iptables(['-I', 'OUTPUT', '-p', 'icmp', '-j', 'DROP'])
    output = net.ping('8.8.8.8', 3)
    assert output.count('ping: sendmsg: Operation not permitted') == 3
    assert '3 packets transmitted, 0 received, 100% packet loss' in output
    assert 'rtt min' not in output


def test_same_seed_same_output() -> None:
    first = _make_network(7).ping('203.0.113.50', 10)
    second = _make_network(7).ping('203.0.113.50', 10)
    assert first == second


def test_dns_tools(net) -> None:
    assert net.dig('example.com', short=True) == '93.184.216.34'
    assert net.dig('google.com', 'MX', short=True) == '10 smtp.google.com'
    assert 'status: NXDOMAIN' in net.dig('missing.example')
    assert 'ANSWER SECTION' in net.dig('example.com')

    lookup = net.nslookup('google.com')
    assert 'Address: 142.250.80.46' in lookup
    assert "** server can't find missing.example: NXDOMAIN" in net.nslookup('missing.example')

    assert net.host('example.com').split('\n')[0] == 'example.com has address 93.184.216.34'
    assert net.host('missing.example') == 'Host missing.example not found: 3(NXDOMAIN)'


def test_request_errors(net) -> None:
    unresolved = net.request('http://nowhere.invalid/')
    assert unresolved.kind is ErrorKind.NOT_FOUND
    assert unresolved.message == '(6) Could not resolve host: nowhere.invalid'

    refused = net.request('http://db-server/')
    assert refused.kind is ErrorKind.CONNECTION_REFUSED
    assert net.curl('db-server') == ('curl: (7) Failed to connect to db-server port 80 '
                                     'after 0 ms: Connection refused')


def test_request_blocked_by_firewall(net) -> None:
    net.iptables(['-A', 'OUTPUT', '-p', 'tcp', '-d', '10.128.0.2', '--dport', '80', '-j', 'DROP'])
    assert net.curl('http://web-server/') == ('curl: (7) Failed to connect to web-server port 80 '
                                              "after 0 ms: Couldn't connect to server")
    assert net.curl('http://web-server/', silent=True) == ''


def test_curl_bodies_and_headers(net) -> None:
    assert 'Web Server Running' in net.curl('web-server')
    assert net.curl('http://metadata.google.internal/').startswith('{"instance":')
    head = net.curl('localhost', head=True)
    assert head.split('\n')[0] == 'HTTP/1.1 200 OK'
    assert 'Server: nginx/1.18.0' in head
    verbose = net.curl('localhost', verbose=True)
    assert '> GET / HTTP/1.1' in verbose
    assert '< HTTP/1.1 200 OK' in verbose


def test_wget_log(net) -> None:
    log, response = net.wget('http://localhost/')
    assert response is not None
    assert "Saving to: 'index.html'" in log
    failed, nothing = net.wget('http://nowhere.invalid/')
    assert nothing is None
    assert "wget: unable to resolve host address 'nowhere.invalid'" in failed


def test_default_filename() -> None:
    assert default_filename('/') == 'index.html'
    assert default_filename('/files/report.pdf') == 'report.pdf'
    assert default_filename('/files/') == 'files'


def test_interface_tables(net) -> None:
    assert 'inet 10.128.0.2/16' in net.ip_addr()
    assert net.ip_addr('eth9') == 'Device "eth9" does not exist.'
    assert net.ifconfig('eth9') == 'eth9: error fetching interface information: Device not found'
    assert net.ip_route().split('\n')[0] == 'default via 10.128.0.1 dev eth0 proto dhcp metric 100'
    assert 'LISTEN' in net.netstat(listening=True, tcp=True)
    assert 'ESTAB' in net.ss()


def test_reset_restores_firewall_and_applies_hook(net) -> None:
    net.iptables(['-F'])

    def add_gateway(staged: VirtualNetwork) -> None:
        staged.hosts['api-gateway'] = Host('10.128.0.40', [22, 443])

    net.reset_to_lesson(add_gateway)
    assert net.chains['INPUT'][-1].is_catch_all
    assert net.resolve('api-gateway') == '10.128.0.40'


def test_shell_wget_saves_file(shell) -> None:
    shell.execute('wget -q http://localhost/')
    assert shell.fs.read_file('/home/clouduser/index.html').value.startswith('<html>')
    assert shell.execute('curl -s http://nowhere.invalid/') == ''
    assert shell.execute('curl -o page.html localhost').startswith('  % Total')
    assert shell.fs.is_file('page.html')


def test_rule_number_zero_is_rejected(net) -> None:
    before = list(net.chains['INPUT'])
    inserted = net.iptables(['-I', 'INPUT', '0', '-p', 'tcp', '--dport', '8080', '-j', 'ACCEPT'])
    assert inserted.startswith("iptables v1.8.7 (nf_tables): Invalid rule number `0'")
    assert net.chains['INPUT'] == before
    assert net.iptables(['-D', 'INPUT', '0']).startswith('iptables v1.8.7 (nf_tables): Invalid rule number')
    assert net.iptables(['-I', 'INPUT', '2', '-p', 'tcp', '--dport', '8080', '-j', 'ACCEPT']) == ''
    assert net.chains['INPUT'][1] == FirewallRule('ACCEPT', 'tcp', dport=8080)
