# python
"""
tests/test_system.py
Process table, signals and the systemd-style service manager.
"""

import random

from linuxlab.system import ProcessTable, ServiceManager, format_duration, render_free

from conftest import fixed_clock


def _make_services():
    processes = ProcessTable(random.Random(1234), fixed_clock)
    return processes, ServiceManager(processes, fixed_clock)


def test_uptime_line() -> None:
    processes, _ = _make_services()
    assert processes.uptime_line() == (' 22:13:20 up 1 day,  0 min,  1 user,  '
                                       'load average: 0.15, 0.10, 0.08')
    assert format_duration(3 * 3600 + 5 * 60) == ' 3:05'
    assert format_duration(300) == '5 min'


def test_ps_styles() -> None:
    processes, _ = _make_services()
    aux = processes.render_ps('aux')
    assert aux.split('\n')[0].startswith('USER         PID %CPU %MEM')
    assert 'nginx: master process /usr/sbin/nginx' in aux
    own = processes.render_ps(user='clouduser').split('\n')
    assert len(own) == 2
    assert own[1].endswith('-bash')


def test_sigkill_on_main_pid_fails_service() -> None:
    processes, services = _make_services()
    assert services.kill(789, 'KILL').ok
    nginx = services.get('nginx')
    assert nginx.failed
    assert nginx.active_state == 'failed'
    assert processes.get(789) is None
    assert processes.get(790) is None
    assert services.journal[-2] == ('Nov 14 22:13:20 gcp-lab systemd[1]: nginx.service: '
                                    'Main process exited, code=killed, status=9/KILL')
    assert services.journal[-1].endswith("nginx.service: Failed with result 'signal'.")
    assert services.systemctl(['is-active', 'nginx']) == 'failed'
    assert 'Active: failed (Result: signal)' in services.systemctl(['status', 'nginx'])


def test_sigkill_on_worker_keeps_service() -> None:
    processes, services = _make_services()
    services.kill(790, '9')
    nginx = services.get('nginx')
    assert nginx.active
    assert nginx.pids == [789, 791]


def test_sigterm_is_ignored() -> None:
    processes, services = _make_services()
    assert services.kill(1001, 'TERM').ok
    assert processes.get(1001) is not None


def test_kill_unknown_pid() -> None:
    _, services = _make_services()
    result = services.kill(99999)
    assert not result.ok
    assert result.message == '(99999) - No such process'


def test_restart_after_failure_spawns_new_processes() -> None:
    processes, services = _make_services()
    services.kill(789, 'KILL')
    assert services.systemctl(['start', 'nginx']) == ''
    nginx = services.get('nginx')
    assert nginx.active and not nginx.failed
    assert len(nginx.pids) == 3
    assert all(pid >= 2200 for pid in nginx.pids)
    assert processes.get(nginx.pids[1]).ppid == nginx.pids[0]
    assert services.journal[-1].endswith(
        'Started nginx.service - A high performance web server and a reverse proxy server.')


def test_stop_and_status() -> None:
    processes, services = _make_services()
    assert services.service(['nginx', 'stop']) == ''
    assert services.systemctl(['is-active', 'nginx']) == 'inactive'
    assert processes.get(789) is None
    assert 'Active: inactive (dead)' in services.systemctl(['status', 'nginx.service'])


def test_unknown_units() -> None:
    _, services = _make_services()
    assert services.systemctl(['start', 'foo']) == 'Failed to start foo.service: Unit foo.service not found.'
    assert services.systemctl(['status', 'foo']) == 'Unit foo.service could not be found.'
    assert services.systemctl(['explode', 'nginx']) == 'Unknown command verb explode.'
    assert services.systemctl(['start']) == 'Too few arguments.'


def test_enable_and_list_units() -> None:
    _, services = _make_services()
    assert services.systemctl(['is-enabled', 'docker']) == 'disabled'
    assert services.systemctl(['enable', 'docker']).startswith('Created symlink')
    assert services.systemctl(['is-enabled', 'docker']) == 'enabled'
    listing = services.systemctl([])
    assert listing.endswith('4 loaded units listed.')
    assert '[ + ]  nginx' in services.service(['--status-all'])


def test_free_units() -> None:
    rows = render_free('m').split('\n')
    assert rows[0].split() == ['total', 'used', 'free', 'shared', 'buff/cache', 'available']
    assert rows[1].split()[1] == '3950'
    assert render_free('h').split('\n')[1].split()[1] == '3.9Gi'


def test_shell_kill_and_journalctl(shell) -> None:
    assert shell.execute('kill -9 789') == ''
    assert shell.execute('systemctl is-active nginx') == 'failed'
    journal = shell.execute('journalctl -u nginx -n 2')
    assert journal.split('\n')[-1].endswith("nginx.service: Failed with result 'signal'.")
    assert shell.execute('kill 4242') == 'bash: kill: (4242) - No such process'
    assert shell.execute('kill -l 9') == 'KILL'
    assert shell.execute('kill -s BOGUS 1') == 'bash: kill: BOGUS: invalid signal specification'
