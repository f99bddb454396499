# python
"""
tests/test_ssh_terminal.py
The SSH-facing terminal: line editing, lesson meta-commands and
transcript logging, driven through an in-memory channel.
"""

import random

import paramiko

from linuxlab.database import LabDatabase
from linuxlab.lessons import Lab
from linuxlab.ssh_server import (ANSI_CLEAR, LESSON_USAGE, SERVER_BANNER, LabSSHGateway, LabSSHServer,
                                 LabTerminal)

from conftest import fixed_clock


class FakeChannel:
    """Stands in for a paramiko channel: scripted input, captured output"""

    def __init__(self, data: bytes = b''):
        self.incoming = list(data)
        self.sent = b''
        self.closed = False

    def send(self, data: bytes) -> int:
        self.sent += data
        return len(data)

    def recv(self, size: int) -> bytes:
        chunk = bytes(self.incoming[:size])
        del self.incoming[:size]
        return chunk

    def close(self) -> None:
        self.closed = True

    @property
    def text(self) -> str:
        return self.sent.decode('utf-8')


def _make_terminal(data: bytes = b'', db=None) -> LabTerminal:
    lab = Lab(rng=random.Random(1234), clock=fixed_clock)
    return LabTerminal(FakeChannel(data), 'sess-1', 'alice', db=db, lab=lab, client_ip='10.0.0.5')


def test_run_executes_lines_until_exit() -> None:
    terminal = _make_terminal(b'whoami\rexit\r')
    terminal.run()
    channel = terminal.channel
    assert channel.closed
    assert not terminal.running
    assert 'Welcome to Ubuntu 22.04.3 LTS' in channel.text
    assert 'clouduser@gcp-lab:~$ whoami\r\nclouduser\r\n' in channel.text


def test_line_editing_keys() -> None:
    terminal = _make_terminal(b'whoamx\x7fi\rls\x03pwd\r')
    terminal.run()
    text = terminal.channel.text
    assert '\x08 \x08' in text
    assert 'clouduser\r\n' in text
    assert '^C\r\n' in text
    assert '/home/clouduser\r\n' in text
    assert terminal.lab.shell.session.history == ['whoami', 'pwd']


def test_ctrl_d_on_empty_line_logs_out() -> None:
    terminal = _make_terminal(b'\x04whoami\r')
    terminal.run()
    assert terminal.channel.text.endswith('logout\r\n')
    assert terminal.lab.shell.session.history == []


def test_clear_sends_ansi_sequence() -> None:
    terminal = _make_terminal()
    assert terminal.handle_line('clear') == ANSI_CLEAR


def test_exit_after_su_stays_connected() -> None:
    terminal = _make_terminal()
    terminal.handle_line('sudo -i')
    assert terminal.handle_line('exit') == ''
    assert terminal.running
    assert terminal.handle_line('exit') == 'logout\n'
    assert not terminal.running


def test_lesson_flow_records_progress(tmp_path) -> None:
    db = LabDatabase(str(tmp_path / 'lab.db'))
    terminal = _make_terminal(db=db)

    started = terminal.handle_line('lesson start nav-101')
    assert started == ('[lesson] First Steps: Navigate the filesystem with pwd, ls and cd.\n'
                       '[lesson] Task: Check your current directory using pwd.\n')

    output = terminal.handle_line('pwd')
    assert output == ('/home/clouduser\n'
                      '\n[lesson] Task complete: Check your current directory using pwd.\n'
                      '[lesson] Next: List ALL files including hidden ones in long format.\n')
    assert db.get_completed_tasks('alice', 'nav-101') == ['nav-101-1']

    commands = db.get_session_commands('sess-1')
    assert [c['command'] for c in commands] == ['pwd']
    assert commands[0]['task_id'] == 'nav-101-1'

    assert terminal.handle_line('lesson status') == (
        '[lesson] First Steps: 1/4 tasks done\n'
        '[lesson] Task: List ALL files including hidden ones in long format.\n')
    assert terminal.handle_line('lesson hint') == '[lesson] Hint: Type: ls -la\n'
    assert '  nav-101    First Steps          1/4 done' in terminal.handle_line('lesson list')
    db.close()


def test_lesson_completion_message() -> None:
    terminal = _make_terminal()
    terminal.handle_line('lesson start perm-501')
    terminal.handle_line('chmod 755 deploy.sh')
    output = terminal.handle_line('chmod 600 secrets.env')
    assert output.endswith("[lesson] Lesson 'Permission Basics' complete!\n")
    assert terminal.handle_line('lesson hint') == '[lesson] Nothing left to do.\n'


def test_lesson_meta_command_errors() -> None:
    terminal = _make_terminal()
    assert terminal.handle_line('lesson status') == "lesson: no lesson running, try 'lesson list'\n"
    assert terminal.handle_line('lesson start nope') == "lesson: unknown lesson 'nope'\n"

    terminal.handle_line('lesson start pipe-401')
    assert terminal.handle_line('lesson dance') == LESSON_USAGE + '\n'
    assert terminal.handle_line('lesson reset') == '[lesson] Pipe Operator restarted.\n'
    assert terminal.handle_line('lesson quit') == '[lesson] Back to free play.\n'
    assert terminal.lab.lesson is None


def test_password_auth() -> None:
    locked = LabSSHServer('10.0.0.5', password='s3cret')
    assert locked.check_auth_password('alice', 'wrong') == paramiko.AUTH_FAILED
    assert locked.check_auth_none('alice') == paramiko.AUTH_FAILED
    assert locked.check_auth_password('alice', 's3cret') == paramiko.AUTH_SUCCESSFUL
    assert locked.username == 'alice'
    assert locked.get_allowed_auths('alice') == 'password'

    open_server = LabSSHServer('10.0.0.5')
    assert open_server.check_auth_none('bob') == paramiko.AUTH_SUCCESSFUL
    assert open_server.get_allowed_auths('bob') == 'none,password'


class FakeTransport:
    """Records how the gateway configures a transport"""

    created = []

    def __init__(self, sock):
        self.sock = sock
        self.local_version = None
        self.closed = False
        FakeTransport.created.append(self)

    def close(self) -> None:
        self.closed = True


class FakeSocket:
    def __init__(self):
        self.closed = False

    def close(self) -> None:
        self.closed = True


def test_finished_client_leaves_active_sessions(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(LabSSHGateway, '_setup_host_key', lambda self: None)
    monkeypatch.setattr(paramiko, 'Transport', FakeTransport)
    FakeTransport.created = []
    gateway = LabSSHGateway(key_file=str(tmp_path / 'missing_key'), db_path=str(tmp_path / 'lab.db'))
    gateway.active_sessions['10.0.0.9:5555'] = None

    client = FakeSocket()
    gateway.handle_client(client, '10.0.0.9', 5555)

    transport = FakeTransport.created[0]
    assert transport.local_version == SERVER_BANNER
    assert transport.closed
    assert client.closed
    assert gateway.active_sessions == {}
    gateway.db.close()
