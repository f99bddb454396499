#!/usr/bin/env python3
"""
Session state - Identity, working directory, environment and history
of one learner's shell
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

ROOT_UID = 0
DEFAULT_UID = 1000
DEFAULT_USER = 'clouduser'
DEFAULT_HOME = '/home/clouduser'
HOSTNAME = 'gcp-lab'

DEFAULT_PATH = '/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin'


@dataclass
class User:
    """Entry in the user registry"""
    uid: int
    name: str
    home: str
    shell: str = '/bin/bash'
    groups: List[int] = field(default_factory=list)

    @property
    def gid(self) -> int:
        """Primary group id"""
        return self.groups[0] if self.groups else self.uid


@dataclass
class Group:
    """Entry in the group registry"""
    gid: int
    name: str
    members: List[str] = field(default_factory=list)


def default_users() -> Dict[int, User]:
    """Users known to a freshly built lab host"""
    return {
        0: User(0, 'root', '/root', groups=[0]),
        33: User(33, 'nginx', '/var/www', shell='/usr/sbin/nologin', groups=[33]),
        65534: User(65534, 'nobody', '/nonexistent', shell='/usr/sbin/nologin', groups=[65534]),
        DEFAULT_UID: User(DEFAULT_UID, DEFAULT_USER, DEFAULT_HOME, groups=[1000, 27, 999]),
    }


def default_groups() -> Dict[int, Group]:
    """Groups known to a freshly built lab host"""
    return {
        0: Group(0, 'root', ['root']),
        27: Group(27, 'sudo', [DEFAULT_USER]),
        33: Group(33, 'www-data', ['nginx']),
        101: Group(101, 'nginx', ['nginx']),
        999: Group(999, 'docker', [DEFAULT_USER]),
        1000: Group(1000, DEFAULT_USER, [DEFAULT_USER]),
        65534: Group(65534, 'nogroup'),
    }


def default_env(user: User, hostname: str = HOSTNAME) -> Dict[str, str]:
    """Login environment for ``user``"""
    return {
        'HOME': user.home,
        'USER': user.name,
        'LOGNAME': user.name,
        'PATH': DEFAULT_PATH,
        'SHELL': user.shell,
        'PWD': user.home,
        'HOSTNAME': hostname,
        'TERM': 'xterm-256color',
        'PS1': '\\u@\\h:\\w\\$ ',
        'LANG': 'en_US.UTF-8',
    }


@dataclass
class Session:
    """Mutable per-learner shell state.

    The filesystem resolves relative paths against ``cwd`` and ``~``
    against ``env['HOME']``; command handlers read ``uid`` to decide
    whether a root-only operation is allowed. ``su`` pushes the previous
    identity so that ``exit`` can return to it.
    """
    uid: int = DEFAULT_UID
    cwd: str = DEFAULT_HOME
    env: Dict[str, str] = field(default_factory=dict)
    history: List[str] = field(default_factory=list)
    _identity_stack: List[Tuple[int, Dict[str, str], str]] = field(
        default_factory=list, repr=False)

    @classmethod
    def login(cls, user: User, hostname: str = HOSTNAME) -> 'Session':
        """Fresh session for ``user`` sitting in their home directory"""
        return cls(uid=user.uid, cwd=user.home, env=default_env(user, hostname))

    @property
    def is_root(self) -> bool:
        return self.uid == ROOT_UID

    @property
    def home(self) -> str:
        return self.env.get('HOME', '/')

    @property
    def hostname(self) -> str:
        return self.env.get('HOSTNAME', HOSTNAME)

    def record_command(self, command: str) -> None:
        """Append a command line to the history, ignoring blank input"""
        command = command.strip()
        if command:
            self.history.append(command)

    def chdir(self, path: str) -> None:
        """Set the working directory and keep PWD/OLDPWD in step"""
        self.env['OLDPWD'] = self.cwd
        self.cwd = path
        self.env['PWD'] = path

    def switch_user(self, user: User, login: bool = False) -> None:
        """Become ``user``, remembering the current identity for exit"""
        self._identity_stack.append((self.uid, dict(self.env), self.cwd))
        self.uid = user.uid
        self.env['USER'] = user.name
        self.env['LOGNAME'] = user.name
        self.env['HOME'] = user.home
        self.env['SHELL'] = user.shell
        if login:
            self.chdir(user.home)

    def restore_user(self) -> bool:
        """Return to the identity active before the last switch_user"""
        if not self._identity_stack:
            return False
        self.uid, self.env, cwd = self._identity_stack.pop()
        self.cwd = cwd
        return True
