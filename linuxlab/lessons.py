#!/usr/bin/env python3
"""
Lesson Engine - Binds lesson content to a lab host and checks task
completion after every command
"""

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Union

from linuxlab.filesystem import VirtualFilesystem
from linuxlab.network import Host, VirtualNetwork
from linuxlab.shell import ShellInterpreter

logger = logging.getLogger(__name__)

FsSetup = Callable[[VirtualFilesystem], None]
NetSetup = Callable[[VirtualNetwork], None]


@dataclass
class Validation:
    """How the engine decides a task is done.

    ``type`` is one of ``command``, ``command_contains``,
    ``output_contains``, ``file_exists``, ``file_contains``, ``cwd`` or
    ``permission``. ``check`` is a string, or a mapping with ``path``
    plus ``content``/``mode`` for the file kinds.
    """
    type: str
    check: Union[str, Dict[str, str]]


@dataclass
class Task:
    id: str
    instruction: str
    validation: Validation
    hint: str = ''


@dataclass
class Lesson:
    """A lesson: ordered tasks plus optional hooks seeding the lab host"""
    id: str
    title: str
    tasks: List[Task] = field(default_factory=list)
    setup_fs: Optional[FsSetup] = None
    setup_net: Optional[NetSetup] = None
    description: str = ''


@dataclass
class CommandOutcome:
    """Result of one command typed inside a lesson"""
    output: str
    task: Optional[Task] = None
    passed: bool = False
    lesson_complete: bool = False


def validate(validation: Validation, command: str, output: str, fs: VirtualFilesystem) -> bool:
    """Evaluate a task's validation against the latest command and lab state"""
    check = validation.check
    kind = validation.type
    command = command.strip()

    if kind == 'command':
        return command == check or command.startswith(str(check))
    if kind == 'output_contains':
        return str(check) in (output or '')
    if kind == 'file_exists':
        return fs.exists(str(check))
    if kind == 'file_contains':
        path = check.get('path', '') if isinstance(check, dict) else check
        needle = check.get('content', '') if isinstance(check, dict) else check
        result = fs.read_file(path)
        return result.ok and needle in result.value
    if kind == 'cwd':
        return fs.cwd == check or fs.cwd.endswith(str(check))
    if kind == 'permission':
        if not isinstance(check, dict):
            return False
        info = fs.stat(check.get('path', ''))
        return info is not None and info.octal == str(check.get('mode', ''))
    if kind != 'command_contains':
        logger.warning(f"Unknown validation type {kind!r}, matching command text")
    return str(check) in command


class Lab:
    """One learner's lab host: filesystem, network and shell for a lesson.

    Loading a lesson builds the new host completely before swapping it
    in, so a failing setup hook leaves the previous host untouched.
    """

    def __init__(self, lesson: Optional[Lesson] = None, rng: Optional[random.Random] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.rng = rng or random.Random()
        self.clock = clock or time.time
        self.lesson: Optional[Lesson] = None
        self.completed: Set[str] = set()
        self.fs, self.network, self.shell = self._build(None)
        if lesson is not None:
            self.load_lesson(lesson)

    def _build(self, lesson: Optional[Lesson]):
        fs = VirtualFilesystem(clock=self.clock)
        network = VirtualNetwork(rng=self.rng, clock=self.clock)
        if lesson is not None and lesson.setup_fs is not None:
            lesson.setup_fs(fs)
        if lesson is not None and lesson.setup_net is not None:
            lesson.setup_net(network)
        return fs, network, ShellInterpreter(fs, network, rng=self.rng, clock=self.clock)

    def load_lesson(self, lesson: Optional[Lesson]) -> None:
        """Discard the current host and start ``lesson`` from a fresh baseline"""
        self.fs, self.network, self.shell = self._build(lesson)
        self.lesson = lesson
        self.completed = set()
        logger.info(f"Loaded lesson {lesson.id if lesson else '(free play)'}")

    def reset(self) -> None:
        """Restart the current lesson"""
        self.load_lesson(self.lesson)

    @property
    def current_task(self) -> Optional[Task]:
        """First task not yet completed"""
        if self.lesson is None:
            return None
        for task in self.lesson.tasks:
            if task.id not in self.completed:
                return task
        return None

    @property
    def is_complete(self) -> bool:
        return self.lesson is not None and bool(self.lesson.tasks) and self.current_task is None

    def run(self, line: str) -> CommandOutcome:
        """Execute a command line and check it against the current task"""
        output = self.shell.execute(line)
        task = self.current_task
        if task is None or not line.strip():
            return CommandOutcome(output, task, False, self.is_complete)

        passed = validate(task.validation, line, output, self.fs)
        if passed:
            self.completed.add(task.id)
            logger.info(f"Task {task.id} completed")
        return CommandOutcome(output, task, passed, self.is_complete)


def _setup_first_steps(fs: VirtualFilesystem) -> None:
    fs.mkdirp('/home/clouduser/projects/webapp')
    fs.mkdirp('/home/clouduser/projects/api')
    fs.write_file('/home/clouduser/projects/webapp/index.html', '<h1>Hello World</h1>\n')
    fs.write_file('/home/clouduser/projects/api/server.js', 'const express = require("express");\n')
    fs.write_file('/home/clouduser/projects/README.md',
                  '# My GCP Projects\n\nThis repo contains cloud projects.\n')


def _setup_pipes(fs: VirtualFilesystem) -> None:
    fs.write_file('/home/clouduser/servers.txt',
                  'web-01 running\ndb-01 running\nweb-02 stopped\napi-01 running\n'
                  'web-03 running\ndb-02 stopped\napi-02 running\nweb-01 running\n')


def _setup_permissions(fs: VirtualFilesystem) -> None:
    fs.write_file('/home/clouduser/deploy.sh',
                  '#!/bin/bash\necho "Deploying app..."\n', mode=0o644)
    fs.write_file('/home/clouduser/secrets.env',
                  'API_KEY=sk-1234567890abcdef\nDB_PASSWORD=super_secret_pass\n', mode=0o644)


def _setup_firewall(network: VirtualNetwork) -> None:
    network.hosts['api-gateway'] = Host('10.128.0.40', [22, 443])
    network.dns_records['api-gateway'] = {'A': '10.128.0.40'}


LESSONS: List[Lesson] = [
    Lesson('nav-101', 'First Steps', [
        Task('nav-101-1', 'Check your current directory using pwd.',
             Validation('command', 'pwd'), 'Type: pwd'),
        Task('nav-101-2', 'List ALL files including hidden ones in long format.',
             Validation('command_contains', 'ls -l'), 'Type: ls -la'),
        Task('nav-101-3', 'Navigate into the projects directory.',
             Validation('cwd', '/home/clouduser/projects'), 'Type: cd projects'),
        Task('nav-101-4', 'Go back to your home directory using cd with no arguments.',
             Validation('cwd', '/home/clouduser'), 'Type: cd'),
    ], setup_fs=_setup_first_steps, description='Navigate the filesystem with pwd, ls and cd.'),
    Lesson('files-201', 'File Creator', [
        Task('files-201-1', 'Create a directory called "deployment" in your home directory.',
             Validation('file_exists', '/home/clouduser/deployment'), 'Type: mkdir deployment'),
        Task('files-201-2', 'Create deployment/staging/configs using mkdir -p.',
             Validation('file_exists', '/home/clouduser/deployment/staging/configs'),
             'Type: mkdir -p deployment/staging/configs'),
        Task('files-201-3', 'Write "runtime: python311" to deployment/app.yaml.',
             Validation('file_contains', {'path': '/home/clouduser/deployment/app.yaml',
                                          'content': 'runtime: python311'}),
             'Type: echo "runtime: python311" > deployment/app.yaml'),
    ], description='Create directories and files.'),
    Lesson('pipe-401', 'Pipe Operator', [
        Task('pipe-401-1', 'Filter the running servers from servers.txt with a pipe.',
             Validation('command_contains', '|'), 'Type: cat servers.txt | grep running'),
        Task('pipe-401-2', 'Count the running servers with wc -l.',
             Validation('output_contains', '6'), 'Type: cat servers.txt | grep running | wc -l'),
    ], setup_fs=_setup_pipes, description='Chain commands together with pipes.'),
    Lesson('perm-501', 'Permission Basics', [
        Task('perm-501-1', 'Make deploy.sh executable (755).',
             Validation('permission', {'path': '/home/clouduser/deploy.sh', 'mode': '755'}),
             'Type: chmod 755 deploy.sh'),
        Task('perm-501-2', 'Lock secrets.env down to owner-only (600).',
             Validation('permission', {'path': '/home/clouduser/secrets.env', 'mode': '600'}),
             'Type: chmod 600 secrets.env'),
    ], setup_fs=_setup_permissions, description='Modify file permissions with chmod.'),
    Lesson('net-101', 'Firewall Rules', [
        Task('net-101-1', 'Become root with sudo -i.',
             Validation('command', 'sudo'), 'Type: sudo -i'),
        Task('net-101-2', 'Allow inbound HTTPS (tcp/443) with iptables.',
             Validation('command_contains', '--dport 443'),
             'Type: iptables -A INPUT -p tcp --dport 443 -j ACCEPT'),
        Task('net-101-3', 'List the INPUT chain and find the new rule.',
             Validation('output_contains', 'dpt:https'), 'Type: iptables -L INPUT'),
    ], setup_net=_setup_firewall, description='Inspect and change packet filter rules.'),
]


def find_lesson(lesson_id: str) -> Optional[Lesson]:
    for lesson in LESSONS:
        if lesson.id == lesson_id:
            return lesson
    return None
