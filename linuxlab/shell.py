#!/usr/bin/env python3
"""
Shell interpreter - Executes bash-style command lines against the
virtual filesystem, network and process table
"""

import calendar
import itertools
import json
import logging
import math
import random
import re
import string
import textwrap
import time
import zlib
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from linuxlab.filesystem import FileNode, LsEntry, VirtualFilesystem, human_size, parse_mode
from linuxlab.manpages import lookup as man_lookup
from linuxlab.network import VirtualNetwork, default_filename
from linuxlab.result import ErrorKind
from linuxlab.system import SIGNALS, SIGNAL_NUMBERS, ProcessTable, ServiceManager, render_free

logger = logging.getLogger(__name__)

# Returned by clear; the terminal erases its transcript instead of printing it
CLEAR_SCREEN = '\x1b[CLEAR]'

DEFAULT_ALIASES = {'ll': 'ls -la', 'la': 'ls -a', 'l': 'ls -CF'}

KERNEL_RELEASE = '5.15.0-1049-gcp'
KERNEL_VERSION = '#57-Ubuntu SMP'
MACHINE = 'x86_64'

# No binary on disk, so which prints nothing for these
SHELL_ONLY_BUILTINS = frozenset({
    'cd', 'export', 'alias', 'unalias', 'set', 'unset', 'history', 'type',
    'exit', 'logout', 'help',
})
BUILTINS = SHELL_ONLY_BUILTINS | {'echo', 'pwd', 'kill', 'true', 'false'}
SBIN_COMMANDS = frozenset({'iptables', 'ifconfig', 'route', 'service'})

RECORD_TYPES = ('A', 'AAAA', 'MX', 'NS', 'TXT', 'CNAME', 'SOA', 'PTR', 'ANY')

DF_TABLE = '\n'.join([
    'Filesystem     1K-blocks    Used Available Use% Mounted on',
    '/dev/root       10098468 4123456   5958628  41% /',
    'tmpfs            2022784       0   2022784   0% /dev/shm',
    'tmpfs             809116    1012    808104   1% /run',
    '/dev/sda15        106858    6186    100673   6% /boot/efi',
    '/dev/sdb1       20511312 1048576  18397776   6% /mnt/data',
])
DF_TABLE_HUMAN = '\n'.join([
    'Filesystem      Size  Used Avail Use% Mounted on',
    '/dev/root       9.6G  4.0G  5.7G  41% /',
    'tmpfs           2.0G     0  2.0G   0% /dev/shm',
    'tmpfs           791M 1012K  790M   1% /run',
    '/dev/sda15      105M  6.1M   99M   6% /boot/efi',
    '/dev/sdb1        20G  1.0G   18G   6% /mnt/data',
])

_ASSIGNMENT = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*=')
_VAR_NAME = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
_NUMBER = re.compile(r'^\s*(-?\d+(?:\.\d+)?)')
_ECHO_ESCAPE = re.compile(r'\\(.)')
_ECHO_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', 'a': '\a', 'b': '\b',
                 'f': '\f', 'v': '\v', '0': '\0', 'e': '\x1b'}
_AWK_PROGRAM = re.compile(
    r'(?:/(?P<pattern>(?:[^/\\]|\\.)*)/)?\s*\{\s*print(?:\s+(?P<args>[^}]*?))?\s*;?\s*\}')
_AWK_TERM = re.compile(r'\s*("(?:[^"\\]|\\.)*"|\$\d+|\$NF|NR|NF|,)')
_TR_CLASSES = {
    '[:lower:]': string.ascii_lowercase,
    '[:upper:]': string.ascii_uppercase,
    '[:digit:]': string.digits,
    '[:alpha:]': string.ascii_letters,
    '[:alnum:]': string.ascii_letters + string.digits,
    '[:space:]': ' \t\n\r\f\v',
    '[:punct:]': string.punctuation,
}

Handler = Callable[[List[str], Optional[str]], str]


# ----------------------------------------------------------------------
# Text helpers

def _find_unquoted(text: str, chars: str) -> List[int]:
    """Indexes of ``chars`` occurring outside quotes"""
    positions = []
    quote = None
    for i, ch in enumerate(text):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch in chars:
            positions.append(i)
    return positions


def _strip_stderr_redirects(line: str) -> str:
    """Drop ``2>&1`` and ``2>file``; errors share the one output stream"""
    for pos in reversed(_find_unquoted(line, '>')):
        if pos == 0 or line[pos - 1] != '2' or (pos > 1 and not line[pos - 2].isspace()):
            continue
        end = pos + 1
        if line.startswith('&1', end):
            end += 2
        else:
            while end < len(line) and line[end] == ' ':
                end += 1
            while end < len(line) and not line[end].isspace():
                end += 1
        line = line[:pos - 1] + line[end:]
    return line


def _split_flags(args: List[str]) -> Tuple[str, List[str]]:
    """Separate combined short flags (``-la``) from operands.

    Long options are dropped and ``--`` ends option parsing.
    """
    flags = ''
    operands = []
    parsing = True
    for arg in args:
        if parsing and arg == '--':
            parsing = False
        elif parsing and arg.startswith('--'):
            continue
        elif parsing and arg.startswith('-') and len(arg) > 1:
            flags += arg[1:]
        else:
            operands.append(arg)
    return flags, operands


def _lines(text: str) -> List[str]:
    """Split text into lines, ignoring one trailing newline"""
    if not text:
        return []
    if text.endswith('\n'):
        text = text[:-1]
    return text.split('\n')


def _chomp(text: str) -> str:
    return text[:-1] if text.endswith('\n') else text


def _as_input(stdin: Optional[str]) -> str:
    """Piped text in file form: newline terminated when non-empty"""
    return stdin + '\n' if stdin else ''


def _emit(errors: List[str], output: str = '') -> str:
    return '\n'.join(errors + ([output] if output else []))


def _display_path(start: str, base: str, path: str) -> str:
    """Render absolute ``path`` relative to the operand it was found under"""
    if base == '/':
        rel = path if path != '/' else ''
    else:
        rel = path[len(base):]
    return start.rstrip('/') + rel if rel else start


def _regex(pattern: str, extended: bool) -> str:
    """Translate a POSIX basic regular expression to Python syntax"""
    if extended:
        return pattern
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == '\\' and i + 1 < len(pattern):
            nxt = pattern[i + 1]
            out.append(nxt if nxt in '|+?(){}' else ch + nxt)
            i += 2
            continue
        out.append('\\' + ch if ch in '|+?(){}' else ch)
        i += 1
    return ''.join(out)


def _leading_number(text: str) -> float:
    match = _NUMBER.match(text)
    return float(match.group(1)) if match else 0.0


def _parse_ranges(spec: str) -> Optional[List[Tuple[int, Optional[int]]]]:
    """Parse a cut list such as ``1,3-5,7-``"""
    ranges: List[Tuple[int, Optional[int]]] = []
    for part in spec.split(','):
        lo, sep, hi = part.partition('-')
        if not sep:
            if not part.isdigit():
                return None
            ranges.append((int(part), int(part)))
            continue
        if (lo and not lo.isdigit()) or (hi and not hi.isdigit()) or not (lo or hi):
            return None
        ranges.append((int(lo) if lo else 1, int(hi) if hi else None))
    if any(lo < 1 for lo, _ in ranges):
        return None
    return ranges


def _in_ranges(n: int, ranges: List[Tuple[int, Optional[int]]]) -> bool:
    return any(lo <= n and (hi is None or n <= hi) for lo, hi in ranges)


def _expand_tr_set(spec: str) -> str:
    """Expand ranges, classes and escapes in a tr set"""
    out = []
    i = 0
    while i < len(spec):
        if spec[i] == '[':
            end = spec.find(':]', i)
            name = spec[i:end + 2] if end > 0 else ''
            if name in _TR_CLASSES:
                out.append(_TR_CLASSES[name])
                i = end + 2
                continue
        ch = spec[i]
        if ch == '\\' and i + 1 < len(spec):
            ch = {'n': '\n', 't': '\t', '\\': '\\'}.get(spec[i + 1], spec[i + 1])
            i += 2
        else:
            i += 1
        if i + 1 < len(spec) and spec[i] == '-' and ord(spec[i + 1]) >= ord(ch):
            out.append(''.join(chr(c) for c in range(ord(ch), ord(spec[i + 1]) + 1)))
            i += 2
            continue
        out.append(ch)
    return ''.join(out)


def _sed_replacement(text: str) -> Tuple[List, int]:
    """Split a sed replacement into literals and group numbers.

    Returns the parts and the highest group referenced.
    """
    parts: List = []
    literal = ''
    highest = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt.isdigit():
                if literal:
                    parts.append(literal)
                    literal = ''
                parts.append(int(nxt))
                highest = max(highest, int(nxt))
            else:
                literal += {'n': '\n', 't': '\t'}.get(nxt, nxt)
            i += 2
            continue
        if ch == '&':
            if literal:
                parts.append(literal)
                literal = ''
            parts.append(0)
        else:
            literal += ch
        i += 1
    if literal:
        parts.append(literal)
    return parts, highest


def _awk_terms(text: str) -> Optional[List[List[str]]]:
    """Comma-separated print items, each a list of concatenated terms"""
    groups: List[List[str]] = [[]]
    pos = 0
    while pos < len(text):
        match = _AWK_TERM.match(text, pos)
        if match is None:
            if text[pos:].strip():
                return None
            break
        pos = match.end()
        term = match.group(1)
        if term == ',':
            groups.append([])
        else:
            groups[-1].append(term)
    return groups


def _awk_value(term: str, line: str, fields: List[str], nr: int) -> str:
    if term.startswith('"'):
        return term[1:-1].replace('\\t', '\t').replace('\\n', '\n').replace('\\"', '"')
    if term == 'NR':
        return str(nr)
    if term == 'NF':
        return str(len(fields))
    if term == '$NF':
        return fields[-1] if fields else ''
    if term == '$0':
        return line
    n = int(term[1:])
    return fields[n - 1] if 0 < n <= len(fields) else ''


def _describe_content(content: str) -> str:
    """Guess a file type the way file(1) reports it"""
    if not content:
        return 'empty'
    first = content.split('\n', 1)[0]
    if first.startswith('#!'):
        words = first[2:].split()
        interpreter = words[0].rpartition('/')[2] if words else 'sh'
        if interpreter == 'env' and len(words) > 1:
            interpreter = words[1]
        if interpreter == 'bash':
            return 'Bourne-Again shell script, ASCII text executable'
        if interpreter == 'sh':
            return 'POSIX shell script, ASCII text executable'
        label = {'python3': 'Python', 'python': 'Python', 'perl': 'Perl', 'node': 'Node.js'}
        return f"{label.get(interpreter, interpreter)} script, ASCII text executable"
    stripped = content.lstrip().lower()
    if stripped.startswith('<!doctype html') or stripped.startswith('<html'):
        return 'HTML document, ASCII text'
    if stripped.startswith(('{', '[')):
        try:
            json.loads(content)
            return 'JSON text data'
        except ValueError:
            pass
    return 'ASCII text' if content.isascii() else 'Unicode text, UTF-8 text'


def _stat_time(ts: float) -> str:
    dt = datetime.fromtimestamp(ts, timezone.utc)
    return f"{dt:%Y-%m-%d %H:%M:%S}.000000000 +0000"


class ShellInterpreter:
    """Bash-like command interpreter for one lab session.

    Owns the alias table and the simulated process/service tables; the
    session (cwd, identity, environment, history) lives on the
    filesystem so a lesson reset replaces it together with the tree.
    """

    def __init__(self, fs: VirtualFilesystem, network: VirtualNetwork,
                 rng: Optional[random.Random] = None, clock: Optional[Callable[[], float]] = None):
        self.fs = fs
        self.network = network
        self.rng = rng or random.Random()
        self.clock = clock or time.time
        self.processes = ProcessTable(self.rng, self.clock)
        self.services = ServiceManager(self.processes, self.clock, fs.hostname)
        self.aliases: Dict[str, str] = dict(DEFAULT_ALIASES)

        self.handlers: Dict[str, Handler] = {
            # Navigation and files
            'cd': self._cmd_cd,
            'pwd': self._cmd_pwd,
            'ls': self._cmd_ls,
            'cat': self._cmd_cat,
            'less': self._cmd_less,
            'more': self._cmd_less,
            'touch': self._cmd_touch,
            'mkdir': self._cmd_mkdir,
            'rm': self._cmd_rm,
            'rmdir': self._cmd_rmdir,
            'cp': self._cmd_cp,
            'mv': self._cmd_mv,
            'ln': self._cmd_ln,
            # Text processing
            'echo': self._cmd_echo,
            'head': self._cmd_head,
            'tail': self._cmd_tail,
            'grep': self._cmd_grep,
            'wc': self._cmd_wc,
            'sort': self._cmd_sort,
            'uniq': self._cmd_uniq,
            'cut': self._cmd_cut,
            'tr': self._cmd_tr,
            'sed': self._cmd_sed,
            'awk': self._cmd_awk,
            'tee': self._cmd_tee,
            # Inspection
            'file': self._cmd_file,
            'stat': self._cmd_stat,
            'find': self._cmd_find,
            'which': self._cmd_which,
            'type': self._cmd_type,
            'du': self._cmd_du,
            'df': self._cmd_df,
            'diff': self._cmd_diff,
            # Identity and permissions
            'chmod': self._cmd_chmod,
            'chown': self._cmd_chown,
            'chgrp': self._cmd_chgrp,
            'id': self._cmd_id,
            'whoami': self._cmd_whoami,
            'groups': self._cmd_groups,
            'su': self._cmd_su,
            'sudo': self._cmd_sudo,
            'exit': self._cmd_exit,
            'logout': self._cmd_exit,
            # System information
            'uname': self._cmd_uname,
            'hostname': self._cmd_hostname,
            'uptime': self._cmd_uptime,
            'free': self._cmd_free,
            'top': self._cmd_top,
            'ps': self._cmd_ps,
            'kill': self._cmd_kill,
            'date': self._cmd_date,
            'cal': self._cmd_cal,
            'sleep': self._cmd_sleep,
            # Environment
            'env': self._cmd_env,
            'printenv': self._cmd_printenv,
            'set': self._cmd_set,
            'export': self._cmd_export,
            'unset': self._cmd_unset,
            'alias': self._cmd_alias,
            'unalias': self._cmd_unalias,
            # Network
            'ping': self._cmd_ping,
            'traceroute': self._cmd_traceroute,
            'dig': self._cmd_dig,
            'nslookup': self._cmd_nslookup,
            'host': self._cmd_host,
            'curl': self._cmd_curl,
            'wget': self._cmd_wget,
            'ip': self._cmd_ip,
            'ifconfig': self._cmd_ifconfig,
            'netstat': self._cmd_netstat,
            'ss': self._cmd_ss,
            'iptables': self._cmd_iptables,
            'route': self._cmd_route,
            # Services
            'systemctl': self._cmd_systemctl,
            'service': self._cmd_service,
            'journalctl': self._cmd_journalctl,
            # Misc
            'clear': self._cmd_clear,
            'history': self._cmd_history,
            'man': self._cmd_man,
            'help': self._cmd_help,
            'tree': self._cmd_tree,
            'xargs': self._cmd_xargs,
            'basename': self._cmd_basename,
            'dirname': self._cmd_dirname,
            'realpath': self._cmd_realpath,
            'true': self._cmd_true,
            'false': self._cmd_true,
        }

    @property
    def session(self):
        return self.fs.session

    # ------------------------------------------------------------------
    # Line handling

    def execute(self, line: str) -> str:
        """Run one command line typed by the learner and return its output"""
        line = line.strip()
        if not line:
            return ''
        self.session.record_command(line)
        logger.debug(f"[{self.fs.user_name(self.session.uid)}] {line}")
        return self.run_line(self._expand_alias(line))

    def run_line(self, line: str) -> str:
        """Run a line without recording it: output redirection, then pipeline"""
        line = _strip_stderr_redirects(line)
        positions = _find_unquoted(line, '>')
        if not positions:
            return self._run_pipeline(line)

        pos = positions[0]
        append = line[pos + 1:pos + 2] == '>'
        command = line[:pos].strip()
        targets = self.tokenize(line[pos + (2 if append else 1):])
        if not targets:
            return "bash: syntax error near unexpected token `newline'"
        output = self._run_pipeline(command) if command else ''
        if output == CLEAR_SCREEN:
            output = ''
        return self._redirect(targets[0], output, append)

    def _expand_alias(self, line: str) -> str:
        first, sep, rest = line.partition(' ')
        if first in self.aliases:
            return self.aliases[first] + sep + rest
        return line

    def _redirect(self, target: str, output: str, append: bool) -> str:
        """Write command output into ``target``; the terminal sees nothing"""
        if target == '/dev/null':
            return ''
        if self.fs.is_dir(target):
            return f"bash: {target}: Is a directory"
        if not self._parent_exists(target):
            return f"bash: {target}: No such file or directory"
        data = output + '\n' if output else ''
        result = self.fs.append_file(target, data) if append else self.fs.write_file(target, data)
        return '' if result.ok else f"bash: {result.message}"

    def _run_pipeline(self, line: str) -> str:
        cuts = _find_unquoted(line, '|')
        bounds = [-1] + cuts + [len(line)]
        stages = [line[a + 1:b].strip() for a, b in zip(bounds, bounds[1:])]
        if len(stages) > 1 and not all(stages):
            return "bash: syntax error near unexpected token `|'"

        output: Optional[str] = None
        for stage in stages:
            tokens = self.tokenize(stage)
            if not tokens:
                output = ''
                continue
            output = self.dispatch(tokens[0], tokens[1:], output)
        return output or ''

    def tokenize(self, text: str) -> List[str]:
        """Split on unquoted whitespace, strip quotes and expand variables"""
        tokens: List[str] = []
        current = ''
        in_token = False
        quote = None
        i = 0
        while i < len(text):
            ch = text[i]
            if quote:
                if ch == quote:
                    quote = None
                elif ch == '$' and quote == '"':
                    value, i = self._expand_variable(text, i)
                    current += value
                    continue
                else:
                    current += ch
            elif ch in ('"', "'"):
                quote = ch
                in_token = True
            elif ch.isspace():
                if in_token:
                    tokens.append(current)
                    current = ''
                    in_token = False
            elif ch == '$':
                value, i = self._expand_variable(text, i)
                current += value
                in_token = in_token or bool(value)
                continue
            elif ch == '~' and not in_token and (i + 1 == len(text) or text[i + 1] in '/ \t'):
                current += self.session.home
                in_token = True
            else:
                current += ch
                in_token = True
            i += 1
        if in_token:
            tokens.append(current)
        return tokens

    def _expand_variable(self, text: str, i: int) -> Tuple[str, int]:
        """Value of the reference at ``text[i] == '$'`` and the index after it"""
        rest = text[i + 1:]
        if rest.startswith('{'):
            end = rest.find('}')
            if end > 0:
                return self.session.env.get(rest[1:end], ''), i + end + 2
        match = _VAR_NAME.match(rest)
        if match:
            return self.session.env.get(match.group(0), ''), i + 1 + match.end()
        return '$', i + 1

    def dispatch(self, cmd: str, args: List[str], stdin: Optional[str] = None) -> str:
        """Run a single command with already expanded arguments"""
        handler = self.handlers.get(cmd)
        if handler is None:
            if '/' in cmd:
                def handler(a: List[str], s: Optional[str]) -> str:
                    return self._run_path(cmd, a, s)
            elif _ASSIGNMENT.match(cmd) and not args:
                name, _, value = cmd.partition('=')
                self.session.env[name] = value
                return ''
            else:
                return f"{cmd}: command not found"
        try:
            return handler(args, stdin)
        except Exception as e:
            logger.exception(f"Command {cmd} failed")
            return f"{cmd}: error: {e}"

    def _run_path(self, cmd: str, args: List[str], stdin: Optional[str]) -> str:
        """Run ``/usr/bin/ls`` style paths and executable scripts"""
        name = cmd.rpartition('/')[2]
        abs_path = self.fs.resolve_path(cmd)
        if name in self.handlers and abs_path.rpartition('/')[0] in ('/bin', '/usr/bin', '/sbin', '/usr/sbin'):
            return self.dispatch(name, args, stdin)
        node = self.fs.get_node(cmd)
        if node is None:
            return f"bash: {cmd}: No such file or directory"
        if node.is_directory:
            return f"bash: {cmd}: Is a directory"
        if not node.permissions & 0o111:
            return f"bash: {cmd}: Permission denied"

        outputs = []
        for raw in node.content.split('\n'):
            raw = raw.strip()
            if not raw or raw.startswith('#'):
                continue
            if raw.split()[0] == 'exit':
                break
            output = self.run_line(raw)
            if output:
                outputs.append(output)
        return '\n'.join(outputs)

    # ------------------------------------------------------------------
    # Shared helpers

    def _parent_exists(self, path: str) -> bool:
        return self.fs.is_dir(self.fs.resolve_path(path).rpartition('/')[0] or '/')

    def _read_inputs(self, cmd: str, paths: List[str], stdin: Optional[str],
                     missing: str = '{cmd}: {path}: No such file or directory',
                     directory: str = '{cmd}: {path}: Is a directory'
                     ) -> Tuple[List[Tuple[str, str]], List[str]]:
        """Contents of the file operands (or piped input) plus error lines"""
        sources: List[Tuple[str, str]] = []
        errors: List[str] = []
        for path in paths or ['-']:
            if path == '-':
                sources.append(('(standard input)', _as_input(stdin)))
                continue
            result = self.fs.read_file(path)
            if result.ok:
                sources.append((path, result.value))
            elif result.kind is ErrorKind.IS_A_DIRECTORY:
                errors.append(directory.format(cmd=cmd, path=path))
            else:
                errors.append(missing.format(cmd=cmd, path=path))
        return sources, errors

    def _binary_path(self, name: str) -> str:
        return f"/usr/sbin/{name}" if name in SBIN_COMMANDS else f"/usr/bin/{name}"

    # ------------------------------------------------------------------
    # Navigation and file operations

    def _cmd_cd(self, args: List[str], stdin: Optional[str]) -> str:
        """Change directory"""
        if len(args) > 1:
            return 'bash: cd: too many arguments'
        target = args[0] if args else self.session.home
        announce = False
        if target == '-':
            target = self.session.env.get('OLDPWD', '')
            if not target:
                return 'bash: cd: OLDPWD not set'
            announce = True
        node = self.fs.get_node(target)
        if node is None:
            return f"bash: cd: {target}: No such file or directory"
        if not node.is_directory:
            return f"bash: cd: {target}: Not a directory"
        self.session.chdir(self.fs.resolve_path(target))
        return self.session.cwd if announce else ''

    def _cmd_pwd(self, args: List[str], stdin: Optional[str]) -> str:
        """Print working directory"""
        return self.session.cwd

    def _cmd_ls(self, args: List[str], stdin: Optional[str]) -> str:
        """List directory contents"""
        flags, paths = _split_flags(args)
        long = 'l' in flags
        human = 'h' in flags
        classify = 'F' in flags
        almost_all = 'A' in flags and 'a' not in flags
        recursive = 'R' in flags

        errors = []
        listings = []
        for path in paths or ['.']:
            result = self.fs.ls(path, all='a' in flags or 'A' in flags, recursive=recursive)
            if not result.ok:
                errors.append(f"ls: {result.message}")
                continue
            listings.extend(result.value)

        sections = []
        files = [listing.entries[0] for listing in listings if listing.is_file]
        if files:
            sections.append(self._render_entries(files, long, human, classify))
        headers = len(paths) > 1 or recursive
        for listing in listings:
            if listing.is_file:
                continue
            entries = listing.entries
            if almost_all:
                entries = [e for e in entries if e.name not in ('.', '..')]
            body = self._render_entries(entries, long, human, classify,
                                        total=sum(e.blocks for e in entries))
            if headers:
                body = f"{listing.path}:\n{body}" if body else f"{listing.path}:"
            sections.append(body)
        return _emit(errors, '\n\n'.join(s for s in sections if s))

    def _render_entries(self, entries: List[LsEntry], long: bool, human: bool,
                        classify: bool, total: Optional[int] = None) -> str:
        names = [e.name + ('/' if classify and e.is_directory and e.name not in ('.', '..') else '')
                 for e in entries]
        if not long:
            return '  '.join(names)

        rows = [] if total is None else [f"total {total}"]
        if not entries:
            return '\n'.join(rows)
        sizes = [e.size_display(human) for e in entries]
        links_w = max(len(str(e.links)) for e in entries)
        owner_w = max(len(e.owner) for e in entries)
        group_w = max(len(e.group) for e in entries)
        size_w = max(len(s) for s in sizes)
        for entry, name, size in zip(entries, names, sizes):
            rows.append(f"{entry.permissions} {entry.links:>{links_w}} {entry.owner:<{owner_w}} "
                        f"{entry.group:<{group_w}} {size:>{size_w}} {entry.date} {name}")
        return '\n'.join(rows)

    def _cmd_cat(self, args: List[str], stdin: Optional[str]) -> str:
        """Concatenate and print files"""
        flags, paths = _split_flags(args)
        if not paths and stdin is None:
            return ''
        sources, errors = self._read_inputs('cat', paths, stdin)
        text = _chomp(''.join(content for _, content in sources))
        if 'n' in flags and text:
            text = '\n'.join(f"{i:>6}\t{line}" for i, line in enumerate(text.split('\n'), 1))
        return _emit(errors, text)

    def _cmd_less(self, args: List[str], stdin: Optional[str]) -> str:
        """Page through a file"""
        _, paths = _split_flags(args)
        if not paths and stdin is None:
            return 'Missing filename ("less --help" for help)'
        return self._cmd_cat(paths, stdin)

    def _cmd_touch(self, args: List[str], stdin: Optional[str]) -> str:
        """Create files or update timestamps"""
        _, paths = _split_flags(args)
        if not paths:
            return "touch: missing file operand\nTry 'touch --help' for more information."
        errors = []
        for path in paths:
            result = self.fs.touch(path)
            if not result.ok:
                errors.append(f"touch: {result.message}")
        return '\n'.join(errors)

    def _cmd_mkdir(self, args: List[str], stdin: Optional[str]) -> str:
        """Create directories"""
        flags, paths = _split_flags(args)
        if not paths:
            return "mkdir: missing operand\nTry 'mkdir --help' for more information."
        errors = []
        for path in paths:
            result = self.fs.mkdirp(path) if 'p' in flags else self.fs.mkdir(path)
            if not result.ok:
                errors.append(f"mkdir: {result.message}")
        return '\n'.join(errors)

    def _cmd_rm(self, args: List[str], stdin: Optional[str]) -> str:
        """Remove files or directories"""
        flags, paths = _split_flags(args)
        recursive = 'r' in flags or 'R' in flags
        force = 'f' in flags
        if not paths:
            return '' if force else "rm: missing operand\nTry 'rm --help' for more information."

        errors = []
        for path in paths:
            if path.rstrip('/').rpartition('/')[2] in ('.', '..'):
                errors.append(f"rm: refusing to remove '.' or '..' directory: skipping '{path}'")
                continue
            node = self.fs.get_node(path)
            if node is None:
                if not force:
                    errors.append(f"rm: cannot remove '{path}': No such file or directory")
                continue
            if node.is_directory and not recursive:
                errors.append(f"rm: cannot remove '{path}': Is a directory")
                continue
            result = self.fs.rm(path, recursive=recursive)
            if result.ok:
                continue
            if result.kind is ErrorKind.BUSY:
                errors.append("rm: it is dangerous to operate recursively on '/'\n"
                              "rm: use --no-preserve-root to override this failsafe")
            else:
                errors.append(f"rm: {result.message}")
        return '\n'.join(errors)

    def _cmd_rmdir(self, args: List[str], stdin: Optional[str]) -> str:
        """Remove empty directories"""
        _, paths = _split_flags(args)
        if not paths:
            return "rmdir: missing operand\nTry 'rmdir --help' for more information."
        errors = []
        for path in paths:
            node = self.fs.get_node(path)
            if node is None:
                errors.append(f"rmdir: failed to remove '{path}': No such file or directory")
            elif not node.is_directory:
                errors.append(f"rmdir: failed to remove '{path}': Not a directory")
            elif node.children:
                errors.append(f"rmdir: failed to remove '{path}': Directory not empty")
            else:
                result = self.fs.rm(path)
                if not result.ok:
                    errors.append(f"rmdir: failed to remove '{path}': {result.kind.value}")
        return '\n'.join(errors)

    def _copy_or_move(self, cmd: str, args: List[str]) -> str:
        flags, paths = _split_flags(args)
        if not paths:
            return f"{cmd}: missing file operand\nTry '{cmd} --help' for more information."
        if len(paths) == 1:
            return (f"{cmd}: missing destination file operand after '{paths[0]}'\n"
                    f"Try '{cmd} --help' for more information.")
        *sources, dest = paths
        if len(sources) > 1 and not self.fs.is_dir(dest):
            return f"{cmd}: target '{dest}' is not a directory"

        recursive = any(f in flags for f in 'rRa')
        errors = []
        for src in sources:
            if cmd == 'cp':
                result = self.fs.cp(src, dest, recursive=recursive)
            else:
                result = self.fs.mv(src, dest)
            if not result.ok:
                errors.append(f"{cmd}: {result.message}")
        return '\n'.join(errors)

    def _cmd_cp(self, args: List[str], stdin: Optional[str]) -> str:
        """Copy files and directories"""
        return self._copy_or_move('cp', args)

    def _cmd_mv(self, args: List[str], stdin: Optional[str]) -> str:
        """Move or rename files"""
        return self._copy_or_move('mv', args)

    def _cmd_ln(self, args: List[str], stdin: Optional[str]) -> str:
        """Make links between files (materialized as copies)"""
        flags, paths = _split_flags(args)
        if not paths:
            return "ln: missing file operand\nTry 'ln --help' for more information."
        target = paths[0]
        link = paths[1] if len(paths) > 1 else target.rstrip('/').rpartition('/')[2]
        kind = 'symbolic link' if 's' in flags else 'hard link'

        if not self.fs.exists(target):
            return f"ln: failed to access '{target}': No such file or directory"
        if 's' not in flags and self.fs.is_dir(target):
            return f"ln: {target}: hard link not allowed for directory"
        if self.fs.exists(link) and not self.fs.is_dir(link):
            if 'f' not in flags:
                return f"ln: failed to create {kind} '{link}': File exists"
            self.fs.rm(link)
        result = self.fs.cp(target, link, recursive=True)
        return '' if result.ok else f"ln: {result.message}"

    # ------------------------------------------------------------------
    # Text processing

    def _cmd_echo(self, args: List[str], stdin: Optional[str]) -> str:
        """Display a line of text"""
        words = list(args)
        interpret = False
        while words and re.fullmatch(r'-[neE]+', words[0]):
            option = words.pop(0)
            if 'e' in option:
                interpret = True
            if 'E' in option:
                interpret = False
        text = ' '.join(words)
        if interpret:
            text = _ECHO_ESCAPE.sub(lambda m: _ECHO_ESCAPES.get(m.group(1), m.group(0)), text)
        return text

    def _line_count_args(self, args: List[str]) -> Tuple[str, List[str]]:
        """Split head/tail arguments into the line count and operands"""
        count = '10'
        operands = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg in ('-n', '--lines') and i + 1 < len(args):
                count = args[i + 1]
                i += 2
                continue
            if arg.startswith('--lines='):
                count = arg.split('=', 1)[1]
            elif arg.startswith('-n') and len(arg) > 2:
                count = arg[2:]
            elif re.fullmatch(r'-\d+', arg):
                count = arg[1:]
            elif arg == '-' or not arg.startswith('-'):
                operands.append(arg)
            i += 1
        return count, operands

    def _head_or_tail(self, cmd: str, args: List[str], stdin: Optional[str]) -> str:
        count, paths = self._line_count_args(args)
        from_start = cmd == 'tail' and count.startswith('+')
        try:
            n = int(count)
        except ValueError:
            return f"{cmd}: invalid number of lines: '{count}'"

        sources, errors = self._read_inputs(
            cmd, paths, stdin,
            missing="{cmd}: cannot open '{path}' for reading: No such file or directory",
            directory="{cmd}: error reading '{path}': Is a directory")
        blocks = []
        for name, text in sources:
            lines = _lines(text)
            if cmd == 'head':
                picked = lines[:n]
            elif from_start:
                picked = lines[max(n - 1, 0):]
            else:
                picked = lines[-abs(n):] if n else []
            body = '\n'.join(picked)
            if len(sources) > 1:
                body = f"==> {name} <==\n{body}" if body else f"==> {name} <=="
            blocks.append(body)
        return _emit(errors, ('\n\n' if len(sources) > 1 else '\n').join(blocks))

    def _cmd_head(self, args: List[str], stdin: Optional[str]) -> str:
        """Output the first part of files"""
        return self._head_or_tail('head', args, stdin)

    def _cmd_tail(self, args: List[str], stdin: Optional[str]) -> str:
        """Output the last part of files; -f returns immediately"""
        return self._head_or_tail('tail', [a for a in args if a not in ('-f', '-F', '--follow')], stdin)

    def _cmd_grep(self, args: List[str], stdin: Optional[str]) -> str:
        """Print lines matching a pattern"""
        long_flags = {'--ignore-case': 'i', '--count': 'c', '--line-number': 'n',
                      '--invert-match': 'v', '--recursive': 'r', '--files-with-matches': 'l',
                      '--word-regexp': 'w', '--extended-regexp': 'E', '--fixed-strings': 'F',
                      '--only-matching': 'o', '--no-filename': 'h', '--quiet': 'q'}
        flags = ''
        patterns: List[str] = []
        operands: List[str] = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg in ('-e', '--regexp') and i + 1 < len(args):
                patterns.append(args[i + 1])
                i += 2
                continue
            if arg in long_flags:
                flags += long_flags[arg]
            elif arg.startswith('--'):
                pass
            elif arg.startswith('-') and len(arg) > 1:
                flags += arg[1:]
            else:
                operands.append(arg)
            i += 1
        if not patterns:
            if not operands:
                return "Usage: grep [OPTION]... PATTERNS [FILE]...\nTry 'grep --help' for more information."
            patterns = [operands.pop(0)]

        if 'F' in flags:
            source = '|'.join(re.escape(p) for p in patterns)
        else:
            source = '|'.join(f"(?:{_regex(p, 'E' in flags)})" for p in patterns)
        if 'w' in flags:
            source = rf"\b(?:{source})\b"
        try:
            regex = re.compile(source, re.IGNORECASE if 'i' in flags else 0)
        except re.error:
            return 'grep: Invalid regular expression'

        recursive = 'r' in flags or 'R' in flags
        sources: List[Tuple[str, str]] = []
        errors: List[str] = []
        if recursive:
            for op in operands or ['.']:
                if not self.fs.is_dir(op):
                    found, missing = self._read_inputs('grep', [op], stdin)
                    sources.extend(found)
                    errors.extend(missing)
                    continue
                base = self.fs.resolve_path(op)
                for path in self.fs.find(op, type='f'):
                    sources.append((_display_path(op, base, path), self.fs.read_file(path).value))
        else:
            sources, errors = self._read_inputs('grep', operands, stdin)

        prefix_names = (recursive or len(sources) > 1) and 'h' not in flags
        invert = 'v' in flags
        out = []
        for name, text in sources:
            matched = [(num, line) for num, line in enumerate(_lines(text), 1)
                       if bool(regex.search(line)) != invert]
            if 'q' in flags:
                continue
            if 'l' in flags:
                if matched:
                    out.append(name)
                continue
            if 'c' in flags:
                out.append(f"{name}:{len(matched)}" if prefix_names else str(len(matched)))
                continue
            for num, line in matched:
                prefix = (f"{name}:" if prefix_names else '') + (f"{num}:" if 'n' in flags else '')
                if 'o' in flags and not invert:
                    out.extend(prefix + m.group(0) for m in regex.finditer(line) if m.group(0))
                else:
                    out.append(prefix + line)
        return _emit(errors, '\n'.join(out))

    def _cmd_wc(self, args: List[str], stdin: Optional[str]) -> str:
        """Print line, word and byte counts"""
        flags, paths = _split_flags(args)
        selected = [f for f in 'lwmc' if f in flags] or ['l', 'w', 'c']
        sources, errors = self._read_inputs('wc', paths, stdin)

        rows: List[Tuple[List[int], str]] = []
        for name, text in sources:
            counts = {
                'l': text.count('\n') + (1 if text and not text.endswith('\n') else 0),
                'w': len(text.split()),
                'm': len(text),
                'c': len(text.encode('utf-8')),
            }
            rows.append(([counts[f] for f in selected], name))
        if not paths:
            values = rows[0][0]
            if len(values) == 1:
                return str(values[0])
            return ' '.join(f"{v:>7}" for v in values)

        if len(rows) > 1:
            rows.append(([sum(col) for col in zip(*(values for values, _ in rows))], 'total'))
        if not rows:
            return _emit(errors)
        width = max(len(str(v)) for values, _ in rows for v in values)
        lines = [' '.join(f"{v:>{width}}" for v in values) + f" {name}" for values, name in rows]
        return _emit(errors, '\n'.join(lines))

    def _cmd_sort(self, args: List[str], stdin: Optional[str]) -> str:
        """Sort lines of text"""
        flags = ''
        key_field: Optional[int] = None
        separator: Optional[str] = None
        paths = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg in ('-k', '-t') and i + 1 < len(args):
                value = args[i + 1]
                i += 2
            elif arg.startswith('-k') or arg.startswith('-t'):
                value = arg[2:]
                i += 1
            else:
                if arg.startswith('-') and len(arg) > 1:
                    flags += arg.lstrip('-')
                else:
                    paths.append(arg)
                i += 1
                continue
            if arg.startswith('-t'):
                separator = value
                continue
            digits = re.match(r'\d+', value)
            if not digits or int(digits.group(0)) < 1:
                return f"sort: invalid number at field start: invalid count at start of '{value}'"
            key_field = int(digits.group(0))
            if value.rstrip('0123456789,').endswith('n'):
                flags += 'n'

        sources, errors = self._read_inputs('sort', paths, stdin)
        lines = [line for _, text in sources for line in _lines(text)]

        def field(line: str) -> str:
            if key_field is None:
                return line
            parts = line.split(separator) if separator else line.split()
            return (separator or ' ').join(parts[key_field - 1:])

        if 'n' in flags:
            def primary(line: str):
                return _leading_number(field(line))
        elif 'f' in flags:
            def primary(line: str):
                return field(line).lower()
        else:
            primary = field
        lines.sort(key=lambda line: (primary(line), line), reverse='r' in flags)
        if 'u' in flags:
            unique: List[str] = []
            for line in lines:
                if not unique or primary(unique[-1]) != primary(line):
                    unique.append(line)
            lines = unique
        return _emit(errors, '\n'.join(lines))

    def _cmd_uniq(self, args: List[str], stdin: Optional[str]) -> str:
        """Report or omit adjacent repeated lines"""
        flags, paths = _split_flags(args)
        sources, errors = self._read_inputs('uniq', paths[:1], stdin)
        lines = [line for _, text in sources for line in _lines(text)]
        keyfunc = (lambda line: line.lower()) if 'i' in flags else None

        out = []
        for _, group in itertools.groupby(lines, key=keyfunc):
            members = list(group)
            count = len(members)
            if 'd' in flags and count < 2:
                continue
            if 'u' in flags and count > 1:
                continue
            out.append(f"{count:>7} {members[0]}" if 'c' in flags else members[0])
        return _emit(errors, '\n'.join(out))

    def _cmd_cut(self, args: List[str], stdin: Optional[str]) -> str:
        """Remove sections from each line"""
        delimiter = '\t'
        fields: Optional[str] = None
        chars: Optional[str] = None
        paths = []
        i = 0
        while i < len(args):
            arg = args[i]
            opt = arg[:2]
            if opt in ('-d', '-f', '-c', '-b') and arg.startswith('-'):
                value = arg[2:]
                if not value:
                    if i + 1 >= len(args):
                        return f"cut: option requires an argument -- '{opt[1]}'"
                    value = args[i + 1]
                    i += 1
                if opt == '-d':
                    delimiter = value
                elif opt == '-f':
                    fields = value
                else:
                    chars = value
            elif arg.startswith('--delimiter='):
                delimiter = arg.split('=', 1)[1]
            elif arg.startswith('--fields='):
                fields = arg.split('=', 1)[1]
            else:
                paths.append(arg)
            i += 1

        spec = fields if fields is not None else chars
        if spec is None:
            return ("cut: you must specify a list of bytes, characters, or fields\n"
                    "Try 'cut --help' for more information.")
        if len(delimiter) != 1:
            return 'cut: the delimiter must be a single character'
        ranges = _parse_ranges(spec)
        if ranges is None:
            return f"cut: invalid field value '{spec}'"

        sources, errors = self._read_inputs('cut', paths, stdin)
        out = []
        for _, text in sources:
            for line in _lines(text):
                if fields is None:
                    out.append(''.join(ch for n, ch in enumerate(line, 1) if _in_ranges(n, ranges)))
                elif delimiter not in line:
                    out.append(line)
                else:
                    parts = line.split(delimiter)
                    out.append(delimiter.join(p for n, p in enumerate(parts, 1) if _in_ranges(n, ranges)))
        return _emit(errors, '\n'.join(out))

    def _cmd_tr(self, args: List[str], stdin: Optional[str]) -> str:
        """Translate, squeeze or delete characters"""
        flags, sets = _split_flags(args)
        delete = 'd' in flags
        squeeze = 's' in flags
        if not sets:
            return "tr: missing operand\nTry 'tr --help' for more information."
        if not delete and not squeeze and len(sets) < 2:
            return (f"tr: missing operand after '{sets[0]}'\n"
                    "Two strings must be given when translating.")

        text = stdin or ''
        first = _expand_tr_set(sets[0])
        if delete:
            text = text.translate({ord(c): None for c in first})
        elif len(sets) > 1:
            second = _expand_tr_set(sets[1])
            if not second:
                return 'tr: when not truncating set1, string2 must be non-empty'
            second = (second + second[-1] * len(first))[:len(first)]
            text = text.translate(str.maketrans(first, second))
        if squeeze:
            chars = _expand_tr_set(sets[-1])
            if chars:
                text = re.sub('([' + re.escape(chars) + r'])\1+', r'\1', text)
        return text

    def _compile_sed(self, script: str, extended: bool):
        """Compile an ``s/pattern/replacement/flags`` script.

        Returns ``(substitute, None)`` or ``(None, error line)``.
        """
        where = f"sed: -e expression #1, char {len(script)}"
        if len(script) < 2 or script[0] != 's':
            return None, f"sed: -e expression #1, char 1: unknown command: `{script[:1]}'"
        delim = script[1]
        parts = []
        current = ''
        rest = None
        i = 2
        while i < len(script):
            ch = script[i]
            if ch == '\\' and i + 1 < len(script):
                nxt = script[i + 1]
                current += nxt if nxt == delim else ch + nxt
                i += 2
                continue
            if ch == delim:
                parts.append(current)
                current = ''
                if len(parts) == 2:
                    rest = script[i + 1:]
                    break
            else:
                current += ch
            i += 1
        if rest is None:
            return None, f"{where}: unterminated `s' command"

        pattern, replacement = parts
        global_replace = False
        ignore_case = False
        nth = 0
        for flag in rest.strip():
            if flag == 'g':
                global_replace = True
            elif flag in 'iI':
                ignore_case = True
            elif flag.isdigit():
                nth = nth * 10 + int(flag)
            elif flag != 'p':
                return None, f"{where}: unknown option to `s'"
        try:
            regex = re.compile(_regex(pattern, extended), re.IGNORECASE if ignore_case else 0)
        except re.error:
            return None, f"{where}: Invalid preceding regular expression"
        pieces, highest = _sed_replacement(replacement)
        if highest > regex.groups:
            return None, f"{where}: invalid reference \\{highest} on `s' command's RHS"

        def expand(match) -> str:
            return ''.join(match.group(p) or '' if isinstance(p, int) else p for p in pieces)

        def substitute(line: str) -> str:
            if not nth:
                return regex.sub(expand, line, count=0 if global_replace else 1)
            seen = [0]

            def pick(match) -> str:
                seen[0] += 1
                if seen[0] == nth or (global_replace and seen[0] > nth):
                    return expand(match)
                return match.group(0)
            return regex.sub(pick, line)

        return substitute, None

    def _cmd_sed(self, args: List[str], stdin: Optional[str]) -> str:
        """Stream editor for substitutions"""
        in_place = False
        extended = False
        script: Optional[str] = None
        paths = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == '-e' and i + 1 < len(args):
                script = args[i + 1]
                i += 2
                continue
            if arg.startswith('-i') or arg == '--in-place':
                in_place = True
            elif arg in ('-E', '-r', '--regexp-extended'):
                extended = True
            elif arg.startswith('-') and len(arg) > 1:
                pass
            elif script is None:
                script = arg
            else:
                paths.append(arg)
            i += 1
        if script is None:
            return 'Usage: sed [OPTION]... {script-only-if-no-other-script} [input-file]...'
        substitute, error = self._compile_sed(script.strip(), extended)
        if error:
            return error

        def apply(text: str) -> str:
            edited = '\n'.join(substitute(line) for line in _lines(text))
            return edited + '\n' if text.endswith('\n') else edited

        missing = "{cmd}: can't read {path}: No such file or directory"
        if in_place:
            if not paths:
                return 'sed: no input files'
            errors = []
            for path in paths:
                sources, failed = self._read_inputs(
                    'sed', [path], None, missing=missing,
                    directory="{cmd}: couldn't edit {path}: not a regular file")
                errors.extend(failed)
                for name, text in sources:
                    self.fs.write_file(name, apply(text))
            return '\n'.join(errors)

        sources, errors = self._read_inputs('sed', paths, stdin, missing=missing,
                                            directory='{cmd}: read error on {path}: Is a directory')
        return _emit(errors, _chomp(''.join(apply(text) for _, text in sources)))

    def _cmd_awk(self, args: List[str], stdin: Optional[str]) -> str:
        """Print selected fields of each line"""
        separator: Optional[str] = None
        program: Optional[str] = None
        paths = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == '-F' and i + 1 < len(args):
                separator = args[i + 1]
                i += 2
                continue
            if arg.startswith('-F'):
                separator = arg[2:]
            elif program is None:
                program = arg
            else:
                paths.append(arg)
            i += 1
        if program is None:
            return 'usage: awk [-F fs][-v var=value][prog | -f progfile][file ...]'

        match = _AWK_PROGRAM.fullmatch(program.strip())
        groups = _awk_terms(match.group('args') or '$0') if match else None
        if groups is None:
            return f"awk: cmd. line:1: {program}\nawk: cmd. line:1: syntax error"
        pattern = re.compile(match.group('pattern')) if match.group('pattern') else None
        if separator in ('\\t', 't'):
            separator = '\t'

        sources, errors = self._read_inputs(
            'awk', paths, stdin,
            missing="{cmd}: cmd. line:1: fatal: cannot open file '{path}' for reading: "
                    "No such file or directory")
        out = []
        lines = [line for _, text in sources for line in _lines(text)]
        for nr, line in enumerate(lines, 1):
            if pattern and not pattern.search(line):
                continue
            if separator is None or separator == ' ':
                fields = line.split()
            elif len(separator) == 1:
                fields = line.split(separator)
            else:
                fields = re.split(separator, line)
            out.append(' '.join(''.join(_awk_value(t, line, fields, nr) for t in group)
                                for group in groups))
        return _emit(errors, '\n'.join(out))

    def _cmd_tee(self, args: List[str], stdin: Optional[str]) -> str:
        """Copy standard input to files and standard output"""
        flags, paths = _split_flags(args)
        data = _as_input(stdin)
        errors = []
        for path in paths:
            if self.fs.is_dir(path):
                errors.append(f"tee: {path}: Is a directory")
                continue
            if not self._parent_exists(path):
                errors.append(f"tee: {path}: No such file or directory")
                continue
            result = self.fs.append_file(path, data) if 'a' in flags else self.fs.write_file(path, data)
            if not result.ok:
                errors.append(f"tee: {result.message}")
        return '\n'.join(([stdin] if stdin else []) + errors)

    # ------------------------------------------------------------------
    # Inspection

    def _cmd_file(self, args: List[str], stdin: Optional[str]) -> str:
        """Determine file type"""
        _, paths = _split_flags(args)
        if not paths:
            return 'Usage: file [-bcCdEhikLlNnprsSvzZ0] [--apparmor] [--mime-type] file ...'
        out = []
        for path in paths:
            node = self.fs.get_node(path)
            if node is None:
                out.append(f"{path}: cannot open `{path}' (No such file or directory)")
            elif node.is_directory:
                out.append(f"{path}: directory")
            else:
                out.append(f"{path}: {_describe_content(node.content)}")
        return '\n'.join(out)

    def _cmd_stat(self, args: List[str], stdin: Optional[str]) -> str:
        """Display file status"""
        fmt: Optional[str] = None
        paths = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg in ('-c', '--format', '--printf') and i + 1 < len(args):
                fmt = args[i + 1]
                i += 2
                continue
            if arg.startswith('--format=') or arg.startswith('--printf='):
                fmt = arg.split('=', 1)[1]
            elif not arg.startswith('-'):
                paths.append(arg)
            i += 1
        if not paths:
            return "stat: missing operand\nTry 'stat --help' for more information."

        out = []
        for path in paths:
            info = self.fs.stat(path)
            if info is None:
                out.append(f"stat: cannot statx '{path}': No such file or directory")
                continue
            kind = 'directory' if info.is_directory else (
                'regular file' if info.size else 'regular empty file')
            inode = zlib.crc32(info.path.encode('utf-8')) % 900000 + 100000
            if fmt is not None:
                values = {
                    'a': f"{info.permissions:o}", 'A': info.mode_string, 'U': info.owner,
                    'G': info.group, 'u': str(info.uid), 'g': str(info.gid),
                    's': str(info.size), 'n': path, 'F': kind, 'h': str(info.links),
                    'i': str(inode), 'b': str(info.blocks), 'x': _stat_time(info.atime),
                    'y': _stat_time(info.mtime), 'z': _stat_time(info.ctime), '%': '%',
                }
                out.append(re.sub(r'%(.)', lambda m: values.get(m.group(1), m.group(0)), fmt))
                continue
            out.extend([
                f"  File: {path}",
                f"  Size: {info.size:<15}Blocks: {info.blocks:<10} IO Block: 4096   {kind}",
                f"Device: 801h/2049d\tInode: {inode:<11} Links: {info.links}",
                f"Access: (0{info.octal}/{info.mode_string})  Uid: ({info.uid:>5}/{info.owner:>8})"
                f"   Gid: ({info.gid:>5}/{info.group:>8})",
                f"Access: {_stat_time(info.atime)}",
                f"Modify: {_stat_time(info.mtime)}",
                f"Change: {_stat_time(info.ctime)}",
                ' Birth: -',
            ])
        return '\n'.join(out)

    def _cmd_find(self, args: List[str], stdin: Optional[str]) -> str:
        """Search for files in a directory hierarchy"""
        starts = []
        i = 0
        while i < len(args) and not args[i].startswith('-'):
            starts.append(args[i])
            i += 1

        name = iname = ftype = None
        maxdepth: Optional[int] = None
        mindepth = 0
        while i < len(args):
            option = args[i]
            if option == '-print':
                i += 1
                continue
            if option not in ('-name', '-iname', '-type', '-maxdepth', '-mindepth'):
                return f"find: unknown predicate `{option}'"
            if i + 1 >= len(args):
                return f"find: missing argument to `{option}'"
            value = args[i + 1]
            i += 2
            if option == '-name':
                name = value
            elif option == '-iname':
                iname = value
            elif option == '-type':
                if value not in ('f', 'd', 'l'):
                    return f"find: Unknown argument to -type: {value}"
                ftype = value
            elif not value.isdigit():
                return (f"find: Expected a positive decimal integer argument to {option}, "
                        f"but got `{value}'")
            elif option == '-maxdepth':
                maxdepth = int(value)
            else:
                mindepth = int(value)

        out = []
        errors = []
        for start in starts or ['.']:
            if not self.fs.exists(start):
                errors.append(f"find: '{start}': No such file or directory")
                continue
            if ftype == 'l':
                continue
            base = self.fs.resolve_path(start)
            for path in self.fs.find(start, name=name, type=ftype, iname=iname, maxdepth=maxdepth):
                rel = path[len(base):] if base != '/' else path
                depth = rel.count('/') if path != base else 0
                if depth >= mindepth:
                    out.append(_display_path(start, base, path))
        return _emit(errors, '\n'.join(out))

    def _cmd_which(self, args: List[str], stdin: Optional[str]) -> str:
        """Locate a command"""
        _, names = _split_flags(args)
        return '\n'.join(self._binary_path(n) for n in names
                         if n in self.handlers and n not in SHELL_ONLY_BUILTINS)

    def _cmd_type(self, args: List[str], stdin: Optional[str]) -> str:
        """Describe how a name would be interpreted"""
        out = []
        for name in args:
            if name in self.aliases:
                out.append(f"{name} is aliased to `{self.aliases[name]}'")
            elif name in BUILTINS:
                out.append(f"{name} is a shell builtin")
            elif name in self.handlers:
                out.append(f"{name} is {self._binary_path(name)}")
            else:
                out.append(f"bash: type: {name}: not found")
        return '\n'.join(out)

    def _cmd_du(self, args: List[str], stdin: Optional[str]) -> str:
        """Estimate file space usage"""
        flags, paths = _split_flags(args)
        human = 'h' in flags
        errors = []
        rows: List[Tuple[int, str]] = []
        for path in paths or ['.']:
            usage = self.fs.du(path, files='a' in flags)
            if not usage.ok:
                errors.append(f"du: {usage.message}")
                continue
            if 's' not in flags:
                rows.extend((size, f"{path.rstrip('/')}/{sub}") for sub, size in usage.value.entries)
            rows.append((usage.value.bytes, path))

        def size(n: int) -> str:
            kib = math.ceil(n / 1024)
            if not human:
                return str(kib)
            return human_size(kib * 1024) if kib else '0'

        return _emit(errors, '\n'.join(f"{size(n)}\t{path}" for n, path in rows))

    def _cmd_df(self, args: List[str], stdin: Optional[str]) -> str:
        """Report file system disk space usage"""
        flags, _ = _split_flags(args)
        return DF_TABLE_HUMAN if 'h' in flags else DF_TABLE

    def _cmd_diff(self, args: List[str], stdin: Optional[str]) -> str:
        """Compare files line by line"""
        flags, paths = _split_flags(args)
        if len(paths) < 2:
            after = paths[0] if paths else 'diff'
            return f"diff: missing operand after '{after}'\ndiff: Try 'diff --help' for more information."
        contents = []
        for path in paths[:2]:
            result = self.fs.read_file(path)
            if not result.ok:
                return f"diff: {result.message}"
            contents.append(_lines(result.value))
        left, right = contents
        if 'q' in flags:
            return f"Files {paths[0]} and {paths[1]} differ" if left != right else ''

        out = []
        for i in range(max(len(left), len(right))):
            if i < len(left) and i < len(right):
                if left[i] != right[i]:
                    out.extend([f"{i + 1}c{i + 1}", f"< {left[i]}", '---', f"> {right[i]}"])
            elif i < len(left):
                out.extend([f"{i + 1}d{len(right)}", f"< {left[i]}"])
            else:
                out.extend([f"{len(left)}a{i + 1}", f"> {right[i]}"])
        return '\n'.join(out)

    # ------------------------------------------------------------------
    # Identity and permissions

    def _recursive_targets(self, path: str, recursive: bool) -> List[str]:
        if recursive and self.fs.is_dir(path):
            return self.fs.find(path)
        return [path]

    def _cmd_chmod(self, args: List[str], stdin: Optional[str]) -> str:
        """Change file mode bits"""
        recursive = False
        operands = []
        for arg in args:
            if arg in ('-R', '--recursive'):
                recursive = True
            elif arg not in ('-v', '-f', '-c'):
                operands.append(arg)
        if not operands:
            return "chmod: missing operand\nTry 'chmod --help' for more information."
        if len(operands) == 1:
            return f"chmod: missing operand after '{operands[0]}'\nTry 'chmod --help' for more information."
        mode, *paths = operands
        if parse_mode(mode, 0) is None:
            return f"chmod: invalid mode: '{mode}'\nTry 'chmod --help' for more information."

        errors = []
        for path in paths:
            for target in self._recursive_targets(path, recursive):
                result = self.fs.chmod(target, mode)
                if not result.ok:
                    errors.append(f"chmod: {result.message}")
        return '\n'.join(errors)

    def _change_owner(self, cmd: str, args: List[str], group_only: bool) -> str:
        recursive = False
        operands = []
        for arg in args:
            if arg in ('-R', '--recursive'):
                recursive = True
            elif arg not in ('-v', '-f', '-c'):
                operands.append(arg)
        if not operands:
            return f"{cmd}: missing operand\nTry '{cmd} --help' for more information."
        if len(operands) == 1:
            return f"{cmd}: missing operand after '{operands[0]}'\nTry '{cmd} --help' for more information."
        spec, *paths = operands
        if group_only:
            owner, group = None, spec
        else:
            owner, _, group = spec.partition(':')

        errors = []
        for path in paths:
            for target in self._recursive_targets(path, recursive):
                result = self.fs.chown(target, owner or None, group or None)
                if result.ok:
                    continue
                errors.append(f"{cmd}: {result.message}")
                if result.kind in (ErrorKind.UNKNOWN_USER, ErrorKind.UNKNOWN_GROUP):
                    return '\n'.join(errors)
        return '\n'.join(errors)

    def _cmd_chown(self, args: List[str], stdin: Optional[str]) -> str:
        """Change file owner and group"""
        return self._change_owner('chown', args, group_only=False)

    def _cmd_chgrp(self, args: List[str], stdin: Optional[str]) -> str:
        """Change group ownership"""
        return self._change_owner('chgrp', args, group_only=True)

    def _cmd_id(self, args: List[str], stdin: Optional[str]) -> str:
        """Print user and group information"""
        flags, operands = _split_flags(args)
        if operands:
            user = self.fs.find_user(operands[0])
            if user is None:
                return f"id: '{operands[0]}': no such user"
        else:
            user = self.fs.current_user
            if user is None:
                uid = self.session.uid
                return f"uid={uid} gid={uid} groups={uid}"

        names = 'n' in flags
        if 'u' in flags:
            return user.name if names else str(user.uid)
        if 'g' in flags:
            return self.fs.group_name(user.gid) if names else str(user.gid)
        if 'G' in flags:
            return ' '.join(self.fs.group_name(g) if names else str(g) for g in user.groups)
        groups = ','.join(f"{g}({self.fs.group_name(g)})" for g in user.groups)
        return (f"uid={user.uid}({user.name}) gid={user.gid}({self.fs.group_name(user.gid)}) "
                f"groups={groups}")

    def _cmd_whoami(self, args: List[str], stdin: Optional[str]) -> str:
        """Print effective user name"""
        return self.fs.user_name(self.session.uid)

    def _cmd_groups(self, args: List[str], stdin: Optional[str]) -> str:
        """Print group memberships"""
        if args:
            user = self.fs.find_user(args[0])
            if user is None:
                return f"groups: '{args[0]}': no such user"
            return f"{user.name} : " + ' '.join(self.fs.group_name(g) for g in user.groups)
        user = self.fs.current_user
        return ' '.join(self.fs.group_name(g) for g in user.groups) if user else ''

    def _cmd_su(self, args: List[str], stdin: Optional[str]) -> str:
        """Switch user"""
        login = False
        name = 'root'
        for arg in args:
            if arg in ('-', '-l', '--login'):
                login = True
            elif not arg.startswith('-'):
                name = arg
        user = self.fs.find_user(name)
        if user is None:
            return f"su: user {name} does not exist or the user entry does not contain all the required fields"
        self.session.switch_user(user, login=login)
        logger.debug(f"su to {user.name}")
        return ''

    def _cmd_sudo(self, args: List[str], stdin: Optional[str]) -> str:
        """Execute a command as root"""
        usage = ('usage: sudo -h | -K | -k | -V\n'
                 'usage: sudo [-u user] [-i | -s] [command [arg ...]]')
        words = list(args)
        target = self.fs.users[0]
        shell_login: Optional[bool] = None
        while words and words[0].startswith('-'):
            option = words.pop(0)
            if option in ('-i', '-s'):
                shell_login = option == '-i'
            elif option == '-u':
                name = words.pop(0) if words else ''
                user = self.fs.find_user(name)
                if user is None:
                    return f"sudo: unknown user {name}"
                target = user
            elif option in ('-k', '-K', '-v'):
                return ''
            else:
                return f"sudo: invalid option -- '{option.lstrip('-')[:1]}'\n{usage}"

        if not words:
            if shell_login is None:
                return usage
            self.session.switch_user(target, login=shell_login)
            return ''
        cmd, rest = words[0], words[1:]
        if cmd == 'su':
            return self._cmd_su(rest, stdin)
        if cmd in ('bash', 'sh'):
            self.session.switch_user(target)
            return ''
        if cmd not in self.handlers and '/' not in cmd:
            return f"sudo: {cmd}: command not found"

        previous = self.session.uid
        self.session.uid = target.uid
        try:
            return self.dispatch(cmd, rest, stdin)
        finally:
            self.session.uid = previous

    def _cmd_exit(self, args: List[str], stdin: Optional[str]) -> str:
        """Leave the current shell"""
        if self.session.restore_user():
            return ''
        return 'logout'

    # ------------------------------------------------------------------
    # System information

    def _cmd_uname(self, args: List[str], stdin: Optional[str]) -> str:
        """Print system information"""
        flags, _ = _split_flags(args)
        for ch in flags:
            if ch not in 'asnrvmpio':
                return f"uname: invalid option -- '{ch}'\nTry 'uname --help' for more information."
        hostname = self.session.hostname
        if 'a' in flags:
            return (f"Linux {hostname} {KERNEL_RELEASE} {KERNEL_VERSION} "
                    f"{MACHINE} {MACHINE} {MACHINE} GNU/Linux")
        fields = [('s', 'Linux'), ('n', hostname), ('r', KERNEL_RELEASE), ('v', KERNEL_VERSION),
                  ('m', MACHINE), ('p', MACHINE), ('i', MACHINE), ('o', 'GNU/Linux')]
        return ' '.join(value for flag, value in fields if flag in flags) or 'Linux'

    def _cmd_hostname(self, args: List[str], stdin: Optional[str]) -> str:
        """Show or set the system host name"""
        flags, operands = _split_flags(args)
        hostname = self.session.hostname
        if 'I' in flags:
            return ' '.join(i.ip for i in self.network.interfaces.values() if not i.is_loopback) + ' '
        if 'i' in flags:
            return '127.0.1.1'
        if 'f' in flags:
            return f"{hostname}.us-central1-a.c.my-project.internal"
        if operands:
            self.set_hostname(operands[0])
            return ''
        return hostname

    def set_hostname(self, name: str) -> None:
        """Rename the lab host everywhere it is displayed"""
        self.fs.hostname = name
        self.session.env['HOSTNAME'] = name
        self.network.hostname = name
        self.services.hostname = name

    def _cmd_uptime(self, args: List[str], stdin: Optional[str]) -> str:
        """Tell how long the system has been running"""
        flags, _ = _split_flags(args)
        if 'p' in flags:
            seconds = int(self.clock() - self.processes.boot_time)
            days, rem = divmod(seconds, 86400)
            hours, rem = divmod(rem, 3600)
            minutes = rem // 60
            parts = [f"{n} {unit}{'s' if n != 1 else ''}"
                     for n, unit in ((days, 'day'), (hours, 'hour'), (minutes, 'minute')) if n]
            return 'up ' + (', '.join(parts) or '0 minutes')
        if 's' in flags:
            return time.strftime('%Y-%m-%d %H:%M:%S', time.gmtime(self.processes.boot_time))
        return self.processes.uptime_line()

    def _cmd_free(self, args: List[str], stdin: Optional[str]) -> str:
        """Display amount of free and used memory"""
        flags, _ = _split_flags(args)
        if 'h' in flags or 'g' in flags:
            return render_free('h')
        return render_free('m' if 'm' in flags else 'k')

    def _cmd_top(self, args: List[str], stdin: Optional[str]) -> str:
        """Display processes (one batch iteration)"""
        return self.processes.render_top()

    def _cmd_ps(self, args: List[str], stdin: Optional[str]) -> str:
        """Report a snapshot of the current processes"""
        letters = set(''.join(a.lstrip('-') for a in args))
        if {'a', 'u'} <= letters:
            return self.processes.render_ps('aux')
        if 'f' in letters and letters & {'e', 'A'}:
            return self.processes.render_ps('ef')
        if letters & {'e', 'A'}:
            return self.processes.render_ps()
        return self.processes.render_ps(user=self.fs.user_name(self.session.uid))

    def _signal_name(self, spec: str) -> Optional[str]:
        if spec.isdigit():
            n = int(spec)
            return SIGNALS[n - 1] if 1 <= n <= len(SIGNALS) else None
        name = spec.upper()
        if name.startswith('SIG'):
            name = name[3:]
        return name if name in SIGNAL_NUMBERS else None

    def _cmd_kill(self, args: List[str], stdin: Optional[str]) -> str:
        """Send a signal to a process"""
        usage = ('kill: usage: kill [-s sigspec | -n signum | -sigspec] pid | jobspec ... '
                 'or kill -l [sigspec]')
        if not args:
            return usage
        if args[0] in ('-l', '-L'):
            if len(args) > 1:
                name = self._signal_name(args[1])
                if name is None:
                    return f"bash: kill: {args[1]}: invalid signal specification"
                return name if args[1].isdigit() else str(SIGNAL_NUMBERS[name])
            cells = [f"{num:>2}) SIG{name}" for name, num in SIGNAL_NUMBERS.items()]
            return '\n'.join('\t'.join(cells[i:i + 5]) for i in range(0, len(cells), 5))

        words = list(args)
        signal = 'TERM'
        if words[0] in ('-s', '-n'):
            if len(words) < 2:
                return f"bash: kill: {words[0]}: option requires an argument"
            signal = words[1]
            words = words[2:]
        elif words[0].startswith('-'):
            signal = words[0][1:]
            words = words[1:]
        name = self._signal_name(signal)
        if name is None:
            return f"bash: kill: {signal}: invalid signal specification"
        if not words:
            return usage

        errors = []
        for word in words:
            if not word.isdigit():
                errors.append(f"bash: kill: {word}: arguments must be process or job IDs")
                continue
            result = self.services.kill(int(word), name)
            if not result.ok:
                errors.append(f"bash: kill: {result.message}")
        return '\n'.join(errors)

    def _cmd_date(self, args: List[str], stdin: Optional[str]) -> str:
        """Print the system date and time"""
        now = datetime.fromtimestamp(self.clock(), timezone.utc)
        for arg in args:
            if arg.startswith('+'):
                return now.strftime(arg[1:])
        return f"{now:%a %b} {now.day:>2} {now:%H:%M:%S} UTC {now:%Y}"

    def _cmd_cal(self, args: List[str], stdin: Optional[str]) -> str:
        """Display a calendar"""
        now = datetime.fromtimestamp(self.clock(), timezone.utc)
        numbers = [a for a in args if a.isdigit()]
        cal = calendar.TextCalendar(calendar.SUNDAY)
        if len(numbers) >= 2:
            month, year = int(numbers[0]), int(numbers[1])
            if not 1 <= month <= 12:
                return f"cal: {numbers[0]} is neither a month number (1..12) nor a name"
            text = cal.formatmonth(year, month)
        elif numbers:
            year = int(numbers[0])
            if not 1 <= year <= 9999:
                return f"cal: year '{year}' not in range 1..9999"
            text = cal.formatyear(year)
        else:
            text = cal.formatmonth(now.year, now.month)
        return '\n'.join(line.rstrip() for line in text.rstrip('\n').split('\n'))

    def _cmd_sleep(self, args: List[str], stdin: Optional[str]) -> str:
        """Delay for a specified amount of time (returns at once)"""
        if not args:
            return "sleep: missing operand\nTry 'sleep --help' for more information."
        for arg in args:
            if not re.fullmatch(r'\d+(\.\d+)?[smhd]?', arg):
                return f"sleep: invalid time interval '{arg}'\nTry 'sleep --help' for more information."
        return ''

    # ------------------------------------------------------------------
    # Environment

    def _cmd_env(self, args: List[str], stdin: Optional[str]) -> str:
        """Print the environment"""
        return '\n'.join(f"{k}={v}" for k, v in self.session.env.items())

    def _cmd_printenv(self, args: List[str], stdin: Optional[str]) -> str:
        """Print all or part of the environment"""
        if not args:
            return self._cmd_env(args, stdin)
        env = self.session.env
        return '\n'.join(env[name] for name in args if name in env)

    def _cmd_set(self, args: List[str], stdin: Optional[str]) -> str:
        """Show shell variables"""
        if args:
            return ''
        return '\n'.join(f"{k}={v}" for k, v in sorted(self.session.env.items()))

    def _cmd_export(self, args: List[str], stdin: Optional[str]) -> str:
        """Set export attribute for shell variables"""
        words = [a for a in args if a != '-p']
        if not words:
            return '\n'.join(f'declare -x {k}="{v}"' for k, v in sorted(self.session.env.items()))
        errors = []
        for word in words:
            name, sep, value = word.partition('=')
            if not _VAR_NAME.fullmatch(name):
                errors.append(f"bash: export: `{word}': not a valid identifier")
            elif sep:
                self.session.env[name] = value
        return '\n'.join(errors)

    def _cmd_unset(self, args: List[str], stdin: Optional[str]) -> str:
        """Unset shell variables"""
        for name in args:
            self.session.env.pop(name, None)
        return ''

    def _cmd_alias(self, args: List[str], stdin: Optional[str]) -> str:
        """Define or display aliases"""
        if not args:
            return '\n'.join(f"alias {k}='{v}'" for k, v in sorted(self.aliases.items()))
        out = []
        for arg in args:
            name, sep, value = arg.partition('=')
            if sep:
                self.aliases[name] = value
            elif name in self.aliases:
                out.append(f"alias {name}='{self.aliases[name]}'")
            else:
                out.append(f"bash: alias: {name}: not found")
        return '\n'.join(out)

    def _cmd_unalias(self, args: List[str], stdin: Optional[str]) -> str:
        """Remove alias definitions"""
        if not args:
            return 'unalias: usage: unalias [-a] name [name ...]'
        if '-a' in args:
            self.aliases.clear()
            return ''
        errors = []
        for name in args:
            if self.aliases.pop(name, None) is None:
                errors.append(f"bash: unalias: {name}: not found")
        return '\n'.join(errors)

    # ------------------------------------------------------------------
    # Network

    def _cmd_ping(self, args: List[str], stdin: Optional[str]) -> str:
        """Send ICMP ECHO_REQUEST to network hosts"""
        count = 4
        target = None
        i = 0
        while i < len(args):
            arg = args[i]
            if arg.startswith('-c'):
                value = arg[2:]
                if not value:
                    if i + 1 >= len(args):
                        return "ping: option requires an argument -- 'c'"
                    value = args[i + 1]
                    i += 1
                if not value.isdigit():
                    return f"ping: invalid argument: '{value}'"
                count = int(value)
                if count < 1:
                    return (f"ping: invalid argument: '{value}': out of range: "
                            "1 <= value <= 9223372036854775807")
            elif arg in ('-i', '-W', '-w', '-s', '-t'):
                i += 1
            elif not arg.startswith('-'):
                target = arg
            i += 1
        if target is None:
            return 'ping: usage error: Destination address required'
        return self.network.ping(target, count)

    def _cmd_traceroute(self, args: List[str], stdin: Optional[str]) -> str:
        """Print the route packets take to a host"""
        _, operands = _split_flags(args)
        if not operands:
            return 'Usage: traceroute [ -46dFITnreAUDV ] host [ packetlen ]'
        return self.network.traceroute(operands[0])

    def _cmd_dig(self, args: List[str], stdin: Optional[str]) -> str:
        """DNS lookup utility"""
        short = False
        record_type = 'A'
        name = None
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == '-t' and i + 1 < len(args):
                record_type = args[i + 1].upper()
                i += 1
            elif arg == '+short':
                short = True
            elif arg.startswith(('@', '+', '-')):
                pass
            elif arg.upper() in RECORD_TYPES and (name is not None or arg.isupper()):
                record_type = arg.upper()
            elif name is None:
                name = arg
            i += 1
        if name is None:
            return self.network.dig('.', 'NS', short)
        return self.network.dig(name, record_type, short)

    def _cmd_nslookup(self, args: List[str], stdin: Optional[str]) -> str:
        """Query internet name servers"""
        record_type = 'A'
        name = None
        for arg in args:
            option, sep, value = arg.partition('=')
            if sep and option in ('-type', '-query', '-q', '-querytype'):
                record_type = value.upper()
            elif arg.startswith('-'):
                continue
            elif name is None:
                name = arg
        if name is None:
            return 'Usage: nslookup [-type=TYPE] host [server]'
        return self.network.nslookup(name, record_type)

    def _cmd_host(self, args: List[str], stdin: Optional[str]) -> str:
        """DNS lookup utility"""
        record_type: Optional[str] = None
        name = None
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == '-t' and i + 1 < len(args):
                record_type = args[i + 1].upper()
                i += 1
            elif arg == '-a':
                record_type = 'ANY'
            elif not arg.startswith('-') and name is None:
                name = arg
            i += 1
        if name is None:
            return 'Usage: host [-aCdilrTvVw] [-c class] [-t type] hostname [server]'
        return self.network.host(name, record_type)

    def _cmd_curl(self, args: List[str], stdin: Optional[str]) -> str:
        """Transfer a URL"""
        value_short = {'X': 'method', 'd': 'data', 'H': 'header', 'o': 'output',
                       'A': None, 'u': None, 'e': None, 'm': None, 'w': None}
        value_long = {'--request': 'method', '--data': 'data', '--data-raw': 'data',
                      '--data-binary': 'data', '--header': 'header', '--output': 'output',
                      '--user-agent': None, '--user': None, '--referer': None,
                      '--max-time': None, '--connect-timeout': None, '--write-out': None}
        flag_long = {'--silent': 's', '--verbose': 'v', '--head': 'I', '--include': 'i',
                     '--remote-name': 'O'}
        missing = ("curl: option {}: requires parameter\n"
                   "curl: try 'curl --help' or 'curl --manual' for more information")

        flags = set()
        values: Dict[str, str] = {}
        headers: List[str] = []
        url = None
        i = 0
        while i < len(args):
            arg = args[i]
            i += 1
            key = None
            value = None
            if arg in value_long:
                if i >= len(args):
                    return missing.format(arg)
                key, value = value_long[arg], args[i]
                i += 1
            elif arg.startswith('--'):
                if arg in flag_long:
                    flags.add(flag_long[arg])
            elif arg.startswith('-') and len(arg) > 1:
                for pos in range(1, len(arg)):
                    ch = arg[pos]
                    if ch not in value_short:
                        flags.add(ch)
                        continue
                    value = arg[pos + 1:]
                    if not value:
                        if i >= len(args):
                            return missing.format(f"-{ch}")
                        value = args[i]
                        i += 1
                    key = value_short[ch]
                    break
            else:
                url = arg
            if key == 'header':
                headers.append(value)
            elif key:
                values[key] = value

        if url is None:
            return "curl: try 'curl --help' or 'curl --manual' for more information"
        data = values.get('data')
        method = values.get('method') or ('POST' if data is not None else 'GET')
        silent = 's' in flags
        output = values.get('output')
        if output is None and 'O' not in flags:
            return self.network.curl(url, method, data, headers, verbose='v' in flags,
                                     silent=silent, head='I' in flags, include='i' in flags)

        result = self.network.request(url, 'HEAD' if 'I' in flags else method, data)
        if not result.ok:
            return '' if silent else f"curl: {result.message}"
        response = result.value[3]
        if output == '-':
            return response.body
        filename = output or default_filename(urlsplit(url if '://' in url else 'http://' + url).path)
        if self.fs.is_dir(filename) or not self._parent_exists(filename):
            return (f"Warning: Failed to open the file {filename}: No such file or directory\n"
                    "curl: (23) Failure writing output to destination")
        self.fs.write_file(filename, response.body)
        return '' if silent else self.network.progress_meter(len(response.body.encode('utf-8')))

    def _cmd_wget(self, args: List[str], stdin: Optional[str]) -> str:
        """Non-interactive network downloader"""
        output = None
        quiet = False
        url = None
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == '-O' and i + 1 < len(args):
                output = args[i + 1]
                i += 1
            elif arg.startswith('--output-document='):
                output = arg.split('=', 1)[1]
            elif arg.startswith('-O'):
                output = arg[2:]
            elif arg in ('-q', '--quiet'):
                quiet = True
            elif not arg.startswith('-'):
                url = arg
            i += 1
        if url is None:
            return "wget: missing URL\nUsage: wget [OPTION]... [URL]...\n\nTry `wget --help' for more options."

        log, response = self.network.wget(url, None if output == '-' else output)
        if response is None:
            return '' if quiet else log
        if output == '-':
            return response.body
        full_url = url if '://' in url else 'http://' + url
        filename = output or default_filename(urlsplit(full_url).path)
        if self.fs.is_dir(filename) or not self._parent_exists(filename):
            return f"{filename}: No such file or directory"
        self.fs.write_file(filename, response.body)
        return '' if quiet else log

    def _cmd_ip(self, args: List[str], stdin: Optional[str]) -> str:
        """Show routing, devices and neighbours"""
        words = [a for a in args if not a.startswith('-')]
        if not words:
            return ('Usage: ip [ OPTIONS ] OBJECT { COMMAND | help }\n'
                    'where  OBJECT := { address | link | neighbour | route }')
        obj = words[0]
        rest = [w for w in words[1:] if w not in ('show', 'list', 'ls', 'dev')]
        iface = rest[0] if rest else None
        if 'address'.startswith(obj):
            return self.network.ip_addr(iface)
        if 'route'.startswith(obj):
            return self.network.ip_route()
        if 'link'.startswith(obj):
            return self.network.ip_link(iface)
        if 'neighbour'.startswith(obj) or 'neighbor'.startswith(obj):
            return self.network.ip_neigh()
        return f'Object "{obj}" is unknown, try "ip help".'

    def _cmd_ifconfig(self, args: List[str], stdin: Optional[str]) -> str:
        """Configure a network interface (display only)"""
        _, operands = _split_flags(args)
        return self.network.ifconfig(operands[0] if operands else None)

    def _cmd_netstat(self, args: List[str], stdin: Optional[str]) -> str:
        """Print network connections and routing tables"""
        flags, _ = _split_flags(args)
        if 'r' in flags:
            return self.network.route_table(numeric='n' in flags)
        return self.network.netstat(listening='l' in flags, tcp='t' in flags, udp='u' in flags)

    def _cmd_ss(self, args: List[str], stdin: Optional[str]) -> str:
        """Investigate sockets"""
        flags, _ = _split_flags(args)
        return self.network.ss(listening='l' in flags, tcp='t' in flags, udp='u' in flags)

    def _cmd_iptables(self, args: List[str], stdin: Optional[str]) -> str:
        """Administration tool for packet filtering"""
        if not self.session.is_root:
            return 'iptables: Permission denied (you must be root)'
        return self.network.iptables(args)

    def _cmd_route(self, args: List[str], stdin: Optional[str]) -> str:
        """Show the IP routing table"""
        flags, _ = _split_flags(args)
        return self.network.route_table(numeric='n' in flags)

    # ------------------------------------------------------------------
    # Services

    def _cmd_systemctl(self, args: List[str], stdin: Optional[str]) -> str:
        """Control the systemd system and service manager"""
        return self.services.systemctl(args)

    def _cmd_service(self, args: List[str], stdin: Optional[str]) -> str:
        """Run a System V init script"""
        return self.services.service(args)

    def _cmd_journalctl(self, args: List[str], stdin: Optional[str]) -> str:
        """Query the systemd journal"""
        unit = None
        count: Optional[str] = None
        i = 0
        while i < len(args):
            arg = args[i]
            if arg in ('-u', '--unit', '-n', '--lines') and i + 1 < len(args):
                if arg in ('-u', '--unit'):
                    unit = args[i + 1]
                else:
                    count = args[i + 1]
                i += 2
                continue
            if arg.startswith('--unit='):
                unit = arg.split('=', 1)[1]
            elif arg.startswith('--lines='):
                count = arg.split('=', 1)[1]
            elif arg.startswith('-u') and len(arg) > 2:
                unit = arg[2:]
            elif arg.startswith('-n') and len(arg) > 2:
                count = arg[2:]
            i += 1
        if count is not None and not count.isdigit():
            return f"Failed to parse lines '{count}'."

        entries = []
        syslog = self.fs.read_file('/var/log/syslog')
        if syslog.ok:
            entries.extend(_lines(syslog.value))
        entries.extend(self.services.journal)
        if unit:
            name = unit[:-len('.service')] if unit.endswith('.service') else unit
            entries = [e for e in entries if name.lower() in e.lower()]
        if count is not None:
            entries = entries[-int(count):] if int(count) else []
        return '\n'.join(entries) if entries else '-- No entries --'

    # ------------------------------------------------------------------
    # Misc

    def _cmd_clear(self, args: List[str], stdin: Optional[str]) -> str:
        """Clear the terminal screen"""
        return CLEAR_SCREEN

    def _cmd_history(self, args: List[str], stdin: Optional[str]) -> str:
        """Display the command history list"""
        history = self.session.history
        if args and args[0] == '-c':
            history.clear()
            return ''
        start = 0
        if args:
            if not args[0].isdigit():
                return f"bash: history: {args[0]}: numeric argument required"
            start = max(len(history) - int(args[0]), 0)
        return '\n'.join(f"{i:>5}  {cmd}" for i, cmd in enumerate(history[start:], start + 1))

    def _cmd_man(self, args: List[str], stdin: Optional[str]) -> str:
        """Display reference manual pages"""
        if not args:
            return "What manual page do you want?\nFor example, try 'man man'."
        topic = args[-1]
        return man_lookup(topic) or f"No manual entry for {topic}"

    def _cmd_help(self, args: List[str], stdin: Optional[str]) -> str:
        """List the available commands"""
        if args:
            topic = args[0]
            page = man_lookup(topic) if topic in self.handlers else None
            return page or (f"bash: help: no help topics match `{topic}'.  Try `help help' or "
                            f"`man -k {topic}' or `info {topic}'.")
        names = textwrap.fill(' '.join(sorted(self.handlers)), width=78,
                              initial_indent='  ', subsequent_indent='  ')
        return (f"Available commands:\n{names}\n\n"
                "Type 'man <command>' for details on a specific command.")

    def _tree_walk(self, node: FileNode, prefix: str, depth: int, level: Optional[int],
                   show_all: bool, dirs_only: bool, lines: List[str], counts: List[int]) -> None:
        names = sorted(n for n, child in node.children.items()
                       if (show_all or not n.startswith('.')) and (child.is_directory or not dirs_only))
        for index, name in enumerate(names):
            child = node.children[name]
            last = index == len(names) - 1
            lines.append(f"{prefix}{'└── ' if last else '├── '}{name}")
            if not child.is_directory:
                counts[1] += 1
                continue
            counts[0] += 1
            if level is None or depth < level:
                self._tree_walk(child, prefix + ('    ' if last else '│   '), depth + 1,
                                level, show_all, dirs_only, lines, counts)

    def _cmd_tree(self, args: List[str], stdin: Optional[str]) -> str:
        """List contents of directories in a tree-like format"""
        level: Optional[int] = None
        flags = ''
        operands = []
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == '-L':
                value = args[i + 1] if i + 1 < len(args) else ''
                if not value.isdigit() or int(value) < 1:
                    return 'tree: Invalid level, must be greater than 0.'
                level = int(value)
                i += 1
            elif arg.startswith('-') and len(arg) > 1:
                flags += arg[1:]
            else:
                operands.append(arg)
            i += 1

        root = operands[0] if operands else '.'
        node = self.fs.get_node(root)
        if node is None or not node.is_directory:
            return f"{root}  [error opening dir]\n\n0 directories, 0 files"
        lines = [root]
        counts = [0, 0]
        self._tree_walk(node, '', 1, level, 'a' in flags, 'd' in flags, lines, counts)
        dirs, files = counts
        summary = f"{dirs} director{'y' if dirs == 1 else 'ies'}"
        if 'd' not in flags:
            summary += f", {files} file{'' if files == 1 else 's'}"
        return '\n'.join(lines + ['', summary])

    def _cmd_xargs(self, args: List[str], stdin: Optional[str]) -> str:
        """Build and execute command lines from standard input"""
        words = list(args)
        per_call: Optional[int] = None
        while words and words[0].startswith('-'):
            option = words.pop(0)
            if option == '-n' or (option.startswith('-n') and len(option) > 2):
                value = option[2:] or (words.pop(0) if words else '')
                if not value.isdigit() or int(value) < 1:
                    return f'xargs: invalid number "{value}" for -n option'
                per_call = int(value)
            elif option not in ('-0', '-r', '-t'):
                return f"xargs: invalid option -- '{option[1:2]}'"
        command = words or ['echo']
        items = (stdin or '').split()
        if not items:
            return ''
        step = per_call or len(items)
        outputs = []
        for start in range(0, len(items), step):
            output = self.dispatch(command[0], command[1:] + items[start:start + step])
            if output:
                outputs.append(output)
        return '\n'.join(outputs)

    def _cmd_basename(self, args: List[str], stdin: Optional[str]) -> str:
        """Strip directory and suffix from a file name"""
        if not args:
            return "basename: missing operand\nTry 'basename --help' for more information."
        stripped = args[0].rstrip('/')
        name = stripped.rpartition('/')[2] if stripped else '/'
        if len(args) > 1 and name != args[1] and name.endswith(args[1]):
            name = name[:-len(args[1])]
        return name

    def _cmd_dirname(self, args: List[str], stdin: Optional[str]) -> str:
        """Strip the last component from a file name"""
        if not args:
            return "dirname: missing operand\nTry 'dirname --help' for more information."
        out = []
        for path in args:
            stripped = path.rstrip('/')
            if not stripped:
                out.append('/' if path else '.')
            elif '/' not in stripped:
                out.append('.')
            else:
                out.append(stripped.rpartition('/')[0].rstrip('/') or '/')
        return '\n'.join(out)

    def _cmd_realpath(self, args: List[str], stdin: Optional[str]) -> str:
        """Print the resolved absolute path"""
        _, paths = _split_flags(args)
        if not paths:
            return "realpath: missing operand\nTry 'realpath --help' for more information."
        out = []
        for path in paths:
            if self._parent_exists(path):
                out.append(self.fs.resolve_path(path))
            else:
                out.append(f"realpath: {path}: No such file or directory")
        return '\n'.join(out)

    def _cmd_true(self, args: List[str], stdin: Optional[str]) -> str:
        """Do nothing"""
        return ''
