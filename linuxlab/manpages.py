#!/usr/bin/env python3
"""
Manual pages - Static reference text served by man
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass
class ManPage:
    name: str
    section: int
    summary: str
    synopsis: str
    options: List[Tuple[str, str]] = field(default_factory=list)
    description: str = ''

    def render(self) -> str:
        """Format the page in man(1) layout"""
        title = f"{self.name.upper()}({self.section})"
        heading = 'User Commands' if self.section == 1 else 'System Administration'
        lines = [
            f"{title:<25}{heading:^20}{title:>25}",
            '',
            'NAME',
            f"       {self.name} - {self.summary}",
            '',
            'SYNOPSIS',
            f"       {self.synopsis}",
        ]
        if self.description:
            lines.extend(['', 'DESCRIPTION'])
            lines.extend(f"       {line}" for line in self.description.split('\n'))
        if self.options:
            lines.extend(['', 'OPTIONS'])
            for flag, text in self.options:
                lines.append(f"       {flag}")
                lines.append(f"              {text}")
                lines.append('')
            lines.pop()
        return '\n'.join(lines)


MAN_PAGES: Dict[str, ManPage] = {page.name: page for page in [
    ManPage('ls', 1, 'list directory contents', 'ls [OPTION]... [FILE]...', [
        ('-a, --all', 'do not ignore entries starting with .'),
        ('-l', 'use a long listing format'),
        ('-h, --human-readable', 'with -l, print sizes like 1K 234M 2G'),
        ('-R, --recursive', 'list subdirectories recursively'),
    ]),
    ManPage('cd', 1, 'change the shell working directory', 'cd [dir]',
            description='Change the current directory to dir. The default dir is the value of\n'
                        'the HOME shell variable. cd - returns to the previous directory (OLDPWD).'),
    ManPage('pwd', 1, 'print name of current/working directory', 'pwd'),
    ManPage('cat', 1, 'concatenate files and print on the standard output',
            'cat [OPTION]... [FILE]...', [('-n, --number', 'number all output lines')]),
    ManPage('touch', 1, 'change file timestamps', 'touch FILE...',
            description='Update the modification time of each FILE to the current time.\n'
                        'A FILE argument that does not exist is created empty.'),
    ManPage('mkdir', 1, 'make directories', 'mkdir [OPTION]... DIRECTORY...', [
        ('-p, --parents', 'no error if existing, make parent directories as needed'),
    ]),
    ManPage('rm', 1, 'remove files or directories', 'rm [OPTION]... [FILE]...', [
        ('-f, --force', 'ignore nonexistent files and arguments, never prompt'),
        ('-r, -R, --recursive', 'remove directories and their contents recursively'),
    ]),
    ManPage('cp', 1, 'copy files and directories', 'cp [OPTION]... SOURCE DEST', [
        ('-r, -R, --recursive', 'copy directories recursively'),
    ]),
    ManPage('mv', 1, 'move (rename) files', 'mv SOURCE DEST'),
    ManPage('grep', 1, 'print lines that match patterns', 'grep [OPTION...] PATTERNS [FILE...]', [
        ('-i, --ignore-case', 'ignore case distinctions in patterns and data'),
        ('-v, --invert-match', 'select non-matching lines'),
        ('-c, --count', 'print only a count of selected lines per FILE'),
        ('-n, --line-number', 'prefix each line of output with its line number'),
        ('-r, --recursive', 'read all files under each directory, recursively'),
        ('-l, --files-with-matches', 'print only names of FILEs with selected lines'),
        ('-w, --word-regexp', 'select only lines containing matches that form whole words'),
        ('-E, --extended-regexp', 'PATTERNS are extended regular expressions'),
    ]),
    ManPage('find', 1, 'search for files in a directory hierarchy',
            'find [starting-point...] [expression]', [
                ('-name pattern', 'base of file name matches shell pattern'),
                ('-iname pattern', 'like -name, but the match is case insensitive'),
                ('-type c', 'file is of type c: f (regular file) or d (directory)'),
                ('-maxdepth levels', 'descend at most levels of directories'),
            ]),
    ManPage('chmod', 1, 'change file mode bits', 'chmod MODE FILE...',
            description='MODE is an octal number or a symbolic mode such as u+x or go-w.\n'
                        '4=read, 2=write, 1=execute. Three digits: owner, group, other.\n'
                        'Example: chmod 755 script.sh (rwxr-xr-x)',
            options=[('-R, --recursive', 'change files and directories recursively')]),
    ManPage('chown', 1, 'change file owner and group', 'chown OWNER[:GROUP] FILE...',
            description='Change the owner and/or group of each FILE to OWNER and/or GROUP.\n'
                        'Only root can change file ownership.'),
    ManPage('head', 1, 'output the first part of files', 'head [OPTION]... [FILE]...', [
        ('-n, --lines=NUM', 'print the first NUM lines instead of the first 10'),
    ]),
    ManPage('tail', 1, 'output the last part of files', 'tail [OPTION]... [FILE]...', [
        ('-n, --lines=NUM', 'output the last NUM lines, instead of the last 10'),
        ('-f, --follow', 'output appended data as the file grows'),
    ]),
    ManPage('wc', 1, 'print newline, word, and byte counts for each file',
            'wc [OPTION]... [FILE]...', [
                ('-l, --lines', 'print the newline counts'),
                ('-w, --words', 'print the word counts'),
                ('-c, --bytes', 'print the byte counts'),
            ]),
    ManPage('sort', 1, 'sort lines of text files', 'sort [OPTION]... [FILE]...', [
        ('-n, --numeric-sort', 'compare according to string numerical value'),
        ('-r, --reverse', 'reverse the result of comparisons'),
        ('-u, --unique', 'output only the first of an equal run'),
        ('-k, --key=KEYDEF', 'sort via a key'),
    ]),
    ManPage('uniq', 1, 'report or omit repeated lines', 'uniq [OPTION]... [INPUT]', [
        ('-c, --count', 'prefix lines by the number of occurrences'),
        ('-d, --repeated', 'only print duplicate lines, one for each group'),
    ]),
    ManPage('cut', 1, 'remove sections from each line of files', 'cut OPTION... [FILE]...', [
        ('-d, --delimiter=DELIM', 'use DELIM instead of TAB for field delimiter'),
        ('-f, --fields=LIST', 'select only these fields'),
        ('-c, --characters=LIST', 'select only these characters'),
    ]),
    ManPage('sed', 1, 'stream editor for filtering and transforming text',
            "sed [OPTION]... 's/regexp/replacement/flags' [FILE]...", [
                ('-i', 'edit files in place'),
            ]),
    ManPage('awk', 1, 'pattern scanning and processing language',
            "awk [-F fs] '{print $1, $3}' [FILE]...", [
                ('-F fs', 'use fs for the input field separator'),
            ]),
    ManPage('tr', 1, 'translate or delete characters', 'tr [OPTION]... SET1 [SET2]', [
        ('-d, --delete', 'delete characters in SET1, do not translate'),
    ]),
    ManPage('ps', 1, 'report a snapshot of the current processes', 'ps [options]', [
        ('aux', 'show all processes for all users'),
        ('-ef', 'show full-format listing of all processes'),
    ]),
    ManPage('kill', 1, 'send a signal to a process', 'kill [-signal|-s signal|-l] pid...', [
        ('-9, -KILL', 'terminate the process immediately'),
        ('-l, --list', 'list signal names'),
    ]),
    ManPage('top', 1, 'display Linux processes', 'top'),
    ManPage('df', 1, 'report file system disk space usage', 'df [OPTION]... [FILE]...', [
        ('-h, --human-readable', 'print sizes in powers of 1024 (e.g., 1023M)'),
    ]),
    ManPage('du', 1, 'estimate file space usage', 'du [OPTION]... [FILE]...', [
        ('-h, --human-readable', 'print sizes in human readable format'),
        ('-s, --summarize', 'display only a total for each argument'),
    ]),
    ManPage('free', 1, 'display amount of free and used memory in the system', 'free [options]', [
        ('-h, --human', 'show all output fields automatically scaled'),
        ('-m, --mebi', 'display the amount of memory in mebibytes'),
    ]),
    ManPage('ping', 8, 'send ICMP ECHO_REQUEST to network hosts', 'ping [-c count] destination',
            description='ping sends ICMP echo requests to a host and reports round-trip time.'),
    ManPage('ip', 8, 'show / manipulate routing, network devices, interfaces',
            'ip [ addr | route | link | neigh ]', [
                ('ip addr', 'display IP addresses'),
                ('ip route', 'display routing table'),
                ('ip link', 'display network interfaces'),
                ('ip neigh', 'display ARP/neighbor cache'),
            ]),
    ManPage('netstat', 8, 'print network connections, routing tables, interface statistics',
            'netstat [OPTIONS]', [
                ('-t', 'TCP connections'),
                ('-u', 'UDP connections'),
                ('-l', 'listening sockets'),
                ('-n', 'numeric addresses'),
                ('-p', 'show PID/program name'),
            ]),
    ManPage('ss', 8, 'another utility to investigate sockets', 'ss [options]', [
        ('-t, --tcp', 'display TCP sockets'),
        ('-u, --udp', 'display UDP sockets'),
        ('-l, --listening', 'display only listening sockets'),
    ]),
    ManPage('iptables', 8, 'administration tool for IPv4 packet filtering',
            'iptables [-L|-A|-I|-D|-F|-P] [chain] [rule-specification]', [
                ('-L [chain]', 'list rules (-n numeric, --line-numbers)'),
                ('-A chain rule', 'append rule'),
                ('-I chain [num] rule', 'insert rule, at the top by default'),
                ('-D chain rulenum', 'delete rule'),
                ('-F [chain]', 'flush all rules'),
                ('-P chain target', 'set the chain policy'),
                ('-p tcp|udp|icmp', 'protocol'),
                ('--dport PORT', 'destination port'),
                ('-s SOURCE', 'source address'),
                ('-j ACCEPT|DROP|REJECT', 'jump to target'),
            ]),
    ManPage('systemctl', 1, 'control the systemd system and service manager',
            'systemctl COMMAND [SERVICE]', [
                ('start', 'start a service'),
                ('stop', 'stop a service'),
                ('restart', 'restart a service'),
                ('status', 'show service status'),
                ('enable', 'enable a service at boot'),
                ('disable', 'disable a service at boot'),
                ('is-active, is-enabled', 'check service state'),
                ('list-units', 'list loaded units'),
            ]),
    ManPage('journalctl', 1, 'print log entries from the systemd journal', 'journalctl [OPTIONS]', [
        ('-u, --unit=UNIT', 'show logs from the specified unit'),
        ('-n, --lines=N', 'show the most recent N journal entries'),
    ]),
    ManPage('curl', 1, 'transfer a URL', 'curl [options] URL', [
        ('-s, --silent', 'silent mode'),
        ('-v, --verbose', 'make the operation more talkative'),
        ('-X, --request METHOD', 'request method (GET, POST, PUT, DELETE)'),
        ('-H, --header HEADER', 'pass custom header to server'),
        ('-d, --data DATA', 'HTTP POST data'),
        ('-I, --head', 'show document info only'),
        ('-o, --output FILE', 'write to file instead of stdout'),
    ]),
    ManPage('dig', 1, 'DNS lookup utility', 'dig [@server] name [type] [+short]'),
    ManPage('sudo', 8, 'execute a command as another user', 'sudo [-i | -s] [command]'),
    ManPage('su', 1, 'run a command with substitute user and group ID', 'su [-] [user]'),
    ManPage('tee', 1, 'read from standard input and write to standard output and files',
            'tee [OPTION]... [FILE]...', [('-a, --append', 'append to the given FILEs')]),
    ManPage('xargs', 1, 'build and execute command lines from standard input',
            'xargs [-n max-args] [command [initial-arguments]]'),
    ManPage('history', 1, 'display the command history list', 'history [n] | history -c'),
    ManPage('tree', 1, 'list contents of directories in a tree-like format', 'tree [-a] [-L level] [directory]'),
    ManPage('man', 1, 'an interface to the system reference manuals', 'man [page]'),
]}


def lookup(topic: str) -> Optional[str]:
    """Rendered page for ``topic`` or None"""
    page = MAN_PAGES.get(topic)
    return page.render() if page else None
