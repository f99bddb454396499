#!/usr/bin/env python3
"""
Virtual Filesystem - In-memory Linux directory tree with POSIX-like
permissions, ownership and timestamps
"""

import fnmatch
import logging
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from linuxlab.result import Err, ErrorKind, Ok, Result
from linuxlab.session import (
    DEFAULT_UID, HOSTNAME, ROOT_UID, Group, Session, User,
    default_groups, default_users,
)

logger = logging.getLogger(__name__)

DIR_SIZE = 4096

Clock = Callable[[], float]
SetupHook = Callable[['VirtualFilesystem'], None]

_SYMBOLIC_CLAUSE = re.compile(r'^([ugoa]*)([-+=])([rwx]*)$')
_WHO_SHIFT = {'u': 6, 'g': 3, 'o': 0}
_PERM_BIT = {'r': 4, 'w': 2, 'x': 1}


def format_permissions(mode: int, is_directory: bool = False) -> str:
    """Format permissions in ls -l style"""
    type_char = 'd' if is_directory else '-'
    owner = _perm_bits_to_str((mode >> 6) & 0o7)
    group = _perm_bits_to_str((mode >> 3) & 0o7)
    other = _perm_bits_to_str(mode & 0o7)
    return f"{type_char}{owner}{group}{other}"


def _perm_bits_to_str(bits: int) -> str:
    """Convert permission bits to rwx string"""
    result = ''
    result += 'r' if bits & 0o4 else '-'
    result += 'w' if bits & 0o2 else '-'
    result += 'x' if bits & 0o1 else '-'
    return result


def parse_mode(spec: str, current: int = 0) -> Optional[int]:
    """Apply an octal (``755``) or symbolic (``u+x,go-w``) mode to ``current``.

    Returns the new 9-bit mode, or None when ``spec`` is not a valid mode.
    """
    if re.fullmatch(r'[0-7]{1,4}', spec):
        return int(spec, 8) & 0o777

    mode = current
    for clause in spec.split(','):
        match = _SYMBOLIC_CLAUSE.match(clause)
        if not match:
            return None
        who, op, perms = match.groups()
        if not who or 'a' in who:
            who = 'ugo'
        bits = 0
        for w in who:
            for p in perms:
                bits |= _PERM_BIT[p] << _WHO_SHIFT[w]
        if op == '+':
            mode |= bits
        elif op == '-':
            mode &= ~bits
        else:
            mask = 0
            for w in who:
                mask |= 0o7 << _WHO_SHIFT[w]
            mode = (mode & ~mask) | bits
    return mode & 0o777


def format_timestamp(ts: float) -> str:
    """Render a timestamp the way ls -l does (``Jan  5 08:01``)"""
    dt = datetime.fromtimestamp(ts, timezone.utc)
    return f"{dt:%b} {dt.day:>2} {dt:%H:%M}"


def human_size(size: int) -> str:
    """Human readable size as printed by ls -h and du -h"""
    if size < 1024:
        return str(size)
    for unit, scale in (('K', 1024), ('M', 1024 ** 2), ('G', 1024 ** 3)):
        if size < scale * 1024 or unit == 'G':
            return f"{size / scale:.1f}{unit}"
    return str(size)


class FileNode:
    """A file or directory in the virtual filesystem"""

    def __init__(self, is_directory: bool = False, content: str = '',
                 permissions: int = 0o644, uid: int = ROOT_UID,
                 gid: int = ROOT_UID, mtime: float = 0.0):
        self.is_directory = is_directory
        self.content = '' if is_directory else content
        self.children: Dict[str, 'FileNode'] = {}
        self.permissions = permissions & 0o777
        self.uid = uid
        self.gid = gid
        self.mtime = mtime
        self.atime = mtime
        self.ctime = mtime

    @property
    def size(self) -> int:
        """Size in bytes, derived from content"""
        if self.is_directory:
            return DIR_SIZE
        return len(self.content.encode('utf-8'))

    @property
    def links(self) -> int:
        if not self.is_directory:
            return 1
        return 2 + sum(1 for child in self.children.values() if child.is_directory)

    def touch(self, now: float) -> None:
        self.mtime = now
        self.atime = now

    def clone(self, uid: int, gid: int, now: float) -> 'FileNode':
        """Deep copy with new ownership and a fresh mtime, keeping permissions"""
        node = FileNode(self.is_directory, self.content, self.permissions, uid, gid, now)
        for name, child in self.children.items():
            node.children[name] = child.clone(uid, gid, now)
        return node


@dataclass
class LsEntry:
    """One row of an ls listing"""
    name: str
    is_directory: bool
    permissions: str
    mode: int
    links: int
    owner: str
    group: str
    size: int
    date: str

    @property
    def blocks(self) -> int:
        return math.ceil(self.size / 1024)

    def size_display(self, human: bool = False) -> str:
        return human_size(self.size) if human else str(self.size)


@dataclass
class DirListing:
    """Entries of one listed path.

    ``path`` is the label ls prints above the block when several paths
    or a recursive listing are shown; ``is_file`` marks a listing made for
    a plain file operand.
    """
    path: str
    entries: List[LsEntry]
    is_file: bool = False


@dataclass
class StatResult:
    """Metadata exposed by stat()"""
    path: str
    is_directory: bool
    size: int
    permissions: int
    uid: int
    gid: int
    owner: str
    group: str
    links: int
    mtime: float
    atime: float
    ctime: float

    @property
    def octal(self) -> str:
        """Permission bits as a 3-digit octal string, e.g. ``'644'``"""
        return f"{self.permissions:03o}"

    @property
    def mode_string(self) -> str:
        return format_permissions(self.permissions, self.is_directory)

    @property
    def blocks(self) -> int:
        return math.ceil(self.size / 512) if self.size else 0


@dataclass
class DiskUsage:
    """Space used below a path.

    ``entries`` holds (relative path, bytes) for everything below the
    path in post-order, the way du prints its rows.
    """
    bytes: int
    blocks: int
    entries: List[Tuple[str, int]] = field(default_factory=list)


class VirtualFilesystem:
    """In-memory Linux filesystem with a per-learner session.

    Every fallible operation returns :class:`~linuxlab.result.Ok` or
    :class:`~linuxlab.result.Err` and never raises for user-caused
    conditions, so the shell can turn any failure into a Unix diagnostic.
    """

    def __init__(self, clock: Optional[Clock] = None, hostname: str = HOSTNAME):
        self.clock = clock or time.time
        self.hostname = hostname
        self.root = FileNode(is_directory=True, permissions=0o755, mtime=self.clock())
        self.users: Dict[int, User] = default_users()
        self.groups: Dict[int, Group] = default_groups()
        self.session = Session.login(self.users[DEFAULT_UID], hostname)
        self._build_baseline()

    # ------------------------------------------------------------------
    # Identity helpers

    @property
    def cwd(self) -> str:
        return self.session.cwd

    @property
    def current_uid(self) -> int:
        return self.session.uid

    @current_uid.setter
    def current_uid(self, uid: int) -> None:
        self.session.uid = uid

    @property
    def current_user(self) -> Optional[User]:
        return self.users.get(self.session.uid)

    def _current_gid(self) -> int:
        user = self.current_user
        return user.gid if user else self.session.uid

    def user_name(self, uid: int) -> str:
        user = self.users.get(uid)
        return user.name if user else str(uid)

    def group_name(self, gid: int) -> str:
        group = self.groups.get(gid)
        return group.name if group else str(gid)

    def find_user(self, name: str) -> Optional[User]:
        """Look up a user by name or numeric id"""
        for user in self.users.values():
            if user.name == name:
                return user
        if name.isdigit():
            return self.users.get(int(name))
        return None

    def find_group(self, name: str) -> Optional[Group]:
        """Look up a group by name or numeric id"""
        for group in self.groups.values():
            if group.name == name:
                return group
        if name.isdigit():
            return self.groups.get(int(name))
        return None

    # ------------------------------------------------------------------
    # Path resolution

    def resolve_path(self, path: str) -> str:
        """Resolve a path to absolute form without touching the tree"""
        if not path:
            return self.session.cwd
        if path == '~' or path.startswith('~/'):
            path = self.session.home + path[1:]
        elif not path.startswith('/'):
            path = f"{self.session.cwd}/{path}"

        resolved: List[str] = []
        for part in path.split('/'):
            if part in ('', '.'):
                continue
            if part == '..':
                if resolved:
                    resolved.pop()
                continue
            resolved.append(part)
        return '/' + '/'.join(resolved)

    def _resolve(self, path: str) -> Optional[FileNode]:
        """Walk the tree; None on any missing segment"""
        current = self.root
        for part in self.resolve_path(path).split('/'):
            if not part:
                continue
            if not current.is_directory:
                return None
            current = current.children.get(part)
            if current is None:
                return None
        return current

    def _resolve_parent(self, path: str) -> Tuple[Optional[FileNode], str, str]:
        """Return (parent node, basename, absolute path) for ``path``"""
        abs_path = self.resolve_path(path)
        parent_path, _, name = abs_path.rpartition('/')
        parent = self._resolve(parent_path or '/')
        return parent, name, abs_path

    def get_node(self, path: str) -> Optional[FileNode]:
        """Get the node at ``path`` if it exists"""
        return self._resolve(path)

    def exists(self, path: str) -> bool:
        return self._resolve(path) is not None

    def is_dir(self, path: str) -> bool:
        node = self._resolve(path)
        return node is not None and node.is_directory

    def is_file(self, path: str) -> bool:
        node = self._resolve(path)
        return node is not None and not node.is_directory

    # ------------------------------------------------------------------
    # Creation and content

    def mkdir(self, path: str, mode: int = 0o755) -> Result:
        """Create one directory; the parent must already exist"""
        parent, name, _ = self._resolve_parent(path)
        if parent is None or not name:
            if not name:
                return Err(ErrorKind.EXISTS, f"cannot create directory '{path}': File exists")
            return Err(ErrorKind.NOT_FOUND,
                       f"cannot create directory '{path}': No such file or directory")
        if not parent.is_directory:
            return Err(ErrorKind.NOT_A_DIRECTORY,
                       f"cannot create directory '{path}': Not a directory")
        if name in parent.children:
            return Err(ErrorKind.EXISTS, f"cannot create directory '{path}': File exists")
        now = self.clock()
        parent.children[name] = FileNode(True, permissions=mode, uid=self.current_uid,
                                         gid=self._current_gid(), mtime=now)
        parent.mtime = now
        return Ok()

    def mkdirp(self, path: str, mode: int = 0o755, uid: Optional[int] = None,
               gid: Optional[int] = None) -> Result:
        """Create a directory and any missing parents; existing ones are kept"""
        uid = self.current_uid if uid is None else uid
        gid = self._current_gid() if gid is None else gid
        current = self.root
        walked = ''
        for part in self.resolve_path(path).split('/'):
            if not part:
                continue
            walked += '/' + part
            child = current.children.get(part)
            if child is None:
                child = FileNode(True, permissions=mode, uid=uid, gid=gid, mtime=self.clock())
                current.children[part] = child
            elif not child.is_directory:
                return Err(ErrorKind.NOT_A_DIRECTORY,
                           f"cannot create directory '{path}': Not a directory")
            current = child
        return Ok(current)

    def write_file(self, path: str, content: str, mode: Optional[int] = None,
                   uid: Optional[int] = None, gid: Optional[int] = None) -> Result:
        """Create or replace a file, creating missing parent directories"""
        abs_path = self.resolve_path(path)
        parent_path, _, name = abs_path.rpartition('/')
        if not name:
            return Err(ErrorKind.IS_A_DIRECTORY, f"{path}: Is a directory")
        parent = self.mkdirp(parent_path or '/', uid=ROOT_UID if uid is None else uid,
                             gid=ROOT_UID if gid is None else gid)
        if not parent.ok:
            return Err(ErrorKind.NOT_A_DIRECTORY, f"{path}: Not a directory")

        now = self.clock()
        node = parent.value.children.get(name)
        if node is not None and node.is_directory:
            return Err(ErrorKind.IS_A_DIRECTORY, f"{path}: Is a directory")
        if node is None:
            node = FileNode(
                permissions=0o644 if mode is None else mode,
                uid=self.current_uid if uid is None else uid,
                gid=self._current_gid() if gid is None else gid,
                mtime=now,
            )
            parent.value.children[name] = node
        else:
            if mode is not None:
                node.permissions = mode & 0o777
            if uid is not None:
                node.uid = uid
            if gid is not None:
                node.gid = gid
        node.content = content
        node.touch(now)
        return Ok()

    def append_file(self, path: str, content: str) -> Result:
        """Append to a file, creating it when missing"""
        node = self._resolve(path)
        if node is None:
            return self.write_file(path, content)
        if node.is_directory:
            return Err(ErrorKind.IS_A_DIRECTORY, f"{path}: Is a directory")
        node.content += content
        node.touch(self.clock())
        return Ok()

    def read_file(self, path: str) -> Result:
        """Read file contents"""
        node = self._resolve(path)
        if node is None:
            return Err(ErrorKind.NOT_FOUND, f"{path}: No such file or directory")
        if node.is_directory:
            return Err(ErrorKind.IS_A_DIRECTORY, f"{path}: Is a directory")
        node.atime = self.clock()
        return Ok(node.content)

    def touch(self, path: str) -> Result:
        """Create an empty file or refresh the timestamps of an existing one"""
        node = self._resolve(path)
        if node is not None:
            node.touch(self.clock())
            return Ok()
        parent, _, _ = self._resolve_parent(path)
        if parent is None or not parent.is_directory:
            return Err(ErrorKind.NOT_FOUND, f"cannot touch '{path}': No such file or directory")
        return self.write_file(path, '')

    # ------------------------------------------------------------------
    # Removal, copy and move

    def rm(self, path: str, recursive: bool = False) -> Result:
        """Remove a file, or a directory when empty or ``recursive``"""
        parent, name, abs_path = self._resolve_parent(path)
        if abs_path == '/':
            return Err(ErrorKind.BUSY, "it is dangerous to operate recursively on '/'")
        if parent is None or not parent.is_directory or name not in parent.children:
            return Err(ErrorKind.NOT_FOUND, f"cannot remove '{path}': No such file or directory")
        node = parent.children[name]
        if node.is_directory and node.children and not recursive:
            return Err(ErrorKind.NOT_EMPTY, f"cannot remove '{path}': Directory not empty")
        del parent.children[name]
        parent.mtime = self.clock()
        return Ok()

    def _destination(self, src_abs: str, dst: str, verb: str) -> Result:
        """Work out the parent node and name a copy or move lands on"""
        dst_node = self._resolve(dst)
        if dst_node is not None and dst_node.is_directory:
            name = src_abs.rpartition('/')[2]
            return Ok((dst_node, name, self.resolve_path(dst).rstrip('/') + '/' + name))
        parent, name, dst_abs = self._resolve_parent(dst)
        if parent is None or not parent.is_directory:
            return Err(ErrorKind.NOT_FOUND,
                       f"cannot {verb} '{dst}': No such file or directory")
        return Ok((parent, name, dst_abs))

    def cp(self, src: str, dst: str, recursive: bool = False) -> Result:
        """Copy a file (or a directory tree when ``recursive``)"""
        node = self._resolve(src)
        if node is None:
            return Err(ErrorKind.NOT_FOUND, f"cannot stat '{src}': No such file or directory")
        if node.is_directory and not recursive:
            return Err(ErrorKind.IS_A_DIRECTORY, f"-r not specified; omitting directory '{src}'")

        src_abs = self.resolve_path(src)
        target = self._destination(src_abs, dst, 'create regular file')
        if not target.ok:
            return target
        parent, name, dst_abs = target.value
        if dst_abs == src_abs:
            return Err(ErrorKind.EXISTS, f"'{src}' and '{dst}' are the same file")
        if node.is_directory and dst_abs.startswith(src_abs + '/'):
            return Err(ErrorKind.INVALID_ARGUMENT,
                       f"cannot copy a directory, '{src}', into itself, '{dst}'")
        existing = parent.children.get(name)
        if existing is not None and existing.is_directory and not node.is_directory:
            return Err(ErrorKind.IS_A_DIRECTORY,
                       f"cannot overwrite directory '{dst}' with non-directory")

        now = self.clock()
        parent.children[name] = node.clone(self.current_uid, self._current_gid(), now)
        parent.mtime = now
        return Ok()

    def mv(self, src: str, dst: str) -> Result:
        """Move or rename a node, keeping its metadata"""
        src_parent, src_name, src_abs = self._resolve_parent(src)
        if src_abs == '/':
            return Err(ErrorKind.BUSY, f"cannot move '{src}': Device or resource busy")
        if src_parent is None or src_name not in src_parent.children:
            return Err(ErrorKind.NOT_FOUND, f"cannot stat '{src}': No such file or directory")
        node = src_parent.children[src_name]

        target = self._destination(src_abs, dst, 'move')
        if not target.ok:
            return target
        parent, name, dst_abs = target.value
        if dst_abs == src_abs:
            return Err(ErrorKind.EXISTS, f"'{src}' and '{dst}' are the same file")
        if node.is_directory and dst_abs.startswith(src_abs + '/'):
            return Err(ErrorKind.INVALID_ARGUMENT,
                       f"cannot move '{src}' to a subdirectory of itself, '{dst}'")
        existing = parent.children.get(name)
        if existing is not None and existing.is_directory != node.is_directory:
            if node.is_directory:
                return Err(ErrorKind.NOT_A_DIRECTORY,
                           f"cannot overwrite non-directory '{dst}' with directory '{src}'")
            return Err(ErrorKind.IS_A_DIRECTORY,
                       f"cannot overwrite directory '{dst}' with non-directory")
        if existing is not None and existing.is_directory and existing.children:
            return Err(ErrorKind.NOT_EMPTY, f"cannot move '{src}' to '{dst}': Directory not empty")

        del src_parent.children[src_name]
        parent.children[name] = node
        now = self.clock()
        node.ctime = now
        src_parent.mtime = parent.mtime = now
        return Ok()

    # ------------------------------------------------------------------
    # Metadata

    def chmod(self, path: str, mode: Union[str, int]) -> Result:
        """Change permission bits from an octal or symbolic mode"""
        node = self._resolve(path)
        if isinstance(mode, int):
            new_mode: Optional[int] = mode & 0o777
        else:
            new_mode = parse_mode(mode, node.permissions if node else 0)
        if new_mode is None:
            return Err(ErrorKind.INVALID_ARGUMENT, f"invalid mode: '{mode}'")
        if node is None:
            return Err(ErrorKind.NOT_FOUND, f"cannot access '{path}': No such file or directory")
        node.permissions = new_mode
        node.ctime = self.clock()
        return Ok()

    def chown(self, path: str, owner: Optional[str], group: Optional[str] = None) -> Result:
        """Change owner and/or group; only root may do this"""
        user = None
        grp = None
        if owner:
            user = self.find_user(owner)
            if user is None:
                return Err(ErrorKind.UNKNOWN_USER, f"invalid user: '{owner}'")
        if group:
            grp = self.find_group(group)
            if grp is None:
                return Err(ErrorKind.UNKNOWN_GROUP, f"invalid group: '{group}'")

        node = self._resolve(path)
        if node is None:
            return Err(ErrorKind.NOT_FOUND, f"cannot access '{path}': No such file or directory")
        if not self.session.is_root:
            return Err(ErrorKind.PERMISSION_DENIED,
                       f"changing ownership of '{path}': Operation not permitted")
        if user is not None:
            node.uid = user.uid
        if grp is not None:
            node.gid = grp.gid
        node.ctime = self.clock()
        return Ok()

    def _entry(self, name: str, node: FileNode, human: bool = False) -> LsEntry:
        return LsEntry(
            name=name,
            is_directory=node.is_directory,
            permissions=format_permissions(node.permissions, node.is_directory),
            mode=node.permissions,
            links=node.links,
            owner=self.user_name(node.uid),
            group=self.group_name(node.gid),
            size=node.size,
            date=format_timestamp(node.mtime),
        )

    def ls(self, path: str = '.', all: bool = False, recursive: bool = False) -> Result:
        """List a directory (or describe a file).

        Returns ``Ok(List[DirListing])``: one listing, or one per directory
        visited when ``recursive``. Dot entries are hidden unless ``all``,
        in which case ``.`` and ``..`` lead the listing.
        """
        node = self._resolve(path)
        if node is None:
            return Err(ErrorKind.NOT_FOUND, f"cannot access '{path}': No such file or directory")
        if not node.is_directory:
            return Ok([DirListing(path, [self._entry(path, node)], is_file=True)])

        listings: List[DirListing] = []
        pending = [(path, node, self.resolve_path(path))]
        while pending:
            label, current, abs_path = pending.pop(0)
            names = sorted(n for n in current.children if all or not n.startswith('.'))
            entries = [self._entry(n, current.children[n]) for n in names]
            if all:
                parent = self._resolve(abs_path.rpartition('/')[0] or '/')
                entries[:0] = [self._entry('.', current), self._entry('..', parent or current)]
            listings.append(DirListing(label, entries))
            if recursive:
                subdirs = [
                    (f"{label.rstrip('/')}/{n}", current.children[n], f"{abs_path.rstrip('/')}/{n}")
                    for n in names if current.children[n].is_directory
                ]
                pending[:0] = subdirs
        return Ok(listings)

    def stat(self, path: str) -> Optional[StatResult]:
        """Metadata for ``path``, or None when it does not exist"""
        node = self._resolve(path)
        if node is None:
            return None
        return StatResult(
            path=self.resolve_path(path),
            is_directory=node.is_directory,
            size=node.size,
            permissions=node.permissions,
            uid=node.uid,
            gid=node.gid,
            owner=self.user_name(node.uid),
            group=self.group_name(node.gid),
            links=node.links,
            mtime=node.mtime,
            atime=node.atime,
            ctime=node.ctime,
        )

    def du(self, path: str = '.', files: bool = False) -> Result:
        """Total content bytes below ``path``, with one entry per subdirectory
        (and per file when ``files`` is set)"""
        node = self._resolve(path)
        if node is None:
            return Err(ErrorKind.NOT_FOUND, f"cannot access '{path}': No such file or directory")

        entries: List[Tuple[str, int]] = []

        def walk(current: FileNode, prefix: str) -> int:
            if not current.is_directory:
                return current.size
            total = 0
            for name in sorted(current.children):
                child = current.children[name]
                relative = f"{prefix}{name}"
                size = walk(child, relative + '/')
                if child.is_directory or files:
                    entries.append((relative, size))
                total += size
            return total

        total = walk(node, '')
        return Ok(DiskUsage(bytes=total, blocks=math.ceil(total / 1024), entries=entries))

    def find(self, root: str = '.', name: Optional[str] = None, type: Optional[str] = None,
             iname: Optional[str] = None, maxdepth: Optional[int] = None) -> List[str]:
        """Absolute paths below ``root`` matching the given tests.

        ``name``/``iname`` are shell glob patterns, ``type`` is ``'f'`` or
        ``'d'``. A missing root yields an empty list.
        """
        start = self._resolve(root)
        if start is None:
            return []

        results: List[str] = []

        def walk(abs_path: str, node: FileNode, depth: int) -> None:
            basename = abs_path.rpartition('/')[2] or '/'
            match = True
            if name is not None and not fnmatch.fnmatchcase(basename, name):
                match = False
            if iname is not None and not fnmatch.fnmatchcase(basename.lower(), iname.lower()):
                match = False
            if type == 'f' and node.is_directory:
                match = False
            if type == 'd' and not node.is_directory:
                match = False
            if match:
                results.append(abs_path)
            if node.is_directory and (maxdepth is None or depth < maxdepth):
                for child_name in sorted(node.children):
                    child_path = f"{abs_path.rstrip('/')}/{child_name}"
                    walk(child_path, node.children[child_name], depth + 1)

        walk(self.resolve_path(root), start, 0)
        return results

    def get_prompt(self) -> str:
        """Generate bash prompt"""
        user = self.user_name(self.session.uid)
        cwd = self.session.cwd
        home = self.session.home
        if home != '/' and (cwd == home or cwd.startswith(home + '/')):
            cwd = '~' + cwd[len(home):]
        symbol = '#' if self.session.is_root else '$'
        return f"{user}@{self.session.hostname}:{cwd}{symbol} "

    # ------------------------------------------------------------------
    # Lifecycle

    def reset_to_lesson(self, setup_fn: Optional[SetupHook] = None) -> None:
        """Discard the whole tree and session and rebuild the baseline.

        The new state is built and handed to ``setup_fn`` on a staging
        instance first, so an exception from the hook leaves the current
        tree untouched.
        """
        staged = VirtualFilesystem(clock=self.clock, hostname=self.hostname)
        if setup_fn is not None:
            setup_fn(staged)
        self.root = staged.root
        self.users = staged.users
        self.groups = staged.groups
        self.session = staged.session
        logger.debug("Filesystem reset to baseline")

    def _build_baseline(self) -> None:
        """Initialize the lab host's directory structure"""
        for path in BASELINE_DIRECTORIES:
            self.mkdirp(path, uid=ROOT_UID, gid=ROOT_UID)

        user = self.users[DEFAULT_UID]
        for path, content in BASELINE_FILES.items():
            if path.startswith('/proc/'):
                mode = 0o444
            elif path == '/etc/shadow':
                mode = 0o640
            else:
                mode = 0o644
            owner = user.uid if path.startswith(user.home + '/') else ROOT_UID
            gid = user.gid if owner == user.uid else ROOT_UID
            self.write_file(path, content, mode=mode, uid=owner, gid=gid)

        home = self._resolve(user.home)
        stack = [home] if home else []
        while stack:
            node = stack.pop()
            node.uid, node.gid = user.uid, user.gid
            stack.extend(node.children.values())

        self._resolve('/tmp').permissions = 0o777
        self._resolve('/root').permissions = 0o700


BASELINE_DIRECTORIES = [
    '/bin', '/sbin', '/usr/bin', '/usr/sbin', '/usr/local/bin', '/usr/share/doc',
    '/etc/nginx', '/etc/ssh', '/etc/systemd/system', '/etc/network',
    '/var/log/nginx', '/var/run', '/var/backups', '/var/www/html', '/var/lib',
    '/tmp', '/opt', '/root', '/home/clouduser/Documents', '/home/clouduser/projects',
    '/dev', '/proc', '/sys', '/mnt', '/srv',
]

BASELINE_FILES: Dict[str, str] = {
    '/etc/hostname': 'gcp-lab\n',
    '/etc/hosts': (
        '127.0.0.1\tlocalhost\n'
        '127.0.1.1\tgcp-lab\n'
        '10.128.0.2\tweb-server\n'
        '10.128.0.3\tdb-server\n'
        '10.128.0.4\tapp-server\n'
    ),
    '/etc/resolv.conf': (
        'nameserver 8.8.8.8\n'
        'nameserver 8.8.4.4\n'
        'search c.my-project.internal google.internal\n'
    ),
    '/etc/os-release': (
        'NAME="Ubuntu"\n'
        'VERSION="22.04.3 LTS (Jammy Jellyfish)"\n'
        'ID=ubuntu\n'
        'VERSION_ID="22.04"\n'
        'PRETTY_NAME="Ubuntu 22.04.3 LTS"\n'
    ),
    '/etc/passwd': (
        'root:x:0:0:root:/root:/bin/bash\n'
        'nobody:x:65534:65534:nobody:/nonexistent:/usr/sbin/nologin\n'
        'syslog:x:104:110::/home/syslog:/usr/sbin/nologin\n'
        'clouduser:x:1000:1000:Cloud User:/home/clouduser:/bin/bash\n'
        'nginx:x:33:33:www-data:/var/www:/usr/sbin/nologin\n'
    ),
    '/etc/group': (
        'root:x:0:\n'
        'sudo:x:27:clouduser\n'
        'www-data:x:33:nginx\n'
        'nginx:x:101:nginx\n'
        'docker:x:999:clouduser\n'
        'clouduser:x:1000:clouduser\n'
        'nogroup:x:65534:\n'
    ),
    '/etc/shadow': (
        'root:$6$rounds=4096$salt$hash:19000:0:99999:7:::\n'
        'clouduser:$6$rounds=4096$salt$hash:19000:0:99999:7:::\n'
    ),
    '/etc/fstab': (
        '# /etc/fstab: static file system information\n'
        'UUID=abc-123\t/\text4\tdefaults\t0\t1\n'
        '/dev/sdb1\t/mnt/data\text4\tdefaults\t0\t2\n'
    ),
    '/etc/ssh/sshd_config': (
        'Port 22\n'
        'PermitRootLogin no\n'
        'PasswordAuthentication no\n'
        'PubkeyAuthentication yes\n'
        'MaxAuthTries 3\n'
        'X11Forwarding no\n'
    ),
    '/etc/nginx/nginx.conf': (
        'user nginx;\n'
        'worker_processes auto;\n'
        'error_log /var/log/nginx/error.log;\n'
        'pid /var/run/nginx.pid;\n'
        '\n'
        'events {\n'
        '    worker_connections 1024;\n'
        '}\n'
        '\n'
        'http {\n'
        '    include /etc/nginx/mime.types;\n'
        '    default_type application/octet-stream;\n'
        '    access_log /var/log/nginx/access.log;\n'
        '\n'
        '    server {\n'
        '        listen 80;\n'
        '        server_name gcp-lab;\n'
        '        root /var/www/html;\n'
        '        index index.html;\n'
        '    }\n'
        '}\n'
    ),
    '/etc/network/interfaces': (
        'auto lo\n'
        'iface lo inet loopback\n'
        '\n'
        'auto eth0\n'
        'iface eth0 inet dhcp\n'
    ),
    '/etc/systemd/system.conf': (
        '[Manager]\n'
        'DefaultTimeoutStartSec=90s\n'
        'DefaultTimeoutStopSec=90s\n'
    ),
    '/var/log/syslog': (
        'Jan 15 08:00:01 gcp-lab CRON[1234]: (root) CMD (/usr/lib/apt/apt.systemd.daily)\n'
        'Jan 15 08:01:12 gcp-lab systemd[1]: Starting nginx.service...\n'
        'Jan 15 08:01:12 gcp-lab systemd[1]: Started nginx.service.\n'
        'Jan 15 08:05:33 gcp-lab sshd[5678]: Accepted publickey for clouduser from 35.202.100.5\n'
        'Jan 15 08:10:00 gcp-lab kernel: [UFW BLOCK] IN=eth0 OUT= SRC=192.168.1.100 '
        'DST=10.128.0.2 PROTO=TCP DPT=3306\n'
        'Jan 15 09:00:01 gcp-lab CRON[2345]: (clouduser) CMD (/home/clouduser/scripts/backup.sh)\n'
        'Jan 15 09:15:22 gcp-lab sshd[6789]: Failed password for invalid user admin from 185.220.101.42\n'
        'Jan 15 09:15:23 gcp-lab sshd[6789]: Failed password for invalid user admin from 185.220.101.42\n'
        'Jan 15 09:15:24 gcp-lab sshd[6789]: Failed password for invalid user admin from 185.220.101.42\n'
        'Jan 15 10:30:00 gcp-lab systemd[1]: nginx.service: Main process exited, code=killed, '
        'status=9/KILL\n'
        "Jan 15 10:30:00 gcp-lab systemd[1]: nginx.service: Failed with result 'signal'.\n"
    ),
    '/var/log/auth.log': (
        'Jan 15 08:05:33 gcp-lab sshd[5678]: Accepted publickey for clouduser from 35.202.100.5 '
        'port 52341 ssh2\n'
        'Jan 15 09:15:22 gcp-lab sshd[6789]: Failed password for invalid user admin from '
        '185.220.101.42 port 43210 ssh2\n'
        'Jan 15 09:15:23 gcp-lab sshd[6789]: Failed password for invalid user admin from '
        '185.220.101.42 port 43211 ssh2\n'
        'Jan 15 09:15:24 gcp-lab sshd[6789]: Failed password for invalid user admin from '
        '185.220.101.42 port 43212 ssh2\n'
        'Jan 15 09:15:25 gcp-lab sshd[6789]: Connection closed by invalid user admin '
        '185.220.101.42 port 43213\n'
        'Jan 15 10:00:00 gcp-lab sudo: clouduser : TTY=pts/0 ; PWD=/home/clouduser ; USER=root ; '
        'COMMAND=/bin/systemctl restart nginx\n'
    ),
    '/var/log/nginx/access.log': (
        '10.128.0.1 - - [15/Jan/2025:08:01:15 +0000] "GET / HTTP/1.1" 200 612 "-" "Mozilla/5.0"\n'
        '10.128.0.1 - - [15/Jan/2025:08:02:30 +0000] "GET /api/health HTTP/1.1" 200 15 "-" '
        '"curl/7.81.0"\n'
        '10.128.0.5 - - [15/Jan/2025:08:10:01 +0000] "GET /images/logo.png HTTP/1.1" 404 162 "-" '
        '"Mozilla/5.0"\n'
        '10.128.0.1 - - [15/Jan/2025:09:00:00 +0000] "POST /api/data HTTP/1.1" 500 30 "-" '
        '"python-requests/2.28"\n'
        '192.168.1.100 - - [15/Jan/2025:09:30:00 +0000] "GET /admin HTTP/1.1" 403 162 "-" '
        '"Mozilla/5.0"\n'
    ),
    '/var/log/nginx/error.log': (
        '2025/01/15 08:10:01 [error] 1234#0: *3 open() "/var/www/html/images/logo.png" failed '
        '(2: No such file or directory)\n'
        '2025/01/15 09:00:00 [error] 1234#0: *5 upstream timed out (110: Connection timed out) '
        'while connecting to upstream\n'
    ),
    '/var/www/html/index.html': (
        '<!DOCTYPE html>\n'
        '<html>\n'
        '<head><title>GCP Lab Server</title></head>\n'
        '<body>\n'
        '<h1>Welcome to GCP Lab</h1>\n'
        '<p>Server is running.</p>\n'
        '</body>\n'
        '</html>\n'
    ),
    '/var/backups/nginx.conf.bak': (
        'user nginx;\n'
        'worker_processes auto;\n'
        'error_log /var/log/nginx/error.log;\n'
        'pid /var/run/nginx.pid;\n'
        '\n'
        'events {\n'
        '    worker_connections 1024;\n'
        '}\n'
        '\n'
        'http {\n'
        '    server {\n'
        '        listen 80;\n'
        '        server_name gcp-lab;\n'
        '        root /var/www/html;\n'
        '    }\n'
        '}\n'
    ),
    '/home/clouduser/.bashrc': (
        '# ~/.bashrc\n'
        'export PS1="\\u@\\h:\\w$ "\n'
        'alias ll="ls -la"\n'
        'alias gs="git status"\n'
        'export PATH=$PATH:/usr/local/go/bin\n'
    ),
    '/home/clouduser/.bash_history': (
        'ls -la\n'
        'cd /var/log\n'
        'tail -f syslog\n'
        'sudo systemctl status nginx\n'
        'df -h\n'
        'free -m\n'
        'top\n'
    ),
    '/home/clouduser/notes.txt': (
        'GCP Study Notes\n'
        '===============\n'
        '- Compute Engine = IaaS VMs\n'
        '- Cloud Run = Serverless containers\n'
        '- GKE = Managed Kubernetes\n'
        '- Cloud SQL = Managed databases\n'
        '- Remember: always use least privilege IAM\n'
    ),
    '/proc/cpuinfo': (
        'processor\t: 0\n'
        'vendor_id\t: GenuineIntel\n'
        'cpu family\t: 6\n'
        'model name\t: Intel(R) Xeon(R) CPU @ 2.20GHz\n'
        'cpu MHz\t\t: 2200.000\n'
        'cache size\t: 56320 KB\n'
        'cpu cores\t: 2\n'
        '\n'
        'processor\t: 1\n'
        'vendor_id\t: GenuineIntel\n'
        'cpu family\t: 6\n'
        'model name\t: Intel(R) Xeon(R) CPU @ 2.20GHz\n'
        'cpu MHz\t\t: 2200.000\n'
        'cache size\t: 56320 KB\n'
        'cpu cores\t: 2\n'
    ),
    '/proc/meminfo': (
        'MemTotal:        4045572 kB\n'
        'MemFree:         1523456 kB\n'
        'MemAvailable:    2845312 kB\n'
        'Buffers:          234567 kB\n'
        'Cached:          1087289 kB\n'
        'SwapTotal:       2097148 kB\n'
        'SwapFree:        2097148 kB\n'
    ),
    '/proc/version': (
        'Linux version 5.15.0-1049-gcp (buildd@lcy02-amd64-040) '
        '(gcc (Ubuntu 11.4.0-1ubuntu1~22.04) 11.4.0) #57-Ubuntu SMP\n'
    ),
    '/proc/uptime': '86400.52 172300.10\n',
    '/proc/loadavg': '0.15 0.10 0.08 1/234 5678\n',
}
