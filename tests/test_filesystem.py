# python
"""
tests/test_filesystem.py
Path resolution, mutations and metadata of the in-memory filesystem.
"""

import pytest

from linuxlab.filesystem import VirtualFilesystem, human_size, parse_mode
from linuxlab.result import ErrorKind

from conftest import FIXED_TIME, fixed_clock


def _names(fs: VirtualFilesystem, path: str, all: bool = False):
    result = fs.ls(path, all=all)
    assert result.ok
    return [entry.name for entry in result.value[0].entries]


def test_session_starts_in_home() -> None:
    fs = VirtualFilesystem(clock=fixed_clock)
    assert fs.cwd == '/home/clouduser'
    assert fs.current_uid == 1000
    assert fs.get_prompt() == 'clouduser@gcp-lab:~$ '


def test_resolve_path_normalizes(fs) -> None:
    assert fs.resolve_path('projects/../Documents/./x') == '/home/clouduser/Documents/x'
    assert fs.resolve_path('~/notes.txt') == '/home/clouduser/notes.txt'
    assert fs.resolve_path('/../..') == '/'
    assert fs.resolve_path('') == '/home/clouduser'


def test_mkdirp_is_idempotent(fs) -> None:
    assert fs.mkdirp('a/b/c').ok
    assert fs.mkdirp('a/b/c').ok
    assert fs.is_dir('/home/clouduser/a/b/c')


def test_mkdir_requires_parent_and_rejects_existing(fs) -> None:
    missing = fs.mkdir('x/y')
    assert not missing.ok
    assert missing.kind is ErrorKind.NOT_FOUND

    assert fs.mkdir('x').ok
    again = fs.mkdir('x')
    assert again.kind is ErrorKind.EXISTS
    assert again.message == "cannot create directory 'x': File exists"


def test_mkdirp_through_file_fails(fs) -> None:
    fs.write_file('plain', 'data\n')
    result = fs.mkdirp('plain/sub')
    assert result.kind is ErrorKind.NOT_A_DIRECTORY


def test_write_then_read_returns_content(fs) -> None:
    assert fs.write_file('/tmp/deep/dir/file.txt', 'hello\n').ok
    assert fs.read_file('/tmp/deep/dir/file.txt').value == 'hello\n'
    assert fs.is_dir('/tmp/deep/dir')


def test_read_errors(fs) -> None:
    missing = fs.read_file('nope.txt')
    assert missing.kind is ErrorKind.NOT_FOUND
    assert missing.message == 'nope.txt: No such file or directory'

    directory = fs.read_file('projects')
    assert directory.kind is ErrorKind.IS_A_DIRECTORY
    assert directory.message == 'projects: Is a directory'


def test_append_creates_and_extends(fs) -> None:
    fs.append_file('log.txt', 'one\n')
    fs.append_file('log.txt', 'two\n')
    assert fs.read_file('log.txt').value == 'one\ntwo\n'


def test_new_files_belong_to_current_user(fs) -> None:
    fs.touch('mine.txt')
    info = fs.stat('mine.txt')
    assert info.owner == 'clouduser'
    assert info.group == 'clouduser'
    assert info.octal == '644'
    assert info.mtime == FIXED_TIME


def test_rm_rules(fs) -> None:
    fs.mkdirp('full/inner')
    not_empty = fs.rm('full')
    assert not_empty.kind is ErrorKind.NOT_EMPTY
    assert fs.rm('full', recursive=True).ok
    assert not fs.exists('full')

    assert fs.rm('ghost').kind is ErrorKind.NOT_FOUND
    assert fs.rm('/', recursive=True).kind is ErrorKind.BUSY


def test_cp_file_and_tree(fs) -> None:
    fs.mkdirp('src/sub')
    fs.write_file('src/sub/a.txt', 'A\n')

    refused = fs.cp('src', 'dst')
    assert refused.kind is ErrorKind.IS_A_DIRECTORY

    assert fs.cp('src', 'dst', recursive=True).ok
    assert fs.read_file('dst/sub/a.txt').value == 'A\n'

    fs.write_file('dst/sub/a.txt', 'changed\n')
    assert fs.read_file('src/sub/a.txt').value == 'A\n'


def test_cp_into_directory_keeps_name(fs) -> None:
    assert fs.cp('notes.txt', 'Documents').ok
    assert fs.is_file('Documents/notes.txt')


def test_cp_directory_into_itself(fs) -> None:
    fs.mkdirp('loop')
    result = fs.cp('loop', 'loop/inner', recursive=True)
    assert result.kind is ErrorKind.INVALID_ARGUMENT


def test_mv_renames_and_keeps_content(fs) -> None:
    fs.write_file('old.txt', 'payload\n')
    assert fs.mv('old.txt', 'new.txt').ok
    assert not fs.exists('old.txt')
    assert fs.read_file('new.txt').value == 'payload\n'


def test_mv_root_is_busy(fs) -> None:
    assert fs.mv('/', '/tmp/root').kind is ErrorKind.BUSY


def test_chmod_octal_and_symbolic(fs) -> None:
    fs.write_file('script.sh', 'echo hi\n')
    assert fs.chmod('script.sh', '600').ok
    assert fs.stat('script.sh').octal == '600'
    assert fs.stat('script.sh').mode_string == '-rw-------'

    assert fs.chmod('script.sh', 'u+x,g+r').ok
    assert fs.stat('script.sh').octal == '740'

    bad = fs.chmod('script.sh', 'z+q')
    assert bad.kind is ErrorKind.INVALID_ARGUMENT


def test_chown_needs_root(fs) -> None:
    fs.touch('owned.txt')
    denied = fs.chown('owned.txt', 'root')
    assert denied.kind is ErrorKind.PERMISSION_DENIED

    fs.current_uid = 0
    assert fs.chown('owned.txt', 'nobody', 'nogroup').ok
    info = fs.stat('owned.txt')
    assert info.owner == 'nobody'
    assert info.uid == 65534


def test_chown_unknown_user(fs) -> None:
    fs.current_uid = 0
    result = fs.chown('notes.txt', 'mallory')
    assert result.kind is ErrorKind.UNKNOWN_USER


def test_ls_hides_dotfiles_unless_all(fs) -> None:
    assert _names(fs, '.') == ['Documents', 'notes.txt', 'projects']
    names = _names(fs, '.', all=True)
    assert names[:2] == ['.', '..']
    assert '.bashrc' in names


def test_ls_recursive_lists_subdirectories(fs) -> None:
    fs.mkdirp('projects/web')
    result = fs.ls('projects', recursive=True)
    assert [listing.path for listing in result.value] == ['projects', 'projects/web']


def test_ls_missing_path(fs) -> None:
    result = fs.ls('missing')
    assert result.message == "cannot access 'missing': No such file or directory"


def test_find_returns_preorder_absolute_paths(fs) -> None:
    fs.mkdirp('/opt/app/conf')
    fs.write_file('/opt/app/conf/app.yaml', 'x: 1\n')
    fs.write_file('/opt/app/README', 'readme\n')

    assert fs.find('/opt/app') == [
        '/opt/app', '/opt/app/README', '/opt/app/conf', '/opt/app/conf/app.yaml']
    assert fs.find('/opt', name='*.yaml') == ['/opt/app/conf/app.yaml']
    assert fs.find('/opt', type='d', maxdepth=1) == ['/opt', '/opt/app']
    assert fs.find('/opt', iname='readme') == ['/opt/app/README']
    assert fs.find('/nowhere') == []


def test_du_counts_content_bytes(fs) -> None:
    fs.mkdirp('/srv/data')
    fs.write_file('/srv/data/a', 'x' * 1000)
    fs.write_file('/srv/data/b', 'y' * 100)
    usage = fs.du('/srv/data').value
    assert usage.bytes == 1100
    assert usage.blocks == 2


def test_du_entries_are_post_order(fs) -> None:
    fs.mkdirp('/srv/data/logs')
    fs.write_file('/srv/data/logs/app.log', 'z' * 3000)
    fs.write_file('/srv/data/a', 'x' * 1000)
    assert fs.du('/srv').value.entries == [('data/logs', 3000), ('data', 4000)]
    assert fs.du('/srv/data', files=True).value.entries == [
        ('a', 1000), ('logs/app.log', 3000), ('logs', 3000)]
    assert fs.du('/missing').kind is ErrorKind.NOT_FOUND


def test_reset_restores_baseline_and_session(fs) -> None:
    fs.write_file('scratch.txt', 'tmp\n')
    fs.session.chdir('/tmp')
    fs.reset_to_lesson()
    assert not fs.exists('/home/clouduser/scratch.txt')
    assert fs.cwd == '/home/clouduser'


def test_reset_with_failing_hook_keeps_current_tree(fs) -> None:
    fs.write_file('keep.txt', 'still here\n')

    def broken(staged: VirtualFilesystem) -> None:
        staged.write_file('/tmp/partial', 'x')
        raise RuntimeError('setup failed')

    with pytest.raises(RuntimeError):
        fs.reset_to_lesson(broken)
    assert fs.read_file('keep.txt').value == 'still here\n'
    assert not fs.exists('/tmp/partial')


def test_parse_mode_and_human_size() -> None:
    assert parse_mode('755') == 0o755
    assert parse_mode('a-w', 0o666) == 0o444
    assert parse_mode('u=rwx,go=', 0o644) == 0o700
    assert parse_mode('bogus') is None
    assert human_size(512) == '512'
