# python
"""
tests/test_lessons.py
Task validation, lesson progression and lesson loading on a Lab.
"""

import pytest

from linuxlab.lessons import LESSONS, Lab, Lesson, Task, Validation, find_lesson, validate


def _run_all(lab: Lab, lines):
    return [lab.run(line) for line in lines]


def test_lesson_catalogue_ids_are_unique() -> None:
    ids = [lesson.id for lesson in LESSONS]
    assert len(ids) == len(set(ids))
    assert find_lesson('nav-101').title == 'First Steps'
    assert find_lesson('nope') is None


def test_validate_kinds(fs) -> None:
    fs.write_file('/home/clouduser/app.yaml', 'runtime: python311\n')
    fs.chmod('/home/clouduser/app.yaml', '600')

    assert validate(Validation('command', 'pwd'), '  pwd ', '', fs)
    assert validate(Validation('command', 'sudo'), 'sudo -i', '', fs)
    assert not validate(Validation('command', 'pwd'), 'ls', '', fs)
    assert validate(Validation('command_contains', '|'), 'cat a | wc', '', fs)
    assert validate(Validation('output_contains', '6'), 'wc -l', '6', fs)
    assert validate(Validation('file_exists', '/home/clouduser/app.yaml'), '', '', fs)
    assert validate(Validation('file_contains', {'path': '/home/clouduser/app.yaml',
                                                 'content': 'python311'}), '', '', fs)
    assert not validate(Validation('file_contains', {'path': '/missing', 'content': 'x'}), '', '', fs)
    assert validate(Validation('cwd', '/home/clouduser'), '', '', fs)
    assert validate(Validation('permission', {'path': '/home/clouduser/app.yaml', 'mode': '600'}),
                    '', '', fs)
    assert not validate(Validation('permission', '600'), '', '', fs)


def test_unknown_validation_falls_back_to_command_text(fs) -> None:
    assert validate(Validation('mystery', 'grep'), 'grep x file', '', fs)
    assert not validate(Validation('mystery', 'grep'), 'ls', '', fs)


def test_free_play_has_no_task(lab) -> None:
    outcome = lab.run('whoami')
    assert outcome.output == 'clouduser'
    assert outcome.task is None
    assert not outcome.passed
    assert not outcome.lesson_complete


def test_first_steps_lesson_completes(lab) -> None:
    lab.load_lesson(find_lesson('nav-101'))
    assert lab.current_task.id == 'nav-101-1'

    wrong = lab.run('ls')
    assert not wrong.passed
    assert lab.current_task.id == 'nav-101-1'

    outcomes = _run_all(lab, ['pwd', 'ls -la', 'cd projects', 'cd'])
    assert [o.passed for o in outcomes] == [True, True, True, True]
    assert [o.task.id for o in outcomes] == ['nav-101-1', 'nav-101-2', 'nav-101-3', 'nav-101-4']
    assert outcomes[-1].lesson_complete
    assert lab.is_complete
    assert lab.current_task is None


def test_pipe_lesson_counts_running_servers(lab) -> None:
    lab.load_lesson(find_lesson('pipe-401'))
    first = lab.run('cat servers.txt | grep running')
    assert first.passed
    second = lab.run('cat servers.txt | grep running | wc -l')
    assert second.output == '6'
    assert second.passed
    assert second.lesson_complete


def test_file_lesson(lab) -> None:
    lab.load_lesson(find_lesson('files-201'))
    outcomes = _run_all(lab, [
        'mkdir deployment',
        'mkdir -p deployment/staging/configs',
        'echo "runtime: python311" > deployment/app.yaml',
    ])
    assert all(o.passed for o in outcomes)
    assert lab.is_complete


def test_permission_lesson(lab) -> None:
    lab.load_lesson(find_lesson('perm-501'))
    assert lab.fs.stat('/home/clouduser/deploy.sh').octal == '644'
    assert lab.run('chmod 755 deploy.sh').passed
    assert not lab.run('chmod 640 secrets.env').passed
    assert lab.run('chmod 600 secrets.env').passed
    assert lab.is_complete


def test_firewall_lesson(lab) -> None:
    lab.load_lesson(find_lesson('net-101'))
    assert lab.network.resolve('api-gateway') == '10.128.0.40'
    outcomes = _run_all(lab, [
        'sudo -i',
        'iptables -A INPUT -p tcp --dport 443 -j ACCEPT',
        'iptables -L INPUT',
    ])
    assert [o.passed for o in outcomes] == [True, True, True]
    assert 'dpt:https' in outcomes[-1].output


def test_load_lesson_starts_from_fresh_host(lab) -> None:
    lab.run('touch leftover.txt')
    lab.load_lesson(find_lesson('nav-101'))
    assert not lab.fs.exists('/home/clouduser/leftover.txt')
    assert lab.fs.is_file('/home/clouduser/projects/README.md')


def test_reset_clears_progress(lab) -> None:
    lab.load_lesson(find_lesson('perm-501'))
    lab.run('chmod 755 deploy.sh')
    lab.reset()
    assert lab.completed == set()
    assert lab.fs.stat('/home/clouduser/deploy.sh').octal == '644'
    assert lab.lesson.id == 'perm-501'


def test_failing_setup_hook_keeps_previous_host(lab) -> None:
    lab.load_lesson(find_lesson('pipe-401'))
    lab.run('cat servers.txt | grep running')
    fs_before = lab.fs

    def broken(fs) -> None:
        fs.write_file('/tmp/half-done', 'x')
        raise RuntimeError('seed data missing')

    bad = Lesson('broken-1', 'Broken', [Task('broken-1-1', 'Nothing', Validation('command', 'pwd'))],
                 setup_fs=broken)
    with pytest.raises(RuntimeError):
        lab.load_lesson(bad)
    assert lab.fs is fs_before
    assert lab.lesson.id == 'pipe-401'
    assert lab.completed == {'pipe-401-1'}
    assert not lab.fs.exists('/tmp/half-done')
