# python
"""
tests/test_database.py
SQLite persistence of sessions, command transcripts and lesson progress.
"""

from datetime import datetime, timedelta

from linuxlab.database import LabDatabase

START = datetime(2024, 1, 15, 8, 0, 0)


def _make_db(tmp_path) -> LabDatabase:
    return LabDatabase(str(tmp_path / 'data' / 'lab.db'))


def test_creates_parent_directory(tmp_path) -> None:
    db = _make_db(tmp_path)
    assert (tmp_path / 'data' / 'lab.db').exists()
    db.close()


def test_session_lifecycle(tmp_path) -> None:
    db = _make_db(tmp_path)
    db.log_session_start('s1', 'alice', START, client_ip='10.0.0.5')
    db.log_command('s1', 'pwd', '/home/clouduser', START + timedelta(seconds=5))
    db.log_command('s1', 'ls', 'notes.txt', START + timedelta(seconds=9),
                   task_id='nav-101-2', passed=True)
    db.set_session_lesson('s1', 'nav-101')
    db.log_session_end('s1', START + timedelta(seconds=90))

    sessions = db.get_recent_sessions()
    assert len(sessions) == 1
    session = sessions[0]
    assert session['username'] == 'alice'
    assert session['client_ip'] == '10.0.0.5'
    assert session['lesson_id'] == 'nav-101'
    assert session['duration_seconds'] == 90.0
    assert session['commands_count'] == 2

    commands = db.get_session_commands('s1')
    assert [c['command'] for c in commands] == ['pwd', 'ls']
    assert commands[1]['task_id'] == 'nav-101-2'
    assert commands[1]['passed'] == 1
    db.close()


def test_end_of_unknown_session_is_ignored(tmp_path) -> None:
    db = _make_db(tmp_path)
    db.log_session_end('ghost', START)
    assert db.get_recent_sessions() == []
    db.close()


def test_duplicate_session_id_is_logged_not_raised(tmp_path) -> None:
    db = _make_db(tmp_path)
    db.log_session_start('s1', 'alice', START)
    db.log_session_start('s1', 'bob', START)
    sessions = db.get_recent_sessions()
    assert [s['username'] for s in sessions] == ['alice']
    db.close()


def test_task_progress(tmp_path) -> None:
    db = _make_db(tmp_path)
    db.mark_task_completed('alice', 'nav-101', 'nav-101-1', START)
    db.mark_task_completed('alice', 'nav-101', 'nav-101-2', START + timedelta(seconds=1))
    db.mark_task_completed('alice', 'nav-101', 'nav-101-1', START + timedelta(seconds=2))
    db.mark_task_completed('alice', 'perm-501', 'perm-501-1', START)
    db.mark_task_completed('bob', 'nav-101', 'nav-101-1', START)

    assert db.get_completed_tasks('alice', 'nav-101') == ['nav-101-1', 'nav-101-2']
    assert db.get_progress('alice') == {'nav-101': 2, 'perm-501': 1}

    db.reset_progress('alice', 'nav-101')
    assert db.get_progress('alice') == {'perm-501': 1}
    db.reset_progress('alice')
    assert db.get_progress('alice') == {}
    assert db.get_progress('bob') == {'nav-101': 1}
    db.close()


def test_reopen_keeps_data(tmp_path) -> None:
    db = _make_db(tmp_path)
    db.mark_task_completed('alice', 'nav-101', 'nav-101-1', START)
    db.close()

    reopened = _make_db(tmp_path)
    assert reopened.get_completed_tasks('alice', 'nav-101') == ['nav-101-1']
    reopened.close()
