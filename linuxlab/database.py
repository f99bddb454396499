#!/usr/bin/env python3
"""
Database Module - SQLite persistence for lab sessions, command
transcripts and lesson progress
"""

import sqlite3
import os
import threading
from datetime import datetime
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class LabDatabase:
    """SQLite database handler for the lab server"""

    def __init__(self, db_path: str = './data/linuxlab.db'):
        self.db_path = db_path
        self.local = threading.local()
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection"""
        if not hasattr(self.local, 'connection') or self.local.connection is None:
            self.local.connection = sqlite3.connect(self.db_path)
            self.local.connection.row_factory = sqlite3.Row
        return self.local.connection

    def _init_database(self):
        """Initialize database tables"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT UNIQUE NOT NULL,
                username TEXT NOT NULL,
                client_ip TEXT,
                lesson_id TEXT,
                start_time TIMESTAMP NOT NULL,
                end_time TIMESTAMP,
                duration_seconds REAL,
                commands_count INTEGER DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS commands (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                command TEXT NOT NULL,
                output TEXT,
                task_id TEXT,
                passed BOOLEAN DEFAULT FALSE,
                timestamp TIMESTAMP NOT NULL,
                FOREIGN KEY (session_id) REFERENCES sessions(session_id)
            )
        ''')

        # One row per user and task; completed_at is the first completion
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS task_progress (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL,
                lesson_id TEXT NOT NULL,
                task_id TEXT NOT NULL,
                completed_at TIMESTAMP NOT NULL,
                UNIQUE (username, lesson_id, task_id)
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(username)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_commands_session ON commands(session_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_progress_user ON task_progress(username)')

        conn.commit()
        logger.info("Database initialized successfully")

    def log_session_start(self, session_id: str, username: str, start_time: datetime,
                          client_ip: Optional[str] = None, lesson_id: Optional[str] = None):
        """Log the start of a lab session"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('''
                INSERT INTO sessions (session_id, username, client_ip, lesson_id, start_time)
                VALUES (?, ?, ?, ?, ?)
            ''', (session_id, username, client_ip, lesson_id, start_time.isoformat()))

            conn.commit()
            logger.info(f"Session {session_id} started for {username}")

        except Exception as e:
            logger.error(f"Error logging session start: {e}")

    def log_session_end(self, session_id: str, end_time: datetime):
        """Close a session and record its duration and command count"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('SELECT start_time FROM sessions WHERE session_id = ?', (session_id,))
            row = cursor.fetchone()

            if row:
                start_time = datetime.fromisoformat(row['start_time'])
                duration = (end_time - start_time).total_seconds()

                cursor.execute('SELECT COUNT(*) as count FROM commands WHERE session_id = ?',
                               (session_id,))
                cmd_count = cursor.fetchone()['count']

                cursor.execute('''
                    UPDATE sessions
                    SET end_time = ?, duration_seconds = ?, commands_count = ?
                    WHERE session_id = ?
                ''', (end_time.isoformat(), duration, cmd_count, session_id))

                conn.commit()
                logger.info(f"Session {session_id} ended, duration: {duration:.2f}s")

        except Exception as e:
            logger.error(f"Error logging session end: {e}")

    def set_session_lesson(self, session_id: str, lesson_id: Optional[str]):
        """Record which lesson a session is working on"""
        try:
            conn = self._get_connection()
            conn.execute('UPDATE sessions SET lesson_id = ? WHERE session_id = ?',
                         (lesson_id, session_id))
            conn.commit()
        except Exception as e:
            logger.error(f"Error updating session lesson: {e}")

    def log_command(self, session_id: str, command: str, output: str, timestamp: datetime,
                    task_id: Optional[str] = None, passed: bool = False):
        """Log a command and whether it completed a task"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('''
                INSERT INTO commands (session_id, command, output, task_id, passed, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (session_id, command, output, task_id, passed, timestamp.isoformat()))

            conn.commit()

        except Exception as e:
            logger.error(f"Error logging command: {e}")

    def mark_task_completed(self, username: str, lesson_id: str, task_id: str,
                            timestamp: datetime):
        """Record a completed task; repeated completions keep the first timestamp"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('''
                INSERT INTO task_progress (username, lesson_id, task_id, completed_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(username, lesson_id, task_id) DO NOTHING
            ''', (username, lesson_id, task_id, timestamp.isoformat()))

            conn.commit()

        except Exception as e:
            logger.error(f"Error marking task completed: {e}")

    def get_completed_tasks(self, username: str, lesson_id: str) -> List[str]:
        """Task ids a user has completed in a lesson"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('''
                SELECT task_id FROM task_progress
                WHERE username = ? AND lesson_id = ?
                ORDER BY completed_at ASC, id ASC
            ''', (username, lesson_id))

            return [row['task_id'] for row in cursor.fetchall()]

        except Exception as e:
            logger.error(f"Error getting completed tasks: {e}")
            return []

    def get_progress(self, username: str) -> Dict[str, int]:
        """Completed task count per lesson for a user"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('''
                SELECT lesson_id, COUNT(*) as count FROM task_progress
                WHERE username = ?
                GROUP BY lesson_id
            ''', (username,))

            return {row['lesson_id']: row['count'] for row in cursor.fetchall()}

        except Exception as e:
            logger.error(f"Error getting progress: {e}")
            return {}

    def reset_progress(self, username: str, lesson_id: Optional[str] = None):
        """Forget a user's progress, for one lesson or all of them"""
        try:
            conn = self._get_connection()
            if lesson_id is None:
                conn.execute('DELETE FROM task_progress WHERE username = ?', (username,))
            else:
                conn.execute('DELETE FROM task_progress WHERE username = ? AND lesson_id = ?',
                             (username, lesson_id))
            conn.commit()
        except Exception as e:
            logger.error(f"Error resetting progress: {e}")

    def get_recent_sessions(self, limit: int = 100) -> List[Dict]:
        """Get recent sessions"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('''
                SELECT * FROM sessions
                ORDER BY start_time DESC
                LIMIT ?
            ''', (limit,))

            rows = cursor.fetchall()
            return [dict(row) for row in rows]

        except Exception as e:
            logger.error(f"Error getting recent sessions: {e}")
            return []

    def get_session_commands(self, session_id: str) -> List[Dict]:
        """Get all commands for a session"""
        try:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute('''
                SELECT * FROM commands
                WHERE session_id = ?
                ORDER BY timestamp ASC, id ASC
            ''', (session_id,))

            rows = cursor.fetchall()
            return [dict(row) for row in rows]

        except Exception as e:
            logger.error(f"Error getting session commands: {e}")
            return []

    def close(self):
        """Close database connection"""
        if hasattr(self.local, 'connection') and self.local.connection:
            self.local.connection.close()
            self.local.connection = None
