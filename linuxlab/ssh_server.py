#!/usr/bin/env python3
"""
Lab SSH Server - Main Entry Point
Serves an interactive Linux lab terminal to each SSH client
"""

import paramiko
import socket
import threading
import logging
import os
import sys
import time
import hashlib
from datetime import datetime
from typing import Dict, Optional

from linuxlab.database import LabDatabase
from linuxlab.lessons import LESSONS, Lab, find_lesson
from linuxlab.shell import CLEAR_SCREEN

logger = logging.getLogger(__name__)

ANSI_CLEAR = '\033[2J\033[H'

SERVER_BANNER = 'SSH-2.0-OpenSSH_8.9p1 Ubuntu-3ubuntu0.4'

LESSON_USAGE = ('usage: lesson list | lesson start ID | lesson status | lesson hint | '
                'lesson reset | lesson quit')


class LabSSHServer(paramiko.ServerInterface):
    """SSH Server Interface implementing authentication and session handling"""

    def __init__(self, client_ip: str, password: Optional[str] = None):
        self.client_ip = client_ip
        self.password = password
        self.event = threading.Event()
        self.username: Optional[str] = None
        self.term = 'xterm'
        self.term_width = 80
        self.term_height = 24

    def check_channel_request(self, kind: str, chanid: int) -> int:
        """Accept session channel requests"""
        if kind == 'session':
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_auth_password(self, username: str, password: str) -> int:
        """Accept any user when no shared password is configured"""
        if self.password is not None and password != self.password:
            logger.info(f"Rejected password for {username} from {self.client_ip}")
            return paramiko.AUTH_FAILED
        self.username = username
        logger.info(f"Authenticated {username} from {self.client_ip}")
        return paramiko.AUTH_SUCCESSFUL

    def check_auth_none(self, username: str) -> int:
        if self.password is not None:
            return paramiko.AUTH_FAILED
        self.username = username
        logger.info(f"Authenticated {username} from {self.client_ip} (no password)")
        return paramiko.AUTH_SUCCESSFUL

    def get_allowed_auths(self, username: str) -> str:
        """Return allowed authentication methods"""
        return 'password' if self.password is not None else 'none,password'

    def check_channel_shell_request(self, channel: paramiko.Channel) -> bool:
        """Accept shell requests"""
        self.event.set()
        return True

    def check_channel_pty_request(self, channel: paramiko.Channel, term: str,
                                  width: int, height: int, pixelwidth: int,
                                  pixelheight: int, modes: bytes) -> bool:
        """Accept PTY requests and store terminal info"""
        self.term = term
        self.term_width = width
        self.term_height = height
        return True


class LabTerminal:
    """Line-editing terminal connecting one SSH channel to a lab.

    Anything with paramiko's ``send``/``recv``/``close`` channel methods
    works, which keeps the loop testable without a socket.
    """

    def __init__(self, channel, session_id: str, username: str,
                 db: Optional[LabDatabase] = None, lab: Optional[Lab] = None,
                 client_ip: Optional[str] = None):
        self.channel = channel
        self.session_id = session_id
        self.username = username
        self.db = db
        self.lab = lab or Lab()
        self.client_ip = client_ip
        self.running = True

    def send(self, data: str):
        """Send data to the client, normalising newlines to CRLF"""
        try:
            self.channel.send(data.replace('\r\n', '\n').replace('\n', '\r\n').encode('utf-8'))
        except Exception as e:
            logger.warning(f"Send failed for session {self.session_id}: {e}")
            self.running = False

    def recv(self, size: int = 1024) -> str:
        """Receive data from the client"""
        try:
            data = self.channel.recv(size)
        except Exception as e:
            logger.warning(f"Receive failed for session {self.session_id}: {e}")
            self.running = False
            return ''
        if not data:
            return ''
        return data.decode('utf-8', errors='ignore')

    def send_welcome(self):
        """Send the login banner"""
        fs = self.lab.fs
        motd = (
            f"Welcome to Ubuntu 22.04.3 LTS (GNU/Linux 5.15.0-1049-gcp x86_64)\n"
            f"\n"
            f" * Lab host: {fs.hostname}   Logged in as: {fs.user_name(fs.current_uid)}\n"
            f" * Type 'lesson list' to see the lessons, 'help' for commands.\n"
            f"\n"
            f"Last login: {datetime.now().strftime('%a %b %d %H:%M:%S %Y')}"
            f" from {self.client_ip or '127.0.0.1'}\n"
        )
        self.send('\n' + motd + '\n')

    def handle_line(self, line: str) -> str:
        """Run one submitted line and return what the terminal should print"""
        words = line.split()
        if words and words[0] == 'lesson':
            return self._lesson_command(words[1:])

        outcome = self.lab.run(line)
        if self.db and line.strip():
            task_id = outcome.task.id if outcome.task else None
            self.db.log_command(self.session_id, line.strip(), outcome.output, datetime.now(),
                                task_id=task_id, passed=outcome.passed)
            if outcome.passed:
                self.db.mark_task_completed(self.username, self.lab.lesson.id, task_id,
                                            datetime.now())

        if outcome.output == CLEAR_SCREEN:
            return ANSI_CLEAR
        if words and words[0] in ('exit', 'logout') and outcome.output == 'logout':
            self.running = False

        text = outcome.output + '\n' if outcome.output else ''
        if outcome.passed:
            text += f"\n[lesson] Task complete: {outcome.task.instruction}\n"
            following = self.lab.current_task
            if outcome.lesson_complete:
                text += f"[lesson] Lesson '{self.lab.lesson.title}' complete!\n"
            elif following is not None:
                text += f"[lesson] Next: {following.instruction}\n"
        return text

    def _lesson_command(self, args) -> str:
        action = args[0] if args else 'status'
        lab = self.lab

        if action == 'list':
            progress = self.db.get_progress(self.username) if self.db else {}
            lines = [f"  {lesson.id:<10} {lesson.title:<20} "
                     f"{progress.get(lesson.id, 0)}/{len(lesson.tasks)} done"
                     for lesson in LESSONS]
            return '\n'.join(['Lessons:'] + lines) + '\n'

        if action == 'start':
            lesson = find_lesson(args[1]) if len(args) > 1 else None
            if lesson is None:
                return f"lesson: unknown lesson '{args[1] if len(args) > 1 else ''}'\n"
            lab.load_lesson(lesson)
            if self.db:
                self.db.set_session_lesson(self.session_id, lesson.id)
            return (f"[lesson] {lesson.title}: {lesson.description}\n"
                    f"[lesson] Task: {lab.current_task.instruction}\n")

        if lab.lesson is None and action != 'quit':
            return "lesson: no lesson running, try 'lesson list'\n"

        if action == 'status':
            task = lab.current_task
            done = len(lab.completed)
            header = f"[lesson] {lab.lesson.title}: {done}/{len(lab.lesson.tasks)} tasks done\n"
            return header + (f"[lesson] Task: {task.instruction}\n" if task else '')
        if action == 'hint':
            task = lab.current_task
            return f"[lesson] Hint: {task.hint}\n" if task else '[lesson] Nothing left to do.\n'
        if action == 'reset':
            lab.reset()
            return f"[lesson] {lab.lesson.title} restarted.\n"
        if action == 'quit':
            lab.load_lesson(None)
            if self.db:
                self.db.set_session_lesson(self.session_id, None)
            return '[lesson] Back to free play.\n'
        return LESSON_USAGE + '\n'

    def run(self):
        """Main terminal loop"""
        try:
            self.send_welcome()

            while self.running:
                self.send(self.lab.fs.get_prompt())

                command_line = ''
                submitted = False
                while self.running:
                    char = self.recv(1)

                    if not char:
                        self.running = False
                        break

                    if char == '\r' or char == '\n':
                        self.send('\n')
                        submitted = True
                        break
                    elif char == '\x7f' or char == '\x08':  # Backspace
                        if command_line:
                            command_line = command_line[:-1]
                            self.send('\x08 \x08')
                    elif char == '\x03':  # Ctrl+C
                        self.send('^C\n')
                        break
                    elif char == '\x04':  # Ctrl+D
                        if not command_line:
                            self.send('logout\n')
                            self.running = False
                            break
                    elif char == '\x15':  # Ctrl+U (clear line)
                        self.send('\x08 \x08' * len(command_line))
                        command_line = ''
                    elif char == '\x0c':  # Ctrl+L (clear screen)
                        self.send(ANSI_CLEAR + self.lab.fs.get_prompt() + command_line)
                    elif ord(char) >= 32:
                        command_line += char
                        self.send(char)

                if submitted and command_line.strip():
                    output = self.handle_line(command_line)
                    if output:
                        self.send(output)

        except Exception as e:
            logger.error(f"Terminal error in session {self.session_id}: {e}")
        finally:
            try:
                self.channel.close()
            except Exception as e:
                logger.debug(f"Channel close failed: {e}")


class LabSSHGateway:
    """Main lab SSH server"""

    def __init__(self, host: str = '0.0.0.0', port: int = 2222,
                 key_file: str = './data/host_key_rsa', db_path: str = './data/linuxlab.db',
                 password: Optional[str] = None):
        self.host = host
        self.port = port
        self.key_file = key_file
        self.password = password
        self.db = LabDatabase(db_path)
        self.server_socket = None
        self.running = False
        self.active_sessions: Dict[str, threading.Thread] = {}

        self._setup_host_key()

    def _setup_host_key(self):
        """Generate or load RSA host key"""
        if not os.path.exists(self.key_file):
            logger.info("Generating new host key...")
            key = paramiko.RSAKey.generate(2048)
            directory = os.path.dirname(self.key_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            key.write_private_key_file(self.key_file)
            logger.info(f"Host key saved to {self.key_file}")
        else:
            logger.info(f"Loading existing host key from {self.key_file}")

    def handle_client(self, client_socket: socket.socket, client_ip: str, client_port: int):
        """Handle individual client connections"""
        logger.info(f"New connection from {client_ip}:{client_port}")

        transport = None
        try:
            transport = paramiko.Transport(client_socket)
            transport.local_version = SERVER_BANNER

            server_key = paramiko.RSAKey(filename=self.key_file)
            transport.add_server_key(server_key)

            server = LabSSHServer(client_ip, self.password)
            transport.start_server(server=server)

            channel = transport.accept(30)
            if channel is None:
                logger.warning(f"No channel established for {client_ip}")
                return

            server.event.wait(10)
            if not server.event.is_set():
                logger.warning(f"No shell request from {client_ip}")
                channel.close()
                return

            session_id = hashlib.sha256(
                f"{client_ip}:{time.time()}".encode() + os.urandom(8)
            ).hexdigest()[:16]
            username = server.username or 'student'

            self.db.log_session_start(
                session_id=session_id,
                username=username,
                start_time=datetime.now(),
                client_ip=client_ip,
            )

            terminal = LabTerminal(channel, session_id, username, db=self.db, client_ip=client_ip)
            logger.info(f"Starting lab session {session_id} for {username}@{client_ip}")
            terminal.run()

            self.db.log_session_end(session_id=session_id, end_time=datetime.now())
            logger.info(f"Session {session_id} ended")

        except Exception as e:
            logger.error(f"Error handling client {client_ip}: {e}")
        finally:
            self.active_sessions.pop(f"{client_ip}:{client_port}", None)
            if transport:
                transport.close()
            try:
                client_socket.close()
            except OSError as e:
                logger.debug(f"Socket close failed: {e}")

    def start(self):
        """Start the lab SSH server"""
        self.running = True

        try:
            self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self.server_socket.bind((self.host, self.port))
            self.server_socket.listen(100)

            logger.info(f"Lab SSH server listening on {self.host}:{self.port}")

            while self.running:
                try:
                    client_socket, (client_ip, client_port) = self.server_socket.accept()

                    client_thread = threading.Thread(
                        target=self.handle_client,
                        args=(client_socket, client_ip, client_port),
                        daemon=True
                    )
                    self.active_sessions[f"{client_ip}:{client_port}"] = client_thread
                    client_thread.start()

                except Exception as e:
                    if self.running:
                        logger.error(f"Error accepting connection: {e}")

        except Exception as e:
            logger.error(f"Server error: {e}")
        finally:
            self.stop()

    def stop(self):
        """Stop the lab SSH server"""
        logger.info("Stopping lab SSH server...")
        self.running = False

        if self.server_socket:
            try:
                self.server_socket.close()
            except OSError as e:
                logger.debug(f"Server socket close failed: {e}")

        for session_key, thread in list(self.active_sessions.items()):
            if thread.is_alive():
                logger.info(f"Waiting for session {session_key} to complete...")
                thread.join(timeout=5)

        logger.info("Lab SSH server stopped")


def main():
    """Main entry point"""
    import signal

    handlers = [logging.StreamHandler()]
    log_file = os.getenv('LAB_LOG_FILE')
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=os.getenv('LAB_LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    gateway = LabSSHGateway(
        host=os.getenv('LAB_HOST', '0.0.0.0'),
        port=int(os.getenv('LAB_PORT', '2222')),
        key_file=os.getenv('LAB_HOST_KEY', './data/host_key_rsa'),
        db_path=os.getenv('LAB_DB_PATH', './data/linuxlab.db'),
        password=os.getenv('LAB_PASSWORD'),
    )

    def signal_handler(signum, frame):
        logger.info("Received shutdown signal")
        gateway.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    gateway.start()


if __name__ == '__main__':
    main()
