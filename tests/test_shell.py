# python
"""
tests/test_shell.py
Command line parsing, pipelines, redirection and the built-in commands.
"""

from typing import List, Optional

from linuxlab.shell import CLEAR_SCREEN

SERVERS = ('web-01 running\ndb-01 running\nweb-02 stopped\napi-01 running\n'
           'web-03 running\ndb-02 stopped\napi-02 running\nweb-01 running\n')


def _with_servers(shell):
    shell.fs.write_file('/home/clouduser/servers.txt', SERVERS)
    return shell


def test_unknown_command(shell) -> None:
    assert shell.execute('frobnicate --now') == 'frobnicate: command not found'


def test_blank_line_is_ignored(shell) -> None:
    assert shell.execute('   ') == ''
    assert shell.session.history == []


def test_pipeline_counts_matching_lines(shell) -> None:
    _with_servers(shell)
    assert shell.execute('cat servers.txt | grep running | wc -l') == '6'


def test_empty_pipeline_stage_is_syntax_error(shell) -> None:
    assert shell.execute('ls | | wc') == "bash: syntax error near unexpected token `|'"


def test_quoted_pipe_is_literal(shell) -> None:
    assert shell.execute('echo "a|b"') == 'a|b'


def test_redirect_and_append(shell) -> None:
    assert shell.execute('echo "x" > f.txt') == ''
    assert shell.execute('cat f.txt') == 'x'
    assert shell.execute('echo y >> f.txt') == ''
    assert shell.execute('cat f.txt') == 'x\ny'
    assert shell.fs.read_file('f.txt').value == 'x\ny\n'


def test_redirect_errors_and_dev_null(shell) -> None:
    assert shell.execute('echo x > /nope/f') == 'bash: /nope/f: No such file or directory'
    assert shell.execute('echo x > projects') == 'bash: projects: Is a directory'
    assert shell.execute('echo x > /dev/null') == ''
    assert not shell.fs.exists('/dev/null')


def test_stderr_redirect_shares_output(shell) -> None:
    assert shell.execute('cat missing 2>&1') == 'cat: missing: No such file or directory'


def test_variables_and_quoting(shell) -> None:
    assert shell.execute('echo $HOME') == '/home/clouduser'
    assert shell.execute('echo ${USER}') == 'clouduser'
    assert shell.execute('echo $NOPE') == ''
    shell.execute('export NAME=world')
    assert shell.execute('echo "hello $NAME"') == 'hello world'
    assert shell.execute("echo 'hello $NAME'") == 'hello $NAME'
    shell.execute('GREETING=hi')
    assert shell.execute('echo $GREETING ~') == 'hi /home/clouduser'


def test_echo_escapes(shell) -> None:
    assert shell.execute('echo -e "a\\tb"') == 'a\tb'
    assert shell.execute('echo -n plain') == 'plain'


def test_cd_and_oldpwd(shell) -> None:
    assert shell.execute('cd /tmp') == ''
    assert shell.execute('pwd') == '/tmp'
    assert shell.execute('cd -') == '/home/clouduser'
    assert shell.execute('cd notes.txt') == 'bash: cd: notes.txt: Not a directory'
    assert shell.execute('cd /missing') == 'bash: cd: /missing: No such file or directory'
    shell.execute('cd /var/log')
    shell.execute('cd')
    assert shell.session.cwd == '/home/clouduser'


def test_mkdir_copy_remove_scenario(shell) -> None:
    assert shell.execute('mkdir -p a/b') == ''
    assert shell.execute('touch a/b/f') == ''
    assert shell.execute('cp a c') == "cp: -r not specified; omitting directory 'a'"
    assert shell.execute('cp -r a c') == ''
    assert shell.execute('ls c/b') == 'f'
    assert shell.execute('rm a') == "rm: cannot remove 'a': Is a directory"
    assert shell.execute('rm -r a') == ''
    assert shell.execute('ls a') == "ls: cannot access 'a': No such file or directory"
    assert shell.execute('rm -f a') == ''


def test_mkdir_reports_existing(shell) -> None:
    assert shell.execute('mkdir projects') == "mkdir: cannot create directory 'projects': File exists"
    assert shell.execute('mkdir -p projects') == ''


def test_rmdir_only_removes_empty(shell) -> None:
    shell.execute('mkdir -p d/e')
    assert shell.execute('rmdir d') == "rmdir: failed to remove 'd': Directory not empty"
    assert shell.execute('rmdir d/e') == ''
    assert shell.execute('rmdir d') == ''


def test_mv_renames(shell) -> None:
    shell.execute('echo data > one.txt')
    assert shell.execute('mv one.txt two.txt') == ''
    assert shell.execute('cat two.txt') == 'data'
    assert shell.execute('mv') == "mv: missing file operand\nTry 'mv --help' for more information."


def test_ls_home(shell) -> None:
    assert shell.execute('ls') == 'Documents  notes.txt  projects'
    listing = shell.execute('ls -la')
    assert listing.startswith('total ')
    assert '.bashrc' in listing
    assert shell.execute('ll') == listing


def test_head_tail_grep(shell) -> None:
    _with_servers(shell)
    assert shell.execute('head -n 2 servers.txt') == 'web-01 running\ndb-01 running'
    assert shell.execute('tail -1 servers.txt') == 'web-01 running'
    assert shell.execute('grep -n stopped servers.txt') == '3:web-02 stopped\n6:db-02 stopped'
    assert shell.execute('grep -c running servers.txt') == '6'
    assert shell.execute('grep -v running servers.txt | wc -l') == '2'
    assert shell.execute('grep -i WEB-02 servers.txt') == 'web-02 stopped'


def test_sort_uniq(shell) -> None:
    shell.fs.write_file('/home/clouduser/letters', 'b\na\nb\nc\na\n')
    assert shell.execute('sort letters | uniq -c') == '      2 a\n      2 b\n      1 c'
    assert shell.execute('sort -r letters | uniq') == 'c\nb\na'
    shell.fs.write_file('/home/clouduser/nums', '10\n9\n100\n')
    assert shell.execute('sort -n nums') == '9\n10\n100'
    assert shell.execute('sort nums') == '10\n100\n9'


def test_cut_awk_tr_sed(shell) -> None:
    assert shell.execute('echo "a,b,c" | cut -d, -f2') == 'b'
    assert shell.execute('echo "a b c" | awk \'{print $2}\'') == 'b'
    assert shell.execute('echo "root:x:0" | awk -F: \'{print $1, $3}\'') == 'root 0'
    assert shell.execute('echo hello | tr a-z A-Z') == 'HELLO'
    assert shell.execute("echo hello world | sed 's/o/0/g'") == 'hell0 w0rld'
    assert shell.execute("echo hello | sed 's/l/L/'") == 'heLlo'


def test_sed_in_place(shell) -> None:
    _with_servers(shell)
    assert shell.execute("sed -i 's/running/up/' servers.txt") == ''
    assert shell.execute('grep -c up servers.txt') == '6'


def test_wc_with_file_operand(shell) -> None:
    shell.fs.write_file('/home/clouduser/three', 'a\nb\nc\n')
    assert shell.execute('wc -l three') == '3 three'


def test_tee_and_xargs(shell) -> None:
    assert shell.execute('echo hello | tee out.txt') == 'hello'
    assert shell.fs.read_file('out.txt').value == 'hello\n'
    assert shell.execute('echo a b | xargs echo') == 'a b'


def test_find_from_home(shell) -> None:
    assert shell.execute('find . -name "*.txt"') == './notes.txt'
    assert shell.execute('find /nope') == "find: '/nope': No such file or directory"


def test_identity_commands(shell) -> None:
    assert shell.execute('whoami') == 'clouduser'
    assert shell.execute('id') == ('uid=1000(clouduser) gid=1000(clouduser) '
                                   'groups=1000(clouduser),27(sudo),999(docker)')
    assert shell.execute('groups') == 'clouduser sudo docker'


def test_sudo_runs_one_command_as_root(shell) -> None:
    assert shell.execute('sudo whoami') == 'root'
    assert shell.execute('whoami') == 'clouduser'
    assert shell.execute('sudo frobnicate') == 'sudo: frobnicate: command not found'


def test_sudo_interactive_and_exit(shell) -> None:
    assert shell.execute('sudo -i') == ''
    assert shell.execute('whoami') == 'root'
    assert shell.execute('pwd') == '/root'
    assert shell.execute('exit') == ''
    assert shell.execute('whoami') == 'clouduser'
    assert shell.execute('exit') == 'logout'


def test_su_login_and_restore(shell) -> None:
    shell.execute('cd /tmp')
    assert shell.execute('su -') == ''
    assert shell.fs.get_prompt() == 'root@gcp-lab:~# '
    assert shell.execute('pwd') == '/root'
    assert shell.execute('exit') == ''
    assert shell.session.cwd == '/tmp'
    assert shell.execute('su nginx') == ''
    assert shell.execute('whoami') == 'nginx'


def test_chmod_chown_through_shell(shell) -> None:
    shell.execute('touch app.sh')
    assert shell.execute('chmod 755 app.sh') == ''
    assert shell.fs.stat('app.sh').octal == '755'
    assert shell.execute('chmod 999 app.sh') == ("chmod: invalid mode: '999'\n"
                                                 "Try 'chmod --help' for more information.")
    assert shell.execute('chown root app.sh') == (
        "chown: changing ownership of 'app.sh': Operation not permitted")
    assert shell.execute('sudo chown root:root app.sh') == ''
    assert shell.fs.stat('app.sh').owner == 'root'


def test_scripts_need_execute_bit(shell) -> None:
    shell.fs.write_file('/home/clouduser/deploy.sh',
                        '#!/bin/bash\necho "Deploying app..."\n', mode=0o644)
    assert shell.execute('./deploy.sh') == 'bash: ./deploy.sh: Permission denied'
    shell.execute('chmod +x deploy.sh')
    assert shell.execute('./deploy.sh') == 'Deploying app...'
    assert shell.execute('/usr/bin/whoami') == 'clouduser'


def test_iptables_requires_root(shell) -> None:
    assert shell.execute('iptables -L') == 'iptables: Permission denied (you must be root)'
    listing = shell.execute('sudo iptables -L INPUT')
    assert listing.startswith('Chain INPUT (policy ACCEPT)')


def test_clear_returns_sentinel(shell) -> None:
    assert shell.execute('clear') == CLEAR_SCREEN
    assert shell.execute('clear > screen.txt') == ''
    assert shell.fs.read_file('screen.txt').value == ''


def test_history_and_aliases(shell) -> None:
    shell.execute('pwd')
    shell.execute('whoami')
    assert shell.execute('history') == '    1  pwd\n    2  whoami\n    3  history'
    shell.execute("alias gg='echo hi'")
    assert shell.execute('gg') == 'hi'
    assert shell.execute('type gg') == "gg is aliased to `echo hi'"
    assert shell.execute('type cd') == 'cd is a shell builtin'
    assert shell.execute('type ls') == 'ls is /usr/bin/ls'
    assert shell.execute('which cd') == ''
    assert shell.execute('which iptables') == '/usr/sbin/iptables'


def test_system_information(shell) -> None:
    assert shell.execute('uname -a') == ('Linux gcp-lab 5.15.0-1049-gcp #57-Ubuntu SMP '
                                         'x86_64 x86_64 x86_64 GNU/Linux')
    assert shell.execute('date') == 'Tue Nov 14 22:13:20 UTC 2023'
    assert shell.execute('date +%Y') == '2023'
    assert shell.execute('hostname') == 'gcp-lab'


def test_hostname_change_without_root(shell) -> None:
    assert shell.execute('hostname web01') == ''
    assert shell.execute('hostname') == 'web01'
    assert shell.fs.get_prompt() == 'clouduser@web01:~$ '


def test_man_pages(shell) -> None:
    assert 'NAME' in shell.execute('man ls')
    assert shell.execute('man nothing') == 'No manual entry for nothing'


def test_handler_failure_is_reported(shell) -> None:
    def boom(args: List[str], stdin: Optional[str]) -> str:
        raise ValueError('bad input')

    shell.handlers['boom'] = boom
    assert shell.execute('boom') == 'boom: error: bad input'


def test_sudo_elevates_any_user(shell) -> None:
    shell.session.switch_user(shell.fs.users[65534])
    assert shell.execute('whoami') == 'nobody'
    assert shell.execute('sudo whoami') == 'root'
    assert shell.execute('whoami') == 'nobody'


def test_du_rows_and_summary(shell) -> None:
    shell.fs.mkdirp('/srv/data/logs')
    shell.fs.write_file('/srv/data/logs/app.log', 'z' * 3000)
    shell.fs.write_file('/srv/data/a', 'x' * 1000)
    assert shell.execute('du /srv/data') == '3\t/srv/data/logs\n4\t/srv/data'
    assert shell.execute('du -s /srv/data') == '4\t/srv/data'
    assert shell.execute('du /nowhere') == "du: cannot access '/nowhere': No such file or directory"
