import io
import subprocess
from datetime import datetime

import pytest
from rich.console import Console

from exchange_client import END_MARKER, ERROR_MARKER, ExchangeError, ExchangeMember
from run_log import RunLogger


class FakeExchangeClient:
    """In-memory stand-in for ExchangeClient that records every call."""

    def __init__(self, members=None, fail_adds=(), installed=True):
        self.members = list(members or [])
        self.fail_adds = {f.lower() for f in fail_adds}
        self.installed = installed
        self.calls = []
        self.added = []
        self.fail_on = set()
        self.connected = False

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise ExchangeError(f"{name} failed")

    def check_module_installed(self):
        self._record("check_module_installed")
        return self.installed

    def install_module(self):
        self._record("install_module")
        self.installed = True

    def import_module(self):
        self._record("import_module")

    def connect(self):
        self._record("connect")
        self.connected = True

    def disconnect(self):
        self._record("disconnect")
        self.connected = False

    def close(self):
        self._record("close")
        self.connected = False

    def get_members(self, identity):
        self._record("get_members", identity)
        return list(self.members)

    def add_member(self, identity, member):
        self._record("add_member", identity, member)
        if member.lower() in self.fail_adds:
            raise ExchangeError(f"Couldn't find object \"{member}\"")
        self.added.append(member)
        return True

    def names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def client():
    return FakeExchangeClient(members=[
        ExchangeMember("Alice", "Alice@contoso.com", "alice@contoso.onmicrosoft.com"),
        ExchangeMember("Bob", "bob@contoso.com"),
    ])


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def log(tmp_path, console):
    return RunLogger(tmp_path / "logs", console=console, started=datetime(2024, 5, 1, 9, 30, 15))


def log_lines(log, level=None):
    if not log.path.exists():
        return []
    lines = log.path.read_text(encoding="utf-8").splitlines()
    if level:
        lines = [line for line in lines if f"[{level}]" in line]
    return lines


def answers(*values):
    """Fake prompt that returns the given answers in order."""
    queue = list(values)
    prompts = []

    def ask(prompt, **kwargs):
        prompts.append(prompt)
        return queue.pop(0)

    ask.prompts = prompts
    return ask


class FakeShell:
    """Stands in for subprocess.Popen running a PowerShell session on stdin.

    ``handler(command)`` returns the command's output; raising makes the
    session report the error the way the wrapped command would.
    """

    def __init__(self, handler=None):
        self.handler = handler or (lambda command: "")
        self.commands = []
        self.processes = []

    def __call__(self, args, **kwargs):
        proc = FakeSessionProcess(self)
        self.processes.append(proc)
        return proc

    def count(self, prefix):
        return sum(1 for c in self.commands if c.startswith(prefix))


class _Stdin:
    def __init__(self, proc):
        self.proc = proc
        self.closed = False

    def write(self, text):
        if self.closed or self.proc.dead:
            raise BrokenPipeError("pipe closed")
        for line in text.splitlines():
            self.proc.receive(line)

    def flush(self):
        pass

    def close(self):
        self.closed = True


class _Stdout:
    def __init__(self):
        self.lines = []

    def readline(self):
        return self.lines.pop(0) if self.lines else ""


class FakeSessionProcess:
    def __init__(self, shell):
        self.shell = shell
        self.stdin = _Stdin(self)
        self.stdout = _Stdout()
        self.exited = False
        self.dead = False
        self.returncode = None

    def receive(self, line):
        if line == "exit":
            self.exited = True
            return
        command = line[len("try { "):line.index(" } catch {")]
        self.shell.commands.append(command)
        try:
            output = self.shell.handler(command)
        except Exception as e:
            self.stdout.lines.append(f"{ERROR_MARKER} {e}\n")
        else:
            self.stdout.lines.extend(f"{out}\n" for out in (output or "").splitlines())
        if not self.dead:
            self.stdout.lines.append(f"{END_MARKER}\n")

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self.returncode = 0
        return 0

    def kill(self):
        self.returncode = -9


def module_runner(args, capture_output=True, text=True):
    """One-off runner reporting the Exchange module as installed."""
    return subprocess.CompletedProcess(args, 0, "Script 3.4.0 ExchangeOnlineManagement", "")
