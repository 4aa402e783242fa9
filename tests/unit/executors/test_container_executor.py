"""
ContainerExecutor Unit Tests

不启动真实容器：subprocess.Popen、subprocess.run 与 os.killpg 均被替换
"""

import signal
import subprocess

import pytest

from strand.config.models import ContainerConfig
from strand.errors import ConfigurationError
from strand.executors import container as container_module
from strand.executors.container import ContainerExecutor, parse_output


class FakePopen:
    """Stand-in for subprocess.Popen recording how it was started."""

    instances: list["FakePopen"] = []
    stdout = ""
    stderr = ""
    returncode = 0
    hang = False

    def __init__(self, args, **kwargs):
        self.args = args
        self.kwargs = kwargs
        self.pid = 4242
        self.waited = []
        self.communicated = []
        FakePopen.instances.append(self)

    def communicate(self, timeout=None):
        self.communicated.append(timeout)
        if self.hang and len(self.communicated) == 1:
            raise subprocess.TimeoutExpired(self.args, timeout)
        return self.stdout, self.stderr

    def wait(self, timeout=None):
        self.waited.append(timeout)
        return self.returncode


@pytest.fixture
def fake_popen(monkeypatch):
    FakePopen.instances = []
    FakePopen.stdout, FakePopen.stderr, FakePopen.returncode, FakePopen.hang = "", "", 0, False
    monkeypatch.setattr(container_module.subprocess, "Popen", FakePopen)
    return FakePopen


@pytest.fixture
def docker_runs(monkeypatch):
    runs = []
    monkeypatch.setattr(container_module.subprocess, "run", lambda args, **kwargs: runs.append(args))
    return runs


@pytest.fixture
def kills(monkeypatch):
    sent = []
    monkeypatch.setattr(container_module.os, "killpg", lambda pid, sig: sent.append((pid, sig)))
    return sent


class TestBuildCommand:
    """测试 docker run 参数"""

    def test_hardening_flags(self):
        args = ContainerExecutor().build_command("print(1)")

        assert args[:3] == ["docker", "run", "--rm"]
        for flag in (
            "--network=none",
            "--memory=256m",
            "--memory-swap=256m",
            "--pids-limit=32",
            "--read-only",
            "--tmpfs=/tmp:rw,noexec,nosuid,size=64m",
            "--security-opt=no-new-privileges",
            "--cap-drop=ALL",
        ):
            assert flag in args
        assert args[-4:] == ["python:3.12-slim", "python3", "-c", "print(1)"]

    def test_container_name(self):
        args = ContainerExecutor().build_command("print(1)", name="strand-abc")
        assert args[:4] == ["docker", "run", "--rm", "--name=strand-abc"]

    def test_language_and_env(self):
        executor = ContainerExecutor(ContainerConfig(language="Ruby", memory_mb=64))
        args = executor.build_command("puts 1", {"LANG": "C.UTF-8"})

        assert "--memory=64m" in args
        assert args[args.index("-e") + 1] == "LANG=C.UTF-8"
        assert args[-4:] == ["ruby:3.3-alpine", "ruby", "-e", "puts 1"]

    def test_unsupported_language(self):
        with pytest.raises(ConfigurationError):
            ContainerExecutor(ContainerConfig(language="cobol"))


class TestSanitizedEnv:
    """测试环境变量过滤"""

    def test_allowlist_and_secret_filtering(self):
        config = ContainerConfig(env_allowlist=["PATH", "MY_TOKEN", "NOTE", "MISSING"])
        environ = {
            "PATH": "/usr/bin",
            "MY_TOKEN": "abc",
            "NOTE": "sk-" + "z" * 30,
            "OPENAI_API_KEY": "sk-" + "y" * 30,
        }

        assert ContainerExecutor(config).sanitized_env(environ) == {"PATH": "/usr/bin"}


class TestExecute:
    """测试执行与超时"""

    def test_success_parses_json(self, fake_popen):
        fake_popen.stdout = '{"answer": 42}\n'
        result = ContainerExecutor().execute("print(1)")

        assert result.success
        assert result.output == {"answer": 42}
        assert fake_popen.instances[0].kwargs["start_new_session"] is True
        assert fake_popen.instances[0].args[3].startswith("--name=strand-")

    def test_non_zero_exit(self, fake_popen):
        fake_popen.returncode = 1
        fake_popen.stderr = "Traceback: boom\n"
        result = ContainerExecutor().execute("raise SystemExit(1)")

        assert result.error == "Exit code 1: Traceback: boom"

    def test_timeout_kills_container_and_reaps(self, fake_popen, kills, docker_runs):
        fake_popen.hang = True
        result = ContainerExecutor(ContainerConfig(timeout=1.5)).execute("while True: pass")

        process = fake_popen.instances[0]
        name = process.args[3].removeprefix("--name=")
        assert result.error == "Container execution timeout after 1.5 seconds"
        assert docker_runs == [["docker", "kill", name]]
        assert kills == [(4242, signal.SIGTERM)]
        assert process.waited == [container_module.TERMINATE_GRACE_SECONDS]
        assert process.communicated == [1.5, container_module.REAP_SECONDS]

    def test_failed_container_kill_still_reports_timeout(self, fake_popen, kills, monkeypatch):
        def unavailable(*args, **kwargs):
            raise FileNotFoundError("docker not found")

        monkeypatch.setattr(container_module.subprocess, "run", unavailable)
        fake_popen.hang = True
        result = ContainerExecutor(ContainerConfig(timeout=1.5)).execute("while True: pass")

        assert result.error == "Container execution timeout after 1.5 seconds"
        assert kills == [(4242, signal.SIGTERM)]

    def test_missing_binary(self, monkeypatch):
        def missing(*args, **kwargs):
            raise FileNotFoundError("docker not found")

        monkeypatch.setattr(container_module.subprocess, "Popen", missing)
        result = ContainerExecutor().execute("print(1)")
        assert result.error.startswith("Container error:")


@pytest.mark.parametrize(
    "stdout, expected",
    [('{"a": 1}', {"a": 1}), ("[1, 2]\n", [1, 2]), ("  plain text \n", "plain text"), ("{broken", "{broken")],
)
def test_parse_output(stdout, expected):
    assert parse_output(stdout) == expected
