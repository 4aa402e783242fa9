"""
ContainerExecutor - 容器隔离执行

用于无法在进程内沙箱化的语言。每次执行启动一个一次性容器：
无网络、只读根文件系统、noexec 的 tmpfs、丢弃全部 capabilities、
禁止提权，并限制内存、CPU 与进程数。
每个容器带唯一名称运行。超时先 docker kill 该容器，再向客户端进程组发送 SIGTERM，
短暂等待后发送 SIGKILL，随后回收管道，最后总是报告超时。
"""

from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
from typing import Any, Mapping
from uuid import uuid4

from strand.config.models import ContainerConfig
from strand.errors import ConfigurationError
from strand.executors.base import ExecutionResult, Executor
from strand.security.secret_redactor import is_sensitive_key, looks_like_secret, redact_string

logger = logging.getLogger(__name__)

COMMANDS: dict[str, list[str]] = {
    "python": ["python3", "-c"],
    "ruby": ["ruby", "-e"],
    "javascript": ["node", "-e"],
}

TERMINATE_GRACE_SECONDS = 0.5
REAP_SECONDS = 2.0
KILL_TIMEOUT_SECONDS = 10.0


def parse_output(stdout: str) -> Any:
    """JSON when it looks like JSON, otherwise stripped text."""
    text = stdout.strip()
    if text.startswith(("{", "[")):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


class ContainerExecutor(Executor):
    def __init__(self, config: ContainerConfig | None = None) -> None:
        self.config = config or ContainerConfig()
        if self.config.language not in COMMANDS:
            raise ConfigurationError(f"Unsupported container language: {self.config.language}")
        if self.config.language not in self.config.images:
            raise ConfigurationError(f"No image configured for {self.config.language}")

    @property
    def image(self) -> str:
        return self.config.images[self.config.language]

    def sanitized_env(self, environ: Mapping[str, str] | None = None) -> dict[str, str]:
        """Allowlisted variables minus anything that looks like a credential."""
        environ = os.environ if environ is None else environ
        env: dict[str, str] = {}
        for key in self.config.env_allowlist:
            if key not in environ:
                continue
            value = environ[key]
            if is_sensitive_key(key) or looks_like_secret(value):
                logger.warning("Dropping secret-looking environment variable %s", key)
                continue
            env[key] = value
        return env

    def build_command(
        self, code: str, env: Mapping[str, str] | None = None, name: str | None = None
    ) -> list[str]:
        cfg = self.config
        args = [
            cfg.docker_binary,
            "run",
            "--rm",
            "--network=none",
            f"--memory={cfg.memory_mb}m",
            f"--memory-swap={cfg.memory_mb}m",
            f"--cpu-quota={cfg.cpu_quota}",
            f"--pids-limit={cfg.pids_limit}",
            "--read-only",
            "--tmpfs=/tmp:rw,noexec,nosuid,size=64m",
            "--security-opt=no-new-privileges",
            "--cap-drop=ALL",
        ]
        if name:
            args.insert(3, f"--name={name}")
        for key, value in (env or {}).items():
            args.extend(["-e", f"{key}={value}"])
        args.append(self.image)
        args.extend(COMMANDS[cfg.language])
        args.append(code)
        return args

    def execute(self, code: str) -> ExecutionResult:
        name = f"strand-{uuid4().hex[:12]}"
        args = self.build_command(code, self.sanitized_env(), name)
        timeout = self.config.timeout
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as e:
            return ExecutionResult.failed(redact_string(f"Container error: {e}"))

        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._kill_container(name)
            self._terminate(process)
            self._reap(process)
            return ExecutionResult.failed(f"Container execution timeout after {timeout} seconds")

        if process.returncode != 0:
            return ExecutionResult.failed(
                redact_string(f"Exit code {process.returncode}: {stderr.strip()}"), logs=redact_string(stderr)
            )
        return ExecutionResult.ok(parse_output(stdout), logs=redact_string(stderr))

    def _kill_container(self, name: str) -> None:
        try:
            subprocess.run(
                [self.config.docker_binary, "kill", name],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=KILL_TIMEOUT_SECONDS,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Could not kill container %s: %s", name, e)

    @staticmethod
    def _reap(process: subprocess.Popen) -> None:
        try:
            process.communicate(timeout=REAP_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("Container process %s left its pipes open after kill", process.pid)

    def _terminate(self, process: subprocess.Popen) -> None:
        try:
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        try:
            process.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("Container process %s ignored SIGTERM; sending SIGKILL", process.pid)
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                return
            process.wait()
