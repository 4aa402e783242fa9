"""
配置模型

使用 Pydantic 定义运行时各组件的配置结构。
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_IMAGES = {
    "python": "python:3.12-slim",
    "ruby": "ruby:3.3-alpine",
    "javascript": "node:20-alpine",
}

DEFAULT_ENV_ALLOWLIST = ["PATH", "LANG", "LC_ALL", "TZ", "HOME", "TERM"]


class AgentConfig(BaseModel):
    """ReAct 循环配置"""
    max_steps: int = Field(20, ge=1, description="最大步数")
    planning_interval: int | None = Field(None, ge=1, description="规划间隔（步）")
    evaluation_enabled: bool = Field(False, description="是否启用评估")
    evaluation_interval: int = Field(1, ge=1, description="评估间隔（步）")
    reflection_enabled: bool = Field(True, description="是否记录反思")
    max_reflections: int = Field(50, ge=1, description="反思存储上限")
    early_yield: bool = Field(True, description="并行工具调用是否提前返回")
    repetition_detection: bool = Field(True, description="是否检测重复动作并注入引导")
    repetition_window: int = Field(3, ge=2, description="重复检测窗口（步）")
    tool_timeout: float | None = Field(None, gt=0, description="单个工具调用的隔离超时（秒）")
    system_prompt: str | None = Field(None, description="自定义系统提示")


class QueueConfig(BaseModel):
    """请求队列配置"""
    enabled: bool = Field(False, description="是否启用队列串行化")
    max_depth: int | None = Field(None, ge=1, description="队列最大深度")
    dead_letter: bool = Field(True, description="是否记录失败请求")
    dead_letter_capacity: int = Field(100, ge=1, description="死信存储上限")
    shutdown_timeout: float = Field(5.0, gt=0, description="关闭时等待工作线程的秒数")


class SandboxConfig(BaseModel):
    """本地沙箱配置"""
    max_operations: int = Field(100_000, ge=1, description="操作计数上限")
    granularity: Literal["line", "call"] = Field("line", description="计数粒度")
    authorized_imports: list[str] = Field(default_factory=list, description="允许导入的模块")
    max_output_bytes: int = Field(50_000, ge=1, description="输出捕获上限")


class ContainerConfig(BaseModel):
    """容器执行器配置"""
    language: str = Field("python", description="执行语言")
    memory_mb: int = Field(256, ge=16, description="内存上限（MB）")
    cpu_quota: int = Field(50_000, ge=1000, description="CPU 配额（微秒/周期）")
    pids_limit: int = Field(32, ge=1, description="进程数上限")
    timeout: float = Field(30.0, gt=0, description="执行超时（秒）")
    docker_binary: str = Field("docker", description="容器运行时可执行文件")
    images: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_IMAGES), description="语言到镜像的映射")
    env_allowlist: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ENV_ALLOWLIST), description="允许透传的环境变量"
    )

    @field_validator("language")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()
