"""Configuration models."""

from strand.config.models import AgentConfig, ContainerConfig, QueueConfig, SandboxConfig

__all__ = ["AgentConfig", "ContainerConfig", "QueueConfig", "SandboxConfig"]
