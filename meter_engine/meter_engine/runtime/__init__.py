"""Container runtime backends."""

from meter_engine.runtime.base import ContainerRuntime
from meter_engine.runtime.docker_runtime import DockerRuntime, parse_docker_time

__all__ = ["ContainerRuntime", "DockerRuntime", "parse_docker_time"]
