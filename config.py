"""
Deployment inputs loaded from the process environment.

Provides a typed, immutable view of the raw inputs the stack is driven by
(``vpcId``, ``customDomain``, ``hereyaProjectEnv``, ...). Every key is
optional at this layer; blank values read as absent. Required-ness and
defaults are decided by ``deployment.build``, which takes this object as its
only input so it can be exercised without touching ``os.environ``.
"""

from dataclasses import dataclass
from typing import Any, Callable, Mapping

from errors import InvalidConfigurationError


def _optional_str(environ: Mapping[str, str], key: str) -> str | None:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return None
    return raw


def _optional_int(environ: Mapping[str, str], key: str) -> int | None:
    raw = _optional_str(environ, key)
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise InvalidConfigurationError(key, "expected an integer", raw) from None


# (field, env key, parser); parser receives (environ, key) and returns value.
_CONFIG_SPEC: list[tuple[str, str, Callable[[Mapping[str, str], str], Any]]] = [
    ("vpc_id", "vpcId", _optional_str),
    ("health_check_path", "healthCheckPath", _optional_str),
    ("cpu", "cpu", _optional_int),
    ("memory_mib", "memoryMiB", _optional_int),
    ("custom_domain", "customDomain", _optional_str),
    ("custom_domain_zone", "customDomainZone", _optional_str),
    ("cluster_name", "clusterName", _optional_str),
    ("project_env", "hereyaProjectEnv", _optional_str),
    ("project_root_dir", "hereyaProjectRootDir", _optional_str),
]


@dataclass(frozen=True)
class DeploymentInputs:
    """
    Raw deployment inputs, typed but not yet validated.

    Attributes:
        vpc_id: Target VPC id; None selects the account default VPC.
        health_check_path: HTTP path for target group health checks.
        cpu: Fargate task CPU units.
        memory_mib: Fargate task memory in MiB.
        custom_domain: Comma-separated domain list; first is the primary.
        custom_domain_zone: Explicit Route 53 zone, overriding derivation.
        cluster_name: ECS cluster name.
        project_env: JSON object of application configuration (may hold
            secrets; never logged).
        project_root_dir: Directory the container image is built from.
    """

    vpc_id: str | None = None
    health_check_path: str | None = None
    cpu: int | None = None
    memory_mib: int | None = None
    custom_domain: str | None = None
    custom_domain_zone: str | None = None
    cluster_name: str | None = None
    project_env: str | None = None
    project_root_dir: str | None = None

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "DeploymentInputs":
        """
        Build DeploymentInputs from an environment mapping (e.g. os.environ).
        """
        kwargs = {field: parser(environ, key) for field, key, parser in _CONFIG_SPEC}
        return cls(**kwargs)
