"""
Deployment request builder. Pure; testable without Pulumi runtime.

Turns a ``DeploymentInputs`` object into the immutable ``DeploymentRequest``
consumed by ``components.WebService``. Covers the only decision logic of the
stack:

- **Domains**: ``customDomain`` is a comma-separated list; the first entry is
  the primary domain (certificate name, service URL), the rest are additional
  domains (SANs, extra alias records).
- **Zone**: the Route 53 zone is ``customDomainZone`` when given, otherwise
  derived from the primary domain. Apex domains are supported: a two-label
  domain is its own zone.
- **Project env**: entries are classified in two sequential passes. Keys
  prefixed ``IAM_POLICY_`` / ``iamPolicy`` become policy entries; of the rest,
  values prefixed ``secret://`` become secrets (prefix stripped); everything
  else is a plain container variable.

No I/O and no logging happens here; errors from ``errors`` propagate as-is.
"""

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, NamedTuple

from config import DeploymentInputs
from errors import InvalidConfigurationError, InvalidDomainError, MissingRequiredInputError

POLICY_KEY_PREFIXES: tuple[str, ...] = ("IAM_POLICY_", "iamPolicy")
SECRET_VALUE_PREFIX: str = "secret://"

DEFAULT_HEALTH_CHECK_PATH: str = "/"
DEFAULT_CPU_UNITS: int = 512
DEFAULT_MEMORY_MIB: int = 1024


def parse_domain_list(
    raw: str | None,
) -> list[str]:
    """
    Split a comma-separated domain list, trimming and dropping blank entries.

    Order is preserved. ``None`` (input not set) yields an empty list.
    """
    if not raw:
        return []
    return [piece.strip() for piece in raw.split(",") if piece.strip()]


def derive_zone(
    domain: str | None,
) -> str | None:
    """
    Return the hosted zone for a domain.

    ``example.com`` is its own zone (apex); ``api.example.com`` and deeper
    names drop their first label. ``None`` passes through.

    Raises:
        InvalidDomainError: the domain has fewer than two labels.
    """
    if domain is None:
        return None
    labels = domain.split(".")
    if len(labels) < 2:
        raise InvalidDomainError(domain)
    if len(labels) == 2:
        return domain
    return ".".join(labels[1:])


def is_policy_key(key: str) -> bool:
    return key.startswith(POLICY_KEY_PREFIXES)


def is_secret_reference(value: str) -> bool:
    return value.startswith(SECRET_VALUE_PREFIX)


def to_secret_reference(value: str) -> str:
    """Inverse of the stripping done by ``partition_secret_entries``."""
    return f"{SECRET_VALUE_PREFIX}{value}"


def partition_policy_entries(
    entries: Mapping[str, str],
) -> tuple[dict[str, str], dict[str, str]]:
    """
    First pass: split entries by key into (policy, remainder).

    Values are not inspected, so a policy key is never treated as a secret.
    """
    policy: dict[str, str] = {}
    remainder: dict[str, str] = {}
    for key, value in entries.items():
        (policy if is_policy_key(key) else remainder)[key] = value
    return policy, remainder


def partition_secret_entries(
    entries: Mapping[str, str],
) -> tuple[dict[str, str], dict[str, str]]:
    """
    Second pass: split entries by value into (secret, plain).

    Secret values have the ``secret://`` prefix removed once from the front;
    anything after it, including further ``secret://`` text, is kept verbatim.
    """
    secret: dict[str, str] = {}
    plain: dict[str, str] = {}
    for key, value in entries.items():
        if is_secret_reference(value):
            secret[key] = value[len(SECRET_VALUE_PREFIX):]
        else:
            plain[key] = value
    return secret, plain


class ClassifiedConfiguration(NamedTuple):
    plain: dict[str, str]
    secret: dict[str, str]
    policy: dict[str, str]


def classify_configuration(
    entries: Mapping[str, str],
) -> ClassifiedConfiguration:
    """
    Route project env entries into plain, secret and policy buckets.

    Runs ``partition_policy_entries`` then ``partition_secret_entries`` on what
    is left. Policy values stay raw strings; they are parsed (and rejected if
    malformed) by the provisioning component.
    """
    policy, remainder = partition_policy_entries(entries)
    secret, plain = partition_secret_entries(remainder)
    return ClassifiedConfiguration(plain=plain, secret=secret, policy=policy)


def decode_project_env(
    raw: str | None,
    key: str = "hereyaProjectEnv",
) -> dict[str, str]:
    """
    Decode the JSON project env blob into a str->str dict.

    The blob may contain secrets, so it is never echoed in errors; only the
    offending entry key is.

    Raises:
        InvalidConfigurationError: not JSON, not an object, or a non-string value.
    """
    if raw is None:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidConfigurationError(key, f"invalid JSON at position {exc.pos}") from None
    if not isinstance(decoded, dict):
        raise InvalidConfigurationError(key, "expected a JSON object")
    for entry_key, value in decoded.items():
        if not isinstance(value, str):
            raise InvalidConfigurationError(
                key, f"value of {entry_key!r} must be a string"
            )
    return decoded


@dataclass(frozen=True)
class DeploymentRequest:
    """
    Validated, immutable description of one deployment.

    Attributes:
        project_root_directory: Directory the container image is built from.
        vpc_id: Target VPC; None means the account default VPC.
        health_check_path: Target group health-check path.
        cpu_units: Fargate task CPU units.
        memory_mib: Fargate task memory in MiB.
        domains: Primary domain first, then additional domains. Never blank;
            duplicates are dropped, keeping the first occurrence.
        domain_zone: Route 53 zone name for the domains.
        cluster_name: ECS cluster name; None lets the provider name it.
        plain_variables: Container environment, passed through unchanged.
        secret_variables: Secret material (prefix stripped), stored in Secrets
            Manager and injected by reference.
        policy_statements: Raw IAM policy JSON per env key, in input order,
            granted to the task role. Keyed by env key so resource names and
            MalformedPolicyError messages stay stable across deployments.
    """

    project_root_directory: str
    vpc_id: str | None = None
    health_check_path: str = DEFAULT_HEALTH_CHECK_PATH
    cpu_units: int = DEFAULT_CPU_UNITS
    memory_mib: int = DEFAULT_MEMORY_MIB
    domains: tuple[str, ...] = ()
    domain_zone: str | None = None
    cluster_name: str | None = None
    plain_variables: Mapping[str, str] = field(default_factory=dict)
    secret_variables: Mapping[str, str] = field(default_factory=dict, repr=False)
    policy_statements: Mapping[str, str] = field(default_factory=dict)

    # Read-only mapping fields are unhashable; so is the request.
    __hash__ = None

    def __post_init__(self):
        if not self.project_root_directory or not self.project_root_directory.strip():
            raise MissingRequiredInputError("hereyaProjectRootDir")
        # Frozen: bypass __setattr__ to store read-only views.
        object.__setattr__(self, "domains", tuple(dict.fromkeys(self.domains)))
        for name in ("plain_variables", "secret_variables", "policy_statements"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def primary_domain(self) -> str | None:
        return self.domains[0] if self.domains else None

    @property
    def additional_domains(self) -> tuple[str, ...]:
        return self.domains[1:]


def build(
    inputs: DeploymentInputs,
) -> DeploymentRequest:
    """
    Validate inputs and assemble the DeploymentRequest.

    The project root directory is checked before anything else. An explicit
    zone is used as-is; otherwise it is derived from the primary domain.

    Raises:
        MissingRequiredInputError: project root directory absent or blank.
        InvalidDomainError: zone derivation failed.
        InvalidConfigurationError: the project env blob is malformed.
    """
    if not inputs.project_root_dir or not inputs.project_root_dir.strip():
        raise MissingRequiredInputError("hereyaProjectRootDir")

    domains = parse_domain_list(inputs.custom_domain)
    primary_domain = domains[0] if domains else None
    domain_zone = inputs.custom_domain_zone or derive_zone(primary_domain)

    classified = classify_configuration(decode_project_env(inputs.project_env))

    return DeploymentRequest(
        project_root_directory=inputs.project_root_dir,
        vpc_id=inputs.vpc_id,
        health_check_path=inputs.health_check_path or DEFAULT_HEALTH_CHECK_PATH,
        cpu_units=inputs.cpu if inputs.cpu is not None else DEFAULT_CPU_UNITS,
        memory_mib=(
            inputs.memory_mib if inputs.memory_mib is not None else DEFAULT_MEMORY_MIB
        ),
        domains=tuple(domains),
        domain_zone=domain_zone,
        cluster_name=inputs.cluster_name,
        plain_variables=classified.plain,
        secret_variables=classified.secret,
        policy_statements=classified.policy,
    )
