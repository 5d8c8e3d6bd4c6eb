"""
Typed errors raised while turning raw inputs into a deployment.

Every error carries the offending input (key or value) so the Pulumi engine
output points at what to fix. Nothing here is retried or recovered: the
entrypoint lets these propagate and the update aborts before any resource is
registered.
"""


class DeploymentInputError(ValueError):
    """Base class for invalid deployment inputs."""


class MissingRequiredInputError(DeploymentInputError):
    """A mandatory input (e.g. the project root directory) is absent or blank."""

    def __init__(self, name: str):
        super().__init__(f"{name} is required")
        self.name = name


class InvalidDomainError(DeploymentInputError):
    """A domain has too few labels to derive its hosted zone."""

    def __init__(self, domain: str):
        super().__init__(f"Invalid domain name: {domain!r}")
        self.domain = domain


class InvalidConfigurationError(DeploymentInputError):
    """A configuration value could not be interpreted.

    ``value`` is omitted from the message when it may hold secret material
    (the whole project env blob, for instance).
    """

    def __init__(self, key: str, reason: str, value: str | None = None):
        detail = f" (got {value!r})" if value is not None else ""
        super().__init__(f"{key}: {reason}{detail}")
        self.key = key
        self.value = value


class MalformedPolicyError(DeploymentInputError):
    """An IAM policy entry is not a JSON policy document with statements."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Malformed IAM policy in {key}: {reason}")
        self.key = key
