"""
Hereya ECS web service - Pulumi entrypoint.

Reads the deployment inputs from the process environment, builds and
validates a ``DeploymentRequest``, then provisions it as a ``WebService``:

- **Inputs**: ``vpcId``, ``healthCheckPath``, ``cpu``, ``memoryMiB``,
  ``customDomain``, ``customDomainZone``, ``clusterName``,
  ``hereyaProjectEnv`` and the required ``hereyaProjectRootDir``.
- **Validation**: any invalid input raises before a resource is registered,
  so the update aborts without touching AWS.

Stack exports: service_url, and additional_service_urls when extra domains
were supplied.
"""

import os

import pulumi

from components import WebService
from config import DeploymentInputs
from deployment import build


def main():
    """
    Build the deployment request and provision the web service.
    """
    request = build(DeploymentInputs.from_environ(os.environ))
    stack_name = pulumi.get_stack()

    pulumi.log.info(
        f"Deploying {request.project_root_directory} "
        f"({request.cpu_units} CPU units, {request.memory_mib} MiB, "
        f"{len(request.domains)} domain(s), "
        f"{len(request.plain_variables)} plain / "
        f"{len(request.secret_variables)} secret variable(s))"
    )

    service = WebService(
        name=f"web-{stack_name}",
        request=request,
        stack_name=stack_name,
    )

    pulumi.export("service_url", service.service_url)
    if service.additional_service_urls is not None:
        pulumi.export("additional_service_urls", service.additional_service_urls)


if __name__ == "__main__":
    main()
