"""
Pure helpers for the web service component. Testable without Pulumi runtime.

Used by ``components.service`` for secret naming, IAM policy parsing, the
container definition and service URLs. No Pulumi types; all functions accept
and return plain Python types so they can be unit-tested without a Pulumi
stack.
"""

import hashlib
import json
import re
from typing import Any, Mapping

from errors import MalformedPolicyError

CONTAINER_NAME: str = "web"
CONTAINER_PORT: int = 8080

IAM_POLICY_VERSION: str = "2012-10-17"


def secret_name(
    stack_name: str,
    key: str,
) -> str:
    """
    Secrets Manager name for a project env secret: ``/<stack>/<key>``.
    """
    return f"/{stack_name}/{key}"


def resource_suffix(
    key: str,
) -> str:
    """
    Readable, collision-free form of an env key for Pulumi resource names.

    Lower-cased and hyphenated, then suffixed with a short hash of the raw
    key, since env keys are case-sensitive: ``DB_PASS`` and ``db_pass`` share
    the ``db-pass-`` stem but get different hashes.
    """
    slug = re.sub(r"[^a-z0-9]+", "-", key.lower()).strip("-")
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}" if slug else digest


def parse_policy_statements(
    key: str,
    value: str,
) -> list[dict[str, Any]]:
    """
    Return the ``Statement`` list of an IAM policy document.

    Accepts a list of statements or a single statement object under
    ``Statement``.

    Raises:
        MalformedPolicyError: value is not JSON, not an object, or has no
            statements.
    """
    try:
        document = json.loads(value)
    except json.JSONDecodeError:
        raise MalformedPolicyError(key, "value is not valid JSON") from None
    if not isinstance(document, dict):
        raise MalformedPolicyError(key, "expected a JSON object")

    statements = document.get("Statement")
    if isinstance(statements, dict):
        statements = [statements]
    if not isinstance(statements, list) or not statements:
        raise MalformedPolicyError(key, "missing a non-empty Statement list")
    if not all(isinstance(statement, dict) for statement in statements):
        raise MalformedPolicyError(key, "every Statement must be an object")
    return statements


def policy_document(
    statements: list[dict[str, Any]],
) -> str:
    """
    Render statements as an IAM policy document JSON string.
    """
    return json.dumps({"Version": IAM_POLICY_VERSION, "Statement": statements})


def secrets_read_policy(
    secret_arns: list[str],
) -> str:
    """
    Policy letting the task execution role fetch the given secrets.
    """
    return policy_document(
        [
            {
                "Effect": "Allow",
                "Action": ["secretsmanager:GetSecretValue"],
                "Resource": secret_arns,
            }
        ]
    )


def container_environment(
    plain_variables: Mapping[str, str],
    port: int = CONTAINER_PORT,
) -> list[dict[str, str]]:
    """
    ECS ``environment`` entries: ``PORT`` first, then the plain variables.

    A plain variable named ``PORT`` overrides the default.
    """
    variables = {"PORT": str(port), **plain_variables}
    return [{"name": name, "value": value} for name, value in variables.items()]


def container_secrets(
    secret_arns: Mapping[str, str],
) -> list[dict[str, str]]:
    """
    ECS ``secrets`` entries referencing Secrets Manager ARNs by env name.
    """
    return [{"name": name, "valueFrom": arn} for name, arn in secret_arns.items()]


def container_definitions(
    image: str,
    environment: list[dict[str, str]],
    secrets: list[dict[str, str]],
    log_group: str,
    region: str,
    port: int = CONTAINER_PORT,
) -> str:
    """
    Render the task definition ``container_definitions`` JSON (one container).
    """
    container = {
        "name": CONTAINER_NAME,
        "image": image,
        "essential": True,
        "portMappings": [{"containerPort": port, "protocol": "tcp"}],
        "environment": environment,
        "secrets": secrets,
        "logConfiguration": {
            "logDriver": "awslogs",
            "options": {
                "awslogs-group": log_group,
                "awslogs-region": region,
                "awslogs-stream-prefix": CONTAINER_NAME,
            },
        },
    }
    return json.dumps([container])


def service_url(
    primary_domain: str | None,
    has_zone: bool,
    load_balancer_dns_name: str,
) -> str:
    """
    Public URL of the service.

    HTTPS on the primary domain when a zone was found (certificate issued),
    otherwise plain HTTP on the load balancer DNS name.
    """
    if primary_domain and has_zone:
        return f"https://{primary_domain}"
    return f"http://{load_balancer_dns_name}"


def additional_service_urls(
    additional_domains: tuple[str, ...] | list[str],
) -> str:
    """
    Comma-joined HTTPS URLs for the additional domains.
    """
    return ",".join(f"https://{domain}" for domain in additional_domains)
