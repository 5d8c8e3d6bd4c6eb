"""
Infrastructure components for the containerized web service.

- **WebService**: ECS Fargate service behind a public Application Load
  Balancer, built from a ``deployment.DeploymentRequest``; optional ACM
  certificate, Route 53 alias records, Secrets Manager secrets and task-role
  IAM policies. Exposes ``service_url`` and ``additional_service_urls``.
"""

from components.service import WebService

__all__ = ["WebService"]
