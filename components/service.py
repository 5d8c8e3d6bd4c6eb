"""
AWS container web service: ECS Fargate behind an Application Load Balancer.

This component provisions everything a ``DeploymentRequest`` describes: the
container image (built from the project root and pushed to ECR), an ECS
cluster, a public ALB with an IP target group, the Fargate task and service,
and optionally an ACM certificate with Route 53 alias records, Secrets
Manager secrets, and inline IAM policies on the task role.

Without a domain the service is served over HTTP on the load balancer DNS
name. With a primary domain and its zone, an HTTPS listener uses a
DNS-validated certificate covering every domain, and each domain gets an A
alias record to the load balancer. ``service_url`` and
``additional_service_urls`` are ``Output[str]`` for stack exports.
"""

import json

import pulumi
import pulumi_aws as aws
import pulumi_docker as docker

from components._helpers import (
    CONTAINER_NAME,
    CONTAINER_PORT,
    additional_service_urls,
    container_definitions,
    container_environment,
    container_secrets,
    parse_policy_statements,
    policy_document,
    resource_suffix,
    secret_name,
    secrets_read_policy,
    service_url,
)
from deployment import DeploymentRequest

ID: str = "hereya:aws:WebService"

ECS_TASK_EXECUTION_POLICY_ARN: str = (
    "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"
)
TLS_POLICY: str = "ELBSecurityPolicy-TLS13-1-2-2021-06"
LOG_RETENTION_DAYS: int = 30

ECS_TASKS_ASSUME_ROLE_POLICY: str = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": "ecs-tasks.amazonaws.com"},
                "Action": "sts:AssumeRole",
            }
        ],
    }
)


class WebService(pulumi.ComponentResource):
    """
    Fargate service behind a public ALB, with optional TLS, DNS, secrets and IAM.

    Resources: ECR Repository, docker Image, Cluster, SecurityGroups,
    LoadBalancer, TargetGroup, Listener, optional Certificate (+ validation
    records), Secrets, Roles, LogGroup, TaskDefinition, Service, optional
    alias Records.
    """

    def __init__(
        self,
        name: str,
        request: DeploymentRequest,
        stack_name: str,
    ):
        """
        Provision the service described by ``request``.

        Args:
            name: Pulumi resource name prefix for every child resource.
            request: Validated deployment request (see ``deployment.build``).
            stack_name: Stack name; secrets are stored as ``/<stack>/<KEY>``.

        Raises:
            MalformedPolicyError: a policy entry is not an IAM policy
                document. Raised before any resource is registered.

        Outputs (set on self, registered for the component):
            service_url: ``https://<primary domain>`` or ``http://<alb dns>``.
            additional_service_urls: Comma-joined HTTPS URLs of the
                additional domains, or None when there are none.
        """
        # Parse up front so a bad policy aborts before anything is created.
        policies = {
            key: parse_policy_statements(key, value)
            for key, value in request.policy_statements.items()
        }

        super().__init__(ID, name)

        child_opts = pulumi.ResourceOptions(parent=self)

        primary_domain = request.primary_domain
        has_zone = bool(primary_domain and request.domain_zone)
        if request.domain_zone and not primary_domain:
            pulumi.log.warn(
                f"Zone {request.domain_zone} given without a domain; serving over HTTP",
                resource=self,
            )

        # Network: explicit VPC or the account default, and all of its subnets.
        if request.vpc_id:
            vpc = aws.ec2.get_vpc_output(id=request.vpc_id)
        else:
            vpc = aws.ec2.get_vpc_output(default=True)
        subnets = aws.ec2.get_subnets_output(
            filters=[aws.ec2.GetSubnetsFilterArgs(name="vpc-id", values=[vpc.id])]
        )
        region = aws.get_region_output().name

        # Image: built from the project root and pushed to a private repository.
        repository = aws.ecr.Repository(
            resource_name=f"{name}-repo",
            force_delete=True,
            opts=child_opts,
        )
        token = aws.ecr.get_authorization_token_output(
            registry_id=repository.registry_id
        )
        image = docker.Image(
            resource_name=f"{name}-image",
            build=docker.DockerBuildArgs(
                context=request.project_root_directory,
                platform="linux/amd64",
            ),
            image_name=repository.repository_url.apply(lambda url: f"{url}:latest"),
            registry=docker.RegistryArgs(
                server=repository.repository_url,
                username=token.user_name,
                password=pulumi.Output.secret(token.password),
            ),
            opts=child_opts,
        )

        self.cluster = aws.ecs.Cluster(
            resource_name=f"{name}-cluster",
            name=request.cluster_name,
            opts=child_opts,
        )

        listener_port = 443 if has_zone else 80
        lb_security_group = aws.ec2.SecurityGroup(
            resource_name=f"{name}-lb-sg",
            vpc_id=vpc.id,
            description=f"Public ingress to {name} load balancer",
            ingress=[
                aws.ec2.SecurityGroupIngressArgs(
                    protocol="tcp",
                    from_port=listener_port,
                    to_port=listener_port,
                    cidr_blocks=["0.0.0.0/0"],
                )
            ],
            egress=[
                aws.ec2.SecurityGroupEgressArgs(
                    protocol="-1",
                    from_port=0,
                    to_port=0,
                    cidr_blocks=["0.0.0.0/0"],
                )
            ],
            opts=child_opts,
        )
        # Tasks only accept traffic from the load balancer.
        service_security_group = aws.ec2.SecurityGroup(
            resource_name=f"{name}-service-sg",
            vpc_id=vpc.id,
            description=f"Load balancer ingress to {name} tasks",
            ingress=[
                aws.ec2.SecurityGroupIngressArgs(
                    protocol="tcp",
                    from_port=CONTAINER_PORT,
                    to_port=CONTAINER_PORT,
                    security_groups=[lb_security_group.id],
                )
            ],
            egress=[
                aws.ec2.SecurityGroupEgressArgs(
                    protocol="-1",
                    from_port=0,
                    to_port=0,
                    cidr_blocks=["0.0.0.0/0"],
                )
            ],
            opts=child_opts,
        )

        self.load_balancer = aws.lb.LoadBalancer(
            resource_name=f"{name}-alb",
            load_balancer_type="application",
            internal=False,
            security_groups=[lb_security_group.id],
            subnets=subnets.ids,
            opts=child_opts,
        )
        target_group = aws.lb.TargetGroup(
            resource_name=f"{name}-tg",
            port=CONTAINER_PORT,
            protocol="HTTP",
            target_type="ip",
            vpc_id=vpc.id,
            health_check=aws.lb.TargetGroupHealthCheckArgs(
                path=request.health_check_path,
                matcher="200",
            ),
            opts=child_opts,
        )
        forward = [
            aws.lb.ListenerDefaultActionArgs(
                type="forward",
                target_group_arn=target_group.arn,
            )
        ]

        zone = None
        if has_zone:
            zone = aws.route53.get_zone_output(
                name=request.domain_zone,
                private_zone=False,
            )
            certificate_arn = self._certificate(name, request, zone.zone_id, child_opts)
            listener = aws.lb.Listener(
                resource_name=f"{name}-https",
                load_balancer_arn=self.load_balancer.arn,
                port=443,
                protocol="HTTPS",
                ssl_policy=TLS_POLICY,
                certificate_arn=certificate_arn,
                default_actions=forward,
                opts=child_opts,
            )
        else:
            listener = aws.lb.Listener(
                resource_name=f"{name}-http",
                load_balancer_arn=self.load_balancer.arn,
                port=80,
                protocol="HTTP",
                default_actions=forward,
                opts=child_opts,
            )

        # Secret values live only in Secrets Manager and Pulumi secret state.
        secrets = {
            key: self._secret(name, stack_name, key, value, child_opts)
            for key, value in request.secret_variables.items()
        }
        secret_keys = list(secrets)
        secret_arns: pulumi.Output[dict[str, str]] = pulumi.Output.from_input({})
        if secrets:
            secret_arns = pulumi.Output.all(*[s.arn for s in secrets.values()]).apply(
                lambda arns: dict(zip(secret_keys, arns))
            )

        execution_role = aws.iam.Role(
            resource_name=f"{name}-execution-role",
            assume_role_policy=ECS_TASKS_ASSUME_ROLE_POLICY,
            opts=child_opts,
        )
        aws.iam.RolePolicyAttachment(
            resource_name=f"{name}-execution-policy",
            role=execution_role.name,
            policy_arn=ECS_TASK_EXECUTION_POLICY_ARN,
            opts=child_opts,
        )
        if secrets:
            aws.iam.RolePolicy(
                resource_name=f"{name}-read-secrets",
                role=execution_role.id,
                policy=secret_arns.apply(lambda arns: secrets_read_policy(list(arns.values()))),
                opts=child_opts,
            )

        self.task_role = aws.iam.Role(
            resource_name=f"{name}-task-role",
            assume_role_policy=ECS_TASKS_ASSUME_ROLE_POLICY,
            opts=child_opts,
        )
        for key, statements in policies.items():
            aws.iam.RolePolicy(
                resource_name=f"{name}-{resource_suffix(key)}",
                role=self.task_role.id,
                policy=policy_document(statements),
                opts=child_opts,
            )
        if policies:
            pulumi.log.info(
                f"Granting {len(policies)} IAM policy document(s) to the task role",
                resource=self,
            )

        log_group = aws.cloudwatch.LogGroup(
            resource_name=f"{name}-logs",
            retention_in_days=LOG_RETENTION_DAYS,
            opts=child_opts,
        )

        environment = container_environment(request.plain_variables)
        definitions = pulumi.Output.all(
            image=image.repo_digest,
            log_group=log_group.name,
            region=region,
            secret_arns=secret_arns,
        ).apply(
            lambda args: container_definitions(
                image=args["image"],
                environment=environment,
                secrets=container_secrets(args["secret_arns"]),
                log_group=args["log_group"],
                region=args["region"],
            )
        )
        self.task_definition = aws.ecs.TaskDefinition(
            resource_name=f"{name}-task",
            family=name,
            cpu=str(request.cpu_units),
            memory=str(request.memory_mib),
            network_mode="awsvpc",
            requires_compatibilities=["FARGATE"],
            execution_role_arn=execution_role.arn,
            task_role_arn=self.task_role.arn,
            container_definitions=definitions,
            opts=child_opts,
        )

        # The target group must be attached to a listener before the service.
        self.service = aws.ecs.Service(
            resource_name=f"{name}-service",
            cluster=self.cluster.arn,
            task_definition=self.task_definition.arn,
            desired_count=1,
            launch_type="FARGATE",
            network_configuration=aws.ecs.ServiceNetworkConfigurationArgs(
                assign_public_ip=True,
                subnets=subnets.ids,
                security_groups=[service_security_group.id],
            ),
            load_balancers=[
                aws.ecs.ServiceLoadBalancerArgs(
                    target_group_arn=target_group.arn,
                    container_name=CONTAINER_NAME,
                    container_port=CONTAINER_PORT,
                )
            ],
            deployment_controller=aws.ecs.ServiceDeploymentControllerArgs(type="ECS"),
            deployment_minimum_healthy_percent=50,
            deployment_maximum_percent=200,
            opts=pulumi.ResourceOptions(parent=self, depends_on=[listener]),
        )

        if zone is not None:
            for index, domain in enumerate(request.domains):
                aws.route53.Record(
                    resource_name=f"{name}-dns-{index}",
                    zone_id=zone.zone_id,
                    name=domain,
                    type="A",
                    aliases=[
                        aws.route53.RecordAliasArgs(
                            name=self.load_balancer.dns_name,
                            zone_id=self.load_balancer.zone_id,
                            evaluate_target_health=True,
                        )
                    ],
                    opts=child_opts,
                )

        self.service_url: pulumi.Output[str] = self.load_balancer.dns_name.apply(
            lambda dns_name: service_url(primary_domain, has_zone, dns_name)
        )
        self.additional_service_urls: pulumi.Output[str] | None = None
        if zone is not None and request.additional_domains:
            self.additional_service_urls = pulumi.Output.from_input(
                additional_service_urls(request.additional_domains)
            )
        self.register_outputs(
            {
                "service_url": self.service_url,
                "additional_service_urls": self.additional_service_urls,
            }
        )

    def _certificate(
        self,
        name: str,
        request: DeploymentRequest,
        zone_id: pulumi.Output[str],
        opts: pulumi.ResourceOptions,
    ) -> pulumi.Output[str]:
        """
        DNS-validated certificate for every domain; returns the validated ARN.
        """
        certificate = aws.acm.Certificate(
            resource_name=f"{name}-cert",
            domain_name=request.primary_domain,
            subject_alternative_names=list(request.additional_domains) or None,
            validation_method="DNS",
            opts=opts,
        )
        # One validation record per domain; request.domains has no duplicates.
        records = []
        for index in range(len(request.domains)):
            option = certificate.domain_validation_options.apply(
                lambda options, i=index: options[i]
            )
            records.append(
                aws.route53.Record(
                    resource_name=f"{name}-cert-validation-{index}",
                    zone_id=zone_id,
                    name=option.apply(lambda o: o.resource_record_name),
                    type=option.apply(lambda o: o.resource_record_type),
                    records=[option.apply(lambda o: o.resource_record_value)],
                    ttl=60,
                    allow_overwrite=True,
                    opts=opts,
                )
            )
        validation = aws.acm.CertificateValidation(
            resource_name=f"{name}-cert-validation",
            certificate_arn=certificate.arn,
            validation_record_fqdns=[record.fqdn for record in records],
            opts=opts,
        )
        return validation.certificate_arn

    def _secret(
        self,
        name: str,
        stack_name: str,
        key: str,
        value: str,
        opts: pulumi.ResourceOptions,
    ) -> aws.secretsmanager.Secret:
        secret = aws.secretsmanager.Secret(
            resource_name=f"{name}-secret-{resource_suffix(key)}",
            name=secret_name(stack_name, key),
            opts=opts,
        )
        aws.secretsmanager.SecretVersion(
            resource_name=f"{name}-secret-{resource_suffix(key)}-version",
            secret_id=secret.id,
            secret_string=pulumi.Output.secret(value),
            opts=opts,
        )
        return secret
