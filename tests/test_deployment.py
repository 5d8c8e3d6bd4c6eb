"""Tests for the deployment request builder"""

import json

import pytest

import deployment
from config import DeploymentInputs
from errors import InvalidConfigurationError, InvalidDomainError, MissingRequiredInputError


class TestParseDomainList:
    def test_none_is_empty(self):
        assert deployment.parse_domain_list(None) == []

    def test_empty_string_is_empty(self):
        assert deployment.parse_domain_list("") == []

    def test_trims_and_keeps_order(self):
        assert deployment.parse_domain_list(" b.example.com ,a.example.com") == [
            "b.example.com",
            "a.example.com",
        ]

    def test_drops_blank_entries(self):
        assert deployment.parse_domain_list("a.example.com, ,,b.example.com,") == [
            "a.example.com",
            "b.example.com",
        ]

    @pytest.mark.parametrize(
        "raw",
        ["a.com,b.com,c.com", " a.com , b.com , c.com ", "a.com,\tb.com,\nc.com"],
    )
    def test_count_ignores_whitespace(self, raw):
        assert len(deployment.parse_domain_list(raw)) == 3


class TestDeriveZone:
    def test_none_passes_through(self):
        assert deployment.derive_zone(None) is None

    def test_apex_is_own_zone(self):
        assert deployment.derive_zone("example.com") == "example.com"

    def test_subdomain_drops_first_label(self):
        assert deployment.derive_zone("api.example.com") == "example.com"

    def test_deep_subdomain(self):
        assert deployment.derive_zone("a.b.example.com") == "b.example.com"

    def test_single_label_is_invalid(self):
        with pytest.raises(InvalidDomainError) as excinfo:
            deployment.derive_zone("a")
        assert excinfo.value.domain == "a"


class TestPartitions:
    def test_policy_pass_only_looks_at_keys(self):
        policy, remainder = deployment.partition_policy_entries(
            {"IAM_POLICY_X": "secret://p", "iamPolicyY": "{}", "FOO": "bar"}
        )
        assert policy == {"IAM_POLICY_X": "secret://p", "iamPolicyY": "{}"}
        assert remainder == {"FOO": "bar"}

    def test_secret_pass_strips_prefix_once(self):
        secret, plain = deployment.partition_secret_entries(
            {"A": "secret://secret://x", "B": "plain"}
        )
        assert secret == {"A": "secret://x"}
        assert plain == {"B": "plain"}

    def test_prefix_must_lead(self):
        secret, plain = deployment.partition_secret_entries({"A": "not secret://x"})
        assert secret == {}
        assert plain == {"A": "not secret://x"}


class TestClassifyConfiguration:
    def test_three_buckets(self):
        classified = deployment.classify_configuration(
            {"IAM_POLICY_X": "{...}", "FOO": "secret://bar", "BAZ": "qux"}
        )
        assert classified.policy == {"IAM_POLICY_X": "{...}"}
        assert classified.secret == {"FOO": "bar"}
        assert classified.plain == {"BAZ": "qux"}

    def test_policy_key_wins_over_secret_value(self):
        classified = deployment.classify_configuration(
            {"IAM_POLICY_X": "secret://value"}
        )
        assert classified.policy == {"IAM_POLICY_X": "secret://value"}
        assert classified.secret == {}
        assert classified.plain == {}

    def test_empty(self):
        assert deployment.classify_configuration({}) == ({}, {}, {})

    @pytest.mark.parametrize("raw", ["secret://bar", "secret://", "secret://a secret://b"])
    def test_secret_round_trip(self, raw):
        classified = deployment.classify_configuration({"K": raw})
        assert deployment.to_secret_reference(classified.secret["K"]) == raw


class TestDecodeProjectEnv:
    def test_none_is_empty(self):
        assert deployment.decode_project_env(None) == {}

    def test_decodes_object(self):
        assert deployment.decode_project_env('{"A": "1"}') == {"A": "1"}

    def test_invalid_json_hides_blob(self):
        with pytest.raises(InvalidConfigurationError) as excinfo:
            deployment.decode_project_env('{"PASSWORD": "secret://hunter2"')
        assert excinfo.value.key == "hereyaProjectEnv"
        assert "hunter2" not in str(excinfo.value)

    def test_non_object(self):
        with pytest.raises(InvalidConfigurationError):
            deployment.decode_project_env('["A"]')

    def test_non_string_value(self):
        with pytest.raises(InvalidConfigurationError) as excinfo:
            deployment.decode_project_env('{"A": 1}')
        assert "'A'" in str(excinfo.value)


class TestBuild:
    def test_defaults(self):
        request = deployment.build(DeploymentInputs(project_root_dir="/src/app"))
        assert request.project_root_directory == "/src/app"
        assert request.vpc_id is None
        assert request.health_check_path == "/"
        assert request.cpu_units == 512
        assert request.memory_mib == 1024
        assert request.domains == ()
        assert request.domain_zone is None
        assert request.primary_domain is None
        assert request.additional_domains == ()
        assert request.cluster_name is None
        assert request.plain_variables == {}
        assert request.secret_variables == {}
        assert request.policy_statements == {}

    def test_full_inputs(self):
        policy = json.dumps({"Statement": [{"Effect": "Allow", "Action": "s3:*"}]})
        request = deployment.build(
            DeploymentInputs(
                vpc_id="vpc-1",
                health_check_path="/health",
                cpu=1024,
                memory_mib=2048,
                custom_domain="app.example.com, www.example.com",
                cluster_name="apps",
                project_env=json.dumps(
                    {"IAM_POLICY_S3": policy, "DB": "secret://pw", "MODE": "prod"}
                ),
                project_root_dir="/src/app",
            )
        )
        assert request.vpc_id == "vpc-1"
        assert request.health_check_path == "/health"
        assert request.cpu_units == 1024
        assert request.memory_mib == 2048
        assert request.domains == ("app.example.com", "www.example.com")
        assert request.primary_domain == "app.example.com"
        assert request.additional_domains == ("www.example.com",)
        assert request.domain_zone == "example.com"
        assert request.cluster_name == "apps"
        assert request.plain_variables == {"MODE": "prod"}
        assert request.secret_variables == {"DB": "pw"}
        assert request.policy_statements == {"IAM_POLICY_S3": policy}

    def test_explicit_zone_skips_derivation(self):
        request = deployment.build(
            DeploymentInputs(
                custom_domain="localhost",
                custom_domain_zone="internal.example.com",
                project_root_dir="/src/app",
            )
        )
        assert request.domain_zone == "internal.example.com"

    def test_invalid_primary_domain(self):
        with pytest.raises(InvalidDomainError):
            deployment.build(
                DeploymentInputs(custom_domain="localhost", project_root_dir="/src/app")
            )

    @pytest.mark.parametrize("root", [None, "", "   "])
    def test_missing_root_dir(self, root):
        with pytest.raises(MissingRequiredInputError) as excinfo:
            deployment.build(
                DeploymentInputs(
                    custom_domain="a",
                    project_env="not json",
                    project_root_dir=root,
                )
            )
        assert excinfo.value.name == "hereyaProjectRootDir"

    def test_repeated_domain_is_kept_once(self):
        request = deployment.build(
            DeploymentInputs(
                custom_domain="a.example.com,a.example.com",
                project_root_dir="/src/app",
            )
        )
        assert request.domains == ("a.example.com",)
        assert request.additional_domains == ()

    def test_idempotent(self):
        inputs = DeploymentInputs(
            custom_domain="app.example.com",
            project_env='{"A": "secret://x", "B": "y"}',
            project_root_dir="/src/app",
        )
        assert deployment.build(inputs) == deployment.build(inputs)


class TestDeploymentRequest:
    def test_is_frozen(self):
        request = deployment.DeploymentRequest(project_root_directory="/src")
        with pytest.raises(AttributeError):
            request.cpu_units = 1

    def test_mappings_are_read_only(self):
        request = deployment.DeploymentRequest(
            project_root_directory="/src", plain_variables={"A": "1"}
        )
        with pytest.raises(TypeError):
            request.plain_variables["B"] = "2"

    def test_copies_caller_mappings(self):
        variables = {"A": "1"}
        request = deployment.DeploymentRequest(
            project_root_directory="/src", plain_variables=variables
        )
        variables["B"] = "2"
        assert request.plain_variables == {"A": "1"}

    def test_repr_hides_secrets(self):
        request = deployment.DeploymentRequest(
            project_root_directory="/src", secret_variables={"DB": "hunter2"}
        )
        assert "hunter2" not in repr(request)

    def test_requires_root_directory(self):
        with pytest.raises(MissingRequiredInputError):
            deployment.DeploymentRequest(project_root_directory="")

    def test_duplicate_domains_dropped(self):
        request = deployment.DeploymentRequest(
            project_root_directory="/src",
            domains=("a.example.com", "b.example.com", "a.example.com"),
        )
        assert request.domains == ("a.example.com", "b.example.com")
        assert request.additional_domains == ("b.example.com",)

    def test_is_explicitly_unhashable(self):
        request = deployment.DeploymentRequest(project_root_directory="/src")
        assert deployment.DeploymentRequest.__hash__ is None
        with pytest.raises(TypeError):
            hash(request)
