from types import SimpleNamespace

import pulumi
import pytest

from config import Config, Confidential, InstanceSpec
from confidential_vm import (
    ConfidentialVmBuilder,
    confidential_instance_config,
    instance_args,
    resolve_value,
    workload_metadata,
    zone_abbreviation,
)
from image_ref import ImageReference
from variables import defaults


def make_builder(**overrides):
    config = Config(team="Oak", service="gemma", environment="dev", zone="us-central1-a", labels={"team": "oak"})
    for key, value in overrides.items():
        setattr(config, key, value)
    variables = defaults()
    return ConfidentialVmBuilder(config, variables, ImageReference())


class TestNaming:
    @pytest.mark.parametrize(
        "zone, expected",
        [("us-central1-a", "usc1a"), ("europe-west4-b", "ew4b"), ("me-west1-c", "mec"), ("us-central1", "usc1")],
    )
    def test_zone_abbreviation(self, zone, expected):
        assert zone_abbreviation(zone) == expected

    def test_generated_resource_name(self):
        assert make_builder().generate_resource_name("vm") == "oak-gemma-dev-usc1a-vm"


class TestResolveValue:
    def test_ref_defaults_to_id(self):
        resources = {"fw": SimpleNamespace(id="fw-id", name="fw-name")}
        assert resolve_value("ref:fw", resources) == "fw-id"
        assert resolve_value({"a": ["ref:fw.name"]}, resources) == {"a": ["fw-name"]}

    def test_missing_ref(self):
        with pytest.raises(ValueError):
            resolve_value("ref:nothing", {})

    def test_plain_values_pass_through(self):
        assert resolve_value("plain", {}) == "plain"
        assert resolve_value(3, {}) == 3


class TestInstanceArgs:
    def test_metadata_points_at_workload(self):
        metadata = workload_metadata(ImageReference(tag="v1"), 8080, {"tee-env-MODE": "prod"})
        assert metadata["tee-image-reference"].endswith("attested-gemma:v1")
        assert metadata["tee-env-PORT"] == "8080"
        assert metadata["tee-env-MODE"] == "prod"

    def test_tdx_selected_by_type_only(self):
        config = confidential_instance_config(Confidential(confidential_instance_type="TDX"))
        assert config.confidential_instance_type == "TDX"
        assert config.enable_confidential_compute is None

    def test_sev_sets_legacy_flag(self):
        config = confidential_instance_config(Confidential(confidential_instance_type="SEV"))
        assert config.enable_confidential_compute is True

    def test_disabled_confidential_compute(self):
        assert confidential_instance_config(Confidential(enable_confidential_compute=False)) is None

    def test_confidential_vm_scheduling_and_boot(self):
        spec = InstanceSpec(name="vm", machine_type="c3-standard-4", zone="us-central1-a", network_tags=["vm"])
        args = instance_args(spec, "proj")
        assert args["scheduling"].on_host_maintenance == "TERMINATE"
        assert args["shielded_instance_config"].enable_secure_boot is True
        assert args["confidential_instance_config"].confidential_instance_type == "TDX"
        assert "confidential-space" in args["boot_disk"].initialize_params.image
        assert args["tags"] == ["vm"]
        assert "min_cpu_platform" not in args
        assert "labels" not in args

    def test_sev_snp_pins_cpu_platform(self):
        spec = InstanceSpec(
            name="vm", machine_type="n2d-standard-2", zone="us-central1-a",
            confidential=Confidential(confidential_instance_type="SEV_SNP"),
        )
        assert instance_args(spec, "proj")["min_cpu_platform"] == "AMD Milan"

    def test_builder_spec_resolves_references(self):
        builder = make_builder(metadata={"tee-env-FIREWALL": "ref:firewall.name"})
        builder.resources["firewall"] = SimpleNamespace(name="fw")
        spec = builder.instance_spec()
        assert spec.metadata["tee-env-FIREWALL"] == "fw"
        assert spec.network_tags == ["attested-gemma"]
        assert spec.labels == {"team": "oak"}


@pulumi.runtime.test
def test_instance_is_created_from_variables():
    builder = make_builder()
    builder.build()
    instance = builder.resources["instance"]

    def check(args):
        name, machine_type, zone, tags, metadata = args
        assert name == "attested-gemma"
        assert machine_type == "c3-standard-4"
        assert zone == "us-central1-a"
        assert tags == ["attested-gemma"]
        assert metadata["tee-image-reference"] == str(ImageReference())

    return pulumi.Output.all(
        instance.name, instance.machine_type, instance.zone, instance.tags, instance.metadata
    ).apply(check)


@pulumi.runtime.test
def test_firewall_opens_workload_port():
    builder = make_builder()
    builder.build()
    firewall = builder.resources["firewall"]

    def check(args):
        name, target_tags, source_ranges = args
        assert name == "oak-gemma-dev-usc1a-allow-8080"
        assert target_tags == ["attested-gemma"]
        assert source_ranges == ["0.0.0.0/0"]

    return pulumi.Output.all(firewall.name, firewall.target_tags, firewall.source_ranges).apply(check)


@pulumi.runtime.test
def test_firewall_can_be_disabled():
    builder = make_builder(firewall=False)
    builder.build()
    assert "firewall" not in builder.resources
    assert "instance" in builder.resources


@pulumi.runtime.test
def test_secret_metadata_reaches_instance():
    pulumi.runtime.set_all_config({"project:workloadToken": "s3cret"}, ["project:workloadToken"])
    builder = make_builder(metadata={"tee-env-TOKEN": "secret:workloadToken"})
    token = builder.instance_spec().metadata["tee-env-TOKEN"]
    assert isinstance(token, pulumi.Output)

    builder.build()
    instance = builder.resources["instance"]

    def check(args):
        value, metadata = args
        assert value == "s3cret"
        assert metadata["tee-env-TOKEN"] == "s3cret"

    return pulumi.Output.all(token, instance.metadata).apply(check)
