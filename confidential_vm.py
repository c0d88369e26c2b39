import re
from typing import Any, Dict, List, Optional

import pulumi
import pulumi_gcp as gcp

from config import Config, Confidential, InstanceSpec, Scheduling, Shielded
from image_ref import ImageReference

# Consolidated list of common GCP region abbreviations
GCP_REGION_ABBREVIATIONS = {
    "asia-east1": "ae1",
    "asia-east2": "ae2",
    "asia-northeast1": "an1",
    "asia-northeast2": "an2",
    "asia-northeast3": "an3",
    "asia-south1": "as1",
    "asia-southeast1": "ase1",
    "asia-southeast2": "ase2",
    "australia-southeast1": "aus1",
    "australia-southeast2": "aus2",
    "europe-central2": "ec2",
    "europe-north1": "en1",
    "europe-west1": "ew1",
    "europe-west2": "ew2",
    "europe-west3": "ew3",
    "europe-west4": "ew4",
    "europe-west6": "ew6",
    "northamerica-northeast1": "nn1",
    "southamerica-east1": "se1",
    "us-central1": "usc1",
    "us-east1": "use1",
    "us-east4": "use4",
    "us-west1": "usw1",
    "us-west2": "usw2",
    "us-west3": "usw3",
    "us-west4": "usw4",
}

# AMD SEV-SNP is only offered on Milan hosts.
SEV_SNP_MIN_CPU_PLATFORM = "AMD Milan"


def zone_abbreviation(zone: str) -> str:
    zone = zone.lower()
    region, _, suffix = zone.rpartition("-")
    if not region or not re.fullmatch(r"[a-z]", suffix):
        region, suffix = zone, ""
    return GCP_REGION_ABBREVIATIONS.get(region, region.split("-")[0]) + suffix


def resolve_value(value: Any, resources: Dict[str, Any]) -> Any:
    if isinstance(value, dict):
        return {k: resolve_value(v, resources) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_value(item, resources) for item in value]
    elif isinstance(value, str):
        if value.startswith("secret:"):
            # Fetch secret from Pulumi config
            secret_key = value[len("secret:"):]
            config = pulumi.Config()
            return config.require_secret(secret_key)
        elif value.startswith("ref:"):
            ref_text = value[4:]
            if "." in ref_text:
                ref_res, ref_attr = ref_text.split(".", 1)
            else:
                ref_res, ref_attr = ref_text, "id"
            if ref_res not in resources:
                raise ValueError(f"Referenced resource '{ref_res}' not found.")
            resource_obj = resources[ref_res]
            attr_val = getattr(resource_obj, ref_attr, None)
            if attr_val is None:
                raise ValueError(f"Attribute '{ref_attr}' not found on resource '{ref_res}'")
            return attr_val
        else:
            return value
    else:
        return value


def workload_metadata(reference: ImageReference, port: int, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Confidential Space launcher metadata for running ``reference``."""
    metadata = {
        "tee-image-reference": str(reference),
        "tee-container-log-redirect": "true",
        "tee-restart-policy": "Never",
        "tee-env-PORT": str(port),
    }
    if extra:
        metadata.update(extra)
    return metadata


def confidential_instance_config(confidential: Confidential) -> Optional[gcp.compute.InstanceConfidentialInstanceConfigArgs]:
    if not confidential.enable_confidential_compute:
        return None
    # The legacy flag only describes SEV; other technologies are selected by type alone.
    if confidential.confidential_instance_type == "SEV":
        return gcp.compute.InstanceConfidentialInstanceConfigArgs(
            enable_confidential_compute=True,
            confidential_instance_type="SEV",
        )
    return gcp.compute.InstanceConfidentialInstanceConfigArgs(
        confidential_instance_type=confidential.confidential_instance_type,
    )


def instance_args(spec: InstanceSpec, project: str) -> Dict[str, Any]:
    """Keyword arguments for ``gcp.compute.Instance`` describing ``spec``."""
    args: Dict[str, Any] = {
        "name": spec.name,
        "project": project,
        "zone": spec.zone,
        "machine_type": spec.machine_type,
        "boot_disk": gcp.compute.InstanceBootDiskArgs(
            initialize_params=gcp.compute.InstanceBootDiskInitializeParamsArgs(image=spec.boot_image),
        ),
        "network_interfaces": [
            gcp.compute.InstanceNetworkInterfaceArgs(
                network=spec.network,
                access_configs=[gcp.compute.InstanceNetworkInterfaceAccessConfigArgs()],
            )
        ],
        "scheduling": gcp.compute.InstanceSchedulingArgs(
            on_host_maintenance=spec.scheduling.on_host_maintenance,
            automatic_restart=spec.scheduling.automatic_restart,
        ),
        "shielded_instance_config": gcp.compute.InstanceShieldedInstanceConfigArgs(
            enable_secure_boot=spec.shielded.enable_secure_boot,
        ),
        "service_account": gcp.compute.InstanceServiceAccountArgs(scopes=spec.service_account_scopes),
        "metadata": spec.metadata,
    }
    confidential = confidential_instance_config(spec.confidential)
    if confidential is not None:
        args["confidential_instance_config"] = confidential
        if spec.confidential.confidential_instance_type == "SEV_SNP":
            args["min_cpu_platform"] = SEV_SNP_MIN_CPU_PLATFORM
    if spec.network_tags:
        args["tags"] = spec.network_tags
    if spec.labels:
        args["labels"] = spec.labels
    return args


class ConfidentialVmBuilder:
    def __init__(self, config: Config, variables: Dict[str, Any], reference: ImageReference):
        self.config = config
        self.variables = variables
        self.reference = reference
        self.resources: Dict[str, Any] = {}

    def generate_resource_name(self, base_name: str) -> str:
        team = self.config.team.strip().lower()
        service = self.config.service.strip().lower()
        env = self.config.environment.strip().lower()
        zone_abbr = zone_abbreviation(self.variables["zone"])
        return f"{team}-{service}-{env}-{zone_abbr}-{base_name}".lower()

    def network_tags(self) -> List[str]:
        return self.config.network_tags or [self.variables["instance_name"]]

    def instance_spec(self) -> InstanceSpec:
        metadata = workload_metadata(self.reference, self.variables["port"], self.config.metadata)
        return InstanceSpec(
            name=self.variables["instance_name"],
            machine_type=self.variables["machine_type"],
            zone=self.variables["zone"],
            boot_image=self.config.boot_image,
            network=self.config.network,
            scheduling=Scheduling(),
            confidential=Confidential(
                confidential_instance_type=self.variables["confidential_instance_type"],
            ),
            shielded=Shielded(),
            metadata={key: resolve_value(value, self.resources) for key, value in metadata.items()},
            network_tags=self.network_tags(),
            labels=self.config.labels or {},
        )

    def build_firewall(self) -> gcp.compute.Firewall:
        port = self.variables["port"]
        pulumi_name = self.generate_resource_name(f"allow-{port}")
        firewall = gcp.compute.Firewall(
            pulumi_name,
            name=pulumi_name,
            project=self.variables["project_id"],
            network=self.config.network,
            allows=[gcp.compute.FirewallAllowArgs(protocol="tcp", ports=[str(port)])],
            source_ranges=["0.0.0.0/0"],
            target_tags=self.network_tags(),
        )
        pulumi.log.info(f"Created resource: {pulumi_name} (compute.Firewall)")
        return firewall

    def build_instance(self) -> gcp.compute.Instance:
        spec = self.instance_spec()
        args = instance_args(spec, self.variables["project_id"])
        pulumi_name = self.generate_resource_name("vm")
        pulumi.log.info(
            f"Instance '{spec.name}': {spec.machine_type} in {spec.zone}, "
            f"{spec.confidential.confidential_instance_type}, image {self.reference}"
        )
        instance = gcp.compute.Instance(pulumi_name, **args)
        pulumi.log.info(f"Created resource: {pulumi_name} (compute.Instance)")
        return instance

    def build(self):
        if self.config.firewall:
            self.resources["firewall"] = self.build_firewall()
        else:
            pulumi.log.warn(f"Firewall disabled; port {self.variables['port']} is not opened.")
        self.resources["instance"] = self.build_instance()
