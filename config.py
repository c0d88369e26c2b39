"""
This module defines the data structures for the confidential VM deployment.
The dataclasses give a schema to config.yaml and to the instance record the
builder turns into Pulumi resources.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

import yaml

REQUIRED_KEYS = ["team", "service", "environment", "zone"]

CONFIDENTIAL_INSTANCE_TYPES = ("SEV", "SEV_SNP", "TDX")

DEFAULT_BOOT_IMAGE = "projects/confidential-space-images/global/images/family/confidential-space-debug"


class ConfigError(ValueError):
    pass


@dataclass
class Scheduling:
    on_host_maintenance: str = "TERMINATE"
    automatic_restart: bool = False


@dataclass
class Confidential:
    enable_confidential_compute: bool = True
    confidential_instance_type: str = "TDX"

    def __post_init__(self):
        if self.confidential_instance_type not in CONFIDENTIAL_INSTANCE_TYPES:
            raise ConfigError(
                f"Unsupported confidential instance type '{self.confidential_instance_type}'. "
                f"Expected one of {', '.join(CONFIDENTIAL_INSTANCE_TYPES)}"
            )


@dataclass
class Shielded:
    enable_secure_boot: bool = True


@dataclass
class InstanceSpec:
    name: str
    machine_type: str
    zone: str
    boot_image: str = DEFAULT_BOOT_IMAGE
    network: str = "default"
    scheduling: Scheduling = field(default_factory=Scheduling)
    confidential: Confidential = field(default_factory=Confidential)
    shielded: Shielded = field(default_factory=Shielded)
    metadata: Dict[str, Any] = field(default_factory=dict)
    network_tags: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    service_account_scopes: List[str] = field(default_factory=lambda: ["cloud-platform"])


@dataclass
class Config:
    team: str
    service: str
    environment: str
    zone: str
    labels: Optional[Dict[str, str]] = None
    network: str = "default"
    firewall: bool = True
    boot_image: str = DEFAULT_BOOT_IMAGE
    metadata: Dict[str, Any] = field(default_factory=dict)
    network_tags: List[str] = field(default_factory=list)

    @property
    def region(self) -> str:
        return self.zone.rsplit("-", 1)[0]


def load_config(file_path: str) -> Config:
    """Load and validate YAML configuration from the given file path."""
    with open(file_path, "r") as file:
        try:
            config_data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {file_path}: {e}") from e

    if not isinstance(config_data, dict):
        raise ConfigError(f"Configuration in {file_path} must be a mapping")

    for key in REQUIRED_KEYS:
        if key not in config_data:
            raise ConfigError(f"Missing required configuration key: {key}")

    known = set(Config.__dataclass_fields__)
    unknown = set(config_data) - known
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    return Config(**config_data)
