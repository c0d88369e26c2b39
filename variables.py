"""
Input variables for the deployment.

Each variable is read once from the Pulumi stack config (``pulumi config set
<name> <value>``). Variables left unset fall back to their declared default.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

import pulumi

from image_ref import (
    DEFAULT_IMAGE,
    DEFAULT_PROJECT,
    DEFAULT_REGISTRY,
    DEFAULT_REPOSITORY,
    DEFAULT_TAG,
    ImageReference,
)


class VariableError(ValueError):
    pass


@dataclass(frozen=True)
class Variable:
    name: str
    type: type
    description: str
    default: Any


VARIABLES: List[Variable] = [
    Variable("project_id", str, "Google Cloud project id", DEFAULT_PROJECT),
    Variable("zone", str, "Zone the instance runs in", "us-central1-a"),
    Variable("instance_name", str, "Compute instance name", "attested-gemma"),
    Variable("machine_type", str, "Machine type, must support the selected TEE", "c3-standard-4"),
    Variable("confidential_instance_type", str, "Confidential computing technology (SEV, SEV_SNP or TDX)", "TDX"),
    Variable("image_digest", str, "sha256 digest of the workload image, empty to deploy by tag", ""),
    Variable("port", int, "TCP port exposed by the workload", 8080),
    Variable("registry", str, "Artifact Registry host", DEFAULT_REGISTRY),
    Variable("repository", str, "Artifact Registry repository", DEFAULT_REPOSITORY),
    Variable("image_name", str, "Workload image name", DEFAULT_IMAGE),
    Variable("image_tag", str, "Workload image tag", DEFAULT_TAG),
]

_BY_NAME = {variable.name: variable for variable in VARIABLES}


def declaration(name: str) -> Variable:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise VariableError(f"Unknown variable '{name}'") from None


def defaults() -> Dict[str, Any]:
    return {variable.name: variable.default for variable in VARIABLES}


def _read(config: Any, variable: Variable) -> Any:
    try:
        if variable.type is int:
            value = config.get_int(variable.name)
        elif variable.type is bool:
            value = config.get_bool(variable.name)
        else:
            value = config.get(variable.name)
    except pulumi.ConfigTypeError as e:
        raise VariableError(f"Variable '{variable.name}' must be of type {variable.type.__name__}: {e}") from e
    return variable.default if value is None else value


def resolve_variables(config: Any = None) -> Dict[str, Any]:
    """Read every declared variable from stack config, applying defaults."""
    if config is None:
        config = pulumi.Config()
    values = {variable.name: _read(config, variable) for variable in VARIABLES}

    port = values["port"]
    if not 0 < port < 65536:
        raise VariableError(f"Variable 'port' out of range: {port}")
    return values


def image_reference(values: Dict[str, Any]) -> ImageReference:
    """The workload image, pinned to ``image_digest`` when one is set."""
    reference = ImageReference(
        registry=values["registry"],
        project=values["project_id"],
        repository=values["repository"],
        image=values["image_name"],
        tag=values["image_tag"],
    )
    return reference.with_digest(values["image_digest"])
