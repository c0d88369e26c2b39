import pulumi

from config import load_config
from confidential_vm import ConfidentialVmBuilder
from variables import image_reference, resolve_variables


def main():
    try:
        config_data = load_config("config.yaml")
        variables = resolve_variables()
        reference = image_reference(variables)
    except (OSError, ValueError) as e:
        pulumi.log.error(f"Invalid deployment configuration: {e}")
        raise

    builder = ConfidentialVmBuilder(config_data, variables, reference)
    try:
        builder.build()
    except Exception as e:
        pulumi.log.error(f"Failed during resource build: {e}")
        raise

    instance = builder.resources["instance"]
    pulumi.export("instance_name", instance.name)
    pulumi.export("instance_id", instance.instance_id)
    pulumi.export(
        "external_ip",
        instance.network_interfaces.apply(
            lambda interfaces: interfaces[0].access_configs[0].nat_ip
            if interfaces and interfaces[0].access_configs
            else None
        ),
    )
    pulumi.export("image_reference", str(reference))
    if "firewall" in builder.resources:
        pulumi.export("firewall", builder.resources["firewall"].name)


if __name__ == "__main__":
    main()
