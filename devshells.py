"""
Named development environment profiles and their composition.

A profile lists packages and an optional shell hook, and may include other
profiles through ``inputs_from``. Resolving a profile flattens the inclusion
graph depth first, included profiles before the profile's own packages, and
keeps the first occurrence of each package.
"""

import argparse
import platform
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml
from rich.console import Console
from rich.markup import escape

console = Console()

DEFAULT_PROFILES_FILE = "devshells.yaml"


class ProfileError(ValueError):
    pass


@dataclass
class EnvironmentProfile:
    name: str
    packages: List[str] = field(default_factory=list)
    linux_packages: List[str] = field(default_factory=list)
    shell_hook: str = ""
    inputs_from: List[str] = field(default_factory=list)
    description: str = ""


@dataclass
class ResolvedEnvironment:
    name: str
    profiles: List[str]
    packages: List[str]
    shell_hook: str


_LIST_FIELDS = ("packages", "linux_packages", "inputs_from")
_TEXT_FIELDS = ("shell_hook", "description")


def load_profiles(file_path: str = DEFAULT_PROFILES_FILE) -> Dict[str, EnvironmentProfile]:
    with open(file_path, "r") as file:
        try:
            data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ProfileError(f"Invalid YAML in {file_path}: {e}") from e
    return parse_profiles(data)


def _profile_fields(name: str, body: dict) -> dict:
    fields = {}
    for key in _LIST_FIELDS:
        value = body.get(key) or []
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ProfileError(f"Profile '{name}' field '{key}' must be a list of strings")
        fields[key] = value
    for key in _TEXT_FIELDS:
        value = body.get(key)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ProfileError(f"Profile '{name}' field '{key}' must be a string")
        fields[key] = value
    return fields


def parse_profiles(data: dict) -> Dict[str, EnvironmentProfile]:
    if not isinstance(data, dict):
        raise ProfileError("Profiles must be a mapping of name to profile")

    profiles: Dict[str, EnvironmentProfile] = {}
    for name, body in data.items():
        body = body or {}
        if not isinstance(body, dict):
            raise ProfileError(f"Profile '{name}' must be a mapping")
        # The profile name is the mapping key, never a field.
        unknown = set(body) - set(_LIST_FIELDS + _TEXT_FIELDS)
        if unknown:
            raise ProfileError(f"Profile '{name}' has unknown keys: {', '.join(sorted(unknown))}")
        profiles[name] = EnvironmentProfile(name=name, **_profile_fields(name, body))

    for profile in profiles.values():
        for included in profile.inputs_from:
            if included not in profiles:
                raise ProfileError(f"Profile '{profile.name}' includes unknown profile '{included}'")
    return profiles


def resolve(profiles: Dict[str, EnvironmentProfile], name: str, system: Optional[str] = None) -> ResolvedEnvironment:
    """Flatten ``name`` and everything it includes for the given platform."""
    if name not in profiles:
        raise ProfileError(f"Unknown profile '{name}'")
    is_linux = (system or platform.system()).lower() == "linux"

    order: List[str] = []
    visiting: List[str] = []

    def visit(current: str):
        if current in visiting:
            cycle = " -> ".join(visiting[visiting.index(current):] + [current])
            raise ProfileError(f"Profile inclusion cycle: {cycle}")
        if current in order:
            return
        visiting.append(current)
        for included in profiles[current].inputs_from:
            visit(included)
        visiting.pop()
        order.append(current)

    visit(name)

    packages: List[str] = []
    hooks: List[str] = []
    for profile_name in order:
        profile = profiles[profile_name]
        candidates = profile.packages + (profile.linux_packages if is_linux else [])
        for package in candidates:
            if package not in packages:
                packages.append(package)
        if profile.shell_hook.strip():
            hooks.append(profile.shell_hook.strip())

    return ResolvedEnvironment(name=name, profiles=order, packages=packages, shell_hook="\n".join(hooks))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Show the packages of a development environment profile.")
    parser.add_argument("profile", nargs="?", default="default")
    parser.add_argument("--file", default=DEFAULT_PROFILES_FILE)
    parser.add_argument("--platform", dest="system", default=None, help="Target platform, e.g. linux or darwin")
    parser.add_argument("--hook", action="store_true", help="Also print the combined shell hook")
    args = parser.parse_args(argv)

    try:
        environment = resolve(load_profiles(args.file), args.profile, args.system)
    except (OSError, ProfileError) as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]")
        return 1

    console.print(f"[bold]{environment.name}[/bold] ({' -> '.join(environment.profiles)})")
    for package in environment.packages:
        console.print(f"  {package}")
    if args.hook and environment.shell_hook:
        console.print(environment.shell_hook, markup=False, highlight=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
