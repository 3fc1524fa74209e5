import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

# Checked in this order; the first match wins.
COMPOSE_FILE_NAMES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")
DOCKERFILE_NAME = "Dockerfile"

# Regex to match ${VAR:-default} or ${VAR}
INTERPOLATION_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


def interpolate_value(value: str) -> str:
    """
    Interpolates environment variables in a string.
    Supports ${VAR} and ${VAR:-default}.
    """
    if not isinstance(value, str):
        return value

    def replace_match(match):
        var_name = match.group(1)
        default_value = match.group(2)
        env_val = os.getenv(var_name)
        if env_val is not None:
            return env_val
        return default_value if default_value is not None else ""

    return INTERPOLATION_PATTERN.sub(replace_match, value)


def interpolate_dict(data: Any) -> Any:
    """Recursively interpolates strings in a dictionary or list."""
    if isinstance(data, dict):
        return {k: interpolate_dict(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [interpolate_dict(v) for v in data]
    elif isinstance(data, str):
        return interpolate_value(data)
    else:
        return data


def find_compose_file(cwd: Path) -> Optional[Path]:
    for name in COMPOSE_FILE_NAMES:
        candidate = cwd / name
        if candidate.is_file():
            return candidate
    return None


def load_docker_compose_config(compose_path: Path) -> Dict[str, Any]:
    """
    Parses a compose file using PyYAML and interpolates variables.
    Returns the parsed configuration dictionary.
    """
    if not compose_path.exists():
        raise FileNotFoundError(f"Compose file not found: {compose_path}")

    try:
        with open(compose_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except UnicodeDecodeError as e:
        raise RuntimeError(f"Failed to read {compose_path.name}: {e}") from e
    except yaml.YAMLError as e:
        raise RuntimeError(f"Failed to parse {compose_path.name}: {e}") from e

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise RuntimeError(f"{compose_path.name} is not a mapping")
    return interpolate_dict(raw_config)


def get_ports(service_config: Dict[str, Any]) -> list:
    """Get the exposed ports for a service."""
    # PyYAML parses "80:80" as string usually, but "80" might be int.
    ports = service_config.get("ports", [])
    # Anything but a list (e.g. `ports: 8080`) is rejected by docker-compose itself.
    if not isinstance(ports, list):
        return []
    return ports


def get_build_context(service_config: Dict[str, Any]) -> Optional[str]:
    """Get the build context path."""
    build = service_config.get("build")
    if not build:
        return None
    if isinstance(build, str):
        return build
    if isinstance(build, dict):
        return build.get("context")
    return None


def parse_published_port(entry: Any) -> Optional[int]:
    """Host port of a Compose `ports` entry, or None if the entry publishes no fixed host port.

    Short syntax: "8080", "8080:80", "127.0.0.1:8080:80", "8080:80/tcp".
    Long syntax: {target: 80, published: 8080}.
    """
    if isinstance(entry, dict):
        published = entry.get("published")
        if published is None:
            return None
        try:
            return int(str(published).split("-", 1)[0])
        except ValueError:
            return None

    text = str(entry).split("/", 1)[0].strip()
    if not text:
        return None
    parts = text.rsplit(":", 2)
    if len(parts) == 1:
        # Container port only; the host port is picked by docker.
        return None
    host_part = parts[-2]
    try:
        return int(host_part.split("-", 1)[0])
    except ValueError:
        return None


def published_host_ports(compose_config: Dict[str, Any]) -> set[int]:
    """All fixed host ports published by any service."""
    out: set[int] = set()
    services = compose_config.get("services") or {}
    if not isinstance(services, dict):
        return out
    for service_config in services.values():
        if not isinstance(service_config, dict):
            continue
        for entry in get_ports(service_config):
            port = parse_published_port(entry)
            if port is not None:
                out.add(port)
    return out


def build_services(compose_config: Dict[str, Any]) -> list[str]:
    """Names of services built from a local context rather than pulled."""
    services = compose_config.get("services") or {}
    if not isinstance(services, dict):
        return []
    return [
        str(name)
        for name, service_config in services.items()
        if isinstance(service_config, dict) and get_build_context(service_config) is not None
    ]
