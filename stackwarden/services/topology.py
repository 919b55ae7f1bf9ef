"""Service Topology — which compose services matter and how to reach them.

Loaded once at startup from an optional YAML file, with environment
variables taking precedence:

    compose_file: /docker-compose/docker-compose.yml
    working_dir: /docker-compose
    critical_services: [debridav, rclone]
    restart_only: [debridav]
    fleet_action: stop
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

import config

log = logging.getLogger(__name__)

FLEET_ACTIONS = ("stop", "restart")


@dataclass(frozen=True)
class ServiceTopology:
    """Immutable description of the managed compose stack."""

    compose_file: str
    working_dir: str = ""
    critical_services: tuple = ()
    restart_only: tuple = ()
    fleet_action: str = ""

    def __post_init__(self):
        # Normalise lists from YAML / env into tuples.
        object.__setattr__(self, "critical_services", tuple(self.critical_services or ()))
        object.__setattr__(self, "restart_only", tuple(self.restart_only or ()))
        if not self.working_dir:
            object.__setattr__(
                self, "working_dir", str(Path(self.compose_file).parent)
            )
        if not self.fleet_action:
            action = "stop" if self.critical_services else "restart"
            object.__setattr__(self, "fleet_action", action)
        if self.fleet_action not in FLEET_ACTIONS:
            raise ValueError(
                f"fleet_action must be one of {FLEET_ACTIONS}, got {self.fleet_action!r}"
            )

    def compose_command(self, *args):
        """Build a ``docker compose -f <file> ...`` argument vector."""
        return ["docker", "compose", "-f", self.compose_file, *args]


def load_topology(path=None):
    """Build the topology from YAML (if any) overlaid with config values."""
    data = {}
    path = path or config.TOPOLOGY_PATH
    if path:
        try:
            with open(os.path.expanduser(path), "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
            log.info("Topology loaded from %s.", path)
        except FileNotFoundError:
            log.error("Topology file not found at %s.", path)
        except yaml.YAMLError as exc:
            log.error("Invalid YAML in topology file: %s", exc)

    topology = ServiceTopology(
        compose_file=data.get("compose_file") or config.COMPOSE_FILE,
        working_dir=config.WORKING_DIR or data.get("working_dir", ""),
        critical_services=config.CRITICAL_SERVICES or data.get("critical_services", []),
        restart_only=config.RESTART_ONLY or data.get("restart_only", []),
        fleet_action=data.get("fleet_action", ""),
    )
    log.info(
        "Topology: compose=%s, %d critical, restart-only=%s.",
        topology.compose_file,
        len(topology.critical_services),
        list(topology.restart_only) or "none",
    )
    return topology
