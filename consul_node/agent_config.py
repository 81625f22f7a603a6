import json
import logging
import re
import shutil
from pathlib import Path

from consul_node.directives import DiscoveryDirective, QuorumDirective, RoleSpec
from consul_node.errors import OwnershipError
from consul_node.metadata import NodeIdentity


log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "default.json"
CLIENT_ADDR = "0.0.0.0"

_INT_RE = re.compile(r"^-?[0-9]+$")


def json_number(value: str, *, field: str) -> int | str:
    text = str(value).strip()
    if _INT_RE.match(text):
        return int(text)
    log.warning("%s value %r is not an integer; writing it as-is", field, value)
    return value


def build_agent_config(
    identity: NodeIdentity,
    role: RoleSpec,
    quorum: QuorumDirective,
    discovery: DiscoveryDirective,
    raft_protocol: str,
) -> dict:
    config: dict = {
        "advertise_addr": identity.ip_address,
        "bind_addr": identity.ip_address,
    }
    if quorum.enabled:
        config["bootstrap_expect"] = json_number(quorum.expected_size, field="bootstrap_expect")
    config["client_addr"] = CLIENT_ADDR
    config["datacenter"] = identity.zone
    config["node_name"] = identity.instance_name
    if discovery.enabled:
        config["retry_join"] = [discovery.retry_join()]
    config["server"] = role.is_server
    config["ui"] = True
    config["raft_protocol"] = json_number(raft_protocol, field="raft_protocol")
    return config


def write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def set_owner(path: Path, user: str) -> None:
    try:
        shutil.chown(path, user=user, group=user)
    except LookupError as e:
        raise OwnershipError(f"Cannot chown {path} to {user}:{user}: {e}") from e


def render_agent_config(
    identity: NodeIdentity,
    role: RoleSpec,
    quorum: QuorumDirective,
    discovery: DiscoveryDirective,
    raft_protocol: str,
    config_dir: Path,
    user: str,
) -> Path:
    config = build_agent_config(identity, role, quorum, discovery, raft_protocol)
    path = Path(config_dir) / CONFIG_FILE_NAME
    log.info("Writing %s config to %s", role.name, path)
    write_json(path, config)
    log.info("Changing ownership of %s to %s", path, user)
    set_owner(path, user)
    return path
