import json

from consul_node.agent_config import CONFIG_FILE_NAME, build_agent_config, json_number, render_agent_config
from consul_node.directives import DiscoveryDirective, QuorumDirective, RoleSpec
from consul_node.metadata import NodeIdentity


IDENTITY = NodeIdentity(ip_address="10.0.0.5", instance_name="node-1", zone="us-west1-a", project_id="proj-9")
SERVER = RoleSpec(is_server=True, is_client=False)
CLIENT = RoleSpec(is_server=False, is_client=True)
NO_DISCOVERY = DiscoveryDirective(enabled=False)


def test_server_without_tag_has_quorum_and_no_retry_join():
    config = build_agent_config(IDENTITY, SERVER, QuorumDirective(True, "3"), NO_DISCOVERY, "3")
    assert config["bootstrap_expect"] == 3
    assert "retry_join" not in config
    assert config["server"] is True


def test_client_omits_bootstrap_expect():
    discovery = DiscoveryDirective(enabled=True, project="proj-9", tag_value="consul-xyz")
    config = build_agent_config(IDENTITY, CLIENT, QuorumDirective(False), discovery, "3")
    assert "bootstrap_expect" not in config
    assert config["server"] is False
    assert config["retry_join"] == ["provider=gce project_name=proj-9 tag_value=consul-xyz"]


def test_fixed_fields():
    config = build_agent_config(IDENTITY, CLIENT, QuorumDirective(False), NO_DISCOVERY, "2")
    assert config == {
        "advertise_addr": "10.0.0.5",
        "bind_addr": "10.0.0.5",
        "client_addr": "0.0.0.0",
        "datacenter": "us-west1-a",
        "node_name": "node-1",
        "server": False,
        "ui": True,
        "raft_protocol": 2,
    }


def test_non_numeric_values_pass_through(caplog):
    assert json_number("abc", field="bootstrap_expect") == "abc"
    assert "not an integer" in caplog.text
    assert json_number(" 5 ", field="bootstrap_expect") == 5


def test_render_writes_file_and_sets_owner(tmp_path, chowned):
    config_dir = tmp_path / "config"
    path = render_agent_config(IDENTITY, SERVER, QuorumDirective(True, "5"), NO_DISCOVERY, "3", config_dir, "consul")
    assert path == config_dir / CONFIG_FILE_NAME
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["bootstrap_expect"] == 5
    assert path.read_text(encoding="utf-8").endswith("}\n")
    assert chowned == [(path, "consul")]


def test_render_overwrites_existing_file(tmp_path, chowned):
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text("stale", encoding="utf-8")
    render_agent_config(IDENTITY, CLIENT, QuorumDirective(False), NO_DISCOVERY, "3", tmp_path, "consul")
    assert json.loads(path.read_text(encoding="utf-8"))["node_name"] == "node-1"
