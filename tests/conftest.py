import pytest

from consul_node import agent_config, cli
from consul_node.errors import MetadataLookupError
from consul_node.metadata import MetadataClient


class FakeMetadata(MetadataClient):
    def __init__(self, values: dict[str, str] | None = None) -> None:
        super().__init__(base_url="http://metadata.invalid/computeMetadata/v1")
        self.values = dict(values or {})
        self.calls: list[str] = []

    def get(self, path: str) -> str:
        self.calls.append(path)
        if path not in self.values:
            raise MetadataLookupError(f"GET {path} -> 404 Not Found")
        return self.values[path]


class FakeSupervisor:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.applied = 0
        self.fail_with = fail_with

    def apply(self) -> None:
        self.applied += 1
        if self.fail_with is not None:
            raise self.fail_with


def gce_values(
    *,
    ip: str = "10.0.0.5",
    name: str = "node-1",
    zone: str = "projects/121238320500/zones/us-west1-a",
    project: str = "proj-9",
    cluster_size: str | None = "5",
) -> dict[str, str]:
    values = {
        "instance/network-interfaces/0/ip": ip,
        "instance/name": name,
        "instance/zone": zone,
        "project/project-id": project,
    }
    if cluster_size is not None:
        values["instance/attributes/cluster-size"] = cluster_size
    return values


@pytest.fixture
def metadata():
    return FakeMetadata(gce_values())


@pytest.fixture
def supervisor():
    return FakeSupervisor()


@pytest.fixture
def chowned(monkeypatch):
    calls = []
    monkeypatch.setattr(agent_config, "set_owner", lambda path, user: calls.append((path, user)))
    return calls


@pytest.fixture
def node_dirs(tmp_path):
    dirs = {name: tmp_path / "consul" / name for name in ("bin", "config", "data", "log")}
    for d in dirs.values():
        d.mkdir(parents=True)
    return dirs


@pytest.fixture
def no_prereq_check(monkeypatch):
    monkeypatch.setattr(cli, "check_prerequisites", lambda: None)
