import logging
from dataclasses import dataclass

from consul_node.errors import UsageError
from consul_node.metadata import MetadataClient


log = logging.getLogger(__name__)

CLUSTER_SIZE_KEY = "cluster-size"
DISCOVERY_PROVIDER = "gce"


@dataclass(frozen=True)
class RoleSpec:
    is_server: bool
    is_client: bool

    def __post_init__(self) -> None:
        if self.is_server == self.is_client:
            raise UsageError("Exactly one of --server or --client must be set")

    @classmethod
    def from_flags(cls, *, server: bool, client: bool) -> "RoleSpec":
        return cls(is_server=bool(server), is_client=bool(client))

    @property
    def name(self) -> str:
        return "server" if self.is_server else "client"


@dataclass(frozen=True)
class QuorumDirective:
    enabled: bool
    expected_size: str | None = None


@dataclass(frozen=True)
class DiscoveryDirective:
    enabled: bool
    provider: str = DISCOVERY_PROVIDER
    project: str = ""
    tag_value: str = ""

    def retry_join(self) -> str:
        return f"provider={self.provider} project_name={self.project} tag_value={self.tag_value}"


def resolve_quorum(role: RoleSpec, metadata: MetadataClient, key: str = CLUSTER_SIZE_KEY) -> QuorumDirective:
    if not role.is_server:
        return QuorumDirective(enabled=False)
    expected = metadata.custom_value(key)
    log.info("Expecting %s servers (custom metadata %s)", expected, key)
    return QuorumDirective(enabled=True, expected_size=expected)


def resolve_discovery(cluster_tag_name: str | None, project_id: str) -> DiscoveryDirective:
    if not cluster_tag_name:
        log.warning(
            "--cluster-tag-name not set; retry_join is disabled. "
            "This node will not join other instances automatically."
        )
        return DiscoveryDirective(enabled=False)
    return DiscoveryDirective(enabled=True, project=project_id, tag_value=cluster_tag_name)
