import logging
from dataclasses import dataclass
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from consul_node.errors import MetadataLookupError


log = logging.getLogger(__name__)

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}


@dataclass(frozen=True)
class NodeIdentity:
    ip_address: str
    instance_name: str
    zone: str
    project_id: str


def last_path_segment(value: str) -> str:
    # instance/zone comes back as projects/<number>/zones/<zone>
    return value.rstrip("/").rsplit("/", 1)[-1]


class MetadataClient:
    """Reads facts about this instance from the GCE metadata server.

    Every call is a fresh round trip. Nothing is cached or retried, and any
    failure surfaces as MetadataLookupError.
    """

    def __init__(self, base_url: str = METADATA_URL) -> None:
        self.base_url = base_url.rstrip("/")

    def get(self, path: str) -> str:
        url = f"{self.base_url}/{path.lstrip('/')}"
        req = Request(url, headers=METADATA_HEADERS)
        try:
            with urlopen(req) as resp:
                return resp.read().decode("utf-8", errors="replace").strip()
        except HTTPError as e:
            raise MetadataLookupError(f"GET {url} -> {e.code} {e.reason}") from e
        except URLError as e:
            raise MetadataLookupError(f"GET {url} failed: {e.reason}") from e
        except HTTPException as e:
            raise MetadataLookupError(f"GET {url} failed: {e!r}") from e

    def self_ip(self, interface_index: int = 0) -> str:
        return self.get(f"instance/network-interfaces/{interface_index}/ip")

    def self_name(self) -> str:
        return self.get("instance/name")

    def self_zone(self) -> str:
        return last_path_segment(self.get("instance/zone"))

    def project_id(self) -> str:
        return self.get("project/project-id")

    def custom_value(self, key: str) -> str:
        return self.get(f"instance/attributes/{key}")


def resolve_identity(metadata: MetadataClient) -> NodeIdentity:
    log.info("Looking up instance identity from the metadata server")
    identity = NodeIdentity(
        ip_address=metadata.self_ip(),
        instance_name=metadata.self_name(),
        zone=metadata.self_zone(),
        project_id=metadata.project_id(),
    )
    log.info(
        "Instance %s (%s) in zone %s, project %s",
        identity.instance_name,
        identity.ip_address,
        identity.zone,
        identity.project_id,
    )
    return identity
