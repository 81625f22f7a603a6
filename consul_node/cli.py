import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from consul_node.agent_config import render_agent_config
from consul_node.directives import RoleSpec, resolve_discovery, resolve_quorum
from consul_node.errors import NodeBootstrapError, UsageError
from consul_node.metadata import MetadataClient, resolve_identity
from consul_node.supervisor import SUPERVISOR_UNIT_PATH, Supervisorctl, check_prerequisites, render_unit


log = logging.getLogger(__name__)

SCRIPT_NAME = "run-node"
LOG_FORMAT = f"%(asctime)s [%(levelname)s] [{SCRIPT_NAME}] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
DEFAULT_RAFT_PROTOCOL = "3"


@dataclass(frozen=True)
class NodeOptions:
    role: RoleSpec
    cluster_tag_name: str | None
    raft_protocol: str
    config_dir: Path
    data_dir: Path
    log_dir: Path
    bin_dir: Path
    user: str
    skip_consul_config: bool = False
    environment: tuple[tuple[str, str], ...] = ()


class NodeArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise UsageError(message)


def non_empty(value: str) -> str:
    if not value.strip():
        raise argparse.ArgumentTypeError("value must not be empty")
    return value


def env_pair(value: str) -> tuple[str, str]:
    key, sep, val = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    return key.strip(), val


def configure_logging(level: int = logging.INFO) -> None:
    root = logging.getLogger("consul_node")
    for h in list(root.handlers):
        root.removeHandler(h)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    root.addHandler(handler)
    root.setLevel(level)


def build_parser() -> NodeArgumentParser:
    ap = NodeArgumentParser(
        prog=SCRIPT_NAME,
        description=(
            "Configure and start a Consul agent on a Google Compute Engine instance. "
            "Writes the agent config, a supervisord program for the agent, and reloads supervisord."
        ),
        allow_abbrev=False,
    )
    ap.add_argument("--server", action="store_true", help="Run Consul in server mode. Exactly one of --server or --client is required.")
    ap.add_argument("--client", action="store_true", help="Run Consul in client mode. Exactly one of --server or --client is required.")
    ap.add_argument(
        "--cluster-tag-name",
        type=non_empty,
        help="Instances carrying this network tag are joined automatically via retry_join. Optional.",
    )
    ap.add_argument(
        "--raft-protocol",
        type=non_empty,
        default=DEFAULT_RAFT_PROTOCOL,
        help=f"Raft protocol version (default: {DEFAULT_RAFT_PROTOCOL}).",
    )
    ap.add_argument("--config-dir", type=non_empty, help="Consul config directory (default: ../config next to this script).")
    ap.add_argument("--data-dir", type=non_empty, help="Consul data directory (default: ../data next to this script).")
    ap.add_argument("--log-dir", type=non_empty, help="Consul log directory (default: ../log next to this script).")
    ap.add_argument("--bin-dir", type=non_empty, help="Directory holding the consul binary (default: this script's directory).")
    ap.add_argument("--user", type=non_empty, help="User to run Consul as (default: owner of --config-dir).")
    ap.add_argument(
        "--environment",
        type=env_pair,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable for the Consul process. May be repeated.",
    )
    ap.add_argument(
        "--skip-consul-config",
        action="store_true",
        help="Leave the existing Consul config untouched; only (re)write the supervisor program and reload it.",
    )
    return ap


def default_script_dir() -> Path:
    return Path(sys.argv[0]).resolve().parent


def path_owner(path: Path) -> str:
    try:
        return Path(path).owner()
    except (OSError, KeyError) as e:
        raise UsageError(f"Cannot determine the owner of {path}; pass --user explicitly ({e})") from e


def parse_options(argv: list[str] | None = None, *, script_dir: Path | None = None) -> NodeOptions:
    args = build_parser().parse_args(argv)
    role = RoleSpec.from_flags(server=args.server, client=args.client)

    script_dir = Path(script_dir) if script_dir else default_script_dir()
    config_dir = Path(args.config_dir) if args.config_dir else script_dir.parent / "config"
    data_dir = Path(args.data_dir) if args.data_dir else script_dir.parent / "data"
    log_dir = Path(args.log_dir) if args.log_dir else script_dir.parent / "log"
    bin_dir = Path(args.bin_dir) if args.bin_dir else script_dir
    user = args.user or path_owner(config_dir)

    return NodeOptions(
        role=role,
        cluster_tag_name=args.cluster_tag_name,
        raft_protocol=args.raft_protocol,
        config_dir=config_dir,
        data_dir=data_dir,
        log_dir=log_dir,
        bin_dir=bin_dir,
        user=user,
        skip_consul_config=args.skip_consul_config,
        environment=tuple(args.environment),
    )


def run_node(
    options: NodeOptions,
    metadata: MetadataClient,
    supervisor: Supervisorctl,
    unit_path: Path = SUPERVISOR_UNIT_PATH,
) -> None:
    if options.skip_consul_config:
        log.info("The --skip-consul-config flag is set, so will not generate a default Consul config file.")
    else:
        identity = resolve_identity(metadata)
        quorum = resolve_quorum(options.role, metadata)
        discovery = resolve_discovery(options.cluster_tag_name, identity.project_id)
        render_agent_config(
            identity,
            options.role,
            quorum,
            discovery,
            options.raft_protocol,
            options.config_dir,
            options.user,
        )

    render_unit(
        unit_path,
        options.config_dir,
        options.data_dir,
        options.log_dir,
        options.bin_dir,
        options.user,
        options.environment,
    )
    supervisor.apply()


def main(
    argv: list[str] | None = None,
    *,
    metadata: MetadataClient | None = None,
    supervisor: Supervisorctl | None = None,
    unit_path: Path = SUPERVISOR_UNIT_PATH,
    script_dir: Path | None = None,
) -> int:
    configure_logging()
    try:
        options = parse_options(argv, script_dir=script_dir)
        check_prerequisites()
        run_node(options, metadata or MetadataClient(), supervisor or Supervisorctl(), unit_path)
    except UsageError as e:
        log.error("%s", e)
        build_parser().print_help(sys.stderr)
        return 1
    except NodeBootstrapError as e:
        log.error("%s", e)
        return 1
    except OSError as e:
        log.error("File I/O error: %s", e)
        return 1
    log.info("Consul %s configured and handed to supervisor", options.role.name)
    return 0
