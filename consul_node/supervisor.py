import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from consul_node.errors import PrerequisiteMissing, SupervisorControlError


log = logging.getLogger(__name__)

SUPERVISOR_UNIT_PATH = Path("/etc/supervisor/conf.d/run-consul.conf")
PROGRAM_NAME = "consul"
REQUIRED_EXECUTABLES = ("supervisorctl", "gcloud", "curl", "jq")


@dataclass(frozen=True)
class SupervisionUnit:
    program_name: str
    command: str
    stdout_logfile: str
    stderr_logfile: str
    user: str
    numprocs: int = 1
    autostart: bool = True
    autorestart: bool = True
    stopsignal: str = "INT"
    environment: tuple[tuple[str, str], ...] = ()

    def to_ini(self) -> str:
        items = [
            ("command", self.command),
            ("stdout_logfile", self.stdout_logfile),
            ("stderr_logfile", self.stderr_logfile),
            ("numprocs", str(self.numprocs)),
            ("autostart", str(self.autostart).lower()),
            ("autorestart", str(self.autorestart).lower()),
            ("stopsignal", self.stopsignal),
            ("user", self.user),
        ]
        if self.environment:
            items.append(("environment", ",".join(f'{k}="{quote_env(v)}"' for k, v in self.environment)))
        lines = [f"[program:{self.program_name}]"]
        # supervisord expands %(name)s in every program value
        lines += [f"{k}={v.replace('%', '%%')}" for k, v in items]
        return "\n".join(lines) + "\n"


def quote_env(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_unit(
    *,
    config_dir: Path,
    data_dir: Path,
    log_dir: Path,
    bin_dir: Path,
    user: str,
    environment: tuple[tuple[str, str], ...] = (),
) -> SupervisionUnit:
    return SupervisionUnit(
        program_name=PROGRAM_NAME,
        command=f"{Path(bin_dir) / 'consul'} agent -config-dir {config_dir} -data-dir {data_dir}",
        stdout_logfile=str(Path(log_dir) / "consul-stdout.log"),
        stderr_logfile=str(Path(log_dir) / "consul-error.log"),
        user=user,
        environment=tuple(environment),
    )


def render_unit(
    unit_path: Path,
    config_dir: Path,
    data_dir: Path,
    log_dir: Path,
    bin_dir: Path,
    user: str,
    environment: tuple[tuple[str, str], ...] = (),
) -> Path:
    unit = build_unit(
        config_dir=config_dir,
        data_dir=data_dir,
        log_dir=log_dir,
        bin_dir=bin_dir,
        user=user,
        environment=environment,
    )
    unit_path = Path(unit_path)
    log.info("Creating supervisor config file to run Consul in %s", unit_path)
    unit_path.parent.mkdir(parents=True, exist_ok=True)
    unit_path.write_text(unit.to_ini(), encoding="utf-8")
    return unit_path


def check_prerequisites(names=REQUIRED_EXECUTABLES) -> None:
    for name in names:
        if shutil.which(name) is None:
            raise PrerequisiteMissing(f"The binary '{name}' is required by this script but is not installed or in the system's PATH.")


class Supervisorctl:
    """Reconciles supervisord with the unit files on disk.

    ``reread`` picks up changed definitions and ``update`` starts new programs
    and restarts changed ones, so repeated calls with an unchanged unit are
    no-ops.
    """

    def __init__(self, executable: str = "supervisorctl") -> None:
        self.executable = executable

    def run(self, *args: str) -> str:
        cmd = [self.executable, *args]
        try:
            proc = subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            raise SupervisorControlError(f"{self.executable} not found in PATH") from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip()
            raise SupervisorControlError(f"{' '.join(cmd)} exited {e.returncode}: {detail}") from e
        return (proc.stdout or "").strip()

    def apply(self) -> None:
        log.info("Reloading Supervisor config and starting Consul")
        self.run("reread")
        self.run("update")
