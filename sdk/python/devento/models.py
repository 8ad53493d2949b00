"""Devento SDK Data Models"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, List, Any, Callable, Union

from .fields import UpdateField, build_payload


class BoxStatus(str, Enum):
    QUEUED = "queued"
    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"
    TERMINATED = "terminated"


class CommandStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (CommandStatus.DONE, CommandStatus.FAILED, CommandStatus.ERROR)


class SnapshotStatus(str, Enum):
    CREATING = "creating"
    READY = "ready"
    RESTORING = "restoring"
    DELETED = "deleted"
    ERROR = "error"


class DomainKind(str, Enum):
    MANAGED = "managed"
    CUSTOM = "custom"


class DomainStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


def _coerce(enum_cls, value: Any, default=None):
    """Map a wire string onto an enum member, keeping unknown values as-is"""
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        return value


@dataclass
class Box:
    """Represents a remote sandbox"""
    id: str
    status: Union[BoxStatus, str] = BoxStatus.QUEUED
    metadata: Dict[str, str] = field(default_factory=dict)
    hostname: str = ""
    details: str = ""
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    terminated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Box":
        """Create Box from API response"""
        return cls(
            id=data.get("id", ""),
            status=_coerce(BoxStatus, data.get("status"), BoxStatus.QUEUED),
            metadata=data.get("metadata") or {},
            hostname=data.get("hostname") or "",
            details=data.get("details") or "",
            created_at=_parse_datetime(data.get("created_at")),
            started_at=_parse_datetime(data.get("started_at")),
            terminated_at=_parse_datetime(data.get("terminated_at")),
        )


@dataclass
class BoxConfig:
    """Resources requested for a new box"""
    cpu: Optional[int] = None
    mib_ram: Optional[int] = None
    timeout: Optional[int] = None  # seconds
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.cpu:
            data["cpu"] = self.cpu
        if self.mib_ram:
            data["mib_ram"] = self.mib_ram
        if self.timeout:
            data["timeout"] = self.timeout
        if self.metadata:
            data["metadata"] = self.metadata
        return data


@dataclass
class Command:
    """Server-side state of one submitted command"""
    id: str
    box_id: str
    cmd: str
    status: Union[CommandStatus, str]
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Command":
        """Create Command from API response"""
        return cls(
            id=data.get("id", ""),
            box_id=data.get("box_id", ""),
            cmd=data.get("cmd", ""),
            status=_coerce(CommandStatus, data.get("status"), CommandStatus.QUEUED),
            stdout=data.get("stdout") or "",
            stderr=data.get("stderr") or "",
            exit_code=data.get("exit_code"),
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.status, CommandStatus) and self.status.is_terminal


@dataclass(frozen=True)
class CommandResult:
    """Final state of a command, as returned by ``BoxHandle.run``.

    ``exit_code`` stays ``None`` when the service never reported one, so a
    missing code is not mistaken for success. ``complete`` is False only when
    a live stream closed before any terminal event arrived; the output is
    whatever had been received up to that point.
    """
    id: str
    box_id: str
    cmd: str
    status: Union[CommandStatus, str]
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    complete: bool = True

    @classmethod
    def from_command(cls, command: Command) -> "CommandResult":
        return cls(
            id=command.id,
            box_id=command.box_id,
            cmd=command.cmd,
            status=command.status,
            stdout=command.stdout,
            stderr=command.stderr,
            exit_code=command.exit_code,
        )

    @property
    def success(self) -> bool:
        """Check if the command finished cleanly"""
        return self.status == CommandStatus.DONE and self.exit_code == 0


@dataclass
class CommandOptions:
    """Per-call settings for ``BoxHandle.run``.

    ``stream`` left as None picks streaming mode whenever an output callback
    is given, and polling mode otherwise.
    """
    timeout: float = 300.0  # seconds
    poll_interval: float = 1.0  # seconds, polling mode only
    on_stdout: Optional[Callable[[str], None]] = None
    on_stderr: Optional[Callable[[str], None]] = None
    stream: Optional[bool] = None

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout * 1000)

    @property
    def use_streaming(self) -> bool:
        if self.stream is not None:
            return self.stream
        return self.on_stdout is not None or self.on_stderr is not None


@dataclass
class Snapshot:
    """Point-in-time capture of a box's disk"""
    id: str
    box_id: str
    status: Union[SnapshotStatus, str]
    snapshot_type: str = "disk"
    label: Optional[str] = None
    size_bytes: Optional[int] = None
    checksum_sha256: Optional[str] = None
    created_at: Optional[datetime] = None
    orchestrator_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Snapshot":
        """Create Snapshot from API response"""
        return cls(
            id=data.get("id", ""),
            box_id=data.get("box_id", ""),
            status=_coerce(SnapshotStatus, data.get("status"), SnapshotStatus.CREATING),
            snapshot_type=data.get("snapshot_type", "disk"),
            label=data.get("label"),
            size_bytes=data.get("size_bytes"),
            checksum_sha256=data.get("checksum_sha256"),
            created_at=_parse_datetime(data.get("created_at")),
            orchestrator_id=data.get("orchestrator_id", ""),
        )


@dataclass
class ExposedPort:
    """Temporary mapping from a public proxy port to a port inside the box"""
    proxy_port: int
    target_port: int
    expires_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ExposedPort":
        return cls(
            proxy_port=data.get("proxy_port", 0),
            target_port=data.get("target_port", 0),
            expires_at=_parse_datetime(data.get("expires_at")),
        )


@dataclass
class Domain:
    """Custom or managed hostname routed to a box port"""
    id: str
    hostname: str
    kind: Union[DomainKind, str]
    status: Union[DomainStatus, str]
    slug: Optional[str] = None
    target_port: Optional[int] = None
    box_id: Optional[str] = None
    verification_payload: Dict[str, Any] = field(default_factory=dict)
    verification_errors: Dict[str, Any] = field(default_factory=dict)
    inserted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Domain":
        return cls(
            id=data.get("id", ""),
            hostname=data.get("hostname", ""),
            kind=_coerce(DomainKind, data.get("kind"), DomainKind.MANAGED),
            status=_coerce(DomainStatus, data.get("status"), DomainStatus.PENDING),
            slug=data.get("slug"),
            target_port=data.get("target_port"),
            box_id=data.get("box_id"),
            verification_payload=data.get("verification_payload") or {},
            verification_errors=data.get("verification_errors") or {},
            inserted_at=_parse_datetime(data.get("inserted_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


@dataclass
class DomainMeta:
    managed_suffix: str = ""
    cname_target: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "DomainMeta":
        return cls(
            managed_suffix=data.get("managed_suffix", ""),
            cname_target=data.get("cname_target", ""),
        )


@dataclass
class DomainResponse:
    data: Domain
    meta: DomainMeta

    @classmethod
    def from_dict(cls, data: dict) -> "DomainResponse":
        return cls(
            data=Domain.from_dict(data.get("data") or {}),
            meta=DomainMeta.from_dict(data.get("meta") or {}),
        )


@dataclass
class DomainsResponse:
    data: List[Domain]
    meta: DomainMeta

    @classmethod
    def from_dict(cls, data: dict) -> "DomainsResponse":
        return cls(
            data=[Domain.from_dict(d) for d in data.get("data") or []],
            meta=DomainMeta.from_dict(data.get("meta") or {}),
        )


@dataclass
class CreateDomainRequest:
    """Payload for creating a domain; None fields are left out"""
    kind: Union[DomainKind, str]
    hostname: Optional[str] = None
    slug: Optional[str] = None
    target_port: Optional[int] = None
    box_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        kind = self.kind.value if isinstance(self.kind, Enum) else self.kind
        data: Dict[str, Any] = {"kind": kind}
        for name in ("hostname", "slug", "target_port", "box_id"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass
class UpdateDomainRequest:
    """Payload for PATCHing a domain.

    Every field defaults to unset. Use ``UpdateField.null()`` to clear a
    value on the server, for example to detach a domain from its box.
    """
    status: UpdateField = field(default_factory=UpdateField.unset)
    target_port: UpdateField = field(default_factory=UpdateField.unset)
    box_id: UpdateField = field(default_factory=UpdateField.unset)
    slug: UpdateField = field(default_factory=UpdateField.unset)

    def to_payload(self) -> Dict[str, Any]:
        return build_payload(
            {
                "status": self.status,
                "target_port": self.target_port,
                "box_id": self.box_id,
                "slug": self.slug,
            }
        )


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse datetime from various formats"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            if value.endswith("Z"):
                value = value[:-1] + "+00:00"
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return None
