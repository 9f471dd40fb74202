"""
Driver config model — what the conformance suite is told about the driver.

A ``DriverConfig`` is resolved once per test run from the platform and
deployment strategy, then rendered into test-config.yaml. It never
changes after construction.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Capability tags understood by the e2e storage testsuite TestDriver.
KNOWN_CAPABILITIES: tuple[str, ...] = (
    "persistence",
    "block",
    "fsGroup",
    "exec",
    "snapshotDataSource",
    "pvcDataSource",
    "multipods",
    "RWX",
    "controllerExpansion",
    "nodeExpansion",
    "volumeLimits",
    "singleNodeVolume",
    "topology",
    "dataSource",
)

SNAPSHOT_CAPABILITY = "snapshotDataSource"


class DriverConfig(BaseModel):
    """Resolved test-driver configuration.

    Attributes:
        storage_class_file:     Absolute path to the storage-class descriptor.
        storage_class:          Storage-class file name without its extension.
        snapshot_class_file:    Absolute path to the snapshot-class descriptor,
                                or "" when snapshots are not under test.
        capabilities:           Capability tags, in the order they were added.
        supported_fs_types:     Filesystems the driver can format.
        minimum_volume_size:    Smallest volume the tests may request.
        num_allowed_topologies: Zones a provisioned volume may span.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    storage_class_file: str
    storage_class: str
    snapshot_class_file: str = ""
    capabilities: list[str] = Field(default_factory=list)
    supported_fs_types: list[str]
    minimum_volume_size: str = "5Gi"
    num_allowed_topologies: int = Field(default=1, ge=1)

    @field_validator("capabilities")
    @classmethod
    def _known_unique_capabilities(cls, v: list[str]) -> list[str]:
        unknown = [c for c in v if c not in KNOWN_CAPABILITIES]
        if unknown:
            raise ValueError(f"unknown capabilities: {', '.join(unknown)}")
        dupes = sorted({c for c in v if v.count(c) > 1})
        if dupes:
            raise ValueError(f"duplicate capabilities: {', '.join(dupes)}")
        return v

    @field_validator("supported_fs_types")
    @classmethod
    def _fs_types_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("supported_fs_types cannot be empty")
        return v

    @model_validator(mode="after")
    def _snapshot_consistent(self) -> DriverConfig:
        has_cap = SNAPSHOT_CAPABILITY in self.capabilities
        if has_cap != bool(self.snapshot_class_file):
            raise ValueError(
                f"{SNAPSHOT_CAPABILITY} must be advertised exactly when "
                "a snapshot class file is set"
            )
        return self

    @property
    def has_snapshot_class(self) -> bool:
        return bool(self.snapshot_class_file)

    def placeholders(self) -> dict[str, str | int]:
        """Scalar fields keyed by their template placeholder."""
        return {
            "__STORAGE_CLASS_FILE__": self.storage_class_file,
            "__STORAGE_CLASS__": self.storage_class,
            "__SNAPSHOT_CLASS_FILE__": self.snapshot_class_file,
            "__MINIMUM_VOLUME_SIZE__": self.minimum_volume_size,
            "__NUM_ALLOWED_TOPOLOGIES__": self.num_allowed_topologies,
        }

    def slots(self) -> dict[str, list[str]]:
        """List fields keyed by their template slot marker."""
        return {
            "__CAPABILITIES__": list(self.capabilities),
            "__SUPPORTED_FS_TYPE__": list(self.supported_fs_types),
        }

    def features(self) -> dict[str, bool]:
        """Flags for ``__IF_FEATURE_<name>__`` template blocks."""
        return {"snapshot_class": self.has_snapshot_class}
