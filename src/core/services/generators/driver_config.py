"""
Driver config resolver — derive what the PD CSI driver advertises.

Given the target platform and deployment strategy, build the capability
list, filesystem list and sizing handed to the e2e storage testsuite.

The capability list is assembled by named steps applied in order to an
ordered set, so each step can be exercised on its own:

    platform_capabilities → deployment_capabilities → snapshot_capabilities

No I/O happens here; paths are only joined.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from src.core.models.driver_config import SNAPSHOT_CAPABILITY, DriverConfig
from src.core.services.generators.errors import (
    MalformedFilenameError,
    UnsupportedDeploymentStrategyError,
)

logger = logging.getLogger(__name__)


# ── Fixed layout under the package root ─────────────────────────

TEST_CONFIG_DIR = Path("test") / "k8s-integration" / "config"
CONFIG_TEMPLATE_FILE = "test-config-template.in"
CONFIG_FILE = "test-config.yaml"


# ── Platform / strategy tables ──────────────────────────────────

WINDOWS_PLATFORM = "windows"

_DEFAULT_CAPABILITIES = (
    "persistence",
    "block",
    "fsGroup",
    "exec",
    "multipods",
    "topology",
)
# No raw block volumes or fsGroup ownership changes on Windows nodes
_WINDOWS_CAPABILITIES = (
    "persistence",
    "exec",
    "multipods",
    "topology",
)

_DEFAULT_FS_TYPES = ("ext2", "ext3", "ext4", "xfs")
_WINDOWS_FS_TYPES = ("ntfs",)

SUPPORTED_DEPLOYMENT_STRATEGIES: tuple[str, ...] = ("gce", "gke")
_EXPANSION_CAPABILITIES = ("controllerExpansion", "nodeExpansion")

# Never advertised to the testsuite. PD supports volume limits, but that
# test is very slow.
UNSUPPORTED_CAPABILITIES: tuple[str, ...] = (
    "pvcDataSource",
    "RWX",
    "volumeLimits",
    "singleNodeVolume",
    "dataSource",
)


# ── Sizing ──────────────────────────────────────────────────────

REGIONAL_PD_STORAGE_CLASS = "sc-regional-pd"

STANDARD_MINIMUM_VOLUME_SIZE = "5Gi"
STANDARD_NUM_ALLOWED_TOPOLOGIES = 1
REGIONAL_MINIMUM_VOLUME_SIZE = "200Gi"
REGIONAL_NUM_ALLOWED_TOPOLOGIES = 2


# ── Ordered capability builder ──────────────────────────────────


class CapabilitySet:
    """Insertion-ordered set of capability tags.

    Adding a tag that is already present is a no-op, so the final list
    never holds duplicates regardless of which steps ran.
    """

    def __init__(self, initial: Iterable[str] = ()):
        self._tags: dict[str, None] = {}
        self.extend(initial)

    def add(self, tag: str) -> None:
        self._tags.setdefault(tag, None)

    def extend(self, tags: Iterable[str]) -> None:
        for tag in tags:
            self.add(tag)

    def replace(self, tags: Iterable[str]) -> None:
        """Drop every tag and start again from *tags*."""
        self._tags.clear()
        self.extend(tags)

    def to_list(self) -> list[str]:
        return list(self._tags)

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __repr__(self) -> str:
        return f"CapabilitySet({self.to_list()!r})"


@dataclass(frozen=True)
class ResolveInputs:
    """Parameters every resolver step may read."""

    platform: str
    deployment_strategy: str
    storage_class_file: str
    snapshot_class_file: str = ""


def platform_capabilities(caps: CapabilitySet, inputs: ResolveInputs) -> None:
    """Seed the set with what the node OS can support."""
    if inputs.platform == WINDOWS_PLATFORM:
        caps.replace(_WINDOWS_CAPABILITIES)
    else:
        caps.replace(_DEFAULT_CAPABILITIES)


def deployment_capabilities(caps: CapabilitySet, inputs: ResolveInputs) -> None:
    """Add volume expansion for the strategies that support it.

    Raises:
        UnsupportedDeploymentStrategyError: For any strategy other than
            ``gce`` or ``gke``.
    """
    if inputs.deployment_strategy not in SUPPORTED_DEPLOYMENT_STRATEGIES:
        raise UnsupportedDeploymentStrategyError(
            inputs.deployment_strategy, SUPPORTED_DEPLOYMENT_STRATEGIES
        )
    # TODO: vary expansion capabilities with the Kubernetes version under test.
    caps.extend(_EXPANSION_CAPABILITIES)


def snapshot_capabilities(caps: CapabilitySet, inputs: ResolveInputs) -> None:
    """Advertise snapshot data sources only when a snapshot class is given."""
    if inputs.snapshot_class_file:
        caps.add(SNAPSHOT_CAPABILITY)


CapabilityStep = Callable[[CapabilitySet, ResolveInputs], None]

CAPABILITY_STEPS: tuple[tuple[str, CapabilityStep], ...] = (
    ("platform", platform_capabilities),
    ("deployment", deployment_capabilities),
    ("snapshot", snapshot_capabilities),
)


def build_capabilities(inputs: ResolveInputs) -> list[str]:
    """Run every capability step in order and return the tag list."""
    caps = CapabilitySet()
    for name, step in CAPABILITY_STEPS:
        step(caps, inputs)
        logger.debug("Capabilities after %s step: %s", name, caps.to_list())
    return caps.to_list()


# ── Other derived fields ────────────────────────────────────────


def supported_fs_types(platform: str) -> list[str]:
    """Filesystems the driver formats on the given platform."""
    if platform == WINDOWS_PLATFORM:
        return list(_WINDOWS_FS_TYPES)
    return list(_DEFAULT_FS_TYPES)


def storage_class_name(storage_class_file: str) -> str:
    """Strip the extension from a storage-class filename.

    ``sc-standard.yaml`` → ``sc-standard``; only the last extension is
    removed (``sc.v2.yaml`` → ``sc.v2``).

    Raises:
        MalformedFilenameError: If the filename contains no ``.``.
    """
    stem, sep, _ = storage_class_file.rpartition(".")
    if not sep:
        raise MalformedFilenameError(storage_class_file)
    return stem


def volume_sizing(storage_class: str) -> tuple[str, int]:
    """Return ``(minimum_volume_size, num_allowed_topologies)``.

    Regional PDs replicate across two zones and have a 200Gi floor;
    every other storage class gets the zonal defaults.
    """
    if storage_class == REGIONAL_PD_STORAGE_CLASS:
        return REGIONAL_MINIMUM_VOLUME_SIZE, REGIONAL_NUM_ALLOWED_TOPOLOGIES
    return STANDARD_MINIMUM_VOLUME_SIZE, STANDARD_NUM_ALLOWED_TOPOLOGIES


def config_dir(package_root: Path) -> Path:
    """Directory holding storage classes, the template and the output."""
    return Path(package_root) / TEST_CONFIG_DIR


# ── Public API ──────────────────────────────────────────────────


def resolve_driver_config(
    platform: str,
    deployment_strategy: str,
    storage_class_file: str,
    snapshot_class_file: str = "",
    *,
    package_root: Path,
) -> DriverConfig:
    """Resolve the driver's advertised configuration.

    Args:
        platform: Node OS; ``"windows"`` narrows capabilities, anything
            else is treated as Linux.
        deployment_strategy: ``"gce"`` or ``"gke"``.
        storage_class_file: Filename inside the test config directory.
        snapshot_class_file: Filename inside the test config directory,
            or ``""`` when snapshots are not being tested.
        package_root: Driver checkout root used for path joins.

    Returns:
        A frozen DriverConfig.

    Raises:
        UnsupportedDeploymentStrategyError: Unknown deployment strategy.
        MalformedFilenameError: Storage-class filename has no extension.
    """
    inputs = ResolveInputs(
        platform=platform,
        deployment_strategy=deployment_strategy,
        storage_class_file=storage_class_file,
        snapshot_class_file=snapshot_class_file or "",
    )

    capabilities = build_capabilities(inputs)
    storage_class = storage_class_name(storage_class_file)
    minimum_volume_size, num_allowed_topologies = volume_sizing(storage_class)

    base_dir = config_dir(package_root).absolute()
    snapshot_path = ""
    if inputs.snapshot_class_file:
        snapshot_path = str(base_dir / inputs.snapshot_class_file)

    config = DriverConfig(
        storage_class_file=str(base_dir / storage_class_file),
        storage_class=storage_class,
        snapshot_class_file=snapshot_path,
        capabilities=capabilities,
        supported_fs_types=supported_fs_types(platform),
        minimum_volume_size=minimum_volume_size,
        num_allowed_topologies=num_allowed_topologies,
    )
    logger.debug(
        "Resolved driver config for platform=%s strategy=%s: %s",
        platform, deployment_strategy, config.model_dump(),
    )
    return config
