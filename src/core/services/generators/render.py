"""
Test config renderer — write test-config.yaml from a DriverConfig.

Templates are plain YAML files with three mechanisms:
  1. Conditional blocks:  # __IF_FEATURE_xxx__ / # __IF_NOT_FEATURE_xxx__ / # __ENDIF__
  2. Placeholder substitution:  __STORAGE_CLASS__  →  scalar field value
  3. List slots:  a line holding only __CAPABILITIES__ expands to one
     mapping entry per item, at the slot's indentation

The conditional comments keep the template valid YAML, so editors can
highlight it as-is.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

import yaml

from src.core.models.driver_config import DriverConfig
from src.core.models.template import GeneratedFile
from src.core.services.generators.driver_config import (
    CONFIG_FILE,
    CONFIG_TEMPLATE_FILE,
    config_dir,
)
from src.core.services.generators.errors import (
    OutputCreationError,
    RenderError,
    TemplateLoadError,
)

logger = logging.getLogger(__name__)


# ── Template directory ──────────────────────────────────────────────

TEMPLATES_DIR = Path(__file__).parent / "templates"
DEFAULT_TEMPLATE = TEMPLATES_DIR / CONFIG_TEMPLATE_FILE

# How each slot item is written as a YAML mapping entry.
# The testsuite reads both fields as sets, keyed by name.
_SLOT_ITEM_FORMATS: dict[str, str] = {
    "__CAPABILITIES__": "{item}: true",
    "__SUPPORTED_FS_TYPE__": "{item}:",
}

_IF_RE = re.compile(r"#\s*__IF_(?:NOT_)?FEATURE_(\w+)__")
_ENDIF_RE = re.compile(r"#\s*__ENDIF__")
_PLACEHOLDER_RE = re.compile(r"__[A-Z][A-Z0-9_]*__")

# A placeholder is the whole value when only a key or list dash precedes it
_WHOLE_VALUE_PREFIX_RE = re.compile(r"\s*|.*(?::|-)\s+")
# Characters that read back unchanged inside a plain YAML scalar
_EMBEDDABLE_RE = re.compile(r"[\w./-]*")


def default_template_path(package_root: Path) -> Path:
    return config_dir(package_root) / CONFIG_TEMPLATE_FILE


def default_output_path(package_root: Path) -> Path:
    return config_dir(package_root) / CONFIG_FILE


def default_template_text() -> str:
    """Return the template shipped with this package."""
    return DEFAULT_TEMPLATE.read_text(encoding="utf-8")


# ── Template loading ───────────────────────────────────────────────


def load_template(path: Path) -> str:
    """Read a template and check its conditional blocks are balanced.

    Raises:
        TemplateLoadError: If the file cannot be read, is not UTF-8, or
            has an ``__IF_…__`` without a matching ``__ENDIF__``.
    """
    try:
        content = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise TemplateLoadError(f"Template not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise TemplateLoadError(f"Cannot read template {path}: {e}") from e

    depth = 0
    for lineno, line in enumerate(content.splitlines(), start=1):
        if _IF_RE.search(line):
            if depth:
                raise TemplateLoadError(
                    f"{path}:{lineno}: nested conditional blocks are not supported"
                )
            depth += 1
        elif _ENDIF_RE.search(line):
            if not depth:
                raise TemplateLoadError(f"{path}:{lineno}: __ENDIF__ without __IF__")
            depth -= 1
    if depth:
        raise TemplateLoadError(f"{path}: unterminated conditional block")

    logger.debug("Loaded template %s (%d bytes)", path, len(content))
    return content


# ── Template processing ────────────────────────────────────────────


def process_template(
    content: str,
    features: dict[str, bool],
    placeholders: dict[str, str | int],
    slots: dict[str, list[str]],
) -> str:
    """Resolve conditional blocks, expand list slots, substitute placeholders.

    A placeholder that fills a whole value is written as a quoted YAML
    scalar. One embedded in a larger scalar (``csi-gcepd-__STORAGE_CLASS__``)
    is written bare, so its value must be plain-scalar safe.

    Raises:
        RenderError: If a block names an unknown feature, a placeholder
            has no value in ``placeholders``, or an embedded value holds
            characters YAML would reinterpret.
    """

    def _replace_block(m: re.Match) -> str:
        negate, feat_key, body = m.group(1), m.group(2), m.group(3)
        if feat_key not in features:
            raise RenderError(f"Template references unknown feature '{feat_key}'")
        keep = not features[feat_key] if negate else features[feat_key]
        return body if keep else ""

    content = re.sub(
        r"[ \t]*#\s*__IF_(NOT_)?FEATURE_(\w+)__[ \t]*\n(.*?)[ \t]*#\s*__ENDIF__[ \t]*(?:\n|\Z)",
        _replace_block,
        content,
        flags=re.DOTALL,
    )

    # List slots sit alone on their line
    lines: list[str] = []
    for line in content.splitlines():
        marker = line.strip()
        if marker in slots:
            indent = line[: len(line) - len(line.lstrip())]
            fmt = _SLOT_ITEM_FORMATS.get(marker, "- {item}")
            lines.extend(indent + fmt.format(item=item) for item in slots[marker])
        else:
            lines.append(line)
    content = "\n".join(lines) + "\n"

    unknown = sorted(set(_PLACEHOLDER_RE.findall(content)) - placeholders.keys())
    if unknown:
        raise RenderError(
            f"Template references unknown fields: {', '.join(unknown)}"
        )

    def _substitute(m: re.Match) -> str:
        value = placeholders[m.group(0)]
        line_start = content.rfind("\n", 0, m.start()) + 1
        line_end = content.find("\n", m.end())
        before = content[line_start:m.start()]
        after = content[m.end():line_end if line_end != -1 else len(content)]
        if _WHOLE_VALUE_PREFIX_RE.fullmatch(before) and not after.strip():
            return _yaml_scalar(value)
        text = str(value)
        if not _EMBEDDABLE_RE.fullmatch(text):
            raise RenderError(
                f"Value {text!r} for {m.group(0)} cannot be embedded in a "
                "larger scalar; give the placeholder its own value"
            )
        return text

    # One pass, so inserted values are never scanned again
    return _PLACEHOLDER_RE.sub(_substitute, content)


def _yaml_scalar(value: str | int) -> str:
    """Quote a value so YAML reads it back unchanged.

    JSON strings are valid YAML double-quoted scalars; ints stay bare.
    """
    return json.dumps(value)


def render_template(content: str, config: DriverConfig) -> str:
    """Render *content* with every field of *config*.

    The result must parse as a YAML mapping, so broken substitutions
    are caught here rather than by the testsuite.
    """
    rendered = process_template(
        content,
        features=config.features(),
        placeholders=config.placeholders(),
        slots=config.slots(),
    )
    try:
        data = yaml.safe_load(rendered)
    except yaml.YAMLError as e:
        raise RenderError(f"Rendered test config is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise RenderError(
            f"Rendered test config must be a YAML mapping, got {type(data).__name__}"
        )
    return rendered


# ── Public API ─────────────────────────────────────────────────────


def generate_test_config(
    config: DriverConfig,
    package_root: Path,
    *,
    template_path: Path | None = None,
    output_path: Path | None = None,
) -> GeneratedFile:
    """Render the test config in memory.

    Args:
        config: Resolved driver configuration.
        package_root: Driver checkout root.
        template_path: Template to render (default: the fixed template
            under the test config directory).
        output_path: Destination (default: test-config.yaml next to it).

    Returns:
        GeneratedFile with the absolute destination path and content.
    """
    template_path = template_path or default_template_path(package_root)
    output_path = output_path or default_output_path(package_root)

    content = load_template(template_path)
    rendered = render_template(content, config)

    return GeneratedFile(
        path=str(Path(output_path).absolute()),
        content=rendered,
        overwrite=True,
        reason=f"Test driver config for storage class {config.storage_class}",
    )


def write_generated_file(generated: GeneratedFile) -> Path:
    """Write a GeneratedFile.

    An existing file is truncated when ``generated.overwrite`` is set;
    otherwise the write is refused. The parent directory must already
    exist.

    Raises:
        OutputCreationError: If the destination cannot be opened, or it
            exists and ``overwrite`` is False.
        RenderError: If writing or flushing fails part way.
    """
    target = Path(generated.path)
    mode = "w" if generated.overwrite else "x"
    try:
        fh = open(target, mode, encoding="utf-8", newline="\n")
    except FileExistsError as e:
        raise OutputCreationError(
            f"File already exists: {target} (use overwrite=True to replace)"
        ) from e
    except OSError as e:
        raise OutputCreationError(f"Cannot create {target}: {e}") from e

    try:
        with fh:
            fh.write(generated.content)
    except OSError as e:
        raise RenderError(f"Failed writing {target}: {e}") from e

    logger.info("Wrote generated file: %s", target)
    return target


def render_test_config(
    config: DriverConfig,
    package_root: Path,
    *,
    template_path: Path | None = None,
    output_path: Path | None = None,
) -> Path:
    """Render and write test-config.yaml, returning its absolute path.

    Nothing is written unless the template loads and renders cleanly.

    Raises:
        TemplateLoadError: Template missing, unreadable or unbalanced.
        RenderError: Unknown field referenced, output not YAML, or the
            write failed.
        OutputCreationError: Destination cannot be opened.
    """
    generated = generate_test_config(
        config,
        package_root,
        template_path=template_path,
        output_path=output_path,
    )
    return write_generated_file(generated)


def write_default_template(package_root: Path, *, overwrite: bool = False) -> Path | None:
    """Copy the bundled template to the fixed template location.

    Returns:
        The template path, or None if one already exists and
        ``overwrite`` is False.
    """
    target = default_template_path(package_root)
    if target.exists() and not overwrite:
        return None
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(default_template_text(), encoding="utf-8")
    logger.info("Wrote default template: %s", target)
    return target
