"""
Tests for the test config renderer — template loading, substitution,
validation and writing.
"""

import textwrap
from pathlib import Path

import pytest
import yaml

from src.core.services.generators.driver_config import (
    TEST_CONFIG_DIR,
    resolve_driver_config,
)
from src.core.services.generators.errors import (
    OutputCreationError,
    RenderError,
    TemplateLoadError,
)
from src.core.services.generators.render import (
    DEFAULT_TEMPLATE,
    default_output_path,
    default_template_path,
    default_template_text,
    generate_test_config,
    load_template,
    process_template,
    render_template,
    render_test_config,
    write_default_template,
    write_generated_file,
)


@pytest.fixture
def linux_config(package_root: Path):
    return resolve_driver_config("linux", "gke", "sc-standard.yaml", "", package_root=package_root)


@pytest.fixture
def windows_config(package_root: Path):
    return resolve_driver_config(
        "windows", "gce", "sc-regional-pd.yaml", "snap-class.yaml", package_root=package_root
    )


# ═══════════════════════════════════════════════════════════════════
#  load_template
# ═══════════════════════════════════════════════════════════════════


class TestLoadTemplate:
    def test_bundled_template_loads(self):
        content = load_template(DEFAULT_TEMPLATE)
        assert "__CAPABILITIES__" in content

    def test_missing_raises(self, tmp_path: Path):
        with pytest.raises(TemplateLoadError, match="not found"):
            load_template(tmp_path / "nope.in")

    def test_directory_raises(self, tmp_path: Path):
        with pytest.raises(TemplateLoadError, match="Cannot read"):
            load_template(tmp_path)

    def test_not_utf8_raises(self, tmp_path: Path):
        path = tmp_path / "bad.in"
        path.write_bytes(b"\xff\xfe\x00bad")
        with pytest.raises(TemplateLoadError):
            load_template(path)

    def test_unterminated_block_raises(self, tmp_path: Path):
        path = tmp_path / "t.in"
        path.write_text("# __IF_FEATURE_snapshot_class__\nx: 1\n")
        with pytest.raises(TemplateLoadError, match="unterminated"):
            load_template(path)

    def test_stray_endif_raises(self, tmp_path: Path):
        path = tmp_path / "t.in"
        path.write_text("x: 1\n# __ENDIF__\n")
        with pytest.raises(TemplateLoadError, match="without __IF__"):
            load_template(path)

    def test_nested_block_raises(self, tmp_path: Path):
        path = tmp_path / "t.in"
        path.write_text(textwrap.dedent("""\
            # __IF_FEATURE_a__
            # __IF_FEATURE_b__
            x: 1
            # __ENDIF__
            # __ENDIF__
        """))
        with pytest.raises(TemplateLoadError, match="nested"):
            load_template(path)


# ═══════════════════════════════════════════════════════════════════
#  process_template
# ═══════════════════════════════════════════════════════════════════


class TestProcessTemplate:
    def test_placeholder_substitution(self):
        out = process_template("name: __NAME__\n", {}, {"__NAME__": "pd"}, {})
        assert out == 'name: "pd"\n'

    def test_if_block_kept(self):
        tmpl = "a: 1\n# __IF_FEATURE_snap__\nb: 2\n# __ENDIF__\nc: 3\n"
        out = process_template(tmpl, {"snap": True}, {}, {})
        assert out == "a: 1\nb: 2\nc: 3\n"

    def test_if_block_dropped(self):
        tmpl = "a: 1\n# __IF_FEATURE_snap__\nb: 2\n# __ENDIF__\nc: 3\n"
        out = process_template(tmpl, {"snap": False}, {}, {})
        assert out == "a: 1\nc: 3\n"

    def test_if_not_block(self):
        tmpl = "# __IF_NOT_FEATURE_snap__\nb: 2\n# __ENDIF__\n"
        assert process_template(tmpl, {"snap": False}, {}, {}) == "b: 2\n"
        assert process_template(tmpl, {"snap": True}, {}, {}) == "\n"

    def test_unknown_feature_raises(self):
        tmpl = "# __IF_FEATURE_rwx__\nb: 2\n# __ENDIF__\n"
        with pytest.raises(RenderError, match="unknown feature 'rwx'"):
            process_template(tmpl, {"snap": True}, {}, {})

    def test_slot_expands_at_indent(self):
        tmpl = "Capabilities:\n    __CAPABILITIES__\nEnd: 1\n"
        out = process_template(tmpl, {}, {}, {"__CAPABILITIES__": ["block", "exec"]})
        assert out == "Capabilities:\n    block: true\n    exec: true\nEnd: 1\n"

    def test_fs_slot_is_a_set(self):
        tmpl = "Fs:\n  __SUPPORTED_FS_TYPE__\n"
        out = process_template(tmpl, {}, {}, {"__SUPPORTED_FS_TYPE__": ["ext4", "xfs"]})
        assert yaml.safe_load(out) == {"Fs": {"ext4": None, "xfs": None}}

    def test_unknown_placeholder_raises(self):
        with pytest.raises(RenderError, match="__DRIVER_NAME__"):
            process_template("name: __DRIVER_NAME__\n", {}, {"__NAME__": "x"}, {})

    def test_values_are_not_rescanned(self):
        """A value that looks like a placeholder is inserted verbatim."""
        out = process_template("p: __PATH__\n", {}, {"__PATH__": "/tmp/__X__"}, {})
        assert out == 'p: "/tmp/__X__"\n'

    def test_value_naming_a_later_field_is_kept(self):
        tmpl = "file: __FILE__\nmin: __MIN__\n"
        out = process_template(
            tmpl, {}, {"__FILE__": "__MIN__.yaml", "__MIN__": "5Gi"}, {}
        )
        assert yaml.safe_load(out) == {"file": "__MIN__.yaml", "min": "5Gi"}

    def test_int_value_stays_bare(self):
        out = process_template("n: __N__\n", {}, {"__N__": 2}, {})
        assert out == "n: 2\n"

    def test_whole_value_with_yaml_syntax_reads_back(self):
        tmpl = "a: __A__\nitems:\n  - __B__\n"
        values = {"__A__": "/ci #42/sc: x.yaml", "__B__": "yes"}
        out = process_template(tmpl, {}, values, {})
        assert yaml.safe_load(out) == {"a": "/ci #42/sc: x.yaml", "items": ["yes"]}

    def test_embedded_value_is_bare(self):
        out = process_template("name: csi-__SC__\n", {}, {"__SC__": "sc-v2.1"}, {})
        assert out == "name: csi-sc-v2.1\n"

    def test_unsafe_embedded_value_raises(self):
        with pytest.raises(RenderError, match="cannot be embedded"):
            process_template("name: csi-__SC__\n", {}, {"__SC__": "sc #1"}, {})


# ═══════════════════════════════════════════════════════════════════
#  render_template
# ═══════════════════════════════════════════════════════════════════


class TestRenderTemplate:
    def test_linux_document(self, linux_config, package_root: Path):
        doc = yaml.safe_load(render_template(default_template_text(), linux_config))

        assert doc["StorageClass"]["FromFile"] == str(
            package_root / TEST_CONFIG_DIR / "sc-standard.yaml"
        )
        assert "SnapshotClass" not in doc
        info = doc["DriverInfo"]
        assert info["Name"] == "csi-gcepd-sc-standard"
        assert list(info["SupportedFsType"]) == ["ext2", "ext3", "ext4", "xfs"]
        assert list(info["Capabilities"]) == [
            "persistence", "block", "fsGroup", "exec", "multipods", "topology",
            "controllerExpansion", "nodeExpansion",
        ]
        assert all(v is True for v in info["Capabilities"].values())
        assert info["SupportedSizeRange"]["Min"] == "5Gi"
        assert info["NumAllowedTopologies"] == 1

    def test_windows_document(self, windows_config, package_root: Path):
        doc = yaml.safe_load(render_template(default_template_text(), windows_config))

        assert doc["SnapshotClass"]["FromFile"] == str(
            package_root / TEST_CONFIG_DIR / "snap-class.yaml"
        )
        info = doc["DriverInfo"]
        assert list(info["SupportedFsType"]) == ["ntfs"]
        assert list(info["Capabilities"]) == [
            "persistence", "exec", "multipods", "topology",
            "controllerExpansion", "nodeExpansion", "snapshotDataSource",
        ]
        assert info["SupportedSizeRange"]["Min"] == "200Gi"
        assert info["NumAllowedTopologies"] == 2

    def test_storage_class_file_naming_another_field(self, package_root: Path):
        config = resolve_driver_config(
            "linux", "gke", "__MINIMUM_VOLUME_SIZE__.yaml", "", package_root=package_root
        )
        doc = yaml.safe_load(render_template(default_template_text(), config))

        assert doc["StorageClass"]["FromFile"].endswith("/__MINIMUM_VOLUME_SIZE__.yaml")
        assert doc["DriverInfo"]["Name"] == "csi-gcepd-__MINIMUM_VOLUME_SIZE__"
        assert doc["DriverInfo"]["SupportedSizeRange"]["Min"] == "5Gi"

    def test_package_root_with_comment_marker(self, tmp_path: Path):
        root = tmp_path / "ci #42"
        config = resolve_driver_config(
            "windows", "gce", "sc-standard.yaml", "snap: class.yaml", package_root=root
        )
        doc = yaml.safe_load(render_template(default_template_text(), config))

        assert doc["StorageClass"]["FromFile"] == str(root / TEST_CONFIG_DIR / "sc-standard.yaml")
        assert doc["SnapshotClass"]["FromFile"] == str(
            root / TEST_CONFIG_DIR / "snap: class.yaml"
        )
        assert doc["DriverInfo"]["Name"] == "csi-gcepd-sc-standard"

    def test_unsafe_storage_class_name_raises(self, package_root: Path):
        config = resolve_driver_config(
            "linux", "gke", "sc #1.yaml", "", package_root=package_root
        )
        with pytest.raises(RenderError, match="cannot be embedded"):
            render_template(default_template_text(), config)

    def test_non_mapping_output_raises(self, linux_config):
        with pytest.raises(RenderError, match="mapping"):
            render_template("- __STORAGE_CLASS__\n", linux_config)

    def test_invalid_yaml_raises(self, linux_config):
        with pytest.raises(RenderError, match="not valid YAML"):
            render_template("a: [__STORAGE_CLASS__\n", linux_config)


# ═══════════════════════════════════════════════════════════════════
#  Writing
# ═══════════════════════════════════════════════════════════════════


class TestRenderTestConfig:
    def test_writes_default_location(self, linux_config, package_root: Path, output_yaml: Path):
        path = render_test_config(linux_config, package_root)
        assert path == output_yaml
        assert path.is_absolute()
        assert yaml.safe_load(path.read_text())["DriverInfo"]["Name"] == "csi-gcepd-sc-standard"

    def test_default_paths(self, package_root: Path):
        assert default_template_path(package_root).name == "test-config-template.in"
        assert default_output_path(package_root).name == "test-config.yaml"

    def test_explicit_output_path(self, linux_config, package_root: Path, tmp_path: Path):
        target = tmp_path / "run-1.yaml"
        path = render_test_config(linux_config, package_root, output_path=target)
        assert path == target
        assert not default_output_path(package_root).exists()

    def test_explicit_template_path(self, linux_config, package_root: Path, tmp_path: Path):
        tmpl = tmp_path / "mini.in"
        tmpl.write_text("sc: __STORAGE_CLASS__\nmin: __MINIMUM_VOLUME_SIZE__\n")
        path = render_test_config(linux_config, package_root, template_path=tmpl)
        assert path.read_text() == 'sc: "sc-standard"\nmin: "5Gi"\n'

    def test_idempotent(self, windows_config, package_root: Path):
        first = render_test_config(windows_config, package_root).read_bytes()
        second = render_test_config(windows_config, package_root).read_bytes()
        assert first == second

    def test_truncates_previous_content(self, linux_config, package_root: Path, output_yaml: Path):
        output_yaml.write_text("stale: true\n" * 500)
        render_test_config(linux_config, package_root)
        content = output_yaml.read_text()
        assert "stale" not in content
        assert content.startswith("# Test driver definition")

    def test_missing_template_leaves_output_untouched(
        self, linux_config, package_root: Path, output_yaml: Path
    ):
        default_template_path(package_root).unlink()
        output_yaml.write_text("previous\n")
        with pytest.raises(TemplateLoadError):
            render_test_config(linux_config, package_root)
        assert output_yaml.read_text() == "previous\n"

    def test_render_error_does_not_create_output(
        self, linux_config, package_root: Path, output_yaml: Path
    ):
        default_template_path(package_root).write_text("name: __DRIVER_NAME__\n")
        with pytest.raises(RenderError):
            render_test_config(linux_config, package_root)
        assert not output_yaml.exists()

    def test_missing_output_dir_raises(self, linux_config, package_root: Path, tmp_path: Path):
        with pytest.raises(OutputCreationError):
            render_test_config(
                linux_config, package_root, output_path=tmp_path / "missing" / "out.yaml"
            )

    @pytest.mark.skipif(not Path("/dev/full").exists(), reason="needs /dev/full")
    def test_write_failure_is_render_error(self, linux_config, package_root: Path):
        with pytest.raises(RenderError, match="Failed writing"):
            render_test_config(linux_config, package_root, output_path=Path("/dev/full"))


class TestGenerateTestConfig:
    def test_generated_file_metadata(self, linux_config, package_root: Path, output_yaml: Path):
        generated = generate_test_config(linux_config, package_root)
        assert generated.path == str(output_yaml)
        assert generated.overwrite is True
        assert "sc-standard" in generated.reason
        assert not output_yaml.exists()

    def test_write_generated_file(self, linux_config, package_root: Path, output_yaml: Path):
        generated = generate_test_config(linux_config, package_root)
        assert write_generated_file(generated) == output_yaml
        assert output_yaml.read_text() == generated.content

    def test_no_overwrite_keeps_existing(self, linux_config, package_root: Path, output_yaml: Path):
        output_yaml.write_text("previous\n")
        generated = generate_test_config(linux_config, package_root)
        generated = generated.model_copy(update={"overwrite": False})
        with pytest.raises(OutputCreationError, match="already exists"):
            write_generated_file(generated)
        assert output_yaml.read_text() == "previous\n"

    def test_no_overwrite_creates_new(self, linux_config, package_root: Path, output_yaml: Path):
        generated = generate_test_config(linux_config, package_root)
        generated = generated.model_copy(update={"overwrite": False})
        assert write_generated_file(generated) == output_yaml
        assert output_yaml.read_text() == generated.content


class TestWriteDefaultTemplate:
    def test_writes_when_absent(self, tmp_path: Path):
        path = write_default_template(tmp_path)
        assert path == default_template_path(tmp_path)
        assert path.read_text() == default_template_text()

    def test_keeps_existing(self, package_root: Path):
        custom = default_template_path(package_root)
        custom.write_text("custom: __STORAGE_CLASS__\n")
        assert write_default_template(package_root) is None
        assert custom.read_text() == "custom: __STORAGE_CLASS__\n"

    def test_overwrite(self, package_root: Path):
        default_template_path(package_root).write_text("custom: 1\n")
        write_default_template(package_root, overwrite=True)
        assert default_template_path(package_root).read_text() == default_template_text()
