"""
Tests for manifest reading and app version helpers.
"""
import json

import pytest

from ynh_helpers.utils.manifest import (
    ManifestError,
    app_package_version,
    app_upstream_version,
    check_app_version_changed,
    compare_current_package_version,
    find_manifest,
    read_manifest,
)

TOML_MANIFEST = """
packaging_format = 2
id = "myapp"
name = "My App"
version = "2.4.1~ynh3"

[integration]
yunohost = ">= 11.2"

[resources.sources.main]
url = "https://example.org/myapp-2.4.1.tar.gz"
"""


@pytest.fixture
def toml_manifest(tmp_path):
    path = tmp_path / "manifest.toml"
    path.write_text(TOML_MANIFEST)
    return path


@pytest.fixture
def json_manifest(tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps({
        "id": "legacy",
        "version": "0.9~ynh1",
        "arguments": {"install": [{"name": "domain"}, {"name": "path"}]}
    }))
    return path


class TestReadManifest:
    def test_reads_nested_toml_key(self, toml_manifest):
        assert read_manifest("resources.sources.main.url", toml_manifest) == "https://example.org/myapp-2.4.1.tar.gz"

    def test_accepts_leading_dot(self, toml_manifest):
        assert read_manifest(".id", toml_manifest) == "myapp"

    def test_returns_tables(self, toml_manifest):
        assert read_manifest("integration", toml_manifest) == {"yunohost": ">= 11.2"}

    def test_reads_json_with_list_index(self, json_manifest):
        assert read_manifest("arguments.install.1.name", json_manifest) == "path"

    def test_missing_key_is_none(self, toml_manifest):
        assert read_manifest("resources.sources.extra.url", toml_manifest) is None
        assert read_manifest("id.nothing", toml_manifest) is None

    def test_invalid_manifest(self, tmp_path):
        path = tmp_path / "manifest.json"
        path.write_text("{not json")
        with pytest.raises(ManifestError):
            read_manifest("id", path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestError):
            read_manifest("id", tmp_path / "manifest.toml")


class TestFindManifest:
    def test_prefers_toml(self, toml_manifest, json_manifest, tmp_path):
        assert find_manifest(tmp_path) == toml_manifest

    def test_uses_app_basedir(self, json_manifest, tmp_path, monkeypatch):
        monkeypatch.setenv("YNH_APP_BASEDIR", str(tmp_path))
        assert find_manifest() == json_manifest

    def test_falls_back_to_parent_of_scripts_dir(self, toml_manifest, tmp_path, monkeypatch):
        scripts = tmp_path / "scripts"
        scripts.mkdir()
        monkeypatch.chdir(scripts)
        assert find_manifest() == toml_manifest

    def test_not_found(self, tmp_path):
        with pytest.raises(ManifestError, match="No manifest found"):
            find_manifest(tmp_path)


class TestAppVersions:
    def test_versions_from_manifest(self, toml_manifest):
        assert app_upstream_version(toml_manifest) == "2.4.1"
        assert app_package_version(toml_manifest) == "3"

    def test_environment_takes_precedence(self, toml_manifest, monkeypatch):
        monkeypatch.setenv("YNH_APP_MANIFEST_VERSION", "3.0~ynh1")
        assert app_upstream_version(toml_manifest) == "3.0"
        assert app_package_version(toml_manifest) == "1"


class TestCheckAppVersionChanged:
    @pytest.mark.parametrize("upgrade_type", ["UPGRADE_FULL", "UPGRADE_FORCED", "DOWNGRADE_FORCED"])
    def test_platform_types_meaning_app_upgrade(self, monkeypatch, upgrade_type):
        monkeypatch.setenv("YNH_APP_UPGRADE_TYPE", upgrade_type)
        assert check_app_version_changed() == "UPGRADE_APP"

    def test_platform_package_upgrade_is_kept(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_UPGRADE_TYPE", "UPGRADE_PACKAGE")
        assert check_app_version_changed() == "UPGRADE_PACKAGE"

    def test_upstream_change(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "2.4.0~ynh3")
        monkeypatch.setenv("YNH_APP_MANIFEST_VERSION", "2.4.1~ynh1")
        assert check_app_version_changed() == "UPGRADE_APP"

    def test_package_change_only(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "2.4.1~ynh2")
        monkeypatch.setenv("YNH_APP_MANIFEST_VERSION", "2.4.1~ynh3")
        assert check_app_version_changed() == "UPGRADE_PACKAGE"

    def test_same_version(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "2.4.1~ynh3")
        monkeypatch.setenv("YNH_APP_MANIFEST_VERSION", "2.4.1~ynh3")
        assert check_app_version_changed() == "UPGRADE_SAME"

    def test_package_revisions_compare_numerically(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "1.0~ynh01")
        monkeypatch.setenv("YNH_APP_MANIFEST_VERSION", "1.0~ynh1")
        assert check_app_version_changed() == "UPGRADE_SAME"

    def test_same_version_forced(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "2.4.1~ynh3")
        monkeypatch.setenv("YNH_APP_MANIFEST_VERSION", "2.4.1~ynh3")
        monkeypatch.setenv("YNH_FORCE_UPGRADE", "1")
        assert check_app_version_changed() == "UPGRADE_APP"


class TestCompareCurrentPackageVersion:
    def test_comparisons(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "1.5~ynh2")
        assert compare_current_package_version("lt", "1.5~ynh3")
        assert compare_current_package_version("ge", "1.4~ynh9")
        assert not compare_current_package_version("eq", "1.5~ynh1")

    def test_invalid_comparison(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "1.5~ynh2")
        with pytest.raises(ManifestError, match="Invalid comparison"):
            compare_current_package_version("older", "1.5~ynh3")

    def test_version_without_package_revision(self, monkeypatch):
        monkeypatch.setenv("YNH_APP_CURRENT_VERSION", "1.5~ynh2")
        with pytest.raises(ManifestError, match="Invalid version"):
            compare_current_package_version("lt", "1.6")

    def test_requires_current_version(self):
        with pytest.raises(ManifestError, match="YNH_APP_CURRENT_VERSION"):
            compare_current_package_version("lt", "1.6~ynh1")
