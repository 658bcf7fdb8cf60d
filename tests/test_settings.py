"""Tests for option loading, layered resolution and the default config document."""

import json

import pytest
import yaml

from buckethop import (
    DEFAULT_REGION,
    ConfigError,
    Options,
    default_config,
    resolve_settings,
)


class TestResolveSettings:
    def test_explicit_options_win_over_environment(self):
        options = Options(bucket_name="site", access_key_id="explicit-id", secret_access_key="explicit-secret",
                          region="eu-west-1")
        environ = {
            "AWS_ACCESS_KEY_ID": "env-id",
            "AWS_SECRET_ACCESS_KEY": "env-secret",
            "AWS_DEFAULT_REGION": "ap-south-1",
        }

        settings = resolve_settings(options, environ)

        assert settings.access_key_id == "explicit-id"
        assert settings.secret_access_key == "explicit-secret"
        assert settings.region == "eu-west-1"

    def test_environment_fills_unset_options(self):
        environ = {
            "AWS_ACCESS_KEY_ID": "env-id",
            "AWS_SECRET_ACCESS_KEY": "env-secret",
            "AWS_DEFAULT_REGION": "ap-south-1",
        }

        settings = resolve_settings(Options(bucket_name="site"), environ)

        assert settings.access_key_id == "env-id"
        assert settings.secret_access_key == "env-secret"
        assert settings.region == "ap-south-1"

    def test_defaults(self):
        settings = resolve_settings(Options(bucket_name="site"), environ={})

        assert settings.region == DEFAULT_REGION == "us-east-1"
        assert settings.remote_path == ""
        assert settings.site_dir == "_site"
        assert settings.storage == "s3"
        assert settings.access_key_id is None
        assert settings.delete is False
        assert settings.verbose is True

    def test_explicit_false_flags_are_kept(self):
        settings = resolve_settings(Options(bucket_name="site", delete=False, verbose=False), environ={})

        assert settings.delete is False
        assert settings.verbose is False

    def test_explicit_true_delete(self):
        assert resolve_settings(Options(bucket_name="site", delete=True), environ={}).delete is True

    @pytest.mark.parametrize("remote_path,expected", [
        ("/", ""),
        ("/blog", "blog"),
        ("blog/", "blog"),
        ("//docs/v1/", "docs/v1"),
    ])
    def test_remote_path_slashes_are_stripped(self, remote_path, expected):
        settings = resolve_settings(Options(bucket_name="site", remote_path=remote_path), environ={})

        assert settings.remote_path == expected

    def test_bunny_reads_its_own_api_key(self):
        environ = {"BUNNY_API_KEY": "zone-password", "AWS_SECRET_ACCESS_KEY": "aws-secret"}

        settings = resolve_settings(Options(bucket_name="zone", storage="bunny"), environ)

        assert settings.secret_access_key == "zone-password"
        assert settings.access_key_id is None

    def test_pull_dir_comes_from_dir_option(self):
        settings = resolve_settings(Options(bucket_name="site", dir="mirror"), environ={})

        assert settings.pull_dir == "mirror"

    def test_home_directory_is_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))

        settings = resolve_settings(Options(bucket_name="site", site_dir="~/site", dir="~/mirror"), environ={})

        assert settings.site_dir == str(tmp_path / "site")
        assert settings.pull_dir == str(tmp_path / "mirror")

    def test_bucket_name_is_required(self):
        with pytest.raises(ConfigError, match="bucket_name"):
            resolve_settings(Options(), environ={})

    def test_unknown_storage(self):
        with pytest.raises(ConfigError, match="Unknown storage type"):
            resolve_settings(Options(bucket_name="site", storage="ftp"), environ={})

    def test_settings_are_immutable(self):
        settings = resolve_settings(Options(bucket_name="site"), environ={})

        with pytest.raises(AttributeError):
            settings.bucket_name = "other"


class TestOptions:
    def test_load_yaml(self, tmp_path):
        config_file = tmp_path / "_deploy.yml"
        config_file.write_text(
            "bucket_name: example.com\n"
            "remote_path: /blog\n"
            "delete: false\n"
            "verbose: true\n"
            "access_key_id:\n"
        )

        options = Options.load_from_file(str(config_file))

        assert options.bucket_name == "example.com"
        assert options.remote_path == "/blog"
        assert options.delete is False
        assert options.verbose is True
        assert options.access_key_id is None

    def test_load_json(self, tmp_path):
        config_file = tmp_path / "deploy.json"
        config_file.write_text(json.dumps({"bucket_name": "example.com", "delete": "yes", "region": "eu-west-1"}))

        options = Options.load_from_file(str(config_file))

        assert options == Options(bucket_name="example.com", delete=True, region="eu-west-1")

    def test_bare_filename_is_found_in_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / "_deploy.yml").write_text("bucket_name: found\n")
        monkeypatch.chdir(tmp_path)

        assert Options.load_from_file("_deploy.yml").bucket_name == "found"

    def test_missing_optional_file_gives_empty_options(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        assert Options.load_from_file("_deploy.yml", required=False) == Options()

    def test_missing_required_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            Options.load_from_file(str(tmp_path / "nope.yml"))

    def test_unknown_keys_are_rejected(self, tmp_path):
        config_file = tmp_path / "_deploy.yml"
        config_file.write_text("bucket_name: site\nbukket: typo\n")

        with pytest.raises(ConfigError, match="bukket"):
            Options.load_from_file(str(config_file))

    def test_invalid_flag_value(self):
        with pytest.raises(ConfigError, match="delete"):
            Options.from_dict({"delete": "sometimes"})

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "_deploy.yml"
        config_file.write_text("bucket_name: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            Options.load_from_file(str(config_file))

    def test_non_mapping_document(self, tmp_path):
        config_file = tmp_path / "_deploy.yml"
        config_file.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="mapping"):
            Options.load_from_file(str(config_file))

    def test_merge_only_applies_set_values(self):
        base = Options(bucket_name="from-file", region="eu-west-1", delete=True)
        overrides = Options(bucket_name="from-cli", delete=False)

        merged = base.merge(overrides)

        assert merged.bucket_name == "from-cli"
        assert merged.region == "eu-west-1"
        assert merged.delete is False


class TestDefaultConfig:
    def test_lists_options_with_comments(self):
        lines = default_config().splitlines()

        assert lines[0].startswith("bucket_name: ")
        assert lines[0][40:] == "  # Name of the S3 bucket where these files will be stored."
        assert lines[3].startswith("remote_path: /")
        assert lines[4] == ""
        assert lines[5].startswith("# region: us-east-1")
        assert lines[6].startswith("# delete: true")
        assert lines[7].startswith("# verbose: true")

    def test_prefills_given_options(self):
        text = default_config(Options(bucket_name="example.com", remote_path="blog", region="eu-west-1",
                                      verbose=False))

        assert "bucket_name: example.com" in text
        assert "remote_path: blog" in text
        assert "# region: eu-west-1" in text
        assert "# verbose: false" in text

    def test_document_loads_back_as_options(self):
        data = yaml.safe_load(default_config(Options(bucket_name="example.com")))

        options = Options.from_dict(data)

        assert options.bucket_name == "example.com"
        assert options.remote_path == "/"
        assert options.delete is None
