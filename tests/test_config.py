"""Unit tests for layered configuration (ts_scaffolder.config).

Tests cover:
- Field table defaults and resolved models
- Layer precedence: defaults < settings file < environment < CLI
- Environment boolean coercion
- .env loading (missing, applied, malformed)
- Settings file loading (missing, malformed, non-object)
- Validation errors naming the offending field
- Computed paths
- argparse integration
"""

from __future__ import annotations

import argparse
from pathlib import Path

import pytest
from pydantic import ValidationError

from ts_scaffolder.config import (
    BUILD_FIELDS,
    ComputedPaths,
    ConfigField,
    ResolvedConfig,
    add_field_arguments,
    cli_values,
    compute_paths,
    load_env_file,
    load_settings_file,
    merge_layers,
    resolve_config,
    unknown_settings_keys,
    validate_model,
)
from ts_scaffolder.errors import (
    ConfigLoadError,
    ConfigMissingError,
    ConfigValidationError,
    SettingsParseError,
)


# ---------------------------------------------------------------------------
# Field table & defaults
# ---------------------------------------------------------------------------


class TestFieldTable:
    @pytest.mark.unit
    def test_every_build_field_has_flag_and_env(self):
        for item in BUILD_FIELDS:
            assert item.flag is not None
            assert item.env is not None

    @pytest.mark.unit
    def test_dest_replaces_dots(self):
        field = ConfigField("output.isWebapp", bool, False, "doc")
        assert field.dest == "output__isWebapp"

    @pytest.mark.unit
    def test_defaults(self, default_config):
        assert default_config.watch is False
        assert default_config.debug is False
        assert default_config.input.folder == "src"
        assert default_config.input.env_prefix == "WEBAPP_ENV_"
        assert default_config.input.html_template == "template.html"
        assert default_config.output.bundle == "bundle"
        assert default_config.output.folder == "dist"
        assert default_config.output.umd_name == "myApp"
        assert default_config.output.minify is True
        assert default_config.output.banner == "/* Bundled with rollup and <3! */"
        assert default_config.output.is_webapp is False

    @pytest.mark.unit
    def test_config_is_frozen(self, default_config):
        with pytest.raises(ValidationError):
            default_config.watch = True

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "settings, expected",
        [
            ({}, "build-node"),
            ({"watch": True}, "watch-node"),
            ({"output": {"isWebapp": True}}, "build-webapp"),
            ({"watch": True, "output": {"isWebapp": True}}, "watch-webapp"),
        ],
    )
    def test_mode(self, make_config, settings, expected):
        assert make_config(settings).mode == expected

    @pytest.mark.unit
    def test_dump_uses_setting_names(self, default_config):
        dumped = default_config.model_dump(by_alias=True)
        assert dumped["input"]["envPrefix"] == "WEBAPP_ENV_"
        assert dumped["output"]["isWebapp"] is False


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


class TestMergeLayers:
    @pytest.mark.unit
    def test_defaults_only(self):
        merged = merge_layers(BUILD_FIELDS)
        assert merged["output"]["folder"] == "dist"
        assert merged["watch"] is False

    @pytest.mark.unit
    def test_settings_override_defaults(self):
        merged = merge_layers(BUILD_FIELDS, settings={"output": {"folder": "build"}})
        assert merged["output"]["folder"] == "build"
        assert merged["output"]["bundle"] == "bundle"

    @pytest.mark.unit
    def test_env_overrides_settings(self):
        merged = merge_layers(
            BUILD_FIELDS,
            settings={"output": {"folder": "build"}},
            environ={"OUTPUT_FOLDER": "from-env"},
        )
        assert merged["output"]["folder"] == "from-env"

    @pytest.mark.unit
    def test_cli_overrides_env(self):
        merged = merge_layers(
            BUILD_FIELDS,
            settings={"output": {"folder": "build"}},
            environ={"OUTPUT_FOLDER": "from-env"},
            cli={"output.folder": "from-cli"},
        )
        assert merged["output"]["folder"] == "from-cli"

    @pytest.mark.unit
    def test_cli_false_overrides_true_settings(self):
        merged = merge_layers(
            BUILD_FIELDS,
            settings={"output": {"minify": True}},
            cli={"output.minify": False},
        )
        assert merged["output"]["minify"] is False

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw, expected",
        [("true", True), ("TRUE", True), ("1", True), ("yes", True), ("on", True),
         ("false", False), ("0", False), ("No", False), ("off", False)],
    )
    def test_env_bool_coercion(self, raw, expected):
        merged = merge_layers(BUILD_FIELDS, environ={"WATCH": raw})
        assert merged["watch"] is expected

    @pytest.mark.unit
    def test_env_bool_invalid(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            merge_layers(BUILD_FIELDS, environ={"OUTPUT_MINIFY": "maybe"})
        assert exc_info.value.field == "output.minify"
        assert "OUTPUT_MINIFY" in str(exc_info.value)

    @pytest.mark.unit
    def test_unrelated_env_ignored(self):
        merged = merge_layers(BUILD_FIELDS, environ={"PATH": "/usr/bin"})
        assert merged == merge_layers(BUILD_FIELDS)

    @pytest.mark.unit
    def test_section_not_an_object(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            merge_layers(BUILD_FIELDS, settings={"output": "dist"})
        assert exc_info.value.field == "output"


class TestValidation:
    @pytest.mark.unit
    def test_wrong_type_in_settings(self):
        merged = merge_layers(BUILD_FIELDS, settings={"output": {"minify": "yes"}})
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_model(ResolvedConfig, merged)
        assert exc_info.value.field == "output.minify"
        assert exc_info.value.exit_code == 6

    @pytest.mark.unit
    def test_number_is_not_a_string(self):
        merged = merge_layers(BUILD_FIELDS, settings={"output": {"bundle": 42}})
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_model(ResolvedConfig, merged)
        assert exc_info.value.field == "output.bundle"

    @pytest.mark.unit
    def test_unknown_keys(self):
        settings = {
            "watch": False,
            "colour": "blue",
            "output": {"folder": "dist", "gzip": True},
            "input": {"folder": "src"},
        }
        assert unknown_settings_keys(settings, BUILD_FIELDS) == ["colour", "output.gzip"]


# ---------------------------------------------------------------------------
# File sources
# ---------------------------------------------------------------------------


class TestLoadEnvFile:
    @pytest.mark.unit
    def test_missing_file_is_silent(self, tmp_path: Path):
        environ: dict[str, str] = {"KEEP": "1"}
        assert load_env_file(tmp_path / ".env", environ) == {}
        assert environ == {"KEEP": "1"}

    @pytest.mark.unit
    def test_values_are_applied_and_override(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# comment\nOUTPUT_FOLDER=build\nexport WEBAPP_ENV_API='https://api'\n",
            encoding="utf-8",
        )
        environ = {"OUTPUT_FOLDER": "dist"}
        applied = load_env_file(env_file, environ)
        assert applied == {"OUTPUT_FOLDER": "build", "WEBAPP_ENV_API": "https://api"}
        assert environ["OUTPUT_FOLDER"] == "build"
        assert environ["WEBAPP_ENV_API"] == "https://api"

    @pytest.mark.unit
    def test_key_without_value_is_skipped(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("LONELY\nA=1\n", encoding="utf-8")
        environ: dict[str, str] = {}
        assert load_env_file(env_file, environ) == {"A": "1"}

    @pytest.mark.unit
    def test_malformed_line_raises(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("A=1\nthis is not valid\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError) as exc_info:
            load_env_file(env_file, {})
        assert exc_info.value.exit_code == 1
        assert "line 2" in str(exc_info.value)

    @pytest.mark.unit
    def test_unreadable_file_raises(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.mkdir()
        with pytest.raises(ConfigLoadError):
            load_env_file(env_file, {})


class TestLoadSettingsFile:
    @pytest.mark.unit
    def test_missing(self, tmp_path: Path):
        with pytest.raises(ConfigMissingError) as exc_info:
            load_settings_file(tmp_path / "ts-scaffolder.json")
        assert "did you delete it?" in str(exc_info.value)
        assert exc_info.value.exit_code == 2

    @pytest.mark.unit
    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "ts-scaffolder.json"
        path.write_text("{ not json", encoding="utf-8")
        with pytest.raises(SettingsParseError) as exc_info:
            load_settings_file(path)
        assert exc_info.value.exit_code == 5

    @pytest.mark.unit
    def test_not_an_object(self, tmp_path: Path):
        path = tmp_path / "ts-scaffolder.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(SettingsParseError, match="JSON object"):
            load_settings_file(path)

    @pytest.mark.unit
    def test_valid(self, tmp_path: Path, write_settings):
        path = write_settings(tmp_path, {"watch": True})
        assert load_settings_file(path) == {"watch": True}


# ---------------------------------------------------------------------------
# resolve_config
# ---------------------------------------------------------------------------


class TestResolveConfig:
    @pytest.mark.unit
    def test_full_precedence(self, project_dir: Path, write_settings):
        write_settings(project_dir, {"output": {"folder": "a", "bundle": "a", "umdName": "a"}})
        (project_dir / ".env").write_text("OUTPUT_BUNDLE=b\nOUTPUT_UMDNAME=b\n", encoding="utf-8")
        environ = {"OUTPUT_BUNDLE": "ignored"}

        config = resolve_config({"output.umdName": "c"}, cwd=project_dir, environ=environ)

        assert config.output.folder == "a"
        assert config.output.bundle == "b"
        assert config.output.umd_name == "c"
        assert environ["OUTPUT_BUNDLE"] == "b"

    @pytest.mark.unit
    def test_missing_settings(self, tmp_path: Path):
        with pytest.raises(ConfigMissingError):
            resolve_config(cwd=tmp_path, environ={})

    @pytest.mark.unit
    def test_env_file_error_comes_first(self, tmp_path: Path):
        (tmp_path / ".env").write_text("oops oops\n", encoding="utf-8")
        with pytest.raises(ConfigLoadError):
            resolve_config(cwd=tmp_path, environ={})

    @pytest.mark.unit
    def test_unknown_keys_warn(self, project_dir: Path, write_settings, capsys):
        write_settings(project_dir, {"bogus": 1})
        config = resolve_config(cwd=project_dir, environ={})
        assert config.output.folder == "dist"
        assert "bogus" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Computed paths
# ---------------------------------------------------------------------------


class TestComputePaths:
    @pytest.mark.unit
    def test_relative_paths(self, default_config, tmp_path: Path):
        paths = compute_paths(default_config, tmp_path)
        base = tmp_path.resolve()
        assert isinstance(paths, ComputedPaths)
        assert paths.output_folder == base / "dist"
        assert paths.bundle_path == base / "dist" / "bundle.js"
        assert paths.minified_bundle_path == base / "dist" / "bundle.min.js"
        assert paths.html_template_path == base / "src" / "template.html"
        assert paths.entry_path == base / "src" / "index.ts"

    @pytest.mark.unit
    def test_suffix_is_appended(self, make_config, tmp_path: Path):
        config = make_config({"output": {"bundle": "my.app"}})
        paths = compute_paths(config, tmp_path)
        assert paths.bundle_path.name == "my.app.js"
        assert paths.minified_bundle_path.name == "my.app.min.js"

    @pytest.mark.unit
    def test_absolute_output_folder(self, make_config, tmp_path: Path):
        target = tmp_path / "elsewhere"
        config = make_config({"output": {"folder": str(target)}})
        paths = compute_paths(config, tmp_path / "project")
        assert paths.output_folder == target.resolve()


# ---------------------------------------------------------------------------
# argparse integration
# ---------------------------------------------------------------------------


class TestArguments:
    @pytest.fixture
    def parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser()
        add_field_arguments(parser, BUILD_FIELDS)
        return parser

    @pytest.mark.unit
    def test_absent_flags_are_not_collected(self, parser):
        args = parser.parse_args([])
        assert cli_values(args, BUILD_FIELDS) == {}

    @pytest.mark.unit
    def test_flags_are_collected_by_path(self, parser):
        args = parser.parse_args(
            ["--watch", "--no-output-minify", "--output-folder", "out", "--input-envprefix", "APP_"]
        )
        assert cli_values(args, BUILD_FIELDS) == {
            "watch": True,
            "output.minify": False,
            "output.folder": "out",
            "input.envPrefix": "APP_",
        }
