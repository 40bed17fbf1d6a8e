#!/usr/bin/env python3
"""
test_templates.py - End-to-end tests for template rendering

Renders the fixture templates under tests/fixtures/configs and checks the
late-bound functions:
1. include
2. tpl
3. required
4. lookup
"""

import json
from pathlib import Path

import pytest

from chartfuncs.config import ConfigLoader, RenderSettings
from chartfuncs.rendering import TemplateRenderer
from chartfuncs.template import RenderError, RequiredValueError

FIXTURES = Path(__file__).parent / "tests" / "fixtures" / "configs"

EXPECTED_CONFIGMAP = """apiVersion: v1
kind: ConfigMap
metadata:
  name: web
  labels:
    app: web
    replicas: "2"
data:
  config.json: '{"features":["metrics","tracing"],"log_level":"info"}'
  web.json: '[{"name":"web","port":8080}]'
"""


# Test fixtures
@pytest.fixture
def config_loader():
    """ConfigLoader over the fixture configuration directory."""
    return ConfigLoader(config_dir=str(FIXTURES))


@pytest.fixture
def renderer(config_loader):
    """TemplateRenderer instance for tests."""
    return TemplateRenderer(config_loader)


# ============================================================================
# Configuration
# ============================================================================

class TestConfigLoader:

    def test_settings(self, config_loader):
        settings = config_loader.load_settings()
        assert settings.disabled_functions == ["toToml"]
        assert settings.max_include_depth == 5

    def test_default_settings(self, tmp_path):
        assert ConfigLoader(config_dir=str(tmp_path)).load_settings() == RenderSettings()

    def test_unknown_setting(self, tmp_path):
        (tmp_path / "settings.json").write_text(json.dumps({"colour": "blue"}))
        with pytest.raises(ValueError, match="Unknown settings: colour"):
            ConfigLoader(config_dir=str(tmp_path)).load_settings()

    def test_load_values(self, config_loader):
        values = config_loader.load_values("default")
        assert values["name"] == "web"
        assert config_loader.load_values("empty.yaml") == {}

    def test_missing_files(self, config_loader):
        with pytest.raises(FileNotFoundError):
            config_loader.load_template("missing.tpl")
        with pytest.raises(FileNotFoundError):
            config_loader.load_values("missing")

    def test_template_outside_templates_dir(self, config_loader):
        with pytest.raises(FileNotFoundError):
            config_loader.load_template("../settings.json")
        with pytest.raises(FileNotFoundError):
            config_loader.load_template(str(FIXTURES / "settings.json"))

    def test_values_outside_values_dir(self, config_loader):
        with pytest.raises(FileNotFoundError):
            config_loader.load_values("../settings.json")
        with pytest.raises(FileNotFoundError):
            config_loader.load_values("../templates/configmap")

    def test_available_templates(self, config_loader):
        assert "configmap.yaml" in config_loader.get_available_templates()


# ============================================================================
# Rendering
# ============================================================================

class TestRender:

    def test_configmap(self, renderer):
        assert renderer.render_with_values("configmap.yaml", "default") == EXPECTED_CONFIGMAP

    def test_render_string(self, renderer):
        assert renderer.render_string("{{ $.a | toYaml }}", {"a": {"b": 1}}) == "b: 1"

    def test_disabled_function(self, renderer):
        with pytest.raises(RenderError, match='function "toToml" not defined'):
            renderer.render_string("{{ toToml($) }}", {"a": 1})

    def test_document_stream(self, renderer):
        values = {"manifests": "kind: Service\n---\nkind: Deployment\n"}
        output = renderer.render("documents.tpl", values)
        assert output == '[{"kind":"Service"},{"kind":"Deployment"}]\n'

    def test_missing_template(self, renderer):
        with pytest.raises(FileNotFoundError):
            renderer.render("missing.tpl", {})


class TestInclude:

    def test_include_renders_named_template(self, renderer):
        output = renderer.render_string("{{ include('labels.tpl', $) }}", {"name": "api", "replicas": 1})
        assert output == '    app: api\n    replicas: "1"\n'

    def test_recursion_limit(self, renderer):
        with pytest.raises(RenderError, match="nested reference name: loop.tpl"):
            renderer.render("loop.tpl", {})

    def test_missing_include(self, renderer):
        with pytest.raises(RenderError, match='no template "nope.tpl" defined') as excinfo:
            renderer.render("missing_include.tpl", {})

        assert excinfo.value.template_name == "missing_include.tpl"


class TestTpl:

    def test_renders_string_as_template(self, renderer):
        values = {"template": "name={{ $.name }}", "name": "web"}
        assert renderer.render_string("{{ tpl($.template, $) }}", values) == "name=web"


class TestRequired:

    def test_present_value_passes_through(self, renderer):
        assert renderer.render_string("{{ required('name is required', $.name) }}", {"name": "web"}) == "web"

    @pytest.mark.parametrize("values", [{}, {"name": ""}])
    def test_missing_value(self, renderer, values):
        with pytest.raises(RenderError, match="error calling required: name is required") as excinfo:
            renderer.render_string("{{ required('name is required', $.name) }}", values)

        assert isinstance(excinfo.value.__cause__, RequiredValueError)


class TestLookup:

    def test_without_cluster(self, renderer):
        assert renderer.render_string("{{ lookup('v1', 'Secret', 'default', 'db') | toJson }}", {}) == "{}"

    def test_with_cluster(self, config_loader):
        calls = []

        def lookup(api_version, kind, namespace, name):
            calls.append((api_version, kind, namespace, name))
            return {"data": {"password": "c2VjcmV0"}}

        renderer = TemplateRenderer(config_loader, lookup=lookup)
        output = renderer.render_string("{{ lookup('v1', 'Secret', 'default', 'db') | toJson }}", {})

        assert output == '{"data":{"password":"c2VjcmV0"}}'
        assert calls == [("v1", "Secret", "default", "db")]
