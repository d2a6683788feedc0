"""Tests for the command line front end."""
import pytest
import yaml
from typer.testing import CliRunner

from sitebuild import pipelines
from sitebuild.orchestrator.cli import app
from sitebuild.orchestrator.server import LiveReload
from sitebuild.tasks.revision import read_manifest


runner = CliRunner()


@pytest.fixture
def config_file(site, tmp_path):
    path = tmp_path / "sitebuild.yaml"
    path.write_text(yaml.dump({"root": str(site)}))
    return str(path)


class TestList:
    def test_lists_pipelines_and_tasks(self):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "- build" in result.output
        assert "- default" in result.output
        assert "- optimise-img" in result.output

    def test_tasks_show_inputs_and_outputs(self, config_file):
        result = runner.invoke(app, ["list", "--config", config_file])
        assert result.exit_code == 0, result.output
        line = next(l for l in result.output.splitlines() if l.startswith("- build-sass"))
        assert "src/sass/main.scss" in line
        assert line.endswith("-> dist/build/temp/css/style.css")


class TestRun:
    def test_build_command(self, site, config_file):
        result = runner.invoke(app, ["build", "--config", config_file])
        assert result.exit_code == 0, result.output
        manifest = read_manifest(site / "dist/assets/rev-manifest.json")
        assert set(manifest) == {"css/style.css", "js/main.js"}

    def test_single_task(self, site, config_file):
        result = runner.invoke(app, ["run", "build-fonts", "--config", config_file])
        assert result.exit_code == 0, result.output
        assert (site / "dist/fonts/body.woff2").is_file()

    def test_only_skips_predecessors(self, site, config_file):
        result = runner.invoke(app, ["run", "update", "--only", "--config", config_file])
        assert result.exit_code == 0, result.output
        # hash did not run, so nothing was written
        assert not (site / "dist").exists()

    def test_failure_exits_non_zero(self, site, config_file):
        (site / "src/sass/main.scss").write_text("body { color: ; ")
        result = runner.invoke(app, ["run", "build", "--config", config_file])
        assert result.exit_code == 1
        assert "build-sass" in result.output

    def test_unknown_name(self, config_file):
        result = runner.invoke(app, ["run", "deploy", "--config", config_file])
        assert result.exit_code == 1
        assert "Unknown task or pipeline" in result.output

    def test_bad_config(self, tmp_path):
        result = runner.invoke(app, ["run", "clean", "--config", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_workers_option(self, site, config_file):
        result = runner.invoke(app, ["run", "build-all", "--workers", "1", "--config", config_file])
        assert result.exit_code == 0, result.output
        assert (site / "dist/build/temp/js/main.js").is_file()

    def test_default_builds_then_serves(self, site, config_file, monkeypatch):
        calls = []
        monkeypatch.setattr(pipelines, "run_service", lambda name, ctx: calls.append((name, ctx)))
        result = runner.invoke(app, ["run", "--config", config_file])
        assert result.exit_code == 0, result.output
        ((service, ctx),) = calls
        assert service == "serve"
        assert isinstance(ctx.reloader, LiveReload)
        assert set(read_manifest(site / "dist/assets/rev-manifest.json")) == {
            "css/style.css",
            "js/main.js",
        }
