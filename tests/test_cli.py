"""
Command line interface.
"""

import textwrap

import pytest
from click.testing import CliRunner

from trellis import __version__
from trellis.cli import main


SAMPLE_APP = textwrap.dedent('''
    from typing import Annotated

    from trellis import GET, POST, Param, controller, module, TrellisFactory


    @controller("/users")
    class UsersController:

        @GET("/")
        def index(self):
            return []

        @GET("/:id")
        def show(self, id: Annotated[str, Param()]):
            return {}

        @POST("/")
        def create(self):
            return {}


    @module(controllers=[UsersController])
    class AppModule:
        pass


    @module()
    class EmptyModule:
        pass


    app = TrellisFactory.create(AppModule, {"global_prefix": "/v1"})
''')


@pytest.fixture
def project(tmp_path, monkeypatch):
    (tmp_path / "cli_sample_app.py").write_text(SAMPLE_APP)
    monkeypatch.chdir(tmp_path)
    monkeypatch.syspath_prepend(str(tmp_path))
    return tmp_path


class TestCli:

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_routes_from_module(self, project):
        result = CliRunner().invoke(main, ["routes", "cli_sample_app:AppModule"])
        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert [line.split()[:2] for line in lines] == [
            ["GET", "/users"],
            ["GET", "/users/:id"],
            ["POST", "/users"],
        ]
        assert lines[1].endswith("UsersController.show")

    def test_routes_from_application(self, project):
        result = CliRunner().invoke(main, ["routes", "cli_sample_app:app"])
        assert result.exit_code == 0, result.output
        assert "/v1/users/:id" in result.output

    def test_routes_with_config_file(self, project):
        (project / "conf.yaml").write_text("global_prefix: /api\n")
        result = CliRunner().invoke(main, ["routes", "cli_sample_app:AppModule", "--config", "conf.yaml"])
        assert result.exit_code == 0, result.output
        assert "/api/users" in result.output

    def test_no_routes(self, project):
        result = CliRunner().invoke(main, ["routes", "cli_sample_app:EmptyModule"])
        assert result.exit_code == 0
        assert "No routes registered" in result.output

    def test_bad_target(self, project):
        result = CliRunner().invoke(main, ["routes", "cli_sample_app"])
        assert result.exit_code != 0
        assert "module:attribute" in result.output

        result = CliRunner().invoke(main, ["routes", "cli_sample_app:Missing"])
        assert result.exit_code != 0
        assert "has no attribute" in result.output

    def test_invalid_config(self, project):
        (project / "conf.yaml").write_text("unknown_key: 1\n")
        result = CliRunner().invoke(main, ["routes", "cli_sample_app:AppModule", "--config", "conf.yaml"])
        assert result.exit_code != 0
        assert "Invalid configuration" in result.output
