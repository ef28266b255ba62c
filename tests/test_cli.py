"""Tests for Metascope CLI."""

import json

import pytest
import respx
from click.testing import CliRunner
from httpx import Response

from metascope.cli import cli
from metascope.client.dataverse import DISCOVERY_URL
from metascope.config import MetascopeConfig

from conftest import API, ENV_URL


FETCH_XML = '<fetch top="5"><entity name="account"><attribute name="name" /></entity></fetch>'


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def query_file(tmp_path):
    path = tmp_path / "query.xml"
    path.write_text(FETCH_XML, encoding="utf-8")
    return path


def mock_fetch_xml(rows) -> None:
    respx.get(f"{API}/EntityDefinitions(LogicalName='account')").mock(
        return_value=Response(200, json={"EntitySetName": "accounts"})
    )
    respx.get(f"{API}/accounts").mock(return_value=Response(200, json={"value": rows}))


class TestCLI:
    """Tests for the main CLI."""

    def test_cli_version(self, runner: CliRunner) -> None:
        """Test CLI version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_cli_help(self, runner: CliRunner) -> None:
        """Test CLI help output."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Dataverse metadata browser" in result.output
        for command in ("envs", "discover", "fetch", "config"):
            assert command in result.output

    def test_no_environment(self, runner: CliRunner) -> None:
        """Test starting without an environment fails with a message."""
        result = runner.invoke(cli, [])
        assert result.exit_code == 1
        assert "No environment given" in result.output

    @respx.mock
    def test_unreachable_environment(self, runner: CliRunner) -> None:
        """Test an environment rejecting the credential fails at startup."""
        respx.get(f"{API}/WhoAmI").mock(return_value=Response(401))
        result = runner.invoke(cli, ["--env", ENV_URL, "--token", "bad"])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "az login" in result.output

    @respx.mock
    def test_network_failure_at_startup(self, runner: CliRunner) -> None:
        """Test a network failure at startup exits with status 1."""
        respx.get(f"{API}/WhoAmI").mock(return_value=Response(503))
        result = runner.invoke(cli, ["--env", ENV_URL, "--token", "t"])
        assert result.exit_code == 1
        assert "HTTP 503" in result.output

    @respx.mock
    def test_browse_remembers_environment(self, runner: CliRunner, monkeypatch) -> None:
        """Test a reachable environment is saved and the app is started."""
        started = []
        monkeypatch.setattr("metascope.tui.MetascopeApp.run", lambda self: started.append(self))
        respx.get(f"{API}/WhoAmI").mock(return_value=Response(200, json={"UserId": "u1"}))

        result = runner.invoke(cli, ["--env", ENV_URL + "/", "--token", "t", "--vim"])
        assert result.exit_code == 0, result.output
        assert len(started) == 1
        assert started[0].session.mode.value == "vim"
        assert MetascopeConfig.load().current_environment == ENV_URL

    @respx.mock
    def test_env_from_environment_variable(self, runner: CliRunner, monkeypatch) -> None:
        """Test DATAVERSE_URL and DATAVERSE_TOKEN are honored."""
        monkeypatch.setattr("metascope.tui.MetascopeApp.run", lambda self: None)
        route = respx.get(f"{API}/WhoAmI").mock(return_value=Response(200, json={"UserId": "u1"}))
        result = runner.invoke(cli, [], env={"DATAVERSE_URL": ENV_URL, "DATAVERSE_TOKEN": "from-env"})
        assert result.exit_code == 0, result.output
        assert route.calls.last.request.headers["Authorization"] == "Bearer from-env"


class TestEnvsCommand:
    """Tests for the envs command group."""

    def test_envs_list_empty(self, runner: CliRunner) -> None:
        """Test listing when nothing is configured."""
        result = runner.invoke(cli, ["envs", "list"])
        assert result.exit_code == 0
        assert "No environments configured." in result.output

    def test_envs_add_and_list(self, runner: CliRunner) -> None:
        """Test added environments are listed with the current one marked."""
        runner.invoke(cli, ["envs", "add", "https://a.crm.dynamics.com"])
        result = runner.invoke(cli, ["envs", "add", "https://b.crm.dynamics.com/"])
        assert result.exit_code == 0
        assert "Added environment: https://b.crm.dynamics.com" in result.output

        result = runner.invoke(cli, ["envs", "list"])
        assert "  https://a.crm.dynamics.com" in result.output
        assert "* https://b.crm.dynamics.com" in result.output

    def test_envs_add_invalid(self, runner: CliRunner) -> None:
        """Test a URL without a scheme is rejected."""
        result = runner.invoke(cli, ["envs", "add", "contoso.crm.dynamics.com"])
        assert result.exit_code == 2

    def test_envs_remove(self, runner: CliRunner) -> None:
        """Test removing a known and an unknown environment."""
        runner.invoke(cli, ["envs", "add", "https://a.crm.dynamics.com"])
        result = runner.invoke(cli, ["envs", "remove", "https://a.crm.dynamics.com"])
        assert result.exit_code == 0
        assert MetascopeConfig.load().environments == []

        result = runner.invoke(cli, ["envs", "remove", "https://a.crm.dynamics.com"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestFetchCommand:
    """Tests for the fetch command."""

    @respx.mock
    def test_fetch_to_stdout(self, runner: CliRunner, query_file) -> None:
        """Test results are printed as CSV by default."""
        mock_fetch_xml([{"name": "Contoso"}, {"name": "Fabrikam"}])
        result = runner.invoke(cli, ["--env", ENV_URL, "--token", "t", "fetch", str(query_file)])
        assert result.exit_code == 0, result.output
        assert result.output == "name\nContoso\nFabrikam\n"

    @respx.mock
    def test_fetch_to_file(self, runner: CliRunner, query_file, tmp_path) -> None:
        """Test results can be exported to a file."""
        mock_fetch_xml([{"name": "Contoso"}])
        out = tmp_path / "result.json"
        result = runner.invoke(
            cli,
            ["--env", ENV_URL, "--token", "t", "fetch", str(query_file), "-f", "json", "-o", str(out)],
        )
        assert result.exit_code == 0, result.output
        assert "Exported 1 rows" in result.output
        assert json.loads(out.read_text(encoding="utf-8")) == [{"name": "Contoso"}]

    def test_fetch_from_stdin_invalid(self, runner: CliRunner) -> None:
        """Test malformed FetchXML is a usage error."""
        result = runner.invoke(
            cli, ["--env", ENV_URL, "--token", "t", "fetch", "-"], input="<fetch>"
        )
        assert result.exit_code == 2
        assert "not well-formed" in result.output

    @respx.mock
    def test_fetch_rejected_by_service(self, runner: CliRunner, query_file) -> None:
        """Test a query the service rejects is a usage error."""
        respx.get(f"{API}/EntityDefinitions(LogicalName='account')").mock(
            return_value=Response(200, json={"EntitySetName": "accounts"})
        )
        respx.get(f"{API}/accounts").mock(
            return_value=Response(400, json={"error": {"message": "'foo' is not a valid attribute"}})
        )
        result = runner.invoke(cli, ["--env", ENV_URL, "--token", "t", "fetch", str(query_file)])
        assert result.exit_code == 2
        assert "not a valid attribute" in result.output

    @respx.mock
    def test_fetch_auth_failure(self, runner: CliRunner, query_file) -> None:
        """Test an auth failure exits with status 1 and a hint."""
        respx.get(f"{API}/EntityDefinitions(LogicalName='account')").mock(return_value=Response(401))
        result = runner.invoke(cli, ["--env", ENV_URL, "--token", "t", "fetch", str(query_file)])
        assert result.exit_code == 1
        assert "Hint:" in result.output


class TestDiscoverCommand:
    """Tests for the discover command."""

    @respx.mock
    def test_discover_and_add(self, runner: CliRunner) -> None:
        """Test discovered environments are listed and remembered."""
        respx.get(DISCOVERY_URL).mock(
            return_value=Response(
                200,
                json={"value": [{"Id": "1", "Url": "https://a.crm.dynamics.com", "FriendlyName": "Alpha", "Region": "EMEA"}]},
            )
        )
        result = runner.invoke(cli, ["--token", "t", "discover", "--add"])
        assert result.exit_code == 0, result.output
        assert "Alpha [EMEA]" in result.output
        assert "Added 1 environments" in result.output
        assert MetascopeConfig.load().environments == ["https://a.crm.dynamics.com"]


class TestConfigCommand:
    """Tests for the config command group."""

    def test_config_show(self, runner: CliRunner) -> None:
        """Test the configuration is printed as JSON."""
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        body = result.output.split("\n", 1)[1]
        assert json.loads(body)["key_mode"] == "arrows"

    def test_config_set(self, runner: CliRunner) -> None:
        """Test a setting is changed and saved."""
        result = runner.invoke(cli, ["config", "set", "key_mode", "vim"])
        assert result.exit_code == 0
        assert MetascopeConfig.load().key_mode == "vim"

        runner.invoke(cli, ["config", "set", "fuzzy_search", "true"])
        assert MetascopeConfig.load().fuzzy_search is True

    def test_config_set_invalid(self, runner: CliRunner) -> None:
        """Test invalid values and keys are rejected."""
        assert runner.invoke(cli, ["config", "set", "key_mode", "emacs"]).exit_code == 2
        assert runner.invoke(cli, ["config", "set", "colour", "red"]).exit_code == 2

    def test_config_reset(self, runner: CliRunner) -> None:
        """Test reset restores defaults."""
        runner.invoke(cli, ["config", "set", "theme", "nord"])
        result = runner.invoke(cli, ["config", "reset", "--yes"])
        assert result.exit_code == 0
        assert MetascopeConfig.load().theme == "textual-dark"
