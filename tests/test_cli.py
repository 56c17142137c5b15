"""
Tests for the pmon CLI and its terminal collaborator.
"""

from unittest.mock import AsyncMock, MagicMock, patch

from rich.console import Console
from typer.testing import CliRunner

from pmon_client import __version__
from pmon_client.cli import RichCollaborator, app
from pmon_client.components.connection import ConnectionState
from pmon_client.components.upload import DeploymentPhase, DeploymentProgress
from pmon_client.config.constants import NotificationLevel
from pmon_client.config.settings import ClientSettings

runner = CliRunner()


def recording_console() -> Console:
    return Console(record=True, width=120, color_system=None)


class TestRichCollaborator:

    def test_status_table_per_instance(self):
        out = recording_console()
        collaborator = RichCollaborator(out)

        collaborator.render_status([
            {
                "projectName": "Plant A",
                "progs": [{"manager": "WCCILevent", "state": 2, "pid": 4711, "manNum": 1}],
            }
        ])

        text = out.export_text()
        assert "Plant A" in text
        assert "WCCILevent" in text
        assert "4711" in text

    def test_status_hidden_when_disabled(self):
        out = recording_console()
        RichCollaborator(out, show_status=False).render_status([{"projectName": "Plant A"}])
        assert out.export_text() == ""

    def test_log_lines_are_printed_verbatim(self):
        out = recording_console()
        collaborator = RichCollaborator(out)

        collaborator.render_log_lines("WCCOActrl.log", ["[bold]not markup[/bold]"], replace=True)

        text = out.export_text()
        assert "WCCOActrl.log" in text
        assert "[bold]not markup[/bold]" in text

    def test_notifications_and_state(self):
        out = recording_console()
        collaborator = RichCollaborator(out)

        collaborator.notify(NotificationLevel.ERROR, "Connection Lost", "Giving up")
        collaborator.connection_status(ConnectionState.DISCONNECTED, terminal=True)
        collaborator.server_availability(False)

        text = out.export_text()
        assert "Connection Lost: Giving up" in text
        assert "disconnected (gave up)" in text
        assert "Server unreachable" in text

    def test_deployment_without_progress_bar(self):
        out = recording_console()
        collaborator = RichCollaborator(out)

        collaborator.deployment_progress(
            DeploymentProgress(DeploymentPhase.COMPLETED, percent=100.0, message="Deployed")
        )

        assert "Deployment completed: Deployed" in out.export_text()


class TestCommands:

    def test_version(self):
        with patch("pmon_client.cli.get_settings", return_value=ClientSettings(_env_file=None)):
            result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout
        assert "http://localhost:8080" in result.stdout

    def test_invalid_settings_exit_with_problems(self):
        bad = ClientSettings(_env_file=None, base_url="scada01", upload_chunk_size=0)

        with patch("pmon_client.cli.get_settings", return_value=bad), \
                patch("pmon_client.cli.setup_logging"):
            result = runner.invoke(app, ["history"])

        assert result.exit_code == 1
        assert "BASE_URL must be an http:// or https:// URL" in result.stdout
        assert "UPLOAD_CHUNK_SIZE must be at least 1 byte" in result.stdout

    def test_manager_rejects_unknown_action(self):
        result = runner.invoke(app, ["manager", "explode", "1", "scada-01"])
        assert result.exit_code != 0

    def test_health_reports_both_checks(self):
        session = MagicMock()
        session.http.probe = AsyncMock(return_value=True)
        session.tokens.acquire = AsyncMock(return_value="token-1")
        session.stop = AsyncMock()

        with patch("pmon_client.cli._session", return_value=session):
            result = runner.invoke(app, ["health"])

        assert result.exit_code == 0
        assert "Reachable" in result.stdout
        assert "Issued" in result.stdout
        session.stop.assert_awaited_once()

    def test_health_stops_session_on_unexpected_error(self):
        session = MagicMock()
        session.http.probe = AsyncMock(side_effect=RuntimeError("boom"))
        session.stop = AsyncMock()

        with patch("pmon_client.cli._session", return_value=session):
            result = runner.invoke(app, ["health"])

        assert isinstance(result.exception, RuntimeError)
        session.stop.assert_awaited_once()
