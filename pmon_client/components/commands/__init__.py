"""
Commands: project and manager control over HTTP.
"""

from pmon_client.components.commands.service import CommandResult, ProjectCommandService

__all__ = ["CommandResult", "ProjectCommandService"]
