"""
Remote command channel to cluster hosts.
"""

from .executor import RemoteCommandExecutor, SSHCommandExecutor

__all__ = ["RemoteCommandExecutor", "SSHCommandExecutor"]
