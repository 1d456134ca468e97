"""Device shell access."""
from rootpilot.device.shell import ShellResult, ShellSession, run_shell

__all__ = ["ShellResult", "ShellSession", "run_shell"]
