"""Exchange Online PowerShell client for security group membership."""

import subprocess
import json
import logging
from typing import Callable, Optional
from dataclasses import dataclass

from config import Config

logger = logging.getLogger(__name__)

END_MARKER = "__SGADD_END__"
ERROR_MARKER = "__SGADD_ERROR__"

SHELL_PREFERENCES = (
    "$ErrorActionPreference = 'Stop'; "
    "$WarningPreference = 'SilentlyContinue'; "
    "$ProgressPreference = 'SilentlyContinue'"
)


class ExchangeError(RuntimeError):
    """A PowerShell / Exchange Online command failed."""


class ModuleNotInstalledError(ExchangeError):
    """The ExchangeOnlineManagement module is not available."""


@dataclass
class ExchangeMember:
    """Represents a member of a mail-enabled security group."""
    name: str
    primary_smtp: str
    legacy_address: str = ""

    @classmethod
    def from_exchange(cls, data: dict) -> "ExchangeMember":
        """Create ExchangeMember from Get-DistributionGroupMember JSON output."""
        return cls(
            name=data.get("Name") or "",
            primary_smtp=data.get("PrimarySmtpAddress") or "",
            legacy_address=data.get("WindowsLiveID") or "",
        )


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string."""
    return "'" + str(value).replace("'", "''") + "'"


def wrap_command(command: str) -> str:
    """One stdin line: run ``command``, report a caught error, then the end marker."""
    return (
        f"try {{ {command} }} catch {{ Write-Output ('{ERROR_MARKER} ' + "
        f"($_.Exception.Message -replace '\\r?\\n', ' ')) }}; Write-Output '{END_MARKER}'"
    )


def raise_for_error(error_msg: str):
    """Raise the ExchangeError matching a PowerShell error message."""
    lowered = error_msg.lower()
    if "not loaded because no valid module file" in lowered or "is not recognized" in lowered:
        raise ModuleNotInstalledError(
            f"{Config.EXCHANGE_MODULE} module not installed.\n"
            f"Run in PowerShell: Install-Module {Config.EXCHANGE_MODULE} -Scope CurrentUser -Force"
        )
    if "certificate" in lowered or "thumbprint" in lowered:
        raise ExchangeError(
            f"Certificate authentication failed: {error_msg}\n"
            "Check EXCHANGE_CERT_THUMBPRINT, EXCHANGE_APP_ID and EXCHANGE_ORGANIZATION."
        )
    raise ExchangeError(error_msg or "PowerShell command failed")


class ExchangeClient:
    """Client for Exchange Online PowerShell operations.

    One PowerShell process lives for the whole session: commands are
    written to its stdin one line at a time and each command's output ends
    with a marker line. The module is imported and the connection made
    once, in that process.

    ``runner`` (default :func:`subprocess.run`) runs the one-off module
    check and install; ``popen`` (default :class:`subprocess.Popen`)
    starts the session process. Both can be swapped out in tests.
    """

    def __init__(self, runner: Optional[Callable] = None, popen: Optional[Callable] = None):
        self._runner = runner or subprocess.run
        self._popen = popen or subprocess.Popen
        self._proc = None
        self._module_loaded = False
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def _connect_command(self) -> str:
        """Build the Connect-ExchangeOnline command for the configured auth."""
        if Config.uses_certificate():
            return (
                f"Connect-ExchangeOnline -AppId {ps_quote(Config.EXCHANGE_APP_ID)} "
                f"-CertificateThumbprint {ps_quote(Config.EXCHANGE_CERT_THUMBPRINT)} "
                f"-Organization {ps_quote(Config.EXCHANGE_ORGANIZATION)} "
                f"-ShowBanner:$false -ErrorAction Stop"
            )
        if Config.EXCHANGE_ADMIN_UPN:
            return (
                f"Connect-ExchangeOnline -UserPrincipalName {ps_quote(Config.EXCHANGE_ADMIN_UPN)} "
                f"-ShowBanner:$false -ErrorAction Stop"
            )
        return "Connect-ExchangeOnline -ShowBanner:$false -ErrorAction Stop"

    def _invoke(self, script: str) -> subprocess.CompletedProcess:
        """Run a one-off PowerShell script in its own process."""
        try:
            return self._runner(
                [Config.POWERSHELL_EXE, '-NoProfile', '-ExecutionPolicy', 'Bypass', '-Command', script],
                capture_output=True,
                text=True
            )
        except OSError as e:
            raise ExchangeError(f"Could not start {Config.POWERSHELL_EXE}: {e}") from e

    def _ensure_shell(self):
        """Start the session process if it is not running."""
        if self._proc is not None:
            return self._proc

        logger.debug(f"Starting {Config.POWERSHELL_EXE} session")
        try:
            self._proc = self._popen(
                [Config.POWERSHELL_EXE, '-NoProfile', '-NoLogo', '-ExecutionPolicy', 'Bypass', '-Command', '-'],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise ExchangeError(f"Could not start {Config.POWERSHELL_EXE}: {e}") from e

        self._module_loaded = False
        self._connected = False
        self._run_powershell(SHELL_PREFERENCES)
        return self._proc

    def _lost_shell(self) -> ExchangeError:
        self._proc = None
        self._module_loaded = False
        self._connected = False
        return ExchangeError("PowerShell session ended unexpectedly")

    def _run_powershell(self, command: str) -> str:
        """Run a command in the session process and return its output."""
        proc = self._ensure_shell()
        logger.debug(f"Command: {command[:100]}...")

        try:
            proc.stdin.write(wrap_command(command) + "\n")
            proc.stdin.flush()
        except OSError as e:
            raise self._lost_shell() from e

        lines = []
        error = None
        while True:
            line = proc.stdout.readline()
            if not line:
                raise self._lost_shell()
            line = line.rstrip("\r\n")
            if line == END_MARKER:
                break
            if line.startswith(ERROR_MARKER):
                error = line[len(ERROR_MARKER):].strip()
            else:
                lines.append(line)

        if error is not None:
            logger.debug(f"PowerShell error: {error}")
            raise_for_error(error)
        return "\n".join(lines)

    def _run_json(self, command: str) -> list[dict]:
        """Run a command piped to ConvertTo-Json and return a list of objects."""
        output = self._run_powershell(f"{command} | ConvertTo-Json -Compress")
        if not output.strip():
            return []

        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ExchangeError(f"Unexpected output from Exchange: {output.strip()[:200]}") from e

        # Handle single result (not a list)
        if isinstance(data, dict):
            data = [data]
        return data

    def _require_connection(self):
        if not self._connected:
            raise ExchangeError("Not connected to Exchange Online")

    def check_module_installed(self) -> bool:
        """Check if ExchangeOnlineManagement is installed."""
        result = self._invoke(
            f"Get-Module -ListAvailable {Config.EXCHANGE_MODULE} | Select-Object -First 1"
        )
        return result.returncode == 0 and bool((result.stdout or "").strip())

    def install_module(self):
        """Install ExchangeOnlineManagement for the current user."""
        logger.info(f"Installing {Config.EXCHANGE_MODULE}...")
        result = self._invoke(
            f"Install-Module -Name {Config.EXCHANGE_MODULE} -Scope CurrentUser "
            f"-Force -AllowClobber -ErrorAction Stop"
        )
        if result.returncode != 0:
            raise ModuleNotInstalledError(
                (result.stderr or "").strip() or f"Install-Module {Config.EXCHANGE_MODULE} failed"
            )

    def import_module(self):
        """Load the module into the session process."""
        self._run_powershell(f"Import-Module {Config.EXCHANGE_MODULE} -ErrorAction Stop")
        self._module_loaded = True

    def connect(self):
        """Connect the session to Exchange Online."""
        if self._connected:
            return
        if not self._module_loaded:
            self.import_module()

        logger.info("Connecting to Exchange Online...")
        self._run_powershell(self._connect_command())
        self._connected = True
        logger.info("Connected to Exchange Online")

    def disconnect(self):
        """Disconnect the session from Exchange Online."""
        self._require_connection()
        self._run_powershell("Disconnect-ExchangeOnline -Confirm:$false")
        self._connected = False
        logger.info("Disconnected from Exchange Online")

    def close(self):
        """Stop the session process."""
        proc, self._proc = self._proc, None
        self._module_loaded = False
        self._connected = False
        if proc is None:
            return

        try:
            proc.stdin.write("exit\n")
            proc.stdin.flush()
            proc.stdin.close()
        except OSError:
            # Already gone
            pass
        try:
            proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()

    def get_members(self, identity: str) -> list[ExchangeMember]:
        """Get all members of a group (unlimited result size)."""
        self._require_connection()
        logger.info(f"Fetching members of: {identity}")

        data = self._run_json(
            f"Get-DistributionGroupMember -Identity {ps_quote(identity)} -ResultSize Unlimited | "
            "Select-Object Name, PrimarySmtpAddress, WindowsLiveID"
        )
        members = [ExchangeMember.from_exchange(item) for item in data]

        logger.info(f"Found {len(members)} members")
        return members

    def add_member(self, identity: str, member: str) -> bool:
        """Add a member to a group."""
        self._require_connection()
        logger.info(f"Adding {member} to {identity}")

        self._run_powershell(
            f"Add-DistributionGroupMember -Identity {ps_quote(identity)} "
            f"-Member {ps_quote(member)} -BypassSecurityGroupManagerCheck -Confirm:$false"
        )
        return True
