"""Exchange Online session setup and teardown."""

from contextlib import contextmanager

from config import Config
from exchange_client import ExchangeClient, ExchangeError
from run_log import RunLogger


class SetupError(Exception):
    """A failure that aborts the run before any member is processed."""


def start_session(client: ExchangeClient, log: RunLogger):
    """Ensure the module is installed, load it, and connect.

    Each step raises :class:`SetupError` on failure.
    """
    try:
        if not client.check_module_installed():
            log.warn(f"{Config.EXCHANGE_MODULE} module not found, installing for current user...")
            client.install_module()
            log.info(f"Installed {Config.EXCHANGE_MODULE}")
    except ExchangeError as e:
        raise SetupError(f"Could not install {Config.EXCHANGE_MODULE}: {e}") from e

    try:
        client.import_module()
    except ExchangeError as e:
        raise SetupError(f"Could not import {Config.EXCHANGE_MODULE}: {e}") from e

    try:
        Config.validate()
        log.info("Connecting to Exchange Online...")
        client.connect()
    except (ValueError, ExchangeError) as e:
        raise SetupError(f"Could not connect to Exchange Online: {e}") from e
    log.info("Connected to Exchange Online")


def end_session(client: ExchangeClient, log: RunLogger):
    """Disconnect if connected, then stop PowerShell; failures are logged, never raised."""
    try:
        if client.connected:
            client.disconnect()
            log.info("Disconnected from Exchange Online")
    except Exception as e:
        log.warn(f"Disconnect failed: {e}")

    try:
        client.close()
    except Exception as e:
        log.warn(f"Could not stop PowerShell: {e}")


@contextmanager
def exchange_session(client: ExchangeClient, log: RunLogger):
    """Connected session; cleanup always runs, even if setup failed."""
    try:
        start_session(client, log)
        yield client
    finally:
        end_session(client, log)
