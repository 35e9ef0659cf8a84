"""Configuration management for Security Group Member Adder."""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration from environment variables."""

    # App-only (certificate) authentication for Exchange Online
    EXCHANGE_APP_ID: str = os.getenv("EXCHANGE_APP_ID", "") or os.getenv("AZURE_CLIENT_ID", "")
    EXCHANGE_CERT_THUMBPRINT: str = os.getenv("EXCHANGE_CERT_THUMBPRINT", "")
    EXCHANGE_ORGANIZATION: str = os.getenv("EXCHANGE_ORGANIZATION", "")  # e.g., contoso.onmicrosoft.com

    # Interactive sign-in hint, used when no certificate is configured
    EXCHANGE_ADMIN_UPN: str = os.getenv("EXCHANGE_ADMIN_UPN", "")

    POWERSHELL_EXE: str = os.getenv(
        "POWERSHELL_EXE", "powershell" if sys.platform == "win32" else "pwsh"
    )
    EXCHANGE_MODULE: str = "ExchangeOnlineManagement"

    # Run logs
    LOG_DIR: Path = Path(os.getenv("GROUP_ADDER_LOG_DIR", "logs"))

    # Identifier columns recognized in CSV input, in priority order
    ID_COLUMNS: list = ["UserPrincipalName", "UPN", "Email", "Mail", "PrimarySmtpAddress"]

    @classmethod
    def uses_certificate(cls) -> bool:
        """Whether app-only certificate authentication is configured."""
        return bool(cls.EXCHANGE_CERT_THUMBPRINT)

    @classmethod
    def validate(cls) -> bool:
        """Validate that the configured authentication settings are complete."""
        if not cls.uses_certificate():
            return True

        missing = []
        if not cls.EXCHANGE_APP_ID:
            missing.append("EXCHANGE_APP_ID")
        if not cls.EXCHANGE_ORGANIZATION:
            missing.append("EXCHANGE_ORGANIZATION")

        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}\n"
                "Certificate sign-in needs an app id and organization. "
                "Please copy .env.example to .env and fill in your Exchange values."
            )
        return True
