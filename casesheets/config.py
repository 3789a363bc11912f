"""Configuration from environment variables."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from storage.cache import CACHE_DIR
from storage.credentials import (
    CredentialProvider,
    InstalledAppProvider,
    ServiceAccountProvider,
)
from models.schema import APP_ROOT_FOLDER_NAME


@dataclass
class Settings:
    """Runtime settings, read once at startup.

    Attributes:
        auth: "service_account" or "oauth"
        service_account_file: Service account key (auth=service_account)
        client_secrets_file: OAuth client definition (auth=oauth)
        token_file: Stored OAuth token (auth=oauth)
        root_folder: Name of the application root folder in Drive
        root_parent: Drive folder the root folder lives in
        cache_dir: Directory for local snapshots
        import_schema: Import schema JSON; the shipped default if None
        log_level: Logging level name
    """
    auth: str = "service_account"
    service_account_file: str = "service_account_key.json"
    client_secrets_file: str = "credentials.json"
    token_file: str = "token.json"
    root_folder: str = APP_ROOT_FOLDER_NAME
    root_parent: str = "root"
    cache_dir: str = CACHE_DIR
    import_schema: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            auth=env.get('CASESHEETS_AUTH', defaults.auth).lower(),
            service_account_file=env.get('CASESHEETS_SERVICE_ACCOUNT_FILE',
                                         defaults.service_account_file),
            client_secrets_file=env.get('CASESHEETS_CLIENT_SECRETS', defaults.client_secrets_file),
            token_file=env.get('CASESHEETS_TOKEN_FILE', defaults.token_file),
            root_folder=env.get('CASESHEETS_ROOT_FOLDER', defaults.root_folder),
            root_parent=env.get('CASESHEETS_ROOT_PARENT', defaults.root_parent),
            cache_dir=os.path.expanduser(env.get('CASESHEETS_CACHE_DIR', defaults.cache_dir)),
            import_schema=env.get('CASESHEETS_IMPORT_SCHEMA') or None,
            log_level=env.get('CASESHEETS_LOG_LEVEL', defaults.log_level).upper(),
        )

    def credentials_provider(self) -> CredentialProvider:
        """Provider matching ``auth``.

        Raises:
            ValueError: If ``auth`` is not a known mode
        """
        if self.auth == "service_account":
            return ServiceAccountProvider(self.service_account_file)
        elif self.auth == "oauth":
            return InstalledAppProvider(self.client_secrets_file, self.token_file)
        else:
            raise ValueError(
                f"Unknown CASESHEETS_AUTH: {self.auth}. "
                "Must be 'service_account' or 'oauth'"
            )
