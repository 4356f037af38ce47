"""
Configuration management

Settings live in ~/.j2i/config.json. Files written by the earlier Go tool
(CamelCase keys such as JiraAccountName, ClientSearchIDs) load unchanged.
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from .errors import ConfigError


CONFIG_DIR = Path.home() / ".j2i"
CONFIG_FILE = CONFIG_DIR / "config.json"

# CamelCase keys used by existing config files, matched case-insensitively
LEGACY_KEYS = {
    "JiraAccountName": "jira_account_name",
    "JiraUname": "jira_username",
    "JiraPass": "jira_password",
    "JiraInvoicedTransID": "jira_invoiced_trans_id",
    "JiraInvoicedPrefix": "jira_invoiced_prefix",
    "ClientSearchIDs": "client_search_ids",
    "FbAccountName": "fb_account_name",
    "FbAuthToken": "fb_auth_token",
    "FbConsumerKey": "fb_consumer_key",
    "FbConsumerSecret": "fb_consumer_secret",
    "FbOAuthToken": "fb_oauth_token",
    "FbOAuthTokenSecret": "fb_oauth_token_secret",
}


@dataclass
class Config:
    """Application configuration"""
    jira_account_name: str = ""           # <account>.atlassian.net
    jira_username: str = ""               # username, not e-mail
    jira_password: str = ""               # password or PAT
    jira_auth_type: str = "basic"         # "basic" or "pat"
    jira_invoiced_trans_id: str = ""      # transition applied to invoiced issues (e.g. Done=11)
    jira_invoiced_prefix: str = ""        # label = prefix + invoice number
    client_search_ids: dict[str, str] = field(default_factory=dict)  # client code -> Jira filter ID
    # FreshBooks
    fb_account_name: str = ""
    fb_auth_token: str = ""               # token auth
    fb_consumer_key: str = ""             # OAuth
    fb_consumer_secret: str = ""          # OAuth
    fb_oauth_token: str = ""              # OAuth
    fb_oauth_token_secret: str = ""       # OAuth
    fb_staff_email: str = ""              # staff member for time entries, empty = account owner
    invoice_dir: str = ""                 # where invoice PDFs go, empty = ~/Desktop

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build a config from parsed JSON, accepting legacy keys."""
        names = {name.lower(): name for name in cls.__dataclass_fields__}
        names.update((legacy.lower(), name) for legacy, name in LEGACY_KEYS.items())

        normalized = {}
        for key, value in data.items():
            name = names.get(key.lower())
            if name:
                normalized[name] = value
        return cls(**normalized)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load the configuration, failing when it is missing or invalid."""
        path = path or CONFIG_FILE
        try:
            with open(path) as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Unable to load {path} (run: j2i setup)")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Unable to parse {path}: line {e.lineno}, column {e.colno}: {e.msg}")
        except OSError as e:
            raise ConfigError(f"Unable to read {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Unable to parse {path}: expected a JSON object")
        return cls.from_dict(data)

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "Config":
        """Load the configuration, or return defaults when there is none."""
        try:
            return cls.load(path)
        except ConfigError:
            return cls()

    def save(self, path: Optional[Path] = None):
        """Save the configuration, readable by the owner only."""
        path = path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)
        path.chmod(0o600)

    def validate(self) -> list[str]:
        """Return a list of configuration problems, empty when usable."""
        return self.validate_jira() + self.validate_freshbooks()

    def validate_jira(self) -> list[str]:
        """Problems with the Jira settings, enough for a report-only run."""
        errors = []
        for name in ("jira_account_name", "jira_username", "jira_password"):
            if not getattr(self, name):
                errors.append(f"Missing {name}")
        if self.jira_auth_type not in ("basic", "pat"):
            errors.append(f"Unknown jira_auth_type: {self.jira_auth_type}")
        return errors

    def validate_freshbooks(self) -> list[str]:
        errors = []
        if not self.fb_account_name:
            errors.append("Missing fb_account_name")

        oauth_fields = (self.fb_consumer_key, self.fb_consumer_secret,
                        self.fb_oauth_token, self.fb_oauth_token_secret)
        has_oauth = any(oauth_fields)
        if self.fb_auth_token and has_oauth:
            errors.append("Configure either fb_auth_token or FreshBooks OAuth, not both")
        elif not self.fb_auth_token and not has_oauth:
            errors.append("Missing fb_auth_token or FreshBooks OAuth credentials")
        elif has_oauth and not all(oauth_fields):
            errors.append("Incomplete FreshBooks OAuth credentials")
        return errors

    @property
    def jira_url(self) -> str:
        """Base URL of the Jira Cloud instance"""
        return f"https://{self.jira_account_name}.atlassian.net"

    def filter_id(self, client_code: str) -> str:
        """Jira search filter ID for a client code."""
        try:
            return str(self.client_search_ids[client_code])
        except KeyError:
            known = ", ".join(sorted(self.client_search_ids)) or "none configured"
            raise ConfigError(f"Unknown client code: {client_code} (known: {known})")

    def freshbooks_auth(self):
        """Return the FreshBooks credentials as (token, oauth)."""
        from .freshbooks_api import PlaintextOAuth

        if self.fb_auth_token:
            return self.fb_auth_token, None
        return None, PlaintextOAuth(
            consumer_key=self.fb_consumer_key,
            consumer_secret=self.fb_consumer_secret,
            token=self.fb_oauth_token,
            token_secret=self.fb_oauth_token_secret,
        )

    def invoice_path(self, invoice_number: str) -> Path:
        """Local path the invoice PDF is saved to"""
        directory = Path(self.invoice_dir).expanduser() if self.invoice_dir else Path.home() / "Desktop"
        return directory / f"Invoice_{invoice_number}.pdf"
