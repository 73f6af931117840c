"""Runtime configuration: directory connection settings and password policy.

Values arrive from the CLI options (each of which can also be set through a
``DIRBATCH_*`` environment variable, see ``cli.py``).  Nothing here is read
from disk and nothing is persisted.
"""

from dataclasses import dataclass, field
from typing import Optional

from .errors import ValidationError

BACKENDS = ("ldap", "scim")

DEFAULT_PASSWORD_LENGTH = 14
DEFAULT_PASSWORD_CLASSES = 3

# lower, upper, digit, symbol
MAX_PASSWORD_CLASSES = 4


@dataclass(frozen=True)
class PasswordPolicy:
    """Minimum-entropy policy for generated secrets.

    Attributes:
        length:      Total secret length.
        min_classes: Distinct character classes (lower, upper, digit, symbol)
                     every generated secret must contain.
    """

    length: int = DEFAULT_PASSWORD_LENGTH
    min_classes: int = DEFAULT_PASSWORD_CLASSES

    def __post_init__(self):
        if not 1 <= self.min_classes <= MAX_PASSWORD_CLASSES:
            raise ValidationError(
                f"min_classes must be between 1 and {MAX_PASSWORD_CLASSES}, got {self.min_classes}"
            )
        if self.length < self.min_classes:
            raise ValidationError(
                f"length {self.length} cannot hold {self.min_classes} character classes"
            )


@dataclass
class DirectoryConfig:
    """Connection settings for the directory gateway.

    LDAP settings:
        server, port, use_ssl, bind_dn, password, base_dn, user_container

    SCIM settings:
        scim_url, token (bearer) or bind_dn/password (HTTP Basic)

    Shared:
        tls_no_verify, ca_bundle, timeout
    """

    backend: str = "ldap"
    server: Optional[str] = None
    port: Optional[int] = None
    use_ssl: bool = True
    bind_dn: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    base_dn: Optional[str] = None
    user_container: Optional[str] = None
    scim_url: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)
    tls_no_verify: bool = False
    ca_bundle: Optional[str] = None
    timeout: int = 30

    def validate(self):
        """Raise ``ValidationError`` when required settings for the backend are missing."""
        if self.backend not in BACKENDS:
            raise ValidationError(f"unknown backend {self.backend!r} (expected one of {', '.join(BACKENDS)})")
        if self.backend == "ldap":
            if not self.server:
                raise ValidationError("an LDAP server is required (--server or DIRBATCH_SERVER)")
            if not self.bind_dn:
                raise ValidationError("a bind identity is required (--bind-dn or DIRBATCH_BIND_DN)")
        else:
            if not self.scim_url:
                raise ValidationError("a SCIM base URL is required (--scim-url or DIRBATCH_SCIM_URL)")

    @property
    def needs_password(self) -> bool:
        """True when a bind password has to be asked for before connecting."""
        if self.password:
            return False
        if self.backend == "ldap":
            return True
        return bool(self.bind_dn) and not self.token
