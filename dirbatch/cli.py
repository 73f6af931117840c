"""CLI interface for dirbatch using Click.

The provisioning session itself is entirely prompt-driven; options only
describe how to reach the directory, the generated-password policy and the
output format.  Every option can also be set through its ``DIRBATCH_*``
environment variable.

Exit codes: 0 when the batch ran (even if some users were skipped or failed),
1 when the gateway cannot be loaded or the permission check fails.
"""

import logging
import sys
from typing import Optional

import click

from . import __version__
from .config import BACKENDS, DEFAULT_PASSWORD_CLASSES, DEFAULT_PASSWORD_LENGTH, DirectoryConfig, PasswordPolicy
from .errors import GatewayUnavailable, ValidationError
from .gateway import build_gateway
from .prompts import ClickInputProvider
from .provision.runner import BatchRunner

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@click.command()
@click.option("--backend", type=click.Choice(BACKENDS), default="ldap", show_default=True,
              envvar="DIRBATCH_BACKEND", help="Directory protocol")
@click.option("--server", envvar="DIRBATCH_SERVER", help="LDAP server host name")
@click.option("--port", type=int, envvar="DIRBATCH_PORT", help="LDAP port (default 636 with SSL, 389 without)")
@click.option("--ssl/--no-ssl", "use_ssl", default=True, show_default=True, envvar="DIRBATCH_USE_SSL",
              help="Use LDAPS (required by Active Directory to set passwords)")
@click.option("--bind-dn", envvar="DIRBATCH_BIND_DN",
              help="Identity to bind as (LDAP) or HTTP Basic user name (SCIM)")
@click.option("--bind-password", envvar="DIRBATCH_BIND_PASSWORD",
              help="Bind password; prompted for when omitted")
@click.option("--base-dn", envvar="DIRBATCH_BASE_DN", help="Search root (default: server's defaultNamingContext)")
@click.option("--user-container", envvar="DIRBATCH_USER_CONTAINER",
              help="Default container for new users (default: CN=Users,<base DN>)")
@click.option("--scim-url", envvar="DIRBATCH_SCIM_URL", help="SCIM base URL (e.g. https://idp.example.com/scim/v2)")
@click.option("--token", envvar="DIRBATCH_TOKEN", help="SCIM bearer token")
@click.option("--tls-no-verify", is_flag=True, envvar="DIRBATCH_TLS_NO_VERIFY",
              help="Skip TLS certificate verification")
@click.option("--ca-bundle", type=click.Path(exists=True, dir_okay=False), envvar="DIRBATCH_CA_BUNDLE",
              help="CA bundle for TLS verification")
@click.option("--timeout", type=int, default=30, show_default=True, envvar="DIRBATCH_TIMEOUT",
              help="Network timeout in seconds")
@click.option("--password-length", type=int, default=DEFAULT_PASSWORD_LENGTH, show_default=True,
              envvar="DIRBATCH_PASSWORD_LENGTH", help="Length of generated passwords")
@click.option("--password-classes", type=click.IntRange(1, 4), default=DEFAULT_PASSWORD_CLASSES,
              show_default=True, envvar="DIRBATCH_PASSWORD_CLASSES",
              help="Character classes every generated password must contain")
@click.option("--json", "json_output", is_flag=True, help="Print the final summary as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Log directory operations to stderr")
@click.version_option(version=__version__, prog_name="dirbatch")
def main(
    backend: str,
    server: Optional[str],
    port: Optional[int],
    use_ssl: bool,
    bind_dn: Optional[str],
    bind_password: Optional[str],
    base_dn: Optional[str],
    user_container: Optional[str],
    scim_url: Optional[str],
    token: Optional[str],
    tls_no_verify: bool,
    ca_bundle: Optional[str],
    timeout: int,
    password_length: int,
    password_classes: int,
    json_output: bool,
    verbose: bool,
):
    """Create directory users in batches, with consistent group membership.

    Checks that the bound identity can create users and groups and link them
    (using throwaway probe objects), then asks how many users to create and
    walks through each one interactively.

    Examples:

    \b
      dirbatch --server dc01.corp.example.com --bind-dn 'CORP\\admin'
      dirbatch --backend scim --scim-url https://idp.example.com/scim/v2 --token $TOKEN
    """
    _configure_logging(verbose)
    operator = ClickInputProvider()

    try:
        policy = PasswordPolicy(length=password_length, min_classes=password_classes)
    except ValidationError as exc:
        raise click.BadParameter(str(exc), param_hint="'--password-length'")

    config = DirectoryConfig(
        backend=backend,
        server=server,
        port=port,
        use_ssl=use_ssl,
        bind_dn=bind_dn,
        password=bind_password,
        base_dn=base_dn,
        user_container=user_container,
        scim_url=scim_url,
        token=token,
        tls_no_verify=tls_no_verify,
        ca_bundle=ca_bundle,
        timeout=timeout,
    )
    try:
        config.validate()
        if config.needs_password:
            config.password = operator.ask_secret(f"Password for {config.bind_dn}")
        gateway = build_gateway(config)
    except ValidationError as exc:
        operator.tell(f"Cannot load the directory gateway: {exc}", style="error")
        sys.exit(1)
    except GatewayUnavailable as exc:
        logger.debug("Gateway construction failed", exc_info=True)
        operator.tell(f"Cannot load the directory gateway: {exc}", style="error")
        sys.exit(1)

    with gateway:
        exit_code = BatchRunner(gateway, operator, policy, json_output=json_output).execute()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
