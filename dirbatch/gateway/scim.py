"""SCIM 2.0 binding (RFC 7643/7644).

Maps the directory attribute set onto SCIM User resources:

    sAMAccountName              -> userName
    givenName / sn              -> name.givenName / name.familyName
    displayName, title          -> displayName, title
    userPrincipalName           -> emails[type=work, primary]
    physicalDeliveryOfficeName  -> addresses[type=work].formatted
    department                  -> enterprise extension department

SCIM has no ``description`` on Users, so it is not sent.  SCIM directories
are flat: the only container is ``/Users`` and object references are resource
paths such as ``/Users/2819c223``.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import requests

from ..config import DirectoryConfig
from ..errors import CreationError, DirectoryError, GatewayUnavailable, LinkError
from ..http_client import SCIMClient, SCIMResponse
from ..models import DirectoryObject, DomainDefaults
from . import DirectoryGateway

logger = logging.getLogger(__name__)

USER_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:User"
GROUP_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:Group"
ENTERPRISE_SCHEMA = "urn:ietf:params:scim:schemas:extension:enterprise:2.0:User"
PATCH_SCHEMA = "urn:ietf:params:scim:api:messages:2.0:PatchOp"

USERS = "/Users"
GROUPS = "/Groups"


def make_user(
    attributes: Dict[str, str],
    credential: str,
    enabled: bool,
) -> Dict[str, Any]:
    """Build a SCIM User payload from directory attributes."""
    payload: Dict[str, Any] = {
        "schemas": [USER_SCHEMA],
        "userName": attributes["sAMAccountName"],
        "active": enabled,
        "password": credential,
    }
    name = {}
    if attributes.get("givenName"):
        name["givenName"] = attributes["givenName"]
    if attributes.get("sn"):
        name["familyName"] = attributes["sn"]
    if name:
        payload["name"] = name
    for attr in ("displayName", "title"):
        if attributes.get(attr):
            payload[attr] = attributes[attr]
    if attributes.get("userPrincipalName"):
        payload["emails"] = [
            {"value": attributes["userPrincipalName"], "type": "work", "primary": True}
        ]
    if attributes.get("physicalDeliveryOfficeName"):
        payload["addresses"] = [
            {"type": "work", "formatted": attributes["physicalDeliveryOfficeName"]}
        ]
    if attributes.get("department"):
        payload["schemas"].append(ENTERPRISE_SCHEMA)
        payload[ENTERPRISE_SCHEMA] = {"department": attributes["department"]}
    if attributes.get("description"):
        logger.debug("SCIM User has no description attribute; not sent for %s", payload["userName"])
    return payload


def make_group(display_name: str) -> Dict[str, Any]:
    """Build a minimal SCIM Group payload."""
    return {"schemas": [GROUP_SCHEMA], "displayName": display_name}


def make_add_members(member_ids: List[str]) -> Dict[str, Any]:
    """Build a PatchOp adding ``member_ids`` to a group's ``members``."""
    return {
        "schemas": [PATCH_SCHEMA],
        "Operations": [
            {"op": "add", "path": "members", "value": [{"value": mid} for mid in member_ids]},
        ],
    }


def _eq_filter(attr: str, value: str) -> str:
    """Build an ``attr eq "value"`` filter with the value's quotes escaped."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'{attr} eq "{escaped}"'


def _resource_id(ref: str) -> str:
    return ref.rstrip("/").rsplit("/", 1)[-1]


class ScimGateway(DirectoryGateway):
    """Directory gateway for a SCIM 2.0 service provider."""

    def __init__(self, client: SCIMClient):
        self.client = client

    @classmethod
    def connect(cls, config: DirectoryConfig) -> "ScimGateway":
        """Build a client from ``config`` and check that the endpoint answers.

        Raises:
            GatewayUnavailable: if ``/ServiceProviderConfig`` cannot be read.
        """
        client = SCIMClient(
            config.scim_url,
            token=config.token,
            username=config.bind_dn,
            password=config.password,
            tls_no_verify=config.tls_no_verify,
            timeout=config.timeout,
            ca_bundle=config.ca_bundle,
        )
        try:
            resp = client.get("/ServiceProviderConfig")
        except requests.RequestException as exc:
            client.close()
            raise GatewayUnavailable(f"cannot reach {config.scim_url}: {exc}") from exc
        if not resp.ok:
            client.close()
            raise GatewayUnavailable(f"cannot use {config.scim_url}: {resp.error_detail()}")
        return cls(client)

    # -- Queries -------------------------------------------------------------

    def query_domain_defaults(self) -> DomainDefaults:
        return DomainDefaults(USERS, urlparse(self.client.base_url).hostname or "")

    def list_users(self, limit: int = 1) -> List[DirectoryObject]:
        body = self._call("GET", USERS, params={"startIndex": 1, "count": limit})
        return [self._to_object(USERS, r) for r in (body or {}).get("Resources", [])[:limit]]

    def query_user_by_account_name(self, name: str) -> Optional[DirectoryObject]:
        return self._find(USERS, _eq_filter("userName", name))

    def query_group_by_identifier(self, identifier: str) -> Optional[DirectoryObject]:
        if identifier.startswith(GROUPS + "/"):
            return self._get(identifier, GROUPS)
        found = self._find(GROUPS, _eq_filter("displayName", identifier))
        if found is None and " " not in identifier:
            found = self._get(f"{GROUPS}/{quote(identifier, safe='')}", GROUPS)
        return found

    # -- Writes --------------------------------------------------------------

    def create_user(
        self,
        attributes: Dict[str, str],
        credential: str,
        enabled: bool,
        container: Optional[str] = None,
        change_password_at_logon: bool = False,
    ) -> DirectoryObject:
        if container and container != USERS:
            raise CreationError(f"SCIM directories have no containers; cannot place a user in {container!r}")
        payload = make_user(attributes, credential, enabled)
        resp = self._send("POST", USERS, payload, CreationError)
        if not resp.ok:
            raise CreationError(f"cannot create user {payload['userName']}", cause=resp.error_detail())
        return self._to_object(USERS, self._parse(resp, "POST", USERS, CreationError) or {})

    def create_group(
        self,
        name: str,
        scope: str = "global",
        container: Optional[str] = None,
    ) -> DirectoryObject:
        resp = self._send("POST", GROUPS, make_group(name), CreationError)
        if not resp.ok:
            raise CreationError(f"cannot create group {name}", cause=resp.error_detail())
        return self._to_object(GROUPS, self._parse(resp, "POST", GROUPS, CreationError) or {})

    def add_member(self, group: DirectoryObject, member: DirectoryObject):
        resp = self._send("PATCH", group.ref, make_add_members([_resource_id(member.ref)]), LinkError)
        if not resp.ok:
            raise LinkError(f"cannot add {member.name} to {group.name}", cause=resp.error_detail())

    def delete_object(self, ref: str):
        resp = self._send("DELETE", ref, None, DirectoryError)
        if not resp.ok:
            raise DirectoryError(f"cannot delete {ref}", cause=resp.error_detail())

    def close(self):
        self.client.close()

    # -- Internals -----------------------------------------------------------

    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]], error_cls) -> SCIMResponse:
        """Issue a write, converting transport failures into ``error_cls``."""
        try:
            if method == "POST":
                return self.client.post(path, payload)
            if method == "PATCH":
                return self.client.patch(path, payload)
            return self.client.delete(path)
        except requests.RequestException as exc:
            raise error_cls(f"{method} {path} failed: {exc}", cause=str(exc)) from exc

    def _call(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Issue a read and return the parsed body; 404 yields ``None``."""
        try:
            resp = self.client.get(path, params=params)
        except requests.RequestException as exc:
            raise DirectoryError(f"{method} {path} failed: {exc}", cause=str(exc)) from exc
        if resp.status_code == 404:
            return None
        if not resp.ok:
            raise DirectoryError(f"{method} {path} failed", cause=resp.error_detail())
        return self._parse(resp, method, path, DirectoryError)

    @staticmethod
    def _parse(resp: SCIMResponse, method: str, path: str, error_cls) -> Any:
        """Decode a successful response body, raising ``error_cls`` when it is not JSON."""
        try:
            return resp.json()
        except ValueError as exc:
            raise error_cls(
                f"{method} {path} returned a body that is not JSON",
                cause=f"HTTP {resp.status_code}: response is not JSON",
            ) from exc

    def _get(self, path: str, endpoint: str) -> Optional[DirectoryObject]:
        body = self._call("GET", path)
        return self._to_object(endpoint, body) if body else None

    def _find(self, endpoint: str, scim_filter: str) -> Optional[DirectoryObject]:
        body = self._call("GET", endpoint, params={"filter": scim_filter})
        resources = (body or {}).get("Resources", [])
        if len(resources) > 1:
            raise DirectoryError(f"filter {scim_filter!r} matched {len(resources)} resources")
        return self._to_object(endpoint, resources[0]) if resources else None

    @staticmethod
    def _to_object(endpoint: str, resource: Dict[str, Any]) -> DirectoryObject:
        if "id" not in resource:
            raise DirectoryError(f"{endpoint} resource returned without an id")
        kind = "group" if endpoint == GROUPS else "user"
        name = resource.get("userName") or resource.get("displayName") or resource["id"]
        return DirectoryObject(f"{endpoint}/{resource['id']}", name, kind)
