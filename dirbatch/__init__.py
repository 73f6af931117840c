"""dirbatch: Interactive batch provisioning of directory users and group memberships.

Creates many user accounts in one operator session against an LDAP directory
(Active Directory) or a SCIM 2.0 endpoint.  Before any batch work the acting
identity's create/link rights are verified with disposable probe objects, so a
batch never dies halfway through on a missing privilege.
"""

__version__ = "0.3.1"
