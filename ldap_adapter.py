"""
LDAP directory source for Active Directory
"""

import os
import logging
from typing import Dict, Iterator, List, Optional, Set, Tuple

import ldap
import ldap.dn
import ldap.filter
from ldap.controls import SimplePagedResultsControl

from errors import CollaboratorError
from models import DirectoryGroup


logger = logging.getLogger(__name__)


SECURITY_GROUP_FILTER = "(&(objectCategory=group)(groupType:1.2.840.113556.1.4.803:=2147483648))"
# memberOf with LDAP_MATCHING_RULE_IN_CHAIN expands nested groups,
# userAccountControl bit 2 marks disabled accounts
MEMBER_FILTER = (
    "(&(objectCategory=person)(objectClass=user)"
    "(memberOf:1.2.840.113556.1.4.1941:={group_dn})"
    "(!(userAccountControl:1.2.840.113556.1.4.803:=2))"
    "({login_attribute}=*))"
)


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode('utf-8')
    return value


def first_value(attrs: Dict[str, list], name: str) -> Optional[str]:
    """Return the first value of an attribute, matching its name case-insensitively."""
    for key, values in attrs.items():
        if key.lower() != name.lower():
            continue
        if not isinstance(values, list):
            values = [values]
        for value in values:
            value = _decode(value).strip()
            if value:
                return value
    return None


def domain_base_dn(dn: str) -> str:
    """Return the domain part of a DN, e.g. DC=corp,DC=example,DC=com."""
    parts = [rdn for rdn in ldap.dn.str2dn(dn) if rdn[0][0].lower() == 'dc']
    return ldap.dn.dn2str(parts)


class LDAPDirectorySource:
    """
    Reads security groups and their effective members from Active Directory.
    """

    def __init__(self, server: str, bind_dn: str, bind_password: str, use_tls: bool = False,
                 ca_cert_file: Optional[str] = None, user_base_dn: Optional[str] = None,
                 page_size: int = 500):
        self.server = server
        self.bind_dn = bind_dn
        self.bind_password = bind_password
        self.use_tls = use_tls
        self.ca_cert_file = ca_cert_file
        self.user_base_dn = user_base_dn
        self.page_size = page_size
        self.ldap_conn = None

    def connect_ldap(self):
        """Establish connection to LDAP server."""
        logger.info(f"Connecting to LDAP server: {self.server}")

        try:
            # Configure TLS certificate verification if CA cert is provided
            if self.ca_cert_file and os.path.exists(self.ca_cert_file):
                logger.info(f"Using custom CA certificate: {self.ca_cert_file}")
                ldap.set_option(ldap.OPT_X_TLS_CACERTFILE, self.ca_cert_file)
                ldap.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)
            elif self.ca_cert_file:
                logger.warning(f"CA certificate file not found: {self.ca_cert_file}")

            self.ldap_conn = ldap.initialize(self.server)
            self.ldap_conn.protocol_version = ldap.VERSION3
            # AD hands out referrals for other partitions, don't chase them
            self.ldap_conn.set_option(ldap.OPT_REFERRALS, 0)

            if self.use_tls and self.server.startswith("ldap://"):
                self.ldap_conn.start_tls_s()

            self.ldap_conn.simple_bind_s(self.bind_dn, self.bind_password)
            logger.info("Successfully connected to LDAP")
        except ldap.LDAPError as e:
            logger.error(f"Failed to connect to LDAP: {e}")
            raise CollaboratorError(f"Failed to connect to LDAP server {self.server}: {e}") from e

    def disconnect_ldap(self):
        """Close LDAP connection."""
        if self.ldap_conn:
            try:
                self.ldap_conn.unbind_s()
                logger.info("Disconnected from LDAP")
            except ldap.LDAPError as e:
                logger.warning(f"Error closing LDAP connection: {e}")
            self.ldap_conn = None

    def _paged_search(self, base_dn: str, search_filter: str,
                      attrlist: List[str]) -> Iterator[Tuple[str, Dict[str, list]]]:
        """Subtree search using the simple paged results control. Referrals are skipped."""
        if not self.ldap_conn:
            self.connect_ldap()

        control = SimplePagedResultsControl(True, size=self.page_size, cookie='')
        while True:
            msgid = self.ldap_conn.search_ext(
                base_dn,
                ldap.SCOPE_SUBTREE,
                search_filter,
                attrlist,
                serverctrls=[control]
            )
            _, data, _, serverctrls = self.ldap_conn.result3(msgid)

            for dn, attrs in data:
                if not dn:
                    continue
                yield dn, attrs

            page_controls = [
                c for c in serverctrls
                if c.controlType == SimplePagedResultsControl.controlType
            ]
            if not page_controls or not page_controls[0].cookie:
                break
            control.cookie = page_controls[0].cookie

    def list_security_groups(self, ou_dn: str) -> List[DirectoryGroup]:
        """List the security groups below an OU."""
        logger.info(f"Loading security groups from {ou_dn}")
        groups = []

        try:
            for dn, attrs in self._paged_search(ou_dn, SECURITY_GROUP_FILTER, ['name', 'cn']):
                name = first_value(attrs, 'name') or first_value(attrs, 'cn')
                if not name:
                    logger.warning(f"Group {dn} has no name, skipping")
                    continue
                groups.append(DirectoryGroup(dn=dn, name=name))
                logger.debug(f"Found group: {name} ({dn})")
        except ldap.LDAPError as e:
            logger.error(f"LDAP search failed: {e}")
            raise CollaboratorError(f"Failed to list security groups in {ou_dn}: {e}") from e

        logger.info(f"Found {len(groups)} security groups")
        return groups

    def resolve_members(self, group: DirectoryGroup, login_attribute: str) -> Set[str]:
        """
        Return the login names of all enabled users in a group, including
        members of nested groups. Users without the login attribute are left out.
        """
        base_dn = self.user_base_dn or domain_base_dn(group.dn)
        search_filter = MEMBER_FILTER.format(
            group_dn=ldap.filter.escape_filter_chars(group.dn),
            login_attribute=login_attribute
        )
        members = set()

        try:
            for dn, attrs in self._paged_search(base_dn, search_filter, [login_attribute]):
                login = first_value(attrs, login_attribute)
                if login:
                    members.add(login)
                else:
                    logger.warning(f"User {dn} in group {group.name} has no {login_attribute}")
        except ldap.LDAPError as e:
            logger.error(f"LDAP search failed: {e}")
            raise CollaboratorError(f"Failed to resolve members of {group.name}: {e}") from e

        return members
