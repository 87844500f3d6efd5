#! /usr/bin/env python3

# VMHooks - lifecycle integrations for VM provisioning
# Copyright (C) 2017 VMHooks contributors
#
# This file is part of VMHooks.
#
# VMHooks is free software: you can redistribute it and/or modify it
# under the terms of the GNU General Public License as published by the
# Free Software Foundation, either version 3 of the License, or (at your
# option) any later version.
#
# VMHooks is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU
# General Public License for more details.
#
# You should have received a copy of the GNU General Public License along
# with VMHooks. If not, see <http://www.gnu.org/licenses/>.


"""Active Directory computer and user accounts, over LDAP."""

import ldap
import ldap.dn
import ldap.filter
import ldap.modlist

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import workspace


DEFAULT_COMPUTER_OU = "ou={role},ou={os},ou=Servers,{basedn}"

DEFAULT_SYSTEM_ROLES = {
    'app_server': 'Application',
    'db_server': 'Database',
    'web_server': 'Web',
}

# userAccountControl flags
UAC_WORKSTATION_ACCOUNT = 4128          # PASSWD_NOTREQD | WORKSTATION_TRUST_ACCOUNT
UAC_NORMAL_ACCOUNT = 66048              # NORMAL_ACCOUNT | DONT_EXPIRE_PASSWORD

USER_TYPES = ('standard_user', 'admin_user', 'service_account')

USER_ATTRIBUTES = ('dialog_first_name', 'dialog_last_name', 'dialog_password',
                   'dialog_reenter_password', 'dialog_user_type')


class DirectoryError(Exception):
    """Error while talking to the directory."""
    def __init__(self, message):
        self.message = message

    def __str__(self):
        return self.message


def _encode_modlist(attributes):
    """Encode a dict of str (or list of str) attribute values as bytes."""
    encoded = {}
    for name, value in attributes.items():
        values = value if isinstance(value, list) else [value]
        encoded[name] = [v if isinstance(v, bytes) else str(v).encode('utf-8') for v in values]

    return ldap.modlist.addModlist(encoded)


class ADLDAPSettings(config.Settings):
    """AD LDAP module settings."""

    def __init__(self, server, username, password, basedn, port=None, domain=None,
            use_ssl=True, verify_ssl=False, computer_ou=DEFAULT_COMPUTER_OU,
            system_roles=None, system_type_tag='system_type', standard_user_ou=None,
            admin_user_ou=None):
        super().__init__()

        self.server = server
        self.username = username
        self.password = password
        self.basedn = basedn
        self.port = port if port is not None else (636 if use_ssl else 389)
        self.domain = domain
        self.use_ssl = use_ssl
        self.verify_ssl = verify_ssl
        self.computer_ou = computer_ou
        self.system_roles = system_roles if system_roles is not None else dict(DEFAULT_SYSTEM_ROLES)
        self.system_type_tag = system_type_tag
        self.standard_user_ou = standard_user_ou
        self.admin_user_ou = admin_user_ou

    @property
    def uri(self):
        scheme = 'ldaps' if self.use_ssl else 'ldap'
        return "{:s}://{:s}:{:d}".format(scheme, self.server, self.port)

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create ADLDAPSettings from a pyhocon ConfigTree.

        Returns a newly created instance of ADLDAPSettings. Raises
        config.ConfigError in case of error.

        """
        server = cls._get_conf(conf, 'server')
        username = cls._get_conf(conf, 'username')
        password = cls._get_conf(conf, 'password')
        basedn = cls._get_conf(conf, 'basedn')
        port = conf.get_int('port', None)
        domain = cls._get_conf(conf, 'domain', required=False)
        use_ssl = cls._get_bool(conf, 'use_ssl', True)
        verify_ssl = cls._get_bool(conf, 'verify_ssl', False)
        computer_ou = cls._get_conf(conf, 'computer_ou', False, DEFAULT_COMPUTER_OU)
        system_roles = cls._get_tree(conf, 'system_roles') or None
        system_type_tag = cls._get_conf(conf, 'system_type_tag', False, 'system_type')
        standard_user_ou = cls._get_conf(conf, 'standard_user_ou', required=False)
        admin_user_ou = cls._get_conf(conf, 'admin_user_ou', required=False)

        return cls(server, username, password, basedn, port, domain, use_ssl,
                verify_ssl, computer_ou, system_roles, system_type_tag,
                standard_user_ou, admin_user_ou)


class ActionAddComputer(moduleapi.Action):
    """Pre-create the computer account of a new VM.

    The account goes into the OU for the VM's OS and system role. Existing
    accounts are left alone.

    """

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'add_computer_error'
    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        prov, vm = self.resolve(context)
        if prov is None:
            raise moduleapi.ActionError("Unable to find provisioning object")

        settings = self.module.settings

        os_name = prov.source.platform
        if not os_name:
            raise moduleapi.ActionError("Unable to determine os")

        system_type = prov.get_tags().get(settings.system_type_tag)
        if not system_type:
            raise moduleapi.ActionError("Unable to determine system_type")

        role = settings.system_roles.get(system_type)
        if role is None:
            raise moduleapi.ActionError("no OU configured for system_type <{:s}>".format(system_type))

        computer_name = str(prov.get_option('host_name') or '').strip()
        if not computer_name:
            raise moduleapi.ActionError("computer_name not found")
        if os_name == 'windows':
            computer_name = computer_name.upper()

        ou = settings.computer_ou.format(role=role, os=os_name.capitalize(), basedn=settings.basedn)
        dn = "cn={:s},{:s}".format(ldap.dn.escape_dn_chars(computer_name), ou)

        attributes = {
            'objectClass': ['top', 'computer'],
            'cn': computer_name,
            'sAMAccountName': "{:s}$".format(computer_name),
            'userAccountControl': str(UAC_WORKSTATION_ACCOUNT),
        }

        if self.module.add_entry(dn, computer_name, attributes):
            self.logger.info("added computer %s to Active Directory", computer_name)


class ActionDeleteComputer(moduleapi.Action):
    """Delete the computer account of a retiring VM."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'delete_from_ldap_error'
    retirement = True
    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        prov, vm = self.resolve(context)
        if vm is None:
            raise moduleapi.ActionError("Unable to determine VM")

        dns = self.module.find_dns(vm.name)
        if not dns:
            self.logger.warning("computer %s not found in Active Directory", vm.name)
            return moduleapi.ActionStatus.ok

        self.module.delete_entry(dns[0])
        self.logger.info("deleted computer %s from Active Directory", dns[0])


class ActionCreateUser(moduleapi.Action):
    """Create a user account from the dialog_* attributes.

    Standard users are named after their last and first names; admin
    users get an "admin." prefix. Both go into their configured OU.

    """

    error_key = 'create_user_error'

    def execute(self, context):
        settings = self.module.settings
        attrs = context.workspace.attributes

        for name in USER_ATTRIBUTES:
            if not attrs.get(name):
                raise moduleapi.ActionError("Missing value for key: <{:s}>".format(name))

        first_name = attrs['dialog_first_name'].capitalize()
        last_name = attrs['dialog_last_name'].capitalize()
        user_type = attrs['dialog_user_type']

        if attrs['dialog_password'] != attrs['dialog_reenter_password']:
            raise moduleapi.ActionError("Password input from user: <{:s} {:s}> does not match".format(
                    first_name, last_name))

        base_username = last_name[:7].lower() + first_name[0].lower()

        if user_type == 'standard_user':
            username = base_username
            ou = settings.standard_user_ou
            display_name = "{:s} {:s}".format(first_name, last_name)
        elif user_type == 'admin_user':
            username = 'admin.' + base_username
            ou = settings.admin_user_ou
            display_name = "{:s} {:s} (Admin)".format(first_name, last_name)
        elif user_type == 'service_account':
            raise moduleapi.ActionError("Service Account creation not implemented yet")
        else:
            raise moduleapi.ActionError("Invalid user_type <{:s}>, valid values are: {:s}".format(
                    user_type, ', '.join(USER_TYPES)))

        if not ou:
            raise moduleapi.ActionError(
                    "Unable to determine Organizational Unit to add user <{:s}> to".format(username))

        if not settings.domain:
            raise moduleapi.ActionError("domain is not configured, unable to build user principal")

        principal = "{:s}@{:s}".format(username, settings.domain)
        dn = "cn={:s},{:s}".format(ldap.dn.escape_dn_chars(display_name), ou)

        attributes = {
            'objectClass': ['top', 'person', 'organizationalPerson', 'user'],
            'cn': display_name,
            'displayName': display_name,
            'givenName': first_name,
            'sn': last_name,
            'sAMAccountName': username,
            'mail': principal,
            'userPrincipalName': principal,
            'userAccountControl': str(UAC_NORMAL_ACCOUNT),
        }

        # AD only accepts passwords over an encrypted connection
        if settings.use_ssl:
            attributes['unicodePwd'] = '"{:s}"'.format(attrs['dialog_password']).encode('utf-16-le')

        if self.module.add_entry(dn, display_name, attributes):
            self.logger.info("added user %s to Active Directory", username)


class ADLDAPModuleAPI(moduleapi.ModuleAPI):
    """AD LDAP module API."""

    _SettingsClass = ADLDAPSettings
    """Settings class for this API."""

    actions = {
        'add_computer': ActionAddComputer,
        'delete_computer': ActionDeleteComputer,
        'create_user': ActionCreateUser,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the AD LDAP module.

        Receives an ADLDAPSettings object, containing the module's
        settings.

        """
        super().__init__(settings)

    def connect(self):
        """Get a bound LDAP connection. Raises DirectoryError."""
        settings = self.settings

        self.logger.debug("connecting to %s as %s", settings.uri, settings.username)

        try:
            conn = ldap.initialize(settings.uri)
            conn.set_option(ldap.OPT_REFERRALS, 0)
            conn.set_option(ldap.OPT_PROTOCOL_VERSION, 3)
            if settings.use_ssl and not settings.verify_ssl:
                conn.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)
                conn.set_option(ldap.OPT_X_TLS_NEWCTX, 0)

            conn.simple_bind_s(settings.username, settings.password)
        except ldap.LDAPError as e:
            raise DirectoryError("unable to bind to {:s}: {!s}".format(settings.uri, e))

        return conn

    def find_dns(self, cn):
        """Get the DNs of all entries under basedn with the given cn."""
        search_filter = ldap.filter.filter_format('(cn=%s)', [cn])

        conn = self.connect()
        try:
            results = conn.search_s(self.settings.basedn, ldap.SCOPE_SUBTREE,
                    search_filter, ['cn'])
        except ldap.LDAPError as e:
            raise DirectoryError("search for {:s} failed: {!s}".format(search_filter, e))
        finally:
            conn.unbind_s()

        # AD search results include referrals, which have no DN
        return [dn for dn, attrs in results if dn is not None]

    def add_entry(self, dn, cn, attributes):
        """Add an entry, unless one with the same cn already exists.

        Returns True if the entry was added, False if it already existed.
        Raises DirectoryError in case of error.

        """
        if self.find_dns(cn):
            self.logger.warning("skipping %s, entry already exists", dn)
            return False

        conn = self.connect()
        try:
            conn.add_s(dn, _encode_modlist(attributes))
        except ldap.ALREADY_EXISTS:
            self.logger.warning("skipping %s, entry already exists", dn)
            return False
        except ldap.LDAPError as e:
            raise DirectoryError("unable to add {:s}: {!s}".format(dn, e))
        finally:
            conn.unbind_s()

        return True

    def delete_entry(self, dn):
        """Delete an entry. Raises DirectoryError in case of error."""
        conn = self.connect()
        try:
            conn.delete_s(dn)
        except ldap.LDAPError as e:
            raise DirectoryError("unable to delete {:s}: {!s}".format(dn, e))
        finally:
            conn.unbind_s()


API = ADLDAPModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
