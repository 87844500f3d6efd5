
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


from unittest import mock

import ldap
import pytest

from vmhooks import moduleapi
from vmhooks.modules import adldap


CONFIG = """
modules = [ "adldap" ]
adldap {
    server = dc1.example.com
    username = "cn=svc-cloudforms,dc=example,dc=com"
    password = secret
    basedn = "dc=example,dc=com"
    domain = example.com
    standard_user_ou = "ou=Users,dc=example,dc=com"
    admin_user_ou = "ou=Admins,dc=example,dc=com"
}
hooks {
    add_computer = [ { action = adldap.add_computer } ]
    delete_computer = [ { action = adldap.delete_computer } ]
    create_user = [ { action = adldap.create_user } ]
}
"""

USER = {
    'dialog_first_name': 'john',
    'dialog_last_name': 'smithsonian',
    'dialog_password': 'Secret1!',
    'dialog_reenter_password': 'Secret1!',
    'dialog_user_type': 'standard_user',
}


@pytest.fixture
def dispatcher(make_dispatch):
    return make_dispatch(CONFIG)


@pytest.fixture
def conn():
    """Patch ldap.initialize, with an empty directory by default."""
    with mock.patch.object(ldap, 'initialize') as initialize:
        conn = initialize.return_value
        conn.search_s.return_value = []
        yield conn


def added(conn):
    dn, modlist = conn.add_s.call_args[0]
    return (dn, dict(modlist))


def test_settings(dispatcher):
    settings = dispatcher.module_api('adldap').settings

    assert settings.uri == "ldaps://dc1.example.com:636"
    assert settings.system_roles['web_server'] == 'Web'


def test_add_computer(dispatcher, make_workspace, conn):
    ws = make_workspace(options={'host_name': 'web001'}, tags={'system_type': 'web_server'},
            source={'platform': 'linux'})

    assert dispatcher.run_hook('add_computer', ws) == moduleapi.ActionStatus.ok

    conn.simple_bind_s.assert_called_with("cn=svc-cloudforms,dc=example,dc=com", "secret")
    conn.search_s.assert_called_once_with("dc=example,dc=com", ldap.SCOPE_SUBTREE,
            "(cn=web001)", ['cn'])

    dn, attrs = added(conn)
    assert dn == "cn=web001,ou=Web,ou=Linux,ou=Servers,dc=example,dc=com"
    assert attrs['sAMAccountName'] == [b'web001$']
    assert attrs['objectClass'] == [b'top', b'computer']
    assert attrs['userAccountControl'] == [b'4128']


def test_add_computer_windows(dispatcher, make_workspace, conn):
    ws = make_workspace(options={'host_name': 'web001'}, tags={'system_type': 'db_server'},
            source={'platform': 'windows'})

    assert dispatcher.run_hook('add_computer', ws) == moduleapi.ActionStatus.ok
    assert added(conn)[0] == "cn=WEB001,ou=Database,ou=Windows,ou=Servers,dc=example,dc=com"


def test_add_computer_exists(dispatcher, make_workspace, conn):
    conn.search_s.return_value = [("cn=web001,ou=Web,dc=example,dc=com", {'cn': [b'web001']})]
    ws = make_workspace(options={'host_name': 'web001'}, tags={'system_type': 'web_server'},
            source={'platform': 'linux'})

    assert dispatcher.run_hook('add_computer', ws) == moduleapi.ActionStatus.ok
    conn.add_s.assert_not_called()


def test_add_computer_unknown_role(dispatcher, make_workspace, conn):
    ws = make_workspace(options={'host_name': 'web001'}, tags={'system_type': 'mainframe'},
            source={'platform': 'linux'})

    assert dispatcher.run_hook('add_computer', ws) == moduleapi.ActionStatus.warn
    assert "mainframe" in ws.provision.get_option('errors')['add_computer_error']


def test_bind_error(dispatcher, make_workspace, conn):
    conn.simple_bind_s.side_effect = ldap.INVALID_CREDENTIALS({'desc': 'Invalid credentials'})
    ws = make_workspace(options={'host_name': 'web001'}, tags={'system_type': 'web_server'},
            source={'platform': 'linux'})

    assert dispatcher.run_hook('add_computer', ws) == moduleapi.ActionStatus.warn
    assert "unable to bind" in ws.provision.get_option('errors')['add_computer_error']


def test_delete_computer(dispatcher, make_workspace, conn):
    conn.search_s.return_value = [
        ("cn=web001,ou=Web,ou=Linux,ou=Servers,dc=example,dc=com", {'cn': [b'web001']}),
        (None, ['ldap://example.com/CN=Configuration,DC=example,DC=com']),
    ]
    ws = make_workspace('vm', vm={'name': 'web001'})

    assert dispatcher.run_hook('delete_computer', ws) == moduleapi.ActionStatus.ok
    conn.delete_s.assert_called_once_with("cn=web001,ou=Web,ou=Linux,ou=Servers,dc=example,dc=com")


def test_delete_computer_not_found(dispatcher, make_workspace, conn):
    ws = make_workspace('vm', vm={'name': 'web001'})

    assert dispatcher.run_hook('delete_computer', ws) == moduleapi.ActionStatus.ok
    conn.delete_s.assert_not_called()


def test_delete_computer_error(dispatcher, make_workspace, conn):
    conn.search_s.return_value = [("cn=web001,dc=example,dc=com", {})]
    conn.delete_s.side_effect = ldap.INSUFFICIENT_ACCESS({'desc': 'Insufficient access'})
    ws = make_workspace('vm', vm={'name': 'web001'})

    assert dispatcher.run_hook('delete_computer', ws) == moduleapi.ActionStatus.warn
    assert 'delete_from_ldap_error' in ws.provision.get_option('retire_errors')


def test_create_standard_user(dispatcher, make_workspace, conn):
    ws = make_workspace(attributes=USER)

    assert dispatcher.run_hook('create_user', ws) == moduleapi.ActionStatus.ok

    dn, attrs = added(conn)
    assert dn == "cn=John Smithsonian,ou=Users,dc=example,dc=com"
    assert attrs['sAMAccountName'] == [b'smithsoj']
    assert attrs['userPrincipalName'] == [b'smithsoj@example.com']
    assert attrs['unicodePwd'] == ['"Secret1!"'.encode('utf-16-le')]


def test_create_admin_user(dispatcher, make_workspace, conn):
    ws = make_workspace(attributes=dict(USER, dialog_user_type='admin_user'))

    assert dispatcher.run_hook('create_user', ws) == moduleapi.ActionStatus.ok

    dn, attrs = added(conn)
    assert dn == "cn=John Smithsonian (Admin),ou=Admins,dc=example,dc=com"
    assert attrs['sAMAccountName'] == [b'admin.smithsoj']


@pytest.mark.parametrize('changes, message', [
    ({'dialog_reenter_password': 'other'}, "does not match"),
    ({'dialog_user_type': 'service_account'}, "not implemented"),
    ({'dialog_user_type': 'guest'}, "Invalid user_type"),
    ({'dialog_first_name': ''}, "dialog_first_name"),
])
def test_create_user_errors(dispatcher, make_workspace, conn, changes, message):
    ws = make_workspace(attributes=dict(USER, **changes))

    assert dispatcher.run_hook('create_user', ws) == moduleapi.ActionStatus.abort
    assert message in ws.provision.get_option('errors')['create_user_error']
    conn.add_s.assert_not_called()


def test_encode_modlist():
    modlist = dict(adldap._encode_modlist({'cn': 'web001', 'objectClass': ['top', 'computer'],
            'unicodePwd': b'\x00'}))

    assert modlist == {'cn': [b'web001'], 'objectClass': [b'top', b'computer'],
            'unicodePwd': [b'\x00']}

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
