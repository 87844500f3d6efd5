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


"""Red Hat Identity Management (IdM) host enrollment."""

import shlex

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import restclient
from vmhooks import workspace


INSTALL_TIMEOUT = 120

HOST_NOT_FOUND = 4001
"""IdM JSON-RPC error code for a missing host."""


class IDMSettings(config.Settings):
    """IdM module settings."""

    def __init__(self, username, password, api_url=None, server=None,
            client_packages='ipa-client', update_dns=False, mkhomedir=False,
            configure_ssh=False, verify_ssl=False):
        super().__init__()

        self.username = username
        self.password = password
        self.api_url = api_url
        self.server = server
        self.client_packages = client_packages
        self.update_dns = update_dns
        self.mkhomedir = mkhomedir
        self.configure_ssh = configure_ssh
        self.verify_ssl = verify_ssl

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create IDMSettings from a pyhocon ConfigTree.

        Returns a newly created instance of IDMSettings. Raises
        config.ConfigError in case of error.

        """
        username = cls._get_conf(conf, 'username')
        password = cls._get_conf(conf, 'password')
        api_url = cls._get_conf(conf, 'api_url', required=False)
        server = cls._get_conf(conf, 'server', required=False)
        client_packages = cls._get_conf(conf, 'client_packages', False, 'ipa-client')

        update_dns = cls._get_bool(conf, 'update_dns', False)
        mkhomedir = cls._get_bool(conf, 'mkhomedir', False)
        configure_ssh = cls._get_bool(conf, 'configure_ssh', False)
        verify_ssl = cls._get_bool(conf, 'verify_ssl', False)

        return cls(username, password, api_url, server, client_packages,
                update_dns, mkhomedir, configure_ssh, verify_ssl)


def _domain(prov):
    domain = prov.get_option('dnsdomain') or prov.get_option('dns_domain')
    if not domain:
        raise moduleapi.ActionError("Missing domain via options dnsdomain or dns_domain")

    return domain


def _resolve(action, context):
    prov, vm = action.resolve(context)
    if prov is None or vm is None:
        raise moduleapi.ActionError("Unable to find VM or provisioning object")

    return (prov, vm)


class ActionRegisterHost(moduleapi.Action):
    """Enroll a new VM as an IdM client, over SSH."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'idm_register_client_error'

    def execute(self, context):
        prov, vm = _resolve(self, context)
        settings = self.module.settings

        if settings.server is None:
            raise moduleapi.ActionError("Missing value for setting <server>")

        domain = _domain(prov)
        fqdn = "{:s}.{:s}".format(vm.name.lower(), domain)

        if not vm.ipaddresses:
            raise moduleapi.ActionError("Missing host_ip")
        host = vm.ipaddresses[0]

        ssh = context.dispatch.module_api('ssh')

        ssh.run_command(host, "yum -y install {:s}".format(settings.client_packages),
                timeout=INSTALL_TIMEOUT)

        args = [
            'ipa-client-install',
            '--principal', settings.username,
            '--password', settings.password,
            '--server', settings.server,
            '--domain', domain,
            '--realm', domain.upper(),
            '--hostname', fqdn,
            '--unattended',
        ]
        if settings.update_dns:
            args.append('--enable-dns-updates')
        if settings.mkhomedir:
            args.append('--mkhomedir')
        if not settings.configure_ssh:
            args.append('--no-ssh')

        ssh.run_command(host, ' '.join(shlex.quote(a) for a in args),
                timeout=INSTALL_TIMEOUT)

        self.logger.info("enrolled %s in IdM", fqdn)


class ActionDeleteHost(moduleapi.Action):
    """Remove a retiring VM's host entry (and its DNS records) from IdM."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'idm_delete_host_error'
    retirement = True

    def execute(self, context):
        prov, vm = _resolve(self, context)

        if self.module.client is None:
            raise moduleapi.ActionError("Missing value for setting <api_url>")

        fqdn = "{:s}.{:s}".format(vm.name, _domain(prov))

        self.module.login()
        self.module.delete_host(fqdn)

        self.logger.info("deleted host %s from IdM", fqdn)


class IDMModuleAPI(moduleapi.ModuleAPI):
    """IdM module API."""

    _SettingsClass = IDMSettings
    """Settings class for this API."""

    actions = {
        'register_host': ActionRegisterHost,
        'delete_host': ActionDeleteHost,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the IdM module.

        Receives an IDMSettings object, containing the module's settings.

        """
        super().__init__(settings)

        self.client = None
        if settings.api_url is not None:
            # the IdM API rejects session requests without a Referer
            self.client = restclient.RESTClient(settings.api_url,
                    verify=settings.verify_ssl,
                    headers={'Referer': settings.api_url},
                    logger=self.logger)

    def login(self):
        """Open an API session.

        The session cookie is kept by the client for the following calls.
        Raises restclient.RESTError in case of error.

        """
        response = self.client.call('post', 'session/login_password', expected=(200,),
                data={'user': self.settings.username, 'password': self.settings.password},
                headers={'Accept': 'text/plain'})

        if not response.cookies:
            raise restclient.RESTError("no session cookie in login response")

    def delete_host(self, fqdn):
        """Delete a host, with its DNS records.

        A host which doesn't exist counts as deleted. Raises
        restclient.RESTError in case of error.

        """
        payload = {
            'method': 'host_del',
            'params': [
                [fqdn],
                {'continue': False, 'updatedns': True},
            ],
        }

        response = self.client.call('post', 'session/json', expected=(200,), json=payload,
                headers={'Accept': 'application/json'})
        error = self.client.parse_json(response).get('error')

        if error is None:
            return
        if error.get('code') == HOST_NOT_FOUND:
            self.logger.warning("host %s not found in IdM, was it manually deleted?", fqdn)
            return

        raise restclient.RESTError("unable to delete host {:s}: {!s}".format(fqdn, error))


API = IDMModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
