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


"""Puppet Enterprise agents, certificates and PuppetDB nodes.

The CA and PuppetDB APIs are reached with a client certificate, whose PEM
files are given by auth_cert and auth_key.

"""

import datetime

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import restclient
from vmhooks import workspace


AGENT_COMMAND_TIMEOUT = 120

DEACTIVATE_NODE_COMMAND = 'deactivate node'
DEACTIVATE_NODE_VERSION = 3


class PuppetSettings(config.Settings):
    """Puppet module settings."""

    def __init__(self, auth_cert, auth_key, ca_api_url=None, db_query_api_url=None,
            db_cmd_api_url=None, verify_ssl=False, agent_pkg=None, master_server=None,
            ca_server=None, agent_service='puppet'):
        super().__init__()

        self.auth_cert = auth_cert
        self.auth_key = auth_key
        self.ca_api_url = ca_api_url
        self.db_query_api_url = db_query_api_url
        self.db_cmd_api_url = db_cmd_api_url
        self.verify_ssl = verify_ssl
        self.agent_pkg = agent_pkg
        self.master_server = master_server
        self.ca_server = ca_server
        self.agent_service = agent_service

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create PuppetSettings from a pyhocon ConfigTree.

        Returns a newly created instance of PuppetSettings. Raises
        config.ConfigError in case of error.

        """
        auth_cert = cls._get_conf(conf, 'auth_cert')
        auth_key = cls._get_conf(conf, 'auth_key')

        optional = {
            key: cls._get_conf(conf, key, required=False)
            for key in ('ca_api_url', 'db_query_api_url', 'db_cmd_api_url',
                        'agent_pkg', 'master_server', 'ca_server')
        }

        verify_ssl = cls._get_bool(conf, 'verify_ssl', False)
        agent_service = cls._get_conf(conf, 'agent_service', False, 'puppet')

        return cls(auth_cert, auth_key, verify_ssl=verify_ssl,
                agent_service=agent_service, **optional)


class PuppetAction(moduleapi.Action):
    """Base class for actions on a VM and its provisioning request."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)

    def resolve(self, context):
        prov, vm = super().resolve(context)
        if prov is None or vm is None:
            raise moduleapi.ActionError("Unable to find VM or provisioning object")

        return (prov, vm)

    @staticmethod
    def fqdn(prov, vm):
        """Get the VM's certificate name.

        Only the VM name is lower-cased, the domain is kept as given.

        """
        domain = prov.get_option('dnsdomain') or prov.get_option('dns_domain')
        if not domain:
            raise moduleapi.ActionError("Missing domain via options dnsdomain or dns_domain")

        return "{:s}.{:s}".format(vm.name.lower(), domain)

    def require(self, *names):
        """Raise ActionError unless the named module settings are set."""
        for name in names:
            if getattr(self.module.settings, name) is None:
                raise moduleapi.ActionError("Missing value for setting <{:s}>".format(name))


class ActionConfigureAgent(PuppetAction):
    """Install and configure the Puppet agent on a new VM, over SSH."""

    error_key = 'puppet_configure_agent_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        self.require('agent_pkg', 'master_server', 'ca_server', 'agent_service')

        if not vm.ipaddresses:
            raise moduleapi.ActionError("Missing host_ip")
        host = vm.ipaddresses[0]

        settings = self.module.settings
        commands = [
            "yum install -y {:s} --nogpgcheck".format(settings.agent_pkg),
            "puppet config --section agent set server {:s}".format(settings.master_server),
            "puppet config --section agent set ca_server {:s}".format(settings.ca_server),
            "puppet agent -tv --noop --waitforcert=0; exit 0",
            "puppet resource service {:s} ensure=running enable=true".format(settings.agent_service),
        ]

        ssh = context.dispatch.module_api('ssh')
        for command in commands:
            ssh.run_command(host, command, timeout=AGENT_COMMAND_TIMEOUT)


class ActionSignCert(PuppetAction):
    """Sign the certificate request of a new VM's agent."""

    error_key = 'puppet_sign_cert_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        self.require('ca_api_url')

        fqdn = self.fqdn(prov, vm).lower()

        self.module.ca_client.call('put', "certificate_status/{:s}".format(fqdn),
                expected=(204,), json={'desired_state': 'signed'})

        self.logger.info("signed certificate for %s", fqdn)


class ActionRevokeCert(PuppetAction):
    """Revoke and delete the certificate of a retiring VM.

    Certificates which were never signed are just deleted. Certificates
    which are already gone count as done.

    """

    error_key = 'puppet_revoke_cert_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        self.require('ca_api_url')

        fqdn = self.fqdn(prov, vm)
        ref = "certificate_status/{:s}".format(fqdn)
        client = self.module.ca_client

        state = self.module.cert_state(fqdn)
        if state is None:
            self.logger.warning("certificate for %s not found, was it manually deleted?", fqdn)
            return
        if state == 'requested':
            self.logger.warning("certificate for %s not signed, not revoking", fqdn)
        else:
            client.call('put', ref, expected=(204,), json={'desired_state': 'revoked'})
            self.logger.info("revoked certificate for %s", fqdn)

        if self.module.cert_state(fqdn) is None:
            self.logger.warning("certificate for %s not found, was it manually deleted?", fqdn)
            return

        client.call('delete', ref, expected=(204,))
        self.logger.info("deleted certificate for %s", fqdn)


class ActionDeleteNode(PuppetAction):
    """Deactivate a retiring VM's node in PuppetDB."""

    error_key = 'puppet_delete_node_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        self.require('db_query_api_url', 'db_cmd_api_url')

        fqdn = self.fqdn(prov, vm)

        response = self.module.query_client.call('get', 'nodes')
        nodes = [n for n in self.module.query_client.parse_json(response)
                 if n.get('certname') == fqdn]

        if not nodes:
            self.logger.warning("unable to find node %s in PuppetDB, was it manually deleted?", fqdn)
            return moduleapi.ActionStatus.warn

        command = {
            'command': DEACTIVATE_NODE_COMMAND,
            'version': DEACTIVATE_NODE_VERSION,
            'payload': {
                'certname': fqdn,
                'producer_timestamp': datetime.datetime.now(datetime.timezone.utc).isoformat(),
            },
        }

        self.module.cmd_client.call('post', expected=(200,), json=command)
        self.logger.info("deactivated node %s in PuppetDB", fqdn)


class PuppetModuleAPI(moduleapi.ModuleAPI):
    """Puppet module API."""

    _SettingsClass = PuppetSettings
    """Settings class for this API."""

    actions = {
        'configure_agent': ActionConfigureAgent,
        'sign_cert': ActionSignCert,
        'revoke_cert': ActionRevokeCert,
        'delete_node': ActionDeleteNode,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the Puppet module.

        Receives a PuppetSettings object, containing the module's settings.

        """
        super().__init__(settings)

        self.ca_client = self._client(settings.ca_api_url)
        self.query_client = self._client(settings.db_query_api_url)
        self.cmd_client = self._client(settings.db_cmd_api_url)

    def _client(self, url):
        if url is None:
            return None

        return restclient.RESTClient(url,
                cert=(self.settings.auth_cert, self.settings.auth_key),
                verify=self.settings.verify_ssl,
                headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
                logger=self.logger)

    def cert_state(self, fqdn):
        """Get the state of a certificate, or None if there is none."""
        response = self.ca_client.call('get', "certificate_status/{:s}".format(fqdn),
                expected=(200, 404))
        if response.status_code == 404:
            return None

        return self.ca_client.parse_json(response).get('state')


API = PuppetModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
