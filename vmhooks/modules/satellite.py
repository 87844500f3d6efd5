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


"""Red Hat Satellite 6 registration.

Activation keys are composed from three parts: content (environment,
usage and OS), group and subscription. The lookup tables for each part
live in the module's settings, e.g.

    satellite {
        key_prefix = "ak"
        group_key_prefix = "grp"
        sub_key_prefix = "sub"
        operating_systems { RedHatEnterpriseLinux7 { short_name = "rhel7" } }
        environments { prod { activation_key = "prd" } }
        functions { web { subscription_key = "-std" } }
    }

"""

import shlex

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import restclient
from vmhooks import workspace


DEFAULT_OPTION_PREFIX = 'dos_'
DEFAULT_TOOLS_REPO = 'rhel-7-server-satellite-tools-6.2-rpms'

CONSUMER_PKG = 'katello-ca-consumer'
REGISTER_TIMEOUT = 120

HOSTS_REF = 'hosts'


class SatelliteSettings(config.Settings):
    """Satellite module settings."""

    def __init__(self, server=None, organization=None, api_url=None, api_user=None,
            api_password=None, verify_ssl=False, key_prefix=None, group_key_prefix=None,
            sub_key_prefix=None, option_prefix=DEFAULT_OPTION_PREFIX,
            tools_repo=DEFAULT_TOOLS_REPO, operating_systems=None, environments=None,
            functions=None):
        super().__init__()

        self.server = server
        self.organization = organization
        self.api_url = api_url
        self.api_user = api_user
        self.api_password = api_password
        self.verify_ssl = verify_ssl
        self.key_prefix = key_prefix
        self.group_key_prefix = group_key_prefix
        self.sub_key_prefix = sub_key_prefix
        self.option_prefix = option_prefix
        self.tools_repo = tools_repo
        self.operating_systems = operating_systems or {}
        self.environments = environments or {}
        self.functions = functions or {}

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create SatelliteSettings from a pyhocon ConfigTree.

        Returns a newly created instance of SatelliteSettings. Raises
        config.ConfigError in case of error.

        """
        optional = {
            key: cls._get_conf(conf, key, required=False)
            for key in ('server', 'organization', 'api_url', 'api_user', 'api_password',
                        'key_prefix', 'group_key_prefix', 'sub_key_prefix')
        }

        verify_ssl = cls._get_bool(conf, 'verify_ssl', False)
        option_prefix = cls._get_conf(conf, 'option_prefix', False, DEFAULT_OPTION_PREFIX)
        tools_repo = cls._get_conf(conf, 'tools_repo', False, DEFAULT_TOOLS_REPO)

        operating_systems = cls._get_tree(conf, 'operating_systems')
        environments = cls._get_tree(conf, 'environments')
        functions = cls._get_tree(conf, 'functions')

        return cls(verify_ssl=verify_ssl, option_prefix=option_prefix,
                tools_repo=tools_repo, operating_systems=operating_systems,
                environments=environments, functions=functions, **optional)

    def lookup(self, table_name, name, attr):
        """Get attr of entry name in one of the lookup tables, or None."""
        entry = getattr(self, table_name).get(name) or {}
        return entry.get(attr)


def os_table_name(product_name):
    """Get the lookup name of an OS product name.

    E.g. "Red Hat Enterprise Linux 7 (64-bit)" gives
    "RedHatEnterpriseLinux7".

    """
    return product_name.split('(')[0].replace(' ', '')


def _resolve(action, context):
    prov, vm = action.resolve(context)
    if prov is None or vm is None:
        raise moduleapi.ActionError("Unable to find provisioning object or VM")

    return (prov, vm)


def _require(values):
    for key, value in values.items():
        if value is None:
            raise moduleapi.ActionError("Missing value for Key: <{:s}>".format(key))


class ActionBuildActivationKey(moduleapi.Action):
    """Compose a new VM's activation keys, into the 'activation_key' attribute."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'satellite_build_activation_key_error'

    def execute(self, context):
        prov, vm = _resolve(self, context)
        settings = self.module.settings

        options = prov.ws_values or prov.get_tags()
        if not options:
            raise moduleapi.ActionError("Unable to find options via ws_values or tags")

        os_name = prov.source.operating_system

        def option(name):
            value = options.get(settings.option_prefix + name)
            if isinstance(value, list):
                value = value[0] if value else None
            return value

        attrs = {
            'environment': option('environment'),
            'group': option('group'),
            'server_usage': option('server_usage'),
            'function': option('function'),
            'os_short_name': settings.lookup('operating_systems',
                    os_table_name(os_name), 'short_name') if os_name else None,
            'key_prefix': settings.key_prefix,
            'group_key_prefix': settings.group_key_prefix,
            'sub_key_prefix': settings.sub_key_prefix,
        }
        _require(attrs)

        lookups = {
            'environment_key': settings.lookup('environments',
                    attrs['environment'], 'activation_key'),
            'subscription_key': settings.lookup('functions',
                    attrs['function'], 'subscription_key'),
        }
        _require(lookups)

        content_key = '-'.join([attrs['key_prefix'], lookups['environment_key'],
                attrs['server_usage'], attrs['os_short_name']])
        group_key = '-'.join([attrs['key_prefix'], attrs['group_key_prefix'], attrs['group']])
        sub_key = '-'.join([attrs['key_prefix'], attrs['sub_key_prefix'],
                attrs['os_short_name'] + lookups['subscription_key']])

        key = ','.join([content_key, group_key, sub_key])

        self.logger.info("built activation key %s", key)
        context.workspace.attributes['activation_key'] = key


class ActionRegisterClient(moduleapi.Action):
    """Register a new VM with Satellite and install its agent, over SSH."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'satellite_register_client_error'

    def execute(self, context):
        prov, vm = _resolve(self, context)
        settings = self.module.settings

        attrs = {
            'server': settings.server,
            'organization': settings.organization,
            'activation_key': context.workspace.attributes.get('activation_key'),
            'host_ip': vm.ipaddresses[0] if vm.ipaddresses else None,
        }
        _require(attrs)

        commands = [
            ("yum remove -y {pkg}-*; rpm -Uvh http://{server}/pub/{pkg}-latest.noarch.rpm".format(
                    pkg=CONSUMER_PKG, server=settings.server), None),
            ("subscription-manager register --org={:s} --activationkey={:s} --force".format(
                    shlex.quote(settings.organization), shlex.quote(attrs['activation_key'])),
                    REGISTER_TIMEOUT),
            ("subscription-manager repos --enable {:s}".format(settings.tools_repo),
                    REGISTER_TIMEOUT),
            ("yum -y install katello-agent", REGISTER_TIMEOUT),
        ]

        ssh = context.dispatch.module_api('ssh')
        for command, timeout in commands:
            ssh.run_command(attrs['host_ip'], command, timeout=timeout)

        self.logger.info("registered %s with organization %s", vm.name, settings.organization)


class ActionUnregisterClient(moduleapi.Action):
    """Delete a retiring VM's host record from Satellite."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'satellite_unregister_client_error'
    retirement = True

    def execute(self, context):
        prov, vm = _resolve(self, context)

        if self.module.client is None:
            raise moduleapi.ActionError("Missing value for Key: <api_url>")

        name = vm.hostnames[0] if vm.hostnames else vm.name

        host = self.module.find_host(name)
        if host is None:
            self.logger.warning("unable to find host %s in Satellite, was it manually deleted?", name)
            return

        self.module.client.call('delete', "{:s}/{!s}".format(HOSTS_REF, host['id']))
        self.logger.info("deleted host %s (id %s) from Satellite", host['name'], host['id'])


class SatelliteModuleAPI(moduleapi.ModuleAPI):
    """Satellite module API."""

    _SettingsClass = SatelliteSettings
    """Settings class for this API."""

    actions = {
        'build_activation_key': ActionBuildActivationKey,
        'register_client': ActionRegisterClient,
        'unregister_client': ActionUnregisterClient,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the Satellite module.

        Receives a SatelliteSettings object, containing the module's
        settings.

        """
        super().__init__(settings)

        self.client = None
        if settings.api_url is not None:
            self.client = restclient.RESTClient(settings.api_url,
                    auth=(settings.api_user, settings.api_password),
                    verify=settings.verify_ssl,
                    headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
                    logger=self.logger)

    def find_host(self, name):
        """Find the single host record matching name.

        A fully qualified name must match exactly, a short name matches
        as a prefix. Returns the host's dict, or None if there is no match.
        Raises moduleapi.ActionError if more than one host matches.

        """
        response = self.client.call('get', HOSTS_REF, params={'search': name})
        results = self.client.parse_json(response).get('results') or []

        name = name.lower()
        if '.' in name:
            matches = [h for h in results if h['name'].lower() == name]
        else:
            matches = [h for h in results if h['name'].lower().startswith(name)]

        if len(matches) > 1:
            raise moduleapi.ActionError("Multiple systems with name: <{:s}> found. "
                    "Unable to reliably determine which system to delete".format(name))

        return matches[0] if matches else None


API = SatelliteModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
