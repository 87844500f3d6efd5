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


"""Infoblox IP address management.

Reserves IP addresses for new VMs as Infoblox host records (which also
creates their DNS entries), and releases them on retirement. Network
settings may vary by environment:

    infoblox {
        server = ipam.example.com
        api_version = v2.5
        username = cloudforms
        password = ${?INFOBLOX_PASSWORD}
        net_id = 10.0.0.0
        net_cidr = 24
        gateway = 10.0.0.1
        dns_domain = example.com
        dns_view = default
        portgroup = vlan100
        environments {
            prod { net_id = 10.1.0.0, gateway = 10.1.0.1, portgroup = vlan200 }
        }
    }

"""

import netaddr

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import restclient
from vmhooks import workspace


NETWORK_KEYS = ('net_id', 'net_cidr', 'net_mask', 'gateway', 'dns_domain', 'dns_view',
                'portgroup', 'search_by_ea', 'object_type', 'object_ea_key',
                'object_ea_value')

OBJECT_TYPES = ('network', 'range')

DEFAULT_ENVIRONMENT = 'default'

HOST_COMMENT = "Added by VMHooks"


class NetworkSettings(config.Settings):
    """Network settings for one environment."""

    def __init__(self, net_id=None, net_cidr=None, net_mask=None, gateway=None,
            dns_domain=None, dns_view='default', portgroup=None, search_by_ea=False,
            object_type='network', object_ea_key=None, object_ea_value=None):
        super().__init__()

        self.net_id = net_id
        self.net_cidr = net_cidr
        self.gateway = gateway
        self.dns_domain = dns_domain
        self.dns_view = dns_view
        self.portgroup = portgroup
        self.search_by_ea = search_by_ea
        self.object_type = object_type
        self.object_ea_key = object_ea_key
        self.object_ea_value = object_ea_value

        if net_mask is None and net_id is not None and net_cidr is not None:
            net_mask = str(self.network.netmask)
        self.net_mask = net_mask

    @property
    def network(self):
        """The network as a netaddr.IPNetwork."""
        return netaddr.IPNetwork("{!s}/{!s}".format(self.net_id, self.net_cidr))

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create NetworkSettings from a pyhocon ConfigTree.

        Returns a newly created instance of NetworkSettings. Raises
        config.ConfigError in case of error.

        """
        search_by_ea = cls._get_bool(conf, 'search_by_ea', False)
        object_type = cls._get_choice(conf, 'object_type', OBJECT_TYPES, 'network')

        if search_by_ea:
            cls._get_conf(conf, 'object_ea_key')
            cls._get_conf(conf, 'object_ea_value')

        kwargs = {
            key: conf.get(key) for key in NETWORK_KEYS
            if conf.get(key, None) is not None
        }
        kwargs['search_by_ea'] = search_by_ea
        kwargs['object_type'] = object_type

        try:
            return cls(**kwargs)
        except (netaddr.AddrFormatError, ValueError) as e:
            raise config.ConfigError("invalid network: {!s}".format(e))


class InfobloxSettings(config.Settings):
    """Infoblox module settings."""

    def __init__(self, server, api_version, username, password, network,
            environments=None, environment_tag='environment', verify_ssl=False):
        """Initialize an InfobloxSettings instance.

        network should be a NetworkSettings, the defaults for environments
        without an entry in environments (a dict of NetworkSettings by
        environment name).

        """
        super().__init__()

        self.server = server
        self.api_version = api_version
        self.username = username
        self.password = password
        self.network = network
        self.environments = environments if environments is not None else {}
        self.environment_tag = environment_tag
        self.verify_ssl = verify_ssl

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create InfobloxSettings from a pyhocon ConfigTree.

        Returns a newly created instance of InfobloxSettings. Raises
        config.ConfigError in case of error.

        """
        server = cls._get_conf(conf, 'server')
        api_version = cls._get_conf(conf, 'api_version')
        username = cls._get_conf(conf, 'username')
        password = cls._get_conf(conf, 'password')
        environment_tag = cls._get_conf(conf, 'environment_tag', False, 'environment')
        verify_ssl = cls._get_bool(conf, 'verify_ssl', False)

        network = NetworkSettings.from_pyhocon(conf, configurator)

        environments = {}
        envs_conf = conf.get_config('environments', None)
        if envs_conf is not None:
            for env_name in envs_conf:
                # environments only override what they specify
                env_conf = envs_conf.get_config(env_name).with_fallback(conf)
                try:
                    environments[env_name] = NetworkSettings.from_pyhocon(env_conf, configurator)
                except config.ConfigError as e:
                    raise config.ConfigError("environment '{:s}': {:s}".format(env_name, e.message))

        return cls(server, api_version, username, password, network, environments,
                environment_tag, verify_ssl)


class ActionSetEnv(moduleapi.Action):
    """Set the environment attribute, used to pick network settings.

    Taken from the VM's environment tag or, for a provision, from the
    request's tags or web service values. Defaults to "default".

    """

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'set_env_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        tag = self.module.settings.environment_tag

        environment = None
        if context.workspace.object_type == workspace.ObjectType.vm:
            environment = vm.tag(tag) if vm is not None else None
        elif prov is not None:
            ws_values = prov.ws_values or {}
            environment = (prov.get_tags().get(tag)
                           or ws_values.get(tag)
                           or ws_values.get("dialog_tag_0_{:s}".format(tag)))

        if not environment:
            environment = DEFAULT_ENVIRONMENT

        self.logger.info("setting environment <%s>", environment)
        context.workspace.attributes['environment'] = environment


class ActionAcquireIP(moduleapi.Action):
    """Reserve an IP address for a new VM.

    Creates a host record for the VM's FQDN at the next available address
    of the environment's network (or of the first network or range with
    the configured extensible attribute, if search_by_ea is set), and
    stores the resulting network configuration on the request.

    """

    object_types = (workspace.ObjectType.provision,)
    error_key = 'acquire_ip_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        if prov is None:
            raise moduleapi.ActionError("Could not find provisioning object")

        environment = context.workspace.attributes.get('environment', DEFAULT_ENVIRONMENT)
        network = self.module.network_settings(environment)

        vm_name = prov.get_option('vm_target_name')
        if not vm_name:
            raise moduleapi.ActionError("Unable to determine vm_name to properly acquire IP address")

        if not network.dns_domain:
            raise moduleapi.ActionError("dns_domain is not set for environment {:s}".format(environment))

        fqdn = "{:s}.{:s}".format(vm_name, network.dns_domain)

        ws_values = prov.ws_values or {}
        aliases = (ws_values.get('aliases')
                   or ws_values.get('dialog_option_0_aliases')
                   or ws_values.get('option_0_aliases'))
        if isinstance(aliases, str):
            aliases = [a.strip() for a in aliases.split(',') if a.strip()]

        if network.search_by_ea:
            ip_addr = self.reserve_by_ea(fqdn, network, aliases)
        else:
            if network.net_id is None:
                raise moduleapi.ActionError("Network ID is missing. Cannot determine network")
            ip_addr = self.module.reserve_ip(fqdn, network.dns_view,
                    "nextavailableip:{!s}".format(network.network), aliases)

        if ip_addr is None:
            raise moduleapi.ActionError(
                    "Could not successfully create host record for VM: <{:s}>".format(vm_name))

        self.logger.info("VM %s with IP address %s created successfully", fqdn, ip_addr)
        self.set_prov(prov, vm_name, fqdn, ip_addr, network)

    def reserve_by_ea(self, fqdn, network, aliases):
        """Reserve an IP in the first network or range with the EA.

        Returns the IP address, or None if every candidate failed.

        """
        candidates = self.module.find_objects_by_ea(network.object_type,
                network.object_ea_key, network.object_ea_value)

        for candidate in candidates:
            if network.object_type == 'network':
                function = "nextavailableip:{:s}".format(candidate['network'])
            else:
                function = "nextavailableip:{:s}-{:s}".format(candidate['start_addr'],
                        candidate['end_addr'])

            ip_addr = self.module.reserve_ip(fqdn, network.dns_view, function, aliases)
            if ip_addr is not None:
                return ip_addr

        return None

    def set_prov(self, prov, hostname, fqdn, ip_addr, network):
        prov.set_option('sysprep_spec_override', 'true')
        prov.set_option('addr_mode', ["static", "Static"])
        prov.set_option('ip_addr', str(ip_addr))
        # unset settings are written as empty strings
        prov.set_option('subnet_mask', str(network.net_mask or ''))
        prov.set_option('gateway', str(network.gateway or ''))
        prov.set_option('dnsdomain', str(network.dns_domain))
        for option in ('vm_target_name', 'linux_host_name', 'host_name', 'hostname'):
            prov.set_option(option, fqdn)
        prov.set_option('vm_target_hostname', hostname)
        prov.set_network_adapter(0, {'network': network.portgroup, 'is_dvs': True})


class ActionReclaimIP(moduleapi.Action):
    """Delete a retiring VM's host record, releasing its IP address."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'reclaim_ip_error'
    retirement = True
    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        prov, vm = self.resolve(context)

        if context.workspace.object_type == workspace.ObjectType.vm:
            vm_name = vm.name if vm is not None else None
        else:
            vm_name = prov.get_option('vm_target_name') or prov.get_option('vm_target_hostname') \
                    if prov is not None else None

        if not vm_name:
            raise moduleapi.ActionError("Unable to determine VM name")

        if '.' in vm_name:
            fqdn = vm_name
        else:
            environment = context.workspace.attributes.get('environment', DEFAULT_ENVIRONMENT)
            dns_domain = self.module.network_settings(environment).dns_domain
            if not dns_domain:
                raise moduleapi.ActionError("dns_domain is not set for environment {:s}, "
                        "unable to build FQDN for {:s}".format(environment, vm_name))
            fqdn = "{:s}.{:s}".format(vm_name, dns_domain)

        host_ref = self.module.find_host_ref(fqdn)
        if host_ref is None:
            self.logger.warning("Infoblox IPAM entry for <%s> does not exist", fqdn)
            return moduleapi.ActionStatus.ok

        self.module.client.call('delete', host_ref)
        self.logger.info("%s reclaimed successfully", fqdn)


class InfobloxModuleAPI(moduleapi.ModuleAPI):
    """Infoblox module API."""

    _SettingsClass = InfobloxSettings
    """Settings class for this API."""

    actions = {
        'set_env': ActionSetEnv,
        'acquire_ip': ActionAcquireIP,
        'reclaim_ip': ActionReclaimIP,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the Infoblox module.

        Receives an InfobloxSettings object, containing the module's
        settings.

        """
        super().__init__(settings)

        self.client = restclient.RESTClient(
                "https://{:s}/wapi/{:s}".format(settings.server, settings.api_version),
                auth=(settings.username, settings.password),
                verify=settings.verify_ssl,
                headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
                logger=self.logger)

    def network_settings(self, environment):
        """Get the NetworkSettings for an environment."""
        return self.settings.environments.get(environment, self.settings.network)

    def find_objects_by_ea(self, object_type, ea_key, ea_value):
        """Get the networks or ranges whose extensible attribute matches."""
        response = self.client.call('get', object_type,
                params={"*{:s}".format(ea_key): ea_value})

        objects = self.client.parse_json(response)
        self.logger.debug("%s objects with %s=%s: %s", object_type, ea_key, ea_value, objects)

        return objects

    def reserve_ip(self, fqdn, dns_view, function, aliases=None):
        """Create a host record at the address given by an Infoblox function.

        function is e.g. "nextavailableip:10.0.0.0/24". Returns the IP
        address reserved, or None if the reservation failed.

        """
        body = {
            'ipv4addrs': [{'ipv4addr': "func:{:s}".format(function)}],
            'name': fqdn,
            'view': dns_view,
            'configure_for_dns': True,
            'comment': HOST_COMMENT,
        }
        if aliases:
            body['aliases'] = aliases

        try:
            response = self.client.call('post', 'record:host', expected=(200, 201),
                    params={'_return_fields': 'ipv4addrs'}, json=body)
            host = self.client.parse_json(response)

            # some versions answer with just the new object's reference
            if isinstance(host, str):
                response = self.client.call('get', host, params={'_return_fields': 'ipv4addrs'})
                host = self.client.parse_json(response)

            return host['ipv4addrs'][0]['ipv4addr']
        except (restclient.RESTError, KeyError, IndexError, TypeError) as e:
            self.logger.info("unable to reserve IP with %s: %s", function, str(e))
            return None

    def find_host_ref(self, fqdn):
        """Get the reference of the host record for fqdn, or None."""
        try:
            response = self.client.call('get', 'record:host', params={'name': fqdn})
            hosts = self.client.parse_json(response)
        except restclient.RESTError as e:
            self.logger.info("unable to fetch host reference for %s: %s", fqdn, str(e))
            return None

        if not hosts:
            return None

        return hosts[0].get('_ref')


API = InfobloxModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
