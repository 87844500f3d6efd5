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


"""Active Directory DNS records, through dynamic DNS updates."""

import subprocess

import netaddr

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import workspace


class DNSUpdateError(Exception):
    """Error while updating DNS."""
    def __init__(self, message):
        self.message = message

    def __str__(self):
        return self.message


def reverse_names(ip_addr):
    """Get the (reverse name, reverse zone) pair for an IPv4 address.

    The zone is that of the address's class C network, e.g. for 10.1.2.3
    returns ('3.2.1.10.in-addr.arpa', '2.1.10.in-addr.arpa').

    """
    try:
        reverse = netaddr.IPAddress(ip_addr).reverse_dns.rstrip('.')
    except (netaddr.AddrFormatError, ValueError) as e:
        raise DNSUpdateError("invalid IP address {!r}: {!s}".format(ip_addr, e))

    zone = reverse.split('.', 1)[1]

    return (reverse, zone)


class ADDNSSettings(config.Settings):
    """AD DNS module settings."""

    def __init__(self, server, domain, ttl=None, nsupdate='nsupdate'):
        super().__init__()

        self.server = server
        self.domain = domain
        self.ttl = ttl
        self.nsupdate = nsupdate

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create ADDNSSettings from a pyhocon ConfigTree.

        Returns a newly created instance of ADDNSSettings. Raises
        config.ConfigError in case of error.

        """
        server = cls._get_conf(conf, 'server')
        domain = cls._get_conf(conf, 'domain')
        ttl = conf.get_int('ttl', None)
        nsupdate = cls._get_conf(conf, 'nsupdate', False, 'nsupdate')

        return cls(server, domain, ttl, nsupdate)


class ActionAddRecord(moduleapi.Action):
    """Add the A and PTR records of a new VM."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'ad_dns_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        if prov is None:
            raise moduleapi.ActionError("Unable to find provisioning object")

        settings = self.module.settings
        if settings.ttl is None:
            raise moduleapi.ActionError("Unable to determine ttl for dynamic update")

        vm_name = prov.get_option('vm_target_name')
        if not vm_name:
            raise moduleapi.ActionError("Unable to determine fqdn")

        ip_addr = prov.get_option('ip_addr')
        if not ip_addr:
            raise moduleapi.ActionError("Unable to find ipaddress for VM <{:s}>".format(vm_name))

        fqdn = "{:s}.{:s}".format(vm_name, settings.domain)
        reverse, reverse_zone = reverse_names(ip_addr)

        self.module.update(settings.domain,
                "update add {:s} {:d} A {:s}".format(fqdn, settings.ttl, ip_addr))
        self.module.update(reverse_zone,
                "update add {:s} {:d} PTR {:s}".format(reverse, settings.ttl, fqdn))

        prov.set_option('prov_ip_addr', ip_addr)
        prov.set_option('prov_dns_domain', settings.domain)


class ActionDeleteRecord(moduleapi.Action):
    """Delete the A and PTR records of a retiring VM."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'ad_dns_error'
    retirement = True
    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        prov, vm = self.resolve(context)
        if vm is None:
            raise moduleapi.ActionError("Unable to find vm")

        settings = self.module.settings

        ip_addr = vm.ipaddresses[0] if vm.ipaddresses else None
        if not ip_addr and prov is not None:
            ip_addr = prov.get_option('ip_addr') or prov.get_option('prov_ip_addr')
        if not ip_addr:
            raise moduleapi.ActionError("Unable to find ipaddress for VM <{:s}>".format(vm.name))

        fqdn = "{:s}.{:s}".format(vm.name, settings.domain)
        reverse, reverse_zone = reverse_names(ip_addr)

        self.module.update(settings.domain,
                "update delete {:s} A {:s}".format(fqdn, ip_addr))
        self.module.update(reverse_zone,
                "update delete {:s} PTR {:s}".format(reverse, fqdn))


class ADDNSModuleAPI(moduleapi.ModuleAPI):
    """AD DNS module API."""

    _SettingsClass = ADDNSSettings
    """Settings class for this API."""

    actions = {
        'add_record': ActionAddRecord,
        'delete_record': ActionDeleteRecord,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the AD DNS module.

        Receives an ADDNSSettings object, containing the module's settings.

        """
        super().__init__(settings)

    def update(self, zone, update):
        """Send a single update line to zone, through nsupdate.

        Raises DNSUpdateError if nsupdate fails.

        """
        script = "server {:s}\nzone {:s}\n{:s}\nsend\n".format(self.settings.server, zone, update)

        self.logger.info("updating zone %s on %s: %s", zone, self.settings.server, update)

        try:
            subprocess.run([self.settings.nsupdate], input=script,
                    stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                    universal_newlines=True, check=True)
        except subprocess.CalledProcessError as e:
            raise DNSUpdateError("nsupdate failed with status {:d}: {:s}".format(
                    e.returncode, (e.output or '').strip()))
        except OSError as e:
            raise DNSUpdateError("unable to run {:s}: {!s}".format(self.settings.nsupdate, e))


API = ADDNSModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
