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


"""SharePoint list of provisioned hosts."""

from requests_ntlm import HttpNtlmAuth

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import restclient
from vmhooks import workspace


URL_PREFIXES = ('https', 'http')


class SharePointSettings(config.Settings):
    """SharePoint module settings."""

    def __init__(self, username, password, server, list_name, api_ref, site=None,
            url_prefix='https', verify_ssl=True):
        super().__init__()

        self.username = username
        self.password = password
        self.server = server
        self.list_name = list_name
        self.api_ref = api_ref
        self.site = site
        self.url_prefix = url_prefix
        self.verify_ssl = verify_ssl

    @property
    def list_url(self):
        parts = [self.server, self.site, self.api_ref, self.list_name]
        return "{:s}://{:s}".format(self.url_prefix,
                '/'.join(str(p).strip('/') for p in parts if p))

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create SharePointSettings from a pyhocon ConfigTree.

        Returns a newly created instance of SharePointSettings. Raises
        config.ConfigError in case of error.

        """
        username = cls._get_conf(conf, 'username')
        password = cls._get_conf(conf, 'password')
        server = cls._get_conf(conf, 'server')
        list_name = cls._get_conf(conf, 'list_name')
        api_ref = cls._get_conf(conf, 'api_ref')
        site = cls._get_conf(conf, 'site', required=False)
        url_prefix = cls._get_choice(conf, 'url_prefix', URL_PREFIXES, 'https')
        verify_ssl = cls._get_bool(conf, 'verify_ssl', True)

        return cls(username, password, server, list_name, api_ref, site,
                url_prefix, verify_ssl)


def _vm_name(prov, vm):
    if vm is not None:
        return vm.name
    if prov is not None:
        return prov.get_option('vm_target_hostname') or prov.get_option('vm_target_name')

    return None


class ActionAddListItem(moduleapi.Action):
    """Add a new VM to the hosts list."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'add_list_item_error'
    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        prov, vm = self.resolve(context)
        if prov is None:
            raise moduleapi.ActionError("Could not find provisioning object")

        vm_name = _vm_name(prov, vm)
        if not vm_name:
            raise moduleapi.ActionError("Unable to determine VM name")

        item = {
            'Hostname': vm_name,
            'IPAddress': prov.get_option('ip_addr'),
            'IPAssignmentValue': prov.get_option('addr_mode'),
            'Title': "CloudForms - {:s}".format(vm_name),
            'Vault': False,
        }

        self.module.client.call('post', expected=(201,), json=item,
                headers={'Content-Type': 'application/json'})

        self.logger.info("added %s to list %s", vm_name, self.module.settings.list_name)


class ActionDeleteListItem(moduleapi.Action):
    """Remove a retiring VM from the hosts list."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'delete_list_item_error'
    retirement = True
    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        prov, vm = self.resolve(context)

        vm_name = _vm_name(prov, vm)
        if not vm_name:
            raise moduleapi.ActionError("Unable to determine VM name")

        client = self.module.client

        response = client.call('get', params={'$filter': "Hostname eq '{:s}'".format(vm_name)},
                headers={'Accept': 'application/json;odata=verbose'})
        body = client.parse_json(response)

        try:
            uri = body['d']['results'][0]['__metadata']['uri']
        except (KeyError, IndexError, TypeError):
            raise moduleapi.ActionError("Unable to determine URI to send HTTP DELETE request to")

        client.call('delete', uri, expected=(204,),
                headers={'Accept': 'application/json;odata=verbose', 'IF-MATCH': '*'})

        self.logger.info("deleted %s from list %s", vm_name, self.module.settings.list_name)


class SharePointModuleAPI(moduleapi.ModuleAPI):
    """SharePoint module API."""

    _SettingsClass = SharePointSettings
    """Settings class for this API."""

    actions = {
        'add_list_item': ActionAddListItem,
        'delete_list_item': ActionDeleteListItem,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the SharePoint module.

        Receives a SharePointSettings object, containing the module's
        settings.

        """
        super().__init__(settings)

        self.client = restclient.RESTClient(settings.list_url,
                auth=HttpNtlmAuth(settings.username, settings.password),
                verify=settings.verify_ssl,
                headers={'X-FORMS_BASED_AUTH_ACCEPTED': 'f'},
                logger=self.logger)


API = SharePointModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
