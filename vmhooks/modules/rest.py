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


"""Generic REST calls."""

import json
import xml.parsers.expat

import pyhocon
import xmltodict

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import restclient


METHODS = ('get', 'post', 'put', 'delete')
AUTH_TYPES = ('basic',)
CONTENT_TYPES = ('json', 'xml')

MIME_TYPES = {
    'json': 'application/json',
    'xml': 'application/xml',
}


class ActionCallSettings(moduleapi.ActionSettings):
    """Settings for ActionCall."""

    def __init__(self, action_name, method, base_url, resource, user, password,
            auth_type='basic', content_type='json', return_type='json',
            verify_ssl=True, payload=None):
        super().__init__(action_name)

        self.method = method
        self.base_url = base_url
        self.resource = resource
        self.user = user
        self.password = password
        self.auth_type = auth_type
        self.content_type = content_type
        self.return_type = return_type
        self.verify_ssl = verify_ssl
        self.payload = payload

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create ActionCallSettings from a pyhocon ConfigTree.

        Returns a newly created instance of ActionCallSettings. Raises
        config.ConfigError in case of error.

        """
        action_name = cls._get_conf(conf, 'action')

        cls._get_conf(conf, 'method')
        method = cls._get_choice(conf, 'method', METHODS, None)
        base_url = cls._get_conf(conf, 'base_url')
        resource = cls._get_conf(conf, 'resource')
        user = cls._get_conf(conf, 'user')
        password = cls._get_conf(conf, 'password')

        auth_type = cls._get_choice(conf, 'auth_type', AUTH_TYPES, 'basic')
        content_type = cls._get_choice(conf, 'content_type', CONTENT_TYPES, 'json')
        return_type = cls._get_choice(conf, 'return_type', CONTENT_TYPES, 'json')
        verify_ssl = cls._get_bool(conf, 'verify_ssl', True)

        payload = conf.get('payload', None)
        if isinstance(payload, pyhocon.ConfigTree):
            payload = payload.as_plain_ordered_dict()
        elif isinstance(payload, list):
            payload = [
                item.as_plain_ordered_dict() if isinstance(item, pyhocon.ConfigTree) else item
                for item in payload
            ]

        if content_type == 'xml' and payload is not None and not isinstance(payload, str):
            raise config.ConfigError("an xml payload must be given as a string")

        return cls(action_name, method, base_url, resource, user, password,
                auth_type, content_type, return_type, verify_ssl, payload)


class ActionCall(moduleapi.Action):
    """Make a REST call, storing the parsed response on the workspace.

    Sets the rest_results attribute to the response (converted to a dict),
    and rest_status to whether the call succeeded.

    """

    _SettingsClass = ActionCallSettings
    """Settings class for this action."""

    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        settings = self.settings

        client = restclient.RESTClient(settings.base_url,
                auth=(settings.user, settings.password),
                verify=settings.verify_ssl,
                headers={
                    'Content-Type': MIME_TYPES[settings.content_type],
                    'Accept': MIME_TYPES[settings.return_type],
                },
                logger=self.logger)

        kwargs = {}
        if settings.payload is not None:
            if isinstance(settings.payload, str):
                kwargs['data'] = settings.payload
            else:
                kwargs['data'] = json.dumps(settings.payload)

        response = client.call(settings.method, settings.resource,
                expected=range(200, 300), **kwargs)

        results = self.parse_response(response.text)

        context.workspace.attributes['rest_results'] = results
        context.workspace.attributes['rest_status'] = True

    def parse_response(self, text):
        """Convert a response body into a dict, as per return_type."""
        if not text.strip():
            return {}

        try:
            if self.settings.return_type == 'json':
                return json.loads(text)
            return xmltodict.parse(text)
        except (ValueError, xml.parsers.expat.ExpatError):
            raise moduleapi.ActionError("Unable to convert response {!r} into a dict".format(text))

    def record_failure(self, context, message):
        context.workspace.attributes['rest_status'] = False


class RESTModuleAPI(moduleapi.ModuleAPI):
    """REST module API."""

    _SettingsClass = config.EmptySettings
    """Settings class for this API."""

    actions = {'call': ActionCall}
    """Actions for this API, by name."""

    def __init__(self, settings):
        super().__init__(settings)


API = RESTModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
