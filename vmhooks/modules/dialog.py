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


"""Dialog values."""

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import workspace


class ActionGetValueSettings(moduleapi.ActionSettings):
    """Settings for ActionGetValue."""

    def __init__(self, action_name, dialog_key):
        super().__init__(action_name)

        self.dialog_key = dialog_key

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        action_name = cls._get_conf(conf, 'action')
        dialog_key = cls._get_conf(conf, 'dialog_key')

        return cls(action_name, str(dialog_key))


class ActionGetValue(moduleapi.Action):
    """Copy a dialog value (option or tag) into the workspace attributes.

    The value is looked up in the request's ws_values, or in its tags if
    there are none, and stored as a string under the same key.

    """

    _SettingsClass = ActionGetValueSettings
    """Settings class for this action."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'dialog_get_value'

    def execute(self, context):
        prov, vm = self.resolve(context)
        if prov is None:
            raise moduleapi.ActionError("Could not find provisioning object")

        options = prov.ws_values or prov.get_tags()
        if not options:
            raise moduleapi.ActionError("Unable to find options_hash via ws_values or tags")

        key = self.settings.dialog_key
        value = options.get(key)
        if value is None:
            raise moduleapi.ActionError(
                    "Unable to determine dialog_value from dialog option: <{:s}> in options_hash: {!r}".format(
                        key, options))

        self.logger.info("setting %s to <%s>", key, value)
        context.workspace.attributes[key] = str(value)


class DialogModuleAPI(moduleapi.ModuleAPI):
    """Dialog module API."""

    _SettingsClass = config.EmptySettings
    """Settings class for this API."""

    actions = {'get_value': ActionGetValue}
    """Actions for this API, by name."""

    def __init__(self, settings):
        super().__init__(settings)


API = DialogModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
