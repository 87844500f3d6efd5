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


"""Dispatch module."""

import logging

import pyhocon

from vmhooks import config
from vmhooks import moduleapi


class DispatchError(Exception):
    """Error while dispatching."""
    def __init__(self, message):
        self.message = message

    def __str__(self):
        return self.message


class Dispatch:
    def __init__(self, config_filename=None, conf=None):
        """Initialize a dispatcher.

        Receives the name of the configuration file to parse or an already
        parsed pyhocon ConfigTree. Raises DispatchError in case of error.

        """
        self.logger = logging.getLogger('vmhooks.dispatch')

        try:
            self.config = config.Configurator(config_filename, conf)
        except config.ConfigError as e:
            raise DispatchError(str(e))

        ok = self.config.load_modules()
        if not ok:
            raise DispatchError("errors while loading modules")

        try:
            self.hooks = self.config.load_hooks()
        except config.ConfigError as e:
            raise DispatchError(str(e))

    def module_api(self, name):
        """Get the loaded API of a module, by name.

        Raises DispatchError if the module isn't loaded.

        """
        try:
            return self.config.module_apis_by_name[name]
        except KeyError:
            raise DispatchError("module '{:s}' is not loaded".format(name))

    def run_hook(self, hook_name, workspace):
        """Run the actions of a lifecycle hook on a workspace.

        Returns the most severe moduleapi.ActionStatus of the actions run.
        Raises DispatchError if no such hook is configured.

        """
        try:
            settings = self.hooks[hook_name]
        except KeyError:
            raise DispatchError("no such hook '{:s}'".format(hook_name))

        self.logger.info("running hook %s (%d actions)", hook_name,
                len(settings.action_settings_list))

        context = moduleapi.ActionContext('dispatch', self, workspace,
                "hook {:s}".format(hook_name))

        action_list = moduleapi.ActionList(self.logger, settings)
        return action_list.run(context)

    def run_action(self, action_name, workspace, hook_name=None):
        """Run a single action on a workspace.

        The action's settings are taken from its first entry in hook_name,
        if given and present there. Otherwise the action is configured
        with no settings besides its name. Returns a moduleapi.ActionStatus.

        """
        settings = None
        if hook_name is not None and hook_name in self.hooks:
            settings = self.hooks[hook_name].find(action_name)

        if settings is None:
            try:
                settings = self.config.configure_action(
                        pyhocon.ConfigFactory.from_dict({'action': action_name}))
            except config.ConfigError as e:
                raise DispatchError(str(e))

        context = moduleapi.ActionContext('dispatch', self, workspace,
                "action {:s}".format(action_name))

        return self.execute_action(settings, context)

    def execute_action(self, settings, context):
        """Execute an action.

        Receives an instance of moduleapi.ActionSettings and an
        ActionContext. Returns a moduleapi.ActionStatus.

        """
        action_name = settings.action_name

        action_class, api = self.config.resolve_action(action_name)

        # api should only be None if the module isn't loaded, in which case
        # we shouldn't have gotten here
        assert api is not None

        action = action_class(api, settings)
        return action.run(context)


# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
