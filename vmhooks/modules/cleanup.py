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


"""Cleanup after a failed provisioning.

Meant for the error paths of the provisioning workflow. Depending on how
far provisioning got, either undoes the pre-provisioning steps (through a
configured action list) or asks for the new VM to be retired.

The actions in on_pre_provision must belong to modules loaded before this
one, e.g.

    modules = [ "infoblox", "cleanup" ]
    cleanup {
        enabled = true
        on_pre_provision = [ { action = "infoblox.reclaim_ip" } ]
    }

"""

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import workspace


STATUSES = ('pre_provision', 'provision', 'post_provision')


class CleanupSettings(config.Settings):
    """Cleanup module settings."""

    def __init__(self, enabled=False, on_pre_provision=None):
        """Initialize a CleanupSettings instance.

        on_pre_provision should be an instance of
        moduleapi.ActionListSettings.

        """
        super().__init__()

        self.enabled = enabled
        self.on_pre_provision = on_pre_provision if on_pre_provision is not None \
                else moduleapi.ActionListSettings([])

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create CleanupSettings from a pyhocon ConfigTree.

        Returns a newly created instance of CleanupSettings. Raises
        config.ConfigError in case of error.

        """
        enabled = cls._get_bool(conf, 'enabled', False)

        on_pre_provision_raw = cls._get_conf(conf, 'on_pre_provision', False)
        on_pre_provision = moduleapi.ActionListSettings.from_pyhocon(
                on_pre_provision_raw, configurator) if on_pre_provision_raw else None

        return cls(enabled, on_pre_provision)


class ActionAutoCleanupSettings(moduleapi.ActionSettings):
    """Settings for ActionAutoCleanup."""

    def __init__(self, action_name, status):
        super().__init__(action_name)

        self.status = status

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        action_name = cls._get_conf(conf, 'action')

        cls._get_conf(conf, 'status')
        status = cls._get_choice(conf, 'status', STATUSES, None)

        return cls(action_name, status)


class ActionAutoCleanup(moduleapi.Action):
    """Clean up after a provisioning failure at the configured stage."""

    _SettingsClass = ActionAutoCleanupSettings
    """Settings class for this action."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    error_key = 'auto_cleanup_error'

    def execute(self, context):
        prov, vm = self.resolve(context)
        if prov is None:
            raise moduleapi.ActionError("Unable to find provisioning object")

        status = self.settings.status
        prov.message = "AUTO-CLEANUP: Status: {:s}".format(status)

        if not self.module.settings.enabled:
            self.logger.info("auto-cleanup is disabled, skipping")
            return

        self.logger.info("running auto-cleanup for status %s", status)

        if status == 'pre_provision':
            return self.pre_provision_cleanup(context)
        elif status == 'provision':
            if vm is None:
                self.logger.info("no VM yet, running pre-provision cleanup")
                return self.pre_provision_cleanup(context)
            self.retire(vm)
        else:
            if vm is None:
                raise moduleapi.ActionError("Unable to find VM for cleanup")
            self.retire(vm)

    def pre_provision_cleanup(self, context):
        action_list_settings = self.module.settings.on_pre_provision
        if not action_list_settings.action_settings_list:
            self.logger.warning("no pre-provision cleanup actions configured")
            return

        action_list = moduleapi.ActionList(self.logger, action_list_settings)
        status = action_list.run(context)

        # failures are already recorded by the cleanup actions themselves
        if status != moduleapi.ActionStatus.ok:
            self.logger.warning("pre-provision cleanup finished with status %s", status.name)

    def retire(self, vm):
        self.logger.info("requesting retirement of VM %s", vm.name)
        vm.retire_now()


class CleanupModuleAPI(moduleapi.ModuleAPI):
    """Cleanup module API."""

    _SettingsClass = CleanupSettings
    """Settings class for this API."""

    actions = {
        'auto_cleanup': ActionAutoCleanup,
    }
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the cleanup module.

        Receives a CleanupSettings object, containing the module's
        settings.

        """
        super().__init__(settings)


API = CleanupModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
