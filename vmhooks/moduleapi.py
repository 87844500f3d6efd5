
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


"""API definition for all VMHooks modules."""


import logging
import abc
import enum

from vmhooks import config


class ActionError(Exception):
    """Error while executing an action."""
    def __init__(self, message):
        self.message = message

    def __str__(self):
        return self.message


class ActionStatus(enum.IntEnum):
    """Return codes for Action.run(), in order of severity."""

    ok = 0          # completed, or nothing to do
    warn = 1        # failed, but the lifecycle step may continue
    abort = 2       # failed, the lifecycle step must stop


class ActionContext:
    """Context information for an action.

    Identifies the caller of a certain action, gives access to the
    dispatcher (for reaching other modules) and to the workspace the
    action operates on.

    """

    def __init__(self, calling_module, dispatch, workspace, message=None):
        self.calling_module = calling_module
        self.dispatch = dispatch
        self.workspace = workspace
        self.message = message


class ActionSettings(config.Settings, metaclass=abc.ABCMeta):
    """Base class for action settings.

    ActionSettings are special in that they contain an additional instance
    attribute, action_name. This MUST hold the full (absolute) name of the
    action, for resolving at execution time.

    """

    @abc.abstractmethod
    def __init__(self, action_name):
        """Initialize an ActionSettings instance.

        Subclasses MUST call the original method for common initialization
        such as logging and storing the mandatory action_name.

        """
        super().__init__()
        self.action_name = action_name


class PlainActionSettings(ActionSettings):
    """Settings for actions which take nothing but their name."""

    def __init__(self, action_name):
        super().__init__(action_name)

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        return cls(cls._get_conf(conf, 'action'))


class ActionListSettings(config.Settings):
    """Settings for ActionList."""

    def __init__(self, action_settings_list):
        """Initialize an ActionListSettings instance.

        Receives a list of ActionSettings subclass instances.

        """
        super().__init__()

        self.action_settings_list = action_settings_list

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create ActionListSettings from a list of pyhocon ConfigTrees.

        Returns a newly created instance of ActionListSettings. Raises
        config.ConfigError in case of error.

        """
        action_settings_list = [
                configurator.configure_action(action_conf)
                for action_conf in conf
        ]

        return cls(action_settings_list)

    def find(self, action_name):
        """Get the settings of the first action named action_name, or None."""
        for action_settings in self.action_settings_list:
            if action_settings.action_name == action_name:
                return action_settings

        return None


class ActionList:
    """A list of actions to be executed."""

    def __init__(self, logger, settings):
        """Initialize an ActionList instance."""

        self.logger = logger
        self.settings = settings

    def run(self, context):
        """Run the configured actions, in order.

        Stops at the first action returning ActionStatus.abort. Returns the
        most severe ActionStatus seen.

        """
        status = ActionStatus.ok
        for action_settings in self.settings.action_settings_list:
            substatus = context.dispatch.execute_action(action_settings, context)
            status = max(status, substatus)

            if substatus == ActionStatus.abort:
                self.logger.error("action %s aborted, skipping remaining actions",
                        action_settings.action_name)
                break

        return status


class Action(config.Configurable, metaclass=abc.ABCMeta):
    """Base class for actions.

    Subclasses MUST define a class attribute _SettingsClass, which should
    be the appropriate subclass of config.Settings for that action. This
    will be used by config.Configurable.settings_from_pyhocon.

    Subclasses SHOULD also set the following class attributes:

      * object_types

      The workspace.ObjectType values the action can work with, or None
      for any.

      * error_key

      Key under which a failure message is recorded on the provisioning
      request's errors (or retire_errors, if retirement is True).

      * failure_status

      The ActionStatus returned when execute raises.

    """

    _SettingsClass = PlainActionSettings

    object_types = None
    error_key = None
    retirement = False
    failure_status = ActionStatus.abort

    def __init__(self, module, settings):
        """Initialize an Action.

        module should be a loaded instance of the module to which this
        action belongs. settings should be an instance of the appropriate
        Settings subclass for this action.

        Subclasses SHOULD call the original method, for common
        initialization.

        """
        self.module = module
        self.settings = settings
        self.logger = module.logger

    @property
    def name(self):
        return self.settings.action_name

    def resolve(self, context):
        """Get the (provision, vm) pair from the context's workspace."""
        return context.workspace.resolve(self.object_types)

    @abc.abstractmethod
    def execute(self, context):
        """Execute the action.

        Receives an ActionContext. May return an ActionStatus; None means
        ActionStatus.ok. Errors are reported by raising an exception.

        """
        pass

    def run(self, context):
        """Execute the action, turning any error into a failure status.

        On error, logs it and records a message on the workspace (see
        record_failure). Returns an ActionStatus.

        """
        self.logger.debug("entering %s", self.name)

        try:
            status = self.execute(context)
        except Exception as e:
            message = "Unable to successfully complete action {:s}. Error: {!s}".format(
                    self.name, e)

            if self.failure_status == ActionStatus.abort:
                self.logger.error("%s", message)
            else:
                self.logger.warning("%s", message)
            self.logger.debug("%s failed", self.name, exc_info=True)

            self.record_failure(context, message)
            status = self.failure_status

        self.logger.debug("exiting %s", self.name)

        return ActionStatus.ok if status is None else ActionStatus(status)

    def record_failure(self, context, message):
        """Record a failure message on the workspace.

        The default stores it under error_key on the provisioning request,
        when there is one.

        """
        prov = context.workspace.provision
        if prov is not None and self.error_key is not None:
            prov.add_error(self.error_key, message, self.retirement)


class ModuleAPI(config.Configurable, metaclass=abc.ABCMeta):
    """Base class for the API of all VMHooks modules.

    Modules must override a set of abstract methods and properties. Also,
    they provide callbacks, known as actions.

    Subclasses MUST define the following class attributes:

      * _SettingsClass

      The appropriate subclass of config.Settings for the API. This will be
      used by config.Configurable.settings_from_pyhocon.

      * actions

      A dictionary mapping the (relative) action names of the API to their
      respective moduleapi.Action subclasses. This will be used by
      config.resolve_actions.

    """

    actions = {}
    """Actions for this API, by name."""

    @abc.abstractmethod
    def __init__(self, settings):
        """Initialize the module API.

        Receives an instance of the module's Settings subclass.

        Subclasses SHOULD call the original method for initializing common
        attributes such as logging.

        This method is only for initialization and should not contact any
        external system.

        """
        self.logger = logging.getLogger("vmhooks.%s" % self.name)
        self.settings = settings

    @property
    def name(self):
        """Get the module's name.

        This is the module's basename, as used for importing.

        """
        return self.__module__.rpartition('.')[2]

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
