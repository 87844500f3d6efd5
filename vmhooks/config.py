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


"""Configuration parser."""

import abc
import logging
import importlib

import pyhocon


class ConfigError(Exception):
    """Error while parsing configuration."""
    def __init__(self, message):
        self.message = message

    def __str__(self):
        return self.message


class Configurable:
    """Mix-in class (trait) for all configurable classes.

    Descendants of Configurable gain a classmethod settings_from_pyhocon,
    which receives a pyhocon ConfigTree and returns an instance of the
    appropriate Settings subclass.

    Descendants MUST define a class attribute _SettingsClass, which will be
    used by settings_from_pyhocon to determine which Settings subclass to
    create.

    """
    @classmethod
    def settings_from_pyhocon(cls, conf, configurator):
        """Get settings for this class.

        Receives a pyhocon.config_tree.ConfigTree and a Configurator for
        name resolution while configuring nested objects. Returns an
        appropriate subclass of config.Settings, as per cls._SettingsClass.

        """
        return cls._SettingsClass.from_pyhocon(conf, configurator)


class Settings(metaclass=abc.ABCMeta):
    """Base class for the settings of all VMHooks modules.

    Subclasses MUST override the __init__ method with appropriate
    arguments. They SHOULD, however, call the original __init__ for common
    initialization. Subclasses MUST also override classmethod from_pyhocon.

    """

    @abc.abstractmethod
    def __init__(self):
        """Initialize a settings instance.

        Subclasses SHOULD call the original method for initializing common
        attributes such as logging.

        """
        self.logger = logging.getLogger('vmhooks.settings')

    @classmethod
    @abc.abstractmethod
    def from_pyhocon(cls, conf, configurator):
        """Create an instance of settings from a pyhocon ConfigTree."""
        raise NotImplementedError

    @staticmethod
    def _get_conf(conf, name, required=True, default=None):
        """Get a value from a pyhocon.config_tree.ConfigTree.

        If the value is missing and required is True, raises a ConfigError
        exception. If the value is missing and required is False, returns
        default.

        """
        value = conf.get(name, None)
        if value is None:
            if required:
                raise ConfigError("missing required argument '{:s}'".format(name))
            return default

        return value

    @staticmethod
    def _get_choice(conf, name, choices, default):
        """Get a string value that must be one of choices.

        Values are compared case-insensitively and returned lowercase.
        Raises ConfigError for anything else.

        """
        value = str(conf.get(name, default)).lower()
        if value not in choices:
            raise ConfigError("invalid value '{:s}' for '{:s}', valid values are: {:s}".format(
                    value, name, ', '.join(choices)))

        return value

    @staticmethod
    def _get_bool(conf, name, default=False):
        """Get a boolean value, accepting the strings 'true' and 'false'."""
        value = conf.get(name, default)
        if isinstance(value, str):
            if value.lower() not in ('true', 'false'):
                raise ConfigError("invalid boolean '{:s}' for '{:s}'".format(value, name))
            return value.lower() == 'true'

        return bool(value)

    @staticmethod
    def _get_tree(conf, name):
        """Get a sub-tree as a plain dict, or an empty dict if missing."""
        tree = conf.get(name, None)
        if tree is None:
            return {}
        if not isinstance(tree, pyhocon.ConfigTree):
            raise ConfigError("'{:s}' must be an object".format(name))

        return tree.as_plain_ordered_dict()


class EmptySettings(Settings):
    """Settings for modules which have none of their own."""

    def __init__(self):
        super().__init__()

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        return cls()


class Configurator:

    def __init__(self, filename=None, conf=None):
        """Initializes a Configurator.

        Receives the name of the configuration file to parse or, for
        embedding and testing, an already parsed pyhocon ConfigTree.
        Raises ConfigError in case of error.

        """
        self.filename = filename

        self.logger = logging.getLogger('vmhooks.config')

        if conf is not None:
            self.conf = conf
            return

        self.logger.debug("reading configuration file '%s'", filename)

        try:
            self.conf = pyhocon.ConfigFactory.parse_file(filename)
        except (pyhocon.exceptions.ConfigException, OSError) as e:
            raise ConfigError(str(e))
        except Exception as e:
            # pyparsing syntax errors don't derive from ConfigException
            raise ConfigError("syntax error in '{:s}': {!s}".format(filename, e))

        self.logger.debug("finished reading configuration file")

    def load_modules(self):
        """Load configured modules.

        Returns True if all modules loaded without error, False otherwise.

        """
        # useful to run the APIs in the order they were declared
        self.loaded_apis = []

        # useful to resolve actions for modules as they are being
        # configured (and therefore not instantiated)
        self.module_api_classes_by_name = {}

        # useful to run actions, they need a loaded API
        self.module_apis_by_name = {}

        try:
            modules_to_load = self.conf['modules']
        except pyhocon.exceptions.ConfigMissingException:
            self.logger.error("missing mandatory section 'modules'")
            return False

        errors = False

        for name in modules_to_load:
            if name in self.module_api_classes_by_name:
                self.logger.warning("ignoring duplicate entry for module '%s', already loaded", name)
                continue

            self.logger.debug("loading module '%s'", name)

            try:
                API = self._get_module_api(name)
                self.module_api_classes_by_name[name] = API

                # modules without settings of their own may omit the section
                config_tree = self.conf.get_config(name, pyhocon.ConfigTree())

                # settings may call resolve_action for its own actions;
                # module_api_classes_by_name (above) must already contain
                # the API class
                settings = API.settings_from_pyhocon(config_tree, self)
                api = API(settings)

                self.module_apis_by_name[name] = api
                self.loaded_apis.append(api)
            except (ConfigError, pyhocon.exceptions.ConfigException) as e:
                self.logger.error("module '%s': %s", name, str(e))
                errors = True

        return not errors

    @staticmethod
    def _get_module_api(name):
        """Get the API class for the specified module.

        Dynamically loads the Python module and returns its subclass of
        moduleapi.ModuleAPI. Raises ConfigError if there is no such module.

        """
        try:
            module = importlib.import_module("{:s}.modules.{:s}".format(__package__, name))
        except ImportError as e:
            raise ConfigError("unable to load module: {!s}".format(e))

        return module.API

    def resolve_action(self, action_name):
        """Resolve an action by name.

        Receives an action's name, in the format module.action (e.g.
        "infoblox.acquire_ip"). Relative action names are not allowed.

        Returns the tuple (action_class, api). That is, the Action
        subclass, and the loaded instance of the module's API.

        api will be None if the API is not instantiated yet (i.e. this
        function was called from within the module's settings parser, or
        there was a previous error while instantiating said module).

        Raises ConfigError in case of error (e.g. action not found).

        """
        module_name, _, action_basename = action_name.rpartition('.')

        if not module_name:
            raise ConfigError("missing module name in action definition {:s}".format(action_name))

        if not action_basename:
            raise ConfigError("missing action name in action definition {:s}".format(action_name))

        try:
            # load from the class, as the API may not be instantiated yet
            api_class = self.module_api_classes_by_name[module_name]
        except KeyError:
            raise ConfigError("no such module '{:s}' in action definition".format(module_name))

        if action_basename not in api_class.actions:
            raise ConfigError("action '{:s}' not defined in module '{:s}'".format(action_name, module_name))

        action_class = api_class.actions[action_basename]

        api = self.module_apis_by_name.get(module_name, None)

        return (action_class, api)

    def configure_action(self, conf):
        """Configure an action.

        Receives an instance of pyhocon.config_tree.ConfigTree. It must
        contain an "action" key, which is the name of the action to
        execute.

        Returns an appropriate subclass of Settings for that action.

        """
        action_name = conf.get_string('action', None)
        if action_name is None:
            raise ConfigError("missing required argument 'action'")

        action_class = self.resolve_action(action_name)[0]

        self.logger.debug("configuring action %s", action_name)

        return action_class.settings_from_pyhocon(conf, self)

    def load_hooks(self):
        """Configure the action lists of every lifecycle hook.

        Must be called after load_modules. Returns a dict mapping each hook
        name to its moduleapi.ActionListSettings. Raises ConfigError in
        case of error.

        """
        # imported here, moduleapi depends on this module
        from vmhooks import moduleapi

        hooks_conf = self.conf.get('hooks', None)
        if hooks_conf is None:
            raise ConfigError("missing mandatory section 'hooks'")

        hooks = {}
        for hook_name in hooks_conf:
            self.logger.debug("configuring hook '%s'", hook_name)
            try:
                hooks[hook_name] = moduleapi.ActionListSettings.from_pyhocon(
                        hooks_conf.get_list(hook_name), self)
            except ConfigError as e:
                raise ConfigError("hook '{:s}': {:s}".format(hook_name, e.message))
            except pyhocon.exceptions.ConfigException as e:
                raise ConfigError("hook '{:s}': {!s}".format(hook_name, e))

        return hooks


# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
