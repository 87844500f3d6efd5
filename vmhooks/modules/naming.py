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


"""VM naming.

Derives a VM name from the values the user chose in the provisioning
dialog. The name is made of the configured ordered_values, in order,
followed by the workflow engine's sequence placeholder, e.g.

    naming {
        ordered_values = [
            { name = application, option = sn_application },
            { name = environment, option = sn_environment },
            { name = platform, from_template = platform },
        ]
        digits = 3
        non_critical { environment = n }
    }

"""

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import workspace


DIALOG_PREFIX = 'dialog'
TAG_SUBPREFIX = 'tag'
OPTION_SUBPREFIX = 'option'

ARRAY_VALUE_PREFIX = 'Array::'
PASSWORD_VALUE_PREFIX = 'Password::'
TAG_CONTROL_VALUE_PREFIX = 'Classification::'

MAX_BUILD_NUM = 9
"""Highest build number tried when searching for nested dialog fields."""

DEFAULT_ORDERED_VALUES = [
    {'name': 'application', 'option': 'sn_application'},
    {'name': 'environment', 'option': 'sn_environment'},
    {'name': 'platform', 'from_template': 'platform'},
    {'name': 'location', 'option': 'sn_location'},
    {'name': 'form_factor', 'option': 'sn_form_factor'},
]

PLACEHOLDER_NAMES = ('', 'changeme')
"""vm_name option values that mean no name was chosen."""


class NamingValue:
    """One element of a derived name.

    Exactly one of option (looked up in the request), value (used
    literally) or from_template (first letter of that attribute of the
    source template) is set.

    """

    def __init__(self, name, option=None, value=None, from_template=None):
        self.name = name
        self.option = option
        self.value = value
        self.from_template = from_template

    @classmethod
    def from_dict(cls, d):
        name = d.get('name')
        if not name:
            raise config.ConfigError("missing required argument 'name' in ordered_values")

        sources = [k for k in ('option', 'value', 'from_template') if d.get(k) is not None]
        if len(sources) != 1:
            raise config.ConfigError(
                    "ordered_values entry '{:s}' needs exactly one of option, value or from_template".format(name))

        return cls(name, d.get('option'), d.get('value'), d.get('from_template'))


class NamingSettings(config.Settings):
    """Naming module settings."""

    def __init__(self, ordered_values, digits=3, non_critical=None, downcase=True,
            upcase_windows=False, vm_prefix=None, classifications=None):
        super().__init__()

        self.ordered_values = ordered_values
        self.digits = digits
        self.non_critical = non_critical if non_critical is not None else {'environment': 'n'}
        self.downcase = downcase
        self.upcase_windows = upcase_windows
        self.vm_prefix = vm_prefix
        self.classifications = classifications if classifications is not None else {}

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create NamingSettings from a pyhocon ConfigTree.

        Returns a newly created instance of NamingSettings. Raises
        config.ConfigError in case of error.

        """
        raw_values = conf.get_list('ordered_values', None)
        if raw_values is None:
            raw_values = DEFAULT_ORDERED_VALUES
        else:
            raw_values = [v.as_plain_ordered_dict() for v in raw_values]

        ordered_values = [NamingValue.from_dict(v) for v in raw_values]

        digits = conf.get_int('digits', 3)
        if digits < 1:
            raise config.ConfigError("digits must be a positive number")

        non_critical = cls._get_tree(conf, 'non_critical') if 'non_critical' in conf else None
        downcase = cls._get_bool(conf, 'downcase', True)
        upcase_windows = cls._get_bool(conf, 'upcase_windows', False)
        vm_prefix = cls._get_conf(conf, 'vm_prefix', required=False)

        classifications = {
            str(k): str(v) for k, v in cls._get_tree(conf, 'classifications').items()
        }

        return cls(ordered_values, digits, non_critical, downcase, upcase_windows,
                vm_prefix, classifications)


class ValueFinder:
    """Looks up dialog values on a provisioning request.

    Values may hide in several places, depending on how the request was
    made: tags, options, the dialog options of the parent request, the web
    service values, or the dialog options under one of the names the
    dialog engine generates for nested fields.

    """

    def __init__(self, prov, classifications, logger):
        self.prov = prov
        self.classifications = classifications
        self.logger = logger

        self.dialog_options = prov.dialog_options or {}
        self.ws_values = prov.ws_values or {}

    def _intrusive(self, subprefix, name):
        """Look for a value under the generated dialog field names."""
        full_prefix = "{:s}_{:s}".format(DIALOG_PREFIX, subprefix)

        for build_num in range(MAX_BUILD_NUM + 1):
            nested = "{:s}_{:d}_{:s}".format(full_prefix, build_num, name)
            for key in (nested,
                        "{:s}_{:s}".format(DIALOG_PREFIX, name),
                        ARRAY_VALUE_PREFIX + nested,
                        PASSWORD_VALUE_PREFIX + nested):
                value = self.dialog_options.get(key)
                if value:
                    return value

        return None

    def raw_value(self, name):
        """Get the first value found for name, or None."""
        lookups = (
            lambda: self.prov.get_tags().get(name),
            lambda: self._intrusive(TAG_SUBPREFIX, name),
            lambda: self.prov.get_option(name),
            lambda: self.dialog_options.get(name),
            lambda: self.ws_values.get(name),
            lambda: self._intrusive(OPTION_SUBPREFIX, name),
        )

        for lookup in lookups:
            value = lookup()
            if value:
                return value

        return None

    def value(self, name):
        """Get the value for name, resolving tag control ids.

        Tag controls hand out Classification::<id> instead of the value;
        unknown ids resolve to None.

        """
        value = self.raw_value(name)

        if isinstance(value, list):
            value = value[0] if value else None

        if value is not None and TAG_CONTROL_VALUE_PREFIX in str(value):
            class_id = str(value).split('::')[-1]
            value = self.classifications.get(class_id)
            if value is None:
                self.logger.warning("unknown classification id %s for %s", class_id, name)

        self.logger.debug("value for %s: <%s>", name, value)

        return value


class ActionVMName(moduleapi.Action):
    """Set the vmname attribute from the dialog choices.

    If the user chose a name, it is used as is (with a sequence number when
    more than one VM was requested). Otherwise the name is derived from the
    configured ordered_values.

    """

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.provision_request,
                    workspace.ObjectType.provision_request_template)
    error_key = 'vm_name_error'

    def _sequence(self):
        return "$n{{{:d}}}".format(self.module.settings.digits)

    def execute(self, context):
        if context.workspace.object_type == workspace.ObjectType.provision_request_template:
            return moduleapi.ActionStatus.ok

        prov, vm = self.resolve(context)
        if prov is None:
            raise moduleapi.ActionError("Could not find provisioning object")

        current_name = str(prov.get_option('vm_name') or '').strip()
        vms_requested = int(prov.get_option('number_of_vms', 1) or 1)

        self.logger.info("current vm_name from dialog: <%s>; vms requested: %d",
                current_name, vms_requested)

        if current_name in PLACEHOLDER_NAMES:
            name = self.derive_name(prov)
        elif vms_requested == 1:
            name = current_name
        else:
            name = current_name + self._sequence()

        self.logger.info("VM name: <%s>", name)
        context.workspace.attributes['vmname'] = name

    def derive_name(self, prov):
        """Build a name out of the ordered values.

        Raises ActionError if a critical value can't be found.

        """
        settings = self.module.settings
        finder = ValueFinder(prov, settings.classifications, self.logger)

        values = []
        for naming_value in settings.ordered_values:
            if naming_value.value is not None:
                value = naming_value.value
            elif naming_value.from_template is not None:
                attr = getattr(prov.source, naming_value.from_template, None)
                value = attr[0].lower() if attr else None
            else:
                value = finder.value(naming_value.option)

            if value is None:
                value = settings.non_critical.get(naming_value.name)
                if value is None:
                    raise moduleapi.ActionError("Unable to find critical element <{:s}> in naming VM".format(
                            naming_value.name))

            values.append(str(value))

        name = ''.join(values)
        if settings.vm_prefix:
            name = settings.vm_prefix + name

        name = self.apply_case(name, prov)

        return name + self._sequence()

    def apply_case(self, name, prov):
        settings = self.module.settings

        if settings.upcase_windows and (prov.source.platform or '').lower() == 'windows':
            return name.upper()
        if settings.downcase:
            return name.lower()

        return name

    def record_failure(self, context, message):
        prov = context.workspace.provision
        if prov is not None:
            # fall back to whatever name the user chose
            context.workspace.attributes['vmname'] = str(prov.get_option('vm_name') or '').strip()
            prov.add_error(self.error_key, "{:s}. VM Naming may be incorrect.".format(message))


class NamingModuleAPI(moduleapi.ModuleAPI):
    """Naming module API."""

    _SettingsClass = NamingSettings
    """Settings class for this API."""

    actions = {'vm_name': ActionVMName}
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the Naming module.

        Receives a NamingSettings object, containing the module's settings.

        """
        super().__init__(settings)


API = NamingModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
