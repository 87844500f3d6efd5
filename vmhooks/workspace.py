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


"""Workspace: the provisioning request or VM an action works on.

A workspace is what the workflow engine hands us for a single lifecycle
step. It is loaded from a JSON document, modified by the actions, and
written back for the engine to pick up.

"""

import enum
import json


class WorkspaceError(Exception):
    """Error while loading or resolving a workspace."""
    def __init__(self, message):
        self.message = message

    def __str__(self):
        return self.message


class ObjectType(enum.Enum):
    """Type of the object a lifecycle step was triggered for."""

    provision = 'provision'
    provision_request = 'provision_request'
    provision_request_template = 'provision_request_template'
    vm = 'vm'


PROVISION_TYPES = (ObjectType.provision, ObjectType.provision_request,
                   ObjectType.provision_request_template)


class Template:
    """Source template of a provisioning request."""

    def __init__(self, name=None, platform=None, operating_system=None):
        self.name = name
        self.platform = platform
        self.operating_system = operating_system

    @classmethod
    def from_dict(cls, d):
        return cls(d.get('name'), d.get('platform'), d.get('operating_system'))

    def to_dict(self):
        return {'name': self.name, 'platform': self.platform,
                'operating_system': self.operating_system}


class VM:
    """A virtual machine, provisioned or being retired."""

    def __init__(self, name, ipaddresses=None, hostnames=None, platform=None,
            operating_system=None, tags=None, retirement_requested=False):
        self.name = name
        self.ipaddresses = list(ipaddresses or [])
        self.hostnames = list(hostnames or [])
        self.platform = platform
        self.operating_system = operating_system
        self.tags = dict(tags or {})
        self.retirement_requested = retirement_requested

    def tag(self, category):
        """Get the first value of a tag category, or None."""
        value = self.tags.get(category)
        if isinstance(value, list):
            return value[0] if value else None

        return value

    def retire_now(self):
        """Ask the workflow engine to retire this VM."""
        self.retirement_requested = True

    @classmethod
    def from_dict(cls, d):
        if not d.get('name'):
            raise WorkspaceError("vm is missing its name")

        return cls(d['name'], d.get('ipaddresses'), d.get('hostnames'),
                d.get('platform'), d.get('operating_system'), d.get('tags'),
                d.get('retirement_requested', False))

    def to_dict(self):
        return {
            'name': self.name,
            'ipaddresses': self.ipaddresses,
            'hostnames': self.hostnames,
            'platform': self.platform,
            'operating_system': self.operating_system,
            'tags': self.tags,
            'retirement_requested': self.retirement_requested,
        }


class ProvisionRequest:
    """An in-flight provisioning request and its option storage."""

    def __init__(self, options=None, tags=None, request_options=None,
            source=None, message=None, network_adapters=None):
        self.options = dict(options or {})
        self.tags = dict(tags or {})
        self.request_options = dict(request_options or {})
        self.source = source if source is not None else Template()
        self.message = message
        self.network_adapters = dict(network_adapters or {})

    def get_option(self, name, default=None):
        return self.options.get(name, default)

    def set_option(self, name, value):
        self.options[name] = value

    def get_tags(self):
        return self.tags

    @property
    def ws_values(self):
        """Web service values passed along with the request, if any."""
        return self.options.get('ws_values') or None

    @property
    def dialog_options(self):
        """Dialog options, from the parent request or from our own."""
        return self.request_options.get('dialog') or self.options.get('dialog') or None

    def set_network_adapter(self, index, settings):
        self.network_adapters[str(index)] = dict(settings)

    def add_error(self, key, message, retirement=False):
        """Record an error message under the errors (or retire_errors) option."""
        option = 'retire_errors' if retirement else 'errors'
        errors = self.options.get(option) or {}
        errors[key] = message
        self.options[option] = errors

    @classmethod
    def from_dict(cls, d):
        return cls(d.get('options'), d.get('tags'), d.get('request_options'),
                Template.from_dict(d.get('source') or {}), d.get('message'),
                d.get('network_adapters'))

    def to_dict(self):
        return {
            'options': self.options,
            'tags': self.tags,
            'request_options': self.request_options,
            'source': self.source.to_dict(),
            'message': self.message,
            'network_adapters': self.network_adapters,
        }


class Workspace:
    """State shared by the actions of one lifecycle step.

    attributes is a free-form dict, used by the actions to hand results to
    each other and to the workflow engine (e.g. 'vmname', 'environment',
    'activation_key').

    """

    def __init__(self, object_type, provision=None, vm=None, attributes=None):
        if not isinstance(object_type, ObjectType):
            try:
                object_type = ObjectType(object_type)
            except ValueError:
                raise WorkspaceError("Invalid object type: {!s}".format(object_type))

        self.object_type = object_type
        self.provision = provision
        self.vm = vm
        self.attributes = dict(attributes or {})

    def resolve(self, allowed_types=None):
        """Get the (provision, vm) pair for this workspace.

        allowed_types, if given, is a sequence of ObjectType the caller
        can work with; any other type raises WorkspaceError. Either member
        of the returned pair may be None.

        """
        if allowed_types is not None and self.object_type not in allowed_types:
            raise WorkspaceError("Invalid object type: {:s}".format(self.object_type.value))

        return (self.provision, self.vm)

    @classmethod
    def from_dict(cls, d):
        if 'object_type' not in d:
            raise WorkspaceError("missing object_type")

        prov = ProvisionRequest.from_dict(d['provision']) if d.get('provision') else None
        vm = VM.from_dict(d['vm']) if d.get('vm') else None

        return cls(d['object_type'], prov, vm, d.get('attributes'))

    def to_dict(self):
        return {
            'object_type': self.object_type.value,
            'provision': self.provision.to_dict() if self.provision is not None else None,
            'vm': self.vm.to_dict() if self.vm is not None else None,
            'attributes': self.attributes,
        }

    @classmethod
    def load(cls, filename):
        """Load a workspace from a JSON file."""
        try:
            with open(filename, encoding='utf8') as fp:
                data = json.load(fp)
        except (OSError, ValueError) as e:
            raise WorkspaceError("unable to read workspace '{:s}': {!s}".format(filename, e))

        if not isinstance(data, dict):
            raise WorkspaceError("workspace '{:s}' must hold a JSON object".format(filename))

        return cls.from_dict(data)

    def dump(self, filename):
        """Write the workspace to a JSON file."""
        with open(filename, 'w', encoding='utf8') as fp:
            json.dump(self.to_dict(), fp, indent=2, sort_keys=True)
            fp.write('\n')


# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
