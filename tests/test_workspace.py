
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


import json

import pytest

from vmhooks import workspace


def test_invalid_object_type():
    with pytest.raises(workspace.WorkspaceError) as excinfo:
        workspace.Workspace('service')

    assert str(excinfo.value) == "Invalid object type: service"


def test_resolve_rejects_unexpected_type(make_workspace):
    ws = make_workspace('vm', vm={'name': 'web001'})

    with pytest.raises(workspace.WorkspaceError) as excinfo:
        ws.resolve((workspace.ObjectType.provision,))

    assert str(excinfo.value) == "Invalid object type: vm"


def test_resolve(make_workspace):
    ws = make_workspace('vm', vm={'name': 'web001'})

    prov, vm = ws.resolve()
    assert vm.name == 'web001'
    assert prov is ws.provision


def test_add_error():
    prov = workspace.ProvisionRequest()

    prov.add_error('acquire_ip_error', "boom")
    prov.add_error('reclaim_ip_error', "bang", retirement=True)

    assert prov.get_option('errors') == {'acquire_ip_error': "boom"}
    assert prov.get_option('retire_errors') == {'reclaim_ip_error': "bang"}


def test_dialog_options_prefers_request():
    prov = workspace.ProvisionRequest(options={'dialog': {'a': 1}},
            request_options={'dialog': {'b': 2}})
    assert prov.dialog_options == {'b': 2}

    prov = workspace.ProvisionRequest(options={'dialog': {'a': 1}})
    assert prov.dialog_options == {'a': 1}

    assert workspace.ProvisionRequest().dialog_options is None


def test_vm_tag():
    vm = workspace.VM('web001', tags={'environment': ['prod', 'dev'], 'owner': 'ops', 'empty': []})

    assert vm.tag('environment') == 'prod'
    assert vm.tag('owner') == 'ops'
    assert vm.tag('empty') is None
    assert vm.tag('missing') is None


def test_vm_without_name():
    with pytest.raises(workspace.WorkspaceError):
        workspace.VM.from_dict({'ipaddresses': ['10.0.0.1']})


def test_missing_object_type():
    with pytest.raises(workspace.WorkspaceError):
        workspace.Workspace.from_dict({'attributes': {}})


def test_load_and_dump(tmp_path):
    data = {
        'object_type': 'provision',
        'provision': {
            'options': {'vm_target_name': 'web001'},
            'source': {'name': 'rhel7', 'platform': 'linux'},
        },
        'vm': None,
        'attributes': {'environment': 'prod'},
    }
    path = tmp_path / "ws.json"
    path.write_text(json.dumps(data))

    ws = workspace.Workspace.load(str(path))
    assert ws.object_type == workspace.ObjectType.provision
    assert ws.provision.get_option('vm_target_name') == 'web001'
    assert ws.provision.source.platform == 'linux'

    ws.attributes['vmname'] = 'web001'
    ws.dump(str(path))

    dumped = json.loads(path.read_text())
    assert dumped['attributes'] == {'environment': 'prod', 'vmname': 'web001'}
    assert dumped['provision']['options'] == {'vm_target_name': 'web001'}


def test_load_invalid(tmp_path):
    path = tmp_path / "ws.json"
    path.write_text("[1, 2]")
    with pytest.raises(workspace.WorkspaceError):
        workspace.Workspace.load(str(path))

    path.write_text("{")
    with pytest.raises(workspace.WorkspaceError):
        workspace.Workspace.load(str(path))

    with pytest.raises(workspace.WorkspaceError):
        workspace.Workspace.load(str(tmp_path / "missing.json"))

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
