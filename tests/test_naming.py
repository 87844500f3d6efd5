
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


import pytest

from vmhooks import dispatch
from vmhooks import moduleapi


DEFAULT_CONFIG = """
modules = [ "naming" ]
hooks { name = [ { action = naming.vm_name } ] }
"""

CUSTOM_CONFIG = """
modules = [ "naming" ]
naming {
    ordered_values = [
        { name = prefix, value = x }
        { name = application, option = sn_application }
        { name = environment, option = sn_environment }
        { name = platform, from_template = platform }
    ]
    digits = 4
    upcase_windows = true
    classifications { "42" = prd }
}
hooks { name = [ { action = naming.vm_name } ] }
"""


@pytest.fixture
def default_dispatcher(make_dispatch):
    return make_dispatch(DEFAULT_CONFIG)


@pytest.fixture
def custom_dispatcher(make_dispatch):
    return make_dispatch(CUSTOM_CONFIG)


def test_user_name_single_vm(default_dispatcher, make_workspace):
    ws = make_workspace(options={'vm_name': ' web001 ', 'number_of_vms': 1})

    assert default_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    assert ws.attributes['vmname'] == 'web001'


def test_user_name_many_vms(default_dispatcher, make_workspace):
    ws = make_workspace(options={'vm_name': 'web', 'number_of_vms': 3})

    assert default_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    assert ws.attributes['vmname'] == 'web$n{3}'


def test_derived_name_default_values(default_dispatcher, make_workspace):
    ws = make_workspace(
            options={'vm_name': 'changeme', 'sn_location': 'LIS'},
            tags={'sn_application': 'App'},
            request_options={'dialog': {'dialog_tag_0_sn_form_factor': 'v'}},
            source={'platform': 'linux'})

    assert default_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    # environment is missing, but non-critical
    assert ws.attributes['vmname'] == 'appnllisv$n{3}'


def test_derived_name_lookup_order(custom_dispatcher, make_workspace):
    ws = make_workspace(
            options={'vm_name': '', 'sn_application': 'option', 'ws_values': {'sn_environment': 'ws'}},
            tags={'sn_application': ['tag', 'other']},
            request_options={'dialog': {'sn_environment': 'dlg'}},
            source={'platform': 'linux'})

    assert custom_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    assert ws.attributes['vmname'] == 'xtagdlgl$n{4}'


def test_derived_name_tag_dialog_before_option(custom_dispatcher, make_workspace):
    ws = make_workspace(
            options={'vm_name': 'changeme', 'sn_application': 'opt', 'sn_environment': 'prd'},
            request_options={'dialog': {'dialog_tag_0_sn_application': 'tag'}},
            source={'platform': 'linux'})

    assert custom_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    assert ws.attributes['vmname'] == 'xtagprdl$n{4}'


@pytest.mark.parametrize('dialog, expected', [
    ({'Array::dialog_tag_2_sn_application': 'arr'}, 'xarrprdl$n{4}'),
    ({'Password::dialog_option_5_sn_application': 'pwd'}, 'xpwdprdl$n{4}'),
    ({'dialog_sn_application': 'flat'}, 'xflatprdl$n{4}'),
])
def test_derived_name_intrusive_keys(custom_dispatcher, make_workspace, dialog, expected):
    ws = make_workspace(
            options={'vm_name': 'changeme', 'sn_environment': 'prd'},
            request_options={'dialog': dialog},
            source={'platform': 'linux'})

    assert custom_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    assert ws.attributes['vmname'] == expected


def test_derived_name_windows_upcase(custom_dispatcher, make_workspace):
    ws = make_workspace(
            options={'vm_name': 'changeme'},
            request_options={'dialog': {
                'dialog_option_3_sn_application': 'web',
                'dialog_tag_1_sn_environment': 'Classification::42',
            }},
            source={'platform': 'windows'})

    assert custom_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    assert ws.attributes['vmname'] == 'XWEBPRDW$n{4}'


def test_missing_critical_value(default_dispatcher, make_workspace):
    ws = make_workspace(options={'vm_name': 'changeme', 'number_of_vms': 2},
            source={'platform': 'linux'})

    assert default_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.abort
    assert ws.attributes['vmname'] == 'changeme'

    error = ws.provision.get_option('errors')['vm_name_error']
    assert "application" in error
    assert error.endswith(". VM Naming may be incorrect.")


def test_unknown_classification(custom_dispatcher, make_workspace):
    ws = make_workspace(
            options={'vm_name': 'changeme', 'sn_application': 'web'},
            tags={'sn_environment': 'Classification::7'},
            source={'platform': 'linux'})

    # make environment critical
    custom_dispatcher.config.module_apis_by_name['naming'].settings.non_critical = {}

    assert custom_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.abort


def test_template_request_is_skipped(default_dispatcher, make_workspace):
    ws = make_workspace('provision_request_template', options={'vm_name': 'changeme'})

    assert default_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.ok
    assert 'vmname' not in ws.attributes


def test_vm_object_rejected(default_dispatcher, make_workspace):
    ws = make_workspace('vm', vm={'name': 'web001'}, options={'vm_name': 'web001'})

    assert default_dispatcher.run_hook('name', ws) == moduleapi.ActionStatus.abort


@pytest.mark.parametrize('naming_conf', [
    "ordered_values = [ { name = a } ]",
    "ordered_values = [ { name = a, option = x, value = y } ]",
    "ordered_values = [ { option = x } ]",
    "digits = 0",
])
def test_invalid_settings(make_dispatch, naming_conf):
    with pytest.raises(dispatch.DispatchError):
        make_dispatch('modules = [ "naming" ]\nnaming {{ {:s} }}\nhooks {{}}'.format(naming_conf))

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
