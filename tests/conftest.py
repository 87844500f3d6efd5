
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


"""Shared fixtures for the VMHooks tests."""

import json
from unittest import mock

import pyhocon
import pytest
import requests

from vmhooks import dispatch
from vmhooks import workspace


@pytest.fixture
def make_dispatch():
    """Factory for a Dispatch configured from a HOCON string."""
    def make(text):
        return dispatch.Dispatch(conf=pyhocon.ConfigFactory.parse_string(text))
    return make


@pytest.fixture
def make_workspace():
    """Factory for a Workspace, with an empty provisioning request by default."""
    def make(object_type='provision', options=None, tags=None, request_options=None,
            source=None, vm=None, attributes=None, provision=True):
        prov = None
        if provision:
            prov = {
                'options': options or {},
                'tags': tags or {},
                'request_options': request_options or {},
                'source': source or {},
            }
        return workspace.Workspace.from_dict({
            'object_type': object_type,
            'provision': prov,
            'vm': vm,
            'attributes': attributes or {},
        })
    return make


@pytest.fixture
def http_response():
    """Factory for fake requests.Response objects."""
    def make(status_code=200, body=None, text=None, cookies=None):
        response = mock.Mock()
        response.status_code = status_code
        if body is not None:
            response.text = json.dumps(body)
            response.json.return_value = body
        else:
            response.text = text if text is not None else ''
            response.json.side_effect = ValueError("No JSON object could be decoded")
        response.cookies = cookies if cookies is not None else {}
        return response
    return make


@pytest.fixture
def http():
    """Patch every HTTP request made through requests sessions."""
    with mock.patch.object(requests.Session, 'request') as request:
        yield request

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
