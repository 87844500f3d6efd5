
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
import requests

from vmhooks import restclient


@pytest.fixture
def client():
    return restclient.RESTClient("https://api.example.com/v1/", auth=('u', 'p'),
            verify=False, headers={'Accept': 'application/json'})


def test_url(client):
    assert client.url() == "https://api.example.com/v1"
    assert client.url('hosts') == "https://api.example.com/v1/hosts"
    assert client.url('/hosts/1') == "https://api.example.com/v1/hosts/1"
    assert client.url('http://other.example.com/x') == "http://other.example.com/x"


def test_session_settings(client):
    assert client.session.auth == ('u', 'p')
    assert client.session.verify is False
    assert client.session.headers['Accept'] == 'application/json'


def test_call(client, http, http_response):
    http.return_value = http_response(201, body={'id': 1})

    response = client.call('post', 'hosts', expected=(201,), json={'name': 'web001'})

    assert client.parse_json(response) == {'id': 1}
    http.assert_called_once_with('post', "https://api.example.com/v1/hosts",
            timeout=60, json={'name': 'web001'})


def test_call_unexpected_status(client, http, http_response):
    http.return_value = http_response(404, text="not found")

    with pytest.raises(restclient.RESTError) as excinfo:
        client.call('get', 'hosts/1')

    assert excinfo.value.status_code == 404
    assert "invalid response code 404" in str(excinfo.value)


def test_call_any_status(client, http, http_response):
    http.return_value = http_response(404, text="not found")

    assert client.call('get', 'hosts/1', expected=None).status_code == 404


def test_call_connection_error(client, http):
    http.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(restclient.RESTError) as excinfo:
        client.call('get', 'hosts')

    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)


def test_parse_json_invalid(http_response):
    with pytest.raises(restclient.RESTError):
        restclient.RESTClient.parse_json(http_response(200, text="<html/>"))

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
