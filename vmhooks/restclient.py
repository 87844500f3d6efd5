
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


"""Thin REST client shared by the HTTP based integrations."""

import logging

import requests
import urllib3


class RESTError(Exception):
    """Error from a REST call."""

    def __init__(self, message, status_code=None, response=None):
        self.message = message
        self.status_code = status_code
        self.response = response

    def __str__(self):
        return self.message


class RESTClient:
    """Client for a single REST API, rooted at base_url.

    auth, cert and verify are passed on to the underlying
    requests.Session. headers are sent with every request.

    """

    def __init__(self, base_url, auth=None, cert=None, verify=True,
            headers=None, timeout=60, logger=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.logger = logger if logger is not None else logging.getLogger('vmhooks.rest')

        self.session = requests.Session()
        self.session.auth = auth
        self.session.cert = cert
        self.session.verify = verify
        if headers:
            self.session.headers.update(headers)

        if not verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def url(self, ref=None):
        """Get the full URL for ref.

        ref may be relative to base_url, or an absolute URL (as handed out
        by some APIs in their responses).

        """
        if ref is None:
            return self.base_url
        if ref.startswith(('http://', 'https://')):
            return ref

        return "{:s}/{:s}".format(self.base_url, ref.lstrip('/'))

    def call(self, method, ref=None, expected=(200,), **kwargs):
        """Make a request and return the requests.Response.

        kwargs are passed on to requests.Session.request. Raises RESTError
        if the request fails, or if expected is not None and the response's
        status code is not in it.

        """
        url = self.url(ref)
        self.logger.info("calling %s %s", method.upper(), url)
        if 'json' in kwargs:
            self.logger.debug("payload: %s", kwargs['json'])

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RESTError("{:s} {:s} failed: {!s}".format(method.upper(), url, e))

        self.logger.debug("response %d: %s", response.status_code, response.text)

        if expected is not None and response.status_code not in expected:
            raise RESTError("invalid response code {:d} from {:s} {:s}".format(
                    response.status_code, method.upper(), url),
                    response.status_code, response)

        return response

    @staticmethod
    def parse_json(response):
        """Get the JSON body of a response, raising RESTError if invalid."""
        try:
            return response.json()
        except ValueError:
            raise RESTError("unable to parse response as JSON: {!r}".format(response.text[:200]))


# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
