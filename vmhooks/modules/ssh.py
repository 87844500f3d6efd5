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


"""Remote command execution over SSH.

Other modules run their remote commands through this module's API, e.g.

    ssh = context.dispatch.module_api('ssh')
    ssh.run_command(host, "yum -y install katello-agent")

"""

import collections
import io
import socket

import paramiko

from vmhooks import config
from vmhooks import moduleapi
from vmhooks import workspace


AUTH_TYPES = ('password', 'key')

MAX_SAFE_TIMEOUT = 60
"""Timeouts above this many seconds get a warning."""

KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)
"""Private key types tried, in order, when loading an SSH key."""


class SSHError(Exception):
    """Error while running a remote command."""

    def __init__(self, message, result=None):
        self.message = message
        self.result = result

    def __str__(self):
        return self.message


SSHResult = collections.namedtuple('SSHResult',
        ['stdout', 'stderr', 'exit_code', 'exit_signal'])


class SSHSettings(config.Settings):
    """SSH module settings.

    These are the defaults for every command run through the module:
    service account, authentication type, timeout and expected exit code.

    """

    def __init__(self, username=None, password=None, key=None, auth_type='password',
            port=22, timeout=MAX_SAFE_TIMEOUT, valid_exit_code=0):
        super().__init__()

        self.username = username
        self.password = password
        self.key = key
        self.auth_type = auth_type
        self.port = port
        self.timeout = timeout
        self.valid_exit_code = valid_exit_code

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        """Create SSHSettings from a pyhocon ConfigTree.

        Returns a newly created instance of SSHSettings. Raises
        config.ConfigError in case of error.

        """
        username = cls._get_conf(conf, 'username', required=False)
        password = cls._get_conf(conf, 'password', required=False)
        key = cls._get_conf(conf, 'key', required=False)
        auth_type = cls._get_choice(conf, 'auth_type', AUTH_TYPES, 'password')
        port = conf.get_int('port', 22)
        timeout = conf.get_int('timeout', MAX_SAFE_TIMEOUT)
        valid_exit_code = conf.get_int('valid_exit_code', 0)

        return cls(username, password, key, auth_type, port, timeout, valid_exit_code)


class ActionRunCommandSettings(moduleapi.ActionSettings):
    """Settings for ActionRunCommand."""

    def __init__(self, action_name, command, host=None, timeout=None,
            valid_exit_code=None, fail_on_invalid_exit_code=True,
            auth_type=None, username=None, password=None, key=None):
        super().__init__(action_name)

        self.command = command
        self.host = host
        self.timeout = timeout
        self.valid_exit_code = valid_exit_code
        self.fail_on_invalid_exit_code = fail_on_invalid_exit_code
        self.auth_type = auth_type
        self.username = username
        self.password = password
        self.key = key

    @classmethod
    def from_pyhocon(cls, conf, configurator):
        action_name = cls._get_conf(conf, 'action')
        command = cls._get_conf(conf, 'command')
        host = cls._get_conf(conf, 'host', required=False)
        timeout = conf.get_int('timeout', None)
        valid_exit_code = conf.get_int('valid_exit_code', None)
        fail_on_invalid_exit_code = cls._get_bool(conf, 'fail_on_invalid_exit_code', True)

        auth_type = conf.get('auth_type', None)
        if auth_type is not None:
            auth_type = cls._get_choice(conf, 'auth_type', AUTH_TYPES, auth_type)

        username = cls._get_conf(conf, 'username', required=False)
        password = cls._get_conf(conf, 'password', required=False)
        key = cls._get_conf(conf, 'key', required=False)

        return cls(action_name, command, host, timeout, valid_exit_code,
                fail_on_invalid_exit_code, auth_type, username, password, key)


class ActionRunCommand(moduleapi.Action):
    """Run a command on a host, storing the results on the workspace.

    The host defaults to the VM's first IP address. Results are stored in
    the ssh_results attribute, and ssh_command_status tells whether the
    command succeeded.

    """

    _SettingsClass = ActionRunCommandSettings
    """Settings class for this action."""

    object_types = (workspace.ObjectType.provision, workspace.ObjectType.vm)
    failure_status = moduleapi.ActionStatus.warn

    def execute(self, context):
        prov, vm = self.resolve(context)

        host = self.settings.host
        if host is None and vm is not None and vm.ipaddresses:
            host = vm.ipaddresses[0]
        if host is None:
            raise moduleapi.ActionError("Unable to determine ssh_host")

        result = self.module.run_command(host, self.settings.command,
                timeout=self.settings.timeout,
                valid_exit_code=self.settings.valid_exit_code,
                fail_on_invalid_exit_code=False,
                auth_type=self.settings.auth_type,
                username=self.settings.username,
                password=self.settings.password,
                key=self.settings.key)

        context.workspace.attributes['ssh_results'] = result._asdict()

        valid_exit_code = self.settings.valid_exit_code
        if valid_exit_code is None:
            valid_exit_code = self.module.settings.valid_exit_code

        if self.settings.fail_on_invalid_exit_code and result.exit_code != valid_exit_code:
            raise SSHError("Improper exit code {!s}".format(result.exit_code), result)

        context.workspace.attributes['ssh_command_status'] = True

    def record_failure(self, context, message):
        context.workspace.attributes['ssh_command_status'] = False


class SSHModuleAPI(moduleapi.ModuleAPI):
    """SSH module API."""

    _SettingsClass = SSHSettings
    """Settings class for this API."""

    actions = {'run_command': ActionRunCommand}
    """Actions for this API, by name."""

    def __init__(self, settings):
        """Initialize the SSH module.

        Receives an SSHSettings object, containing the module's settings.

        """
        super().__init__(settings)

    def _credentials(self, auth_type, username, password, key):
        """Work out the (username, password, pkey) to connect with.

        A per-call username must come with its own password or key, as
        appropriate for auth_type. Raises SSHError otherwise.

        """
        if username is None:
            username = self.settings.username
            password = self.settings.password
            key = self.settings.key
        elif auth_type == 'password' and password is None:
            raise SSHError("Username <{:s}> specified without a password for auth_type <{:s}>".format(
                    username, auth_type))
        elif auth_type == 'key' and key is None:
            raise SSHError("Username <{:s}> specified without an ssh key for auth_type <{:s}>".format(
                    username, auth_type))

        if username is None:
            raise SSHError("Unable to determine ssh_username")

        if auth_type == 'password':
            if password is None:
                raise SSHError("Unable to determine password for user <{:s}>".format(username))
            return (username, password, None)

        if key is None:
            raise SSHError("Unable to determine SSH key for user <{:s}>".format(username))

        return (username, None, self._load_key(username, key))

    @staticmethod
    def _load_key(username, key):
        """Load a private key of any of the KEY_CLASSES types."""
        errors = []
        for key_class in KEY_CLASSES:
            try:
                return key_class.from_private_key(io.StringIO(key))
            except (paramiko.SSHException, ValueError) as e:
                errors.append("{:s}: {!s}".format(key_class.__name__, e))

        raise SSHError("invalid SSH key for user <{:s}>: {:s}".format(username, "; ".join(errors)))

    def run_command(self, host, command, timeout=None, valid_exit_code=None,
            fail_on_invalid_exit_code=True, auth_type=None, username=None,
            password=None, key=None):
        """Run a command on host.

        Unspecified arguments take the module's defaults. Returns an
        SSHResult. Raises SSHError if unable to connect, if the command
        times out or, when fail_on_invalid_exit_code is True, if it exits
        with anything other than valid_exit_code.

        """
        timeout = timeout if timeout is not None else self.settings.timeout
        valid_exit_code = valid_exit_code if valid_exit_code is not None \
                else self.settings.valid_exit_code
        auth_type = auth_type if auth_type is not None else self.settings.auth_type

        if timeout > MAX_SAFE_TIMEOUT:
            self.logger.warning("SSH timeout set to %d seconds. This can lock up the "
                    "calling workflow for that long", timeout)

        username, password, pkey = self._credentials(auth_type, username, password, key)

        self.logger.info("running on %s@%s (auth %s, timeout %d): %s",
                username, host, auth_type, timeout, command)

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(host, port=self.settings.port, username=username,
                    password=password, pkey=pkey,
                    look_for_keys=False, allow_agent=False, timeout=timeout)

            stdin, stdout, stderr = client.exec_command(command, timeout=timeout)
            stdin.close()

            stdout_data = stdout.read().decode('utf-8', 'replace')
            stderr_data = stderr.read().decode('utf-8', 'replace')
            exit_code = stdout.channel.recv_exit_status()
        except socket.timeout:
            raise SSHError("SSH command timeout on {:s}: exceeded timeout of {:d} seconds".format(
                    host, timeout))
        except (paramiko.SSHException, OSError) as e:
            raise SSHError("unable to run command on {:s}: {!s}".format(host, e))
        finally:
            client.close()

        # paramiko reports -1 when the server sent no exit status, which
        # happens when the command was killed by a signal
        exit_signal = None
        if exit_code == -1:
            exit_code = None
            exit_signal = True

        result = SSHResult(stdout_data, stderr_data, exit_code, exit_signal)
        self.logger.debug("result: %s", result)

        if fail_on_invalid_exit_code and exit_code != valid_exit_code:
            raise SSHError("Improper exit code {!s} from command on {:s}".format(
                    exit_code, host), result)

        return result


API = SSHModuleAPI

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
