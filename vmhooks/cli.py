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


"""Main CLI user interface."""


import argparse
import logging
import sys

from vmhooks import dispatch
from vmhooks import workspace

from vmhooks.version import __version__


__all__ = [ 'main' ]


EXIT_SETUP_ERROR = 3
"""Exit code for configuration or workspace errors."""


def create_logger(verbose=False):
    """Set up logging and return a logger object."""

    level = logging.DEBUG if verbose else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    stderr = logging.StreamHandler()
    stderr.setLevel(level)
    stderr.setFormatter(logging.Formatter("%(asctime)s %(name)s: %(levelname)s: %(message)s"))

    root_logger.addHandler(stderr)

    return logging.getLogger('vmhooks')


def parse_args(argv=None):
    """Parse command-line arguments.

    Returns a populated namespace with all arguments and their values.

    """
    parser = argparse.ArgumentParser(
            description="Run VM lifecycle integration hooks.")

    parser.add_argument('-V', '--version', action='version',
            version="VMHooks %s" % __version__)

    parser.add_argument('-v', '--verbose', action='store_true',
            help='enable debug logging')

    parser.add_argument('-o', '--output', metavar='FILE',
            help='write the resulting workspace to FILE instead of '
                 'overwriting WORKSPACE-FILE')

    parser.add_argument('-a', '--action', metavar='MODULE.ACTION',
            help="run a single action instead of the hook's action list")

    parser.add_argument('config_file', metavar='CONFIG-FILE',
            help='configuration file')

    parser.add_argument('hook', metavar='HOOK',
            help='lifecycle hook to run (e.g. pre_provision)')

    parser.add_argument('workspace_file', metavar='WORKSPACE-FILE',
            help='JSON workspace describing the request or VM')

    args = parser.parse_args(argv)

    return args

def main(argv=None):
    """Main program function."""

    args = parse_args(argv)

    logger = create_logger(args.verbose)

    try:
        ws = workspace.Workspace.load(args.workspace_file)
        dispatcher = dispatch.Dispatch(args.config_file)

        if args.action:
            status = dispatcher.run_action(args.action, ws, args.hook)
        else:
            status = dispatcher.run_hook(args.hook, ws)
    except (dispatch.DispatchError, workspace.WorkspaceError) as e:
        logger.error("aborting: %s", str(e))
        return EXIT_SETUP_ERROR

    output = args.output if args.output else args.workspace_file
    ws.dump(output)

    logger.info('all done, status %s, terminating...', status.name)

    return int(status)


if __name__ == '__main__':
    sys.exit(main())


# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
