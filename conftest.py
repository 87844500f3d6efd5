
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


# Makes pytest put the repository root on sys.path, so that the vmhooks
# namespace package is importable without installing it.

# vim: set expandtab smarttab shiftwidth=4 softtabstop=4 tw=75 :
