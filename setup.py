"""Package information for VMHooks."""

import os.path
import io

from setuptools import setup

from vmhooks.version import __version__


def read(file_path_components, encoding="utf8"):
    """Read the contents of a file.

    Receives a list of path components to the file and joins them in an
    OS-agnostic way. Opens the file for reading using the specified
    encoding, and returns the file's contents.

    """
    with io.open(
        os.path.join(os.path.dirname(__file__), *file_path_components),
        encoding=encoding
    ) as fp:
        return fp.read()


setup(
    name='vmhooks',
    description='Lifecycle integrations for VM provisioning and retirement',
    author="VMHooks contributors",
    version=__version__,
    packages=['vmhooks', 'vmhooks.modules' ],
    install_requires=[
        'pyhocon>=0.3.35',
        'netaddr>=0.7.12',
        'requests>=2.18',
        'requests_ntlm>=1.1.0',
        'python-ldap>=3.0',
        'paramiko>=2.4',
        'urllib3>=1.22',
        'xmltodict>=0.11',
    ],
    extras_require={
        'test': [ 'pytest>=3.0' ],
    },
    entry_points={
        'console_scripts': [ 'vmhooks=vmhooks.cli:main' ],
    },
    license='GPLv3+',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Information Technology',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
        'Operating System :: POSIX',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Installation/Setup',
        'Topic :: System :: Networking',
        'Topic :: System :: Systems Administration',
        'Topic :: Utilities',
    ],
    long_description=read([ "README.rst" ])
)
