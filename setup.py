"""Package configuration."""

import re

from setuptools import setup, find_packages

CLASSIFIERS = [
    'Intended Audience :: Developers',
    'Natural Language :: English',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
    'Topic :: System :: Hardware',
    'Topic :: Software Development :: Libraries :: Python Modules'
]

KEYWORDS = 'irecovery, iboot, dfu, recovery mode, wtf, libusb, pyusb'

with open('pyirecv/__init__.py', 'r', encoding='utf-8') as fp:
    init_py = fp.read()
__version__ = re.search(r"^__version__ = ['\"]([^'\"]+)['\"]", init_py, re.M).group(1)
__author__ = re.search(r"^__author__ = ['\"]([^'\"]+)['\"]", init_py, re.M).group(1)

with open('requirements.txt', 'r', encoding='utf-8') as fp:
    setup_requires = [line.strip() for line in fp if line.strip()]

with open('requirements-dev.txt', 'r', encoding='utf-8') as fp:
    dev_requires = [line.strip() for line in fp if line.strip()]

with open('README.md', 'r', encoding='utf-8') as fp:
    long_description = fp.read()

setup(
    name='pyirecv',
    version=__version__,
    python_requires='>=3.9',

    description='pure python client for Apple Recovery, WTF and DFU mode bootloaders',
    long_description=long_description,
    long_description_content_type="text/markdown",

    author=__author__,

    classifiers=CLASSIFIERS,
    keywords=KEYWORDS,

    packages=find_packages(include=['pyirecv', 'pyirecv.*']),
    install_requires=setup_requires,

    extras_require={
        "dev": dev_requires,
    },

    include_package_data=True,
    zip_safe=False,
)
