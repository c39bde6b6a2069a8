"""
Packaging for relaybox. Install with `pip install -e .[test]` and run the tests with `pytest`.

Commands available:

- test: run the test suite beside the sources
"""

from setuptools import setup, Command

import os


class RunInRootCommand(Command):
    user_options = []

    def initialize_options(self):
        self.cwd = None

    def finalize_options(self):
        self.cwd = os.getcwd()

    def run(self):
        assert os.getcwd() == self.cwd, 'Must be in package root: %s' % self.cwd
        self.runcmd()

    def runcmd(self):
        pass


class TestCommand(RunInRootCommand):
    description = "runs the unit tests with pytest"

    def runcmd(self):
        raise SystemExit(os.system('pytest src'))


setup(
    name='relaybox',
    version='0.0.1',
    description='Duplex relay of UDP and TCP traffic between two network peers.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['relaybox', 'relaybox.config', 'relaybox.endpoint', 'relaybox.support'],
    python_requires='>=3.6',
    install_requires=['configobj>=5.0.9'],
    extras_require={
        'test': ['PyHamcrest>=2.0', 'timeout-decorator', 'pytest'],
    },
    entry_points={
        'console_scripts': ['relaybox=relaybox.cli:main'],
    },
    zip_safe=False,
    cmdclass={
        'test': TestCommand,
    }
)
