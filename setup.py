from setuptools import setup

with open('README.rst') as f:
    readme = f.read()

setup(
    name='adb_host',
    version='0.1.0',
    description='A Python client for the adb server, with shell, FileSync, and device tracking functionality.',
    long_description=readme,
    keywords=['adb', 'android'],
    author='Jeff Irion',
    author_email='jefflirion@users.noreply.github.com',
    packages=['adb_host', 'adb_host.transport'],
    python_requires='>=3.7',
    tests_require=['aiofiles>=0.4.0'],
    extras_require = {'async': ['aiofiles>=0.4.0'], 'test': ['aiofiles>=0.4.0']},
    classifiers=['Operating System :: OS Independent',
                 'License :: OSI Approved :: Apache Software License',
                 'Programming Language :: Python :: 3'],
    test_suite='tests'
)
