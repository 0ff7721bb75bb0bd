from setuptools import setup, find_packages

setup(
    name='rampart',
    version='0.1.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    package_data={
        'rampart': ['profiles/*.json'],
    },
    install_requires=[
        'click',
        'pydantic>=2',
        'distro',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'rampart = rampart.cli.rampart_cli:cli',
        ],
    },
)
