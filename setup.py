from setuptools import setup, find_packages

setup(
    name='offboard_arbiter',
    version='0.0.1',
    packages=find_packages(include=[
        'offboard_arbiter', 'offboard_arbiter.*'
    ]),
    install_requires=[
        'numpy',
        'pymavlink',
        'mavsdk<4',
    ],
    extras_require={
        'test': [
            'pytest',
            'coverage',
            'grpcio',
        ]
    },
    scripts=['scripts/offboard_node.py'],
)
