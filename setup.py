import re

from setuptools import find_packages, setup

with open('keeperlaps/__init__.py', 'r', encoding='utf-8') as fh:
    version = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", fh.read(), re.M).group(1)

install_requires = [
    'ldap3',
    'pycryptodomex>=3.7.2',
]

if __name__ == '__main__':
    setup(
        name='keeperlaps',
        version=version,
        description='Keeper LAPS: local administrator password rotation for macOS',
        author='Keeper Security Inc.',
        author_email='ops@keepersecurity.com',
        license='MIT',
        python_requires='>=3.8',
        packages=find_packages(include=['keeperlaps', 'keeperlaps.*']),
        install_requires=install_requires,
        extras_require={'test': ['pytest']},
        entry_points={
            'console_scripts': [
                'keeper-laps=keeperlaps.__main__:main',
            ],
        },
        classifiers=[
            'Programming Language :: Python :: 3',
            'Operating System :: MacOS :: MacOS X',
            'Topic :: System :: Systems Administration',
        ],
    )
