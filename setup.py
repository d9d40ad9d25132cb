#!/usr/bin/python3 -O
# vim: fileencoding=utf-8

import os

import setuptools


# don't import: import * is unreliable and there is no need, since this is
# compile time and we have source files
def get_console_scripts():
    for filename in os.listdir('./zfsprov/tools'):
        basename, ext = os.path.splitext(os.path.basename(filename))
        if basename == '__init__' or ext != '.py':
            continue
        yield '{} = zfsprov.tools.{}:main'.format(
            basename.replace('_', '-'), basename)

if __name__ == '__main__':
    setuptools.setup(
        name='zfs-provisioner',
        version=open('version').read().strip(),
        author='The zfs-provisioner developers',
        description='ZFS backed persistent volumes for Kubernetes',
        license='LGPL2.1+',
        python_requires='>=3.10',
        packages=setuptools.find_packages(exclude=('tests',)),
        package_data={
            'zfsprov': ['templates/*.jinja'],
        },
        install_requires=[
            'lxml',
            'jinja2',
            'prometheus_client',
        ],
        extras_require={
            'test': [
                'pytest',
            ],
        },
        entry_points={
            'console_scripts': list(get_console_scripts()),
            'zfsprov.kinds': [
                'nfs = zfsprov.storage.nfs:NFSExport',
                'iscsi = zfsprov.storage.iscsi:ISCSIExport',
            ],
        })
