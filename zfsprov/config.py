#
# zfs-provisioner - ZFS backed persistent volumes for Kubernetes
#
# Copyright (C) 2026  The zfs-provisioner developers
#
# This library is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License as published by the Free Software Foundation; either
# version 2.1 of the License, or (at your option) any later version.
#
# This library is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this library; if not, see <https://www.gnu.org/licenses/>.
#

'''Constants which can be configured in one place, and the provisioner
configuration loaded at startup.

The configuration file is a single XML element::

    <provisioner parent="tank/kubernetes"
                 target-config-dir="/etc/tgt/conf.d"
                 share-options="rw=@10.0.0.0/8"
                 server-address="nas.example.com">
        <metrics address="0.0.0.0" port="8080"/>
    </provisioner>

Only ``parent`` is mandatory.
'''

import dataclasses
import os.path
import typing

import lxml.etree

import zfsprov.exc

#: name written into the creation-source annotation of every volume
provisioner_name = 'zfs-provisioner'

config_path = '/etc/zfs-provisioner/provisioner.xml'

system_path = {
    'zfs': 'zfs',
    'tgt_admin': 'tgt-admin',
    'zvol_dir': '/dev/zvol',
    'templates_dirs': [
        '/etc/zfs-provisioner/templates',
        os.path.join(os.path.dirname(__file__), 'templates'),
    ],
}

defaults = {
    'kind': 'nfs',
    'share_options': 'rw=@10.0.0.0/8',
    'target_config_dir': '/etc/tgt/conf.d',
    'target_config_mode': 0o644,
    'iscsi_lun': 1,
    'metrics_address': '',
    'metrics_port': 8080,
}


@dataclasses.dataclass(frozen=True)
class ProvisionerConfig:
    '''Process-wide settings, read-only once constructed.

    :param str parent: dataset under which every volume is created
    :param str target_config_dir: where tgt target descriptors are kept
    :param str share_options: ``sharenfs`` value used when the request
        does not carry ``shareOptions``
    :param str server_address: advertised export endpoint; the local
        FQDN when unset
    '''

    parent: str
    target_config_dir: str = defaults['target_config_dir']
    share_options: str = defaults['share_options']
    server_address: typing.Optional[str] = None
    metrics_address: str = defaults['metrics_address']
    metrics_port: int = defaults['metrics_port']

    def __post_init__(self):
        if not self.parent:
            raise zfsprov.exc.ConfigurationError(
                'parent dataset is not set')
        if '@' in self.parent or self.parent.startswith('/') \
                or self.parent.endswith('/'):
            raise zfsprov.exc.ConfigurationError(
                'invalid parent dataset: {!r}'.format(self.parent))
        if not 0 < self.metrics_port < 65536:
            raise zfsprov.exc.ConfigurationError(
                'invalid metrics port: {!r}'.format(self.metrics_port))

    @classmethod
    def fromxml(cls, xml, path=None):
        '''Build configuration from an XML element or element tree.

        :raises zfsprov.exc.ConfigurationError: on missing attributes
        '''
        if isinstance(xml, lxml.etree._ElementTree):
            xml = xml.getroot()
        if xml.tag != 'provisioner':
            raise zfsprov.exc.ConfigurationError(
                'expected <provisioner> element, got <{}>'.format(xml.tag),
                path=path)

        kwargs = {}
        for attr, key in (
                ('parent', 'parent'),
                ('target-config-dir', 'target_config_dir'),
                ('share-options', 'share_options'),
                ('server-address', 'server_address')):
            value = xml.get(attr)
            if value is not None:
                kwargs[key] = value

        if 'parent' not in kwargs:
            raise zfsprov.exc.ConfigurationError(
                'missing "parent" attribute', path=path)

        node = xml.find('metrics')
        if node is not None:
            if node.get('address') is not None:
                kwargs['metrics_address'] = node.get('address')
            if node.get('port') is not None:
                try:
                    kwargs['metrics_port'] = int(node.get('port'))
                except ValueError:
                    raise zfsprov.exc.ConfigurationError(
                        'invalid metrics port: {!r}'.format(node.get('port')),
                        path=path)

        return cls(**kwargs)

    @classmethod
    def load(cls, path=config_path):
        '''Load configuration file

        :raises zfsprov.exc.ConfigurationError: when the file cannot be
            read or parsed
        '''
        try:
            tree = lxml.etree.parse(path)
        except OSError as e:
            raise zfsprov.exc.ConfigurationError(str(e), path=path) from e
        except lxml.etree.XMLSyntaxError as e:
            raise zfsprov.exc.ConfigurationError(
                'syntax error: {!s}'.format(e), path=path) from e
        return cls.fromxml(tree, path=path)

    def __xml__(self):
        element = lxml.etree.Element('provisioner',
            parent=self.parent,
            **{'target-config-dir': self.target_config_dir,
               'share-options': self.share_options})
        if self.server_address is not None:
            element.set('server-address', self.server_address)
        lxml.etree.SubElement(element, 'metrics',
            address=self.metrics_address, port=str(self.metrics_port))
        return element

    def save(self, path):
        '''Write configuration in the format accepted by :py:meth:`load`'''
        lxml.etree.ElementTree(self.__xml__()).write(path,
            encoding='utf-8', pretty_print=True, xml_declaration=True)
