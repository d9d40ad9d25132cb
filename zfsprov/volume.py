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

'''Volume requests and the persistent volume records handed back to the
orchestrator.

:py:class:`VolumeRecord` serializes to (and from) the Kubernetes
``PersistentVolume`` object through :py:meth:`VolumeRecord.to_manifest`.
'''

import dataclasses
import typing

import zfsprov.config
import zfsprov.exc
import zfsprov.storage
import zfsprov.utils

#: annotation marking a volume as created by this provisioner
ANN_CREATED_BY = 'kubernetes.io/createdby'

ACCESS_MODES = ('ReadWriteOnce', 'ReadOnlyMany', 'ReadWriteMany',
    'ReadWriteOncePod')
RECLAIM_POLICIES = ('Delete', 'Retain', 'Recycle')


@dataclasses.dataclass(frozen=True)
class NFSVolumeSource:
    '''File export: clients mount *path* from *server*.'''
    server: str
    path: str
    read_only: bool = False

    def __json__(self):
        return {'server': self.server, 'path': self.path,
            'readOnly': self.read_only}

    @classmethod
    def fromjson(cls, data):
        return cls(server=data['server'], path=data['path'],
            read_only=bool(data.get('readOnly', False)))


@dataclasses.dataclass(frozen=True)
class ISCSIVolumeSource:
    '''Block export: clients log into target *iqn* on *target_portal*.'''
    target_portal: str
    iqn: str
    lun: int = zfsprov.config.defaults['iscsi_lun']
    read_only: bool = False

    def __json__(self):
        return {'targetPortal': self.target_portal, 'iqn': self.iqn,
            'lun': self.lun, 'readOnly': self.read_only}

    @classmethod
    def fromjson(cls, data):
        return cls(target_portal=data['targetPortal'], iqn=data['iqn'],
            lun=int(data.get('lun', zfsprov.config.defaults['iscsi_lun'])),
            read_only=bool(data.get('readOnly', False)))


#: manifest key for every source class
SOURCES = {
    'nfs': NFSVolumeSource,
    'iscsi': ISCSIVolumeSource,
}


@dataclasses.dataclass(frozen=True)
class VolumeRequest:
    '''What the orchestrator wants provisioned.

    Either *name* or *claim_uid* must be given; in the latter case the
    volume is called ``pvc-<claim_uid>``.

    Recognised *parameters*: ``serverAddress``, ``kind`` (``nfs`` or
    ``iscsi``), ``shareOptions`` (nfs), ``IQN`` (iscsi).
    '''
    capacity: int
    name: typing.Optional[str] = None
    claim_uid: typing.Optional[str] = None
    access_modes: typing.Tuple[str, ...] = ('ReadWriteOnce',)
    reclaim_policy: str = 'Delete'
    parameters: typing.Mapping[str, str] = dataclasses.field(
        default_factory=dict)

    @property
    def identity(self):
        if self.name:
            return self.name
        if self.claim_uid:
            return 'pvc-{!s}'.format(self.claim_uid)
        raise zfsprov.exc.InvalidArgumentError(
            'Volume request carries neither a name nor a claim UID')

    @property
    def kind(self):
        return self.parameters.get('kind', zfsprov.config.defaults['kind'])

    def validate(self):
        '''Check everything that does not depend on the export kind.

        :raises zfsprov.exc.InvalidArgumentError:
        '''
        zfsprov.storage.validate_identity(self.identity)
        if isinstance(self.capacity, bool) \
                or not isinstance(self.capacity, int) or self.capacity <= 0:
            raise zfsprov.exc.InvalidArgumentError(
                'Invalid capacity: {!r}'.format(self.capacity))


@dataclasses.dataclass(frozen=True)
class VolumeRecord:
    '''A provisioned volume, as handed over to the orchestrator.'''
    name: str
    capacity: int
    source: typing.Union[NFSVolumeSource, ISCSIVolumeSource]
    access_modes: typing.Tuple[str, ...] = ('ReadWriteOnce',)
    reclaim_policy: str = 'Delete'
    annotations: typing.Mapping[str, str] = dataclasses.field(
        default_factory=dict)
    labels: typing.Mapping[str, str] = dataclasses.field(
        default_factory=dict)

    @property
    def created_by_us(self):
        return self.annotations.get(ANN_CREATED_BY) \
            == zfsprov.config.provisioner_name

    def to_manifest(self):
        '''Kubernetes ``PersistentVolume`` object, JSON-ready'''
        for key, klass in SOURCES.items():
            if isinstance(self.source, klass):
                source_key = key
                break
        else:
            raise zfsprov.exc.InvalidArgumentError(
                'Unknown volume source: {!r}'.format(self.source))

        return {
            'apiVersion': 'v1',
            'kind': 'PersistentVolume',
            'metadata': {
                'name': self.name,
                'labels': dict(self.labels),
                'annotations': dict(self.annotations),
            },
            'spec': {
                'capacity': {'storage': str(self.capacity)},
                'accessModes': list(self.access_modes),
                'persistentVolumeReclaimPolicy': self.reclaim_policy,
                source_key: self.source.__json__(),
            },
        }

    @classmethod
    def from_manifest(cls, manifest):
        '''Parse a ``PersistentVolume`` object

        :raises zfsprov.exc.InvalidArgumentError: if it is not one we
            could have produced
        '''
        try:
            metadata = manifest['metadata']
            spec = manifest['spec']
            capacity = zfsprov.utils.parse_size(
                str(spec['capacity']['storage']))
            for key, klass in SOURCES.items():
                if key in spec:
                    source = klass.fromjson(spec[key])
                    break
            else:
                raise zfsprov.exc.InvalidArgumentError(
                    'PersistentVolume {!r} has no nfs or iscsi source'.format(
                        metadata.get('name')))
            return cls(
                name=metadata['name'],
                capacity=capacity,
                source=source,
                access_modes=tuple(spec.get('accessModes', ())),
                reclaim_policy=spec.get('persistentVolumeReclaimPolicy',
                    'Delete'),
                annotations=dict(metadata.get('annotations') or {}),
                labels=dict(metadata.get('labels') or {}),
            )
        except zfsprov.exc.InvalidArgumentError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise zfsprov.exc.InvalidArgumentError(
                'Malformed PersistentVolume: {!s}'.format(e)) from e
