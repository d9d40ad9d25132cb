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

'''The volume lifecycle engine.

:py:class:`Provisioner` turns a :py:class:`zfsprov.volume.VolumeRequest`
into a dataset plus its network export, and a
:py:class:`zfsprov.volume.VolumeRecord` back into nothing.

>>> config = ProvisionerConfig(parent='tank/k8s')      # doctest: +SKIP
>>> provisioner = Provisioner(config)                 # doctest: +SKIP
>>> record = await provisioner.provision(VolumeRequest(   # doctest: +SKIP
...     name='pvc-1', capacity=10**9, parameters={'kind': 'nfs'}))
>>> await provisioner.delete(record)                  # doctest: +SKIP
'''

import logging

import zfsprov.config
import zfsprov.exc
import zfsprov.log
import zfsprov.storage
import zfsprov.storage.zfs
import zfsprov.utils
import zfsprov.volume


class Provisioner:
    '''Provision and delete volumes below one parent dataset.

    :param zfsprov.config.ProvisionerConfig config: process-wide settings
    :param accessor: :py:class:`zfsprov.storage.zfs.ZFSAccessor` to use,
        one rooted at the parent dataset by default
    '''

    def __init__(self, config, accessor=None):
        self.config = config
        if accessor is None:
            accessor = zfsprov.storage.zfs.ZFSAccessor(config.parent)
        self.accessor = accessor
        self.log = logging.getLogger('zfsprov.provisioner')
        self._kinds = {}

    def __repr__(self):
        return '<{} at {:#x} parent={!r}>'.format(
            type(self).__name__, id(self), self.config.parent)

    def get_kind(self, name):
        '''Export kind instance for *name*

        :raises zfsprov.exc.InvalidArgumentError: for unknown kinds
        '''
        if name not in self._kinds:
            klass = zfsprov.storage.get_kind_class(name)
            self._kinds[name] = klass(self.config, self.accessor)
        return self._kinds[name]

    def kind_for_record(self, record):
        '''Export kind that produced *record*

        :raises zfsprov.exc.InvalidArgumentError: if no kind claims it
        '''
        for name in zfsprov.storage.kind_drivers():
            kind = self.get_kind(name)
            if kind.owns(record):
                return kind
        raise zfsprov.exc.InvalidArgumentError(
            'No volume kind handles source {!r} of {!r}'.format(
                record.source, record.name))

    def server_address(self, request):
        '''Address clients should use to reach the export'''
        return request.parameters.get('serverAddress') \
            or self.config.server_address \
            or zfsprov.utils.get_fqdn()

    async def provision(self, request):
        '''Create the dataset for *request* and export it.

        Nothing is created if the request is invalid.

        :rtype: :py:class:`zfsprov.volume.VolumeRecord`
        :raises zfsprov.exc.InvalidArgumentError: malformed request or
            unknown kind
        :raises zfsprov.exc.AlreadyExistsError: the dataset exists already
        '''
        request.validate()
        identity = request.identity
        kind = self.get_kind(request.kind)
        kind.validate(request)
        server = self.server_address(request)

        log = zfsprov.log.get_volume_logger(identity)
        source = await kind.provision_dataset(request, identity, server, log)
        log.info('Created volume %s (%s, %d bytes)',
            kind.dataset_name(identity), kind, request.capacity)

        record = zfsprov.volume.VolumeRecord(
            name=identity,
            capacity=request.capacity,
            source=source,
            access_modes=tuple(request.access_modes),
            reclaim_policy=request.reclaim_policy,
            annotations={
                zfsprov.volume.ANN_CREATED_BY:
                    zfsprov.config.provisioner_name,
            },
        )
        log.debug('Returning volume %r', record)
        return record

    async def delete(self, record):
        '''Remove the export and the dataset of *record*.

        Deleting a volume that does not exist (anymore) succeeds.  Export
        teardown problems are logged and do not stop the dataset from
        being destroyed.

        :raises zfsprov.exc.DatasetLookupError: datasets cannot be listed
        :raises zfsprov.exc.DestroyError: the dataset is still there
        '''
        identity = zfsprov.storage.validate_identity(record.name)
        kind = self.kind_for_record(record)
        log = zfsprov.log.get_volume_logger(identity)
        if not record.created_by_us:
            log.warning('Volume %s was not created by %s',
                identity, zfsprov.config.provisioner_name)

        await kind.deprovision_export(record, log)

        dataset = await zfsprov.storage.resolve(
            self.accessor, self.config.parent, identity, log)
        if dataset is None:
            log.warning('Volume not found, so nothing to delete')
            return

        try:
            await self.accessor.destroy_async(dataset.name, log=log)
        except zfsprov.storage.zfs.DatasetDoesNotExist:
            log.warning('Dataset %s vanished before it could be destroyed',
                dataset.name)
            return
        except zfsprov.exc.StorageEngineError as e:
            raise zfsprov.exc.DestroyError(dataset.name,
                'Deleting dataset {!s} failed: {!s}'.format(dataset.name, e),
                stderr=e.stderr) from e

        log.info('Deleted volume %s', dataset.name)
