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

"""
NFS export kind: a ZFS file system shared through its ``sharenfs``
property.
"""

import zfsprov.exc
import zfsprov.storage
import zfsprov.volume


class NFSExport(zfsprov.storage.ExportKind):
    """File systems shared over NFS.

    The dataset is created with quota, reservation and share options in
    one `zfs create` call, so a dataset never exists with only part of
    them applied.  ZFS itself exports the file system as soon as
    ``sharenfs`` is set, and stops when it is destroyed, so there is no
    separate export step.

    Request parameters exclusive to this kind:

    * `shareOptions` (default from configuration, ``rw=@10.0.0.0/8``):
      value of the ``sharenfs`` property.
    """

    name = "nfs"
    source_class = zfsprov.volume.NFSVolumeSource

    def properties(self, request):
        size = str(request.capacity)
        return {
            "sharenfs": request.parameters.get(
                "shareOptions", self.config.share_options
            ),
            "refquota": size,
            "refreservation": size,
        }

    async def provision_dataset(self, request, identity, server, log):
        dataset = self.dataset_name(identity)
        await self.accessor.create_filesystem_async(
            dataset,
            self.properties(request),
            log=log,
        )
        try:
            mountpoint = await self.accessor.get_property_async(
                dataset,
                "mountpoint",
                log=log,
            )
            if not mountpoint.startswith("/"):
                raise zfsprov.exc.StorageEngineError(
                    "Dataset %s is not mounted (mountpoint=%s)"
                    % (dataset, mountpoint)
                )
        except zfsprov.exc.StorageEngineError:
            log.warning("Removing half-provisioned dataset %s", dataset)
            try:
                await self.accessor.destroy_async(dataset, log=log)
            except zfsprov.exc.StorageEngineError as e:
                log.error("Could not remove dataset %s: %s", dataset, e)
            raise
        return zfsprov.volume.NFSVolumeSource(server=server, path=mountpoint)

    async def deprovision_export(self, record, log):
        # Destroying the dataset unshares it.
        pass
