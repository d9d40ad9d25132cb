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

""" zfs-provisioner storage system

Datasets, how volume identities map onto them, and the export kinds that
know how to make a dataset reachable over the network.
"""

import dataclasses
import importlib.metadata
import re
from typing import Dict, Optional

import zfsprov.exc
import zfsprov.utils

KIND_ENTRY_POINT = "zfsprov.kinds"

FILESYSTEM = "filesystem"
VOLUME = "volume"
SNAPSHOT = "snapshot"

# what zfs accepts in a single path component
_identity_re = re.compile(r"\A[A-Za-z0-9][A-Za-z0-9_.:-]*\Z")


@dataclasses.dataclass
class ManagedDataset:
    """A node of the dataset tree, as seen by one listing."""

    name: str
    kind: str
    mountpoint: Optional[str] = None
    properties: Dict[str, str] = dataclasses.field(default_factory=dict)

    def __str__(self):
        return self.name

    @property
    def basename(self):
        return self.name.rsplit("/", 1)[-1]

    def is_snapshot(self):
        return self.kind == SNAPSHOT or "@" in self.name


def validate_identity(identity):
    """Check that *identity* can be used as a single dataset name component

    >>> validate_identity('pvc-0b1c')
    'pvc-0b1c'

    :raises zfsprov.exc.InvalidArgumentError: when it cannot
    """
    if not isinstance(identity, str) or not _identity_re.match(identity):
        raise zfsprov.exc.InvalidArgumentError(
            "Invalid volume identity: {!r}".format(identity))
    return identity


def dataset_name(parent, identity):
    """Dataset backing the volume *identity*

    >>> dataset_name('tank/k8s', 'pvc-1')
    'tank/k8s/pvc-1'
    """
    return "{!s}/{!s}".format(parent, validate_identity(identity))


async def resolve(accessor, parent, identity, log):
    """Find the dataset backing the volume *identity*.

    Only immediate children of *parent* are considered and only an exact
    name match counts, so ``pvc-1`` never resolves to ``pvc-10``.
    Snapshots never match.

    :returns: :py:class:`ManagedDataset` or :py:obj:`None` if there is no
        such dataset
    :raises zfsprov.exc.DatasetLookupError: if the children could not be
        listed
    """
    wanted = dataset_name(parent, identity)
    try:
        children = await accessor.list_children_async(parent, log=log)
    except zfsprov.exc.StorageEngineError as e:
        raise zfsprov.exc.DatasetLookupError(
            parent,
            "Listing datasets under {!r} failed: {!s}".format(parent, e),
            stderr=e.stderr) from e
    for child in children:
        if child.is_snapshot():
            continue
        if child.name == wanted:
            return child
    return None


class ExportKind:
    """A way of exporting a dataset to clients (NFS share, iSCSI target...).

    Every kind creates its own backing dataset and tears down its own
    export.  3rd parties providing other kinds need to extend this class
    and register it under the ``zfsprov.kinds`` entry point group.
    """  # pylint: disable=unused-argument

    #: name of the kind, as given in the ``kind`` request parameter
    name = None

    #: :py:mod:`zfsprov.volume` source class this kind produces
    source_class = None

    def __init__(self, config, accessor):
        self.config = config
        self.accessor = accessor

    def __str__(self):
        return self.name

    def __repr__(self):
        return "<{} at {:#x} parent={!r}>".format(
            type(self).__name__, id(self), self.config.parent)

    def validate(self, request):
        """Reject a request this kind cannot serve.

        Called before anything is created.

        :raises zfsprov.exc.InvalidArgumentError:
        """

    async def provision_dataset(self, request, identity, server, log):
        """Create the dataset and export it.

        :returns: volume source describing how clients reach it
        """
        raise self._not_implemented("provision_dataset")

    async def deprovision_export(self, record, log):
        """Undo whatever :py:meth:`provision_dataset` did besides creating
        the dataset.  Must not raise on failures of the export machinery;
        log them instead.
        """
        raise self._not_implemented("deprovision_export")

    def owns(self, record):
        """Was *record* created by this kind?"""
        return isinstance(record.source, self.source_class)

    def dataset_name(self, identity):
        return dataset_name(self.config.parent, identity)

    def _not_implemented(self, method_name):
        """Helper for emitting helpful `NotImplementedError` exceptions"""
        msg = "Export kind {!s} has {!s}() not implemented"
        msg = msg.format(str(self.__class__.__name__), method_name)
        return NotImplementedError(msg)


def kind_drivers():
    """Return a list of EntryPoints names"""
    return [
        ep.name
        for ep in importlib.metadata.entry_points(group=KIND_ENTRY_POINT)
    ]


def get_kind_class(name):
    """Export kind class registered as *name*

    :raises zfsprov.exc.InvalidArgumentError: for unknown kinds
    """
    try:
        return zfsprov.utils.get_entry_point_one(KIND_ENTRY_POINT, name)
    except KeyError:
        raise zfsprov.exc.InvalidArgumentError(
            "Unknown volume kind: {!s}".format(name)) from None
