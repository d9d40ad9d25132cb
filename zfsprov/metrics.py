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

'''Capacity and usage of provisioned file systems, for Prometheus.

:py:class:`VolumeMetricsCollector` is a custom collector: register it with
a :py:class:`prometheus_client.CollectorRegistry` and every scrape runs
one collection pass over the dataset tree.
'''

import dataclasses
import logging

from prometheus_client.core import GaugeMetricFamily

import zfsprov.exc
import zfsprov.storage
import zfsprov.storage.zfs
import zfsprov.utils

CAPACITY_METRIC = 'zfs_provisioner_persistent_volume_capacity'
USED_METRIC = 'zfs_provisioner_persistent_volume_used'

#: dataset properties the figures are read from
CAPACITY_PROPERTY = 'refquota'
USED_PROPERTY = 'usedbydataset'

LABELS = ['persistent_volume', 'parent', 'hostname']


@dataclasses.dataclass(frozen=True)
class MetricSample:
    '''Figures of one file system at collection time, in bytes.'''
    dataset: str
    capacity: int
    used: int


def parse_bytes(dataset, prop, value):
    '''Integer value of a ``zfs list -p`` property

    :raises zfsprov.exc.MetricsParseError: if it is not one
    '''
    try:
        return int(value)
    except (TypeError, ValueError):
        raise zfsprov.exc.MetricsParseError(dataset, prop, value) from None


class VolumeMetricsCollector:
    '''Collect capacity and used bytes of every file system below the
    parent dataset.

    Snapshots and volumes are skipped: their usage does not mean what it
    means for a file system.  A dataset that cannot be read is logged and
    left out; the others are still reported.
    '''

    def __init__(self, config, accessor=None, hostname=None):
        self.config = config
        if accessor is None:
            accessor = zfsprov.storage.zfs.ZFSAccessor(config.parent)
        self.accessor = accessor
        if hostname is None:
            hostname = zfsprov.utils.get_fqdn()
        self.hostname = hostname
        self.log = logging.getLogger('zfsprov.metrics')

    def _families(self):
        return (
            GaugeMetricFamily(CAPACITY_METRIC,
                'Capacity of a zfs persistent volume.', labels=LABELS),
            GaugeMetricFamily(USED_METRIC,
                'Usage of a zfs persistent volume.', labels=LABELS),
        )

    def describe(self):
        return list(self._families())

    def dataset_metrics(self, dataset):
        '''Read figures of one dataset

        :rtype: MetricSample
        :raises zfsprov.exc.StorageEngineError: property read failed
        :raises zfsprov.exc.MetricsParseError: value is not a number
        '''
        props = self.accessor.get_properties(dataset,
            [CAPACITY_PROPERTY, USED_PROPERTY], log=self.log)
        return MetricSample(
            dataset=dataset,
            capacity=parse_bytes(dataset, CAPACITY_PROPERTY,
                props.get(CAPACITY_PROPERTY)),
            used=parse_bytes(dataset, USED_PROPERTY,
                props.get(USED_PROPERTY)),
        )

    def samples(self):
        '''One collection pass

        Yields :py:class:`MetricSample` for every reportable file system.
        '''
        try:
            datasets = self.accessor.list_descendants(self.config.parent,
                log=self.log)
        except zfsprov.exc.StorageEngineError as e:
            self.log.error('Collecting metrics failed: %s', e)
            return

        for dataset in datasets:
            if dataset.kind != zfsprov.storage.FILESYSTEM \
                    or dataset.name == self.config.parent:
                continue
            try:
                yield self.dataset_metrics(dataset.name)
            except zfsprov.storage.zfs.DatasetDoesNotExist:
                self.log.debug('Dataset %s is gone, not reporting it',
                    dataset.name)
            except (zfsprov.exc.StorageEngineError,
                    zfsprov.exc.MetricsParseError) as e:
                self.log.error('Collecting metrics of %s failed: %s',
                    dataset.name, e)

    def collect(self):
        capacity, used = self._families()
        for sample in self.samples():
            labels = [sample.dataset, self.config.parent, self.hostname]
            capacity.add_metric(labels, sample.capacity)
            used.add_metric(labels, sample.used)
        yield capacity
        yield used
