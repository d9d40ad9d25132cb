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

'''
zfs-provisioner creates the backing storage of Kubernetes persistent
volumes as ZFS datasets below one parent dataset, exports them over NFS
or iSCSI, and reports their capacity and usage to Prometheus.

The main entry points are :py:class:`zfsprov.provisioner.Provisioner`
and :py:class:`zfsprov.metrics.VolumeMetricsCollector`.
'''
