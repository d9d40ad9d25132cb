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
iSCSI export kind: a ZFS volume served as a target by the tgt daemon.

Each volume gets its own target descriptor in the tgt configuration
directory, named after the volume::

    /etc/tgt/conf.d/pvc-2.conf

After the descriptor is written, :program:`tgt-admin -e` makes the daemon
pick up every descriptor in the directory.  tgt has no way to apply a
single file, so this is a global reload.
"""

import asyncio
import dataclasses
import functools
import logging
import os
import re
import shlex
import subprocess

import jinja2

import zfsprov.config
import zfsprov.exc
import zfsprov.storage
import zfsprov.utils
import zfsprov.volume

TEMPLATE = "tgt-target.conf.jinja"

_sudo = "sudo"

# iqn., eui. and naa. names; nothing tgt would read as markup
_iqn_re = re.compile(r"\A(iqn|eui|naa)\.[A-Za-z0-9.:-]+\Z")


@functools.lru_cache(maxsize=None)
def template_env() -> jinja2.Environment:
    """jinja2 environment for target descriptor templates"""
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(
            zfsprov.config.system_path["templates_dirs"]
        ),
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )


def config_path(config_dir: str, identity: str) -> str:
    """
    Where the descriptor of volume `identity` lives.

    >>> config_path("/etc/tgt/conf.d", "pvc-2")
    '/etc/tgt/conf.d/pvc-2.conf'
    """
    return os.path.join(config_dir, "%s.conf" % identity)


@dataclasses.dataclass(frozen=True)
class TargetConfig:
    """
    Target descriptor of one block-exported volume.
    """

    config_dir: str
    identity: str
    target_name: str
    backing_store: str

    @property
    def path(self) -> str:
        return config_path(self.config_dir, self.identity)

    def render(self) -> str:
        return (
            template_env()
            .get_template(TEMPLATE)
            .render(
                target_name=self.target_name,
                backing_store=self.backing_store,
            )
        )

    def write(self, log: logging.Logger) -> str:
        """
        Atomically (re)write the descriptor, readable by the daemon.

        Raises `zfsprov.exc.TargetConfigError` on failure.
        """
        content = self.render().encode()
        try:
            with zfsprov.utils.replace_file(
                self.path,
                permissions=zfsprov.config.defaults["target_config_mode"],
                logger=log,
            ) as f:
                f.write(content)
        except OSError as e:
            raise zfsprov.exc.TargetConfigError(
                self.path,
                "Writing target configuration %s failed: %s" % (self.path, e),
            ) from e
        log.debug("Wrote target configuration %s", self.path)
        return self.path


def remove_config(config_dir: str, identity: str, log: logging.Logger) -> bool:
    """
    Remove the descriptor of volume `identity`, if there is one.

    Returns whether a file was removed.  Raises `OSError` on anything
    except absence.
    """
    return zfsprov.utils.remove_file(
        config_path(config_dir, identity),
        logger=log,
    )


async def tgt_admin(*args: str, log: logging.Logger) -> str:
    """
    Call :program:`tgt-admin`.

    Raises `zfsprov.exc.ExportDaemonError` if it cannot be run or fails.
    """
    thecmd = [zfsprov.config.system_path["tgt_admin"]] + list(args)
    if os.getuid() != 0:
        thecmd = [_sudo] + thecmd
    thecmd_shell = " ".join(shlex.quote(x) for x in thecmd)
    action = " ".join(args)
    try:
        p = await asyncio.create_subprocess_exec(
            *thecmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            close_fds=True,
        )
    except FileNotFoundError as exc:
        raise zfsprov.exc.ExportDaemonError(
            action, 127, "tgt-admin is not installed"
        ) from exc
    stdout, stderr = await p.communicate()
    if p.returncode != 0:
        err = zfsprov.utils.sanitize_stderr_for_log(stderr)
        log.debug("%s failed with %s: %s", thecmd_shell, p.returncode, err)
        raise zfsprov.exc.ExportDaemonError(action, p.returncode, err)
    log.debug("%s -> %s", thecmd_shell, stdout.decode().rstrip() or "ok")
    return stdout.decode()


class ISCSIExport(zfsprov.storage.ExportKind):
    """ZFS volumes served as iSCSI targets by tgt.

    Provisioning writes the target descriptor first, then creates the
    volume, then reloads the daemon.  A failed reload leaves the volume
    provisioned: the descriptor is in place and the next reload (or a
    daemon restart) serves it.

    A descriptor that exists already belongs to a live volume, so
    provisioning the same volume again fails before touching anything.

    Request parameters exclusive to this kind:

    * `IQN` (mandatory): prefix of the target name; the target is called
      ``<IQN>:<volume name>``.
    """

    name = "iscsi"
    source_class = zfsprov.volume.ISCSIVolumeSource

    def validate(self, request):
        iqn = request.parameters.get("IQN")
        if not iqn or not _iqn_re.match(iqn):
            raise zfsprov.exc.InvalidArgumentError(
                "iscsi volumes need a valid IQN parameter, got %r" % (iqn,)
            )

    def backing_store(self, identity: str) -> str:
        return os.path.join(
            zfsprov.config.system_path["zvol_dir"],
            self.dataset_name(identity),
        )

    def target_config(self, request, identity: str) -> TargetConfig:
        return TargetConfig(
            config_dir=self.config.target_config_dir,
            identity=identity,
            target_name="%s:%s" % (request.parameters["IQN"], identity),
            backing_store=self.backing_store(identity),
        )

    async def provision_dataset(self, request, identity, server, log):
        dataset = self.dataset_name(identity)
        target = self.target_config(request, identity)

        if os.path.exists(target.path):
            # descriptor of a live volume; leave it alone
            raise zfsprov.exc.AlreadyExistsError(
                "Target configuration %s already exists" % target.path
            )
        target.write(log)
        try:
            await self.accessor.create_volume_async(
                dataset,
                request.capacity,
                {},
                log=log,
            )
        except zfsprov.exc.StorageEngineError:
            try:
                remove_config(target.config_dir, identity, log)
            except OSError as e:
                log.warning("Removing %s failed: %s", target.path, e)
            raise

        try:
            await tgt_admin("-e", log=log)
        except zfsprov.exc.ExportDaemonError as e:
            log.warning(
                "Updating tgtd failed, target %s is not served yet: %s",
                target.target_name,
                e,
            )

        return zfsprov.volume.ISCSIVolumeSource(
            target_portal=server,
            iqn=target.target_name,
            lun=zfsprov.config.defaults["iscsi_lun"],
        )

    async def deprovision_export(self, record, log):
        try:
            await tgt_admin("--delete", record.source.iqn, log=log)
        except zfsprov.exc.ExportDaemonError as e:
            log.warning(
                "Removing target %s from tgtd failed: %s",
                record.source.iqn,
                e,
            )

        try:
            remove_config(self.config.target_config_dir, record.name, log)
        except OSError as e:
            log.warning(
                "Removing tgt config %s failed: %s",
                config_path(self.config.target_config_dir, record.name),
                e,
            )
